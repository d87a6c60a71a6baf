"""Shared test fixtures."""

from __future__ import annotations

import pytest

from shekelstream.adapters.db.facade import DB


@pytest.fixture
def db() -> DB:
    """In-memory database with tables created."""
    db = DB("sqlite:///:memory:")
    db.create_tables()
    return db
