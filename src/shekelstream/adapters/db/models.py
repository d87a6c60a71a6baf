from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class TransactionRow(Base):
    """Stored transaction, matched on (date, charged_amount, description).

    No unique constraint is declared on the identity columns: the same key can
    legitimately appear for unrelated accounts, and upserts look rows up
    before deciding to insert.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_identity", "date", "charged_amount", "description"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_number: Mapped[str] = mapped_column(String, nullable=False)
    company_id: Mapped[str] = mapped_column(String, nullable=False)
    user_code: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    processed_date: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    translated_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_amount: Mapped[float] = mapped_column(Float, nullable=False)
    original_currency: Mapped[str | None] = mapped_column(String, nullable=True)
    charged_amount: Mapped[float] = mapped_column(Float, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    identifier: Mapped[str | None] = mapped_column(String, nullable=True)
    installments: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    chat_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)


class TranslationRow(Base):
    """Cached translation keyed by the exact description text."""

    __tablename__ = "translations"

    description: Mapped[str] = mapped_column(Text, primary_key=True)
    translation: Mapped[str] = mapped_column(Text, nullable=False)
