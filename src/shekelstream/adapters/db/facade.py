from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import ColumnElement, and_, create_engine, func, or_, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import (
    Session,
    sessionmaker,
)
from sqlalchemy.pool import NullPool

from shekelstream.adapters.db.models import Base, TransactionRow, TranslationRow
from shekelstream.models.transaction import SettlementKey, Transaction


# Five bound parameters per candidate; keeps each query under 999 parameters
SETTLED_KEYS_BATCH_SIZE = 150


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _settlement_key_matches(txn: Transaction) -> ColumnElement[bool]:
    return and_(
        TransactionRow.date == txn.date,
        TransactionRow.charged_amount == txn.charged_amount,
        TransactionRow.description == txn.description,
        TransactionRow.processed_date == txn.processed_date,
        TransactionRow.status == txn.status,
    )


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:")


class DB:
    """Store facade: every public method opens and closes its own session."""

    def __init__(self, url: str) -> None:
        """Initialize database connection.

        File and server databases use `NullPool`, so each session acquires a
        fresh connection and releases it on exit. In-memory SQLite keeps the
        default pool, otherwise the database would vanish between sessions.

        Args:
            url: Database URL (e.g., "sqlite:///shekelstream.db")
        """
        self._url = url
        if _is_memory_sqlite(url):
            self._engine = create_engine(url, echo=False)
        else:
            self._engine = create_engine(url, echo=False, poolclass=NullPool)
        self._session_factory = sessionmaker(bind=self._engine, class_=Session)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        Base.metadata.create_all(self._engine)

    def ping(self) -> None:
        """Round-trip a trivial query; raises if the store is unreachable."""
        with self.session() as session:  # type: Session
            session.execute(text("SELECT 1"))

    # Transactions --------------------------------------------------------

    def find_settled_keys(self, txns: Sequence[Transaction]) -> set[SettlementKey]:
        """Return settlement keys of stored rows that already carry a translation.

        Each query is an OR over candidates' settlement keys, AND-ed with
        `translated_description IS NOT NULL`. Candidates are split into groups
        of `SETTLED_KEYS_BATCH_SIZE` so the OR chain stays under SQLite's
        expression depth and bound parameter limits; a typical sync fits in
        a single query.

        Args:
            txns: Candidate transactions

        Returns:
            Settlement keys of matching stored rows (empty for empty input)
        """
        settled: set[SettlementKey] = set()
        if not txns:
            return settled

        with self.session() as session:  # type: Session
            for start in range(0, len(txns), SETTLED_KEYS_BATCH_SIZE):
                batch = txns[start : start + SETTLED_KEYS_BATCH_SIZE]
                stmt = select(
                    TransactionRow.date,
                    TransactionRow.charged_amount,
                    TransactionRow.description,
                    TransactionRow.processed_date,
                    TransactionRow.status,
                ).where(
                    TransactionRow.translated_description.is_not(None),
                    or_(*(_settlement_key_matches(txn) for txn in batch)),
                )
                settled.update(SettlementKey(*row) for row in session.execute(stmt))
        return settled

    def upsert_transaction(self, txn: Transaction) -> bool:
        """Insert or update a transaction matched by its identity key.

        On update every field of `txn` overwrites the stored row, including a
        null translation, and `updated_at` is stamped. On insert `created_at`
        is stamped on both the row and `txn`.

        Args:
            txn: Transaction to persist

        Returns:
            True if a new row was inserted, False if an existing row was updated
        """
        with self.session() as session:  # type: Session
            existing = session.execute(
                select(TransactionRow)
                .where(
                    TransactionRow.date == txn.date,
                    TransactionRow.charged_amount == txn.charged_amount,
                    TransactionRow.description == txn.description,
                )
                .limit(1)
            ).scalar_one_or_none()

            if existing is not None:
                for key, value in txn.to_row().items():
                    setattr(existing, key, value)
                existing.updated_at = _utcnow()
                txn.created_at = existing.created_at
                txn.updated_at = existing.updated_at
                return False

            txn.created_at = _utcnow()
            session.add(TransactionRow(**txn.to_row(), created_at=txn.created_at))
            return True

    def get_transaction_by_identity(
        self,
        *,
        date: datetime,
        charged_amount: float,
        description: str,
    ) -> TransactionRow | None:
        with self.session() as session:  # type: Session
            row = session.execute(
                select(TransactionRow)
                .where(
                    TransactionRow.date == date,
                    TransactionRow.charged_amount == charged_amount,
                    TransactionRow.description == description,
                )
                .limit(1)
            ).scalar_one_or_none()
            if row is not None:
                session.expunge(row)
            return row

    def count_transactions(self) -> int:
        with self.session() as session:  # type: Session
            return session.execute(
                select(func.count()).select_from(TransactionRow)
            ).scalar_one()

    # Translations --------------------------------------------------------

    def get_translation(self, description: str) -> str | None:
        with self.session() as session:  # type: Session
            return session.execute(
                select(TranslationRow.translation).where(
                    TranslationRow.description == description
                )
            ).scalar_one_or_none()

    def insert_translation(self, description: str, translation: str) -> bool:
        """Cache a translation; the first writer wins.

        Returns:
            True if stored, False if the key was already cached
        """
        try:
            with self.session() as session:  # type: Session
                session.add(
                    TranslationRow(description=description, translation=translation)
                )
        except IntegrityError:
            return False
        return True
