from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

import loguru
from loguru import logger

from shekelstream.adapters.clients.scraper import ScraperClient, ScrapeResult
from shekelstream.adapters.db.facade import DB
from shekelstream.core.tasks import SyncTask
from shekelstream.models.transaction import Transaction
from shekelstream.tools.notify.notifier_tool import Notifier
from shekelstream.tools.sync.normalizer import normalize_scrape_result
from shekelstream.tools.sync.settlement_filter import SettlementFilter
from shekelstream.tools.translate.translator_tool import TranslationCache


class SyncStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    EMPTY = "empty"
    UP_TO_DATE = "up_to_date"


@dataclass
class SyncSummary:
    """Counters for one task's sync."""

    status: SyncStatus
    new: int = 0
    updated: int = 0
    fetched: int = 0
    unsettled: int = 0
    error_type: str | None = None
    error_message: str | None = None


def chunked(items: Sequence[Transaction], size: int) -> Iterator[list[Transaction]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class SyncToolLogger:
    """Handles all logging for SyncTool with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def fetch_start(self, task: SyncTask, start_date: datetime) -> None:
        self._logger.bind(**task.key, start_date=start_date.isoformat()).info(
            "Scraping {} for {} since {}",
            task.company.value,
            task.user,
            start_date.date().isoformat(),
        )

    def fetch_failed(self, task: SyncTask, result: ScrapeResult) -> None:
        self._logger.bind(
            **task.key,
            error_type=result.error_type,
            error_message=result.error_message,
        ).error(
            "Scraping failed for {}: {}",
            task.company.value,
            result.error_type or "unknown error",
        )

    def fetch_empty(self, task: SyncTask) -> None:
        self._logger.bind(**task.key).info("No transactions found")

    def up_to_date(self, task: SyncTask, fetched: int) -> None:
        self._logger.bind(**task.key, fetched=fetched).info(
            "All {} transactions are already settled", fetched
        )

    def processing_start(self, task: SyncTask, fetched: int, unsettled: int) -> None:
        self._logger.bind(**task.key, fetched=fetched, unsettled=unsettled).info(
            "Processing {} of {} fetched transactions", unsettled, fetched
        )

    def chunk_start(self, task: SyncTask, index: int, size: int) -> None:
        self._logger.bind(**task.key, chunk=index, size=size).debug(
            "Translating chunk {} ({} transactions)", index, size
        )

    def summary(self, task: SyncTask, new: int, updated: int) -> None:
        self._logger.bind(**task.key, new=new, updated=updated).info(
            "Sync finished: {} new, {} updated", new, updated
        )


class SyncTool:
    """
    Drives one task through fetch, filter, translate, persist and notify.

    Transactions are handled in chronological order, one chunk at a time, and
    each transaction is persisted independently. A failure reported by the
    scraper ends the task without raising; store errors propagate.
    """

    def __init__(
        self,
        db: DB,
        scraper: ScraperClient,
        translation_cache: TranslationCache,
        notifier: Notifier,
        *,
        sync_days_count: int = 7,
        chunk_size: int = 30,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        """
        Initialize the sync tool.

        Args:
            db: Database instance for persisting transactions
            scraper: Client for the account-data acquisition service
            translation_cache: Cache-aside translator for descriptions
            notifier: Notifier for newly inserted transactions
            sync_days_count: Lookback window in days
            chunk_size: Maximum transactions per translation call
            now: Clock, injectable for tests
        """
        self._db = db
        self._scraper = scraper
        self._settlement_filter = SettlementFilter(db)
        self._translation_cache = translation_cache
        self._notifier = notifier
        self._sync_days_count = sync_days_count
        self._chunk_size = chunk_size
        self._now = now
        self._logger = SyncToolLogger()

    def sync(self, task: SyncTask) -> SyncSummary:
        """
        Sync recent transactions for a single account task.

        Args:
            task: The user/company pair to sync

        Returns:
            SyncSummary with the final status and insert/update counts

        Raises:
            ScraperError: If the scraper bridge cannot be run
            SQLAlchemyError: If the store fails while filtering or persisting
        """
        start_date = self._now() - timedelta(days=self._sync_days_count)
        self._logger.fetch_start(task, start_date)
        result = self._scraper.scrape(
            company=task.company,
            credentials=task.credentials,
            start_date=start_date,
        )
        if not result.success:
            self._logger.fetch_failed(task, result)
            return SyncSummary(
                status=SyncStatus.FAILED,
                error_type=result.error_type,
                error_message=result.error_message,
            )

        transactions = normalize_scrape_result(result, task)
        if not transactions:
            self._logger.fetch_empty(task)
            return SyncSummary(status=SyncStatus.EMPTY)

        transactions.sort(key=lambda txn: txn.date)
        unsettled = self._settlement_filter.filter_unsettled(transactions)
        if not unsettled:
            self._logger.up_to_date(task, len(transactions))
            return SyncSummary(status=SyncStatus.UP_TO_DATE, fetched=len(transactions))

        self._logger.processing_start(task, len(transactions), len(unsettled))
        summary = SyncSummary(
            status=SyncStatus.COMPLETED,
            fetched=len(transactions),
            unsettled=len(unsettled),
        )
        for index, chunk in enumerate(chunked(unsettled, self._chunk_size), start=1):
            self._logger.chunk_start(task, index, len(chunk))
            self._process_chunk(chunk, task, summary)

        self._logger.summary(task, summary.new, summary.updated)
        return summary

    def _process_chunk(
        self, chunk: list[Transaction], task: SyncTask, summary: SyncSummary
    ) -> None:
        translations = self._translation_cache.translate(
            [txn.translation_key for txn in chunk]
        )
        for txn, translation in zip(chunk, translations, strict=True):
            txn.translated_description = translation

        for txn in chunk:
            inserted = self._db.upsert_transaction(txn)
            if inserted:
                summary.new += 1
                self._notifier.notify(txn, txn.chat_id or task.chat_id)
            else:
                summary.updated += 1
