from __future__ import annotations

from datetime import UTC, datetime

from shekelstream.adapters.clients.scraper import (
    ScrapedAccount,
    ScrapedTransaction,
    ScrapeResult,
)
from shekelstream.core.tasks import SyncTask
from shekelstream.models.transaction import Transaction


def parse_scraper_datetime(value: str) -> datetime:
    """Parse an ISO timestamp from the scraper into a naive UTC datetime.

    Timestamps without an offset are taken to already be UTC.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def normalize_transaction(
    raw: ScrapedTransaction,
    account: ScrapedAccount,
    task: SyncTask,
) -> Transaction:
    return Transaction(
        account_number=account.account_number,
        company_id=task.company.value,
        user_code=task.user,
        date=parse_scraper_datetime(raw.date),
        processed_date=parse_scraper_datetime(raw.processed_date),
        description=raw.description,
        memo=raw.memo or None,
        translated_description=None,
        original_amount=raw.original_amount,
        original_currency=raw.original_currency,
        charged_amount=raw.charged_amount,
        type=raw.type,
        status=raw.status,
        identifier=str(raw.identifier) if raw.identifier is not None else None,
        installments=raw.installments,
        chat_id=task.chat_id,
    )


def normalize_scrape_result(result: ScrapeResult, task: SyncTask) -> list[Transaction]:
    """Flatten every account's transactions into canonical transactions."""
    return [
        normalize_transaction(raw, account, task)
        for account in result.accounts
        for raw in account.txns
    ]
