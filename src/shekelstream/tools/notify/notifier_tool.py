from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
import time
from zoneinfo import ZoneInfo

import loguru
from loguru import logger

from shekelstream.adapters.clients.telegram import TelegramClient
from shekelstream.core.config import AppConfig
from shekelstream.core.retry import RetryPolicy, call_with_retry
from shekelstream.models.transaction import Transaction

CURRENCY_SYMBOLS = {
    "ILS": "₪",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}

INCOME_EMOJI = "💰"
EXPENSE_EMOJI = "💸"


def format_amount(amount: float, currency: str | None) -> str:
    """Format an amount with two decimals and the currency's symbol or code."""
    formatted = f"{abs(amount):,.2f}"
    sign = "-" if amount < 0 else ""
    if not currency:
        return f"{sign}{formatted}"
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    if symbol:
        return f"{sign}{symbol}{formatted}"
    return f"{sign}{formatted} {currency.upper()}"


def format_datetime(
    moment: datetime,
    *,
    source_timezone: ZoneInfo,
    display_timezone: ZoneInfo,
) -> str:
    """Render a stored UTC datetime for a notification.

    Dates that fall exactly on midnight in the source timezone are bank
    dates without a time of day and render as `YYYY-MM-DD`. Everything else
    renders with the full time in the display timezone.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    local = moment.astimezone(source_timezone)
    if local.hour == 0 and local.minute == 0 and local.second == 0:
        return local.strftime("%Y-%m-%d")
    return moment.astimezone(display_timezone).strftime("%Y-%m-%d %H:%M:%S")


def format_transaction(
    txn: Transaction,
    *,
    source_timezone: ZoneInfo,
    display_timezone: ZoneInfo,
) -> str:
    """Build the Markdown notification text for a transaction."""
    date = format_datetime(
        txn.date, source_timezone=source_timezone, display_timezone=display_timezone
    )
    processed_date = format_datetime(
        txn.processed_date,
        source_timezone=source_timezone,
        display_timezone=display_timezone,
    )
    emoji = INCOME_EMOJI if txn.charged_amount > 0 else EXPENSE_EMOJI

    lines = [
        "",
        f"Acccount: *{txn.account_number} {emoji}*",
        f"Amount: *{format_amount(txn.charged_amount, txn.original_currency)}*",
        f"Description: *{txn.translation_key}*",
    ]
    if txn.translated_description:
        lines.append(f"Description (EN): *{txn.translated_description}*")
    lines.append(f"Date: *{date}*")
    if txn.identifier:
        lines.append(f"Id: *{txn.identifier}*")
    lines.extend(
        [
            "",
            f"Processed Date: {processed_date}",
            f"Type: {txn.type}",
            f"Status: {txn.status}",
            "",
        ]
    )
    return "\n".join(lines)


class NotifierLogger:
    """Handles all logging for transaction notifications."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def skipped(self, reason: str, txn: Transaction) -> None:
        self._logger.bind(
            account_number=txn.account_number, company_id=txn.company_id
        ).info("Notification skipped: {}", reason)

    def sent(self, chat_id: str) -> None:
        self._logger.bind(chat_id=chat_id).debug("Notification sent")

    def retry(self, error: Exception, attempt: int, chat_id: str) -> None:
        self._logger.bind(chat_id=chat_id, attempt=attempt).warning(
            "Notification attempt {} failed, retrying: {}", attempt, error
        )

    def failed(self, error: Exception, chat_id: str) -> None:
        self._logger.bind(chat_id=chat_id, error_message=str(error)).opt(
            exception=error
        ).error("Failed to send notification")


class Notifier:
    """
    Best-effort Telegram delivery of newly inserted transactions.

    A fresh client is built for every message. Delivery failures are retried
    per the retry policy and then logged and dropped, never raised.
    """

    def __init__(
        self,
        bot_token: str | None,
        *,
        retry_policy: RetryPolicy = RetryPolicy(retries=5, min_timeout=30, factor=1),
        source_timezone: ZoneInfo = ZoneInfo("Asia/Jerusalem"),
        display_timezone: ZoneInfo = ZoneInfo("Asia/Jerusalem"),
        client_factory: Callable[[str], TelegramClient] = TelegramClient,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._bot_token = bot_token
        self._retry_policy = retry_policy
        self._source_timezone = source_timezone
        self._display_timezone = display_timezone
        self._client_factory = client_factory
        self._sleep = sleep
        self._logger = NotifierLogger()

    @classmethod
    def from_config(cls, config: AppConfig) -> Notifier:
        return cls(
            config.telegram_bot_token,
            retry_policy=config.notify_retry,
            source_timezone=ZoneInfo(config.source_timezone),
            display_timezone=ZoneInfo(config.default_timezone),
        )

    def format(self, txn: Transaction) -> str:
        return format_transaction(
            txn,
            source_timezone=self._source_timezone,
            display_timezone=self._display_timezone,
        )

    def notify(self, txn: Transaction, chat_id: str | None) -> None:
        if not self._bot_token:
            self._logger.skipped("Telegram bot token is not configured", txn)
            return
        if not chat_id:
            self._logger.skipped("Telegram chat id is not configured", txn)
            return

        token = self._bot_token
        text = self.format(txn)
        try:
            call_with_retry(
                lambda: self._client_factory(token).send_message(chat_id, text),
                self._retry_policy,
                sleep=self._sleep,
                on_retry=lambda e, attempt: self._logger.retry(e, attempt, chat_id),
            )
        except Exception as e:
            self._logger.failed(e, chat_id)
            return
        self._logger.sent(chat_id)
