from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, NamedTuple


class IdentityKey(NamedTuple):
    """Fields used to match a scraped transaction to its stored row."""

    date: datetime
    charged_amount: float
    description: str


class SettlementKey(NamedTuple):
    """Identity key plus the lifecycle fields that change on settlement."""

    date: datetime
    charged_amount: float
    description: str
    processed_date: datetime
    status: str


@dataclass
class Transaction:
    """
    Canonical transaction as produced by the normalizer.

    Note: `date` and `processed_date` are naive UTC datetimes. Amount and
    currency fields are kept exactly as the bank reported them, even when
    they disagree with each other.
    """

    account_number: str
    company_id: str
    user_code: str
    date: datetime
    processed_date: datetime
    description: str
    original_amount: float
    original_currency: str | None
    charged_amount: float
    type: str
    status: str
    memo: str | None = None
    translated_description: str | None = None
    identifier: str | None = None
    installments: dict[str, Any] | None = None
    chat_id: str | None = None
    created_at: datetime | None = field(default=None, compare=False)
    updated_at: datetime | None = field(default=None, compare=False)

    @property
    def translation_key(self) -> str:
        if self.memo:
            return f"{self.description} - {self.memo}"
        return self.description

    @property
    def identity_key(self) -> IdentityKey:
        return IdentityKey(self.date, self.charged_amount, self.description)

    @property
    def settlement_key(self) -> SettlementKey:
        return SettlementKey(
            self.date,
            self.charged_amount,
            self.description,
            self.processed_date,
            self.status,
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for the `transactions` table, without timestamps."""
        row = asdict(self)
        row.pop("created_at")
        row.pop("updated_at")
        return row
