from __future__ import annotations

from collections.abc import Sequence

from shekelstream.adapters.db.facade import DB
from shekelstream.models.transaction import Transaction


class SettlementFilter:
    """
    Drops transactions that are already fully processed.

    A transaction counts as settled only when a stored row with the same
    settlement key also has a translation. Rows stored with a null
    translation are never filtered, so they are retried on every sync until
    translation succeeds.
    """

    def __init__(self, db: DB) -> None:
        self._db = db

    def filter_unsettled(self, candidates: Sequence[Transaction]) -> list[Transaction]:
        """Return candidates, in order, whose settlement key is not settled."""
        if not candidates:
            return []

        settled = self._db.find_settled_keys(candidates)
        if not settled:
            return list(candidates)
        return [txn for txn in candidates if txn.settlement_key not in settled]
