from __future__ import annotations

from datetime import datetime
from unittest.mock import Mock

from shekelstream.adapters.db.facade import DB
from shekelstream.models.transaction import Transaction
from shekelstream.tools.sync.settlement_filter import SettlementFilter


def create_transaction(
    *,
    description: str = "ארומה",
    status: str = "completed",
    day: int = 1,
    translated_description: str | None = None,
) -> Transaction:
    return Transaction(
        account_number="1234",
        company_id="max",
        user_code="DANA",
        date=datetime(2024, 3, day, 22, 0),
        processed_date=datetime(2024, 3, 10, 22, 0),
        description=description,
        original_amount=-35.0,
        original_currency="ILS",
        charged_amount=-35.0,
        type="normal",
        status=status,
        translated_description=translated_description,
    )


def test_filter_unsettled_empty_input_does_not_touch_store() -> None:
    # input
    db = Mock(spec=DB)

    # act
    output = SettlementFilter(db).filter_unsettled([])

    # assert
    assert output == []
    db.find_settled_keys.assert_not_called()


def test_filter_unsettled_keeps_all_new_transactions(db: DB) -> None:
    # input
    candidates = [create_transaction(day=day) for day in (1, 2, 3)]

    # act
    output = SettlementFilter(db).filter_unsettled(candidates)

    # assert
    assert output == candidates


def test_filter_unsettled_drops_translated_transactions(db: DB) -> None:
    # input
    db.upsert_transaction(create_transaction(day=1, translated_description="Aroma"))
    candidates = [create_transaction(day=1), create_transaction(day=2)]

    # act
    output = SettlementFilter(db).filter_unsettled(candidates)

    # assert
    assert output == [candidates[1]]


def test_filter_unsettled_retries_transactions_stored_without_translation(
    db: DB,
) -> None:
    # input
    db.upsert_transaction(create_transaction(day=1, translated_description=None))
    candidates = [create_transaction(day=1)]

    # act
    output = SettlementFilter(db).filter_unsettled(candidates)

    # assert
    assert output == candidates


def test_filter_unsettled_keeps_transaction_whose_status_changed(db: DB) -> None:
    # input
    db.upsert_transaction(
        create_transaction(status="pending", translated_description="Aroma")
    )
    candidates = [create_transaction(status="completed")]

    # act
    output = SettlementFilter(db).filter_unsettled(candidates)

    # assert
    assert output == candidates


def test_filter_unsettled_keys_do_not_collide_on_separator_characters(
    db: DB,
) -> None:
    # input
    db.upsert_transaction(
        create_transaction(description="a_b", status="c", translated_description="x")
    )
    candidates = [create_transaction(description="a", status="b_c")]

    # act
    output = SettlementFilter(db).filter_unsettled(candidates)

    # assert
    assert output == candidates
