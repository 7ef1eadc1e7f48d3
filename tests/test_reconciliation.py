from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

import pytest

from ledger_matching.errors import AccountAccessError, ReconciliationNotFoundError
from ledger_matching.models import Transaction
from ledger_matching.reconciliation import (
    bulk_approve_matches,
    describe_difference,
    enrich_transaction,
    parse_bank_reference_data,
    score_bank_match,
)
from tests.helpers.db import (
    add_account,
    add_reconciliation,
    add_reconciliation_item,
    add_transaction,
    fetch_item,
    fetch_transaction,
    grant_access,
)


@pytest.fixture
def session_items(db_url: str) -> dict[str, int]:
    """One reconciliation with Matched items at confidences 0.98, 0.92 and 0.75."""

    account = add_account(db_url, user_id="owner")
    rec = add_reconciliation(db_url, user_id="owner", account_id=account)
    ids: dict[str, int] = {"account": account, "rec": rec}
    for n, conf in enumerate((0.98, 0.92, 0.75), start=1):
        tx = add_transaction(
            db_url, account_id=account, amount="-20.00", on=date(2024, 7, n), description="Shop"
        )
        ids[f"tx{n}"] = tx
        ids[f"item{n}"] = add_reconciliation_item(
            db_url,
            reconciliation_id=rec,
            transaction_id=tx,
            confidence=conf,
            bank={"externalId": f"BANK-{n}", "reference": f"REF{n}", "category": "Shopping"},
        )
    return ids


def test_threshold_selects_matching_items(db_url, store, session_items) -> None:
    result = bulk_approve_matches(
        store, user_id="owner", reconciliation_id=session_items["rec"], threshold=0.90
    )

    assert result.approved_count == 2
    assert result.enriched_count == 2
    assert result.skipped_count == 0
    assert result.errors == ()

    tx1 = fetch_transaction(db_url, session_items["tx1"])
    assert tx1.status == "Reconciled"
    assert tx1.external_id == "BANK-1"
    assert tx1.reference_number == "REF1"
    assert tx1.bank_category == "Shopping"
    assert tx1.category_id is None  # bank category is staged, not applied
    assert tx1.updated_by == "owner"

    item1 = fetch_item(db_url, session_items["item1"])
    assert item1.is_approved is True and item1.approved_at is not None
    assert fetch_item(db_url, session_items["item3"]).is_approved is False
    assert fetch_transaction(db_url, session_items["tx3"]).status == "Cleared"


def test_higher_threshold_approves_fewer(store, session_items) -> None:
    result = bulk_approve_matches(
        store, user_id="owner", reconciliation_id=session_items["rec"], threshold=0.98
    )
    assert result.approved_count == 1


def test_rerun_is_idempotent(store, session_items) -> None:
    first = bulk_approve_matches(
        store, user_id="owner", reconciliation_id=session_items["rec"], threshold=0.90
    )
    again = bulk_approve_matches(
        store, user_id="owner", reconciliation_id=session_items["rec"], threshold=0.90
    )
    assert first.approved_count == 2
    assert (again.approved_count, again.skipped_count, again.errors) == (0, 0, ())


def test_explicit_ids_override_threshold(db_url, store, session_items) -> None:
    result = bulk_approve_matches(
        store,
        user_id="owner",
        reconciliation_id=session_items["rec"],
        threshold=0.99,
        item_ids=[session_items["item3"]],
    )
    assert result.approved_count == 1
    assert fetch_item(db_url, session_items["item3"]).is_approved is True
    assert fetch_item(db_url, session_items["item1"]).is_approved is False


def test_non_matched_items_are_skipped_silently(db_url, store, session_items) -> None:
    add_reconciliation_item(
        db_url,
        reconciliation_id=session_items["rec"],
        transaction_id=None,
        confidence=None,
        item_type="UnmatchedBank",
        match_method=None,
        bank={"externalId": "ONLY-BANK"},
    )
    result = bulk_approve_matches(
        store, user_id="owner", reconciliation_id=session_items["rec"], threshold=0.0
    )
    assert result.approved_count == 3
    assert result.skipped_count == 0


def test_existing_enrichment_is_not_overwritten(db_url, store) -> None:
    account = add_account(db_url, user_id="owner")
    rec = add_reconciliation(db_url, user_id="owner", account_id=account)
    tx = add_transaction(
        db_url,
        account_id=account,
        amount="-5.00",
        on=date(2024, 7, 1),
        external_id="KEEP",
        reference_number="KEEP-REF",
        bank_category="KEEP-CAT",
    )
    add_reconciliation_item(
        db_url,
        reconciliation_id=rec,
        transaction_id=tx,
        confidence=0.99,
        bank={"externalId": "NEW", "reference": "NEW", "category": "NEW"},
    )

    result = bulk_approve_matches(store, user_id="owner", reconciliation_id=rec)

    assert (result.approved_count, result.enriched_count) == (1, 0)
    row = fetch_transaction(db_url, tx)
    assert (row.external_id, row.reference_number, row.bank_category) == (
        "KEEP",
        "KEEP-REF",
        "KEEP-CAT",
    )
    assert row.status == "Reconciled"


def test_bad_payload_skips_only_that_item(db_url, store, session_items) -> None:
    bad = add_reconciliation_item(
        db_url,
        reconciliation_id=session_items["rec"],
        transaction_id=session_items["tx3"],
        confidence=0.99,
        bank="{not json",
    )
    result = bulk_approve_matches(
        store, user_id="owner", reconciliation_id=session_items["rec"], threshold=0.90
    )
    assert result.approved_count == 2
    assert result.skipped_count == 1
    assert fetch_item(db_url, bad).is_approved is False


def test_unusable_field_values_do_not_block_approval(db_url, store) -> None:
    account = add_account(db_url, user_id="owner")
    rec = add_reconciliation(db_url, user_id="owner", account_id=account)
    tx = add_transaction(db_url, account_id=account, amount="-20.00", on=date(2024, 7, 1))
    item = add_reconciliation_item(
        db_url,
        reconciliation_id=rec,
        transaction_id=tx,
        confidence=0.99,
        bank={"externalId": "B1", "reference": "R1", "category": "Shopping", "amount": "N/A"},
    )

    result = bulk_approve_matches(store, user_id="owner", reconciliation_id=rec)

    assert (result.approved_count, result.enriched_count, result.skipped_count) == (1, 1, 0)
    row = fetch_transaction(db_url, tx)
    assert (row.external_id, row.reference_number, row.bank_category) == ("B1", "R1", "Shopping")
    assert row.status == "Reconciled"
    assert fetch_item(db_url, item).is_approved is True


def test_missing_reconciliation_fails_fast(store, session_items) -> None:
    with pytest.raises(ReconciliationNotFoundError):
        bulk_approve_matches(store, user_id="owner", reconciliation_id=424242)


def test_other_users_reconciliation_is_not_found(db_url, store, session_items) -> None:
    with pytest.raises(ReconciliationNotFoundError):
        bulk_approve_matches(store, user_id="intruder", reconciliation_id=session_items["rec"])
    assert fetch_item(db_url, session_items["item1"]).is_approved is False


def test_missing_modify_access_fails_before_any_write(db_url, store) -> None:
    account = add_account(db_url, user_id="owner")
    grant_access(db_url, account_id=account, user_id="viewer", can_modify=False)
    rec = add_reconciliation(db_url, user_id="viewer", account_id=account)
    tx = add_transaction(db_url, account_id=account, amount="-1.00", on=date(2024, 7, 1))
    item = add_reconciliation_item(
        db_url, reconciliation_id=rec, transaction_id=tx, confidence=0.99, bank={"externalId": "X"}
    )

    with pytest.raises(AccountAccessError):
        bulk_approve_matches(store, user_id="viewer", reconciliation_id=rec)

    assert fetch_item(db_url, item).is_approved is False
    assert fetch_transaction(db_url, tx).external_id is None


def test_granted_modify_access_is_enough(db_url, store) -> None:
    account = add_account(db_url, user_id="owner")
    grant_access(db_url, account_id=account, user_id="partner", can_modify=True)
    rec = add_reconciliation(db_url, user_id="partner", account_id=account)
    tx = add_transaction(db_url, account_id=account, amount="-1.00", on=date(2024, 7, 1))
    add_reconciliation_item(
        db_url, reconciliation_id=rec, transaction_id=tx, confidence=0.99, bank={"externalId": "X"}
    )

    result = bulk_approve_matches(store, user_id="partner", reconciliation_id=rec)
    assert result.approved_count == 1


def test_threshold_out_of_range_is_rejected(store, session_items) -> None:
    with pytest.raises(ValueError):
        bulk_approve_matches(
            store, user_id="owner", reconciliation_id=session_items["rec"], threshold=1.2
        )


# ---- payload parsing and reviewer aids -------------------------------------


def test_parse_bank_reference_data_accepts_both_key_styles() -> None:
    camel = parse_bank_reference_data(
        '{"externalId": 12345, "reference": " R1 ", "category": "", "amount": "-20.5",'
        ' "date": "2024-07-01T00:00:00Z"}'
    )
    assert camel is not None
    assert camel.external_id == "12345"
    assert camel.reference == "R1"
    assert camel.category is None
    assert camel.amount == Decimal("-20.5")
    assert camel.transaction_date == date(2024, 7, 1)

    pascal = parse_bank_reference_data('{"BankTransactionId": "B-9", "BankCategory": "Fuel"}')
    assert pascal is not None
    assert (pascal.external_id, pascal.category) == ("B-9", "Fuel")


@pytest.mark.parametrize("raw", [None, "", "   ", "[1, 2]", "{broken", "\"text\""])
def test_parse_bank_reference_data_rejects_garbage(raw) -> None:
    assert parse_bank_reference_data(raw) is None


def _tx(**kw) -> Transaction:
    base = dict(
        id=1, amount=Decimal("-20.00"), date=date(2024, 7, 1), description="Shop", account_id=1
    )
    base.update(kw)
    return Transaction(**base)


def test_enrich_transaction_reports_change() -> None:
    bank = parse_bank_reference_data('{"externalId": "E1"}')
    assert bank is not None
    enriched, changed = enrich_transaction(_tx(), bank)
    assert changed and enriched.external_id == "E1"
    _, changed_again = enrich_transaction(enriched, bank)
    assert not changed_again


def test_describe_difference() -> None:
    diff = describe_difference("WOOLWORTHS 1234", "Woolworths 1243")
    assert diff.distance == 2
    assert diff.similarity == pytest.approx(1 - 2 / 15, abs=1e-4)


def test_score_bank_match_uses_payload_amount_and_date() -> None:
    bank = parse_bank_reference_data(
        '{"amount": "-20.00", "date": "2024-07-02", "description": "shop"}'
    )
    assert bank is not None
    confidence, analysis = score_bank_match(_tx(), bank)
    assert analysis.amount_match
    assert analysis.date_difference_days == 1
    # 0.4 * 1.0 + 0.3 * 0.9 + 0.3 * 1.0
    assert confidence == pytest.approx(0.97)


def test_parse_bank_reference_data_reads_each_field_independently() -> None:
    bank = parse_bank_reference_data(
        '{"externalId": "B1", "amount": "N/A", "category": ["x"], "reference": true,'
        ' "date": "yesterday", "description": "  "}'
    )
    assert bank is not None
    assert bank.external_id == "B1"
    assert (bank.amount, bank.category, bank.reference) == (None, None, None)
    assert (bank.transaction_date, bank.description) == (None, None)


@pytest.mark.parametrize(
    ("raw_amount", "expected"),
    [("1,234.50", Decimal("1234.50")), (-20.5, Decimal("-20.5")), ("NaN", None), ({}, None)],
)
def test_bank_amount_parsing(raw_amount, expected) -> None:
    bank = parse_bank_reference_data(json.dumps({"externalId": "B1", "amount": raw_amount}))
    assert bank is not None
    assert bank.amount == expected
