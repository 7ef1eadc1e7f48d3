from __future__ import annotations

from datetime import date
from decimal import Decimal

from ledger_matching.models import Transaction
from ledger_matching.transfers import (
    detect_transfers,
    format_date_range,
    single_transfer_likelihood,
    transfer_indicators,
)

ACCOUNT_A, ACCOUNT_B = 1, 2


def _tx(
    tid: int,
    amount: str,
    day: int,
    account_id: int,
    desc: str = "",
    **extra,
) -> Transaction:
    names = {ACCOUNT_A: "Everyday", ACCOUNT_B: "Savings", 3: "Visa"}
    return Transaction(
        id=tid,
        amount=Decimal(amount),
        date=date(2024, 7, day),
        description=desc,
        account_id=account_id,
        account_name=names.get(account_id, ""),
        **extra,
    )


def _legs(result) -> list[int]:
    return [tid for g in result.groups for tid in (g.outgoing.id, g.incoming.id)]


def test_pairs_outgoing_and_incoming_legs_across_accounts() -> None:
    source = _tx(1, "-50.00", 1, ACCOUNT_A, "Transfer to savings")
    incoming = _tx(2, "50.00", 2, ACCOUNT_B)
    same_account = _tx(3, "50.00", 2, ACCOUNT_A)

    result = detect_transfers([source, incoming, same_account])

    [group] = result.groups
    assert group.outgoing.id == 1
    assert group.incoming.id == 2
    assert group.amount == Decimal("50.00")
    assert group.confidence == 1.0
    assert group.date_range == "Jul 01 - Jul 02, 2024"
    assert group.match_reasons == (
        "Exact amount match",
        "Consecutive day transactions",
        "Contains transfer keywords",
    )
    assert 0.0 < group.review_score <= 1.0
    # The same-account $50 is never paired with the source.
    assert [u.transaction.id for u in result.unmatched] == [3]


def test_orientation_follows_sign_not_input_order() -> None:
    result = detect_transfers([_tx(1, "75.00", 3, ACCOUNT_B), _tx(2, "-75.00", 3, ACCOUNT_A)])
    [group] = result.groups
    assert group.outgoing.id == 2
    assert group.incoming.id == 1
    assert group.date_range == "Jul 03, 2024"


def test_same_sign_and_inexact_amounts_are_never_paired() -> None:
    txs = [
        _tx(1, "-20.00", 1, ACCOUNT_A),
        _tx(2, "-20.00", 1, ACCOUNT_B),
        _tx(3, "20.01", 1, ACCOUNT_B),
    ]
    assert detect_transfers(txs).groups == ()


def test_date_window_is_three_days() -> None:
    assert detect_transfers([_tx(1, "-10.00", 1, 1), _tx(2, "10.00", 4, 2)]).total_groups == 1
    assert detect_transfers([_tx(1, "-10.00", 1, 1), _tx(2, "10.00", 5, 2)]).total_groups == 0


def test_first_fit_is_order_dependent_and_never_reuses_a_leg() -> None:
    # Source 1 claims the first valid partner (2) even though 3 is the same day;
    # 3 is then left for the later source 4.
    txs = [
        _tx(1, "-100.00", 3, ACCOUNT_A),
        _tx(2, "100.00", 1, ACCOUNT_B),
        _tx(3, "100.00", 3, 3),
        _tx(4, "-100.00", 3, ACCOUNT_A),
    ]
    result = detect_transfers(txs)

    pairs = [(g.outgoing.id, g.incoming.id) for g in result.groups]
    assert pairs == [(1, 2), (4, 3)]
    legs = _legs(result)
    assert len(legs) == len(set(legs))
    for g in result.groups:
        assert g.outgoing.amount < 0 < g.incoming.amount
        assert g.outgoing.account_id != g.incoming.account_id


def test_reviewed_deleted_and_linked_transactions() -> None:
    txs = [
        _tx(1, "-5.00", 1, ACCOUNT_A, is_reviewed=True),
        _tx(2, "-6.00", 1, ACCOUNT_A, is_deleted=True),
        _tx(3, "-7.00", 1, ACCOUNT_A, transfer_id=99),
        _tx(4, "7.00", 1, ACCOUNT_B, transfer_id=99),
    ]
    result = detect_transfers(txs)
    assert result.groups == ()
    assert result.unmatched == ()

    linked = detect_transfers(txs, include_linked=True)
    assert [(g.outgoing.id, g.incoming.id) for g in linked.groups] == [(3, 4)]


def test_unmatched_items_carry_indicators_and_destination_guess() -> None:
    pool = [
        _tx(1, "-200.00", 1, ACCOUNT_A, "Internal transfer to Savings"),
        _tx(2, "12.34", 20, ACCOUNT_B, "Interest", category_id=5),
    ]
    result = detect_transfers(pool)
    first = next(u for u in result.unmatched if u.transaction.id == 1)

    assert first.indicators == (
        "Contains 'transfer' keyword",
        "No category assigned",
        "Round dollar amount",
    )
    assert first.suggested_account_id == ACCOUNT_B
    assert first.suggested_account_name == "Savings"
    assert first.transfer_likelihood == 0.95


def test_single_transfer_likelihood_components() -> None:
    plain = _tx(1, "-3.50", 1, ACCOUNT_A, "Coffee", category_id=1)
    assert single_transfer_likelihood(plain) == 0.0
    assert transfer_indicators(plain) == []


def test_format_date_range_orders_dates() -> None:
    assert format_date_range(date(2024, 7, 3), date(2024, 7, 1)) == "Jul 01 - Jul 03, 2024"
