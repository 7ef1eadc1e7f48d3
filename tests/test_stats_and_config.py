from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledger_matching.config import EngineSettings
from ledger_matching.models import Transaction
from ledger_matching.stats import category_stats, spending_by_category

GROCERIES = 1
FUEL = 2


def _tx(tid: int, amount: str, category_id: int | None, **extra) -> Transaction:
    return Transaction(
        id=tid,
        amount=Decimal(amount),
        date=date(2024, 7, 3),
        description="",
        account_id=1,
        category_id=category_id,
        **extra,
    )


def test_category_stats_uses_absolute_amounts() -> None:
    txs = [_tx(1, "-85.50", GROCERIES), _tx(2, "-120.25", GROCERIES), _tx(3, "-9.00", FUEL)]

    stats = category_stats(txs, GROCERIES)

    assert stats.transaction_count == 2
    assert stats.total_amount == Decimal("205.75")
    assert stats.average_amount == Decimal("102.875")


def test_category_stats_for_empty_category() -> None:
    stats = category_stats([_tx(1, "-1.00", FUEL)], GROCERIES)
    assert (stats.transaction_count, stats.total_amount, stats.average_amount) == (
        0,
        Decimal(0),
        Decimal(0),
    )


def test_spending_by_category_orders_by_total_with_uncategorized_last() -> None:
    txs = [
        _tx(1, "-500.00", None),
        _tx(2, "-10.00", FUEL),
        _tx(3, "-85.50", GROCERIES),
        _tx(4, "-120.25", GROCERIES),
        _tx(5, "-999.00", GROCERIES, is_deleted=True),
    ]
    got = spending_by_category(txs)
    assert [s.category_id for s in got] == [GROCERIES, FUEL, None]
    assert got[0].total_amount == Decimal("205.75")


# ---- settings ---------------------------------------------------------------


def test_settings_defaults() -> None:
    s = EngineSettings.from_env({})
    assert s.auto_apply_threshold == 0.95
    assert s.approval_threshold == 0.95
    assert s.max_suggestions == 10
    assert s.min_confidence == 0.6
    assert s.remote_timeout_sec == 240.0


def test_settings_env_overrides_and_blank_values() -> None:
    s = EngineSettings.from_env(
        {
            "LEDGER_MATCHING_MAX_SUGGESTIONS": "5",
            "LEDGER_MATCHING_MIN_CONFIDENCE": " 0.7 ",
            "LEDGER_MATCHING_REMOTE_MODEL": "   ",
        }
    )
    assert s.max_suggestions == 5
    assert s.min_confidence == 0.7
    assert s.remote_model == "gpt-5"


def test_settings_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_MATCHING_APPROVAL_THRESHOLD", "0.9")
    assert EngineSettings.from_env().approval_threshold == 0.9


@pytest.mark.parametrize(
    ("env", "message"),
    [
        ({"LEDGER_MATCHING_MAX_SUGGESTIONS": "ten"}, "LEDGER_MATCHING_MAX_SUGGESTIONS"),
        ({"LEDGER_MATCHING_AUTO_APPLY_THRESHOLD": "1.5"}, "auto_apply_threshold"),
        ({"LEDGER_MATCHING_REMOTE_TIMEOUT_SEC": "0"}, "remote_timeout_sec"),
    ],
)
def test_settings_reject_invalid_values(env: dict[str, str], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        EngineSettings.from_env(env)
