"""Spending statistics per category.

Totals are absolute: a category holding -85.50 and -120.25 reports 205.75.
Averages are exact ``Decimal`` quotients, not rounded.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from decimal import Decimal

from .models import CategoryStats, Transaction


def _stats(category_id: int | None, txs: list[Transaction]) -> CategoryStats:
    total = sum((abs(t.amount) for t in txs), Decimal(0))
    count = len(txs)
    return CategoryStats(
        category_id=category_id,
        transaction_count=count,
        total_amount=total,
        average_amount=(total / count) if count else Decimal(0),
    )


def category_stats(transactions: Iterable[Transaction], category_id: int) -> CategoryStats:
    return _stats(
        category_id,
        [t for t in transactions if t.category_id == category_id and not t.is_deleted],
    )


def spending_by_category(transactions: Iterable[Transaction]) -> list[CategoryStats]:
    """Stats for every category present, uncategorized last; larger totals first."""

    groups: dict[int | None, list[Transaction]] = defaultdict(list)
    for t in transactions:
        if not t.is_deleted:
            groups[t.category_id].append(t)
    out = [_stats(cid, txs) for cid, txs in groups.items()]
    out.sort(key=lambda s: (s.category_id is None, -s.total_amount))
    return out


__all__ = ["category_stats", "spending_by_category"]
