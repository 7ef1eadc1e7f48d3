"""Pure scoring primitives shared by the transfer and reconciliation code.

Every function here is side-effect free and returns a float in ``[0, 1]``
(except ``levenshtein`` and ``date_window``). Amounts are accepted as
``Decimal``, ``int`` or ``float`` and compared by absolute value.

Public API
----------
- ``amount_score(a, b)``
- ``date_window(amount, same_institution)`` / ``date_score(...)``
- ``description_similarity(a, b)``
- ``same_institution(name_a, name_b)``
- ``transfer_likelihood(outgoing, incoming)``: weighted reviewer score
- ``levenshtein(a, b)`` / ``character_similarity(a, b)``
- ``analyze_match(...)`` / ``match_confidence(...)``: bank-vs-system scoring
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TypeAlias

from .models import Transaction

Amount: TypeAlias = Decimal | int | float

_AMOUNT_TOLERANCE_PCT = 0.005
_AMOUNT_TOLERANCE_MIN = 1.0
_AMOUNT_SCORE_FLOOR = 0.8
_DATE_SCORE_FLOOR = 0.5
_MAX_WINDOW_DAYS = 14.0

TRANSFER_KEYWORDS: tuple[str, ...] = ("transfer", "xfer", "trsf", "internal", "between", "payment")
ACCOUNT_TYPE_KEYWORDS: tuple[str, ...] = ("visa", "go", "savings", "checking", "credit", "debit")
INSTITUTION_MARKERS: tuple[str, ...] = ("ANZ", "WESTPAC", "CBA", "NAB", "BANK", "CREDIT UNION")


def _abs_float(value: Amount) -> float:
    return abs(float(value))


def amount_score(a: Amount, b: Amount) -> float:
    """Score how closely two absolute amounts agree.

    Exact equality scores 1.0. Within the tolerance ``max(0.5% of the larger
    amount, 1.00)`` the score decays exponentially but never below 0.8.
    Anything further apart scores 0.
    """

    x, y = _abs_float(a), _abs_float(b)
    diff = abs(x - y)
    if diff == 0:
        return 1.0
    tolerance = max(max(x, y) * _AMOUNT_TOLERANCE_PCT, _AMOUNT_TOLERANCE_MIN)
    if diff <= tolerance:
        return max(_AMOUNT_SCORE_FLOOR, math.exp(-diff / (tolerance / 2)))
    return 0.0


def date_window(amount: Amount, same_institution: bool) -> float:
    """Days two legs of a transfer may drift apart, widening with the amount."""

    base = 3.0 if same_institution else 5.0
    return min(_MAX_WINDOW_DAYS, base + min(_abs_float(amount) / 1000.0, 9.0))


def date_score(d1: date, d2: date, amount: Amount, same_institution: bool) -> float:
    days = abs((d2 - d1).days)
    if days == 0:
        return 1.0
    window = date_window(amount, same_institution)
    if days <= window:
        return max(_DATE_SCORE_FLOOR, math.exp(-days / (window / 2.0)))
    return 0.0


def description_similarity(a: str | None, b: str | None) -> float:
    """Token-set Jaccard index plus transfer/account keyword bonuses, capped at 1."""

    if not a or not a.strip() or not b or not b.strip():
        return 0.0
    la, lb = a.lower(), b.lower()

    words_a, words_b = set(la.split()), set(lb.split())
    score = len(words_a & words_b) / len(words_a | words_b)

    if any(k in la or k in lb for k in TRANSFER_KEYWORDS):
        score += 0.3
    if any(k in la and k in lb for k in ACCOUNT_TYPE_KEYWORDS):
        score += 0.2
    return min(1.0, score)


def same_institution(name_a: str | None, name_b: str | None) -> bool:
    ua, ub = (name_a or "").upper(), (name_b or "").upper()
    return any(m in ua and m in ub for m in INSTITUTION_MARKERS)


def transfer_likelihood(outgoing: Transaction, incoming: Transaction) -> float:
    """Weighted likelihood that two transactions are one transfer.

    0.4 amount + 0.3 date + 0.2 description + 0.1 institution (1.0 when both
    account names share an institution marker, else 0.5). Shown to reviewers
    only; automatic pairing never consults it.
    """

    same = same_institution(outgoing.account_name, incoming.account_name)
    score = (
        0.4 * amount_score(outgoing.amount, incoming.amount)
        + 0.3 * date_score(outgoing.date, incoming.date, outgoing.amount, same)
        + 0.2 * description_similarity(outgoing.description, incoming.description)
        + 0.1 * (1.0 if same else 0.5)
    )
    return min(1.0, score)


def levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            cur[j] = min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost)
        prev = cur
    return prev[-1]


def character_similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return 1.0 - levenshtein(a, b) / longest


# ---- Bank vs. system matching ----------------------------------------------


def _normalize_for_match(text: str) -> str:
    out = text.lower().replace("&", "and")
    for ch in "-_.,":
        out = out.replace(ch, " ")
    return " ".join(out.split())


def match_description_score(system: str | None, bank: str | None) -> float:
    if not system or not system.strip() or not bank or not bank.strip():
        return 0.0
    n1, n2 = _normalize_for_match(system), _normalize_for_match(bank)
    if n1 == n2:
        return 1.0
    if n1 in n2 or n2 in n1:
        return 0.9
    w1, w2 = n1.split(), n2.split()
    total = max(len(w1), len(w2))
    if total == 0:
        return 0.0
    overlap = len(set(w1) & set(w2)) / total
    return overlap * 0.7 + character_similarity(n1, n2) * 0.3


@dataclass(frozen=True, slots=True)
class MatchAnalysis:
    amount_difference: Decimal
    date_difference_days: int
    description_score: float

    @property
    def amount_match(self) -> bool:
        return self.amount_difference < Decimal("0.01")

    @property
    def date_match(self) -> bool:
        return self.date_difference_days == 0

    @property
    def description_similar(self) -> bool:
        return self.description_score > 0.5


def analyze_match(
    *,
    system_amount: Amount,
    system_date: date,
    system_description: str | None,
    bank_amount: Amount,
    bank_date: date,
    bank_description: str | None,
) -> MatchAnalysis:
    return MatchAnalysis(
        amount_difference=abs(Decimal(str(system_amount)) - Decimal(str(bank_amount))),
        date_difference_days=abs((system_date - bank_date).days),
        description_score=match_description_score(system_description, bank_description),
    )


def _tiered_amount_score(analysis: MatchAnalysis) -> float:
    diff = analysis.amount_difference
    if analysis.amount_match:
        return 1.0
    if diff <= Decimal("0.01"):
        return 0.95
    if diff <= Decimal("1"):
        return 0.8
    if diff <= Decimal("5"):
        return 0.6
    return 0.3


def _tiered_date_score(days: int) -> float:
    if days == 0:
        return 1.0
    if days == 1:
        return 0.9
    if days == 2:
        return 0.8
    if days <= 5:
        return 0.6
    if days <= 10:
        return 0.4
    return 0.1


def match_confidence(analysis: MatchAnalysis) -> float:
    """Confidence that a bank record and a system transaction are the same event.

    Weighted 40/30/30 over amount, date and description tiers, then damped
    when the amount is off by more than 10, the dates by more than a week, or
    the descriptions barely resemble each other.
    """

    confidence = (
        0.4 * _tiered_amount_score(analysis)
        + 0.3 * _tiered_date_score(analysis.date_difference_days)
        + 0.3 * analysis.description_score
    )
    if analysis.amount_difference > Decimal("10"):
        confidence *= 0.7
    if analysis.date_difference_days > 7:
        confidence *= 0.8
    if analysis.description_score < 0.3:
        confidence *= 0.9
    return max(0.0, min(1.0, confidence))


__all__ = [
    "TRANSFER_KEYWORDS",
    "ACCOUNT_TYPE_KEYWORDS",
    "INSTITUTION_MARKERS",
    "amount_score",
    "date_window",
    "date_score",
    "description_similarity",
    "same_institution",
    "transfer_likelihood",
    "levenshtein",
    "character_similarity",
    "match_description_score",
    "MatchAnalysis",
    "analyze_match",
    "match_confidence",
]
