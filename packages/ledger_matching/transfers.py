"""Greedy detection of internal transfers between a user's accounts.

Two transactions pair when they sit in different accounts, carry exactly the
same absolute amount, point in opposite directions and fall within three days
of each other. Sources are visited in input order and each takes its first
valid partner that is still free, so the result is order dependent and not
globally optimal: with three or more same-amount transactions in one window
an earlier source may claim a partner a later one would have fit better.

The weighted ``scoring.transfer_likelihood`` is attached to every group as
``review_score`` for a human reviewer; it never influences which legs pair.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date

from .logging_setup import get_logger
from .models import (
    Transaction,
    TransferDetectionResult,
    TransferGroup,
    UnmatchedTransfer,
)
from .scoring import transfer_likelihood

_logger = get_logger("ledger_matching.transfers")

MAX_DAYS_APART = 3
ROUND_AMOUNT_MINIMUM = 10

REASON_KEYWORDS: tuple[str, ...] = ("transfer", "internal", "between", "moved")
INDICATOR_KEYWORDS: tuple[str, ...] = (
    "transfer",
    "internal",
    "between",
    "moved",
    "deposit",
    "withdrawal",
)
LIKELIHOOD_KEYWORDS: tuple[str, ...] = (
    "transfer",
    "moved",
    "internal",
    "between",
    "from",
    "to",
    "deposit",
    "withdrawal",
)


def format_date_range(d1: date, d2: date) -> str:
    """``"Jul 01, 2024"`` for one day, else ``"Jul 01 - Jul 03, 2024"``."""

    if d1 == d2:
        return d1.strftime("%b %d, %Y")
    start, end = sorted((d1, d2))
    return f"{start.strftime('%b %d')} - {end.strftime('%b %d, %Y')}"


def match_reasons(source: Transaction, candidate: Transaction) -> list[str]:
    reasons: list[str] = []
    if abs(source.amount) == abs(candidate.amount):
        reasons.append("Exact amount match")
    days = abs((candidate.date - source.date).days)
    if days == 0:
        reasons.append("Same day transactions")
    elif days == 1:
        reasons.append("Consecutive day transactions")
    elif days <= MAX_DAYS_APART:
        reasons.append("Within 3 days")
    descs = ((source.description or "").lower(), (candidate.description or "").lower())
    if any(k in d for k in REASON_KEYWORDS for d in descs):
        reasons.append("Contains transfer keywords")
    return reasons


def _combined_text(tx: Transaction) -> str:
    return f"{(tx.description or '').lower()} {(tx.user_description or '').lower()}"


def _is_round(tx: Transaction) -> bool:
    amt = abs(tx.amount)
    return amt == amt.to_integral_value() and amt >= ROUND_AMOUNT_MINIMUM


def transfer_indicators(tx: Transaction) -> list[str]:
    """Reasons a lone transaction might still be one leg of a transfer."""

    out: list[str] = []
    text = _combined_text(tx)
    for kw in INDICATOR_KEYWORDS:
        if kw in text:
            out.append(f"Contains '{kw}' keyword")
            break
    if tx.category_id is None:
        out.append("No category assigned")
    if _is_round(tx):
        out.append("Round dollar amount")
    return out


def single_transfer_likelihood(tx: Transaction) -> float:
    """Heuristic in ``[0, 1]`` for one unpaired transaction.

    Keywords contribute 0.15 each up to 0.5, a round amount 0.2, a missing
    category 0.15 and an amount of at least 100 another 0.15.
    """

    text = _combined_text(tx)
    hits = sum(1 for kw in LIKELIHOOD_KEYWORDS if kw in text)
    score = min(0.5, hits * 0.15)
    if _is_round(tx):
        score += 0.2
    if tx.category_id is None:
        score += 0.15
    if abs(tx.amount) >= 100:
        score += 0.15
    return min(1.0, score)


def suggest_destination_account(
    tx: Transaction, pool: Sequence[Transaction]
) -> tuple[int, str] | None:
    """First other account whose name appears in ``tx``'s description."""

    text = (tx.description or "").lower()
    seen: dict[int, str] = {}
    for other in pool:
        if other.account_id != tx.account_id and other.account_id not in seen:
            seen[other.account_id] = other.account_name
    for account_id, name in seen.items():
        if name and name.strip() and name.lower() in text:
            return account_id, name
    return None


def _orient(source: Transaction, candidate: Transaction) -> tuple[Transaction, Transaction] | None:
    if source.amount < 0 <= candidate.amount:
        return source, candidate
    if candidate.amount < 0 <= source.amount:
        return candidate, source
    return None


def detect_transfers(
    transactions: Iterable[Transaction],
    *,
    include_linked: bool = False,
) -> TransferDetectionResult:
    """Pair transfer legs first-fit and list the rest for manual review.

    Deleted transactions are ignored, as are ones already linked through
    ``transfer_id`` unless ``include_linked`` is set. Unpaired transactions
    that are not yet reviewed come back as ``UnmatchedTransfer`` items.
    """

    pool = [
        t
        for t in transactions
        if not t.is_deleted and (include_linked or t.transfer_id is None)
    ]
    processed: set[int] = set()
    groups: list[TransferGroup] = []

    for source in pool:
        if source.id in processed:
            continue
        src_abs = abs(source.amount)
        for cand in pool:
            if (
                cand.id == source.id
                or cand.account_id == source.account_id
                or abs(cand.amount) != src_abs
                or abs((cand.date - source.date).days) > MAX_DAYS_APART
            ):
                continue
            legs = _orient(source, cand)
            if legs is None or cand.id in processed:
                continue
            outgoing, incoming = legs
            groups.append(
                TransferGroup(
                    outgoing=outgoing,
                    incoming=incoming,
                    amount=src_abs,
                    confidence=1.0,
                    review_score=round(transfer_likelihood(outgoing, incoming), 4),
                    date_range=format_date_range(source.date, cand.date),
                    match_reasons=tuple(match_reasons(source, cand)),
                )
            )
            processed.update((source.id, cand.id))
            break

    unmatched: list[UnmatchedTransfer] = []
    for tx in pool:
        if tx.id in processed or tx.is_reviewed:
            continue
        dest = suggest_destination_account(tx, pool)
        unmatched.append(
            UnmatchedTransfer(
                transaction=tx,
                indicators=tuple(transfer_indicators(tx)),
                transfer_likelihood=round(single_transfer_likelihood(tx), 4),
                suggested_account_id=dest[0] if dest else None,
                suggested_account_name=dest[1] if dest else None,
            )
        )

    _logger.info(
        "detect_transfers:done transactions=%d groups=%d unmatched=%d",
        len(pool),
        len(groups),
        len(unmatched),
    )
    return TransferDetectionResult(groups=tuple(groups), unmatched=tuple(unmatched))


__all__ = [
    "MAX_DAYS_APART",
    "format_date_range",
    "match_reasons",
    "transfer_indicators",
    "single_transfer_likelihood",
    "suggest_destination_account",
    "detect_transfers",
]
