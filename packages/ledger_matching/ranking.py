"""Ranking and overlap de-duplication of pooled pattern suggestions."""

from __future__ import annotations

from collections.abc import Iterable

from .models import PatternSuggestion

MAX_OVERLAP = 0.7


def overlap_ratio(a: PatternSuggestion, b: PatternSuggestion) -> float:
    """Shared matched ids over the size of the smaller matched set."""

    smaller = min(len(a.matched_transaction_ids), len(b.matched_transaction_ids))
    if smaller == 0:
        return 0.0
    shared = set(a.matched_transaction_ids) & set(b.matched_transaction_ids)
    return len(shared) / smaller


def rank_and_dedup(
    suggestions: Iterable[PatternSuggestion],
    max_suggestions: int,
    min_confidence: float,
) -> list[PatternSuggestion]:
    """Filter by ``min_confidence``, sort, and greedily drop overlapping suggestions.

    Order is descending ``(confidence, match_count)``; ties keep their pooled
    order. A suggestion is accepted unless it shares more than 70% of the
    smaller matched set with something already accepted. Acceptance is
    sequential because each decision depends on earlier ones.
    """

    if max_suggestions < 1:
        return []
    ranked = sorted(
        (s for s in suggestions if s.confidence >= min_confidence),
        key=lambda s: (s.confidence, s.match_count),
        reverse=True,
    )
    accepted: list[PatternSuggestion] = []
    for s in ranked:
        if any(overlap_ratio(s, kept) > MAX_OVERLAP for kept in accepted):
            continue
        accepted.append(s)
        if len(accepted) >= max_suggestions:
            break
    return accepted


__all__ = ["MAX_OVERLAP", "overlap_ratio", "rank_and_dedup"]
