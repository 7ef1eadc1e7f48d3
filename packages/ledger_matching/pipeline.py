"""Categorization pipeline: evidence -> suggestions -> candidates.

``generate_candidates`` pools the raw output of every registered analyzer and
drops anything already encoded as an active user rule. ``suggest`` adds the
ranking/dedup stage on top. Both return a ``PipelineRun`` so a failed
analyzer is reported next to the suggestions it did not produce.
``suggestions_to_candidates`` expands accepted suggestions into
per-transaction ``CategorizationCandidate`` objects ready for the lifecycle
manager.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from .analyzers import Analyzer, AnalysisInput, AnalyzerOutcome, run_analyzers
from .logging_setup import get_logger
from .models import (
    AnalyzerKind,
    CategorizationCandidate,
    CategorizationRule,
    Category,
    PatternSuggestion,
    Transaction,
)
from .ranking import rank_and_dedup

_logger = get_logger("ledger_matching.pipeline")


@dataclass(frozen=True, slots=True)
class PipelineRun:
    """Suggestions together with how each analyzer fared.

    A failed analyzer (for example a remote model that timed out) shows up in
    ``failures`` rather than as an empty suggestion list.
    """

    suggestions: tuple[PatternSuggestion, ...]
    outcomes: tuple[AnalyzerOutcome, ...]

    @property
    def failed_kinds(self) -> tuple[AnalyzerKind, ...]:
        return tuple(o.kind for o in self.outcomes if not o.ok)

    @property
    def failures(self) -> dict[AnalyzerKind, str]:
        return {o.kind: o.error or "" for o in self.outcomes if not o.ok}

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)


def run_pipeline(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    existing_rules: Iterable[CategorizationRule] = (),
    *,
    registry: dict[AnalyzerKind, Analyzer] | None = None,
    concurrency: int = 4,
) -> PipelineRun:
    data = AnalysisInput.build(transactions, categories, existing_rules)
    outcomes = run_analyzers(data, registry, concurrency=concurrency)

    pooled: list[PatternSuggestion] = []
    dropped = 0
    for outcome in outcomes:
        for s in outcome.suggestions:
            if data.has_rule(s.pattern, s.category_id):
                dropped += 1
                continue
            pooled.append(s)
    _logger.info(
        "run_pipeline:done transactions=%d suggestions=%d existing_rule_dropped=%d failed=%d",
        len(data.transactions),
        len(pooled),
        dropped,
        sum(1 for o in outcomes if not o.ok),
    )
    return PipelineRun(suggestions=tuple(pooled), outcomes=tuple(outcomes))


def generate_candidates(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    existing_rules: Iterable[CategorizationRule] = (),
    *,
    registry: dict[AnalyzerKind, Analyzer] | None = None,
    concurrency: int = 4,
) -> PipelineRun:
    """Pooled, unranked suggestions plus the per-analyzer outcomes."""

    return run_pipeline(
        transactions, categories, existing_rules, registry=registry, concurrency=concurrency
    )


def suggest(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    existing_rules: Iterable[CategorizationRule] = (),
    *,
    max_suggestions: int = 10,
    min_confidence: float = 0.6,
    registry: dict[AnalyzerKind, Analyzer] | None = None,
    concurrency: int = 4,
) -> PipelineRun:
    run = generate_candidates(
        transactions, categories, existing_rules, registry=registry, concurrency=concurrency
    )
    ranked = rank_and_dedup(list(run.suggestions), max_suggestions, min_confidence)
    return replace(run, suggestions=tuple(ranked))


def suggestions_to_candidates(
    suggestions: Sequence[PatternSuggestion],
    *,
    processed_by: str | None = None,
) -> list[CategorizationCandidate]:
    """One Pending candidate per target transaction; the strongest wins per key.

    Two suggestions of the same method proposing the same category for the
    same transaction collapse into one candidate with the higher confidence.
    """

    best: dict[tuple, CategorizationCandidate] = {}
    for s in suggestions:
        for tx_id in s.target_transaction_ids:
            cand = CategorizationCandidate(
                transaction_id=tx_id,
                category_id=s.category_id,
                method=s.method,
                confidence_score=round(s.confidence, 4),
                reasoning=s.reasoning,
                processed_by=processed_by,
            )
            prev = best.get(cand.dedup_key)
            if prev is None or cand.confidence_score > prev.confidence_score:
                best[cand.dedup_key] = cand
    return list(best.values())


__all__ = [
    "PipelineRun",
    "run_pipeline",
    "generate_candidates",
    "suggest",
    "suggestions_to_candidates",
]
