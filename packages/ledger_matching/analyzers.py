"""Independent evidence analyzers for the categorization pipeline.

Each analyzer is a plain function ``(AnalysisInput) -> list[PatternSuggestion]``
registered under an ``AnalyzerKind``. They read the same immutable snapshot and
never see one another's output, so ``run_analyzers`` fans them out on a
bounded thread pool and gathers per-kind outcomes. A failing analyzer is
logged and reported in its ``AnalyzerOutcome``; the others still count.

Public API
----------
- ``AnalysisInput``
- ``analyze_keywords``, ``analyze_merchants``, ``analyze_amount_recurrence``,
  ``analyze_date_recurrence``, ``analyze_remote``
- ``LOCAL_ANALYZERS``: the four local analyzers by kind
- ``AnalyzerOutcome`` / ``run_analyzers``
"""

from __future__ import annotations

import re
import time
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from statistics import fmean
from typing import TypeAlias

from .logging_setup import get_logger
from .models import (
    AnalyzerKind,
    CategorizationRule,
    Category,
    PatternSuggestion,
    Transaction,
)
from .normalizers import extract_keywords, main_keyword, normalize_description
from .pmap import p_map
from .remote import RemoteCategorizer, RemoteCategorizationFailed, categorize_with_timeout

_logger = get_logger("ledger_matching.analyzers")

MIN_KEYWORD_OCCURRENCES = 3
MIN_KEYWORD_CONFIDENCE = 0.6
MERCHANT_CONFIDENCE = 0.85
MIN_MERCHANT_MATCHES = 2
MIN_GROUP_SIZE = 3
MIN_CATEGORIZED = 2
AMOUNT_CONSISTENCY = 0.8
AMOUNT_CONFIDENCE_SCALE = 0.9
DATE_CONSISTENCY = 0.75
DATE_CONFIDENCE_SCALE = 0.8
MAX_INTERVAL_DAYS = 90


@dataclass(frozen=True, slots=True)
class MerchantRule:
    pattern: str
    regex: re.Pattern[str]
    category_name: str


def _merchant(pattern: str, expr: str, category_name: str) -> MerchantRule:
    return MerchantRule(pattern, re.compile(expr, re.IGNORECASE), category_name)


MERCHANT_RULES: tuple[MerchantRule, ...] = (
    _merchant("ATM", r"\bATM\b", "Cash & ATM"),
    _merchant("STARBUCKS", r"\bSTARBUCKS\b", "Food & Dining"),
    _merchant("NETFLIX", r"\bNETFLIX\b", "Entertainment"),
    _merchant("GROCERY", r"\b(GROCERY|SUPERMARKET|GROCERIES)\b", "Groceries"),
    _merchant("GAS", r"\b(GAS|FUEL|PETROL)\b", "Transportation"),
    _merchant("AMAZON", r"\bAMAZON\b", "Shopping"),
    _merchant("PAYPAL", r"\bPAYPAL\b", "Transfer"),
)


@dataclass(frozen=True, slots=True)
class AnalysisInput:
    transactions: tuple[Transaction, ...]
    categories: tuple[Category, ...]
    existing_rules: tuple[CategorizationRule, ...] = ()

    @classmethod
    def build(
        cls,
        transactions: Iterable[Transaction],
        categories: Iterable[Category],
        existing_rules: Iterable[CategorizationRule] = (),
    ) -> AnalysisInput:
        return cls(tuple(transactions), tuple(categories), tuple(existing_rules))

    def category(self, category_id: int) -> Category | None:
        for c in self.categories:
            if c.id == category_id:
                return c
        return None

    def category_by_name(self, name: str) -> Category | None:
        wanted = name.casefold()
        for c in self.categories:
            if c.name.casefold() == wanted:
                return c
        return None

    def has_rule(self, pattern: str, category_id: int) -> bool:
        wanted = pattern.casefold()
        return any(
            r.is_active and r.category_id == category_id and r.pattern.casefold() == wanted
            for r in self.existing_rules
        )

    def described(self) -> list[Transaction]:
        return [t for t in self.transactions if t.description and t.description.strip()]


def _dominant_category(txs: Sequence[Transaction]) -> tuple[int, int] | None:
    """Return ``(category_id, count)`` of the most common category; first seen wins ties."""

    counts: dict[int, int] = {}
    for t in txs:
        if t.category_id is not None:
            counts[t.category_id] = counts.get(t.category_id, 0) + 1
    if not counts:
        return None
    return max(counts.items(), key=lambda kv: kv[1])


def _ids(txs: Iterable[Transaction]) -> tuple[int, ...]:
    return tuple(t.id for t in txs)


def _uncategorized_ids(txs: Iterable[Transaction]) -> tuple[int, ...]:
    return tuple(t.id for t in txs if t.category_id is None)


# ---- Local analyzers --------------------------------------------------------


def analyze_keywords(data: AnalysisInput) -> list[PatternSuggestion]:
    """Suggest keyword rules from tokens that keep landing in one category."""

    groups: dict[str, list[Transaction]] = defaultdict(list)
    for t in data.described():
        for kw in extract_keywords(t.description):
            groups[kw].append(t)

    out: list[PatternSuggestion] = []
    for kw, txs in groups.items():
        if len(txs) < MIN_KEYWORD_OCCURRENCES:
            continue
        dominant = _dominant_category(txs)
        if dominant is None:
            continue
        category_id, count = dominant
        confidence = count / len(txs)
        if confidence < MIN_KEYWORD_CONFIDENCE or count < MIN_KEYWORD_OCCURRENCES:
            continue
        category = data.category(category_id)
        if category is None:
            continue
        out.append(
            PatternSuggestion(
                kind=AnalyzerKind.KEYWORD,
                pattern=kw,
                category_id=category_id,
                category_name=category.name,
                confidence=confidence,
                reasoning=(
                    f"Found '{kw}' in {count} out of {len(txs)} transactions, "
                    f"consistently categorized as {category.name}"
                ),
                matched_transaction_ids=_ids(t for t in txs if t.category_id == category_id),
                target_transaction_ids=_uncategorized_ids(txs),
            )
        )
    return out


def analyze_merchants(data: AnalysisInput) -> list[PatternSuggestion]:
    out: list[PatternSuggestion] = []
    described = data.described()
    for rule in MERCHANT_RULES:
        category = data.category_by_name(rule.category_name)
        if category is None:
            continue
        matches = [t for t in described if rule.regex.search(t.description)]
        if len(matches) < MIN_MERCHANT_MATCHES:
            continue
        if data.has_rule(rule.pattern, category.id):
            continue
        out.append(
            PatternSuggestion(
                kind=AnalyzerKind.MERCHANT_PATTERN,
                pattern=rule.pattern,
                category_id=category.id,
                category_name=category.name,
                confidence=MERCHANT_CONFIDENCE,
                reasoning=(
                    f"Detected recurring '{rule.pattern}' transactions suitable for "
                    f"{category.name} category"
                ),
                matched_transaction_ids=_ids(matches),
                target_transaction_ids=_uncategorized_ids(matches),
            )
        )
    return out


def _group_by_description(txs: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    groups: dict[str, list[Transaction]] = defaultdict(list)
    for t in txs:
        groups[normalize_description(t.description)].append(t)
    return {k: v for k, v in groups.items() if len(v) >= MIN_GROUP_SIZE}


def _consistency(txs: Sequence[Transaction]) -> tuple[int, float] | None:
    categorized = [t for t in txs if t.category_id is not None]
    if len(categorized) < MIN_CATEGORIZED:
        return None
    dominant = _dominant_category(categorized)
    if dominant is None:
        return None
    return dominant[0], dominant[1] / len(categorized)


def analyze_amount_recurrence(data: AnalysisInput) -> list[PatternSuggestion]:
    """Same amount and same normalized description, at least three times."""

    by_amount: dict[Decimal, list[Transaction]] = defaultdict(list)
    for t in data.described():
        by_amount[abs(t.amount)].append(t)

    out: list[PatternSuggestion] = []
    for amount, txs in by_amount.items():
        if len(txs) < MIN_GROUP_SIZE:
            continue
        for normalized, group in _group_by_description(txs).items():
            found = _consistency(group)
            if found is None or found[1] < AMOUNT_CONSISTENCY:
                continue
            category_id, consistency = found
            category = data.category(category_id)
            if category is None:
                continue
            pattern = main_keyword(normalized)
            out.append(
                PatternSuggestion(
                    kind=AnalyzerKind.AMOUNT_RECURRENCE,
                    pattern=pattern,
                    category_id=category_id,
                    category_name=category.name,
                    confidence=consistency * AMOUNT_CONFIDENCE_SCALE,
                    reasoning=(
                        f"Found recurring ${amount:.2f} payments to '{pattern}' "
                        f"consistently categorized as {category.name}"
                    ),
                    matched_transaction_ids=_ids(group),
                    target_transaction_ids=_uncategorized_ids(group),
                )
            )
    return out


def _cadence(txs: Sequence[Transaction]) -> str | None:
    intervals = [
        d
        for d in ((b.date - a.date).days for a, b in zip(txs, txs[1:], strict=False))
        if 0 < d <= MAX_INTERVAL_DAYS
    ]
    if len(intervals) < 2:
        return None
    avg = fmean(intervals)
    if abs(avg - 30) <= 5:
        return "monthly"
    if abs(avg - 7) <= 2:
        return "weekly"
    return None


def analyze_date_recurrence(data: AnalysisInput) -> list[PatternSuggestion]:
    out: list[PatternSuggestion] = []
    for normalized, group in _group_by_description(data.described()).items():
        ordered = sorted(group, key=lambda t: t.date)
        cadence = _cadence(ordered)
        if cadence is None:
            continue
        found = _consistency(ordered)
        if found is None or found[1] < DATE_CONSISTENCY:
            continue
        category_id, consistency = found
        category = data.category(category_id)
        if category is None:
            continue
        pattern = main_keyword(normalized)
        out.append(
            PatternSuggestion(
                kind=AnalyzerKind.DATE_RECURRENCE,
                pattern=pattern,
                category_id=category_id,
                category_name=category.name,
                confidence=consistency * DATE_CONFIDENCE_SCALE,
                reasoning=(
                    f"Found {cadence} recurring payments to '{pattern}' "
                    f"consistently categorized as {category.name}"
                ),
                matched_transaction_ids=_ids(ordered),
                target_transaction_ids=_uncategorized_ids(ordered),
            )
        )
    return out


# ---- Remote analyzer --------------------------------------------------------


def analyze_remote(
    data: AnalysisInput,
    *,
    categorizer: RemoteCategorizer,
    timeout_sec: float,
) -> list[PatternSuggestion]:
    """Turn remote per-transaction recommendations into single-transaction suggestions.

    Only uncategorized transactions are sent. A failed remote call raises
    ``RemoteCategorizationFailed`` so the runner reports it instead of
    mistaking it for "no suggestions".
    """

    pending = [t for t in data.described() if t.category_id is None]
    if not pending:
        return []
    result = categorize_with_timeout(
        categorizer, pending, data.categories, timeout_sec=timeout_sec
    )
    if not result.success:
        raise RemoteCategorizationFailed("; ".join(result.errors) or "remote categorization failed")

    by_id = {t.id: t for t in pending}
    out: list[PatternSuggestion] = []
    for item in result.categorizations:
        tx = by_id.get(item.transaction_id)
        best = item.recommended()
        if tx is None or best is None:
            continue
        category = data.category(best.category_id)
        if category is None:
            _logger.warning(
                "analyze_remote:unknown_category transaction_id=%d category_id=%d",
                item.transaction_id,
                best.category_id,
            )
            continue
        out.append(
            PatternSuggestion(
                kind=AnalyzerKind.REMOTE,
                pattern=normalize_description(tx.description),
                category_id=category.id,
                category_name=category.name,
                confidence=best.confidence,
                reasoning=best.reasoning,
                matched_transaction_ids=(tx.id,),
                target_transaction_ids=(tx.id,),
            )
        )
    return out


# ---- Dispatch ---------------------------------------------------------------

Analyzer: TypeAlias = Callable[[AnalysisInput], list[PatternSuggestion]]

LOCAL_ANALYZERS: dict[AnalyzerKind, Analyzer] = {
    AnalyzerKind.KEYWORD: analyze_keywords,
    AnalyzerKind.MERCHANT_PATTERN: analyze_merchants,
    AnalyzerKind.AMOUNT_RECURRENCE: analyze_amount_recurrence,
    AnalyzerKind.DATE_RECURRENCE: analyze_date_recurrence,
}


@dataclass(frozen=True, slots=True)
class AnalyzerOutcome:
    kind: AnalyzerKind
    suggestions: tuple[PatternSuggestion, ...] = ()
    error: str | None = None
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def build_registry(
    *,
    remote: RemoteCategorizer | None = None,
    remote_timeout_sec: float = 240.0,
) -> dict[AnalyzerKind, Analyzer]:
    registry = dict(LOCAL_ANALYZERS)
    if remote is not None:
        registry[AnalyzerKind.REMOTE] = partial(
            analyze_remote, categorizer=remote, timeout_sec=remote_timeout_sec
        )
    return registry


def run_analyzers(
    data: AnalysisInput,
    registry: dict[AnalyzerKind, Analyzer] | None = None,
    *,
    concurrency: int = 4,
) -> list[AnalyzerOutcome]:
    """Run every registered analyzer over ``data``; outcomes follow registry order."""

    analyzers = registry if registry is not None else LOCAL_ANALYZERS

    def _run(kind: AnalyzerKind) -> AnalyzerOutcome:
        t0 = time.perf_counter()
        try:
            found = analyzers[kind](data)
        except Exception as e:  # noqa: BLE001
            dt_ms = (time.perf_counter() - t0) * 1000.0
            _logger.error(
                "run_analyzers:analyzer_failed kind=%s latency_ms=%.2f error=%s: %s",
                kind,
                dt_ms,
                e.__class__.__name__,
                e,
            )
            return AnalyzerOutcome(
                kind=kind, error=f"{e.__class__.__name__}: {e}", latency_ms=dt_ms
            )
        dt_ms = (time.perf_counter() - t0) * 1000.0
        _logger.info(
            "run_analyzers:analyzer_done kind=%s suggestions=%d latency_ms=%.2f",
            kind,
            len(found),
            dt_ms,
        )
        return AnalyzerOutcome(kind=kind, suggestions=tuple(found), latency_ms=dt_ms)

    return p_map(list(analyzers), _run, concurrency=concurrency)


__all__ = [
    "MERCHANT_RULES",
    "MerchantRule",
    "AnalysisInput",
    "analyze_keywords",
    "analyze_merchants",
    "analyze_amount_recurrence",
    "analyze_date_recurrence",
    "analyze_remote",
    "LOCAL_ANALYZERS",
    "AnalyzerOutcome",
    "build_registry",
    "run_analyzers",
]
