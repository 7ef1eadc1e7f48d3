"""Candidate lifecycle: create, apply, reject, and their batch forms.

This is the only place a transaction's category changes. Candidates are never
deleted; ``apply`` and ``reject`` move them through the state machine in
``states`` and stamp who did it and when. Each single-item operation runs in
its own ``store.atomic()`` unit, so a batch that fails on one id keeps the
items already committed.

Public API
----------
- ``CandidateLifecycleManager``
    - ``create_candidates(candidates)``
    - ``apply(candidate_id, actor)`` / ``reject(candidate_id, actor)``
    - ``apply_batch(ids, actor)`` / ``reject_batch(ids, actor)``
    - ``auto_apply(candidates, actor, threshold=0.95)``
    - ``stats(transaction_ids=None)``
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError

from .errors import (
    CandidateConflictError,
    CandidateNotFoundError,
    LedgerMatchingError,
    TransactionNotFoundError,
)
from .logging_setup import get_logger
from .models import (
    AutoApplyResult,
    BatchCandidateResult,
    CandidateStats,
    CandidateStatus,
    CategorizationCandidate,
    CategorizationMethod,
)
from .states import ensure_transition
from .store import LedgerStore

_logger = get_logger("ledger_matching.lifecycle")

DEFAULT_AUTO_APPLY_THRESHOLD = 0.95


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CandidateLifecycleManager:
    def __init__(self, store: LedgerStore, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    # ---- Creation ------------------------------------------------------------

    def create_candidates(
        self, candidates: Iterable[CategorizationCandidate]
    ) -> list[CategorizationCandidate]:
        """Persist new Pending candidates, skipping ones that add nothing.

        Skipped: candidates whose transaction is missing or already has a
        category, and exact duplicates (same transaction, category and
        method) of a Pending candidate in the store or earlier in the batch.
        """

        incoming = list(candidates)
        if not incoming:
            return []

        with self._store.atomic():
            tx_ids = {c.transaction_id for c in incoming}
            seen = {
                c.dedup_key
                for c in self._store.list_candidates(transaction_ids=tx_ids, pending_only=True)
            }
            categorized = 0
            duplicates = 0
            keep: list[CategorizationCandidate] = []
            for c in incoming:
                tx = self._store.get_transaction(c.transaction_id)
                if tx is None or tx.is_categorized:
                    categorized += 1
                    continue
                if c.dedup_key in seen:
                    duplicates += 1
                    continue
                seen.add(c.dedup_key)
                keep.append(replace(c, status=CandidateStatus.PENDING, created_at=self._clock()))
            saved = self._store.add_candidates(keep) if keep else []

        if categorized or duplicates:
            _logger.info(
                "create_candidates:filtered incoming=%d categorized_or_missing=%d duplicates=%d",
                len(incoming),
                categorized,
                duplicates,
            )
        _logger.info("create_candidates:done saved=%d", len(saved))
        return saved

    # ---- Single-item transitions ---------------------------------------------

    def _load(self, candidate_id: int) -> CategorizationCandidate:
        cand = self._store.get_candidate(candidate_id)
        if cand is None:
            raise CandidateNotFoundError(candidate_id)
        return cand

    def apply(self, candidate_id: int, actor: str) -> CategorizationCandidate:
        """Apply a Pending candidate to its transaction.

        Raises ``CandidateNotFoundError``, ``InvalidTransitionError`` (not
        Pending), ``TransactionNotFoundError`` or ``CandidateConflictError``
        (a sibling candidate was already applied). Nothing is written when
        any of these is raised.
        """

        with self._store.atomic():
            cand = self._load(candidate_id)
            ensure_transition(cand.status, CandidateStatus.APPLIED)
            tx = self._store.get_transaction(cand.transaction_id)
            if tx is None:
                raise TransactionNotFoundError(cand.transaction_id)
            for sibling in self._store.list_candidates(transaction_ids=[tx.id]):
                if sibling.status == CandidateStatus.APPLIED and sibling.id != cand.id:
                    raise CandidateConflictError(tx.id, sibling.id)

            now = self._clock()
            self._store.save_transaction(
                replace(
                    tx,
                    category_id=cand.category_id,
                    is_auto_categorized=True,
                    auto_categorization_method=cand.method,
                    auto_categorization_confidence=cand.confidence_score,
                    auto_categorized_at=now,
                    updated_by=actor,
                    is_reviewed=True,
                )
            )
            applied = replace(
                cand,
                status=CandidateStatus.APPLIED,
                processed_by=actor,
                applied_at=now,
                applied_by=actor,
            )
            self._store.save_candidate(applied)
        return applied

    def reject(self, candidate_id: int, actor: str) -> CategorizationCandidate:
        with self._store.atomic():
            cand = self._load(candidate_id)
            ensure_transition(cand.status, CandidateStatus.REJECTED)
            now = self._clock()
            rejected = replace(
                cand,
                status=CandidateStatus.REJECTED,
                processed_by=actor,
                rejected_at=now,
                rejected_by=actor,
            )
            self._store.save_candidate(rejected)
        return rejected

    # ---- Batches -------------------------------------------------------------

    def _batch(
        self,
        op_name: str,
        op: Callable[[int, str], CategorizationCandidate],
        candidate_ids: Iterable[int],
        actor: str,
    ) -> BatchCandidateResult:
        ok: list[int] = []
        errors: list[str] = []
        for cid in candidate_ids:
            try:
                op(cid, actor)
            except (LedgerMatchingError, SQLAlchemyError) as e:
                _logger.warning("%s:item_failed candidate_id=%d error=%s", op_name, cid, e)
                errors.append(f"Candidate {cid}: {e}")
                continue
            ok.append(cid)
        _logger.info(
            "%s:done successful=%d failed=%d actor=%s", op_name, len(ok), len(errors), actor
        )
        return BatchCandidateResult(
            successful_count=len(ok),
            failed_count=len(errors),
            errors=tuple(errors),
            processed_ids=tuple(ok),
        )

    def apply_batch(self, candidate_ids: Iterable[int], actor: str) -> BatchCandidateResult:
        return self._batch("apply_batch", self.apply, candidate_ids, actor)

    def reject_batch(self, candidate_ids: Iterable[int], actor: str) -> BatchCandidateResult:
        return self._batch("reject_batch", self.reject, candidate_ids, actor)

    def auto_apply(
        self,
        candidates: Sequence[CategorizationCandidate],
        actor: str,
        threshold: float = DEFAULT_AUTO_APPLY_THRESHOLD,
    ) -> AutoApplyResult:
        """Persist ``candidates`` and immediately apply those meeting ``threshold``.

        Meant for high-precision sources. Candidates below the threshold stay
        Pending for review and are counted in ``remaining_count``.
        """

        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0,1]")
        saved = self.create_candidates(candidates)
        eligible = [c for c in saved if c.confidence_score >= threshold and c.id is not None]

        applied: list[CategorizationCandidate] = []
        errors: list[str] = []
        for c in eligible:
            cid = c.id
            if cid is None:
                continue
            try:
                applied.append(self.apply(cid, actor))
            except (LedgerMatchingError, SQLAlchemyError) as e:
                _logger.warning("auto_apply:item_failed candidate_id=%d error=%s", cid, e)
                errors.append(f"Candidate {cid}: {e}")

        _logger.info(
            "auto_apply:done saved=%d applied=%d threshold=%.2f",
            len(saved),
            len(applied),
            threshold,
        )
        return AutoApplyResult(
            applied_count=len(applied),
            remaining_count=len(saved) - len(applied),
            applied_candidate_ids=tuple(c.id for c in applied if c.id is not None),
            applied_transaction_ids=tuple(c.transaction_id for c in applied),
            errors=tuple(errors),
        )

    # ---- Reporting -----------------------------------------------------------

    def stats(self, transaction_ids: Iterable[int] | None = None) -> CandidateStats:
        cands = self._store.list_candidates(transaction_ids=transaction_ids)
        by_status: dict[CandidateStatus, int] = {}
        by_method: dict[CategorizationMethod, int] = {}
        pending_scores: list[float] = []
        for c in cands:
            by_status[c.status] = by_status.get(c.status, 0) + 1
            by_method[c.method] = by_method.get(c.method, 0) + 1
            if c.status == CandidateStatus.PENDING:
                pending_scores.append(c.confidence_score)
        avg = sum(pending_scores) / len(pending_scores) if pending_scores else 0.0
        return CandidateStats(
            by_status=by_status, by_method=by_method, average_pending_confidence=avg
        )


__all__ = ["CandidateLifecycleManager", "DEFAULT_AUTO_APPLY_THRESHOLD"]
