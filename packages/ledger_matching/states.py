"""Explicit state machines for candidates and reconciliation approvals.

Candidates move ``Pending -> Applied`` or ``Pending -> Rejected`` and never
leave a terminal state. Reconciliation items move ``Unapproved -> Approved``
once. Every mutation in the lifecycle and reconciliation modules goes through
``ensure_transition`` so illegal moves fail before any write happens.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TypeAlias

from .errors import InvalidTransitionError
from .models import CandidateStatus, ReconciliationItem


class ApprovalStatus(StrEnum):
    UNAPPROVED = "Unapproved"
    APPROVED = "Approved"


_State: TypeAlias = CandidateStatus | ApprovalStatus

CANDIDATE_TRANSITIONS: dict[CandidateStatus, frozenset[CandidateStatus]] = {
    CandidateStatus.PENDING: frozenset({CandidateStatus.APPLIED, CandidateStatus.REJECTED}),
    CandidateStatus.APPLIED: frozenset(),
    CandidateStatus.REJECTED: frozenset(),
}

APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.UNAPPROVED: frozenset({ApprovalStatus.APPROVED}),
    ApprovalStatus.APPROVED: frozenset(),
}


def can_transition(current: _State, target: _State) -> bool:
    table: dict = (
        CANDIDATE_TRANSITIONS if isinstance(current, CandidateStatus) else APPROVAL_TRANSITIONS
    )
    return target in table.get(current, frozenset())


def ensure_transition(current: _State, target: _State) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is allowed."""

    if type(current) is not type(target) or not can_transition(current, target):
        machine = "candidate" if isinstance(current, CandidateStatus) else "approval"
        raise InvalidTransitionError(machine, str(current), str(target))


def approval_status(item: ReconciliationItem) -> ApprovalStatus:
    return ApprovalStatus.APPROVED if item.is_approved else ApprovalStatus.UNAPPROVED


__all__ = [
    "ApprovalStatus",
    "CANDIDATE_TRANSITIONS",
    "APPROVAL_TRANSITIONS",
    "can_transition",
    "ensure_transition",
    "approval_status",
]
