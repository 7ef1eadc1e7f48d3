"""Exception taxonomy for ``ledger_matching``.

Validation failures double as builtin exception types (``ValueError``,
``PermissionError``, ``LookupError``) so hosts can catch them without
importing this module. Batch operations catch ``LedgerMatchingError`` per item
and report it in their result instead of propagating.
"""

from __future__ import annotations


class LedgerMatchingError(Exception):
    """Base class for all engine errors."""


class CandidateNotFoundError(LedgerMatchingError, LookupError):
    def __init__(self, candidate_id: int) -> None:
        super().__init__(f"Candidate {candidate_id} not found")
        self.candidate_id = candidate_id


class TransactionNotFoundError(LedgerMatchingError, LookupError):
    def __init__(self, transaction_id: int) -> None:
        super().__init__(f"Transaction {transaction_id} not found")
        self.transaction_id = transaction_id


class InvalidTransitionError(LedgerMatchingError, ValueError):
    """Raised when a state machine is asked for a transition it does not allow."""

    def __init__(self, machine: str, current: str, target: str) -> None:
        super().__init__(f"{machine}: illegal transition {current} -> {target}")
        self.machine = machine
        self.current = current
        self.target = target


class CandidateConflictError(LedgerMatchingError, ValueError):
    """A transaction already has an applied candidate."""

    def __init__(self, transaction_id: int, applied_candidate_id: int | None) -> None:
        super().__init__(
            f"Transaction {transaction_id} already has applied candidate {applied_candidate_id}"
        )
        self.transaction_id = transaction_id
        self.applied_candidate_id = applied_candidate_id


class ReconciliationNotFoundError(LedgerMatchingError, ValueError):
    def __init__(self, reconciliation_id: int) -> None:
        super().__init__(f"Reconciliation {reconciliation_id} not found")
        self.reconciliation_id = reconciliation_id


class AccountAccessError(LedgerMatchingError, PermissionError):
    def __init__(self, user_id: str, account_id: int) -> None:
        super().__init__(f"User {user_id} cannot modify account {account_id}")
        self.user_id = user_id
        self.account_id = account_id


class RemoteResponseError(LedgerMatchingError, ValueError):
    """Remote categorization payload could not be decoded or validated."""


__all__ = [
    "LedgerMatchingError",
    "CandidateNotFoundError",
    "TransactionNotFoundError",
    "InvalidTransitionError",
    "CandidateConflictError",
    "ReconciliationNotFoundError",
    "AccountAccessError",
    "RemoteResponseError",
]
