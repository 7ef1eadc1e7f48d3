"""Storage capabilities the engine consumes.

These are structural ``Protocol`` types; ``persistence.SqlLedgerStore`` is the
SQLAlchemy implementation and tests are free to provide their own. ``atomic``
scopes one unit of work: everything written inside it commits together or
not at all, and separate ``atomic`` blocks are independent.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from contextlib import AbstractContextManager
from typing import Protocol

from .models import (
    Account,
    CategorizationCandidate,
    CategorizationRule,
    Category,
    Reconciliation,
    ReconciliationItem,
    Transaction,
    TransactionFilter,
)


class TransactionLookup(Protocol):
    def list_transactions(self, flt: TransactionFilter) -> list[Transaction]: ...

    def get_transaction(self, transaction_id: int) -> Transaction | None: ...


class CategoryLookup(Protocol):
    def list_categories(self, user_id: str) -> list[Category]: ...


class RuleLookup(Protocol):
    def list_rules(self, user_id: str) -> list[CategorizationRule]: ...


class AccountAccess(Protocol):
    def list_accounts(self, user_id: str) -> list[Account]: ...

    def can_modify_account(self, user_id: str, account_id: int) -> bool: ...


class TransactionWriter(Protocol):
    def save_transaction(self, tx: Transaction) -> None: ...


class CandidateStore(Protocol):
    def add_candidates(
        self, candidates: Sequence[CategorizationCandidate]
    ) -> list[CategorizationCandidate]: ...

    def get_candidate(self, candidate_id: int) -> CategorizationCandidate | None: ...

    def list_candidates(
        self,
        *,
        transaction_ids: Iterable[int] | None = None,
        pending_only: bool = False,
    ) -> list[CategorizationCandidate]: ...

    def save_candidate(self, candidate: CategorizationCandidate) -> None: ...


class ReconciliationStore(Protocol):
    def get_reconciliation(self, reconciliation_id: int) -> Reconciliation | None: ...

    def list_reconciliation_items(self, reconciliation_id: int) -> list[ReconciliationItem]: ...

    def save_reconciliation_item(self, item: ReconciliationItem) -> None: ...


class LedgerStore(
    TransactionLookup,
    CategoryLookup,
    RuleLookup,
    AccountAccess,
    TransactionWriter,
    CandidateStore,
    ReconciliationStore,
    Protocol,
):
    def atomic(self) -> AbstractContextManager[None]: ...


__all__ = [
    "TransactionLookup",
    "CategoryLookup",
    "RuleLookup",
    "AccountAccess",
    "TransactionWriter",
    "CandidateStore",
    "ReconciliationStore",
    "LedgerStore",
]
