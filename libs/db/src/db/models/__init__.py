"""Shared SQLAlchemy models registry for the workspace database.

Holds the ledger models used by ``ledger_matching``.
"""

from .ledger import (
    Base,
    LmAccount,
    LmAccountGrant,
    LmCategorizationCandidate,
    LmCategorizationRule,
    LmCategory,
    LmReconciliation,
    LmReconciliationItem,
    LmTransaction,
)

__all__ = [
    "Base",
    "LmAccount",
    "LmAccountGrant",
    "LmCategory",
    "LmCategorizationRule",
    "LmTransaction",
    "LmCategorizationCandidate",
    "LmReconciliation",
    "LmReconciliationItem",
]
