"""Public interface for the ``ledger_matching`` package.

Re-exports the engine operations and value types. The SQLAlchemy-backed store
(``ledger_matching.persistence``) and the CLI are imported from their own
modules so that pure-engine consumers do not pull in the ``db`` library.
"""

from .analyzers import build_registry, run_analyzers
from .config import EngineSettings
from .errors import (
    AccountAccessError,
    CandidateConflictError,
    CandidateNotFoundError,
    InvalidTransitionError,
    LedgerMatchingError,
    ReconciliationNotFoundError,
    RemoteResponseError,
    TransactionNotFoundError,
)
from .lifecycle import CandidateLifecycleManager
from .models import (
    BatchCandidateResult,
    BulkApproveResult,
    CandidateStatus,
    CategorizationCandidate,
    CategorizationMethod,
    PatternSuggestion,
    Transaction,
    TransactionStatus,
    TransferDetectionResult,
    TransferGroup,
    UnmatchedTransfer,
)
from .pipeline import (
    PipelineRun,
    generate_candidates,
    run_pipeline,
    suggest,
    suggestions_to_candidates,
)
from .ranking import rank_and_dedup
from .reconciliation import bulk_approve_matches
from .remote import categorize_with_timeout
from .stats import category_stats
from .transfers import detect_transfers

__all__ = [
    # Operations
    "generate_candidates",
    "run_pipeline",
    "suggest",
    "suggestions_to_candidates",
    "rank_and_dedup",
    "run_analyzers",
    "build_registry",
    "detect_transfers",
    "bulk_approve_matches",
    "categorize_with_timeout",
    "category_stats",
    "CandidateLifecycleManager",
    "EngineSettings",
    # Models / types
    "PipelineRun",
    "Transaction",
    "TransactionStatus",
    "CategorizationCandidate",
    "CategorizationMethod",
    "CandidateStatus",
    "PatternSuggestion",
    "TransferGroup",
    "UnmatchedTransfer",
    "TransferDetectionResult",
    "BatchCandidateResult",
    "BulkApproveResult",
    # Errors
    "LedgerMatchingError",
    "CandidateNotFoundError",
    "CandidateConflictError",
    "TransactionNotFoundError",
    "InvalidTransitionError",
    "ReconciliationNotFoundError",
    "AccountAccessError",
    "RemoteResponseError",
]
