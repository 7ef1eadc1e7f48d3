"""Data models for the matching and categorization engine.

Value objects are frozen, slotted dataclasses: analyzers and detectors read
them, and the lifecycle manager produces updated copies through
``dataclasses.replace`` rather than mutating shared instances. Enumerations are
``StrEnum`` so their values persist verbatim in the database and in logs.

Public API
----------
- Enums: ``TransactionStatus``, ``CategorizationMethod``, ``CandidateStatus``,
  ``ReconciliationItemType``, ``MatchMethod``, ``AnalyzerKind``
- Entities: ``Transaction``, ``Account``, ``Category``, ``CategorizationRule``,
  ``CategorizationCandidate``, ``Reconciliation``, ``ReconciliationItem``
- Engine outputs: ``PatternSuggestion``, ``TransferGroup``,
  ``UnmatchedTransfer``, ``TransferDetectionResult``
- Operation results: ``BatchCandidateResult``, ``AutoApplyResult``,
  ``BulkApproveResult``, ``CategoryStats``, ``CandidateStats``
- ``TransactionFilter`` for lookups
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TransactionStatus(StrEnum):
    PENDING = "Pending"
    CLEARED = "Cleared"
    RECONCILED = "Reconciled"
    CANCELLED = "Cancelled"


class CategorizationMethod(StrEnum):
    RULE = "Rule"
    LLM = "LLM"
    ML = "ML"
    MERCHANT_PATTERN = "MerchantPattern"
    AMOUNT_RECURRENCE = "AmountRecurrence"
    DATE_RECURRENCE = "DateRecurrence"


class CandidateStatus(StrEnum):
    PENDING = "Pending"
    APPLIED = "Applied"
    REJECTED = "Rejected"


class ReconciliationItemType(StrEnum):
    MATCHED = "Matched"
    UNMATCHED_BANK = "UnmatchedBank"
    UNMATCHED_APP = "UnmatchedApp"


class MatchMethod(StrEnum):
    EXACT = "Exact"
    FUZZY = "Fuzzy"


class AnalyzerKind(StrEnum):
    """Evidence sources feeding the candidate pipeline."""

    KEYWORD = "keyword"
    MERCHANT_PATTERN = "merchant_pattern"
    AMOUNT_RECURRENCE = "amount_recurrence"
    DATE_RECURRENCE = "date_recurrence"
    REMOTE = "remote"


# Candidates inherit their method from the analyzer that produced them.
ANALYZER_METHODS: dict[AnalyzerKind, CategorizationMethod] = {
    AnalyzerKind.KEYWORD: CategorizationMethod.RULE,
    AnalyzerKind.MERCHANT_PATTERN: CategorizationMethod.MERCHANT_PATTERN,
    AnalyzerKind.AMOUNT_RECURRENCE: CategorizationMethod.AMOUNT_RECURRENCE,
    AnalyzerKind.DATE_RECURRENCE: CategorizationMethod.DATE_RECURRENCE,
    AnalyzerKind.REMOTE: CategorizationMethod.LLM,
}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A ledger transaction as seen by the engine.

    ``amount`` is signed: negative is money leaving the account, positive is
    money arriving. ``account_name`` is denormalized from the owning account
    because transfer heuristics compare institution names and look for
    account names inside descriptions.
    """

    id: int
    amount: Decimal
    date: date
    description: str
    account_id: int
    account_name: str = ""
    currency: str = "USD"
    user_description: str | None = None
    category_id: int | None = None
    status: TransactionStatus = TransactionStatus.CLEARED
    external_id: str | None = None
    reference_number: str | None = None
    bank_category: str | None = None
    is_reviewed: bool = False
    transfer_id: int | None = None
    is_deleted: bool = False
    is_auto_categorized: bool = False
    auto_categorization_method: CategorizationMethod | None = None
    auto_categorization_confidence: float | None = None
    auto_categorized_at: datetime | None = None
    updated_by: str | None = None

    @property
    def is_categorized(self) -> bool:
        return self.category_id is not None


@dataclass(frozen=True, slots=True)
class Account:
    id: int
    user_id: str
    name: str
    institution: str | None = None
    currency: str = "USD"


@dataclass(frozen=True, slots=True)
class Category:
    id: int
    name: str
    parent_id: int | None = None
    category_type: str | None = None


@dataclass(frozen=True, slots=True)
class CategorizationRule:
    """A user-defined rule; the engine only reads these to avoid re-suggesting them."""

    id: int
    pattern: str
    category_id: int
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class CategorizationCandidate:
    """One proposed (transaction, category) pairing and its audit trail."""

    transaction_id: int
    category_id: int
    method: CategorizationMethod
    confidence_score: float
    reasoning: str
    status: CandidateStatus = CandidateStatus.PENDING
    id: int | None = None
    processed_by: str | None = None
    created_at: datetime | None = None
    applied_at: datetime | None = None
    applied_by: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError("confidence_score must be within [0,1]")

    @property
    def dedup_key(self) -> tuple[int, int, CategorizationMethod]:
        return (self.transaction_id, self.category_id, self.method)


@dataclass(frozen=True, slots=True)
class Reconciliation:
    id: int
    user_id: str
    account_id: int


@dataclass(frozen=True, slots=True)
class ReconciliationItem:
    """A bank record paired (or not) with a system transaction.

    ``bank_reference_data`` holds the serialized JSON evidence exactly as the
    upstream matcher stored it; it is parsed lazily during approval.
    """

    id: int
    reconciliation_id: int
    item_type: ReconciliationItemType
    transaction_id: int | None = None
    match_confidence: float | None = None
    match_method: MatchMethod | None = None
    bank_reference_data: str | None = None
    is_approved: bool = False
    approved_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class TransactionFilter:
    user_id: str
    start_date: date | None = None
    end_date: date | None = None
    account_id: int | None = None
    is_reviewed: bool | None = None
    include_deleted: bool = False
    include_transfers: bool = True


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PatternSuggestion:
    """A categorization pattern inferred by one analyzer.

    ``matched_transaction_ids`` is the evidence set used for ranking overlap;
    ``target_transaction_ids`` lists the uncategorized transactions in the
    pool the pattern would label, which is what becomes candidates.
    """

    kind: AnalyzerKind
    pattern: str
    category_id: int
    category_name: str
    confidence: float
    reasoning: str
    matched_transaction_ids: tuple[int, ...]
    target_transaction_ids: tuple[int, ...] = ()

    @property
    def method(self) -> CategorizationMethod:
        return ANALYZER_METHODS[self.kind]

    @property
    def match_count(self) -> int:
        return len(self.matched_transaction_ids)


@dataclass(frozen=True, slots=True)
class TransferGroup:
    """Two legs of one transfer: ``outgoing.amount < 0 < incoming.amount``."""

    outgoing: Transaction
    incoming: Transaction
    amount: Decimal
    confidence: float
    review_score: float
    date_range: str
    match_reasons: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class UnmatchedTransfer:
    transaction: Transaction
    indicators: tuple[str, ...]
    transfer_likelihood: float
    suggested_account_id: int | None = None
    suggested_account_name: str | None = None


@dataclass(frozen=True, slots=True)
class TransferDetectionResult:
    groups: tuple[TransferGroup, ...]
    unmatched: tuple[UnmatchedTransfer, ...]

    @property
    def total_groups(self) -> int:
        return len(self.groups)

    @property
    def total_unmatched(self) -> int:
        return len(self.unmatched)


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BatchCandidateResult:
    successful_count: int
    failed_count: int
    errors: tuple[str, ...] = ()
    processed_ids: tuple[int, ...] = ()

    @property
    def success(self) -> bool:
        return self.failed_count == 0


@dataclass(frozen=True, slots=True)
class AutoApplyResult:
    applied_count: int
    remaining_count: int
    applied_candidate_ids: tuple[int, ...] = ()
    applied_transaction_ids: tuple[int, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BulkApproveResult:
    approved_count: int
    enriched_count: int
    skipped_count: int
    errors: tuple[str, ...] = ()

    @property
    def error_count(self) -> int:
        return len(self.errors)


@dataclass(frozen=True, slots=True)
class CategoryStats:
    category_id: int | None
    transaction_count: int
    total_amount: Decimal
    average_amount: Decimal


@dataclass(frozen=True, slots=True)
class CandidateStats:
    by_status: dict[CandidateStatus, int] = field(default_factory=dict)
    by_method: dict[CategorizationMethod, int] = field(default_factory=dict)
    average_pending_confidence: float = 0.0

    @property
    def total(self) -> int:
        return sum(self.by_status.values())


__all__ = [
    "TransactionStatus",
    "CategorizationMethod",
    "CandidateStatus",
    "ReconciliationItemType",
    "MatchMethod",
    "AnalyzerKind",
    "ANALYZER_METHODS",
    "Transaction",
    "Account",
    "Category",
    "CategorizationRule",
    "CategorizationCandidate",
    "Reconciliation",
    "ReconciliationItem",
    "TransactionFilter",
    "PatternSuggestion",
    "TransferGroup",
    "UnmatchedTransfer",
    "TransferDetectionResult",
    "BatchCandidateResult",
    "AutoApplyResult",
    "BulkApproveResult",
    "CategoryStats",
    "CandidateStats",
]
