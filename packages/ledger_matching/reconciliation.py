"""Approval of matched bank records and enrichment of their transactions.

``bulk_approve_matches`` walks a reconciliation's Matched, not-yet-approved
items, selected either by explicit ids or by a confidence threshold. For each
one it parses the bank payload, copies the external id, reference and bank
category onto the linked transaction where those are still empty, marks the
transaction Reconciled and the item approved. The bank category is only
staged on the transaction; categorization happens later in the pipeline.

Ownership and access are checked before anything is written. After that each
item commits on its own: a bad payload or a vanished transaction skips that
item and the run continues. Re-running over approved items is a no-op.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError

from .errors import AccountAccessError, LedgerMatchingError, ReconciliationNotFoundError
from .logging_setup import get_logger
from .models import (
    BulkApproveResult,
    ReconciliationItem,
    ReconciliationItemType,
    Transaction,
    TransactionStatus,
)
from .scoring import (
    MatchAnalysis,
    analyze_match,
    character_similarity,
    levenshtein,
    match_confidence,
)
from .states import ApprovalStatus, approval_status, ensure_transition
from .store import LedgerStore

_logger = get_logger("ledger_matching.reconciliation")

DEFAULT_APPROVAL_THRESHOLD = 0.95


class BankReferenceData(BaseModel):
    """Bank-side evidence stored on a reconciliation item.

    Accepts both the camelCase keys written by statement imports and the
    PascalCase keys of older exports. Each field is read on its own: a value
    that does not parse (``"amount": "N/A"``, a list where a string belongs)
    becomes ``None`` and the remaining fields still count.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    external_id: str | None = Field(
        default=None, validation_alias=AliasChoices("externalId", "BankTransactionId")
    )
    reference: str | None = Field(
        default=None, validation_alias=AliasChoices("reference", "Reference")
    )
    category: str | None = Field(
        default=None, validation_alias=AliasChoices("category", "BankCategory")
    )
    amount: Decimal | None = Field(default=None, validation_alias=AliasChoices("amount", "Amount"))
    description: str | None = Field(
        default=None, validation_alias=AliasChoices("description", "Description")
    )
    transaction_date: date | None = Field(
        default=None, validation_alias=AliasChoices("date", "TransactionDate")
    )
    merchant_name: str | None = Field(
        default=None, validation_alias=AliasChoices("merchantName", "MerchantName")
    )

    @field_validator(
        "external_id", "reference", "category", "description", "merchant_name", mode="before"
    )
    @classmethod
    def _lenient_str(cls, v: Any) -> str | None:
        if isinstance(v, bool):
            return None
        if isinstance(v, int | float | Decimal):
            v = str(v)
        if isinstance(v, str):
            return v.strip() or None
        return None

    @field_validator("amount", mode="before")
    @classmethod
    def _lenient_amount(cls, v: Any) -> Decimal | None:
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, int | float | Decimal):
            v = str(v)
        if not isinstance(v, str):
            return None
        try:
            parsed = Decimal(v.strip().replace(",", ""))
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> date | None:
        if v is None or isinstance(v, date):
            return v
        if isinstance(v, str) and v.strip():
            s = v.strip().replace("Z", "+00:00")
            try:
                return datetime.fromisoformat(s).date()
            except ValueError:
                return None
        return None


def parse_bank_reference_data(raw: str | None) -> BankReferenceData | None:
    """Decode a stored payload; ``None`` only when it is not a JSON object."""

    if not raw or not raw.strip():
        return None
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(decoded, dict):
        return None
    try:
        return BankReferenceData.model_validate(decoded)
    except ValidationError:
        return None


def enrich_transaction(tx: Transaction, bank: BankReferenceData) -> tuple[Transaction, bool]:
    """Fill empty enrichment fields from ``bank``; returns the copy and whether anything changed."""

    changes: dict[str, str] = {}
    if bank.external_id and not tx.external_id:
        changes["external_id"] = bank.external_id
    if bank.reference and not tx.reference_number:
        changes["reference_number"] = bank.reference
    if bank.category and not tx.bank_category:
        changes["bank_category"] = bank.category
    return replace(tx, **changes), bool(changes)


def _eligible(
    item: ReconciliationItem, threshold: float, item_ids: frozenset[int] | None
) -> bool:
    if item.item_type != ReconciliationItemType.MATCHED:
        return False
    if approval_status(item) == ApprovalStatus.APPROVED or item.transaction_id is None:
        return False
    if item_ids:
        return item.id in item_ids
    return item.match_confidence is not None and item.match_confidence >= threshold


def bulk_approve_matches(
    store: LedgerStore,
    *,
    user_id: str,
    reconciliation_id: int,
    threshold: float = DEFAULT_APPROVAL_THRESHOLD,
    item_ids: Iterable[int] | None = None,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> BulkApproveResult:
    """Approve eligible Matched items of one reconciliation.

    Raises ``ReconciliationNotFoundError`` when the reconciliation does not
    exist or belongs to another user, and ``AccountAccessError`` when
    ``user_id`` cannot modify its account. Both happen before any write.
    A non-empty ``item_ids`` overrides ``threshold``.
    """

    if not 0.0 <= threshold <= 1.0:
        raise ValueError("threshold must be within [0,1]")
    rec = store.get_reconciliation(reconciliation_id)
    if rec is None or rec.user_id != user_id:
        raise ReconciliationNotFoundError(reconciliation_id)
    if not store.can_modify_account(user_id, rec.account_id):
        raise AccountAccessError(user_id, rec.account_id)

    wanted = frozenset(item_ids) if item_ids is not None else None
    items = [
        i
        for i in store.list_reconciliation_items(reconciliation_id)
        if _eligible(i, threshold, wanted)
    ]
    _logger.info(
        "bulk_approve:start reconciliation_id=%d eligible=%d threshold=%.2f explicit_ids=%s",
        reconciliation_id,
        len(items),
        threshold,
        bool(wanted),
    )

    approved = enriched = skipped = 0
    errors: list[str] = []
    for item in items:
        tx_id = item.transaction_id
        if tx_id is None:
            continue
        bank = parse_bank_reference_data(item.bank_reference_data)
        if bank is None:
            _logger.warning(
                "bulk_approve:bad_payload reconciliation_id=%d item_id=%d",
                reconciliation_id,
                item.id,
            )
            skipped += 1
            continue
        try:
            with store.atomic():
                tx = store.get_transaction(tx_id)
                if tx is None:
                    _logger.warning(
                        "bulk_approve:transaction_missing item_id=%d transaction_id=%d",
                        item.id,
                        tx_id,
                    )
                    errors.append(f"Transaction {tx_id} not found")
                    skipped += 1
                    continue
                ensure_transition(approval_status(item), ApprovalStatus.APPROVED)
                updated, was_enriched = enrich_transaction(tx, bank)
                store.save_transaction(
                    replace(updated, status=TransactionStatus.RECONCILED, updated_by=user_id)
                )
                store.save_reconciliation_item(
                    replace(item, is_approved=True, approved_at=clock())
                )
        except (LedgerMatchingError, SQLAlchemyError) as e:
            _logger.error("bulk_approve:item_failed item_id=%d error=%s", item.id, e)
            errors.append(f"Failed to process item {item.id}: {e}")
            skipped += 1
            continue
        approved += 1
        enriched += int(was_enriched)

    _logger.info(
        "bulk_approve:done reconciliation_id=%d approved=%d enriched=%d skipped=%d errors=%d",
        reconciliation_id,
        approved,
        enriched,
        skipped,
        len(errors),
    )
    return BulkApproveResult(
        approved_count=approved,
        enriched_count=enriched,
        skipped_count=skipped,
        errors=tuple(errors),
    )


# ---- Reviewer aids ----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DescriptionDiff:
    system: str
    bank: str
    distance: int
    similarity: float


def describe_difference(system_description: str, bank_description: str) -> DescriptionDiff:
    """Edit distance between the two descriptions, case-insensitive."""

    a, b = system_description.strip().lower(), bank_description.strip().lower()
    return DescriptionDiff(
        system=system_description,
        bank=bank_description,
        distance=levenshtein(a, b),
        similarity=round(character_similarity(a, b), 4),
    )


def score_bank_match(tx: Transaction, bank: BankReferenceData) -> tuple[float, MatchAnalysis]:
    """Confidence that ``bank`` describes ``tx``.

    A payload without an amount scores as amount 0; one without a date is
    treated as dated the same day as ``tx``.
    """

    analysis = analyze_match(
        system_amount=tx.amount,
        system_date=tx.date,
        system_description=tx.description,
        bank_amount=bank.amount if bank.amount is not None else Decimal(0),
        bank_date=bank.transaction_date or tx.date,
        bank_description=bank.description,
    )
    return match_confidence(analysis), analysis


__all__ = [
    "DEFAULT_APPROVAL_THRESHOLD",
    "BankReferenceData",
    "parse_bank_reference_data",
    "enrich_transaction",
    "bulk_approve_matches",
    "DescriptionDiff",
    "describe_difference",
    "score_bank_match",
]
