# ruff: noqa: I001
"""SQLAlchemy-backed ledger store.

``SqlLedgerStore`` wraps one ``Session`` and implements every storage
capability in ``store`` over the ORM models in ``db.models.ledger``. Rows are
converted to the engine's frozen dataclasses on the way out and written back
field by field on the way in; only the fields the engine is allowed to change
(category, status, enrichment, provenance, candidate state, approval) are
ever updated.

``atomic()`` commits its unit of work on exit and rolls it back on error.
Nested ``atomic()`` blocks join the outermost one.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from db.models.ledger import (
    LmAccount,
    LmAccountGrant,
    LmCategorizationCandidate,
    LmCategorizationRule,
    LmCategory,
    LmReconciliation,
    LmReconciliationItem,
    LmTransaction,
)
from .errors import CandidateNotFoundError, LedgerMatchingError, TransactionNotFoundError
from .models import (
    Account,
    CandidateStatus,
    CategorizationCandidate,
    CategorizationMethod,
    CategorizationRule,
    Category,
    MatchMethod,
    Reconciliation,
    ReconciliationItem,
    ReconciliationItemType,
    Transaction,
    TransactionFilter,
    TransactionStatus,
)


def _to_transaction(row: LmTransaction, account_name: str | None) -> Transaction:
    return Transaction(
        id=row.id,
        amount=Decimal(row.amount),
        date=row.date,
        description=row.description or "",
        account_id=row.account_id,
        account_name=account_name or "",
        currency=row.currency_code,
        user_description=row.user_description,
        category_id=row.category_id,
        status=TransactionStatus(row.status),
        external_id=row.external_id,
        reference_number=row.reference_number,
        bank_category=row.bank_category,
        is_reviewed=row.is_reviewed,
        transfer_id=row.transfer_id,
        is_deleted=row.is_deleted,
        is_auto_categorized=row.is_auto_categorized,
        auto_categorization_method=(
            CategorizationMethod(row.auto_categorization_method)
            if row.auto_categorization_method
            else None
        ),
        auto_categorization_confidence=row.auto_categorization_confidence,
        auto_categorized_at=row.auto_categorized_at,
        updated_by=row.updated_by,
    )


def _to_candidate(row: LmCategorizationCandidate) -> CategorizationCandidate:
    return CategorizationCandidate(
        id=row.id,
        transaction_id=row.transaction_id,
        category_id=row.category_id,
        method=CategorizationMethod(row.method),
        confidence_score=row.confidence_score,
        reasoning=row.reasoning,
        status=CandidateStatus(row.status),
        processed_by=row.processed_by,
        created_at=row.created_at,
        applied_at=row.applied_at,
        applied_by=row.applied_by,
        rejected_at=row.rejected_at,
        rejected_by=row.rejected_by,
    )


def _to_item(row: LmReconciliationItem) -> ReconciliationItem:
    return ReconciliationItem(
        id=row.id,
        reconciliation_id=row.reconciliation_id,
        item_type=ReconciliationItemType(row.item_type),
        transaction_id=row.transaction_id,
        match_confidence=row.match_confidence,
        match_method=MatchMethod(row.match_method) if row.match_method else None,
        bank_reference_data=row.bank_reference_data,
        is_approved=row.is_approved,
        approved_at=row.approved_at,
    )


class SqlLedgerStore:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._depth = 0

    @property
    def session(self) -> Session:
        return self._session

    @contextmanager
    def atomic(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        except BaseException:
            if self._depth == 1:
                self._session.rollback()
            raise
        else:
            if self._depth == 1:
                self._session.commit()
        finally:
            self._depth -= 1

    # ---- Lookups -------------------------------------------------------------

    def _tx_select(self):
        return select(LmTransaction, LmAccount.name).join(
            LmAccount, LmAccount.id == LmTransaction.account_id
        )

    def list_transactions(self, flt: TransactionFilter) -> list[Transaction]:
        stmt = self._tx_select().where(LmAccount.user_id == flt.user_id)
        if flt.start_date is not None:
            stmt = stmt.where(LmTransaction.date >= flt.start_date)
        if flt.end_date is not None:
            stmt = stmt.where(LmTransaction.date <= flt.end_date)
        if flt.account_id is not None:
            stmt = stmt.where(LmTransaction.account_id == flt.account_id)
        if flt.is_reviewed is not None:
            stmt = stmt.where(LmTransaction.is_reviewed.is_(flt.is_reviewed))
        if not flt.include_deleted:
            stmt = stmt.where(LmTransaction.is_deleted.is_(False))
        if not flt.include_transfers:
            stmt = stmt.where(LmTransaction.transfer_id.is_(None))
        stmt = stmt.order_by(LmTransaction.date, LmTransaction.id)
        return [_to_transaction(row, name) for row, name in self._session.execute(stmt)]

    def get_transaction(self, transaction_id: int) -> Transaction | None:
        found = self._session.execute(
            self._tx_select().where(LmTransaction.id == transaction_id)
        ).first()
        return _to_transaction(found[0], found[1]) if found else None

    def list_categories(self, user_id: str) -> list[Category]:
        rows = self._session.scalars(
            select(LmCategory).where(LmCategory.user_id == user_id).order_by(LmCategory.id)
        )
        return [
            Category(id=r.id, name=r.name, parent_id=r.parent_id, category_type=r.category_type)
            for r in rows
        ]

    def list_rules(self, user_id: str) -> list[CategorizationRule]:
        rows = self._session.scalars(
            select(LmCategorizationRule)
            .where(LmCategorizationRule.user_id == user_id)
            .order_by(LmCategorizationRule.id)
        )
        return [
            CategorizationRule(
                id=r.id, pattern=r.pattern, category_id=r.category_id, is_active=r.is_active
            )
            for r in rows
        ]

    def list_accounts(self, user_id: str) -> list[Account]:
        rows = self._session.scalars(
            select(LmAccount).where(LmAccount.user_id == user_id).order_by(LmAccount.id)
        )
        return [
            Account(
                id=r.id,
                user_id=r.user_id,
                name=r.name,
                institution=r.institution,
                currency=r.currency_code,
            )
            for r in rows
        ]

    def can_modify_account(self, user_id: str, account_id: int) -> bool:
        stmt = (
            select(LmAccount.id)
            .outerjoin(
                LmAccountGrant,
                (LmAccountGrant.account_id == LmAccount.id) & (LmAccountGrant.user_id == user_id),
            )
            .where(LmAccount.id == account_id)
            .where(or_(LmAccount.user_id == user_id, LmAccountGrant.can_modify.is_(True)))
        )
        return self._session.execute(stmt).first() is not None

    # ---- Transactions --------------------------------------------------------

    def save_transaction(self, tx: Transaction) -> None:
        row = self._session.get(LmTransaction, tx.id)
        if row is None:
            raise TransactionNotFoundError(tx.id)
        row.category_id = tx.category_id
        row.status = str(tx.status)
        row.external_id = tx.external_id
        row.reference_number = tx.reference_number
        row.bank_category = tx.bank_category
        row.is_reviewed = tx.is_reviewed
        row.is_auto_categorized = tx.is_auto_categorized
        row.auto_categorization_method = (
            str(tx.auto_categorization_method) if tx.auto_categorization_method else None
        )
        row.auto_categorization_confidence = tx.auto_categorization_confidence
        row.auto_categorized_at = tx.auto_categorized_at
        row.updated_by = tx.updated_by
        self._session.flush()

    # ---- Candidates ----------------------------------------------------------

    def add_candidates(
        self, candidates: Sequence[CategorizationCandidate]
    ) -> list[CategorizationCandidate]:
        rows = [
            LmCategorizationCandidate(
                transaction_id=c.transaction_id,
                category_id=c.category_id,
                method=str(c.method),
                confidence_score=c.confidence_score,
                reasoning=c.reasoning,
                status=str(c.status),
                processed_by=c.processed_by,
                **({"created_at": c.created_at} if c.created_at is not None else {}),
            )
            for c in candidates
        ]
        self._session.add_all(rows)
        self._session.flush()
        return [_to_candidate(r) for r in rows]

    def get_candidate(self, candidate_id: int) -> CategorizationCandidate | None:
        row = self._session.get(LmCategorizationCandidate, candidate_id)
        return _to_candidate(row) if row is not None else None

    def list_candidates(
        self,
        *,
        transaction_ids: Iterable[int] | None = None,
        pending_only: bool = False,
    ) -> list[CategorizationCandidate]:
        stmt = select(LmCategorizationCandidate)
        if transaction_ids is not None:
            ids = list(transaction_ids)
            if not ids:
                return []
            stmt = stmt.where(LmCategorizationCandidate.transaction_id.in_(ids))
        if pending_only:
            stmt = stmt.where(LmCategorizationCandidate.status == str(CandidateStatus.PENDING))
        stmt = stmt.order_by(LmCategorizationCandidate.id)
        return [_to_candidate(r) for r in self._session.scalars(stmt)]

    def save_candidate(self, candidate: CategorizationCandidate) -> None:
        if candidate.id is None:
            raise LedgerMatchingError("cannot save a candidate that was never added")
        row = self._session.get(LmCategorizationCandidate, candidate.id)
        if row is None:
            raise CandidateNotFoundError(candidate.id)
        row.status = str(candidate.status)
        row.processed_by = candidate.processed_by
        row.applied_at = candidate.applied_at
        row.applied_by = candidate.applied_by
        row.rejected_at = candidate.rejected_at
        row.rejected_by = candidate.rejected_by
        self._session.flush()

    # ---- Reconciliation ------------------------------------------------------

    def get_reconciliation(self, reconciliation_id: int) -> Reconciliation | None:
        row = self._session.get(LmReconciliation, reconciliation_id)
        if row is None:
            return None
        return Reconciliation(id=row.id, user_id=row.user_id, account_id=row.account_id)

    def list_reconciliation_items(self, reconciliation_id: int) -> list[ReconciliationItem]:
        rows = self._session.scalars(
            select(LmReconciliationItem)
            .where(LmReconciliationItem.reconciliation_id == reconciliation_id)
            .order_by(LmReconciliationItem.id)
        )
        return [_to_item(r) for r in rows]

    def save_reconciliation_item(self, item: ReconciliationItem) -> None:
        row = self._session.get(LmReconciliationItem, item.id)
        if row is None:
            raise LedgerMatchingError(f"Reconciliation item {item.id} not found")
        row.is_approved = item.is_approved
        row.approved_at = item.approved_at
        self._session.flush()


__all__ = ["SqlLedgerStore"]
