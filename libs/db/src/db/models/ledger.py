from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# SQLite only autoincrements INTEGER PRIMARY KEY; Postgres gets BIGINT.
_PK = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: accounts, categories, rules
# ---------------------------


class LmAccount(Base):
    __tablename__ = "lm_accounts"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    institution: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency_code: Mapped[str] = mapped_column(CHAR(3), nullable=False, server_default="USD")
    # Users other than the owner may be granted modify access; see lm_account_grants.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class LmAccountGrant(Base):
    __tablename__ = "lm_account_grants"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("lm_accounts.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    can_modify: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )


class LmCategory(Base):
    __tablename__ = "lm_categories"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("lm_categories.id", ondelete="SET NULL"), nullable=True
    )
    category_type: Mapped[str | None] = mapped_column(String, nullable=True)


class LmCategorizationRule(Base):
    __tablename__ = "lm_categorization_rules"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    pattern: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("lm_categories.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=sa_expr.true())


# ---------------------------
# Core: lm_transactions
# ---------------------------


class LmTransaction(Base):
    __tablename__ = "lm_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("lm_accounts.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    user_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency_code: Mapped[str] = mapped_column(CHAR(3), nullable=False, server_default="USD")
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("lm_categories.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String, nullable=False, server_default="Cleared")
    # Bank enrichment, written once on reconciliation approval.
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_category: Mapped[str | None] = mapped_column(String, nullable=True)
    is_reviewed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    transfer_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    # Auto-categorization provenance.
    is_auto_categorized: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    auto_categorization_method: Mapped[str | None] = mapped_column(String, nullable=True)
    auto_categorization_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    auto_categorized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('Pending','Cleared','Reconciled','Cancelled')",
            name="ck_lm_tx_status",
        ),
        Index("ix_lm_tx_account_date", "account_id", "date"),
    )


# ---------------------------
# Candidates (append-only audit trail)
# ---------------------------


class LmCategorizationCandidate(Base):
    __tablename__ = "lm_categorization_candidates"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("lm_transactions.id"), nullable=False, index=True
    )
    category_id: Mapped[int] = mapped_column(ForeignKey("lm_categories.id"), nullable=False)
    method: Mapped[str] = mapped_column(String, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    status: Mapped[str] = mapped_column(String, nullable=False, server_default="Pending")
    processed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_by: Mapped[str | None] = mapped_column(String, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('Pending','Applied','Rejected')",
            name="ck_lm_candidate_status",
        ),
        CheckConstraint(
            "method in ('Rule','LLM','ML','MerchantPattern','AmountRecurrence','DateRecurrence')",
            name="ck_lm_candidate_method",
        ),
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_lm_candidate_confidence",
        ),
        # At most one Applied candidate per transaction.
        Index(
            "uniq_lm_candidate_applied_per_tx",
            "transaction_id",
            unique=True,
            postgresql_where=text("status = 'Applied'"),
            sqlite_where=text("status = 'Applied'"),
        ),
    )


# ---------------------------
# Reconciliation
# ---------------------------


class LmReconciliation(Base):
    __tablename__ = "lm_reconciliations"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("lm_accounts.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class LmReconciliationItem(Base):
    __tablename__ = "lm_reconciliation_items"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    reconciliation_id: Mapped[int] = mapped_column(
        ForeignKey("lm_reconciliations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_type: Mapped[str] = mapped_column(String, nullable=False)
    transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("lm_transactions.id"), nullable=True
    )
    match_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    match_method: Mapped[str | None] = mapped_column(String, nullable=True)
    # Serialized JSON exactly as the upstream matcher stored it.
    bank_reference_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_approved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "item_type in ('Matched','UnmatchedBank','UnmatchedApp')",
            name="ck_lm_recon_item_type",
        ),
        CheckConstraint(
            "match_method IS NULL OR match_method in ('Exact','Fuzzy')",
            name="ck_lm_recon_match_method",
        ),
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
