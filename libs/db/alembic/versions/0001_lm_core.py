# ruff: noqa: I001
"""Ledger matching core tables.

Revision ID: 0001_lm_core
Revises: None
Create Date: 2026-10-18
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_lm_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _now() -> sa.TextClause:
    return sa.text("now()")


def upgrade() -> None:
    op.create_table(
        "lm_accounts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("institution", sa.Text(), nullable=True),
        sa.Column("currency_code", sa.CHAR(3), nullable=False, server_default="USD"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
    )
    op.create_index("ix_lm_accounts_user_id", "lm_accounts", ["user_id"])

    op.create_table(
        "lm_account_grants",
        sa.Column(
            "account_id",
            sa.BigInteger(),
            sa.ForeignKey("lm_accounts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("can_modify", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )

    op.create_table(
        "lm_categories",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column(
            "parent_id",
            sa.BigInteger(),
            sa.ForeignKey("lm_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("category_type", sa.String(), nullable=True),
    )
    op.create_index("ix_lm_categories_user_id", "lm_categories", ["user_id"])

    op.create_table(
        "lm_categorization_rules",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("pattern", sa.Text(), nullable=False),
        sa.Column(
            "category_id", sa.BigInteger(), sa.ForeignKey("lm_categories.id"), nullable=False
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_lm_categorization_rules_user_id", "lm_categorization_rules", ["user_id"])

    op.create_table(
        "lm_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "account_id", sa.BigInteger(), sa.ForeignKey("lm_accounts.id"), nullable=False
        ),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("user_description", sa.Text(), nullable=True),
        sa.Column("currency_code", sa.CHAR(3), nullable=False, server_default="USD"),
        sa.Column(
            "category_id",
            sa.BigInteger(),
            sa.ForeignKey("lm_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(), nullable=False, server_default="Cleared"),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("reference_number", sa.String(), nullable=True),
        sa.Column("bank_category", sa.String(), nullable=True),
        sa.Column("is_reviewed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("transfer_id", sa.BigInteger(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "is_auto_categorized", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("auto_categorization_method", sa.String(), nullable=True),
        sa.Column("auto_categorization_confidence", sa.Float(), nullable=True),
        sa.Column("auto_categorized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
        sa.CheckConstraint(
            "status in ('Pending','Cleared','Reconciled','Cancelled')",
            name="ck_lm_tx_status",
        ),
    )
    op.create_index("ix_lm_tx_account_date", "lm_transactions", ["account_id", "date"])

    op.create_table(
        "lm_categorization_candidates",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "transaction_id",
            sa.BigInteger(),
            sa.ForeignKey("lm_transactions.id"),
            nullable=False,
        ),
        sa.Column(
            "category_id", sa.BigInteger(), sa.ForeignKey("lm_categories.id"), nullable=False
        ),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(), nullable=False, server_default="Pending"),
        sa.Column("processed_by", sa.String(), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_by", sa.String(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
        sa.CheckConstraint(
            "status in ('Pending','Applied','Rejected')", name="ck_lm_candidate_status"
        ),
        sa.CheckConstraint(
            "method in ('Rule','LLM','ML','MerchantPattern','AmountRecurrence','DateRecurrence')",
            name="ck_lm_candidate_method",
        ),
        sa.CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_lm_candidate_confidence",
        ),
    )
    op.create_index(
        "ix_lm_categorization_candidates_transaction_id",
        "lm_categorization_candidates",
        ["transaction_id"],
    )
    # At most one Applied candidate per transaction.
    op.create_index(
        "uniq_lm_candidate_applied_per_tx",
        "lm_categorization_candidates",
        ["transaction_id"],
        unique=True,
        postgresql_where=sa.text("status = 'Applied'"),
        sqlite_where=sa.text("status = 'Applied'"),
    )

    op.create_table(
        "lm_reconciliations",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column(
            "account_id", sa.BigInteger(), sa.ForeignKey("lm_accounts.id"), nullable=False
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
    )
    op.create_index("ix_lm_reconciliations_user_id", "lm_reconciliations", ["user_id"])

    op.create_table(
        "lm_reconciliation_items",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "reconciliation_id",
            sa.BigInteger(),
            sa.ForeignKey("lm_reconciliations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_type", sa.String(), nullable=False),
        sa.Column(
            "transaction_id", sa.BigInteger(), sa.ForeignKey("lm_transactions.id"), nullable=True
        ),
        sa.Column("match_confidence", sa.Float(), nullable=True),
        sa.Column("match_method", sa.String(), nullable=True),
        sa.Column("bank_reference_data", sa.Text(), nullable=True),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "item_type in ('Matched','UnmatchedBank','UnmatchedApp')",
            name="ck_lm_recon_item_type",
        ),
        sa.CheckConstraint(
            "match_method IS NULL OR match_method in ('Exact','Fuzzy')",
            name="ck_lm_recon_match_method",
        ),
    )
    op.create_index(
        "ix_lm_reconciliation_items_reconciliation_id",
        "lm_reconciliation_items",
        ["reconciliation_id"],
    )


def downgrade() -> None:
    op.drop_table("lm_reconciliation_items")
    op.drop_table("lm_reconciliations")
    op.drop_index("uniq_lm_candidate_applied_per_tx", table_name="lm_categorization_candidates")
    op.drop_table("lm_categorization_candidates")
    op.drop_table("lm_transactions")
    op.drop_table("lm_categorization_rules")
    op.drop_table("lm_categories")
    op.drop_table("lm_account_grants")
    op.drop_table("lm_accounts")
