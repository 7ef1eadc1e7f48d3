"""DB helpers for tests: bootstrap a temporary SQLite DB and seed ledger rows."""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from db import Base
from db.client import get_engine, session_scope
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
from sqlalchemy import text as sql_text


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a SQLite database file with the full ledger schema and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)
    Base.metadata.create_all(bind=engine)
    _assert_tables_present(url)
    return url


def _assert_tables_present(database_url: str) -> None:
    expected = set(Base.metadata.tables)
    with session_scope(database_url=database_url) as session:
        rows = session.execute(
            sql_text("SELECT name FROM sqlite_master WHERE type = 'table'")
        ).fetchall()
    missing = expected - {r[0] for r in rows}
    assert not missing, f"ledger schema incomplete: missing={missing}"


# ---- Seeding -----------------------------------------------------------------


def _insert(database_url: str, row: Any) -> int:
    with session_scope(database_url=database_url) as session:
        session.add(row)
        session.flush()
        return row.id


def add_account(
    database_url: str,
    *,
    user_id: str = "u1",
    name: str = "Checking",
    institution: str | None = None,
) -> int:
    return _insert(database_url, LmAccount(user_id=user_id, name=name, institution=institution))


def grant_access(database_url: str, *, account_id: int, user_id: str, can_modify: bool) -> None:
    with session_scope(database_url=database_url) as session:
        session.add(LmAccountGrant(account_id=account_id, user_id=user_id, can_modify=can_modify))


def add_category(
    database_url: str,
    name: str,
    *,
    user_id: str = "u1",
    parent_id: int | None = None,
    category_type: str | None = "Expense",
) -> int:
    return _insert(
        database_url,
        LmCategory(user_id=user_id, name=name, parent_id=parent_id, category_type=category_type),
    )


def add_rule(
    database_url: str, pattern: str, category_id: int, *, user_id: str = "u1"
) -> int:
    return _insert(
        database_url,
        LmCategorizationRule(user_id=user_id, pattern=pattern, category_id=category_id),
    )


def add_transaction(
    database_url: str,
    *,
    account_id: int,
    amount: str | Decimal,
    on: date,
    description: str = "",
    category_id: int | None = None,
    **extra: Any,
) -> int:
    return _insert(
        database_url,
        LmTransaction(
            account_id=account_id,
            amount=Decimal(amount),
            date=on,
            description=description,
            category_id=category_id,
            **extra,
        ),
    )


def add_candidate(
    database_url: str,
    *,
    transaction_id: int,
    category_id: int,
    confidence: float = 0.9,
    method: str = "Rule",
    status: str = "Pending",
) -> int:
    return _insert(
        database_url,
        LmCategorizationCandidate(
            transaction_id=transaction_id,
            category_id=category_id,
            method=method,
            confidence_score=confidence,
            reasoning="seeded",
            status=status,
        ),
    )


def add_reconciliation(database_url: str, *, user_id: str, account_id: int) -> int:
    return _insert(database_url, LmReconciliation(user_id=user_id, account_id=account_id))


def add_reconciliation_item(
    database_url: str,
    *,
    reconciliation_id: int,
    transaction_id: int | None,
    confidence: float | None,
    bank: dict[str, Any] | str | None = None,
    item_type: str = "Matched",
    match_method: str | None = "Fuzzy",
    is_approved: bool = False,
) -> int:
    raw = json.dumps(bank) if isinstance(bank, dict) else bank
    return _insert(
        database_url,
        LmReconciliationItem(
            reconciliation_id=reconciliation_id,
            item_type=item_type,
            transaction_id=transaction_id,
            match_confidence=confidence,
            match_method=match_method,
            bank_reference_data=raw,
            is_approved=is_approved,
        ),
    )


def fetch_transaction(database_url: str, transaction_id: int) -> LmTransaction:
    with session_scope(database_url=database_url) as session:
        row = session.get(LmTransaction, transaction_id)
        assert row is not None
        session.expunge(row)
        return row


def fetch_item(database_url: str, item_id: int) -> LmReconciliationItem:
    with session_scope(database_url=database_url) as session:
        row = session.get(LmReconciliationItem, item_id)
        assert row is not None
        session.expunge(row)
        return row


def fetch_candidate(database_url: str, candidate_id: int) -> LmCategorizationCandidate:
    with session_scope(database_url=database_url) as session:
        row = session.get(LmCategorizationCandidate, candidate_id)
        assert row is not None
        session.expunge(row)
        return row
