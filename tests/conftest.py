"""Pytest configuration shared by the ledger tests.

Makes the workspace importable without an install (``packages/`` for
``ledger_matching``, ``libs/db/src`` for ``db`` and the repo root for
``tests.helpers``) and keeps every test hermetic: each one gets its own SQLite
file, no ``LEDGER_MATCHING_*`` settings leak in from the host environment, and
cached engines are disposed afterwards.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

from db.client import dispose_engines, get_session
from ledger_matching.persistence import SqlLedgerStore
from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop host ``LEDGER_MATCHING_*``/``DATABASE_URL`` values and dispose engines afterwards."""

    for key in list(os.environ):
        if key.startswith("LEDGER_MATCHING_") or key == "DATABASE_URL":
            monkeypatch.delenv(key, raising=False)
    yield
    dispose_engines()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")


@pytest.fixture
def store(db_url: str) -> Iterator[SqlLedgerStore]:
    session = get_session(database_url=db_url)
    try:
        yield SqlLedgerStore(session)
    finally:
        session.close()
