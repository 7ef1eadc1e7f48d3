from __future__ import annotations

from datetime import date

import pytest
from typer.testing import CliRunner

from ledger_matching.cli import app, main
from tests.helpers.db import (
    add_account,
    add_candidate,
    add_category,
    add_reconciliation,
    add_reconciliation_item,
    add_transaction,
    fetch_candidate,
    fetch_transaction,
)

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cwd(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep any developer .env out of the CLI's dotenv lookup.
    monkeypatch.chdir(tmp_path)


def _lines(output: str, prefix: str) -> list[list[str]]:
    return [ln.split("\t") for ln in output.splitlines() if ln.startswith(prefix + "\t")]


def test_suggest_prints_ranked_suggestions_and_creates_candidates(db_url: str) -> None:
    account = add_account(db_url)
    groceries = add_category(db_url, "Groceries")
    for day in (1, 2, 3):
        add_transaction(
            db_url,
            account_id=account,
            amount="-42.00",
            on=date(2024, 7, day),
            description="Woolworths Sydney",
            category_id=groceries,
        )
    target = add_transaction(
        db_url, account_id=account, amount="-18.00", on=date(2024, 7, 4), description="WOOLWORTHS"
    )

    result = runner.invoke(
        app, ["suggest", "--user-id", "u1", "--create-candidates", "--database-url", db_url]
    )

    assert result.exit_code == 0, result.output
    assert "WOOLWORTHS" in result.stdout
    [created] = _lines(result.stdout, "candidates_created")
    assert int(created[1]) >= 1
    assert fetch_transaction(db_url, target).category_id is None


def test_suggest_respects_date_range(db_url: str) -> None:
    account = add_account(db_url)
    groceries = add_category(db_url, "Groceries")
    for day in (1, 2, 3, 4):
        add_transaction(
            db_url,
            account_id=account,
            amount="-42.00",
            on=date(2024, 7, day),
            description="Woolworths",
            category_id=groceries if day < 4 else None,
        )

    result = runner.invoke(
        app,
        ["suggest", "--user-id", "u1", "--start", "2024-08-01", "--database-url", db_url],
    )

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == ""


def test_detect_transfers_reports_pairs_and_totals(db_url: str) -> None:
    checking = add_account(db_url, name="Checking")
    savings = add_account(db_url, name="Savings")
    out_id = add_transaction(
        db_url,
        account_id=checking,
        amount="-50.00",
        on=date(2024, 7, 1),
        description="Transfer to savings",
    )
    in_id = add_transaction(db_url, account_id=savings, amount="50.00", on=date(2024, 7, 2))

    result = runner.invoke(
        app, ["detect-transfers", "--user-id", "u1", "--database-url", db_url]
    )

    assert result.exit_code == 0, result.output
    [pair] = _lines(result.stdout, "pair")
    assert (int(pair[1]), int(pair[2])) == (out_id, in_id)
    assert pair[5] == "Jul 01 - Jul 02, 2024"
    assert _lines(result.stdout, "total") == [["total", "1", "0"]]


def test_approve_matches_command(db_url: str) -> None:
    account = add_account(db_url, user_id="owner")
    rec = add_reconciliation(db_url, user_id="owner", account_id=account)
    tx = add_transaction(db_url, account_id=account, amount="-9.00", on=date(2024, 7, 1))
    add_reconciliation_item(
        db_url, reconciliation_id=rec, transaction_id=tx, confidence=0.97, bank={"externalId": "B1"}
    )

    result = runner.invoke(
        app,
        [
            "approve-matches",
            "--user-id",
            "owner",
            "--reconciliation-id",
            str(rec),
            "--threshold",
            "0.9",
            "--database-url",
            db_url,
        ],
    )

    assert result.exit_code == 0, result.output
    assert _lines(result.stdout, "approved") == [["approved", "1"]]
    assert _lines(result.stdout, "enriched") == [["enriched", "1"]]
    assert fetch_transaction(db_url, tx).external_id == "B1"


def test_approve_matches_unknown_reconciliation_exits_2(db_url: str) -> None:
    result = runner.invoke(
        app,
        [
            "approve-matches",
            "--user-id",
            "owner",
            "--reconciliation-id",
            "77",
            "--database-url",
            db_url,
        ],
    )
    assert result.exit_code == 2
    assert "Reconciliation 77 not found" in result.output


def test_apply_and_reject_candidates(db_url: str) -> None:
    account = add_account(db_url)
    groceries = add_category(db_url, "Groceries")
    tx1 = add_transaction(db_url, account_id=account, amount="-1.00", on=date(2024, 7, 1))
    tx2 = add_transaction(db_url, account_id=account, amount="-2.00", on=date(2024, 7, 2))
    c1 = add_candidate(db_url, transaction_id=tx1, category_id=groceries)
    c2 = add_candidate(db_url, transaction_id=tx2, category_id=groceries)

    applied = runner.invoke(
        app, ["apply-candidates", str(c1), "--actor", "alice", "--database-url", db_url]
    )
    assert applied.exit_code == 0, applied.output
    assert _lines(applied.stdout, "successful") == [["successful", "1"]]
    assert fetch_transaction(db_url, tx1).category_id == groceries

    rejected = runner.invoke(
        app, ["reject-candidates", str(c2), "999", "--actor", "bob", "--database-url", db_url]
    )
    assert rejected.exit_code == 1
    assert _lines(rejected.stdout, "failed") == [["failed", "1"]]
    assert fetch_candidate(db_url, c2).status == "Rejected"


def test_root_without_subcommand_exits_nonzero() -> None:
    result = runner.invoke(app, ["--log-level", "WARNING"])
    assert result.exit_code == 1
    assert "No subcommand provided" in result.output


def test_main_returns_exit_code(db_url: str) -> None:
    assert main(["detect-transfers", "--user-id", "nobody", "--database-url", db_url]) == 0
