# ruff: noqa: I001
"""Command-line interface for ledger_matching.

Each command opens one database session (``DATABASE_URL`` or
``--database-url``), runs a single engine operation over it, and prints a
short tab-separated report to stdout. ``.env`` in the working directory is
loaded via python-dotenv in the root callback so ``DATABASE_URL`` and
``OPENAI_API_KEY`` can live there.

Commands
--------
- ``suggest --user-id U [--remote] [--create-candidates]``
- ``detect-transfers --user-id U [--include-linked]``
- ``approve-matches --user-id U --reconciliation-id R [--threshold T] [--item-id N ...]``
- ``apply-candidates --actor A ID [ID ...]``
- ``reject-candidates --actor A ID [ID ...]``
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from db.client import session_scope

from .analyzers import build_registry
from .config import EngineSettings
from .errors import LedgerMatchingError
from .lifecycle import CandidateLifecycleManager
from .logging_setup import configure_logging
from .models import BatchCandidateResult, TransactionFilter
from .persistence import SqlLedgerStore
from .pipeline import suggest, suggestions_to_candidates
from .reconciliation import bulk_approve_matches
from .remote import OpenAIRemoteCategorizer
from .transfers import detect_transfers

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Suggest categories, pair transfers and approve reconciliation matches "
        "over the ledger database. Loads DATABASE_URL/OPENAI_API_KEY from a local .env."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter defaults).
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
USER_ID_OPTION: OptionInfo = typer.Option(..., "--user-id", help="Owner of the ledger data.")
ACTOR_OPTION: OptionInfo = typer.Option(
    ..., "--actor", help="User id recorded as having performed the change."
)
START_OPTION: OptionInfo = typer.Option(
    None, "--start", formats=["%Y-%m-%d"], help="Only transactions on or after this date."
)
END_OPTION: OptionInfo = typer.Option(
    None, "--end", formats=["%Y-%m-%d"], help="Only transactions on or before this date."
)


def _print_batch(result: BatchCandidateResult) -> None:
    typer.echo(f"successful\t{result.successful_count}")
    typer.echo(f"failed\t{result.failed_count}")
    for err in result.errors:
        typer.echo(f"error\t{err}")


@app.command("suggest")
def suggest_cmd(
    user_id: str = USER_ID_OPTION,
    start: datetime | None = START_OPTION,
    end: datetime | None = END_OPTION,
    *,
    remote: bool = typer.Option(
        False, help="Also ask the OpenAI-backed categorizer (needs OPENAI_API_KEY)."
    ),
    create_candidates: bool = typer.Option(
        False, help="Persist the ranked suggestions as Pending candidates."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Run the analyzers over a user's transactions and print ranked suggestions."""

    settings = EngineSettings.from_env()
    registry = build_registry(
        remote=OpenAIRemoteCategorizer(model=settings.remote_model) if remote else None,
        remote_timeout_sec=settings.remote_timeout_sec,
    )
    with session_scope(database_url=database_url) as session:
        store = SqlLedgerStore(session)
        txs = store.list_transactions(
            TransactionFilter(
                user_id=user_id,
                start_date=start.date() if start else None,
                end_date=end.date() if end else None,
            )
        )
        run = suggest(
            txs,
            store.list_categories(user_id),
            store.list_rules(user_id),
            max_suggestions=settings.max_suggestions,
            min_confidence=settings.min_confidence,
            registry=registry,
            concurrency=settings.analyzer_concurrency,
        )
        for kind, error in run.failures.items():
            typer.echo(f"analyzer_failed\t{kind}\t{error}", err=True)
        for s in run.suggestions:
            typer.echo(
                f"{s.kind}\t{s.pattern}\t{s.category_name}\t{s.confidence:.2f}\t"
                f"{s.match_count}\t{len(s.target_transaction_ids)}"
            )
        if create_candidates:
            manager = CandidateLifecycleManager(store)
            saved = manager.create_candidates(
                suggestions_to_candidates(run.suggestions, processed_by=user_id)
            )
            typer.echo(f"candidates_created\t{len(saved)}")


@app.command("detect-transfers")
def detect_transfers_cmd(
    user_id: str = USER_ID_OPTION,
    start: datetime | None = START_OPTION,
    end: datetime | None = END_OPTION,
    *,
    include_linked: bool = typer.Option(
        False, help="Also consider transactions already linked as transfers."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Pair opposite-signed legs across accounts and list likely unpaired transfers."""

    with session_scope(database_url=database_url) as session:
        store = SqlLedgerStore(session)
        txs = store.list_transactions(
            TransactionFilter(
                user_id=user_id,
                start_date=start.date() if start else None,
                end_date=end.date() if end else None,
            )
        )
        result = detect_transfers(txs, include_linked=include_linked)

    for g in result.groups:
        typer.echo(
            f"pair\t{g.outgoing.id}\t{g.incoming.id}\t{g.amount}\t"
            f"{g.review_score:.2f}\t{g.date_range}\t{'; '.join(g.match_reasons)}"
        )
    for u in result.unmatched:
        typer.echo(
            f"unmatched\t{u.transaction.id}\t{u.transfer_likelihood:.2f}\t"
            f"{u.suggested_account_name or '-'}\t{'; '.join(u.indicators)}"
        )
    typer.echo(f"total\t{result.total_groups}\t{result.total_unmatched}")


@app.command("approve-matches")
def approve_matches_cmd(
    user_id: str = USER_ID_OPTION,
    reconciliation_id: int = typer.Option(..., "--reconciliation-id"),
    *,
    threshold: float | None = typer.Option(
        None, min=0.0, max=1.0, help="Minimum match confidence (defaults to settings)."
    ),
    item_id: list[int] | None = typer.Option(  # noqa: B008
        None, "--item-id", help="Approve exactly these items; overrides --threshold."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Bulk-approve Matched reconciliation items and enrich their transactions."""

    settings = EngineSettings.from_env()
    with session_scope(database_url=database_url) as session:
        try:
            result = bulk_approve_matches(
                SqlLedgerStore(session),
                user_id=user_id,
                reconciliation_id=reconciliation_id,
                threshold=settings.approval_threshold if threshold is None else threshold,
                item_ids=item_id or None,
            )
        except LedgerMatchingError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(2) from e

    typer.echo(f"approved\t{result.approved_count}")
    typer.echo(f"enriched\t{result.enriched_count}")
    typer.echo(f"skipped\t{result.skipped_count}")
    for err in result.errors:
        typer.echo(f"error\t{err}")


@app.command("apply-candidates")
def apply_candidates_cmd(
    candidate_ids: list[int] = typer.Argument(..., help="Candidate ids to apply."),  # noqa: B008
    actor: str = ACTOR_OPTION,
    *,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Apply Pending candidates; each id succeeds or fails on its own."""

    with session_scope(database_url=database_url) as session:
        result = CandidateLifecycleManager(SqlLedgerStore(session)).apply_batch(
            candidate_ids, actor
        )
    _print_batch(result)
    if result.failed_count:
        raise typer.Exit(1)


@app.command("reject-candidates")
def reject_candidates_cmd(
    candidate_ids: list[int] = typer.Argument(..., help="Candidate ids to reject."),  # noqa: B008
    actor: str = ACTOR_OPTION,
    *,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Reject Pending candidates; each id succeeds or fails on its own."""

    with session_scope(database_url=database_url) as session:
        result = CandidateLifecycleManager(SqlLedgerStore(session)).reject_batch(
            candidate_ids, actor
        )
    _print_batch(result)
    if result.failed_count:
        raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    log_level: str | None = typer.Option(
        None, "--log-level", help="Logging level (default: LEDGER_MATCHING_LOG_LEVEL or INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


def main(argv: list[str] | None = None) -> int:
    """Run the Typer app and return its exit code instead of exiting.

    ``typer.Exit`` raised by a command comes back as its code when Click runs
    outside standalone mode.
    """

    rv = app(args=argv, standalone_mode=False)
    return rv if isinstance(rv, int) else 0


__all__ = ["app", "main"]


if __name__ == "__main__":  # pragma: no cover
    app()
