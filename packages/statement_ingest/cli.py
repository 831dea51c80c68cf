# ruff: noqa: I001
"""CLI for the ``statement_ingest`` package.

A Typer console interface over the pipeline for local runs. Environment
variables (``OPENAI_API_KEY``, ``DATABASE_URL`` and the ``STATEMENT_INGEST_*``
knobs) are loaded from a local ``.env`` using ``python-dotenv`` before any
command runs. Business logic lives in :mod:`statement_ingest.tasks`,
:mod:`statement_ingest.review` and the modules they drive.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo, OptionInfo

from .config import Settings
from .errors import SheetsNotConnectedError, StatementIngestError
from .logging_setup import configure_logging
from .models import StatementStatus
from .storage import InMemoryStorage, Storage

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Extract, categorize and store transactions from bank statements. "
        "Loads OPENAI_API_KEY and DATABASE_URL from a local .env before running."
    ),
)


# Module-level option/argument objects to satisfy ruff B008 (no calls in
# parameter defaults).
DOCUMENT_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Statement document (.pdf, or .txt/.csv with statement text)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
EXPORT_DIR_OPTION: OptionInfo = typer.Option(
    None,
    "--export-dir",
    help="Directory for the spreadsheet mirror; <spreadsheet id>.csv is written there.",
    file_okay=False,
    dir_okay=True,
)
SYNC_DIR_OPTION: OptionInfo = typer.Option(
    ...,
    "--export-dir",
    help="Directory for the spreadsheet mirror.",
    file_okay=False,
    dir_okay=True,
)


def _resolve_storage(
    settings: Settings, database_url: str | None, owner_id: int | None
) -> tuple[Storage, int]:
    """Pick SQL storage when a database is configured, else an in-memory one.

    The in-memory store gets a throwaway ``local`` owner; ``owner_id`` is then
    ignored.
    """

    url = database_url or settings.database_url
    if url:
        if owner_id is None:
            raise typer.BadParameter("--owner-id is required with a database")
        return _owner_storage(url, owner_id), owner_id

    memory = InMemoryStorage()
    owner = memory.create_owner("local")
    return memory, owner.id


def _owner_storage(url: str, owner_id: int) -> Storage:
    from .persistence import SqlStorage

    storage = SqlStorage(url)
    if storage.get_owner(owner_id) is None:
        raise typer.BadParameter(f"owner {owner_id} does not exist")
    return storage


def _require_database(database_url: str | None, owner_id: int) -> Storage:
    url = database_url or Settings.from_env().database_url
    if not url:
        typer.echo("Error: DATABASE_URL is not set and --database-url not given.", err=True)
        raise typer.Exit(1)
    return _owner_storage(url, owner_id)


@app.command("init-db")
def init_db_cmd(
    *,
    username: str = typer.Option("local", help="Username of the owner to create."),
    database_url: str | None = DATABASE_URL_OPTION,
    sheets_spreadsheet_id: str | None = typer.Option(
        None, help="Spreadsheet id to mirror this owner's transactions to."
    ),
    sheets_access_token: str | None = typer.Option(
        None, help="Access token for the spreadsheet; required for syncing."
    ),
) -> None:
    """Create tables, create an owner and seed its default categories."""

    from .persistence import SqlStorage

    settings = Settings.from_env()
    url = database_url or settings.database_url
    if not url:
        typer.echo("Error: DATABASE_URL is not set and --database-url not given.", err=True)
        raise typer.Exit(1)
    if bool(sheets_spreadsheet_id) != bool(sheets_access_token):
        typer.echo(
            "Warning: syncing needs both --sheets-spreadsheet-id and --sheets-access-token.",
            err=True,
        )

    storage = SqlStorage(url)
    storage.create_schema()
    owner = storage.create_owner(
        username,
        sheets_access_token=sheets_access_token,
        sheets_spreadsheet_id=sheets_spreadsheet_id,
    )
    categories = storage.ensure_default_categories(owner.id)
    typer.echo(f"owner_id={owner.id} username={owner.username} categories={len(categories)}")


@app.command("process")
def process_cmd(
    path: Annotated[Path, DOCUMENT_ARGUMENT],
    *,
    owner_id: int | None = typer.Option(
        None, help="Owner to attach transactions to (required with a database)."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
    export_dir: Path | None = EXPORT_DIR_OPTION,
    timeout: float | None = typer.Option(
        None,
        help=(
            "Seconds to wait for the run. On expiry the current status is printed "
            "and the command exits 1; the run itself still finishes."
        ),
    ),
) -> None:
    """Run the pipeline on one document and print the stored transactions."""

    from .sinks import CsvExportSink
    from .tasks import StatementTaskQueue

    settings = Settings.from_env()
    try:
        data = path.read_bytes()
    except OSError as e:
        typer.echo(f"Error: cannot read {path}: {e}", err=True)
        raise typer.Exit(1) from e

    storage, owner = _resolve_storage(settings, database_url, owner_id)
    if not settings.openai_api_key:
        typer.echo("OPENAI_API_KEY not set; using keyword categorization only.", err=True)
    sink = CsvExportSink(export_dir) if export_dir is not None else None

    queue = StatementTaskQueue.from_settings(settings, storage=storage, sink=sink)
    wait_for_pool = True
    try:
        try:
            statement_id = queue.run_pipeline(owner, data, path.name)
        except StatementIngestError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from e
        try:
            result = queue.wait(statement_id, timeout=timeout)
        except TimeoutError as e:
            wait_for_pool = False
            status = queue.status(statement_id)
            typer.echo(
                f"statement_id={statement_id} "
                f"status={status.value if status is not None else 'unknown'}"
            )
            typer.echo(f"Error: run did not finish within {timeout}s", err=True)
            raise typer.Exit(1) from e
    finally:
        queue.shutdown(wait=wait_for_pool, cancel_futures=not wait_for_pool)

    typer.echo(
        f"statement_id={result.statement_id} status={result.status.value} "
        f"transactions={result.transaction_count}"
    )
    names = {c.id: c.name for c in storage.get_categories(owner)}
    for tx in storage.list_transactions(owner):
        if tx.statement_id != statement_id:
            continue
        flag = "review" if tx.needs_review else "ok"
        typer.echo(
            f"{tx.date.isoformat()}\t{tx.amount:.2f}\t"
            f"{names.get(tx.category_id, '-')}\t{flag}\t{tx.description}"
        )
    if result.status is StatementStatus.FAILED:
        raise typer.Exit(1)


@app.command("categorize")
def categorize_cmd(
    description: str = typer.Argument(..., help="Transaction description"),
    amount: str = typer.Argument(
        ..., help="Signed amount; put -- before negative values (-- DESC -45.23)"
    ),
) -> None:
    """Categorize a single transaction and print the suggestion."""

    from .categorize import build_categorizer

    try:
        value = Decimal(amount)
    except InvalidOperation as e:
        typer.echo(f"Error: invalid amount {amount!r}", err=True)
        raise typer.Exit(2) from e

    suggestion = build_categorizer(Settings.from_env()).categorize(description, value)
    typer.echo(
        f"{suggestion.category_name}\t{suggestion.confidence:.2f}\t{suggestion.reasoning}"
    )


@app.command("review")
def review_cmd(
    *,
    owner_id: int = typer.Option(..., help="Owner whose review queue to list."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """List transactions flagged for review, newest first."""

    storage = _require_database(database_url, owner_id)
    names = {c.id: c.name for c in storage.get_categories(owner_id)}
    pending = storage.list_pending_review(owner_id)
    for tx in pending:
        confidence = (tx.raw_data or {}).get("ai_confidence")
        conf = f"{confidence:.2f}" if isinstance(confidence, (int, float)) else "-"
        typer.echo(
            f"{tx.id}\t{tx.date.isoformat()}\t{tx.amount:.2f}\t"
            f"{names.get(tx.category_id, '-')}\t{conf}\t{tx.description}"
        )
    typer.echo(f"pending_review={len(pending)}")


@app.command("recategorize")
def recategorize_cmd(
    transaction_id: int = typer.Argument(..., help="Transaction to update"),
    category: str = typer.Argument(..., help="Category name (case-insensitive)"),
    *,
    owner_id: int = typer.Option(..., help="Owner of the transaction."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Set a transaction's category and clear its review flag."""

    from .review import recategorize

    storage = _require_database(database_url, owner_id)
    try:
        tx = recategorize(storage, owner_id, transaction_id, category)
    except KeyError as e:
        typer.echo(f"Error: {e.args[0]}", err=True)
        raise typer.Exit(1) from e
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    names = {c.id: c.name for c in storage.get_categories(owner_id)}
    typer.echo(
        f"transaction_id={tx.id} category={names.get(tx.category_id, '-')} "
        f"needs_review={str(tx.needs_review).lower()}"
    )


@app.command("stats")
def stats_cmd(
    *,
    owner_id: int = typer.Option(..., help="Owner to summarize."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Print review counts and spend per category."""

    from .review import category_breakdown, transaction_stats

    storage = _require_database(database_url, owner_id)
    stats = transaction_stats(storage, owner_id)
    typer.echo(
        f"total={stats.total} auto_categorized_pct={stats.auto_categorized_percentage} "
        f"pending_review={stats.pending_review}"
    )
    for row in category_breakdown(storage, owner_id):
        typer.echo(f"{row.category_name}\t{row.total:.2f}")


@app.command("sync")
def sync_cmd(
    *,
    owner_id: int = typer.Option(..., help="Owner whose transactions to mirror."),
    export_dir: Path = SYNC_DIR_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Mirror all of an owner's transactions to the spreadsheet export."""

    from .review import sync_to_sheet
    from .sinks import CsvExportSink

    storage = _require_database(database_url, owner_id)
    sink = CsvExportSink(export_dir)
    try:
        rows = sync_to_sheet(storage, sink, owner_id)
    except SheetsNotConnectedError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    typer.echo(f"rows={rows}")


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, help="Logging level (falls back to STATEMENT_INGEST_LOG_LEVEL)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
