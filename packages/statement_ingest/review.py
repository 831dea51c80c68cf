"""Post-ingest review: recategorization, summaries and spreadsheet sync.

These helpers work on any :class:`~statement_ingest.storage.Storage` and are
shared by the pipeline (sheet mirroring after a run) and the CLI (manual
review and re-sync).
"""

from __future__ import annotations

from collections import Counter
from decimal import Decimal

from .categories import UNCATEGORIZED
from .errors import SheetsNotConnectedError
from .logging_setup import get_logger
from .models import CategoryTotal, SheetRow, TransactionRecord, TransactionStats
from .storage import SpreadsheetSink, Storage

_logger = get_logger("statement_ingest.review")


def recategorize(
    storage: Storage, owner_id: int, transaction_id: int, category_name: str
) -> TransactionRecord:
    """Assign ``category_name`` to one of the owner's transactions.

    The category is matched case-insensitively against the owner's set. The
    update marks the transaction as reviewed and manually categorized.

    Raises ``KeyError`` when the transaction does not exist or belongs to
    another owner, and ``ValueError`` for an unknown category.
    """

    tx = storage.get_transaction(transaction_id)
    if tx is None or tx.owner_id != owner_id:
        raise KeyError(f"transaction {transaction_id} not found for owner {owner_id}")

    wanted = category_name.strip().casefold()
    match = next(
        (c for c in storage.get_categories(owner_id) if c.name.casefold() == wanted), None
    )
    if match is None:
        raise ValueError(f"unknown category {category_name!r} for owner {owner_id}")

    updated = storage.update_transaction(transaction_id, category_id=match.id)
    _logger.info(
        "review:recategorized transaction_id=%d category=%s", transaction_id, match.name
    )
    return updated


def transaction_stats(storage: Storage, owner_id: int) -> TransactionStats:
    rows = storage.list_transactions(owner_id)
    total = len(rows)
    auto = sum(1 for t in rows if t.is_auto_categorized)
    return TransactionStats(
        total=total,
        # Integer round-half-up.
        auto_categorized_percentage=(200 * auto + total) // (2 * total) if total else 0,
        pending_review=sum(1 for t in rows if t.needs_review),
    )


def category_breakdown(storage: Storage, owner_id: int) -> list[CategoryTotal]:
    """Absolute spend per category, in category order; empty categories are omitted."""

    totals: Counter[int] = Counter()
    for t in storage.list_transactions(owner_id):
        if t.category_id is not None:
            totals[t.category_id] += abs(t.amount)
    return [
        CategoryTotal(category_name=c.name, color=c.color, total=totals[c.id])
        for c in storage.get_categories(owner_id)
        if totals[c.id] > Decimal("0")
    ]


def sheet_rows(storage: Storage, owner_id: int) -> list[SheetRow]:
    names = {c.id: c.name for c in storage.get_categories(owner_id)}
    return [
        SheetRow(
            date=t.date.isoformat(),
            description=t.description,
            amount=f"{t.amount:.2f}",
            category=names.get(t.category_id, UNCATEGORIZED),
        )
        for t in storage.list_transactions(owner_id)
    ]


def sync_to_sheet(storage: Storage, sink: SpreadsheetSink, owner_id: int) -> int:
    """Mirror all of the owner's transactions to ``sink``; return the row count.

    Raises :class:`SheetsNotConnectedError` when the owner lacks an access
    token or a spreadsheet id. Sink errors propagate.
    """

    owner = storage.get_owner(owner_id)
    if owner is None:
        raise KeyError(f"unknown owner id {owner_id}")
    token, target = owner.sheets_access_token, owner.sheets_spreadsheet_id
    if not token or not target:
        raise SheetsNotConnectedError(f"owner {owner_id} has no spreadsheet connected")

    rows = sheet_rows(storage, owner_id)
    sink.sync_transactions(token, target, rows)
    _logger.info("review:sheet_synced owner_id=%d rows=%d", owner_id, len(rows))
    return len(rows)


__all__ = [
    "recategorize",
    "transaction_stats",
    "category_breakdown",
    "sheet_rows",
    "sync_to_sheet",
]
