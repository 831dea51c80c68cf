# ruff: noqa: I001
from __future__ import annotations

import csv
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from statement_ingest.errors import SheetsNotConnectedError
from statement_ingest.models import PersistableTransaction, SheetRow, StatementMeta
from statement_ingest.persistence import SqlStorage
from statement_ingest.review import (
    category_breakdown,
    recategorize,
    sheet_rows,
    sync_to_sheet,
    transaction_stats,
)
from statement_ingest.sinks import HEADER, CsvExportSink
from statement_ingest.storage import InMemoryStorage
from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(params=["memory", "sqlite"])
def storage(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return InMemoryStorage()
    return SqlStorage(bootstrap_sqlite_db(tmp_path / "review.db"))


def _seed(storage, **owner_kw):
    """Owner with three transactions: two flagged for review, one confident."""

    owner = storage.create_owner("alice", **owner_kw)
    stmt = storage.create_statement(StatementMeta(owner.id, "march.txt", 10))
    cats = {c.name: c.id for c in storage.ensure_default_categories(owner.id)}

    def _tx(day: int, desc: str, amount: str, category: str, review: bool):
        return storage.create_transaction(
            PersistableTransaction(
                owner_id=owner.id,
                statement_id=stmt.id,
                date=date(2024, 3, day),
                description=desc,
                amount=Decimal(amount),
                category_id=cats[category],
                needs_review=review,
                raw_data={"ai_confidence": 0.5 if review else 0.95},
            )
        )

    txs = [
        _tx(1, "WHOLE FOODS", "-45.23", "Groceries", False),
        _tx(2, "ACME 1234", "-12.00", "Uncategorized", True),
        _tx(3, "PAYROLL", "1500.00", "Uncategorized", True),
    ]
    return owner, cats, txs


def test_pending_review_lists_flagged_newest_first(storage) -> None:
    owner, _cats, txs = _seed(storage)

    pending = storage.list_pending_review(owner.id)

    assert [t.id for t in pending] == [txs[2].id, txs[1].id]
    assert storage.list_pending_review(owner.id + 100) == []


def test_recategorize_clears_review_flag(storage) -> None:
    owner, cats, txs = _seed(storage)

    updated = recategorize(storage, owner.id, txs[1].id, "housing")

    assert updated.category_id == cats["Housing"]
    assert updated.needs_review is False
    assert updated.is_auto_categorized is False
    assert storage.get_transaction(txs[1].id) == updated
    assert [t.id for t in storage.list_pending_review(owner.id)] == [txs[2].id]


def test_recategorize_rejects_unknown_category_and_foreign_transaction(storage) -> None:
    owner, _cats, txs = _seed(storage)
    other = storage.create_owner("bob")
    storage.ensure_default_categories(other.id)

    with pytest.raises(ValueError):
        recategorize(storage, owner.id, txs[1].id, "Travel")
    with pytest.raises(KeyError):
        recategorize(storage, other.id, txs[1].id, "Housing")
    with pytest.raises(KeyError):
        recategorize(storage, owner.id, 99_999, "Housing")
    assert storage.get_transaction(txs[1].id).needs_review is True


def test_update_transaction_edits_fields_without_touching_review(storage) -> None:
    _owner, _cats, txs = _seed(storage)

    updated = storage.update_transaction(
        txs[1].id, description="ACME HARDWARE", amount=Decimal("-12.50")
    )

    assert (updated.description, updated.amount) == ("ACME HARDWARE", Decimal("-12.50"))
    assert updated.needs_review is True
    with pytest.raises(KeyError):
        storage.update_transaction(99_999, category_id=1)


def test_stats_and_breakdown(storage) -> None:
    owner, cats, txs = _seed(storage)
    recategorize(storage, owner.id, txs[2].id, "Housing")

    stats = transaction_stats(storage, owner.id)
    breakdown = category_breakdown(storage, owner.id)

    assert (stats.total, stats.auto_categorized_percentage, stats.pending_review) == (3, 67, 1)
    assert [(b.category_name, b.total) for b in breakdown] == [
        ("Groceries", Decimal("45.23")),
        ("Housing", Decimal("1500.00")),
        ("Uncategorized", Decimal("12.00")),
    ]
    empty = storage.create_owner("carol")
    assert transaction_stats(storage, empty.id).auto_categorized_percentage == 0


def test_auto_categorized_percentage_rounds_half_up() -> None:
    storage = InMemoryStorage()
    owner = storage.create_owner("alice")
    stmt = storage.create_statement(StatementMeta(owner.id, "a.txt", 1))
    for day in range(1, 9):
        tx = storage.create_transaction(
            PersistableTransaction(
                owner_id=owner.id,
                statement_id=stmt.id,
                date=date(2024, 3, day),
                description=f"ITEM {day}",
                amount=Decimal("-1.00"),
                category_id=None,
                needs_review=False,
                raw_data={},
            )
        )
        if day > 1:
            storage.update_transaction(tx.id, category_id=999)

    # 1 of 8 still auto-categorized: 12.5% is reported as 13.
    assert transaction_stats(storage, owner.id).auto_categorized_percentage == 13


class _RecordingSink:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, list[SheetRow]]] = []

    def sync_transactions(self, credentials: str, target_id: str, rows: Sequence[SheetRow]):
        self.calls.append((credentials, target_id, list(rows)))


def test_sync_mirrors_all_rows(storage) -> None:
    owner, _cats, _txs = _seed(
        storage, sheets_access_token="tok", sheets_spreadsheet_id="sheet-1"
    )
    sink = _RecordingSink()

    assert sync_to_sheet(storage, sink, owner.id) == 3

    ((creds, target, rows),) = sink.calls
    assert (creds, target) == ("tok", "sheet-1")
    assert rows == sheet_rows(storage, owner.id)
    assert rows[0] == SheetRow("2024-03-03", "PAYROLL", "1500.00", "Uncategorized")


def test_sync_requires_connected_owner(storage) -> None:
    owner, _cats, _txs = _seed(storage, sheets_spreadsheet_id="sheet-1")
    sink = _RecordingSink()

    with pytest.raises(SheetsNotConnectedError):
        sync_to_sheet(storage, sink, owner.id)
    assert sink.calls == []


def test_csv_export_sink_rewrites_file(tmp_path: Path) -> None:
    sink = CsvExportSink(tmp_path / "out")
    rows = [SheetRow("2024-03-01", "WHOLE FOODS, INC", "-45.23", "Groceries")]

    sink.sync_transactions("tok", "sheet-1", rows)
    sink.sync_transactions("tok", "sheet-1", rows)

    with (tmp_path / "out" / "sheet-1.csv").open(encoding="utf-8", newline="") as fh:
        content = list(csv.reader(fh))
    assert content == [list(HEADER), ["2024-03-01", "WHOLE FOODS, INC", "-45.23", "Groceries"]]


@pytest.mark.parametrize("target", ["", "../escape", "a/b", ".."])
def test_csv_export_sink_rejects_path_like_ids(tmp_path: Path, target: str) -> None:
    with pytest.raises(ValueError):
        CsvExportSink(tmp_path).path_for(target)
