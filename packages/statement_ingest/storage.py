"""Collaborator interfaces consumed by the pipeline, plus an in-memory store.

The pipeline only talks to :class:`Storage` and :class:`SpreadsheetSink`.
:class:`InMemoryStorage` backs tests and database-less CLI runs; the
SQLAlchemy implementation lives in :mod:`statement_ingest.persistence`.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal
from typing import Protocol

from .categories import DEFAULT_CATEGORIES
from .models import (
    CategoryRecord,
    OwnerRecord,
    PersistableTransaction,
    SheetRow,
    StatementMeta,
    StatementRecord,
    TransactionRecord,
)


class Storage(Protocol):
    def create_statement(self, meta: StatementMeta) -> StatementRecord: ...

    def update_statement_status(
        self, statement_id: int, status: str, transaction_count: int | None = None
    ) -> None: ...

    def get_statement(self, statement_id: int) -> StatementRecord | None: ...

    def get_categories(self, owner_id: int) -> list[CategoryRecord]: ...

    def ensure_default_categories(self, owner_id: int) -> list[CategoryRecord]: ...

    def create_transaction(self, tx: PersistableTransaction) -> TransactionRecord: ...

    def list_transactions(self, owner_id: int) -> list[TransactionRecord]: ...

    def get_transaction(self, transaction_id: int) -> TransactionRecord | None: ...

    def update_transaction(
        self,
        transaction_id: int,
        *,
        category_id: int | None = None,
        description: str | None = None,
        amount: Decimal | None = None,
    ) -> TransactionRecord: ...

    def list_pending_review(self, owner_id: int) -> list[TransactionRecord]: ...

    def get_owner(self, owner_id: int) -> OwnerRecord | None: ...


class SpreadsheetSink(Protocol):
    """Mirror of an owner's transactions in an external spreadsheet.

    Append/update idempotence is the sink's responsibility.
    """

    def sync_transactions(
        self, credentials: str, target_id: str, rows: Sequence[SheetRow]
    ) -> None: ...


class InMemoryStorage:
    """Thread-safe dict-backed :class:`Storage`.

    Transactions are listed newest first, as a UI would show them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._owners: dict[int, OwnerRecord] = {}
        self._categories: dict[int, CategoryRecord] = {}
        self._statements: dict[int, StatementRecord] = {}
        self._transactions: dict[int, TransactionRecord] = {}

    def _next_id(self) -> int:
        return next(self._ids)

    # -- owners --------------------------------------------------------------

    def create_owner(
        self,
        username: str,
        *,
        sheets_access_token: str | None = None,
        sheets_refresh_token: str | None = None,
        sheets_spreadsheet_id: str | None = None,
    ) -> OwnerRecord:
        with self._lock:
            owner = OwnerRecord(
                id=self._next_id(),
                username=username,
                sheets_access_token=sheets_access_token,
                sheets_refresh_token=sheets_refresh_token,
                sheets_spreadsheet_id=sheets_spreadsheet_id,
            )
            self._owners[owner.id] = owner
        return owner

    def get_owner(self, owner_id: int) -> OwnerRecord | None:
        with self._lock:
            return self._owners.get(owner_id)

    # -- categories ----------------------------------------------------------

    def get_categories(self, owner_id: int) -> list[CategoryRecord]:
        with self._lock:
            return [c for c in self._categories.values() if c.owner_id == owner_id]

    def ensure_default_categories(self, owner_id: int) -> list[CategoryRecord]:
        with self._lock:
            existing = [c for c in self._categories.values() if c.owner_id == owner_id]
            if existing:
                return existing
            created: list[CategoryRecord] = []
            for default in DEFAULT_CATEGORIES:
                rec = CategoryRecord(
                    id=self._next_id(),
                    owner_id=owner_id,
                    name=default.name,
                    color=default.color,
                    icon=default.icon,
                )
                self._categories[rec.id] = rec
                created.append(rec)
            return created

    # -- statements ----------------------------------------------------------

    def create_statement(self, meta: StatementMeta) -> StatementRecord:
        with self._lock:
            rec = StatementRecord(
                id=self._next_id(),
                owner_id=meta.owner_id,
                filename=meta.filename,
                file_size=meta.file_size,
                processing_status="received",
            )
            self._statements[rec.id] = rec
        return rec

    def update_statement_status(
        self, statement_id: int, status: str, transaction_count: int | None = None
    ) -> None:
        with self._lock:
            rec = self._statements.get(statement_id)
            if rec is None:
                raise KeyError(f"unknown statement id {statement_id}")
            changes: dict[str, object] = {"processing_status": status}
            if transaction_count is not None:
                changes["transaction_count"] = transaction_count
            self._statements[statement_id] = replace(rec, **changes)

    def get_statement(self, statement_id: int) -> StatementRecord | None:
        with self._lock:
            return self._statements.get(statement_id)

    # -- transactions --------------------------------------------------------

    def create_transaction(self, tx: PersistableTransaction) -> TransactionRecord:
        with self._lock:
            rec = TransactionRecord(
                id=self._next_id(),
                owner_id=tx.owner_id,
                statement_id=tx.statement_id,
                date=tx.date,
                description=tx.description,
                amount=tx.amount,
                category_id=tx.category_id,
                is_auto_categorized=tx.is_auto_categorized,
                needs_review=tx.needs_review,
                raw_data=dict(tx.raw_data),
            )
            self._transactions[rec.id] = rec
        return rec

    def list_transactions(self, owner_id: int) -> list[TransactionRecord]:
        with self._lock:
            rows = [t for t in self._transactions.values() if t.owner_id == owner_id]
        return sorted(rows, key=lambda t: (t.date, t.id), reverse=True)

    def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        with self._lock:
            return self._transactions.get(transaction_id)

    def update_transaction(
        self,
        transaction_id: int,
        *,
        category_id: int | None = None,
        description: str | None = None,
        amount: Decimal | None = None,
    ) -> TransactionRecord:
        """Apply a manual edit. Setting a category clears the review flag."""

        with self._lock:
            rec = self._transactions.get(transaction_id)
            if rec is None:
                raise KeyError(f"unknown transaction id {transaction_id}")
            changes: dict[str, object] = {}
            if category_id is not None:
                changes.update(
                    category_id=category_id, needs_review=False, is_auto_categorized=False
                )
            if description is not None:
                changes["description"] = description
            if amount is not None:
                changes["amount"] = amount
            rec = replace(rec, **changes)
            self._transactions[transaction_id] = rec
        return rec

    def list_pending_review(self, owner_id: int) -> list[TransactionRecord]:
        return [t for t in self.list_transactions(owner_id) if t.needs_review]


__all__ = ["Storage", "SpreadsheetSink", "InMemoryStorage"]
