# ruff: noqa: I001
"""SQLAlchemy-backed :class:`~statement_ingest.storage.Storage`.

Rows live in the shared database owned by ``libs/db`` (models in
``db.models.finance``). Each method opens its own ``session_scope`` so the
store can be shared across pipeline worker threads; no session is held
between calls.

Scope:
- Owners, default category seeding, statements and their status.
- Row-by-row transaction inserts (a failed run keeps what was written).
- Manual recategorization and the pending-review listing.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from db.client import create_all, session_scope
from db.models.finance import SiCategory, SiOwner, SiStatement, SiTransaction
from .categories import DEFAULT_CATEGORIES
from .logging_setup import get_logger
from .models import (
    CategoryRecord,
    OwnerRecord,
    PersistableTransaction,
    StatementMeta,
    StatementRecord,
    StatementStatus,
    TransactionRecord,
)

_logger = get_logger("statement_ingest.persistence")

_CENTS = Decimal("0.01")


def _owner_record(row: SiOwner) -> OwnerRecord:
    return OwnerRecord(
        id=row.id,
        username=row.username,
        sheets_access_token=row.sheets_access_token,
        sheets_refresh_token=row.sheets_refresh_token,
        sheets_spreadsheet_id=row.sheets_spreadsheet_id,
    )


def _category_record(row: SiCategory) -> CategoryRecord:
    return CategoryRecord(
        id=row.id, owner_id=row.owner_id, name=row.name, color=row.color, icon=row.icon
    )


def _statement_record(row: SiStatement) -> StatementRecord:
    return StatementRecord(
        id=row.id,
        owner_id=row.owner_id,
        filename=row.filename,
        file_size=row.file_size,
        processing_status=row.processing_status,
        transaction_count=row.transaction_count,
    )


def _transaction_record(row: SiTransaction) -> TransactionRecord:
    return TransactionRecord(
        id=row.id,
        owner_id=row.owner_id,
        statement_id=row.statement_id,
        date=row.date,
        description=row.description,
        amount=Decimal(row.amount).quantize(_CENTS, rounding=ROUND_HALF_UP),
        category_id=row.category_id,
        is_auto_categorized=row.is_auto_categorized,
        needs_review=row.needs_review,
        raw_data=dict(row.raw_data) if row.raw_data is not None else None,
    )


class SqlStorage:
    """Storage over the ``si_*`` tables.

    ``database_url`` falls back to ``DATABASE_URL`` when omitted, as in
    :func:`db.client.get_engine`.
    """

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    def create_schema(self) -> None:
        create_all(database_url=self.database_url)

    # -- owners --------------------------------------------------------------

    def create_owner(
        self,
        username: str,
        *,
        sheets_access_token: str | None = None,
        sheets_refresh_token: str | None = None,
        sheets_spreadsheet_id: str | None = None,
    ) -> OwnerRecord:
        with session_scope(database_url=self.database_url) as session:
            row = SiOwner(
                username=username,
                sheets_access_token=sheets_access_token,
                sheets_refresh_token=sheets_refresh_token,
                sheets_spreadsheet_id=sheets_spreadsheet_id,
            )
            session.add(row)
            session.flush()
            return _owner_record(row)

    def get_owner(self, owner_id: int) -> OwnerRecord | None:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(SiOwner, owner_id)
            return _owner_record(row) if row is not None else None

    # -- categories ----------------------------------------------------------

    def get_categories(self, owner_id: int) -> list[CategoryRecord]:
        with session_scope(database_url=self.database_url) as session:
            rows = session.execute(
                select(SiCategory).where(SiCategory.owner_id == owner_id).order_by(SiCategory.id)
            ).scalars()
            return [_category_record(r) for r in rows]

    def ensure_default_categories(self, owner_id: int) -> list[CategoryRecord]:
        """Seed the default categories once per owner and return the owner's set.

        Concurrent seeding for the same owner is settled by the
        ``(owner_id, name)`` unique constraint: the loser re-reads.
        """

        existing = self.get_categories(owner_id)
        if existing:
            return existing
        try:
            with session_scope(database_url=self.database_url) as session:
                for default in DEFAULT_CATEGORIES:
                    session.add(
                        SiCategory(
                            owner_id=owner_id,
                            name=default.name,
                            color=default.color,
                            icon=default.icon,
                        )
                    )
        except IntegrityError:
            _logger.info("persistence:categories_seed_race owner_id=%d", owner_id)
        else:
            _logger.info(
                "persistence:categories_seeded owner_id=%d count=%d",
                owner_id,
                len(DEFAULT_CATEGORIES),
            )
        return self.get_categories(owner_id)

    # -- statements ----------------------------------------------------------

    def create_statement(self, meta: StatementMeta) -> StatementRecord:
        with session_scope(database_url=self.database_url) as session:
            row = SiStatement(
                owner_id=meta.owner_id,
                filename=meta.filename,
                file_size=meta.file_size,
                processing_status=StatementStatus.RECEIVED.value,
                transaction_count=0,
            )
            session.add(row)
            session.flush()
            return _statement_record(row)

    def update_statement_status(
        self, statement_id: int, status: str, transaction_count: int | None = None
    ) -> None:
        values: dict[str, object] = {
            "processing_status": status,
            "updated_at": datetime.now(UTC),
        }
        if transaction_count is not None:
            values["transaction_count"] = transaction_count
        with session_scope(database_url=self.database_url) as session:
            result = session.execute(
                update(SiStatement).where(SiStatement.id == statement_id).values(**values)
            )
            if result.rowcount == 0:
                raise KeyError(f"unknown statement id {statement_id}")

    def get_statement(self, statement_id: int) -> StatementRecord | None:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(SiStatement, statement_id)
            return _statement_record(row) if row is not None else None

    # -- transactions --------------------------------------------------------

    def create_transaction(self, tx: PersistableTransaction) -> TransactionRecord:
        with session_scope(database_url=self.database_url) as session:
            row = SiTransaction(
                owner_id=tx.owner_id,
                statement_id=tx.statement_id,
                date=tx.date,
                description=tx.description,
                amount=tx.amount.quantize(_CENTS, rounding=ROUND_HALF_UP),
                category_id=tx.category_id,
                is_auto_categorized=tx.is_auto_categorized,
                needs_review=tx.needs_review,
                raw_data=dict(tx.raw_data),
            )
            session.add(row)
            session.flush()
            return _transaction_record(row)

    def list_transactions(self, owner_id: int) -> list[TransactionRecord]:
        """Owner's transactions, newest first."""

        with session_scope(database_url=self.database_url) as session:
            rows = session.execute(
                select(SiTransaction)
                .where(SiTransaction.owner_id == owner_id)
                .order_by(SiTransaction.date.desc(), SiTransaction.id.desc())
            ).scalars()
            return [_transaction_record(r) for r in rows]

    def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(SiTransaction, transaction_id)
            return _transaction_record(row) if row is not None else None

    def update_transaction(
        self,
        transaction_id: int,
        *,
        category_id: int | None = None,
        description: str | None = None,
        amount: Decimal | None = None,
    ) -> TransactionRecord:
        """Apply a manual edit. Setting a category clears the review flag."""

        with session_scope(database_url=self.database_url) as session:
            row = session.get(SiTransaction, transaction_id)
            if row is None:
                raise KeyError(f"unknown transaction id {transaction_id}")
            if category_id is not None:
                row.category_id = category_id
                row.needs_review = False
                row.is_auto_categorized = False
            if description is not None:
                row.description = description
            if amount is not None:
                row.amount = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
            session.flush()
            _logger.info(
                "persistence:transaction_updated transaction_id=%d category_id=%s",
                transaction_id,
                row.category_id,
            )
            return _transaction_record(row)

    def list_pending_review(self, owner_id: int) -> list[TransactionRecord]:
        with session_scope(database_url=self.database_url) as session:
            rows = session.execute(
                select(SiTransaction)
                .where(SiTransaction.owner_id == owner_id, SiTransaction.needs_review.is_(True))
                .order_by(SiTransaction.date.desc(), SiTransaction.id.desc())
            ).scalars()
            return [_transaction_record(r) for r in rows]


__all__ = ["SqlStorage"]
