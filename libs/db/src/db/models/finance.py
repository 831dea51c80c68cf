from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Owners: si_owners
# ---------------------------


class SiOwner(Base):
    __tablename__ = "si_owners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # Spreadsheet mirroring is enabled only when both the access token and the
    # spreadsheet id are present.
    sheets_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    sheets_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    sheets_spreadsheet_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Reference: si_categories
# ---------------------------


class SiCategory(Base):
    __tablename__ = "si_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("si_owners.id"), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    color: Mapped[str] = mapped_column(String, nullable=False)
    icon: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (UniqueConstraint("owner_id", "name", name="uq_si_categories_owner_name"),)


# ---------------------------
# Uploads: si_statements
# ---------------------------


class SiStatement(Base):
    __tablename__ = "si_statements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("si_owners.id"), nullable=False)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    processing_status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'received'")
    )
    transaction_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "processing_status in ('received','extracting','parsing','categorizing',"
            "'persisting','completed','failed')",
            name="ck_si_statements_status",
        ),
        Index("ix_si_statements_owner", "owner_id"),
    )


# ---------------------------
# Core: si_transactions
# ---------------------------


class SiTransaction(Base):
    __tablename__ = "si_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("si_owners.id"), nullable=False)
    statement_id: Mapped[int | None] = mapped_column(
        ForeignKey("si_statements.id"), nullable=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("si_categories.id"), nullable=True
    )
    is_auto_categorized: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false()
    )
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    # Audit payload: original statement text plus classifier confidence/reasoning.
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_si_transactions_owner_date", "owner_id", "date"),)


__all__ = [
    "Base",
    "SiOwner",
    "SiCategory",
    "SiStatement",
    "SiTransaction",
]
