# ruff: noqa: I001
"""Statement ingestion core tables.

Revision ID: 0001_si_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_si_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_STATUSES = "'received','extracting','parsing','categorizing','persisting','completed','failed'"


def upgrade() -> None:
    # si_owners
    op.create_table(
        "si_owners",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(), nullable=False, unique=True),
        sa.Column("sheets_access_token", sa.Text(), nullable=True),
        sa.Column("sheets_refresh_token", sa.Text(), nullable=True),
        sa.Column("sheets_spreadsheet_id", sa.String(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # si_categories (default set is seeded per owner at runtime)
    op.create_table(
        "si_categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("si_owners.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("color", sa.String(), nullable=False),
        sa.Column("icon", sa.String(), nullable=False),
        sa.UniqueConstraint("owner_id", "name", name="uq_si_categories_owner_name"),
    )

    # si_statements
    op.create_table(
        "si_statements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("si_owners.id"), nullable=False),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column(
            "processing_status",
            sa.String(),
            nullable=False,
            server_default=sa.text("'received'"),
        ),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            f"processing_status in ({_STATUSES})", name="ck_si_statements_status"
        ),
    )

    # si_transactions
    op.create_table(
        "si_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("si_owners.id"), nullable=False),
        sa.Column(
            "statement_id", sa.Integer(), sa.ForeignKey("si_statements.id"), nullable=True
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("si_categories.id"), nullable=True
        ),
        sa.Column(
            "is_auto_categorized", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_si_transactions_owner_date", "si_transactions", ["owner_id", "date"], unique=False
    )
    op.create_index(
        "ix_si_statements_owner", "si_statements", ["owner_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_si_statements_owner", table_name="si_statements")
    op.drop_index("ix_si_transactions_owner_date", table_name="si_transactions")
    op.drop_table("si_transactions")
    op.drop_table("si_statements")
    op.drop_table("si_categories")
    op.drop_table("si_owners")
