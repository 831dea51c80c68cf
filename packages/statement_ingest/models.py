"""Data models and type aliases for ``statement_ingest``.

Domain values are frozen dataclasses: they are produced once by one stage and
handed to the next without mutation. Classifier output is validated with
Pydantic separately (see :mod:`statement_ingest.categorization`) and only then
turned into :class:`CategorySuggestion`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, NamedTuple, TypeAlias

# ---------------------------------------------------------------------------
# Parsing and categorization
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """A transaction candidate read from statement text.

    Two candidates with the same ``(date, description, amount)`` are the same
    transaction; see :attr:`identity`. ``raw_text`` is the source text the
    candidate was read from and does not take part in identity.
    """

    date: date
    description: str
    amount: Decimal
    raw_text: str = field(default="", compare=False)

    @property
    def identity(self) -> tuple[date, str, Decimal]:
        return (self.date, self.description, self.amount)


@dataclass(frozen=True, slots=True)
class CategorySuggestion:
    """One category decision with a confidence in ``[0.1, 1.0]``."""

    category_name: str
    confidence: float
    reasoning: str


# (description, amount) pairs accepted by the categorizer entry points.
CategorizationItem: TypeAlias = tuple[str, Decimal | float]


# ---------------------------------------------------------------------------
# Storage-facing records
# ---------------------------------------------------------------------------


class StatementStatus(StrEnum):
    """Lifecycle of one statement-processing run."""

    RECEIVED = "received"
    EXTRACTING = "extracting"
    PARSING = "parsing"
    CATEGORIZING = "categorizing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StatementStatus.COMPLETED, StatementStatus.FAILED)


@dataclass(frozen=True, slots=True)
class CategorySpec:
    """A default category seeded for every owner."""

    name: str
    color: str
    icon: str


@dataclass(frozen=True, slots=True)
class CategoryRecord:
    id: int
    owner_id: int
    name: str
    color: str
    icon: str


@dataclass(frozen=True, slots=True)
class OwnerRecord:
    """An account owner and its optional spreadsheet credentials."""

    id: int
    username: str
    sheets_access_token: str | None = None
    sheets_refresh_token: str | None = None
    sheets_spreadsheet_id: str | None = None

    @property
    def has_sheets_target(self) -> bool:
        return bool(self.sheets_access_token) and bool(self.sheets_spreadsheet_id)


@dataclass(frozen=True, slots=True)
class StatementMeta:
    owner_id: int
    filename: str
    file_size: int


@dataclass(frozen=True, slots=True)
class StatementRecord:
    id: int
    owner_id: int
    filename: str
    file_size: int
    processing_status: str
    transaction_count: int = 0


@dataclass(frozen=True, slots=True)
class PersistableTransaction:
    """A categorized candidate ready for storage.

    ``raw_data`` is the audit payload: the original text, the classifier
    confidence and its reasoning.
    """

    owner_id: int
    statement_id: int
    date: date
    description: str
    amount: Decimal
    category_id: int | None
    needs_review: bool
    raw_data: dict[str, Any]
    is_auto_categorized: bool = True


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """A stored transaction as returned by storage."""

    id: int
    owner_id: int
    statement_id: int | None
    date: date
    description: str
    amount: Decimal
    category_id: int | None
    is_auto_categorized: bool
    needs_review: bool
    raw_data: dict[str, Any] | None = None


class SheetRow(NamedTuple):
    """A row mirrored to the spreadsheet sink."""

    date: str
    description: str
    amount: str
    category: str


@dataclass(frozen=True, slots=True)
class TransactionStats:
    """Review-queue summary for one owner."""

    total: int
    auto_categorized_percentage: int
    pending_review: int


@dataclass(frozen=True, slots=True)
class CategoryTotal:
    """Sum of absolute amounts spent in one category."""

    category_name: str
    color: str
    total: Decimal


@dataclass(frozen=True, slots=True)
class PipelineResult:
    statement_id: int
    status: StatementStatus
    transaction_count: int


__all__ = [
    "ParsedTransaction",
    "CategorySuggestion",
    "CategorizationItem",
    "StatementStatus",
    "CategorySpec",
    "CategoryRecord",
    "OwnerRecord",
    "StatementMeta",
    "StatementRecord",
    "PersistableTransaction",
    "TransactionRecord",
    "SheetRow",
    "TransactionStats",
    "CategoryTotal",
    "PipelineResult",
]
