"""Public interface for the ``statement_ingest`` package.

Bank-statement ingestion: text extraction, transaction line parsing,
two-tier categorization (OpenAI with a keyword fallback), a background
pipeline that stores the results, plus post-ingest review and spreadsheet
sync. This module only re-exports symbols.
"""

from .categorize import (
    KeywordClassifier,
    OpenAIClassifier,
    ResilientCategorizer,
    build_categorizer,
    categorize,
    categorize_batch,
)
from .config import Settings
from .errors import (
    ClassifierError,
    DocumentTooLargeError,
    ExtractionError,
    SheetsNotConnectedError,
    StatementIngestError,
)
from .extract import extract_text
from .models import (
    CategorySuggestion,
    CategoryTotal,
    ParsedTransaction,
    PersistableTransaction,
    PipelineResult,
    StatementStatus,
    TransactionStats,
)
from .parser import parse_transactions
from .pipeline import StatementPipeline
from .review import category_breakdown, recategorize, sync_to_sheet, transaction_stats
from .sinks import CsvExportSink
from .storage import InMemoryStorage, SpreadsheetSink, Storage
from .tasks import StatementTaskQueue

__all__ = [
    # Operations
    "extract_text",
    "parse_transactions",
    "categorize",
    "categorize_batch",
    "build_categorizer",
    "recategorize",
    "transaction_stats",
    "category_breakdown",
    "sync_to_sheet",
    # Components
    "KeywordClassifier",
    "OpenAIClassifier",
    "ResilientCategorizer",
    "StatementPipeline",
    "StatementTaskQueue",
    "Storage",
    "SpreadsheetSink",
    "InMemoryStorage",
    "CsvExportSink",
    "Settings",
    # Models
    "ParsedTransaction",
    "CategorySuggestion",
    "PersistableTransaction",
    "PipelineResult",
    "StatementStatus",
    "TransactionStats",
    "CategoryTotal",
    # Errors
    "StatementIngestError",
    "ExtractionError",
    "ClassifierError",
    "DocumentTooLargeError",
    "SheetsNotConnectedError",
]
