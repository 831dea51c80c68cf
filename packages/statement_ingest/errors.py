"""Exception types raised across ``statement_ingest``.

Extraction, size and spreadsheet-connection checks surface to callers. ``ClassifierError`` is
raised by the primary classifier and is always recovered by the categorizer's
keyword fallback; it never escapes :mod:`statement_ingest.categorize`.
"""

from __future__ import annotations


class StatementIngestError(Exception):
    """Base class for package errors."""


class ExtractionError(StatementIngestError):
    """The document bytes could not be turned into text."""


class ClassifierError(StatementIngestError):
    """The primary classifier failed or returned unusable output."""


class DocumentTooLargeError(StatementIngestError, ValueError):
    """The uploaded document exceeds the configured size limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"document is {size} bytes; limit is {limit} bytes")
        self.size = size
        self.limit = limit


class SheetsNotConnectedError(StatementIngestError):
    """The owner has no spreadsheet credentials or target to sync to."""


__all__ = [
    "StatementIngestError",
    "ExtractionError",
    "ClassifierError",
    "DocumentTooLargeError",
    "SheetsNotConnectedError",
]
