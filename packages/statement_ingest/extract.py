"""Document bytes to plain text.

PDF statements are read with ``pypdf``; plain-text exports are decoded as
UTF-8. The output is best-effort text with no layout guarantees. Any failure
to read the document raises :class:`~statement_ingest.errors.ExtractionError`
and nothing partial is returned.
"""

from __future__ import annotations

import io
from pathlib import PurePath

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import ExtractionError
from .logging_setup import get_logger

_TEXT_SUFFIXES = frozenset({".txt", ".text", ".csv"})

_logger = get_logger("statement_ingest.extract")


def _kind_for(filename: str | None) -> str:
    if not filename:
        return "pdf"
    suffix = PurePath(filename).suffix.lower()
    if suffix == ".pdf":
        return "pdf"
    if suffix in _TEXT_SUFFIXES:
        return "text"
    raise ExtractionError(f"unsupported document type: {filename!r}")


def _pdf_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, TypeError) as e:
        raise ExtractionError(f"failed to read PDF: {e}") from e
    return "\n".join(pages)


def _plain_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ExtractionError(f"document is not valid UTF-8 text: {e}") from e


def extract_text(data: bytes, *, filename: str | None = None) -> str:
    """Return the text content of a statement document.

    Parameters
    ----------
    data:
        Raw document bytes. Size limits are the caller's concern.
    filename:
        Optional original filename; its suffix selects the reader (``.pdf``
        or a plain-text suffix). Without a filename the bytes are read as PDF.
    """

    if not isinstance(data, (bytes, bytearray)):
        raise ExtractionError(f"expected document bytes, got {type(data).__name__}")

    kind = _kind_for(filename)
    text = _pdf_text(bytes(data)) if kind == "pdf" else _plain_text(bytes(data))
    _logger.info("extract:done kind=%s bytes=%d chars=%d", kind, len(data), len(text))
    return text


__all__ = ["extract_text"]
