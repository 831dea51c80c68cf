from __future__ import annotations

import io

import pytest
from pypdf import PdfWriter
from statement_ingest.errors import ExtractionError
from statement_ingest.extract import extract_text


def _blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def test_pdf_without_text_yields_empty_pages() -> None:
    assert extract_text(_blank_pdf(), filename="statement.pdf") == ""
    # Pages are joined by newlines, one per page.
    assert extract_text(_blank_pdf(3), filename="STATEMENT.PDF") == "\n\n"


def test_missing_filename_reads_pdf() -> None:
    assert extract_text(_blank_pdf()) == ""


@pytest.mark.parametrize("data", [b"", b"not a pdf at all"])
def test_malformed_pdf_raises(data: bytes) -> None:
    with pytest.raises(ExtractionError):
        extract_text(data, filename="statement.pdf")


def test_text_document_is_decoded() -> None:
    body = "\ufeff03/15/2024 CAFÉ ROMA -4.50\n".encode()
    assert extract_text(body, filename="export.txt") == "03/15/2024 CAFÉ ROMA -4.50\n"


def test_csv_is_treated_as_text() -> None:
    assert extract_text(b"a,b\n1,2\n", filename="export.csv") == "a,b\n1,2\n"


def test_undecodable_text_raises() -> None:
    with pytest.raises(ExtractionError):
        extract_text(b"\xff\xfe\xfa", filename="export.txt")


def test_unsupported_suffix_raises() -> None:
    with pytest.raises(ExtractionError, match="unsupported"):
        extract_text(b"PK\x03\x04", filename="statement.xlsx")


def test_non_bytes_input_raises() -> None:
    with pytest.raises(ExtractionError):
        extract_text("03/15/2024 A -1.00", filename="a.txt")  # type: ignore[arg-type]
