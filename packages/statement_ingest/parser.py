"""Transaction candidates from loosely structured statement text.

Statements interleave headers, running totals and free text with the
transaction rows, so parsing is a scan rather than a grammar:

1. Every line carrying a date token (``MM/DD/YYYY``, ``MM-DD-YYYY`` or
   ``YYYY-MM-DD``) may start a transaction.
2. The amount is the first money token found on that line or on one of the
   next two lines.
3. The description is whatever text remains across the scanned lines once
   both tokens are removed.

Lines that do not resolve to a complete ``(date, description, amount)`` are
skipped; nothing here raises for a malformed line. Results are deduplicated
by that triple and returned newest first.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation

from .logging_setup import get_logger
from .models import ParsedTransaction

MAX_DESCRIPTION_LEN = 200
# Lines scanned for an amount: the date line plus this many followers.
AMOUNT_LOOKAHEAD = 2

# Year-first alternative is tried first so "2024-03-01" is not read as a
# truncated month/day/year.
_DATE_RE = re.compile(
    r"(?<!\d)(?:(?P<y1>\d{4})[/-](?P<m1>\d{1,2})[/-](?P<d1>\d{1,2})"
    r"|(?P<m2>\d{1,2})[/-](?P<d2>\d{1,2})[/-](?P<y2>\d{4}))(?!\d)"
)

# $123.45, -$123.45, $-123.45, 1,234.56, 123.45-, (123.45)
_AMOUNT_RE = re.compile(
    r"\(?-?\$?-?(?<![\d.,])(?P<digits>\d{1,3}(?:,\d{3})+|\d+)\.(?P<cents>\d{2})(?![\d])\)?-?"
)

_WS_RE = re.compile(r"\s+")

_logger = get_logger("statement_ingest.parser")


def _parse_date(m: re.Match[str]) -> date | None:
    if m.group("y1") is not None:
        y, mo, d = m.group("y1"), m.group("m1"), m.group("d1")
    else:
        y, mo, d = m.group("y2"), m.group("m2"), m.group("d2")
    try:
        return date(int(y), int(mo), int(d))
    except ValueError:
        return None


def _parse_amount(m: re.Match[str]) -> Decimal | None:
    token = m.group(0)
    try:
        magnitude = Decimal(f"{m.group('digits').replace(',', '')}.{m.group('cents')}")
    except InvalidOperation:
        return None
    if not magnitude.is_finite():
        return None
    # A parenthesis (either side) or a minus anywhere in the token means a debit.
    if "(" in token or ")" in token or "-" in token:
        return -magnitude
    return magnitude


def _remove_span(text: str, m: re.Match[str]) -> str:
    return f"{text[: m.start()]} {text[m.end() :]}"


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _candidate_at(lines: list[str], i: int) -> ParsedTransaction | None:
    line = lines[i]
    date_m = _DATE_RE.search(line)
    if date_m is None:
        return None

    # Search the date line with the date token blanked so its digits cannot
    # be read as part of an amount.
    date_line_rest = _remove_span(line, date_m)
    window = [date_line_rest, *lines[i + 1 : i + 1 + AMOUNT_LOOKAHEAD]]
    raw_window = [line, *lines[i + 1 : i + 1 + AMOUNT_LOOKAHEAD]]

    for j, scanned in enumerate(window):
        amount_m = _AMOUNT_RE.search(scanned)
        if amount_m is None:
            continue
        parts = window[: j + 1]
        parts[j] = _remove_span(scanned, amount_m)
        description = _collapse(" ".join(parts))[:MAX_DESCRIPTION_LEN].strip()
        amount = _parse_amount(amount_m)
        tx_date = _parse_date(date_m)
        if not description or amount is None or tx_date is None:
            return None
        return ParsedTransaction(
            date=tx_date,
            description=description,
            amount=amount,
            raw_text=_collapse(" ".join(raw_window[: j + 1])),
        )
    return None


def dedupe_transactions(candidates: list[ParsedTransaction]) -> list[ParsedTransaction]:
    """Keep the first candidate for each ``(date, description, amount)``."""

    seen: set[tuple[date, str, Decimal]] = set()
    out: list[ParsedTransaction] = []
    for c in candidates:
        if c.identity in seen:
            continue
        seen.add(c.identity)
        out.append(c)
    return out


def parse_transactions(text: str) -> list[ParsedTransaction]:
    """Parse statement text into candidates sorted by date, newest first.

    Ties keep their order of appearance in the text. Raises ``TypeError``
    only when ``text`` is not a string.
    """

    if not isinstance(text, str):
        raise TypeError(f"parse_transactions expects str, got {type(text).__name__}")

    lines = [ln.strip() for ln in text.splitlines()]
    found: list[ParsedTransaction] = []
    for i, line in enumerate(lines):
        if not line:
            continue
        candidate = _candidate_at(lines, i)
        if candidate is not None:
            found.append(candidate)

    unique = dedupe_transactions(found)
    # sorted() is stable under reverse=True, so same-day rows keep text order.
    ordered = sorted(unique, key=lambda c: c.date, reverse=True)
    _logger.info(
        "parser:done lines=%d candidates=%d unique=%d",
        len(lines),
        len(found),
        len(ordered),
    )
    return ordered


__all__ = [
    "parse_transactions",
    "dedupe_transactions",
    "MAX_DESCRIPTION_LEN",
    "AMOUNT_LOOKAHEAD",
]
