"""Local spreadsheet sink.

:class:`CsvExportSink` keeps ``<directory>/<target_id>.csv`` as a full mirror
of the rows it is given. Each sync rewrites the file, so repeated syncs of the
same rows leave the same file. The access token is not used by a local file
target; it is still required upstream so CLI runs behave like a hosted sheet.
"""

from __future__ import annotations

import csv
import os
from collections.abc import Sequence
from pathlib import Path

from .logging_setup import get_logger
from .models import SheetRow

HEADER = ("Date", "Description", "Amount", "Category")

_logger = get_logger("statement_ingest.sinks")


class CsvExportSink:
    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def path_for(self, target_id: str) -> Path:
        name = target_id.strip()
        if not name or Path(name).name != name or name in (".", ".."):
            raise ValueError(f"invalid spreadsheet id for a file target: {target_id!r}")
        return self.directory / f"{name}.csv"

    def sync_transactions(
        self, credentials: str, target_id: str, rows: Sequence[SheetRow]
    ) -> None:
        path = self.path_for(target_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".csv.tmp")
        with tmp.open("w", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh)
            writer.writerow(HEADER)
            writer.writerows(rows)
        os.replace(tmp, path)
        _logger.info("sinks:csv_written path=%s rows=%d", path, len(rows))


__all__ = ["CsvExportSink", "HEADER"]
