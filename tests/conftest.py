"""Pytest configuration for test isolation.

The workspace is not required to be installed: ``packages/`` and the ``db``
library source are put on ``sys.path`` here so ``statement_ingest`` and
``db`` import from the working tree.

Settings are read from the environment, so a developer's ``OPENAI_API_KEY``
or ``DATABASE_URL`` would silently switch tests onto the live classifier or a
real database. An autouse fixture clears them for every test.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PATHS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _PATHS if str(p) not in sys.path]

_ENV_KEYS = (
    "OPENAI_API_KEY",
    "DATABASE_URL",
    "STATEMENT_INGEST_OPENAI_MODEL",
    "STATEMENT_INGEST_CLASSIFIER_TIMEOUT",
    "STATEMENT_INGEST_TEMPERATURE",
    "STATEMENT_INGEST_BATCH_PAGE_SIZE",
    "STATEMENT_INGEST_REVIEW_THRESHOLD",
    "STATEMENT_INGEST_MAX_DOCUMENT_BYTES",
    "STATEMENT_INGEST_MAX_WORKERS",
)


@pytest.fixture(autouse=True)
def _hermetic_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
