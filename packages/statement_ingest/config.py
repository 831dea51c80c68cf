"""Runtime settings resolved from environment variables.

The CLI loads a local ``.env`` (``python-dotenv``) before calling
:meth:`Settings.from_env`; library code receives a ``Settings`` instance and
never reads the environment on its own.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_MODEL = "gpt-4o"
DEFAULT_MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if math.isfinite(value) else default


def _env_int(env: Mapping[str, str], key: str, default: int, *, minimum: int = 1) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


@dataclass(frozen=True, slots=True)
class Settings:
    """Tunables for one process.

    Attributes
    ----------
    openai_api_key:
        Enables the primary (OpenAI) classifier when set. Without it the
        categorizer uses keyword rules only.
    openai_model:
        Model name for Responses API calls.
    classifier_timeout_sec:
        Per-request timeout; a timeout triggers the keyword fallback.
    temperature:
        Sampling temperature; kept low so repeated runs agree.
    batch_page_size:
        Transactions per batch classifier request.
    review_threshold:
        Suggestions with confidence below this are flagged for review.
    max_document_bytes:
        Upload size limit enforced before a run is created.
    max_workers:
        Concurrent statement runs in the task queue.
    database_url:
        SQLAlchemy URL for :class:`statement_ingest.persistence.SqlStorage`.
    """

    openai_api_key: str | None = None
    openai_model: str = DEFAULT_MODEL
    classifier_timeout_sec: float = 30.0
    temperature: float = 0.1
    batch_page_size: int = 25
    review_threshold: float = 0.8
    max_document_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES
    max_workers: int = 4
    database_url: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        e = os.environ if env is None else env
        api_key = (e.get("OPENAI_API_KEY") or "").strip() or None
        model = (e.get("STATEMENT_INGEST_OPENAI_MODEL") or "").strip() or DEFAULT_MODEL
        return cls(
            openai_api_key=api_key,
            openai_model=model,
            classifier_timeout_sec=_env_float(e, "STATEMENT_INGEST_CLASSIFIER_TIMEOUT", 30.0),
            temperature=_env_float(e, "STATEMENT_INGEST_TEMPERATURE", 0.1),
            batch_page_size=_env_int(e, "STATEMENT_INGEST_BATCH_PAGE_SIZE", 25),
            review_threshold=_env_float(e, "STATEMENT_INGEST_REVIEW_THRESHOLD", 0.8),
            max_document_bytes=_env_int(
                e, "STATEMENT_INGEST_MAX_DOCUMENT_BYTES", DEFAULT_MAX_DOCUMENT_BYTES
            ),
            max_workers=_env_int(e, "STATEMENT_INGEST_MAX_WORKERS", 4),
            database_url=(e.get("DATABASE_URL") or "").strip() or None,
        )


__all__ = ["Settings", "DEFAULT_MODEL", "DEFAULT_MAX_DOCUMENT_BYTES"]
