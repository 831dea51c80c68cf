"""Background execution of statement pipelines.

``run_pipeline`` records the statement, hands the run to a worker pool and
returns the statement id at once; callers poll :meth:`StatementTaskQueue.status`
(or storage) for progress. Runs for different statements are independent and
may finish in any order. A started run always reaches ``completed`` or
``failed``; only runs still waiting for a worker can be dropped at shutdown.

The queue only tracks runs in flight. Once a run ends, its outcome is read
back from storage.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor

from .categorize import build_categorizer
from .config import DEFAULT_MAX_DOCUMENT_BYTES, Settings
from .errors import DocumentTooLargeError
from .extract import extract_text
from .logging_setup import get_logger
from .models import PipelineResult, StatementMeta, StatementStatus
from .pipeline import DEFAULT_REVIEW_THRESHOLD, BatchCategorizer, Extractor, StatementPipeline
from .storage import SpreadsheetSink, Storage

_logger = get_logger("statement_ingest.tasks")


class StatementTaskQueue:
    """Accepts statement uploads and runs them on a thread pool.

    Use as a context manager, or call :meth:`shutdown` when done, so that
    in-flight runs finish before the process exits.
    """

    def __init__(
        self,
        *,
        storage: Storage,
        categorizer: BatchCategorizer,
        sink: SpreadsheetSink | None = None,
        extractor: Extractor | None = None,
        max_workers: int = 4,
        max_document_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES,
        review_threshold: float = DEFAULT_REVIEW_THRESHOLD,
    ) -> None:
        if not isinstance(max_workers, int) or max_workers < 1:
            raise ValueError("max_workers must be a positive integer")
        self._storage = storage
        self._categorizer = categorizer
        self._sink = sink
        self._extractor = extractor if extractor is not None else extract_text
        self._max_document_bytes = max_document_bytes
        self._review_threshold = review_threshold
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="statement-pipeline"
        )
        self._lock = threading.Lock()
        self._runs: dict[int, tuple[StatementPipeline, Future[PipelineResult]]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        storage: Storage,
        sink: SpreadsheetSink | None = None,
        categorizer: BatchCategorizer | None = None,
    ) -> StatementTaskQueue:
        return cls(
            storage=storage,
            categorizer=categorizer or build_categorizer(settings),
            sink=sink,
            max_workers=settings.max_workers,
            max_document_bytes=settings.max_document_bytes,
            review_threshold=settings.review_threshold,
        )

    def run_pipeline(self, owner_id: int, data: bytes, filename: str) -> int:
        """Record a new statement and start processing it in the background.

        Raises :class:`DocumentTooLargeError` before anything is recorded when
        ``data`` exceeds the size limit.
        """

        if len(data) > self._max_document_bytes:
            raise DocumentTooLargeError(len(data), self._max_document_bytes)

        statement = self._storage.create_statement(
            StatementMeta(owner_id=owner_id, filename=filename, file_size=len(data))
        )
        pipeline = StatementPipeline(
            statement.id,
            owner_id,
            storage=self._storage,
            categorizer=self._categorizer,
            sink=self._sink,
            extractor=self._extractor,
            review_threshold=self._review_threshold,
        )
        with self._lock:
            future = self._pool.submit(pipeline.run, data, filename)
            self._runs[statement.id] = (pipeline, future)
        # Runs immediately when the run already finished.
        future.add_done_callback(lambda _f, sid=statement.id: self._forget(sid))
        _logger.info(
            "tasks:submitted statement_id=%d owner_id=%d filename=%s bytes=%d",
            statement.id,
            owner_id,
            filename,
            len(data),
        )
        return statement.id

    def _forget(self, statement_id: int) -> None:
        with self._lock:
            self._runs.pop(statement_id, None)

    @property
    def in_flight(self) -> int:
        """Number of submitted runs that have not been collected yet."""

        with self._lock:
            return len(self._runs)

    def status(self, statement_id: int) -> StatementStatus | None:
        """Current state of a run; ``None`` for an unknown statement."""

        with self._lock:
            entry = self._runs.get(statement_id)
        if entry is not None:
            return entry[0].status
        rec = self._storage.get_statement(statement_id)
        if rec is None:
            return None
        try:
            return StatementStatus(rec.processing_status)
        except ValueError:
            return None

    def wait(self, statement_id: int, timeout: float | None = None) -> PipelineResult:
        """Block until the run for ``statement_id`` ends and return its result.

        A run that already ended is answered from storage. Raises ``KeyError``
        for a statement that is neither in flight nor finished, and
        ``TimeoutError`` when ``timeout`` elapses.
        """

        with self._lock:
            entry = self._runs.get(statement_id)
        if entry is None:
            return self._stored_result(statement_id)
        result = entry[1].result(timeout=timeout)
        self._forget(statement_id)
        return result

    def _stored_result(self, statement_id: int) -> PipelineResult:
        rec = self._storage.get_statement(statement_id)
        status = self.status(statement_id) if rec is not None else None
        if rec is None or status is None or not status.is_terminal:
            raise KeyError(f"statement {statement_id} is not running on this queue")
        return PipelineResult(
            statement_id=statement_id, status=status, transaction_count=rec.transaction_count
        )

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        """Stop accepting runs.

        With ``cancel_futures`` runs that have not started are dropped; their
        statements stay ``received``. A run already started always finishes.
        """

        self._pool.shutdown(wait=wait, cancel_futures=cancel_futures)

    def __enter__(self) -> StatementTaskQueue:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)


__all__ = ["StatementTaskQueue"]
