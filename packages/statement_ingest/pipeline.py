"""One statement-processing run: extract, parse, categorize, persist.

A run moves through ``received -> extracting -> parsing -> categorizing ->
persisting`` and ends in ``completed`` or ``failed``. Every transition is
written to storage so pollers can follow progress. Categorization never
fails a run because the categorizer always answers (keyword fallback).

Persistence is row by row without a surrounding transaction: a failure
mid-way marks the run ``failed`` and rows already written stay.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Protocol, TypeAlias

from .errors import ExtractionError, SheetsNotConnectedError
from .extract import extract_text
from .logging_setup import get_logger
from .models import (
    CategorizationItem,
    CategorySuggestion,
    ParsedTransaction,
    PersistableTransaction,
    PipelineResult,
    StatementStatus,
)
from .parser import parse_transactions
from .review import sync_to_sheet
from .storage import SpreadsheetSink, Storage

DEFAULT_REVIEW_THRESHOLD = 0.8

Extractor: TypeAlias = Callable[..., str]

_logger = get_logger("statement_ingest.pipeline")


class BatchCategorizer(Protocol):
    def categorize_batch(self, items: Sequence[CategorizationItem]) -> list[CategorySuggestion]: ...


def build_persistable(
    candidate: ParsedTransaction,
    suggestion: CategorySuggestion,
    *,
    owner_id: int,
    statement_id: int,
    category_ids: Mapping[str, int],
    review_threshold: float = DEFAULT_REVIEW_THRESHOLD,
) -> PersistableTransaction:
    """Merge a candidate and its suggestion into a storable transaction."""

    return PersistableTransaction(
        owner_id=owner_id,
        statement_id=statement_id,
        date=candidate.date,
        description=candidate.description,
        amount=candidate.amount,
        category_id=category_ids.get(suggestion.category_name),
        needs_review=suggestion.confidence < review_threshold,
        raw_data={
            "original_text": candidate.raw_text,
            "ai_category": suggestion.category_name,
            "ai_confidence": suggestion.confidence,
            "ai_reasoning": suggestion.reasoning,
        },
    )


class StatementPipeline:
    """State machine for a single statement.

    ``run`` may be called once. It does not raise for processing errors: any
    error from extraction, parsing, category seeding or persistence ends the
    run in ``failed``.
    """

    def __init__(
        self,
        statement_id: int,
        owner_id: int,
        *,
        storage: Storage,
        categorizer: BatchCategorizer,
        sink: SpreadsheetSink | None = None,
        extractor: Extractor = extract_text,
        review_threshold: float = DEFAULT_REVIEW_THRESHOLD,
    ) -> None:
        self.statement_id = statement_id
        self.owner_id = owner_id
        self._storage = storage
        self._categorizer = categorizer
        self._sink = sink
        self._extractor = extractor
        self._review_threshold = review_threshold
        self.status = StatementStatus.RECEIVED
        self.transitions: list[StatementStatus] = [StatementStatus.RECEIVED]
        self.transaction_count = 0

    def _transition(self, status: StatementStatus, *, count: int | None = None) -> None:
        if self.status.is_terminal:
            raise RuntimeError(f"statement {self.statement_id} already {self.status}")
        self._storage.update_statement_status(self.statement_id, status.value, count)
        self.status = status
        self.transitions.append(status)
        _logger.info(
            "pipeline:transition statement_id=%d status=%s", self.statement_id, status.value
        )

    def _fail(self) -> PipelineResult:
        try:
            self._storage.update_statement_status(
                self.statement_id, StatementStatus.FAILED.value, self.transaction_count
            )
        except Exception:  # noqa: BLE001
            _logger.exception(
                "pipeline:status_write_failed statement_id=%d status=failed", self.statement_id
            )
        self.status = StatementStatus.FAILED
        self.transitions.append(StatementStatus.FAILED)
        return self._result()

    def _result(self) -> PipelineResult:
        return PipelineResult(
            statement_id=self.statement_id,
            status=self.status,
            transaction_count=self.transaction_count,
        )

    def run(self, data: bytes, filename: str | None = None) -> PipelineResult:
        if self.status is not StatementStatus.RECEIVED:
            raise RuntimeError(f"statement {self.statement_id} already {self.status}")
        try:
            self._transition(StatementStatus.EXTRACTING)
            text = self._extractor(data, filename=filename)

            self._transition(StatementStatus.PARSING)
            candidates = parse_transactions(text)

            self._transition(StatementStatus.CATEGORIZING)
            categories = self._storage.ensure_default_categories(self.owner_id)
            category_ids = {c.name: c.id for c in categories}
            suggestions = self._categorizer.categorize_batch(
                [(c.description, c.amount) for c in candidates]
            )
            if len(suggestions) != len(candidates):
                raise RuntimeError(
                    f"categorizer returned {len(suggestions)} suggestions "
                    f"for {len(candidates)} transactions"
                )

            self._transition(StatementStatus.PERSISTING)
            for candidate, suggestion in zip(candidates, suggestions, strict=True):
                self._storage.create_transaction(
                    build_persistable(
                        candidate,
                        suggestion,
                        owner_id=self.owner_id,
                        statement_id=self.statement_id,
                        category_ids=category_ids,
                        review_threshold=self._review_threshold,
                    )
                )
                self.transaction_count += 1

            self._transition(StatementStatus.COMPLETED, count=self.transaction_count)
        except ExtractionError as e:
            _logger.error(
                "pipeline:extraction_failed statement_id=%d error=%s", self.statement_id, e
            )
            return self._fail()
        except Exception:  # noqa: BLE001
            _logger.exception(
                "pipeline:failed statement_id=%d stage=%s persisted=%d",
                self.statement_id,
                self.status.value,
                self.transaction_count,
            )
            return self._fail()

        self._mirror_to_sheet()
        return self._result()

    def _mirror_to_sheet(self) -> None:
        if self._sink is None:
            return
        try:
            rows = sync_to_sheet(self._storage, self._sink, self.owner_id)
        except SheetsNotConnectedError:
            _logger.debug("pipeline:sheet_sync_skipped owner_id=%d", self.owner_id)
        except Exception:  # noqa: BLE001
            _logger.exception("pipeline:sheet_sync_failed statement_id=%d", self.statement_id)
        else:
            _logger.info(
                "pipeline:sheet_synced statement_id=%d rows=%d", self.statement_id, rows
            )


__all__ = [
    "StatementPipeline",
    "BatchCategorizer",
    "build_persistable",
    "DEFAULT_REVIEW_THRESHOLD",
]
