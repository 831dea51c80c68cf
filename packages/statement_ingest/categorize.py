"""Transaction categorization: OpenAI primary, keyword fallback.

Public API:
    - :class:`Classifier` (strategy protocol)
    - :class:`OpenAIClassifier` and :class:`KeywordClassifier` (strategies)
    - :class:`ResilientCategorizer` (policy: try primary, fall back)
    - :func:`build_categorizer`, :func:`categorize`, :func:`categorize_batch`

The primary classifier raises :class:`~statement_ingest.errors.ClassifierError`
on any failure. The policy catches exactly that and answers from the keyword
table, so every call returns a usable suggestion. No side effects occur at
import time (no client creation, no environment reads).
"""

from __future__ import annotations

import itertools
import json
import random
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from decimal import InvalidOperation
from typing import Any, Protocol

from openai import APIStatusError, OpenAI
from openai.types.responses import ResponseTextConfigParam

from . import prompting
from .categories import UNCATEGORIZED, match_keyword
from .categorization import DEFAULT_CONFIDENCE, parse_and_align_suggestions, parse_suggestion
from .config import Settings
from .errors import ClassifierError
from .logging_setup import get_logger
from .models import CategorizationItem, CategorySuggestion

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 2
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20
_PAGE_CONCURRENCY: int = 4

KEYWORD_CONFIDENCE: float = 0.7
NO_MATCH_REASONING = "No clear category pattern found"

_logger = get_logger("statement_ingest.categorize")


# ---- Strategy interface ------------------------------------------------------


class Classifier(Protocol):
    def classify(self, description: str, amount: Any) -> CategorySuggestion: ...

    def classify_batch(self, items: Sequence[CategorizationItem]) -> list[CategorySuggestion]: ...


class KeywordClassifier:
    """Deterministic substring rules over the lower-cased description."""

    def classify(self, description: str, amount: Any = None) -> CategorySuggestion:
        hit = match_keyword(description)
        if hit is None:
            return CategorySuggestion(
                category_name=UNCATEGORIZED,
                confidence=DEFAULT_CONFIDENCE,
                reasoning=NO_MATCH_REASONING,
            )
        category, keyword = hit
        return CategorySuggestion(
            category_name=category,
            confidence=KEYWORD_CONFIDENCE,
            reasoning=f"Matched keyword {keyword!r} for {category}",
        )

    def classify_batch(self, items: Sequence[CategorizationItem]) -> list[CategorySuggestion]:
        return [self.classify(desc, amount) for desc, amount in items]


# ---- OpenAI strategy ---------------------------------------------------------


def _create_client(*, api_key: str | None, timeout_sec: float) -> OpenAI:
    # SDK-level retries are disabled; retry policy lives in _request().
    return OpenAI(api_key=api_key, timeout=timeout_sec, max_retries=0)


def _extract_response_json(resp: Any) -> Any:
    """Decode the JSON document from an OpenAI Responses SDK result.

    Prefer ``resp.output_text``; fall back to ``resp.output[0].content[0].text``.
    Raise ``ValueError`` when no text is present or it is not JSON.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    base = _BACKOFF_SCHEDULE_SEC[min(attempt_no - 1, len(_BACKOFF_SCHEDULE_SEC) - 1)]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def _encode_items(items: Sequence[CategorizationItem]) -> str:
    try:
        return prompting.build_user_content(items)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ClassifierError(f"cannot encode transactions for the classifier: {e}") from e


class OpenAIClassifier:
    """Primary classifier backed by the OpenAI Responses API.

    Output is constrained by a strict JSON schema whose category field is the
    fixed enumeration; a low temperature keeps repeated runs stable. Any
    failure (network, timeout, HTTP error, unusable output) is raised as
    ``ClassifierError``.
    """

    def __init__(
        self,
        *,
        model: str,
        timeout_sec: float,
        temperature: float = 0.1,
        api_key: str | None = None,
    ) -> None:
        self._model = model
        self._timeout_sec = timeout_sec
        self._temperature = temperature
        self._api_key = api_key
        self._client: OpenAI | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIClassifier:
        return cls(
            model=settings.openai_model,
            timeout_sec=settings.classifier_timeout_sec,
            temperature=settings.temperature,
            api_key=settings.openai_api_key,
        )

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = _create_client(api_key=self._api_key, timeout_sec=self._timeout_sec)
        return self._client

    def _request(
        self,
        *,
        instructions: str,
        user_content: str,
        text_cfg: ResponseTextConfigParam,
        n: int,
    ) -> Any:
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = self._get_client().responses.create(
                    model=self._model,
                    instructions=instructions,
                    input=user_content,
                    text=text_cfg,
                    temperature=self._temperature,
                )
                decoded = _extract_response_json(resp)
            except APIStatusError as e:
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt < _MAX_ATTEMPTS and _is_retryable(e):
                    _logger.warning(
                        "classifier:retry count=%d latency_ms=%.2f status=%d attempt=%d",
                        n,
                        dt_ms,
                        e.status_code,
                        attempt,
                    )
                    _sleep_backoff(attempt)
                    attempt += 1
                    continue
                raise ClassifierError(f"classifier HTTP error {e.status_code}: {e}") from e
            except Exception as e:  # noqa: BLE001
                dt_ms = (time.perf_counter() - t0) * 1000.0
                _logger.warning(
                    "classifier:failed count=%d latency_ms=%.2f error=%s",
                    n,
                    dt_ms,
                    e.__class__.__name__,
                )
                raise ClassifierError(f"classifier call failed: {e}") from e

            _logger.info(
                "classifier:done count=%d latency_ms=%.2f",
                n,
                (time.perf_counter() - t0) * 1000.0,
            )
            return decoded

    def classify(self, description: str, amount: Any) -> CategorySuggestion:
        decoded = self._request(
            instructions=prompting.build_system_instructions(batch=False),
            user_content=_encode_items([(description, amount)]),
            text_cfg=ResponseTextConfigParam(format=prompting.build_single_response_format()),
            n=1,
        )
        try:
            return parse_suggestion(decoded)
        except ValueError as e:
            raise ClassifierError(f"unusable classifier output: {e}") from e

    def classify_batch(self, items: Sequence[CategorizationItem]) -> list[CategorySuggestion]:
        decoded = self._request(
            instructions=prompting.build_system_instructions(batch=True),
            user_content=_encode_items(items),
            text_cfg=ResponseTextConfigParam(format=prompting.build_batch_response_format()),
            n=len(items),
        )
        try:
            return parse_and_align_suggestions(decoded, num_items=len(items))
        except ValueError as e:
            raise ClassifierError(f"malformed batch output: {e}") from e


# ---- Resilience policy -------------------------------------------------------


class ResilientCategorizer:
    """Try the primary classifier; answer from keyword rules when it fails.

    Parameters
    ----------
    primary:
        The preferred classifier, or ``None`` to use keyword rules only.
    fallback:
        A classifier that never raises. Defaults to :class:`KeywordClassifier`.
    page_size:
        Items per primary batch request.
    """

    def __init__(
        self,
        primary: Classifier | None = None,
        fallback: Classifier | None = None,
        *,
        page_size: int = 25,
        concurrency: int = _PAGE_CONCURRENCY,
    ) -> None:
        if not isinstance(page_size, int) or page_size <= 0:
            raise ValueError("page_size must be a positive integer")
        self._primary = primary
        self._fallback: Classifier = fallback or KeywordClassifier()
        self._page_size = page_size
        self._concurrency = max(1, concurrency)

    @property
    def has_primary(self) -> bool:
        return self._primary is not None

    def categorize(self, description: str, amount: Any) -> CategorySuggestion:
        if self._primary is not None:
            try:
                return self._primary.classify(description, amount)
            except ClassifierError as e:
                _logger.warning("categorize:fallback reason=%s", e)
        return self._fallback.classify(description, amount)

    def _categorize_page(
        self, primary: Classifier, page_index: int, page: list[CategorizationItem]
    ) -> list[CategorySuggestion]:
        try:
            results = primary.classify_batch(page)
        except ClassifierError as e:
            _logger.warning(
                "categorize_batch:page_fallback page_index=%d count=%d reason=%s",
                page_index,
                len(page),
                e,
            )
            return [self.categorize(desc, amount) for desc, amount in page]
        if len(results) != len(page):
            _logger.warning(
                "categorize_batch:page_length_mismatch page_index=%d expected=%d got=%d",
                page_index,
                len(page),
                len(results),
            )
            return [self.categorize(desc, amount) for desc, amount in page]
        return results

    def categorize_batch(self, items: Iterable[CategorizationItem]) -> list[CategorySuggestion]:
        """Categorize ``items`` and return one suggestion per item, in order."""

        materialized: list[CategorizationItem] = [(str(d), a) for d, a in items]
        if not materialized:
            return []
        primary = self._primary
        if primary is None:
            return self._fallback.classify_batch(materialized)

        pages = [
            materialized[base : base + self._page_size]
            for base in range(0, len(materialized), self._page_size)
        ]
        if len(pages) == 1:
            page_results = [self._categorize_page(primary, 0, pages[0])]
        else:
            workers = min(self._concurrency, len(pages))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                page_results = list(
                    pool.map(
                        self._categorize_page, itertools.repeat(primary), range(len(pages)), pages
                    )
                )

        out = [s for page in page_results for s in page]
        if len(out) != len(materialized):  # pragma: no cover - guarded per page
            raise RuntimeError(
                f"Internal error: {len(out)} suggestions for {len(materialized)} items"
            )
        _logger.info("categorize_batch:done count=%d pages=%d", len(out), len(pages))
        return out


# ---- Convenience entry points ------------------------------------------------


def build_categorizer(settings: Settings) -> ResilientCategorizer:
    """Return the categorizer for ``settings``.

    The OpenAI classifier is enabled only when an API key is configured.
    """

    primary = OpenAIClassifier.from_settings(settings) if settings.openai_api_key else None
    return ResilientCategorizer(primary, page_size=settings.batch_page_size)


def categorize(
    description: str, amount: Any, *, settings: Settings | None = None
) -> CategorySuggestion:
    return build_categorizer(settings or Settings.from_env()).categorize(description, amount)


def categorize_batch(
    items: Iterable[CategorizationItem], *, settings: Settings | None = None
) -> list[CategorySuggestion]:
    return build_categorizer(settings or Settings.from_env()).categorize_batch(items)


__all__ = [
    "Classifier",
    "KeywordClassifier",
    "OpenAIClassifier",
    "ResilientCategorizer",
    "build_categorizer",
    "categorize",
    "categorize_batch",
    "KEYWORD_CONFIDENCE",
]
