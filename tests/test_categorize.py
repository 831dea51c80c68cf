# ruff: noqa: I001
from __future__ import annotations

import importlib
import threading
import time
from decimal import Decimal
from typing import Any

import httpx
import openai
import pytest

from statement_ingest.categories import UNCATEGORIZED
from statement_ingest.categorize import (
    KEYWORD_CONFIDENCE,
    KeywordClassifier,
    OpenAIClassifier,
    ResilientCategorizer,
    build_categorizer,
    categorize,
    categorize_batch,
)
from statement_ingest.config import Settings
from statement_ingest.errors import ClassifierError
from statement_ingest.models import CategorySuggestion
from tests.helpers.openai_stub import OpenAIStub, by_keyword

# The package re-exports the ``categorize`` function, which shadows the submodule attribute.
categorize_mod = importlib.import_module("statement_ingest.categorize")

_REQ = httpx.Request("POST", "https://api.openai.com/v1/responses")


def _status_error(code: int) -> openai.APIStatusError:
    resp = httpx.Response(code, request=_REQ, json={"error": {"message": "boom"}})
    return openai.APIStatusError("boom", response=resp, body=None)


def _timeout() -> openai.APITimeoutError:
    return openai.APITimeoutError(request=_REQ)


@pytest.fixture
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[int]:
    slept: list[int] = []
    monkeypatch.setattr(categorize_mod, "_sleep_backoff", lambda attempt: slept.append(attempt))
    return slept


def _install(monkeypatch: pytest.MonkeyPatch, stub: OpenAIStub) -> OpenAIStub:
    monkeypatch.setattr(categorize_mod, "OpenAI", stub)
    return stub


def _classifier() -> OpenAIClassifier:
    return OpenAIClassifier(model="gpt-test", timeout_sec=3.0, api_key="sk-test")


_TABLE = {"whole foods": "Groceries", "shell": "Transportation", "rent": "Housing"}


# ---- Keyword fallback ----------------------------------------------------------


def test_keyword_classifier_match() -> None:
    s = KeywordClassifier().classify("SHELL GAS STATION", Decimal("-40.00"))
    assert s.category_name == "Transportation"
    assert s.confidence == KEYWORD_CONFIDENCE == 0.7
    assert "Transportation" in s.reasoning


def test_keyword_classifier_no_match() -> None:
    s = KeywordClassifier().classify("ZELLE TO J SMITH", Decimal("-40.00"))
    assert s == CategorySuggestion(UNCATEGORIZED, 0.5, categorize_mod.NO_MATCH_REASONING)


def test_without_api_key_only_keyword_rules_are_used(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(*a: Any, **kw: Any) -> None:
        raise AssertionError("OpenAI client must not be created without an API key")

    monkeypatch.setattr(categorize_mod, "OpenAI", _boom)

    s = categorize("SHELL GAS STATION", -40)
    assert (s.category_name, s.confidence) == ("Transportation", 0.7)
    assert not build_categorizer(Settings()).has_primary


# ---- OpenAI classifier ---------------------------------------------------------


def test_classify_single_sends_schema_and_parses(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, OpenAIStub(by_keyword(_TABLE)))

    s = _classifier().classify("WHOLE FOODS MARKET", Decimal("-45.23"))

    assert s.category_name == "Groceries"
    assert s.confidence == 0.95
    (call,) = stub.calls
    assert call["model"] == "gpt-test"
    assert call["temperature"] == 0.1
    assert call["text"]["format"]["name"] == "transaction_category"
    assert stub.client_kwargs == [{"api_key": "sk-test", "timeout": 3.0, "max_retries": 0}]


def test_client_is_created_once(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, OpenAIStub(by_keyword(_TABLE)))
    clf = _classifier()
    clf.classify("RENT", -1)
    clf.classify_batch([("RENT", -1), ("SHELL", -2)])
    assert len(stub.client_kwargs) == 1
    assert len(stub.calls) == 2


def test_classify_retries_once_on_429(monkeypatch: pytest.MonkeyPatch, no_sleep) -> None:
    stub = _install(monkeypatch, OpenAIStub(by_keyword(_TABLE), failures=[_status_error(429)]))

    s = _classifier().classify("RENT PAYMENT", -1500)

    assert s.category_name == "Housing"
    assert len(stub.calls) == 2
    assert no_sleep == [1]


def test_classify_gives_up_after_two_5xx(monkeypatch: pytest.MonkeyPatch, no_sleep) -> None:
    stub = _install(
        monkeypatch,
        OpenAIStub(by_keyword(_TABLE), failures=[_status_error(503), _status_error(502)]),
    )
    with pytest.raises(ClassifierError):
        _classifier().classify("RENT PAYMENT", -1500)
    assert len(stub.calls) == 2


def test_classify_does_not_retry_400(monkeypatch: pytest.MonkeyPatch, no_sleep) -> None:
    stub = _install(monkeypatch, OpenAIStub(by_keyword(_TABLE), failures=[_status_error(400)]))
    with pytest.raises(ClassifierError):
        _classifier().classify("RENT PAYMENT", -1500)
    assert len(stub.calls) == 1
    assert no_sleep == []


def test_timeout_raises_classifier_error(monkeypatch: pytest.MonkeyPatch, no_sleep) -> None:
    _install(monkeypatch, OpenAIStub(by_keyword(_TABLE), failures=[_timeout()]))
    with pytest.raises(ClassifierError):
        _classifier().classify("RENT PAYMENT", -1500)


def test_non_json_output_raises_classifier_error(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Client:
        def __init__(self, **kw: Any) -> None:
            self.responses = self

        def create(self, **kw: Any):
            class _R:
                output_text = "Groceries, probably"

            return _R()

    monkeypatch.setattr(categorize_mod, "OpenAI", _Client)
    with pytest.raises(ClassifierError):
        _classifier().classify("WHOLE FOODS", -1)


def test_output_fallback_shape_is_read(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = '{"categoryName": "Utilities", "confidence": 0.9, "reasoning": "power bill"}'

    class _Text:
        text = payload

    class _Msg:
        content = [_Text()]

    class _Client:
        def __init__(self, **kw: Any) -> None:
            self.responses = self

        def create(self, **kw: Any):
            class _R:
                output_text = None
                output = [_Msg()]

            return _R()

    monkeypatch.setattr(categorize_mod, "OpenAI", _Client)
    assert _classifier().classify("PG&E", -80).category_name == "Utilities"


# ---- Resilience policy ---------------------------------------------------------


def test_single_falls_back_to_keywords_on_timeout(
    monkeypatch: pytest.MonkeyPatch, no_sleep
) -> None:
    _install(monkeypatch, OpenAIStub(by_keyword(_TABLE), failures=[_timeout()]))

    s = ResilientCategorizer(_classifier()).categorize("SHELL GAS STATION", -40)

    assert (s.category_name, s.confidence) == ("Transportation", 0.7)


def test_batch_pages_and_preserves_order(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, OpenAIStub(by_keyword(_TABLE)))
    items = [("WHOLE FOODS", -1), ("SHELL", -2), ("RENT", -3), ("MYSTERY", -4), ("RENT", -5)]

    out = ResilientCategorizer(_classifier(), page_size=2).categorize_batch(items)

    assert [s.category_name for s in out] == [
        "Groceries",
        "Transportation",
        "Housing",
        UNCATEGORIZED,
        "Housing",
    ]
    assert len(stub.calls) == 3
    assert {c["text"]["format"]["name"] for c in stub.calls} == {"transaction_categories"}


def test_batch_failed_page_is_retried_per_item(monkeypatch: pytest.MonkeyPatch, no_sleep) -> None:
    # First call (the batch) times out; per-item calls then succeed.
    stub = _install(monkeypatch, OpenAIStub(by_keyword(_TABLE), failures=[_timeout()]))

    out = ResilientCategorizer(_classifier(), page_size=10).categorize_batch(
        [("WHOLE FOODS", -1), ("SHELL", -2), ("MYSTERY", -3)]
    )

    assert [s.category_name for s in out] == ["Groceries", "Transportation", UNCATEGORIZED]
    assert [s.confidence for s in out] == [0.95, 0.95, 0.3]
    assert len(stub.calls) == 4


def test_batch_total_outage_uses_keywords_for_every_item(
    monkeypatch: pytest.MonkeyPatch, no_sleep
) -> None:
    stub = _install(
        monkeypatch, OpenAIStub(by_keyword(_TABLE), failures=[_timeout() for _ in range(20)])
    )
    items = [("SHELL GAS", -1), ("NETFLIX", -2), ("ZELLE", -3)]

    out = ResilientCategorizer(_classifier(), page_size=2).categorize_batch(items)

    assert len(out) == len(items)
    assert [s.category_name for s in out] == ["Transportation", "Entertainment", UNCATEGORIZED]
    assert all(s.confidence in (0.7, 0.5) for s in out)
    assert stub.calls


def test_batch_length_mismatch_is_retried_per_item() -> None:
    class _Short:
        def classify(self, description: str, amount: Any) -> CategorySuggestion:
            return CategorySuggestion("Housing", 0.9, "single")

        def classify_batch(self, items):
            return [CategorySuggestion("Housing", 0.9, "batch")]

    out = ResilientCategorizer(_Short()).categorize_batch([("A", 1), ("B", 2)])
    assert [s.reasoning for s in out] == ["single", "single"]


def test_batch_pages_run_concurrently() -> None:
    lock = threading.Lock()
    state = {"inflight": 0, "max": 0}

    class _Slow:
        def classify(self, description: str, amount: Any) -> CategorySuggestion:
            raise AssertionError("per-item path not expected")

        def classify_batch(self, items):
            with lock:
                state["inflight"] += 1
                state["max"] = max(state["max"], state["inflight"])
            time.sleep(0.05)
            with lock:
                state["inflight"] -= 1
            return [CategorySuggestion("Utilities", 0.9, "ok") for _ in items]

    items = [(f"ITEM {i}", i) for i in range(8)]
    out = ResilientCategorizer(_Slow(), page_size=2, concurrency=4).categorize_batch(items)

    assert len(out) == 8
    assert state["max"] > 1


def test_empty_batch_returns_empty_list() -> None:
    assert ResilientCategorizer().categorize_batch([]) == []
    assert categorize_batch([]) == []


def test_build_categorizer_with_api_key_enables_primary() -> None:
    settings = Settings(openai_api_key="sk-test", batch_page_size=7)
    assert build_categorizer(settings).has_primary


def test_invalid_page_size_rejected() -> None:
    with pytest.raises(ValueError):
        ResilientCategorizer(page_size=0)


def test_classifier_error_is_not_raised_to_callers(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Broken:
        def classify(self, description: str, amount: Any) -> CategorySuggestion:
            raise ClassifierError("down")

        def classify_batch(self, items):
            raise ClassifierError("down")

    out = ResilientCategorizer(_Broken()).categorize_batch([("UBER TRIP", -12)])
    assert out[0].category_name == "Transportation"


def test_unencodable_amount_raises_classifier_error_without_a_request(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    stub = _install(monkeypatch, OpenAIStub(by_keyword(_TABLE)))

    with pytest.raises(ClassifierError):
        _classifier().classify("SHELL GAS STATION", "forty")
    assert stub.calls == []


def test_unencodable_amount_falls_back_to_keywords(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, OpenAIStub(by_keyword(_TABLE)))
    categorizer = ResilientCategorizer(_classifier())

    single = categorizer.categorize("SHELL GAS STATION", "forty")
    batch = categorizer.categorize_batch([("WHOLE FOODS", -1), ("SHELL GAS", "n/a")])

    assert (single.category_name, single.confidence) == ("Transportation", 0.7)
    # The page cannot be encoded; the good item is classified on its own.
    assert [(s.category_name, s.confidence) for s in batch] == [
        ("Groceries", 0.95),
        ("Transportation", 0.7),
    ]
    assert len(stub.calls) == 1
