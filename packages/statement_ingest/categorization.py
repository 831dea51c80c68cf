"""Validation of classifier output into :class:`CategorySuggestion` values.

Two levels of trust apply:

- A response that is structurally unusable (not an object, a batch that is
  not a list of the right length, misaligned ``idx`` values) raises
  ``ValueError``. The caller treats that as a classifier failure.
- A structurally sound item with a bad field is repaired in place: an
  unknown or missing label becomes ``Uncategorized`` at confidence 0.5, a
  missing confidence becomes 0.5, and every confidence is clamped into
  ``[0.1, 1.0]``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .categories import UNCATEGORIZED, is_known_category
from .models import CategorySuggestion

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0
DEFAULT_CONFIDENCE = 0.5

UNKNOWN_LABEL_REASONING = "Could not determine appropriate category"
DEFAULT_REASONING = "AI categorization"


def clamp_confidence(value: float | None) -> float:
    """Clamp into ``[0.1, 1.0]``; ``None`` maps to the 0.5 default."""

    if value is None:
        return DEFAULT_CONFIDENCE
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, float(value)))


class _SuggestionItem(BaseModel):
    """Lenient view of one classifier answer.

    Field validators run in ``before`` mode and turn anything unusable into
    ``None`` instead of failing, so a single odd field never discards the
    rest of the answer.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    category_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("categoryName", "category_name", "category"),
    )
    confidence: float | None = None
    reasoning: str | None = None

    @field_validator("category_name", "reasoning", mode="before")
    @classmethod
    def _text_or_none(cls, v: Any) -> str | None:
        if not isinstance(v, str):
            return None
        s = v.strip()
        return s or None

    @field_validator("confidence", mode="before")
    @classmethod
    def _number_or_none(cls, v: Any) -> float | None:
        if isinstance(v, bool):
            return None
        if isinstance(v, str):
            try:
                v = float(v.strip())
            except ValueError:
                return None
        if isinstance(v, (int, float)) and math.isfinite(float(v)):
            return float(v)
        return None

    def to_suggestion(self) -> CategorySuggestion:
        if self.category_name is None or not is_known_category(self.category_name):
            return CategorySuggestion(
                category_name=UNCATEGORIZED,
                confidence=DEFAULT_CONFIDENCE,
                reasoning=UNKNOWN_LABEL_REASONING,
            )
        return CategorySuggestion(
            category_name=self.category_name,
            confidence=clamp_confidence(self.confidence),
            reasoning=self.reasoning or DEFAULT_REASONING,
        )


class _BatchItem(_SuggestionItem):
    idx: int


class _BatchBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: list[_BatchItem]


def parse_suggestion(body: Any) -> CategorySuggestion:
    """Validate a single-item response body.

    Raises ``ValueError`` when ``body`` is not a JSON object.
    """

    if not isinstance(body, Mapping):
        raise ValueError("Invalid response: expected a JSON object at top level")
    return _SuggestionItem.model_validate(body).to_suggestion()


def parse_and_align_suggestions(body: Any, *, num_items: int) -> list[CategorySuggestion]:
    """Validate a batch response and align results by page-relative ``idx``.

    ``body`` is either ``{"results": [...]}`` or a bare list. Each element
    must be an object with an integer ``idx``; indices must cover
    ``0..num_items-1`` exactly once.
    """

    if isinstance(body, list):
        body = {"results": body}
    if not isinstance(body, Mapping):
        raise ValueError("Invalid response: expected a JSON object or array at top level")

    # pydantic.ValidationError is a ValueError; callers handle both alike.
    parsed = _BatchBody.model_validate(body)
    if len(parsed.results) != num_items:
        raise ValueError(
            f"Invalid response: expected {num_items} results, got {len(parsed.results)}"
        )

    out: list[CategorySuggestion | None] = [None] * num_items
    for item in parsed.results:
        idx = item.idx
        if not (0 <= idx < num_items):
            raise ValueError(f"Invalid response: 'idx' out of range: {idx}")
        if out[idx] is not None:
            raise ValueError(f"Invalid response: duplicate idx {idx}")
        out[idx] = item.to_suggestion()

    missing = [i for i, v in enumerate(out) if v is None]
    if missing:  # pragma: no cover - implied by length + uniqueness checks
        raise ValueError(f"Invalid response: missing indices {missing}")
    return [s for s in out if s is not None]


__all__ = [
    "MIN_CONFIDENCE",
    "MAX_CONFIDENCE",
    "DEFAULT_CONFIDENCE",
    "UNKNOWN_LABEL_REASONING",
    "DEFAULT_REASONING",
    "clamp_confidence",
    "parse_suggestion",
    "parse_and_align_suggestions",
]
