"""Prompt construction and response schemas for transaction categorization.

This module builds:
- The system instructions for single and batch classification.
- The user content, embedding a deterministic JSON view of the transactions
  between ``BEGIN_TRANSACTIONS_JSON`` / ``END_TRANSACTIONS_JSON`` markers.
- The strict ``json_schema`` text formats for the OpenAI Responses API, with
  the category field constrained to the fixed enumeration.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .categories import CATEGORY_NAMES, UNCATEGORIZED
from .models import CategorizationItem

BEGIN_MARKER = "BEGIN_TRANSACTIONS_JSON"
END_MARKER = "END_TRANSACTIONS_JSON"

_GUIDELINES = (
    "Guidelines:\n"
    "- Choose the most appropriate category based on the description.\n"
    "- Confidence is a number between 0.1 and 1.0.\n"
    f"- If uncertain, use {UNCATEGORIZED!r} with a lower confidence.\n"
    "- Consider common merchant names and transaction patterns.\n"
    "- Negative amounts are debits; positive amounts are credits.\n"
)


def _format_amount(amount: Decimal | float) -> str:
    return f"{Decimal(str(amount)):.2f}"


def serialize_items_to_json(items: Sequence[CategorizationItem]) -> str:
    """Serialize ``(description, amount)`` pairs as ``[{idx, description, amount}]``."""

    arr: list[dict[str, Any]] = [
        {"idx": i, "description": desc, "amount": _format_amount(amount)}
        for i, (desc, amount) in enumerate(items)
    ]
    return json.dumps(arr, ensure_ascii=False)


def build_system_instructions(*, batch: bool) -> str:
    names = ", ".join(CATEGORY_NAMES)
    task = (
        "Categorize each transaction in the provided list"
        if batch
        else "Categorize the single provided transaction"
    )
    return (
        "You are a financial transaction categorization expert. "
        f"{task} into exactly one of these categories: {names}. "
        "Never invent categories. Output JSON only that conforms to the specified schema.\n\n"
        + _GUIDELINES
    )


def build_user_content(items: Sequence[CategorizationItem]) -> str:
    """Embed the transactions JSON between the begin/end markers.

    Results must carry the page-relative ``idx`` of the item they answer.
    """

    return (
        "Categorize these transactions. Return one result per transaction with the "
        "same idx.\n"
        f"{BEGIN_MARKER}\n{serialize_items_to_json(items)}\n{END_MARKER}"
    )


def _suggestion_properties() -> dict[str, Any]:
    return {
        "categoryName": {"type": "string", "enum": list(CATEGORY_NAMES)},
        "confidence": {"type": "number"},
        "reasoning": {"type": "string"},
    }


def build_single_response_format() -> ResponseFormatTextJSONSchemaConfigParam:
    """Schema: ``{"categoryName", "confidence", "reasoning"}``."""

    return {
        "type": "json_schema",
        "name": "transaction_category",
        "schema": {
            "type": "object",
            "properties": _suggestion_properties(),
            "required": ["categoryName", "confidence", "reasoning"],
            "additionalProperties": False,
        },
        "strict": True,
    }


def build_batch_response_format() -> ResponseFormatTextJSONSchemaConfigParam:
    """Schema: ``{"results": [{"idx", "categoryName", "confidence", "reasoning"}]}``."""

    item_props = {"idx": {"type": "integer"}, **_suggestion_properties()}
    return {
        "type": "json_schema",
        "name": "transaction_categories",
        "schema": {
            "type": "object",
            "properties": {
                "results": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": item_props,
                        "required": ["idx", "categoryName", "confidence", "reasoning"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["results"],
            "additionalProperties": False,
        },
        "strict": True,
    }
