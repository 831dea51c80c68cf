"""Category enumeration, default seed set and keyword fallback rules.

The classifier may only answer with a name from :data:`CATEGORY_NAMES`.
:data:`DEFAULT_CATEGORIES` is what storage seeds once per owner, so every
name a suggestion can carry resolves to a stored category.
"""

from __future__ import annotations

from .models import CategorySpec

UNCATEGORIZED = "Uncategorized"

DEFAULT_CATEGORIES: tuple[CategorySpec, ...] = (
    CategorySpec("Groceries", "#3B82F6", "fas fa-shopping-cart"),
    CategorySpec("Housing", "#10B981", "fas fa-home"),
    CategorySpec("Transportation", "#EF4444", "fas fa-gas-pump"),
    CategorySpec("Entertainment", "#8B5CF6", "fas fa-film"),
    CategorySpec("Utilities", "#F59E0B", "fas fa-bolt"),
    CategorySpec("Healthcare", "#EC4899", "fas fa-heartbeat"),
    CategorySpec(UNCATEGORIZED, "#F97316", "fas fa-question"),
)

CATEGORY_NAMES: tuple[str, ...] = tuple(c.name for c in DEFAULT_CATEGORIES)

# Ordered: the first category with a matching keyword wins, so broad
# keywords ("bar", "game") sit below the more specific tables.
KEYWORD_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "Groceries",
        (
            "grocery",
            "market",
            "food",
            "kroger",
            "safeway",
            "whole foods",
            "trader joe",
            "costco",
            "walmart",
        ),
    ),
    (
        "Transportation",
        ("gas", "fuel", "shell", "chevron", "uber", "lyft", "taxi", "parking", "metro"),
    ),
    (
        "Entertainment",
        ("netflix", "spotify", "movie", "theater", "game", "restaurant", "bar", "coffee"),
    ),
    (
        "Utilities",
        ("electric", "power", "water", "internet", "phone", "cable", "utility"),
    ),
    (
        "Healthcare",
        ("pharmacy", "doctor", "medical", "hospital", "clinic", "cvs", "walgreens"),
    ),
    ("Housing", ("rent", "mortgage", "insurance", "hoa")),
)


def is_known_category(name: object) -> bool:
    return isinstance(name, str) and name in CATEGORY_NAMES


def match_keyword(description: str) -> tuple[str, str] | None:
    """Return ``(category, keyword)`` for the first rule matching ``description``."""

    desc = description.lower()
    for category, keywords in KEYWORD_RULES:
        for kw in keywords:
            if kw in desc:
                return category, kw
    return None


__all__ = [
    "UNCATEGORIZED",
    "DEFAULT_CATEGORIES",
    "CATEGORY_NAMES",
    "KEYWORD_RULES",
    "is_known_category",
    "match_keyword",
]
