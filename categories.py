"""
Category resolution.

Transactions and budgets reach the app with their category in several
shapes: a plain name, a numeric id, an ORM ``Category`` row or a mapping
such as ``{"category_id": 3, "name": "Shopping"}``.  Everything here turns
those shapes into one display name, and :func:`resolve_category` does it
once at load time so downstream code only ever sees a :class:`CategoryRef`.

Resolution never raises: these names end up as UI labels, where a wrong
label is better than a crash.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

INCOME = "Income"
OTHER = "Other"
OTHER_ID = 6

# Sentinels: aggregation uses UNKNOWN, freshly loaded records use UNCATEGORIZED.
UNKNOWN = "Unknown"
UNCATEGORIZED = "Uncategorized"

DEFAULT_CATEGORIES = {
    1: "Food & Dining",
    2: "Transportation",
    3: "Shopping",
    4: "Bills & Utilities",
    5: INCOME,
    6: OTHER,
}

_IDS_BY_NAME = {name: category_id for category_id, name in DEFAULT_CATEGORIES.items()}


@dataclass(frozen=True)
class CategoryRef:
    """Canonical ``{id, name}`` pair; ``id`` is None when only a name was known."""

    id: Optional[int]
    name: str

    @property
    def is_income(self) -> bool:
        return self.name == INCOME


def category_id_for(name: str) -> int:
    """Map a default category name to its id; unknown names map to Other."""
    return _IDS_BY_NAME.get(name, OTHER_ID)


def category_name_for(category_id: int) -> str:
    """Map a default category id to its name; unknown ids map to Other."""
    return DEFAULT_CATEGORIES.get(category_id, OTHER)


def _embedded_name(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        name = value.get("name")
    else:
        name = getattr(value, "name", None)
    return name if isinstance(name, str) else None


def resolve_category_name(value: Any, default: str = UNKNOWN) -> str:
    """
    Return the display name for any supported category shape.

    Args:
        value: Category object/mapping, name string, integer id or None
        default: Sentinel returned when nothing can be resolved

    Returns:
        The canonical category name
    """
    if value is None:
        return default
    if isinstance(value, CategoryRef):
        return value.name
    if isinstance(value, str):
        return value
    # bool is an int subclass but never a category id
    if isinstance(value, int) and not isinstance(value, bool):
        return category_name_for(value)
    name = _embedded_name(value)
    if name is not None:
        return name
    return default


def resolve_category(value: Any, category_id: Optional[int] = None, default: str = UNCATEGORIZED) -> CategoryRef:
    """
    Resolve a category reference into a :class:`CategoryRef`.

    ``category_id`` is the record's foreign key, used when the embedded
    relation is missing or carries no id of its own.
    """
    if isinstance(value, CategoryRef):
        return value

    if value is None:
        if category_id is None:
            return CategoryRef(None, default)
        return CategoryRef(category_id, category_name_for(category_id))

    if isinstance(value, int) and not isinstance(value, bool):
        return CategoryRef(value, category_name_for(value))

    name = resolve_category_name(value, default)
    embedded_id = value.get("category_id", value.get("id")) if isinstance(value, Mapping) else getattr(value, "id", None)
    if isinstance(embedded_id, int) and not isinstance(embedded_id, bool):
        return CategoryRef(embedded_id, name)
    if category_id is not None:
        return CategoryRef(category_id, name)
    return CategoryRef(_IDS_BY_NAME.get(name), name)
