"""
In-memory records handed to the budget engine and the dashboard.

ORM rows and raw JSON-ish mappings are converted here, once, so that the
category on every record is already a :class:`categories.CategoryRef`.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from categories import CategoryRef, UNCATEGORIZED, resolve_category

BOT = "Bot"
USER = "User"
SENDERS = (USER, BOT)


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_decimal(value: Any) -> Decimal:
    """Coerce a money value to Decimal; missing or malformed values become zero."""
    if value is None:
        return Decimal("0")
    if isinstance(value, float):
        # str() keeps the shortest repr, so 19.99 stays 19.99
        value = str(value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0")
    # NaN and Infinity cannot be compared against a limit
    return result if result.is_finite() else Decimal("0")


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return utc_now()


def _get(source: Any, key: str, default: Any = None) -> Any:
    if isinstance(source, Mapping):
        return source.get(key, default)
    return getattr(source, key, default)


@dataclass(frozen=True)
class TransactionRecord:
    id: Optional[int]
    user_id: int
    amount: Decimal
    category: CategoryRef
    merchant: str = ""
    occurred_at: datetime = field(default_factory=utc_now)
    raw_text: str = ""

    @property
    def is_income(self) -> bool:
        return self.category.is_income


@dataclass(frozen=True)
class BudgetRecord:
    id: Optional[int]
    user_id: int
    category: CategoryRef
    limit_amount: Optional[Decimal]
    period: str = "Monthly"

    @property
    def category_id(self) -> Optional[int]:
        return self.category.id


@dataclass(frozen=True)
class ChatMessage:
    user_id: int
    message_text: str
    sender: str
    timestamp: datetime = field(default_factory=utc_now)
    id: Optional[int] = None


def transaction_from_source(source: Any) -> TransactionRecord:
    """Build a transaction record from an ORM row or a mapping."""
    occurred = _get(source, "occurred_at")
    if occurred is None:
        occurred = _get(source, "date_time")
    return TransactionRecord(
        id=_get(source, "id", _get(source, "trans_id")),
        user_id=_get(source, "user_id", 0),
        amount=to_decimal(_get(source, "amount")),
        category=resolve_category(_get(source, "category"), _get(source, "category_id"), UNCATEGORIZED),
        merchant=_get(source, "merchant") or "",
        occurred_at=_parse_timestamp(occurred),
        raw_text=_get(source, "raw_text") or "",
    )


def budget_from_source(source: Any) -> BudgetRecord:
    """Build a budget record from an ORM row or a mapping."""
    limit = _get(source, "limit_amount")
    return BudgetRecord(
        id=_get(source, "id", _get(source, "budget_id")),
        user_id=_get(source, "user_id", 0),
        category=resolve_category(_get(source, "category"), _get(source, "category_id"), UNCATEGORIZED),
        limit_amount=None if limit is None else to_decimal(limit),
        period=_get(source, "period") or "Monthly",
    )


def chat_message_from_source(source: Any) -> ChatMessage:
    return ChatMessage(
        id=_get(source, "id", _get(source, "log_id")),
        user_id=_get(source, "user_id", 0),
        message_text=_get(source, "message_text") or "",
        sender=_get(source, "sender") or BOT,
        timestamp=_parse_timestamp(_get(source, "timestamp")),
    )
