"""
budget_alerts.py
----------------

Spend aggregation and budget threshold evaluation.

Every function here is pure: it reads already-loaded transactions and
budgets, allocates fresh output and performs no I/O, so it is safe to
call again whenever either list changes.  Inputs may be
:mod:`records` objects or plain mappings such as
``{"amount": 450, "category": "Food & Dining"}``.

Money is summed as :class:`~decimal.Decimal`; only the reported
percentage is a float.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from categories import INCOME, UNKNOWN, category_name_for, resolve_category_name
from records import to_decimal

WARNING_THRESHOLD = Decimal("90")
CRITICAL_THRESHOLD = Decimal("100")
# Progress-bar bands used by the budgets table
CAUTION_THRESHOLD = Decimal("80")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class Severity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class BudgetAlert:
    budget_id: Optional[int]
    category_name: str
    spent: Decimal
    limit: Decimal
    percentage: float
    severity: Severity

    @property
    def remaining(self) -> Decimal:
        return self.limit - self.spent

    def to_dict(self) -> dict:
        return {
            "budget_id": self.budget_id,
            "category": self.category_name,
            "spent": self.spent,
            "limit": self.limit,
            "percentage": self.percentage,
            "severity": self.severity.value,
        }


def _field(item: Any, *keys: str) -> Any:
    for key in keys:
        if isinstance(item, Mapping):
            if key in item:
                return item[key]
        elif hasattr(item, key):
            return getattr(item, key)
    return None


def category_name_of(item: Any) -> str:
    """Resolved category name of a transaction or budget, "Unknown" when absent."""
    category = _field(item, "category")
    if category is None:
        category_id = _field(item, "category_id")
        if isinstance(category_id, int) and not isinstance(category_id, bool):
            return category_name_for(category_id)
    return resolve_category_name(category, UNKNOWN)


def aggregate_spend(transactions: Iterable[Any], category_name: str) -> Decimal:
    """
    Sum the amounts of transactions filed under ``category_name``.

    Income is never spend, so it contributes nothing even when
    ``category_name`` is "Income".  No matches (or no transactions) gives 0.
    """
    total = ZERO
    if category_name == INCOME:
        return total
    for txn in transactions:
        if category_name_of(txn) == category_name:
            total += to_decimal(_field(txn, "amount"))
    return total


def spending_by_category(transactions: Iterable[Any]) -> Dict[str, Decimal]:
    """Per-category spend (Income excluded) in first-seen order."""
    totals: Dict[str, Decimal] = {}
    for txn in transactions:
        name = category_name_of(txn)
        if name == INCOME:
            continue
        totals[name] = totals.get(name, ZERO) + to_decimal(_field(txn, "amount"))
    return totals


def total_spent(transactions: Iterable[Any]) -> Decimal:
    return sum(spending_by_category(transactions).values(), ZERO)


def total_income(transactions: Iterable[Any]) -> Decimal:
    total = ZERO
    for txn in transactions:
        if category_name_of(txn) == INCOME:
            total += to_decimal(_field(txn, "amount"))
    return total


def budget_limit(budget: Any) -> Optional[Decimal]:
    limit = _field(budget, "limit_amount", "limit")
    if limit is None:
        return None
    limit = to_decimal(limit)
    if limit <= ZERO:
        return None
    return limit


def _severity_for(percentage: Decimal) -> Optional[Severity]:
    if percentage >= CRITICAL_THRESHOLD:
        return Severity.CRITICAL
    if percentage >= WARNING_THRESHOLD:
        return Severity.WARNING
    return None


def evaluate_budgets(budgets: Iterable[Any], transactions: Iterable[Any]) -> List[BudgetAlert]:
    """
    Compare category spend against every budget and return the alerts.

    Budgets without a positive limit are skipped.  Usage of 90% up to (but
    not including) 100% is a warning, 100% or more is critical.  Alerts
    come back in budget order and the list is meant to replace the
    previous one wholesale.
    """
    transactions = list(transactions)
    alerts: List[BudgetAlert] = []

    for budget in budgets:
        category_name = category_name_of(budget)
        spent = aggregate_spend(transactions, category_name)

        limit = budget_limit(budget)
        if limit is None:
            continue

        percentage = spent / limit * HUNDRED
        severity = _severity_for(percentage)
        if severity is None:
            continue

        alerts.append(
            BudgetAlert(
                budget_id=_field(budget, "id", "budget_id"),
                category_name=category_name,
                spent=spent,
                limit=limit,
                percentage=float(percentage),
                severity=severity,
            )
        )
    return alerts


def new_alerts(previous: Iterable[BudgetAlert], current: Iterable[BudgetAlert]) -> List[BudgetAlert]:
    """Alerts in ``current`` for budgets that had no alert in ``previous``."""
    seen = {alert.budget_id for alert in previous}
    return [alert for alert in current if alert.budget_id not in seen]


def usage_status(percentage: Decimal) -> str:
    if percentage >= CRITICAL_THRESHOLD:
        return "red"
    if percentage >= WARNING_THRESHOLD:
        return "orange"
    if percentage >= CAUTION_THRESHOLD:
        return "yellow"
    return "green"


def budget_usage(budgets: Iterable[Any], transactions: Iterable[Any]) -> List[dict]:
    """
    Progress rows for the budgets table.

    Unlike :func:`evaluate_budgets` every budget gets a row; the percentage
    is capped at 100 and is 0 when the limit is missing.
    """
    transactions = list(transactions)
    rows = []
    for budget in budgets:
        category_name = category_name_of(budget)
        spent = aggregate_spend(transactions, category_name)
        limit = budget_limit(budget)
        percentage = min(spent / limit * HUNDRED, HUNDRED) if limit else ZERO
        rows.append(
            {
                "budget_id": _field(budget, "id", "budget_id"),
                "category": category_name,
                "spent": spent,
                "limit": limit or ZERO,
                "remaining": (limit or ZERO) - spent,
                "percentage": float(percentage),
                "status": usage_status(percentage),
            }
        )
    return rows
