"""
assistant.py
------------

The financial assistant behind the chat panel and ``POST /api/chat``.

Replies come from a completion collaborator (any ``Callable[[str], str]``
that takes the synthesized prompt) or, when none is configured, from the
built-in rule-based responder that reads the same budget and transaction
data.  Whatever goes wrong while producing a reply, the user gets
:data:`APOLOGY_MESSAGE` instead of an error.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence, Set

from budget_alerts import (
    BudgetAlert,
    Severity,
    aggregate_spend,
    budget_limit,
    budget_usage,
    category_name_of,
    evaluate_budgets,
    spending_by_category,
    total_income,
    total_spent,
)
from categories import INCOME
from exceptions import StorageUnavailableError
from records import BOT, USER, ChatMessage
from stores import ChatTranscriptStore

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Hello! I'm your personal financial assistant. I can help you analyze your spending, "
    "create budgets, and answer questions about your finances. How can I help you today?"
)
APOLOGY_MESSAGE = "Sorry, I'm having trouble answering right now. Please try again in a moment."

CANNED_RESPONSES = [
    "I can help you create a savings plan. What's your target amount and timeframe?",
    "Let me analyze your recent transactions to find potential savings opportunities.",
    "Ask me about a category, your budgets, your total spending or how to save more.",
]

FOOD_CATEGORY = "Food & Dining"

CompletionFn = Callable[[str], str]


def _money(value: Decimal) -> str:
    return f"${value:,.2f}"


def alert_message(alert: BudgetAlert) -> str:
    """Chat notification text for a budget alert."""
    if alert.severity == Severity.CRITICAL:
        return (
            f"🚨 BUDGET ALERT: You've exceeded your {alert.category_name} budget! "
            f"You've spent {_money(alert.spent)} of your {_money(alert.limit)} limit ({alert.percentage:.0f}%). "
            "Consider reducing spending in this category."
        )
    return (
        f"⚠️ WARNING: You're approaching your {alert.category_name} budget limit. "
        f"You've used {alert.percentage:.0f}% ({_money(alert.spent)} of {_money(alert.limit)}). "
        f"You have {_money(alert.remaining)} remaining."
    )


class AlertNotifier:
    """
    Announces each budget's alert once.

    Evaluations hand over a full replacement list every time; the notifier
    keeps the set of budget ids it has already announced and only returns
    messages for the rest.
    """

    def __init__(self) -> None:
        self._announced: Set[Optional[int]] = set()

    def notify(self, alerts: Iterable[BudgetAlert]) -> List[str]:
        messages = []
        for alert in alerts:
            if alert.budget_id in self._announced:
                continue
            self._announced.add(alert.budget_id)
            messages.append(alert_message(alert))
        return messages


@dataclass
class FinanceSnapshot:
    """Budgets, transactions and their alerts at the moment a question is asked."""

    budgets: Sequence
    transactions: Sequence
    alerts: List[BudgetAlert] = field(default_factory=list)

    @classmethod
    def build(cls, budgets: Iterable, transactions: Iterable) -> "FinanceSnapshot":
        budgets = list(budgets)
        transactions = list(transactions)
        return cls(budgets, transactions, evaluate_budgets(budgets, transactions))

    @property
    def expense_count(self) -> int:
        return sum(
            1 for t in self.transactions
            if category_name_of(t) != INCOME
        )

    def budget_for(self, category_name: str):
        for budget in self.budgets:
            if category_name_of(budget) == category_name:
                return budget
        return None


def build_prompt(
    snapshot: FinanceSnapshot,
    query: str,
    history: Sequence[ChatMessage] = (),
    max_turns: int = 10,
) -> str:
    """Natural-language prompt with the user's finances and the latest conversation turns."""
    lines = [
        "You are SpendWise, a friendly personal finance assistant.",
        "Answer using only the data below. Amounts are in dollars.",
        "",
        "Budgets this month:",
    ]
    usage = budget_usage(snapshot.budgets, snapshot.transactions)
    if usage:
        for row in usage:
            lines.append(
                f"- {row['category']}: spent {_money(row['spent'])} of {_money(row['limit'])} ({row['percentage']:.0f}%)"
            )
    else:
        lines.append("- none set")

    lines.append("")
    lines.append("Spending by category:")
    by_category = spending_by_category(snapshot.transactions)
    if by_category:
        for name, amount in by_category.items():
            lines.append(f"- {name}: {_money(amount)}")
    else:
        lines.append("- no expenses recorded")
    lines.append(f"Total spent: {_money(total_spent(snapshot.transactions))}")
    lines.append(f"Total income: {_money(total_income(snapshot.transactions))}")

    if snapshot.alerts:
        lines.append("")
        lines.append("Active budget alerts:")
        for alert in snapshot.alerts:
            lines.append(f"- {alert.category_name}: {alert.severity.value} at {alert.percentage:.0f}%")

    recent = list(history)[-max_turns:] if max_turns > 0 else []
    if recent:
        lines.append("")
        lines.append("Recent conversation:")
        for message in recent:
            lines.append(f"{message.sender}: {message.message_text}")

    lines.append("")
    lines.append(f"User: {query}")
    lines.append(f"{BOT}:")
    return "\n".join(lines)


def rule_based_answer(query: str, snapshot: FinanceSnapshot) -> str:
    """Keyword responder that answers from the snapshot without any external call."""
    q = query.lower()

    if "food" in q or "dining" in q:
        spent = aggregate_spend(snapshot.transactions, FOOD_CATEGORY)
        budget = snapshot.budget_for(FOOD_CATEGORY)
        limit = budget_limit(budget) if budget is not None else None
        if not limit:
            return f"You've spent {_money(spent)} on {FOOD_CATEGORY} this month. You haven't set a budget for it yet."
        percentage = spent / limit * 100
        return (
            f"You've spent {_money(spent)} on {FOOD_CATEGORY} this month, which is {percentage:.0f}% "
            f"of your {_money(limit)} budget. You have {_money(limit - spent)} remaining."
        )

    if "budget" in q or "over" in q:
        critical = [a for a in snapshot.alerts if a.severity == Severity.CRITICAL]
        warning = [a for a in snapshot.alerts if a.severity == Severity.WARNING]
        if not critical and not warning:
            return (
                "Good news! All your budgets are looking healthy. "
                "You're staying within your limits across all categories."
            )
        parts = []
        if critical:
            noun = "category" if len(critical) == 1 else "categories"
            names = ", ".join(a.category_name for a in critical)
            parts.append(f"You currently have {len(critical)} {noun} over budget: {names}.")
        if warning:
            noun = "category is" if len(warning) == 1 else "categories are"
            names = ", ".join(a.category_name for a in warning)
            parts.append(f"{len(warning)} {noun} approaching the limit (>90%): {names}.")
        return " ".join(parts)

    if "saving" in q or "save" in q:
        total_budget = sum(
            (budget_limit(b) or Decimal("0") for b in snapshot.budgets),
            Decimal("0"),
        )
        left = total_budget - total_spent(snapshot.transactions)
        return (
            f"You have {_money(left)} left across your budgets this month. To save more, I recommend: "
            "1) Reduce dining out expenses, 2) Look for subscription services you're not using, "
            "3) Set up automatic transfers to a savings account."
        )

    if "total" in q or "spent" in q:
        return (
            f"Your total spending this month is {_money(total_spent(snapshot.transactions))} "
            f"across {snapshot.expense_count} transactions."
        )

    return random.choice(CANNED_RESPONSES)


class ChatAssistant:
    """
    Produces assistant replies.

    Args:
        completion: Optional completion collaborator; receives the prompt from
            :func:`build_prompt` and returns the reply text
        max_turns: How many previous chat turns to embed in the prompt
    """

    def __init__(self, completion: Optional[CompletionFn] = None, max_turns: int = 10):
        self.completion = completion
        self.max_turns = max_turns

    def reply(self, query: str, snapshot: FinanceSnapshot, history: Sequence[ChatMessage] = ()) -> str:
        try:
            if self.completion is None:
                return rule_based_answer(query, snapshot)
            prompt = build_prompt(snapshot, query, history, self.max_turns)
            text = self.completion(prompt)
            if not text or not text.strip():
                logger.warning("Completion collaborator returned an empty reply")
                return APOLOGY_MESSAGE
            return text.strip()
        except Exception as exc:
            # Any collaborator failure degrades to the apology, never a crash
            logger.error("Chat completion failed: %s", exc, exc_info=True)
            return APOLOGY_MESSAGE


def save_transcript(session_factory, messages: Iterable[ChatMessage]) -> int:
    """
    Persist chat messages in a fresh session, dropping them on storage failure.

    Runs after the reply has been sent, so a failure is logged and the
    remaining messages are dropped without retry.  Returns how many were saved.
    """
    saved = 0
    db = session_factory()
    try:
        store = ChatTranscriptStore(db)
        for message in messages:
            store.append(message)
            saved += 1
    except StorageUnavailableError as exc:
        logger.warning("Dropped unsaved chat messages after %d saved: %s", saved, exc)
    finally:
        db.close()
    return saved


def user_message(user_id: int, text: str) -> ChatMessage:
    return ChatMessage(user_id=user_id, message_text=text, sender=USER)


def bot_message(user_id: int, text: str) -> ChatMessage:
    return ChatMessage(user_id=user_id, message_text=text, sender=BOT)
