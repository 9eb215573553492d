"""
Tests for the chat assistant: alert notifications, prompt building,
the rule-based responder and failure handling.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from assistant import (
    APOLOGY_MESSAGE,
    CANNED_RESPONSES,
    AlertNotifier,
    ChatAssistant,
    FinanceSnapshot,
    alert_message,
    bot_message,
    build_prompt,
    rule_based_answer,
    save_transcript,
    user_message,
)
from budget_alerts import evaluate_budgets
from exceptions import ChatCompletionError, StorageUnavailableError
from records import ChatMessage
from stores import ChatTranscriptStore


def txn(amount, category):
    return {"amount": amount, "category": category}


def budget(budget_id, category, limit):
    return {"id": budget_id, "category": category, "limit": limit}


@pytest.fixture
def snapshot():
    return FinanceSnapshot.build(
        [
            budget(1, "Food & Dining", 500),
            budget(2, "Transportation", 100),
            budget(3, "Shopping", 250),
        ],
        [
            txn(450, "Food & Dining"),
            txn(120, "Transportation"),
            txn(40, "Shopping"),
            txn(2500, "Income"),
        ],
    )


class TestAlertMessage:
    def test_warning_text(self, snapshot):
        food = snapshot.alerts[0]

        assert alert_message(food) == (
            "⚠️ WARNING: You're approaching your Food & Dining budget limit. "
            "You've used 90% ($450.00 of $500.00). You have $50.00 remaining."
        )

    def test_critical_text(self, snapshot):
        transport = snapshot.alerts[1]
        message = alert_message(transport)

        assert message.startswith("🚨 BUDGET ALERT: You've exceeded your Transportation budget!")
        assert "$120.00 of your $100.00 limit (120%)" in message


class TestAlertNotifier:
    def test_each_budget_is_announced_once(self, snapshot):
        notifier = AlertNotifier()

        first = notifier.notify(snapshot.alerts)
        again = notifier.notify(snapshot.alerts)

        assert len(first) == 2
        assert again == []

    def test_new_budget_in_a_later_evaluation_is_announced(self):
        notifier = AlertNotifier()
        budgets = [budget(1, "Shopping", 100), budget(2, "Other", 100)]
        notifier.notify(evaluate_budgets(budgets, [txn(95, "Shopping")]))

        later = notifier.notify(evaluate_budgets(budgets, [txn(120, "Shopping"), txn(92, "Other")]))

        assert len(later) == 1
        assert "Other" in later[0]


class TestBuildPrompt:
    def test_prompt_carries_finances_and_question(self, snapshot):
        prompt = build_prompt(snapshot, "Where does my money go?")

        assert "- Food & Dining: spent $450.00 of $500.00 (90%)" in prompt
        assert "Total spent: $610.00" in prompt
        assert "Total income: $2,500.00" in prompt
        assert "- Transportation: critical at 120%" in prompt
        assert prompt.endswith("User: Where does my money go?\nBot:")

    def test_only_the_latest_turns_are_included(self, snapshot):
        start = datetime(2024, 6, 1, 9, 0)
        history = [
            ChatMessage(
                user_id=1, message_text=f"question {i}", sender="User", timestamp=start + timedelta(minutes=i)
            )
            for i in range(5)
        ]

        prompt = build_prompt(snapshot, "next", history, max_turns=2)

        assert "question 2" not in prompt
        assert "User: question 3" in prompt
        assert "User: question 4" in prompt

    def test_no_data(self):
        prompt = build_prompt(FinanceSnapshot.build([], []), "hi", max_turns=0)

        assert "- none set" in prompt
        assert "- no expenses recorded" in prompt
        assert "Recent conversation" not in prompt


class TestRuleBasedAnswer:
    def test_food_question_reports_usage(self, snapshot):
        answer = rule_based_answer("How much did I spend on food?", snapshot)

        assert answer == (
            "You've spent $450.00 on Food & Dining this month, which is 90% "
            "of your $500.00 budget. You have $50.00 remaining."
        )

    def test_food_question_without_budget(self):
        answer = rule_based_answer("dining?", FinanceSnapshot.build([], [txn(12, "Food & Dining")]))

        assert "You haven't set a budget for it yet." in answer

    def test_budget_question_lists_alerts(self, snapshot):
        answer = rule_based_answer("Am I over budget?", snapshot)

        assert "1 category over budget: Transportation." in answer
        assert "1 category is approaching the limit (>90%): Food & Dining." in answer

    def test_budget_question_when_healthy(self):
        healthy = FinanceSnapshot.build([budget(1, "Shopping", 100)], [txn(10, "Shopping")])

        assert rule_based_answer("budget status", healthy).startswith("Good news!")

    def test_savings_question(self, snapshot):
        answer = rule_based_answer("How can I save money?", snapshot)

        assert answer.startswith("You have $240.00 left across your budgets this month.")

    def test_total_question_counts_expenses_only(self, snapshot):
        answer = rule_based_answer("What's my total?", snapshot)

        assert answer == "Your total spending this month is $610.00 across 3 transactions."

    def test_anything_else_gets_a_canned_reply(self, snapshot):
        assert rule_based_answer("hello there", snapshot) in CANNED_RESPONSES


class TestChatAssistant:
    def test_defaults_to_rule_based_answers(self, snapshot):
        assert ChatAssistant().reply("what's my total", snapshot).startswith("Your total spending")

    def test_completion_receives_the_prompt(self, snapshot):
        completion = MagicMock(return_value="  Cut back on takeout.  ")
        history = [user_message(1, "earlier question"), bot_message(1, "earlier answer")]

        reply = ChatAssistant(completion=completion, max_turns=1).reply("Any tips?", snapshot, history)

        assert reply == "Cut back on takeout."
        prompt = completion.call_args.args[0]
        assert "Bot: earlier answer" in prompt
        assert "earlier question" not in prompt
        assert "User: Any tips?" in prompt

    @pytest.mark.parametrize("result", ["", "   ", None])
    def test_empty_reply_becomes_apology(self, snapshot, result):
        assistant = ChatAssistant(completion=lambda prompt: result)

        assert assistant.reply("hi", snapshot) == APOLOGY_MESSAGE

    def test_collaborator_failure_becomes_apology(self, snapshot):
        def failing(prompt):
            raise ChatCompletionError("upstream timed out")

        assert ChatAssistant(completion=failing).reply("hi", snapshot) == APOLOGY_MESSAGE


class TestSaveTranscript:
    def test_messages_are_persisted(self, session_factory):
        saved = save_transcript(session_factory, [user_message(1, "hi"), bot_message(1, "hello")])

        db = session_factory()
        try:
            history = ChatTranscriptStore(db).list_by_user(1)
        finally:
            db.close()
        assert saved == 2
        assert [m.sender for m in history] == ["User", "Bot"]

    def test_storage_failure_drops_the_rest(self, session_factory, monkeypatch):
        calls = []

        def flaky_append(self, message):
            calls.append(message)
            if len(calls) > 1:
                raise StorageUnavailableError("Storage unavailable", details={"action": "save chat"})
            return message

        monkeypatch.setattr(ChatTranscriptStore, "append", flaky_append)

        saved = save_transcript(
            session_factory,
            [user_message(1, "a"), bot_message(1, "b"), user_message(1, "c")],
        )

        assert saved == 1
        assert len(calls) == 2
