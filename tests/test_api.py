"""
Endpoint tests for the FastAPI app, backed by an in-memory database.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from api import app, get_session_factory
from database import get_db


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def add_transaction(client, amount, category, user_id=1, **extra):
    payload = {"user_id": user_id, "amount": amount, "category": category}
    payload.update(extra)
    response = client.post("/api/transactions", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_categories_are_seeded(client):
    body = client.get("/api/categories").json()

    assert [c["name"] for c in body] == [
        "Food & Dining",
        "Transportation",
        "Shopping",
        "Bills & Utilities",
        "Income",
        "Other",
    ]


class TestTransactions:
    def test_create_by_category_name(self, client):
        body = add_transaction(client, "42.50", "Shopping", merchant="Bookshop")

        assert body["category_id"] == 3
        assert body["category"] == "Shopping"
        assert Decimal(body["amount"]) == Decimal("42.50")
        assert body["merchant"] == "Bookshop"

    def test_unknown_category_name_lands_in_other(self, client):
        assert add_transaction(client, "5", "Gadgets")["category"] == "Other"

    def test_list_newest_first(self, client):
        add_transaction(client, "10", "Shopping", occurred_at="2024-06-01T10:00:00")
        add_transaction(client, "20", "Transportation", occurred_at="2024-06-03T10:00:00")
        add_transaction(client, "30", "Shopping", user_id=2)

        body = client.get("/api/transactions/1").json()

        assert [Decimal(t["amount"]) for t in body] == [Decimal("20"), Decimal("10")]

    def test_unknown_category_id_is_rejected(self, client):
        response = client.post("/api/transactions", json={"user_id": 1, "amount": "5", "category_id": 99})

        assert response.status_code == 422
        assert client.get("/api/transactions/1").json() == []

    @pytest.mark.parametrize("amount", ["-5", "0", "12.345"])
    def test_invalid_amounts_are_rejected(self, client, amount):
        response = client.post("/api/transactions", json={"user_id": 1, "amount": amount, "category_id": 1})

        assert response.status_code == 422


class TestBudgets:
    def test_new_user_gets_default_budgets(self, client):
        body = client.get("/api/budgets/1").json()

        assert {b["category"]: Decimal(b["limit_amount"]) for b in body} == {
            "Food & Dining": Decimal("500"),
            "Transportation": Decimal("300"),
            "Shopping": Decimal("250"),
            "Bills & Utilities": Decimal("400"),
            "Other": Decimal("150"),
        }

    def test_create_budget(self, client):
        response = client.post("/api/budgets", json={"user_id": 4, "category_id": 3, "limit_amount": "75.00"})

        assert response.status_code == 201
        assert response.json()["category"] == "Shopping"
        assert [b["category"] for b in client.get("/api/budgets/4").json()] == ["Shopping"]

    def test_budget_for_unknown_category_is_rejected(self, client):
        response = client.post("/api/budgets", json={"user_id": 4, "category_id": 42, "limit_amount": "75.00"})

        assert response.status_code == 422
        assert response.json()["detail"] == "Unknown category_id 42"


class TestBudgetAlerts:
    def test_food_budget_at_ninety_percent_warns(self, client):
        add_transaction(client, "450", "Food & Dining")
        add_transaction(client, "50", "Income")

        body = client.get("/api/budget-alerts/1").json()

        assert len(body) == 1
        alert = body[0]
        assert alert["category"] == "Food & Dining"
        assert alert["severity"] == "warning"
        assert alert["percentage"] == pytest.approx(90.0)
        assert Decimal(alert["spent"]) == Decimal("450")
        assert Decimal(alert["limit"]) == Decimal("500")

    def test_no_spending_no_alerts(self, client):
        assert client.get("/api/budget-alerts/1").json() == []


class TestChat:
    def test_save_chat_and_read_history(self, client):
        for sender, text in [("User", "hello"), ("Bot", "hi there")]:
            response = client.post("/api/save-chat", json={"user_id": 1, "message_text": text, "sender": sender})
            assert response.json() == {"success": True, "message": "Chat saved"}

        history = client.get("/api/chat-history/1").json()

        assert [(m["sender"], m["message_text"]) for m in history] == [("User", "hello"), ("Bot", "hi there")]
        assert all(m["log_id"] is not None for m in history)

    def test_unknown_sender_is_rejected(self, client):
        response = client.post("/api/save-chat", json={"user_id": 1, "message_text": "x", "sender": "Robot"})

        assert response.status_code == 422

    def test_chat_reply_is_returned_and_persisted(self, client):
        add_transaction(client, "460", "Food & Dining")

        response = client.post("/api/chat", json={"user_id": 1, "message": "Am I over budget?"})

        body = response.json()
        assert response.status_code == 200
        assert "approaching the limit" in body["reply"]
        assert [a["severity"] for a in body["alerts"]] == ["warning"]

        history = client.get("/api/chat-history/1").json()
        assert [m["sender"] for m in history] == ["User", "Bot"]
        assert history[1]["message_text"] == body["reply"]


def test_storage_failure_returns_500(client):
    broken = Mock(spec=Session)
    broken.query.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    app.dependency_overrides[get_db] = lambda: broken

    response = client.get("/api/transactions/1")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to list transactions"}
