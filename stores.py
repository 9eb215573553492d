"""
stores.py
---------

Thin persistence layer over the SQLAlchemy session.  Each store turns ORM
rows into :mod:`records` objects on the way out and wraps any database
failure in :class:`exceptions.StorageUnavailableError`.  Calls are
single-shot: a failure rolls the session back and is reported, never
retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from categories import DEFAULT_CATEGORIES, category_id_for
from database import Budget, Category, ChatLog, Transaction
from exceptions import StorageUnavailableError
from records import (
    BudgetRecord,
    ChatMessage,
    TransactionRecord,
    budget_from_source,
    chat_message_from_source,
    transaction_from_source,
    utc_now,
)

logger = logging.getLogger(__name__)

# Seeded once for a user whose budget list is empty. Income has no budget.
DEFAULT_BUDGET_LIMITS = {
    "Food & Dining": Decimal("500"),
    "Transportation": Decimal("300"),
    "Shopping": Decimal("250"),
    "Bills & Utilities": Decimal("400"),
    "Other": Decimal("150"),
}


@dataclass
class TransactionDraft:
    amount: Decimal
    category_id: int
    merchant: Optional[str] = None
    occurred_at: Optional[datetime] = None
    raw_text: Optional[str] = None


@dataclass
class BudgetDraft:
    category_id: int
    limit_amount: Decimal
    period: str = "Monthly"


def _storage_error(db: Session, action: str, exc: SQLAlchemyError) -> StorageUnavailableError:
    db.rollback()
    logger.error("Storage failure while trying to %s: %s", action, exc, exc_info=True)
    return StorageUnavailableError("Storage unavailable", details={"action": action}, original_error=exc)


class CategoryStore:
    def __init__(self, db: Session):
        self.db = db

    def ensure_defaults(self) -> None:
        """Insert the default categories that are missing."""
        try:
            existing = {c.id for c in self.db.query(Category).all()}
            missing = [Category(id=cid, name=name) for cid, name in DEFAULT_CATEGORIES.items() if cid not in existing]
            if missing:
                self.db.add_all(missing)
                self.db.commit()
                logger.info("Seeded %d default categories", len(missing))
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "seed categories", exc) from exc

    def list(self) -> List[Category]:
        self.ensure_defaults()
        try:
            return self.db.query(Category).order_by(Category.id).all()
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "list categories", exc) from exc


class TransactionStore:
    def __init__(self, db: Session):
        self.db = db

    def list(self, user_id: int) -> List[TransactionRecord]:
        """Transactions for ``user_id``, newest first."""
        try:
            rows = (
                self.db.query(Transaction)
                .filter(Transaction.user_id == user_id)
                .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "list transactions", exc) from exc
        return [transaction_from_source(row) for row in rows]

    def create(self, user_id: int, draft: TransactionDraft) -> TransactionRecord:
        row = Transaction(
            user_id=user_id,
            category_id=draft.category_id,
            amount=draft.amount,
            merchant=draft.merchant or None,
            occurred_at=draft.occurred_at or utc_now(),
            raw_text=draft.raw_text or None,
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "create transaction", exc) from exc
        logger.info("Stored transaction %s for user %s", row.id, user_id)
        return transaction_from_source(row)


class BudgetStore:
    def __init__(self, db: Session):
        self.db = db

    def _query(self, user_id: int):
        return self.db.query(Budget).filter(Budget.user_id == user_id).order_by(Budget.id)

    def seed_defaults(self, user_id: int) -> int:
        """Create the starter budgets for a user who has none. Returns how many were added."""
        CategoryStore(self.db).ensure_defaults()
        try:
            if self._query(user_id).first() is not None:
                return 0
            self.db.add_all(
                [
                    Budget(user_id=user_id, category_id=category_id_for(name), limit_amount=limit, period="Monthly")
                    for name, limit in DEFAULT_BUDGET_LIMITS.items()
                ]
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "seed budgets", exc) from exc
        logger.info("Seeded %d default budgets for user %s", len(DEFAULT_BUDGET_LIMITS), user_id)
        return len(DEFAULT_BUDGET_LIMITS)

    def list(self, user_id: int) -> List[BudgetRecord]:
        self.seed_defaults(user_id)
        try:
            rows = self._query(user_id).all()
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "list budgets", exc) from exc
        return [budget_from_source(row) for row in rows]

    def create(self, user_id: int, draft: BudgetDraft) -> BudgetRecord:
        row = Budget(
            user_id=user_id,
            category_id=draft.category_id,
            limit_amount=draft.limit_amount,
            period=draft.period,
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "create budget", exc) from exc
        logger.info("Stored budget %s for user %s", row.id, user_id)
        return budget_from_source(row)


class ChatTranscriptStore:
    def __init__(self, db: Session):
        self.db = db

    def append(self, message: ChatMessage) -> ChatMessage:
        row = ChatLog(
            user_id=message.user_id,
            message_text=message.message_text,
            sender=message.sender,
            timestamp=message.timestamp,
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "save chat", exc) from exc
        return chat_message_from_source(row)

    def list_by_user(self, user_id: int) -> List[ChatMessage]:
        """Transcript for ``user_id``, oldest first so it reads top to bottom."""
        try:
            rows = (
                self.db.query(ChatLog)
                .filter(ChatLog.user_id == user_id)
                .order_by(ChatLog.timestamp.asc(), ChatLog.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise _storage_error(self.db, "fetch chat history", exc) from exc
        return [chat_message_from_source(row) for row in rows]
