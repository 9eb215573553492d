"""REST API for the SpendWise dashboard, served with FastAPI."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from assistant import ChatAssistant, FinanceSnapshot, bot_message, save_transcript, user_message
from budget_alerts import evaluate_budgets
from categories import category_id_for
from config import load_settings, setup_logging
from database import SessionLocal, get_db, init_db
from exceptions import StorageUnavailableError
from records import ChatMessage, utc_now
from stores import BudgetDraft, BudgetStore, CategoryStore, ChatTranscriptStore, TransactionDraft, TransactionStore

logger = logging.getLogger(__name__)

settings = load_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    init_db()
    logger.info("SpendWise API ready")
    yield


app = FastAPI(title="SpendWise API", version="0.1.0", lifespan=lifespan)


def get_session_factory():
    return SessionLocal


def get_assistant() -> ChatAssistant:
    return ChatAssistant(max_turns=settings.chat_history_turns)


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
    action = exc.details.get("action", "reach storage")
    return JSONResponse(status_code=500, content={"error": f"Failed to {action}"})


# --- Schemas ---

class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class TransactionIn(BaseModel):
    user_id: int
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category_id: Optional[int] = None
    category: Optional[str] = Field(None, description="Category name, used when category_id is omitted")
    merchant: Optional[str] = None
    occurred_at: Optional[datetime] = None
    raw_text: Optional[str] = None


class TransactionOut(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    category_id: Optional[int]
    category: str
    merchant: str
    occurred_at: datetime
    raw_text: str


class BudgetIn(BaseModel):
    user_id: int
    category_id: int
    limit_amount: Decimal = Field(..., gt=0, decimal_places=2)
    period: Literal["Monthly"] = "Monthly"


class BudgetOut(BaseModel):
    id: int
    user_id: int
    category_id: Optional[int]
    category: str
    limit_amount: Optional[Decimal]
    period: str


class BudgetAlertOut(BaseModel):
    budget_id: Optional[int]
    category: str
    spent: Decimal
    limit: Decimal
    percentage: float
    severity: Literal["warning", "critical"]


class ChatLogIn(BaseModel):
    user_id: int
    message_text: str = Field(..., min_length=1)
    sender: Literal["User", "Bot"]
    timestamp: Optional[datetime] = None


class ChatLogOut(BaseModel):
    log_id: Optional[int]
    user_id: int
    message_text: str
    sender: str
    timestamp: datetime


class ChatRequest(BaseModel):
    user_id: int
    message: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    reply: str
    alerts: List[BudgetAlertOut]


def _transaction_out(record) -> TransactionOut:
    return TransactionOut(
        id=record.id,
        user_id=record.user_id,
        amount=record.amount,
        category_id=record.category.id,
        category=record.category.name,
        merchant=record.merchant,
        occurred_at=record.occurred_at,
        raw_text=record.raw_text,
    )


def _budget_out(record) -> BudgetOut:
    return BudgetOut(
        id=record.id,
        user_id=record.user_id,
        category_id=record.category_id,
        category=record.category.name,
        limit_amount=record.limit_amount,
        period=record.period,
    )


def _chat_out(message: ChatMessage) -> ChatLogOut:
    return ChatLogOut(
        log_id=message.id,
        user_id=message.user_id,
        message_text=message.message_text,
        sender=message.sender,
        timestamp=message.timestamp,
    )


def _alerts_out(alerts) -> List[BudgetAlertOut]:
    return [BudgetAlertOut(**alert.to_dict()) for alert in alerts]


def _require_category(db: Session, category_id: int) -> None:
    """Reject ids missing from the category table before they reach the store."""
    known = {c.id for c in CategoryStore(db).list()}
    if category_id not in known:
        raise HTTPException(status_code=422, detail=f"Unknown category_id {category_id}")


# --- Routes ---

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/categories", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CategoryStore(db).list()


@app.get("/api/transactions/{user_id}", response_model=List[TransactionOut])
def list_transactions(user_id: int, db: Session = Depends(get_db)):
    return [_transaction_out(t) for t in TransactionStore(db).list(user_id)]


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(req: TransactionIn, db: Session = Depends(get_db)):
    category_id = req.category_id if req.category_id is not None else category_id_for(req.category or "")
    _require_category(db, category_id)
    draft = TransactionDraft(
        amount=req.amount,
        category_id=category_id,
        merchant=req.merchant,
        occurred_at=req.occurred_at,
        raw_text=req.raw_text,
    )
    return _transaction_out(TransactionStore(db).create(req.user_id, draft))


@app.get("/api/budgets/{user_id}", response_model=List[BudgetOut])
def list_budgets(user_id: int, db: Session = Depends(get_db)):
    return [_budget_out(b) for b in BudgetStore(db).list(user_id)]


@app.post("/api/budgets", response_model=BudgetOut, status_code=201)
def create_budget(req: BudgetIn, db: Session = Depends(get_db)):
    _require_category(db, req.category_id)
    draft = BudgetDraft(category_id=req.category_id, limit_amount=req.limit_amount, period=req.period)
    return _budget_out(BudgetStore(db).create(req.user_id, draft))


@app.get("/api/budget-alerts/{user_id}", response_model=List[BudgetAlertOut])
def budget_alerts(user_id: int, db: Session = Depends(get_db)):
    budgets = BudgetStore(db).list(user_id)
    transactions = TransactionStore(db).list(user_id)
    return _alerts_out(evaluate_budgets(budgets, transactions))


@app.post("/api/save-chat")
def save_chat(req: ChatLogIn, db: Session = Depends(get_db)):
    message = ChatMessage(
        user_id=req.user_id,
        message_text=req.message_text,
        sender=req.sender,
        timestamp=req.timestamp or utc_now(),
    )
    ChatTranscriptStore(db).append(message)
    return {"success": True, "message": "Chat saved"}


@app.get("/api/chat-history/{user_id}", response_model=List[ChatLogOut])
def chat_history(user_id: int, db: Session = Depends(get_db)):
    return [_chat_out(m) for m in ChatTranscriptStore(db).list_by_user(user_id)]


@app.post("/api/chat", response_model=ChatResponse)
def chat(
    req: ChatRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    assistant: ChatAssistant = Depends(get_assistant),
):
    snapshot = FinanceSnapshot.build(BudgetStore(db).list(req.user_id), TransactionStore(db).list(req.user_id))
    history = ChatTranscriptStore(db).list_by_user(req.user_id)
    reply = assistant.reply(req.message, snapshot, history)

    # Persisted after the response is sent; failures are logged and dropped
    background_tasks.add_task(
        save_transcript,
        session_factory,
        [user_message(req.user_id, req.message), bot_message(req.user_id, reply)],
    )
    return ChatResponse(reply=reply, alerts=_alerts_out(snapshot.alerts))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api:app", host=settings.api_host, port=settings.api_port, reload=True)
