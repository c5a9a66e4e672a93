"""Main FastAPI application for the finance tracker."""
import logging
import time
import datetime as dt
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, Session

import storage
from config import get_settings
from database import engine, get_session
from models import Category, User
from periods import (
    Window,
    compute_window,
    format_label,
    local_now,
    resolve_window,
    shift_reference,
)
from schemas import (
    BudgetCreate,
    BudgetRead,
    BudgetUpdate,
    CategoryCreate,
    CategoryRead,
    CategoryType,
    CategoryUpdate,
    PeriodRead,
    SummaryRead,
    TimeRange,
    TransactionCreate,
    TransactionRead,
    TransactionUpdate,
    UserRead,
)
from utils import build_summary

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker", version="0.1.0")
Instrumentator().instrument(app).expose(app)

# Seeded for the demo user on startup.
DEFAULT_CATEGORIES = [
    {"name": "Salary", "type": "income", "icon": "banknote", "color": "#4CAF50"},
    {"name": "Business", "type": "income", "icon": "briefcase", "color": "#4CAF50"},
    {"name": "Investments", "type": "income", "icon": "trending-up", "color": "#4CAF50"},
    {"name": "Extra Income", "type": "income", "icon": "plus-circle", "color": "#4CAF50"},
    {"name": "Gifts", "type": "income", "icon": "gift", "color": "#4CAF50"},
    {"name": "Food & Drinks", "type": "expense", "icon": "utensils", "color": "#FF5722"},
    {"name": "Shopping", "type": "expense", "icon": "shopping-bag", "color": "#E91E63"},
    {"name": "Transport", "type": "expense", "icon": "map", "color": "#2196F3"},
    {"name": "Home", "type": "expense", "icon": "home", "color": "#795548"},
    {"name": "Bills & Utilities", "type": "expense", "icon": "credit-card", "color": "#673AB7"},
    {"name": "Entertainment", "type": "expense", "icon": "film", "color": "#009688"},
    {"name": "Health", "type": "expense", "icon": "activity", "color": "#F44336"},
    {"name": "Education", "type": "expense", "icon": "book", "color": "#3F51B5"},
]


# ERROR HANDLERS
# Storage errors map to client errors; anything else is an opaque 500.
@app.exception_handler(storage.NotFoundError)
async def not_found_handler(request: Request, exc: storage.NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(storage.InvalidReferenceError)
@app.exception_handler(storage.CategoryInUseError)
@app.exception_handler(storage.DuplicateBudgetError)
async def bad_request_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# API endpoint for quick health checks
@app.get("/")
def root():
    return {"message": "Finance Tracker API is running. See /health for status."}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "app": "finance-tracker",
        "version": "0.1.0",
    }


def get_current_owner(
    x_user_id: Optional[int] = Header(default=None),
    session: Session = Depends(get_session),
) -> User:
    """Resolve the owner of this request.

    The X-User-Id header selects an existing user; without it the demo
    user is used (and created if missing).
    """
    if x_user_id is None:
        return storage.ensure_user(session, settings.demo_username)

    user = storage.get_user(session, x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def seed_default_categories(session: Session, owner: User) -> None:
    """Seed default categories for the owner if it has none."""
    if storage.list_categories(session, owner.id):
        logger.info("Categories already exist, skipping seed")
        return

    session.add_all(
        [Category(**data, is_default=True, user_id=owner.id) for data in DEFAULT_CATEGORIES]
    )
    session.commit()
    logger.info("Added %d default categories for %s", len(DEFAULT_CATEGORIES), owner.username)


@app.on_event("startup")
def on_startup() -> None:
    """
    Run once when the app starts:
    - Wait for the database to be ready
    - Create tables
    - Ensure the demo user and its default categories exist
    """
    retries = settings.db_connect_retries
    delay = settings.db_connect_delay
    last_exc: Exception | None = None

    for attempt in range(1, retries + 1):
        try:
            SQLModel.metadata.create_all(engine)

            with Session(engine) as session:
                owner = storage.ensure_user(session, settings.demo_username)
                if settings.seed_default_categories:
                    seed_default_categories(session, owner)

            logger.info("Database ready, tables created")
            return
        except OperationalError as exc:
            last_exc = exc
            logger.warning(
                "DB not ready yet (attempt %d/%d); waiting %ss...", attempt, retries, delay
            )
            time.sleep(delay)

    logger.error("Giving up connecting to the database")
    if last_exc:
        raise last_exc
    raise RuntimeError("Database not reachable on startup.")


def resolve_request_window(
    time_range: Optional[str],
    start_date: Optional[dt.date],
    end_date: Optional[dt.date],
    reference: Optional[dt.date],
) -> Window:
    """Turn the shared timeRange/startDate/endDate/date query into a window."""
    try:
        return resolve_window(time_range, start_date, end_date, reference=reference)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# USER

@app.get("/api/user", response_model=UserRead)
def read_current_user(owner: User = Depends(get_current_owner)):
    """Return the owner the request is acting as."""
    return owner


# CATEGORY ENDPOINTS

@app.get("/api/categories", response_model=list[CategoryRead])
def list_categories(
    category_type: Optional[CategoryType] = Query(default=None, alias="type"),
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """List visible categories, defaults first, optionally filtered by type."""
    return storage.list_categories(session, owner.id, category_type)


@app.get("/api/categories/{category_id}", response_model=CategoryRead)
def get_category(
    category_id: int,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    return storage.get_category(session, category_id, owner.id)


@app.post("/api/categories", response_model=CategoryRead, status_code=201)
def create_category(
    payload: CategoryCreate,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """Create a new category for the owner."""
    return storage.create_category(session, payload, owner.id)


@app.put("/api/categories/{category_id}", response_model=CategoryRead)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """Partially update a category."""
    return storage.update_category(session, category_id, payload, owner.id)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """Delete a category if not referenced by transactions."""
    storage.delete_category(session, category_id, owner.id)
    return None


# TRANSACTION ENDPOINTS
# Amounts are always positive; the category type says income or expense.

@app.get("/api/transactions", response_model=list[TransactionRead])
def list_transactions(
    time_range: Optional[str] = Query(default=None, alias="timeRange"),
    start_date: Optional[dt.date] = Query(default=None, alias="startDate"),
    end_date: Optional[dt.date] = Query(default=None, alias="endDate"),
    reference: Optional[dt.date] = Query(default=None, alias="date"),
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """List transactions in the requested window, newest first."""
    window = resolve_request_window(time_range, start_date, end_date, reference)
    rows = storage.find_in_range(session, window.start, window.end, owner.id)
    return [TransactionRead.model_validate(t) for t in rows]


@app.get("/api/transactions/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: int,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    transaction = storage.get_transaction(session, transaction_id, owner.id)
    return TransactionRead.model_validate(transaction)


@app.post("/api/transactions", response_model=TransactionRead, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """Create a transaction against a visible category."""
    transaction = storage.create_transaction(session, payload, owner.id)
    return TransactionRead.model_validate(transaction)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """Patch a transaction. Only the fields provided in the request are changed."""
    transaction = storage.update_transaction(session, transaction_id, payload, owner.id)
    return TransactionRead.model_validate(transaction)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    storage.delete_transaction(session, transaction_id, owner.id)
    return None


# SUMMARY / PERIODS

@app.get("/api/summary", response_model=SummaryRead)
def get_summary(
    time_range: Optional[str] = Query(default=None, alias="timeRange"),
    start_date: Optional[dt.date] = Query(default=None, alias="startDate"),
    end_date: Optional[dt.date] = Query(default=None, alias="endDate"),
    reference: Optional[dt.date] = Query(default=None, alias="date"),
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """Income/expense totals, balance and per-category breakdown for a window."""
    window = resolve_request_window(time_range, start_date, end_date, reference)
    rows = storage.find_in_range(session, window.start, window.end, owner.id)

    summary = build_summary(rows, window)
    summary["transactions"] = [TransactionRead.model_validate(t) for t in rows]
    return summary


@app.get("/api/period", response_model=PeriodRead)
def get_period(
    time_range: TimeRange = Query(default="month", alias="timeRange"),
    reference: Optional[dt.date] = Query(default=None, alias="date"),
):
    """Window and label for a reference date, plus the previous/next references."""
    ref = reference or local_now().date()
    window = compute_window(ref, time_range)
    return {
        "timeRange": time_range,
        "reference": ref.isoformat(),
        "start": window.start.date().isoformat(),
        "end": window.end.date().isoformat(),
        "label": format_label(ref, time_range),
        "previous": shift_reference(ref, time_range, -1).date().isoformat(),
        "next": shift_reference(ref, time_range, 1).date().isoformat(),
    }


# BUDGET ENDPOINTS

@app.get("/api/budgets", response_model=list[BudgetRead])
def list_budgets(
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """List budgets for a month (defaults to the current one)."""
    today = local_now().date()
    rows = storage.list_budgets(session, owner.id, month or today.month, year or today.year)
    return [BudgetRead.model_validate(b) for b in rows]


@app.post("/api/budgets", response_model=BudgetRead, status_code=201)
def set_budget(
    payload: BudgetCreate,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    """Create the budget for (category, month, year) or overwrite its amount."""
    budget = storage.upsert_budget(
        session,
        category_id=payload.category_id,
        month=payload.month,
        year=payload.year,
        amount=payload.amount,
        owner_id=owner.id,
    )
    return BudgetRead.model_validate(budget)


@app.put("/api/budgets/{budget_id}", response_model=BudgetRead)
def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    budget = storage.update_budget(session, budget_id, payload, owner.id)
    return BudgetRead.model_validate(budget)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    owner: User = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    storage.delete_budget(session, budget_id, owner.id)
    return None
