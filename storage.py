"""Persistence operations for users, categories, transactions and budgets.

Every query takes the owner id explicitly. Rows belonging to another
owner are reported as missing rather than forbidden.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from models import Budget, Category, Transaction, User
from periods import local_now
from schemas import (
    BudgetUpdate,
    CategoryCreate,
    CategoryUpdate,
    TransactionCreate,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

# Dialects with a native INSERT ... ON CONFLICT DO UPDATE.
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class NotFoundError(LookupError):
    """A referenced row does not exist for this owner."""

    def __init__(self, entity: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity


class InvalidReferenceError(ValueError):
    """A payload points at a row the owner cannot use."""


class CategoryInUseError(Exception):
    """The category still has transactions and cannot be deleted."""


class DuplicateBudgetError(Exception):
    """Another budget already covers this category and month."""


def save_and_refresh(session: Session, instance):
    """Persist and refresh an instance in the current session."""
    session.add(instance)
    session.commit()
    session.refresh(instance)
    return instance


def _same_owner(row_owner: Optional[int], owner_id: Optional[int]) -> bool:
    return row_owner == owner_id


def _owner_clause(column, owner_id: Optional[int]):
    # NULL owner is its own scope, not a wildcard
    return column.is_(None) if owner_id is None else column == owner_id


# Users

def get_user(session: Session, user_id: int) -> Optional[User]:
    return session.get(User, user_id)


def get_user_by_username(session: Session, username: str) -> Optional[User]:
    """Fetch a user by username or return None."""
    stmt = select(User).where(User.username == username)
    return session.exec(stmt).first()


def ensure_user(session: Session, username: str) -> User:
    """Return the named user, creating it on first use."""
    user = get_user_by_username(session, username)
    if user is not None:
        return user
    try:
        return save_and_refresh(session, User(username=username))
    except IntegrityError:
        # created concurrently by another request
        session.rollback()
        return get_user_by_username(session, username)


# Categories

def _is_visible(category: Category, owner_id: Optional[int]) -> bool:
    return category.user_id is None or _same_owner(category.user_id, owner_id)


def list_categories(
    session: Session,
    owner_id: Optional[int],
    category_type: Optional[str] = None,
) -> list[Category]:
    """Categories of the owner plus shared ones, defaults first, then by name."""
    stmt = select(Category)
    if owner_id is not None:
        stmt = stmt.where(or_(Category.user_id == owner_id, Category.user_id.is_(None)))
    if category_type:
        stmt = stmt.where(Category.type == category_type)
    stmt = stmt.order_by(Category.is_default.desc(), Category.name)
    return list(session.exec(stmt).all())


def get_category(session: Session, category_id: int, owner_id: Optional[int]) -> Category:
    category = session.get(Category, category_id)
    if not category or not _is_visible(category, owner_id):
        raise NotFoundError("Category")
    return category


def _owned_category(session: Session, category_id: int, owner_id: Optional[int]) -> Category:
    # shared categories are read-only for owners
    category = session.get(Category, category_id)
    if not category or not _same_owner(category.user_id, owner_id):
        raise NotFoundError("Category")
    return category


def _require_category(session: Session, category_id: int, owner_id: Optional[int]) -> Category:
    """Like get_category, but a bad reference in a payload is the caller's error."""
    try:
        return get_category(session, category_id, owner_id)
    except NotFoundError:
        raise InvalidReferenceError("Category not found")


def create_category(
    session: Session,
    data: CategoryCreate,
    owner_id: Optional[int],
    *,
    is_default: bool = False,
) -> Category:
    row = Category(**data.model_dump(), is_default=is_default, user_id=owner_id)
    return save_and_refresh(session, row)


def update_category(
    session: Session,
    category_id: int,
    data: CategoryUpdate,
    owner_id: Optional[int],
) -> Category:
    category = _owned_category(session, category_id, owner_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(category, field, value)
    return save_and_refresh(session, category)


def delete_category(session: Session, category_id: int, owner_id: Optional[int]) -> None:
    """Delete a category unless transactions still reference it.

    Budgets set for the category go with it.
    """
    category = _owned_category(session, category_id, owner_id)

    in_use = session.exec(
        select(Transaction.id).where(Transaction.category_id == category_id).limit(1)
    ).first()
    if in_use is not None:
        logger.info("Refusing to delete category %s: referenced by transactions", category_id)
        raise CategoryInUseError(
            "Category is in use by existing transactions and cannot be deleted"
        )

    budgets = session.exec(select(Budget).where(Budget.category_id == category_id)).all()
    for budget in budgets:
        session.delete(budget)
    session.delete(category)
    session.commit()


# Transactions

def find_in_range(
    session: Session,
    start: datetime,
    end: datetime,
    owner_id: Optional[int],
) -> list[Transaction]:
    """Transactions dated within [start, end], newest first, categories loaded."""
    stmt = (
        select(Transaction)
        .options(selectinload(Transaction.category))
        .where(Transaction.date >= start, Transaction.date <= end)
    )
    if owner_id is not None:
        stmt = stmt.where(Transaction.user_id == owner_id)
    stmt = stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
    return list(session.exec(stmt).all())


def get_transaction(session: Session, transaction_id: int, owner_id: Optional[int]) -> Transaction:
    transaction = session.get(Transaction, transaction_id)
    if not transaction or not _same_owner(transaction.user_id, owner_id):
        raise NotFoundError("Transaction")
    return transaction


def create_transaction(
    session: Session,
    data: TransactionCreate,
    owner_id: Optional[int],
) -> Transaction:
    _require_category(session, data.category_id, owner_id)
    row = Transaction(
        amount=data.amount,
        description=data.description,
        date=data.date or local_now(),
        category_id=data.category_id,
        user_id=owner_id,
    )
    return save_and_refresh(session, row)


def update_transaction(
    session: Session,
    transaction_id: int,
    data: TransactionUpdate,
    owner_id: Optional[int],
) -> Transaction:
    transaction = get_transaction(session, transaction_id, owner_id)
    fields = data.model_dump(exclude_unset=True)

    # amount, category and date cannot be cleared, only replaced
    for required in ("amount", "category_id", "date"):
        if required in fields and fields[required] is None:
            del fields[required]

    if "category_id" in fields:
        _require_category(session, fields["category_id"], owner_id)

    for field, value in fields.items():
        setattr(transaction, field, value)
    return save_and_refresh(session, transaction)


def delete_transaction(session: Session, transaction_id: int, owner_id: Optional[int]) -> None:
    transaction = get_transaction(session, transaction_id, owner_id)
    session.delete(transaction)
    session.commit()


# Budgets

def _find_budget(
    session: Session,
    category_id: int,
    month: int,
    year: int,
    owner_id: Optional[int],
) -> Optional[Budget]:
    stmt = select(Budget).where(
        Budget.category_id == category_id,
        Budget.month == month,
        Budget.year == year,
        _owner_clause(Budget.user_id, owner_id),
    )
    return session.exec(stmt).first()


def list_budgets(
    session: Session,
    owner_id: Optional[int],
    month: int,
    year: int,
) -> list[Budget]:
    stmt = (
        select(Budget)
        .options(selectinload(Budget.category))
        .where(
            Budget.month == month,
            Budget.year == year,
            _owner_clause(Budget.user_id, owner_id),
        )
    )
    return list(session.exec(stmt).all())


def get_budget(session: Session, budget_id: int, owner_id: Optional[int]) -> Budget:
    budget = session.get(Budget, budget_id)
    if not budget or not _same_owner(budget.user_id, owner_id):
        raise NotFoundError("Budget")
    return budget


def upsert_budget(
    session: Session,
    category_id: int,
    month: int,
    year: int,
    amount: Decimal,
    owner_id: Optional[int],
) -> Budget:
    """Set the budget for (category, month, year, owner).

    An existing row keeps its id and created_at; only the amount is
    overwritten. On SQLite and PostgreSQL this is one
    INSERT ... ON CONFLICT DO UPDATE statement.
    """
    _require_category(session, category_id, owner_id)
    amount = Decimal(str(amount))

    insert = _UPSERT_INSERTS.get(session.get_bind().dialect.name)
    if insert is not None:
        stmt = insert(Budget).values(
            category_id=category_id,
            month=month,
            year=year,
            amount=amount,
            user_id=owner_id,
            created_at=local_now(),
        )
        if owner_id is None:
            stmt = stmt.on_conflict_do_update(
                index_elements=["category_id", "month", "year"],
                index_where=Budget.user_id.is_(None),
                set_={"amount": stmt.excluded.amount},
            )
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=["category_id", "month", "year", "user_id"],
                set_={"amount": stmt.excluded.amount},
            )
        session.execute(stmt)
        session.commit()
    else:
        existing = _find_budget(session, category_id, month, year, owner_id)
        if existing:
            existing.amount = amount
            session.add(existing)
        else:
            session.add(
                Budget(
                    category_id=category_id,
                    month=month,
                    year=year,
                    amount=amount,
                    user_id=owner_id,
                )
            )
        session.commit()

    budget = _find_budget(session, category_id, month, year, owner_id)
    logger.info(
        "Budget %s set: category=%s %04d-%02d amount=%s owner=%s",
        budget.id,
        category_id,
        year,
        month,
        amount,
        owner_id,
    )
    return budget


def update_budget(
    session: Session,
    budget_id: int,
    data: BudgetUpdate,
    owner_id: Optional[int],
) -> Budget:
    budget = get_budget(session, budget_id, owner_id)
    fields = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

    if "category_id" in fields:
        _require_category(session, fields["category_id"], owner_id)

    for field, value in fields.items():
        setattr(budget, field, value)
    try:
        return save_and_refresh(session, budget)
    except IntegrityError:
        session.rollback()
        raise DuplicateBudgetError(
            "A budget for this category and month already exists"
        )


def delete_budget(session: Session, budget_id: int, owner_id: Optional[int]) -> None:
    budget = get_budget(session, budget_id, owner_id)
    session.delete(budget)
    session.commit()
