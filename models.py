from typing import Optional
from decimal import Decimal
from datetime import datetime

from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import CheckConstraint, Index, UniqueConstraint, text

from periods import local_now

CATEGORY_TYPES = ("income", "expense")


# Each class = one table.
# Amounts are stored unsigned; income vs. expense comes from the category type.
class User(SQLModel, table=True):
    """Owner of categories, transactions and budgets."""
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=local_now)


class Category(SQLModel, table=True):
    """Income or expense category.
    A null user_id means the category is global and visible to every owner.
    """
    __table_args__ = (
        CheckConstraint("type IN ('income', 'expense')", name="ck_category_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(min_length=1, max_length=80)
    type: str = Field(index=True)
    icon: str
    color: str
    is_default: bool = Field(default=False)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=local_now)


class Transaction(SQLModel, table=True):
    """A single money movement against a category."""
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    description: Optional[str] = None
    date: datetime = Field(default_factory=local_now, index=True)
    category_id: int = Field(foreign_key="category.id", index=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=local_now)

    category: Optional[Category] = Relationship()


class Budget(SQLModel, table=True):
    """Monthly spending limit for one category.
    One row per (category, month, year, owner). The partial index covers the
    shared scope, since NULL owners never collide in a plain unique constraint.
    """
    __table_args__ = (
        UniqueConstraint("category_id", "month", "year", "user_id", name="uq_budget_scope"),
        Index(
            "uq_budget_shared_scope",
            "category_id",
            "month",
            "year",
            unique=True,
            sqlite_where=text("user_id IS NULL"),
            postgresql_where=text("user_id IS NULL"),
        ),
        CheckConstraint("amount >= 0", name="ck_budget_amount"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_budget_month"),
        CheckConstraint("year BETWEEN 2000 AND 2100", name="ck_budget_year"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    amount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    category_id: int = Field(foreign_key="category.id", index=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=local_now)

    category: Optional[Category] = Relationship()
