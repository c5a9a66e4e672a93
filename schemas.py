"""Pydantic/SQLModel schemas for API payloads and validation."""
from typing import Literal, Optional
from datetime import datetime
from decimal import Decimal

from sqlmodel import SQLModel, Field
import pydantic
from pydantic import ConfigDict, field_validator, BaseModel, constr

from utils import normalize_iso_datetime

NAME_MAX_LEN = 80
DESCRIPTION_MAX_LEN = 300

CategoryType = Literal["income", "expense"]
TimeRange = Literal["day", "week", "month", "year"]


class UserRead(SQLModel):
    """Response model for the current owner."""
    id: int
    username: str


# Category schemas

class CategoryCreate(BaseModel):
    """Payload for creating a category."""
    name: constr(strip_whitespace=True, min_length=1, max_length=NAME_MAX_LEN)
    type: CategoryType
    icon: constr(strip_whitespace=True, min_length=1, max_length=50)
    color: constr(strip_whitespace=True, min_length=1, max_length=30)


class CategoryUpdate(BaseModel):
    """Partial update payload for a category."""
    name: Optional[constr(strip_whitespace=True, min_length=1, max_length=NAME_MAX_LEN)] = None
    type: Optional[CategoryType] = None
    icon: Optional[constr(strip_whitespace=True, min_length=1, max_length=50)] = None
    color: Optional[constr(strip_whitespace=True, min_length=1, max_length=30)] = None


class CategoryRead(BaseModel):
    """Response model for a category."""
    id: int
    name: str
    type: str
    icon: str
    color: str
    is_default: bool
    user_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Transaction schemas

class AmountMixin:
    """Read JSON floats through their text form so 45.8 stays Decimal("45.8")."""
    @field_validator("amount", mode="before")
    @classmethod
    def amount_from_float(cls, v):
        if isinstance(v, float):
            return Decimal(str(v))
        return v


class DescriptionDateMixin:
    """Shared validators for description trimming and date normalization."""
    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return normalize_iso_datetime(v)


class TransactionCreate(AmountMixin, DescriptionDateMixin, SQLModel):
    """Payload for creating a transaction. A missing date means "now"."""
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    category_id: int
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LEN)
    date: Optional[datetime] = None


class TransactionUpdate(AmountMixin, DescriptionDateMixin, SQLModel):
    """Partial update payload for transactions."""
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LEN)
    date: Optional[datetime] = None


class TransactionRead(BaseModel):
    """Response model for a transaction joined with its category."""
    id: int
    amount: Decimal
    description: Optional[str] = None
    date: datetime
    category_id: int
    user_id: Optional[int] = None
    created_at: datetime
    category: Optional[CategoryRead] = None

    model_config = ConfigDict(from_attributes=True)


# Budget schemas

class BudgetCreate(AmountMixin, SQLModel):
    """Payload for setting a monthly budget (upsert)."""
    category_id: int
    amount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


class BudgetUpdate(AmountMixin, SQLModel):
    """Partial update payload for a budget row."""
    category_id: Optional[int] = None
    amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)


class BudgetRead(BaseModel):
    """Response model for a budget joined with its category."""
    id: int
    amount: Decimal
    month: int
    year: int
    category_id: int
    user_id: Optional[int] = None
    created_at: datetime
    category: Optional[CategoryRead] = None

    model_config = ConfigDict(from_attributes=True)


# Summary / period schemas

class CategoryAmount(BaseModel):
    """One row of the per-category breakdown."""
    id: int
    name: str
    type: str
    color: str
    icon: str
    amount: float


class PeriodRange(BaseModel):
    start: str
    end: str


class SummaryRead(BaseModel):
    """Totals, breakdown and transactions for one period."""
    income: float
    expense: float
    balance: float
    category_data: list[CategoryAmount] = pydantic.Field(alias="categoryData")
    transactions: list[TransactionRead]
    period: PeriodRange

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class PeriodRead(BaseModel):
    """A resolved report window with its label and navigation targets."""
    time_range: TimeRange = pydantic.Field(alias="timeRange")
    reference: str
    start: str
    end: str
    label: str
    previous: str
    next: str

    model_config = ConfigDict(populate_by_name=True)
