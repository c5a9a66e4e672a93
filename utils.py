"""Utility functions for money rounding, date parsing and summary aggregation."""
import datetime as dt
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import CATEGORY_TYPES, Transaction
from periods import Window

logger = logging.getLogger(__name__)


def round_money(dec: Decimal) -> float:
    """Round a Decimal to 2 decimal places with HALF_UP (normal money rounding)."""
    return float(dec.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def summarize(transactions: Iterable[Transaction]) -> dict[str, Any]:
    """
    Reduce transactions into income/expense/balance totals and a
    per-category breakdown.

    Each transaction must have its ``category`` loaded; the category type
    decides whether the (unsigned) amount counts as income or expense.
    The breakdown keeps the category snapshot of the first transaction
    seen for each category id and is sorted by amount, largest first.
    Transactions without a usable category are left out of the totals.
    """
    transactions = list(transactions)
    income_total = Decimal("0")
    expense_total = Decimal("0")
    groups: dict[int, dict[str, Any]] = {}

    for t in transactions:
        category = t.category
        category_type = category.type if category is not None else None
        if category_type not in CATEGORY_TYPES:
            logger.warning(
                "Skipping transaction %s: unrecognized category type %r",
                t.id,
                category_type,
            )
            continue

        amount = Decimal(str(t.amount))
        if category_type == "income":
            income_total += amount
        else:
            expense_total += amount

        group = groups.get(t.category_id)
        if group is None:
            group = {
                "id": t.category_id,
                "name": category.name,
                "type": category.type,
                "color": category.color,
                "icon": category.icon,
                "amount": Decimal("0"),
            }
            groups[t.category_id] = group
        group["amount"] += amount

    # sorted() is stable, so ties keep first-seen order
    category_data = sorted(groups.values(), key=lambda g: g["amount"], reverse=True)
    for group in category_data:
        group["amount"] = round_money(group["amount"])

    return {
        "income": round_money(income_total),
        "expense": round_money(expense_total),
        "balance": round_money(income_total - expense_total),
        "categoryData": category_data,
        "transactions": transactions,
    }


def build_summary(transactions: Iterable[Transaction], window: Window) -> dict[str, Any]:
    """Summary plus the period it covers, as yyyy-mm-dd strings."""
    summary = summarize(transactions)
    summary["period"] = {
        "start": window.start.date().isoformat(),
        "end": window.end.date().isoformat(),
    }
    return summary


def normalize_iso_datetime(value: Any) -> Optional[dt.datetime]:
    """Normalize a value to a naive local datetime or raise a ValueError.

    Plain dates become midnight. Aware datetimes are converted to the
    application timezone before the offset is dropped.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = dt.datetime.fromisoformat(value)
        except ValueError:
            raise ValueError("Invalid date format. Expected an ISO 8601 date or datetime.")
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            tz = ZoneInfo(get_settings().timezone)
            value = value.astimezone(tz).replace(tzinfo=None)
        return value
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time.min)

    raise ValueError("Invalid date format. Expected an ISO 8601 date or datetime.")
