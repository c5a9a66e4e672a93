"""Report period windows: day, week (Monday start), month and year.

Instants are naive datetimes in the configured application timezone. A
window is inclusive on both ends; its end is the last representable
instant of the final day.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings

GRANULARITIES = ("day", "week", "month", "year")
DEFAULT_GRANULARITY = "month"

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


def local_now() -> datetime:
    """Current wall-clock time in the application timezone, without tzinfo."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_datetime(value).date(), time.min)


def end_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_datetime(value).date(), time.max)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _check_granularity(granularity: str) -> None:
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown time range: {granularity!r}")


def compute_window(reference: DateLike, granularity: str) -> Window:
    """Return the window of the given granularity containing ``reference``."""
    _check_granularity(granularity)
    day = _as_datetime(reference).date()

    if granularity == "day":
        return Window(start_of_day(day), end_of_day(day))
    if granularity == "week":
        monday = day - timedelta(days=day.weekday())
        return Window(start_of_day(monday), end_of_day(monday + timedelta(days=6)))
    if granularity == "month":
        first = day.replace(day=1)
        last = day.replace(day=days_in_month(day.year, day.month))
        return Window(start_of_day(first), end_of_day(last))
    return Window(
        start_of_day(date(day.year, 1, 1)),
        end_of_day(date(day.year, 12, 31)),
    )


def format_label(reference: DateLike, granularity: str) -> str:
    """Human readable name of the window containing ``reference``."""
    _check_granularity(granularity)
    ref = _as_datetime(reference)

    if granularity == "day":
        return f"{ref:%A}, {ref:%B} {ref.day}, {ref.year}"
    if granularity == "week":
        window = compute_window(ref, "week")
        start, end = window.start, window.end
        return f"{start:%b} {start.day} – {end:%b} {end.day}, {end.year}"
    if granularity == "month":
        return f"{ref:%B} {ref.year}"
    return str(ref.year)


def _add_months(value: datetime, months: int) -> datetime:
    total_months = value.month - 1 + months
    year = value.year + total_months // 12
    month = total_months % 12 + 1
    day = min(value.day, days_in_month(year, month))
    return value.replace(year=year, month=month, day=day)


def shift_reference(reference: DateLike, granularity: str, steps: int = 1) -> datetime:
    """Move the reference by ``steps`` units of ``granularity`` (negative = back).

    Month and year steps are calendar steps; a day that does not exist in
    the target month is clamped to that month's last day.
    """
    _check_granularity(granularity)
    ref = _as_datetime(reference)

    if granularity == "day":
        return ref + timedelta(days=steps)
    if granularity == "week":
        return ref + timedelta(weeks=steps)
    if granularity == "month":
        return _add_months(ref, steps)
    return _add_months(ref, 12 * steps)


def custom_window(start_date: DateLike, end_date: DateLike) -> Window:
    """Explicit range, widened to whole days."""
    start = start_of_day(start_date)
    end = end_of_day(end_date)
    if start > end:
        raise ValueError("Start date must be before end date")
    return Window(start, end)


def resolve_window(
    granularity: Optional[str] = None,
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
    *,
    reference: Optional[DateLike] = None,
) -> Window:
    """Pick the custom range when both dates are given, else the granularity window.

    A lone start or end date is ignored, and a missing or unknown
    granularity means the month.
    """
    if start_date is not None and end_date is not None:
        return custom_window(start_date, end_date)

    if granularity not in GRANULARITIES:
        granularity = DEFAULT_GRANULARITY
    if reference is None:
        reference = local_now()
    return compute_window(reference, granularity)
