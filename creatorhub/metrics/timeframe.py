"""Reporting windows.

WHAT: Resolves `period` / `comparison` query values and day counts into
      concrete date windows
WHY: Day and month counts never reach SQL as text. They are validated as
     plain integers here and turned into date bounds that are passed to
     queries as bound parameters.

Window convention (same as the metric services elsewhere in the app):
  - last N days = [today - (N - 1), today], inclusive
  - previous window = same length, ending the day before the current start
"""

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

from ..errors import ValidationError
from ..utils.dates import utc_today


MAX_WINDOW_DAYS = 3650
MAX_WINDOW_MONTHS = 120


class Period(str, enum.Enum):
    last_7_days = "7d"
    last_30_days = "30d"
    last_90_days = "90d"
    last_year = "1y"
    all_time = "all"


PERIOD_DAYS = {
    Period.last_7_days: 7,
    Period.last_30_days: 30,
    Period.last_90_days: 90,
    Period.last_year: 365,
    Period.all_time: None,
}


class GrowthMode(str, enum.Enum):
    """How the comparison value for growth metrics is derived.

    disjoint: metric over the comparison-length window immediately before
              the current window (default).
    overlap_subtract: legacy behaviour, metric over the trailing comparison
              window minus the metric over the current window.
    """
    disjoint = "disjoint"
    overlap_subtract = "overlap_subtract"


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive date window; `start is None` means no lower bound."""

    start: Optional[date]
    end: date

    @property
    def days(self) -> Optional[int]:
        if self.start is None:
            return None
        return (self.end - self.start).days + 1

    def start_datetime(self) -> Optional[datetime]:
        if self.start is None:
            return None
        return datetime.combine(self.start, datetime.min.time())

    def end_datetime_exclusive(self) -> datetime:
        return datetime.combine(self.end + timedelta(days=1), datetime.min.time())


def validate_days(days, field: str = "days", maximum: int = MAX_WINDOW_DAYS) -> int:
    """Return `days` as a strictly positive int or raise ValidationError.

    Booleans and numeric strings are rejected.
    """
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    if days < 1 or days > maximum:
        raise ValidationError(f"{field} must be between 1 and {maximum}", field=field)
    return days


def validate_months(months, field: str = "months") -> int:
    return validate_days(months, field=field, maximum=MAX_WINDOW_MONTHS)


def parse_period(value) -> Period:
    if isinstance(value, Period):
        return value
    try:
        return Period(value)
    except ValueError:
        allowed = ", ".join(p.value for p in Period)
        raise ValidationError(f"period must be one of: {allowed}", field="period")


def parse_comparison(value) -> Period:
    period = parse_period(value)
    if period is Period.all_time:
        raise ValidationError("comparison cannot be 'all'", field="comparison")
    return period


def trailing_window(days: int, today: Optional[date] = None) -> TimeWindow:
    days = validate_days(days)
    end = today or utc_today()
    return TimeWindow(start=end - timedelta(days=days - 1), end=end)


def resolve_window(period, today: Optional[date] = None) -> TimeWindow:
    """Window for a `period` value; 'all' has no lower bound."""
    period = parse_period(period)
    days = PERIOD_DAYS[period]
    if days is None:
        return TimeWindow(start=None, end=today or utc_today())
    return trailing_window(days, today)


def previous_window(window: TimeWindow, days: Optional[int] = None) -> TimeWindow:
    """Window of `days` (default: same length) ending the day before `window`."""
    if window.start is None:
        raise ValidationError("An unbounded window has no previous window", field="period")
    length = validate_days(days) if days is not None else window.days
    prev_end = window.start - timedelta(days=1)
    return TimeWindow(start=prev_end - timedelta(days=length - 1), end=prev_end)


def month_starts(months: int, today: Optional[date] = None) -> Tuple[date, date]:
    """First day of the month `months - 1` months ago, and today."""
    months = validate_months(months)
    end = today or utc_today()
    year, month = end.year, end.month - (months - 1)
    while month < 1:
        month += 12
        year -= 1
    return date(year, month, 1), end


def month_keys(months: int, today: Optional[date] = None) -> list:
    """'YYYY-MM' keys for the trailing `months`, oldest first."""
    start, end = month_starts(months, today)
    keys = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        keys.append(f"{year:04d}-{month:02d}")
        month += 1
        if month > 12:
            month = 1
            year += 1
    return keys
