"""
Reporting Window Tests (Unit)
=============================

WHAT: Unit tests for period parsing and window arithmetic.
WHY: Growth figures are only meaningful when the current and previous
     windows line up exactly; day counts must never reach SQL unvalidated.

REFERENCES:
- creatorhub/metrics/timeframe.py
"""

from datetime import date, datetime

import pytest

from creatorhub.errors import ValidationError
from creatorhub.metrics.timeframe import (
    Period,
    TimeWindow,
    month_keys,
    month_starts,
    parse_comparison,
    parse_period,
    previous_window,
    resolve_window,
    trailing_window,
    validate_days,
    validate_months,
)

TODAY = date(2025, 3, 15)


class TestValidation:
    @pytest.mark.parametrize("value", [1, 30, 3650])
    def test_accepts_positive_ints(self, value) -> None:
        assert validate_days(value) == value

    @pytest.mark.parametrize("value", [0, -1, 3651, True, "30", 7.5, None])
    def test_rejects_everything_else(self, value) -> None:
        with pytest.raises(ValidationError) as exc:
            validate_days(value)
        assert exc.value.field == "days"

    def test_months_upper_bound(self) -> None:
        assert validate_months(120) == 120
        with pytest.raises(ValidationError):
            validate_months(121)

    def test_period_values(self) -> None:
        assert parse_period("7d") is Period.last_7_days
        assert parse_period("all") is Period.all_time
        with pytest.raises(ValidationError):
            parse_period("2w")

    def test_comparison_cannot_be_all(self) -> None:
        assert parse_comparison("90d") is Period.last_90_days
        with pytest.raises(ValidationError) as exc:
            parse_comparison("all")
        assert exc.value.field == "comparison"


class TestWindows:
    def test_trailing_window_is_inclusive(self) -> None:
        window = trailing_window(7, TODAY)
        assert window.start == date(2025, 3, 9)
        assert window.end == TODAY
        assert window.days == 7

    def test_datetime_bounds(self) -> None:
        window = trailing_window(1, TODAY)
        assert window.start_datetime() == datetime(2025, 3, 15)
        assert window.end_datetime_exclusive() == datetime(2025, 3, 16)

    def test_all_time_has_no_lower_bound(self) -> None:
        window = resolve_window("all", TODAY)
        assert window.start is None
        assert window.days is None
        assert window.start_datetime() is None

    def test_previous_window_is_disjoint(self) -> None:
        current = resolve_window("30d", TODAY)
        previous = previous_window(current)
        assert previous.end == date(2025, 2, 13)
        assert previous.days == 30
        assert previous.end < current.start

    def test_previous_window_with_other_length(self) -> None:
        previous = previous_window(resolve_window("7d", TODAY), 30)
        assert previous.days == 30
        assert previous.end == date(2025, 3, 8)

    def test_previous_of_unbounded_window(self) -> None:
        with pytest.raises(ValidationError):
            previous_window(TimeWindow(start=None, end=TODAY))


class TestMonths:
    def test_month_starts_crosses_year(self) -> None:
        start, end = month_starts(4, TODAY)
        assert start == date(2024, 12, 1)
        assert end == TODAY

    def test_month_keys_oldest_first(self) -> None:
        assert month_keys(3, TODAY) == ["2025-01", "2025-02", "2025-03"]

    def test_twelve_month_keys(self) -> None:
        keys = month_keys(12, TODAY)
        assert len(keys) == 12
        assert keys[0] == "2024-04"
        assert keys[-1] == "2025-03"
