"""
Tests for next execution date computation.
"""

import calendar
from datetime import datetime, timedelta

import pytest

from pocketbook.models.recurring import RecurrenceRule
from pocketbook.scheduling.recurrence import (
    compute_next_execution_date,
    next_monthly_date,
)


def qualifies(day: datetime, days: list[int]) -> bool:
    """Whether `day` is an execution day for the given day set (with clamping)."""
    last_day = calendar.monthrange(day.year, day.month)[1]
    if day.day in days:
        return True
    return day.day == last_day and any(d > last_day for d in days)


class TestFixedInterval:
    """Tests for FIXED_INTERVAL rules."""

    def test_adds_interval(self):
        rule = RecurrenceRule.every(30)
        assert compute_next_execution_date(rule, datetime(2025, 1, 10)) == datetime(2025, 2, 9)

    def test_keeps_time_of_day(self):
        rule = RecurrenceRule.every(1)
        result = compute_next_execution_date(rule, datetime(2025, 1, 10, 18, 45))
        assert result == datetime(2025, 1, 11, 18, 45)

    @pytest.mark.parametrize("interval", [1, 7, 30, 365])
    def test_iterations_accumulate(self, interval):
        """k iterations land exactly k * interval days later."""
        rule = RecurrenceRule.every(interval)
        start = datetime(2024, 2, 28, 8, 0)
        current = start
        for _ in range(12):
            current = compute_next_execution_date(rule, current)
        assert current == start + timedelta(days=12 * interval)


class TestMonthlyDates:
    """Tests for MONTHLY_DATES rules."""

    def test_next_selected_day_in_month(self):
        rule = RecurrenceRule.monthly(1, 15)
        result = compute_next_execution_date(rule, datetime(2025, 1, 10, 14, 0))
        assert result == datetime(2025, 1, 15)

    def test_rolls_over_to_next_month(self):
        """Created on the 20th of a 31-day month -> day 1 of next month."""
        rule = RecurrenceRule.monthly(1, 15)
        result = compute_next_execution_date(rule, datetime(2025, 1, 20, 9, 0))
        assert result == datetime(2025, 2, 1)

    def test_same_day_is_not_next(self):
        """Executing on a selected day moves on to the following one."""
        rule = RecurrenceRule.monthly(1, 15)
        assert compute_next_execution_date(rule, datetime(2025, 2, 1, 8, 0)) == datetime(2025, 2, 15)
        assert compute_next_execution_date(rule, datetime(2025, 2, 15, 23, 0)) == datetime(2025, 3, 1)

    def test_december_rolls_into_next_year(self):
        rule = RecurrenceRule.monthly(5)
        assert compute_next_execution_date(rule, datetime(2025, 12, 20)) == datetime(2026, 1, 5)

    def test_result_is_midnight(self):
        result = compute_next_execution_date(RecurrenceRule.monthly(28), datetime(2025, 3, 3, 17, 59, 59))
        assert (result.hour, result.minute, result.second) == (0, 0, 0)


class TestMonthlyClamping:
    """Days missing from a month run on its last day."""

    def test_31st_in_april(self):
        rule = RecurrenceRule.monthly(31)
        assert compute_next_execution_date(rule, datetime(2025, 4, 10)) == datetime(2025, 4, 30)

    def test_clamped_day_must_be_after_today(self):
        rule = RecurrenceRule.monthly(31)
        assert compute_next_execution_date(rule, datetime(2025, 4, 30)) == datetime(2025, 5, 31)

    def test_february(self):
        rule = RecurrenceRule.monthly(30)
        assert compute_next_execution_date(rule, datetime(2025, 2, 10)) == datetime(2025, 2, 28)
        assert compute_next_execution_date(rule, datetime(2024, 2, 10)) == datetime(2024, 2, 29)

    def test_several_days_collapse_to_month_end(self):
        rule = RecurrenceRule.monthly(29, 30, 31)
        assert compute_next_execution_date(rule, datetime(2025, 2, 28)) == datetime(2025, 3, 29)

    def test_next_month_is_clamped(self):
        rule = RecurrenceRule.monthly(31)
        assert compute_next_execution_date(rule, datetime(2025, 1, 31)) == datetime(2025, 2, 28)

    def test_empty_day_list_uses_same_day_next_month(self):
        assert next_monthly_date([], datetime(2025, 1, 31, 10)) == datetime(2025, 2, 28)
        assert next_monthly_date([], datetime(2025, 3, 12)) == datetime(2025, 4, 12)


class TestMonthlyProperties:
    """Exhaustive checks over two years of start dates."""

    @pytest.mark.parametrize("days", [[1], [1, 15], [10, 20, 30], [31], [28, 29], [5, 31]])
    def test_next_date_is_the_first_qualifying_day(self, days):
        rule = RecurrenceRule.monthly(*days)
        start = datetime(2024, 1, 1, 12, 0)

        for offset in range(0, 731):
            from_date = start + timedelta(days=offset)
            result = compute_next_execution_date(rule, from_date)

            assert result > from_date
            assert qualifies(result, days)

            # No qualifying day strictly between from_date's day and result
            candidate = from_date.replace(hour=0, minute=0) + timedelta(days=1)
            while candidate < result:
                assert not qualifies(candidate, days), (from_date, candidate, result)
                candidate += timedelta(days=1)
