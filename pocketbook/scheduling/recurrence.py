"""
Next Execution Date Computation

Pure functions, no I/O and no clock access: the caller always passes the
reference date. The scheduler uses the same function to initialise a new
definition and to advance one after it has been executed.

FIXED_INTERVAL keeps the time of day of the reference date.
MONTHLY_DATES results are at midnight.

DESIGN DECISION: a selected day that doesn't exist in the target month
(31 in April, 30 in February) is clamped to the month's last day. A
clamped day must still be strictly after the reference day to be used in
the current month; otherwise the next month is used, clamped again.
"""

import calendar
from datetime import datetime, timedelta

from pocketbook.models.recurring import RecurrenceRule, RecurrenceType


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _first_of_next_month(value: datetime) -> datetime:
    if value.month == 12:
        return value.replace(year=value.year + 1, month=1, day=1)
    return value.replace(month=value.month + 1, day=1)


def _on_day(month_start: datetime, day: int) -> datetime:
    """`day` in the month of month_start, clamped to the month's length."""
    last_day = _days_in_month(month_start.year, month_start.month)
    return month_start.replace(day=min(day, last_day))


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def next_monthly_date(days: list[int], from_date: datetime) -> datetime:
    """
    Smallest selected day strictly after from_date's day in the current
    month, else the first selected day of the next month.
    """
    today = start_of_day(from_date)
    month_start = today.replace(day=1)
    next_month = _first_of_next_month(month_start)

    if not days:
        # Nothing selected: same day next month
        return _on_day(next_month, today.day)

    for day in sorted(days):
        candidate = _on_day(month_start, day)
        if candidate.day > today.day:
            return candidate

    return _on_day(next_month, min(days))


def next_interval_date(interval_days: int, from_date: datetime) -> datetime:
    return from_date + timedelta(days=interval_days)


def compute_next_execution_date(rule: RecurrenceRule, from_date: datetime) -> datetime:
    """
    First execution date strictly after from_date according to `rule`.

    Args:
        rule: Validated recurrence rule
        from_date: Reference date (creation time, edit time or execution time)

    Returns:
        The next execution date
    """
    if rule.recurrence_type == RecurrenceType.MONTHLY_DATES:
        return next_monthly_date(rule.monthly_dates, from_date)
    return next_interval_date(rule.interval_days, from_date)
