"""
Scheduling Package

Next-execution-date computation, the recurring expense scheduler and the
timer that drives it.
"""

from pocketbook.scheduling.recurrence import compute_next_execution_date
from pocketbook.scheduling.runner import RecurringCheckRunner
from pocketbook.scheduling.scheduler import RecurringExpenseScheduler

__all__ = [
    "compute_next_execution_date",
    "RecurringCheckRunner",
    "RecurringExpenseScheduler",
]
