"""Validation package."""

from pocketbook.validation.validator import (
    RecurringExpenseDraft,
    RecurringExpenseValidationError,
    RecurringExpenseValidator,
)

__all__ = [
    "RecurringExpenseDraft",
    "RecurringExpenseValidationError",
    "RecurringExpenseValidator",
]
