"""
Data Models Package

This package contains all Pydantic models used in Pocketbook.
All data flowing through the system must conform to these schemas.
"""

from pocketbook.models.ledger import (
    Category,
    Project,
    Subcategory,
    Transaction,
    ValidationIssue,
    ValidationResult,
)
from pocketbook.models.recurring import (
    RECURRING_NOTE_PREFIX,
    ExecutionReport,
    RecurrenceRule,
    RecurrenceType,
    RecurringExpense,
    RecurringExpenseStats,
    SkippedExecution,
)
from pocketbook.models.currency import (
    Currency,
    ExchangeRateSnapshot,
    RateFetchResult,
    normalize_currency,
)
from pocketbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Category",
    "Project",
    "Subcategory",
    "Transaction",
    "ValidationIssue",
    "ValidationResult",
    # Recurring models
    "RECURRING_NOTE_PREFIX",
    "ExecutionReport",
    "RecurrenceRule",
    "RecurrenceType",
    "RecurringExpense",
    "RecurringExpenseStats",
    "SkippedExecution",
    # Currency models
    "Currency",
    "ExchangeRateSnapshot",
    "RateFetchResult",
    "normalize_currency",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
