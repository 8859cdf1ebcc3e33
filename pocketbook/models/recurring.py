"""
Recurring Expense Models for Pocketbook

A recurring expense is a template that periodically generates a
Transaction on its own. Its schedule is a RecurrenceRule:

- MONTHLY_DATES: fixed days of the month (e.g. the 1st and the 15th)
- FIXED_INTERVAL: every N days

CRITICAL: next_execution_date is always derived from the rule.
It is recomputed on creation, on every edit and on every execution;
nothing else is allowed to set it.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from pocketbook.models.ledger import Transaction


RECURRING_NOTE_PREFIX = "[Recurring] "
MAX_NAME_LENGTH = 200
MAX_NOTE_LENGTH = 1000


class RecurrenceType(str, Enum):
    """How a recurring expense is scheduled."""
    MONTHLY_DATES = "monthly_dates"    # fixed days of each month
    FIXED_INTERVAL = "fixed_interval"  # every N days

    @property
    def display_name(self) -> str:
        if self is RecurrenceType.MONTHLY_DATES:
            return "Fixed days each month"
        return "Fixed day interval"


class RecurrenceRule(BaseModel):
    """
    Schedule of a recurring expense.

    Both parameter sets are kept (like a form would) but only the one
    matching recurrence_type is used and validated.
    """
    model_config = ConfigDict(frozen=True)

    recurrence_type: RecurrenceType
    monthly_dates: list[int] = Field(
        default_factory=list,
        description="Days of the month (1-31) for MONTHLY_DATES"
    )
    interval_days: int = Field(
        default=30,
        description="Days between executions for FIXED_INTERVAL"
    )

    @field_validator('monthly_dates')
    @classmethod
    def sort_monthly_dates(cls, v: list[int]) -> list[int]:
        return sorted(set(v))

    @model_validator(mode='after')
    def validate_parameters(self) -> 'RecurrenceRule':
        if self.recurrence_type == RecurrenceType.MONTHLY_DATES:
            if not self.monthly_dates:
                raise ValueError("Monthly recurrence needs at least one day of the month")
            if any(day < 1 or day > 31 for day in self.monthly_dates):
                raise ValueError("Days of the month must be between 1 and 31")
        elif self.interval_days <= 0:
            raise ValueError("Interval must be at least one day")
        return self

    @classmethod
    def monthly(cls, *days: int) -> 'RecurrenceRule':
        return cls(recurrence_type=RecurrenceType.MONTHLY_DATES, monthly_dates=list(days))

    @classmethod
    def every(cls, interval_days: int) -> 'RecurrenceRule':
        return cls(recurrence_type=RecurrenceType.FIXED_INTERVAL, interval_days=interval_days)

    @property
    def occurrences_per_month(self) -> int:
        """
        Executions in a month, for budgeting.

        FIXED_INTERVAL uses a 30-day month (30 // interval_days). This is a
        known approximation, not calendar-exact.
        """
        if self.recurrence_type == RecurrenceType.MONTHLY_DATES:
            return len(self.monthly_dates)
        return 30 // self.interval_days

    @property
    def description(self) -> str:
        if self.recurrence_type == RecurrenceType.MONTHLY_DATES:
            days = ", ".join(str(day) for day in self.monthly_dates)
            return f"Every month on day {days}"
        if self.interval_days == 1:
            return "Every day"
        return f"Every {self.interval_days} days"


class RecurringExpense(BaseModel):
    """
    A recurring expense definition.

    References category / subcategory / project by id only; the catalog
    owns their lifecycle.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(default_factory=uuid4)

    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    amount: int = Field(
        ...,
        gt=0,
        description="Amount in home currency (no minor units)"
    )
    note: Optional[str] = Field(default=None, max_length=MAX_NOTE_LENGTH)
    is_active: bool = True

    recurrence: RecurrenceRule

    # Schedule bookkeeping
    next_execution_date: datetime
    last_execution_date: Optional[datetime] = None
    created_date: datetime = Field(default_factory=datetime.now)

    # Catalog handles
    category_id: UUID
    subcategory_id: UUID
    project_id: Optional[UUID] = None

    @field_validator('note')
    @classmethod
    def blank_note_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def is_due(self, now: datetime) -> bool:
        """Active and the scheduled date has arrived or passed."""
        return self.is_active and now >= self.next_execution_date

    @property
    def transaction_note(self) -> str:
        return RECURRING_NOTE_PREFIX + (self.note or self.name)

    def build_transaction(self, now: datetime) -> Transaction:
        """Snapshot this definition into a Transaction dated `now`."""
        return Transaction(
            category_id=self.category_id,
            subcategory_id=self.subcategory_id,
            project_id=self.project_id,
            amount=self.amount,
            date=now,
            note=self.transaction_note,
            recurring_expense_id=self.id,
        )

    @property
    def monthly_amount(self) -> int:
        """Estimated monthly cost (see RecurrenceRule.occurrences_per_month)."""
        return self.amount * self.recurrence.occurrences_per_month


# =============================================================================
# SCHEDULER RESULTS
# =============================================================================

class RecurringExpenseStats(BaseModel):
    """Aggregate numbers for the recurring expense overview."""

    total_count: int = Field(ge=0)
    active_count: int = Field(ge=0)
    estimated_monthly_total: int = Field(ge=0)


class SkippedExecution(BaseModel):
    """A due expense that was not executed in a pass."""

    expense_id: UUID
    expense_name: str
    reason: str = Field(
        ...,
        pattern="^(reference_not_found|storage_error)$",
    )
    message: str


class ExecutionReport(BaseModel):
    """
    Result of one due-check pass.

    busy=True means another pass was running and nothing was evaluated.
    """

    checked_at: datetime
    busy: bool = False
    due_count: int = Field(default=0, ge=0)
    transactions: list[Transaction] = Field(default_factory=list)
    skipped: list[SkippedExecution] = Field(default_factory=list)

    @property
    def executed_count(self) -> int:
        return len(self.transactions)

    @property
    def failed_count(self) -> int:
        return sum(1 for s in self.skipped if s.reason == "storage_error")
