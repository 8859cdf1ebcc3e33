"""
Recurring Expense Scheduler

Owns the recurring expense definitions and turns due ones into
transactions.

FLOW OF ONE DUE-CHECK PASS:
1. Collect active definitions whose next_execution_date has arrived
2. Resolve category / subcategory / project (missing -> skip, keep definition)
3. Build the transaction and the advanced definition
4. Persist both in one record_execution call
5. Only then replace the in-memory copy
6. Notify the user with the number of recorded expenses

CRITICAL: Passes never overlap. A timer tick and a manual "check now"
arriving together would otherwise both see the same definition as due
and record it twice. The second caller gets busy=True and does nothing.

Overdue definitions are recorded once per pass, not once per missed
period; the next date is computed from the time of execution.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import structlog

from pocketbook.audit.logger import AuditLogger, create_correlation_id
from pocketbook.config import get_settings
from pocketbook.ledger.catalog import CatalogService
from pocketbook.models.recurring import (
    ExecutionReport,
    RecurrenceType,
    RecurringExpense,
    RecurringExpenseStats,
    SkippedExecution,
)
from pocketbook.scheduling.recurrence import compute_next_execution_date
from pocketbook.services.notifications import LoggingNotifier, NotificationInterface
from pocketbook.services.storage.interface import (
    NotFoundError,
    RecurringExpenseStorageInterface,
    StorageError,
)
from pocketbook.validation.validator import (
    RecurringExpenseDraft,
    RecurringExpenseValidator,
)


logger = structlog.get_logger(__name__)


class RecurringExpenseScheduler:
    """
    Recurring expense management and execution.

    Usage:
        scheduler = RecurringExpenseScheduler(storage, catalog)
        expense = await scheduler.add("Rent", 15000, food.id, lunch.id,
                                      monthly_dates=[1])
        report = await scheduler.tick()
    """

    def __init__(
        self,
        storage: RecurringExpenseStorageInterface,
        catalog: CatalogService,
        validator: Optional[RecurringExpenseValidator] = None,
        notifier: Optional[NotificationInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        upcoming_window_days: Optional[int] = None,
    ):
        self._storage = storage
        self._catalog = catalog
        self._validator = validator or RecurringExpenseValidator(catalog)
        self._notifier = notifier or LoggingNotifier()
        self._audit = audit_logger or AuditLogger()
        self._upcoming_window_days = (
            get_settings().scheduler.upcoming_window_days
            if upcoming_window_days is None else upcoming_window_days
        )

        self._expenses: list[RecurringExpense] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # In-memory list
    # -------------------------------------------------------------------------

    async def load(self) -> list[RecurringExpense]:
        """(Re)load all definitions from storage."""
        self._expenses = await self._storage.fetch_recurring_expenses()
        self._sort()
        self._loaded = True
        logger.info("recurring_expenses_loaded", count=len(self._expenses))
        return list(self._expenses)

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    def _sort(self) -> None:
        self._expenses.sort(key=lambda e: e.next_execution_date)

    def _replace(self, expense: RecurringExpense) -> None:
        self._expenses = [e for e in self._expenses if e.id != expense.id]
        self._expenses.append(expense)
        self._sort()

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    async def list_all(self) -> list[RecurringExpense]:
        """All definitions, soonest first."""
        await self._ensure_loaded()
        return list(self._expenses)

    async def get(self, expense_id: UUID) -> RecurringExpense:
        await self._ensure_loaded()
        for expense in self._expenses:
            if expense.id == expense_id:
                return expense
        raise NotFoundError(f"Recurring expense not found: {expense_id}")

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def add(
        self,
        name: str,
        amount: int,
        category_id: UUID,
        subcategory_id: UUID,
        recurrence_type: RecurrenceType = RecurrenceType.MONTHLY_DATES,
        monthly_dates: Optional[list[int]] = None,
        interval_days: int = 30,
        note: Optional[str] = None,
        project_id: Optional[UUID] = None,
        is_active: bool = True,
        now: Optional[datetime] = None,
    ) -> RecurringExpense:
        """
        Validate and store a new definition.

        The first execution date is computed from `now`.

        Raises:
            RecurringExpenseValidationError: If the input is rejected
            StorageError: If the definition can't be stored
        """
        await self._ensure_loaded()
        now = now or datetime.now()

        draft = RecurringExpenseDraft(
            name=name,
            amount=amount,
            note=note,
            recurrence_type=recurrence_type,
            monthly_dates=monthly_dates or [],
            interval_days=interval_days,
            category_id=category_id,
            subcategory_id=subcategory_id,
            project_id=project_id,
        )
        await self._validator.validate_or_raise(draft)

        rule = draft.to_rule()
        expense = RecurringExpense(
            name=name,
            amount=amount,
            note=note,
            is_active=is_active,
            recurrence=rule,
            next_execution_date=compute_next_execution_date(rule, now),
            created_date=now,
            category_id=category_id,
            subcategory_id=subcategory_id,
            project_id=project_id,
        )

        await self._storage.insert_recurring_expense(expense)
        self._replace(expense)

        await self._audit.log_recurring_expense_created(
            expense_id=expense.id,
            name=expense.name,
            amount=expense.amount,
            recurrence=rule.description,
            next_execution_date=expense.next_execution_date,
        )
        return expense

    async def update(
        self,
        expense_id: UUID,
        name: str,
        amount: int,
        category_id: UUID,
        subcategory_id: UUID,
        recurrence_type: RecurrenceType = RecurrenceType.MONTHLY_DATES,
        monthly_dates: Optional[list[int]] = None,
        interval_days: int = 30,
        note: Optional[str] = None,
        project_id: Optional[UUID] = None,
        is_active: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> RecurringExpense:
        """
        Replace a definition's fields and recompute its next execution date.

        created_date and last_execution_date are preserved. is_active=None
        keeps the current state.
        """
        existing = await self.get(expense_id)
        now = now or datetime.now()

        draft = RecurringExpenseDraft(
            name=name,
            amount=amount,
            note=note,
            recurrence_type=recurrence_type,
            monthly_dates=monthly_dates or [],
            interval_days=interval_days,
            category_id=category_id,
            subcategory_id=subcategory_id,
            project_id=project_id,
        )
        await self._validator.validate_or_raise(draft)

        rule = draft.to_rule()
        updated = RecurringExpense(
            id=existing.id,
            name=name,
            amount=amount,
            note=note,
            is_active=existing.is_active if is_active is None else is_active,
            recurrence=rule,
            next_execution_date=compute_next_execution_date(rule, now),
            last_execution_date=existing.last_execution_date,
            created_date=existing.created_date,
            category_id=category_id,
            subcategory_id=subcategory_id,
            project_id=project_id,
        )

        await self._storage.update_recurring_expense(updated)
        self._replace(updated)

        await self._audit.log_recurring_expense_updated(
            expense_id=updated.id,
            name=updated.name,
            next_execution_date=updated.next_execution_date,
        )
        return updated

    async def delete(self, expense_id: UUID) -> bool:
        """
        Delete a definition.

        Transactions it already generated stay in the ledger.
        """
        expense = await self.get(expense_id)
        deleted = await self._storage.delete_recurring_expense(expense_id)
        self._expenses = [e for e in self._expenses if e.id != expense_id]
        if deleted:
            await self._audit.log_recurring_expense_deleted(expense.id, expense.name)
        return deleted

    async def toggle_active(self, expense_id: UUID) -> RecurringExpense:
        """Flip is_active. The schedule is left as it is."""
        expense = await self.get(expense_id)
        toggled = expense.model_copy(update={"is_active": not expense.is_active})

        await self._storage.update_recurring_expense(toggled)
        self._replace(toggled)

        await self._audit.log_recurring_expense_toggled(
            expense_id=toggled.id,
            name=toggled.name,
            is_active=toggled.is_active,
        )
        return toggled

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    @staticmethod
    def is_due(expense: RecurringExpense, now: datetime) -> bool:
        return expense.is_due(now)

    async def _skip(
        self,
        expense: RecurringExpense,
        reason: str,
        error: Exception,
        correlation_id: UUID,
    ) -> SkippedExecution:
        skipped = SkippedExecution(
            expense_id=expense.id,
            expense_name=expense.name,
            reason=reason,
            message=str(error),
        )
        logger.warning(
            "recurring_expense_skipped",
            expense_id=str(expense.id),
            reason=reason,
            error=str(error),
        )
        await self._audit.log_recurring_expense_skipped(
            expense_id=expense.id,
            reason=reason,
            message=str(error),
            correlation_id=correlation_id,
        )
        return skipped

    async def evaluate_and_execute_due(self, now: Optional[datetime] = None) -> ExecutionReport:
        """
        Record every due definition once.

        Returns immediately with busy=True if another pass is running.
        """
        now = now or datetime.now()
        if self._lock.locked():
            logger.info("recurring_check_busy")
            return ExecutionReport(checked_at=now, busy=True)

        async with self._lock:
            await self._ensure_loaded()
            correlation_id = create_correlation_id()

            # Snapshot before executing: an advanced definition is not re-checked in this pass
            due = [e for e in self._expenses if self.is_due(e, now)]
            report = ExecutionReport(checked_at=now, due_count=len(due))

            for expense in due:
                try:
                    await self._catalog.resolve_references(
                        expense.category_id,
                        expense.subcategory_id,
                        expense.project_id,
                    )
                except NotFoundError as e:
                    report.skipped.append(
                        await self._skip(expense, "reference_not_found", e, correlation_id)
                    )
                    continue
                except StorageError as e:
                    report.skipped.append(
                        await self._skip(expense, "storage_error", e, correlation_id)
                    )
                    continue

                transaction = expense.build_transaction(now)
                advanced = expense.model_copy(update={
                    "last_execution_date": now,
                    "next_execution_date": compute_next_execution_date(expense.recurrence, now),
                })

                try:
                    await self._storage.record_execution(advanced, transaction)
                except StorageError as e:
                    report.skipped.append(
                        await self._skip(expense, "storage_error", e, correlation_id)
                    )
                    continue

                self._replace(advanced)
                report.transactions.append(transaction)

                logger.info(
                    "recurring_expense_executed",
                    expense_id=str(expense.id),
                    transaction_id=str(transaction.id),
                    next_execution_date=advanced.next_execution_date.isoformat(),
                )
                await self._audit.log_recurring_expense_executed(
                    expense_id=expense.id,
                    transaction_id=transaction.id,
                    amount=transaction.amount,
                    next_execution_date=advanced.next_execution_date,
                    correlation_id=correlation_id,
                )

            if due:
                await self._audit.log_recurring_check_completed(
                    due_count=len(due),
                    executed_count=report.executed_count,
                    skipped_count=len(report.skipped),
                    correlation_id=correlation_id,
                )

        if report.executed_count:
            await self._notifier.notify_recurring_executed(report.executed_count)
        return report

    async def tick(self, now: Optional[datetime] = None) -> ExecutionReport:
        """Timer entry point."""
        return await self.evaluate_and_execute_due(now)

    async def manual_check_now(self, now: Optional[datetime] = None) -> ExecutionReport:
        """User entry point ("check now" button)."""
        return await self.evaluate_and_execute_due(now)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def upcoming(
        self,
        within_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[RecurringExpense]:
        """Active definitions due within the window (overdue ones included)."""
        await self._ensure_loaded()
        now = now or datetime.now()
        days = self._upcoming_window_days if within_days is None else within_days
        horizon = now + timedelta(days=days)
        return [
            e for e in self._expenses
            if e.is_active and e.next_execution_date <= horizon
        ]

    async def stats(self) -> RecurringExpenseStats:
        """Counts and the estimated monthly cost of the active definitions."""
        await self._ensure_loaded()
        active = [e for e in self._expenses if e.is_active]
        return RecurringExpenseStats(
            total_count=len(self._expenses),
            active_count=len(active),
            estimated_monthly_total=sum(e.monthly_amount for e in active),
        )
