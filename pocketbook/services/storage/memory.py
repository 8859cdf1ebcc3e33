"""
In-Memory Storage Implementation

Used by the test-suite and whenever no persistent backend is configured.
Everything lives in dicts keyed by id; stored and returned models are
deep copies so callers can't mutate storage behind its back.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pocketbook.models.audit import AuditEvent
from pocketbook.models.ledger import Category, Project, Transaction
from pocketbook.models.recurring import RecurringExpense
from pocketbook.services.storage.interface import (
    AuditStorageInterface,
    CatalogStorageInterface,
    DuplicateError,
    NotFoundError,
    RecurringExpenseStorageInterface,
    TransactionStorageInterface,
)


class InMemoryStorage(
    TransactionStorageInterface,
    RecurringExpenseStorageInterface,
    CatalogStorageInterface,
):
    """Single object implementing the ledger, recurring and catalog interfaces."""

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}
        self._recurring: dict[UUID, RecurringExpense] = {}
        self._categories: dict[UUID, Category] = {}
        self._projects: dict[UUID, Project] = {}

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def save_transaction(self, transaction: Transaction) -> bool:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        transaction = self._transactions.get(transaction_id)
        return transaction.model_copy(deep=True) if transaction else None

    async def update_transaction(self, transaction: Transaction) -> bool:
        if transaction.id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    async def list_transactions(
        self,
        category_id: Optional[UUID] = None,
        subcategory_id: Optional[UUID] = None,
        project_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        results = []
        for transaction in self._transactions.values():
            if category_id and transaction.category_id != category_id:
                continue
            if subcategory_id and transaction.subcategory_id != subcategory_id:
                continue
            if project_id and transaction.project_id != project_id:
                continue
            if date_from and transaction.date < date_from:
                continue
            if date_to and transaction.date >= date_to:
                continue
            results.append(transaction.model_copy(deep=True))

        results.sort(key=lambda t: t.date, reverse=True)
        return results[:limit] if limit is not None else results

    # -------------------------------------------------------------------------
    # Recurring expenses
    # -------------------------------------------------------------------------

    async def insert_recurring_expense(self, expense: RecurringExpense) -> bool:
        if expense.id in self._recurring:
            raise DuplicateError(f"Recurring expense already exists: {expense.id}")
        self._recurring[expense.id] = expense.model_copy(deep=True)
        return True

    async def update_recurring_expense(self, expense: RecurringExpense) -> bool:
        if expense.id not in self._recurring:
            raise NotFoundError(f"Recurring expense not found: {expense.id}")
        self._recurring[expense.id] = expense.model_copy(deep=True)
        return True

    async def delete_recurring_expense(self, expense_id: UUID) -> bool:
        return self._recurring.pop(expense_id, None) is not None

    async def fetch_recurring_expenses(self) -> list[RecurringExpense]:
        expenses = [e.model_copy(deep=True) for e in self._recurring.values()]
        expenses.sort(key=lambda e: e.next_execution_date)
        return expenses

    async def record_execution(
        self,
        expense: RecurringExpense,
        transaction: Transaction,
    ) -> bool:
        # Check both preconditions before touching either dict
        if expense.id not in self._recurring:
            raise NotFoundError(f"Recurring expense not found: {expense.id}")
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        self._recurring[expense.id] = expense.model_copy(deep=True)
        return True

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        categories = [c.model_copy(deep=True) for c in self._categories.values()]
        categories.sort(key=lambda c: c.order)
        return categories

    async def save_category(self, category: Category) -> bool:
        self._categories[category.id] = category.model_copy(deep=True)
        return True

    async def delete_category(self, category_id: UUID) -> bool:
        return self._categories.pop(category_id, None) is not None

    async def list_projects(self) -> list[Project]:
        projects = [p.model_copy(deep=True) for p in self._projects.values()]
        projects.sort(key=lambda p: p.order)
        return projects

    async def save_project(self, project: Project) -> bool:
        self._projects[project.id] = project.model_copy(deep=True)
        return True

    async def delete_project(self, project_id: UUID) -> bool:
        return self._projects.pop(project_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
