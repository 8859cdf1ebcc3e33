"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep data in Google Sheets or in memory behind the same calls
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the catalog, ledger and scheduler need.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from pocketbook.models.audit import AuditEvent
from pocketbook.models.ledger import Category, Project, Transaction
from pocketbook.models.recurring import RecurringExpense


class TransactionStorageInterface(ABC):
    """Storage for expense transactions."""

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Save a new transaction.

        Raises:
            DuplicateError: If a transaction with the same id exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by id, or None."""
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> bool:
        """
        Replace an existing transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """Delete a transaction. Returns False if it didn't exist."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        category_id: Optional[UUID] = None,
        subcategory_id: Optional[UUID] = None,
        project_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """
        List transactions matching all given filters, newest first.

        date_from is inclusive, date_to is exclusive.
        """
        pass


class RecurringExpenseStorageInterface(ABC):
    """
    Storage for recurring expense definitions.

    record_execution must be atomic: the generated transaction and the
    advanced definition are stored together or not at all.
    """

    @abstractmethod
    async def insert_recurring_expense(self, expense: RecurringExpense) -> bool:
        pass

    @abstractmethod
    async def update_recurring_expense(self, expense: RecurringExpense) -> bool:
        """
        Raises:
            NotFoundError: If the definition doesn't exist
        """
        pass

    @abstractmethod
    async def delete_recurring_expense(self, expense_id: UUID) -> bool:
        """Delete a definition. Generated transactions are kept."""
        pass

    @abstractmethod
    async def fetch_recurring_expenses(self) -> list[RecurringExpense]:
        """All definitions sorted by next_execution_date ascending."""
        pass

    @abstractmethod
    async def record_execution(
        self,
        expense: RecurringExpense,
        transaction: Transaction,
    ) -> bool:
        """
        Store an executed definition and its generated transaction.

        Raises:
            StorageError: If either write fails (neither is kept)
        """
        pass


class CatalogStorageInterface(ABC):
    """
    Storage for categories (with embedded subcategories) and projects.
    """

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        """All categories sorted by order."""
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> bool:
        """Insert or replace a category, including its subcategories."""
        pass

    @abstractmethod
    async def delete_category(self, category_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """All projects sorted by order."""
        pass

    @abstractmethod
    async def save_project(self, project: Project) -> bool:
        """Insert or replace a project."""
        pass

    @abstractmethod
    async def delete_project(self, project_id: UUID) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """All events for one entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
