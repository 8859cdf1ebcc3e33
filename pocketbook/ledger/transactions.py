"""
Transaction Service

Manual ledger entries. Every write checks the catalog handles first, so
the ledger never gains a transaction pointing at a missing category.
Generated transactions from recurring expenses are written by the
scheduler through RecurringExpenseStorageInterface.record_execution and
show up here like any other transaction.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from pocketbook.audit.logger import AuditLogger
from pocketbook.ledger.catalog import CatalogService
from pocketbook.models.ledger import Transaction
from pocketbook.services.storage.interface import (
    NotFoundError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)


class TransactionSearchResult(BaseModel):
    """Matches of a note search, newest first."""

    query: str
    transactions: list[Transaction] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.transactions)

    @property
    def total(self) -> int:
        return sum(t.amount for t in self.transactions)


class TransactionService:
    """Add, edit, delete, list and search transactions."""

    def __init__(
        self,
        storage: TransactionStorageInterface,
        catalog: CatalogService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._catalog = catalog
        self._audit = audit_logger or AuditLogger()

    async def add_transaction(
        self,
        category_id: UUID,
        subcategory_id: UUID,
        amount: int,
        date: Optional[datetime] = None,
        note: Optional[str] = None,
        project_id: Optional[UUID] = None,
        original_amount: Optional[str] = None,
        original_currency: Optional[str] = None,
    ) -> Transaction:
        """
        Record a new expense.

        original_amount / original_currency only go to the audit trail
        when the amount was converted from a foreign currency.

        Raises:
            NotFoundError: If a catalog handle doesn't resolve
            pydantic.ValidationError: If the amount isn't positive
        """
        await self._catalog.resolve_references(category_id, subcategory_id, project_id)

        transaction = Transaction(
            category_id=category_id,
            subcategory_id=subcategory_id,
            project_id=project_id,
            amount=amount,
            date=date or datetime.now(),
            note=note,
        )
        await self._storage.save_transaction(transaction)

        logger.info(
            "transaction_saved",
            transaction_id=str(transaction.id),
            amount=transaction.amount,
        )
        await self._audit.log_transaction_saved(
            transaction_id=transaction.id,
            amount=transaction.amount,
            original_amount=original_amount,
            original_currency=original_currency,
        )
        return transaction

    async def get_transaction(self, transaction_id: UUID) -> Transaction:
        transaction = await self._storage.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    async def update_transaction(
        self,
        transaction_id: UUID,
        category_id: UUID,
        subcategory_id: UUID,
        amount: int,
        date: datetime,
        note: Optional[str] = None,
        project_id: Optional[UUID] = None,
    ) -> Transaction:
        """Replace the editable fields of a transaction."""
        existing = await self.get_transaction(transaction_id)
        await self._catalog.resolve_references(category_id, subcategory_id, project_id)

        # Rebuild instead of model_copy so field validation runs
        updated = Transaction(
            id=existing.id,
            category_id=category_id,
            subcategory_id=subcategory_id,
            project_id=project_id,
            amount=amount,
            date=date,
            note=note,
            recurring_expense_id=existing.recurring_expense_id,
        )
        await self._storage.update_transaction(updated)
        await self._audit.log_transaction_updated(updated.id, updated.amount)
        return updated

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        deleted = await self._storage.delete_transaction(transaction_id)
        if deleted:
            await self._audit.log_transaction_deleted(transaction_id)
        return deleted

    async def list_transactions(
        self,
        category_id: Optional[UUID] = None,
        subcategory_id: Optional[UUID] = None,
        project_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        return await self._storage.list_transactions(
            category_id=category_id,
            subcategory_id=subcategory_id,
            project_id=project_id,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
        )

    async def search(self, text: str) -> TransactionSearchResult:
        """Case-insensitive substring search over notes."""
        query = text.strip()
        if not query:
            return TransactionSearchResult(query=query)

        needle = query.casefold()
        matches = [
            t for t in await self._storage.list_transactions()
            if t.note and needle in t.note.casefold()
        ]
        return TransactionSearchResult(query=query, transactions=matches)
