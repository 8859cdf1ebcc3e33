"""
Catalog Service

Categories (with their embedded subcategories) and projects.

CRITICAL: Cascades are explicit code here, not storage rules.
- Deleting a category drops its subcategories with it
- Transactions are only deleted when cascade_transactions=True
- A category or subcategory that still has transactions can't be deleted
  without cascading; reassign them first
- Deleting a project without cascading keeps its transactions and clears
  their project_id

Recurring expenses are NOT touched by any of this. A definition whose
category vanished is skipped by the scheduler until the user fixes it.
"""

from typing import Optional
from uuid import UUID

import structlog

from pocketbook.audit.logger import AuditLogger
from pocketbook.models.audit import AuditEventType
from pocketbook.models.ledger import Category, Project, Subcategory
from pocketbook.services.storage.interface import (
    CatalogStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)


DEFAULT_CATEGORIES = {
    "Food & Drink": ["Breakfast", "Lunch", "Dinner", "Snacks"],
    "Transport": ["Bus", "Metro", "Taxi"],
}

DEFAULT_PROJECTS = ["Project A", "Project B"]


class CatalogError(Exception):
    """A catalog change that can't be applied."""
    pass


class CatalogInUseError(CatalogError):
    """The entity still has transactions and cascading wasn't requested."""
    pass


class CatalogService:
    """
    Manages categories, subcategories and projects.

    Usage:
        catalog = CatalogService(storage, storage, audit_logger)
        await catalog.seed_defaults_if_empty()
        food = await catalog.add_category("Groceries")
    """

    def __init__(
        self,
        catalog_storage: CatalogStorageInterface,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._catalog = catalog_storage
        self._transactions = transaction_storage
        self._audit = audit_logger or AuditLogger()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        return await self._catalog.list_categories()

    async def list_projects(self) -> list[Project]:
        return await self._catalog.list_projects()

    async def get_category(self, category_id: UUID) -> Category:
        for category in await self._catalog.list_categories():
            if category.id == category_id:
                return category
        raise NotFoundError(f"Category not found: {category_id}")

    async def get_project(self, project_id: UUID) -> Project:
        for project in await self._catalog.list_projects():
            if project.id == project_id:
                return project
        raise NotFoundError(f"Project not found: {project_id}")

    async def find_subcategory(self, subcategory_id: UUID) -> tuple[Category, Subcategory]:
        """Subcategory and its parent category."""
        for category in await self._catalog.list_categories():
            subcategory = category.get_subcategory(subcategory_id)
            if subcategory is not None:
                return category, subcategory
        raise NotFoundError(f"Subcategory not found: {subcategory_id}")

    async def resolve_references(
        self,
        category_id: UUID,
        subcategory_id: UUID,
        project_id: Optional[UUID] = None,
    ) -> tuple[Category, Subcategory, Optional[Project]]:
        """
        Resolve catalog handles.

        The subcategory must belong to the given category.

        Raises:
            NotFoundError: If any handle doesn't resolve
        """
        category = await self.get_category(category_id)
        subcategory = category.get_subcategory(subcategory_id)
        if subcategory is None:
            raise NotFoundError(
                f"Subcategory {subcategory_id} not found in category {category.name}"
            )
        project = await self.get_project(project_id) if project_id else None
        return category, subcategory, project

    async def has_transactions(
        self,
        category_id: Optional[UUID] = None,
        subcategory_id: Optional[UUID] = None,
        project_id: Optional[UUID] = None,
    ) -> bool:
        if category_id is None and subcategory_id is None and project_id is None:
            raise ValueError("Pass one of category_id, subcategory_id or project_id")
        matches = await self._transactions.list_transactions(
            category_id=category_id,
            subcategory_id=subcategory_id,
            project_id=project_id,
            limit=1,
        )
        return bool(matches)

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    async def seed_defaults_if_empty(self) -> bool:
        """
        Create the default categories and projects on first run.

        Returns True if anything was created.
        """
        categories = await self._catalog.list_categories()
        projects = await self._catalog.list_projects()
        seeded = False

        if not categories:
            for order, (name, subcategory_names) in enumerate(DEFAULT_CATEGORIES.items()):
                await self._catalog.save_category(Category(
                    name=name,
                    order=order,
                    subcategories=[
                        Subcategory(name=sub_name, order=sub_order)
                        for sub_order, sub_name in enumerate(subcategory_names)
                    ],
                ))
            seeded = True

        if not projects:
            for order, name in enumerate(DEFAULT_PROJECTS):
                await self._catalog.save_project(Project(name=name, order=order))
            seeded = True

        if seeded:
            logger.info("catalog_seeded")
        return seeded

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def add_category(self, name: str) -> Category:
        categories = await self._catalog.list_categories()
        order = max((c.order for c in categories), default=-1) + 1
        category = Category(name=name, order=order)
        await self._catalog.save_category(category)
        await self._audit.log_catalog_changed(
            AuditEventType.CATEGORY_ADDED, "category", category.id, category.name
        )
        return category

    async def rename_category(self, category_id: UUID, name: str) -> Category:
        category = await self.get_category(category_id)
        renamed = category.model_copy(update={"name": name.strip()})
        if not renamed.name:
            raise CatalogError("Category name can't be empty")
        await self._catalog.save_category(renamed)
        await self._audit.log_catalog_changed(
            AuditEventType.CATEGORY_RENAMED,
            "category",
            category.id,
            renamed.name,
            details={"old_name": category.name},
        )
        return renamed

    async def delete_category(
        self,
        category_id: UUID,
        cascade_transactions: bool = False,
    ) -> int:
        """
        Delete a category and its subcategories.

        Returns the number of transactions deleted with it.

        Raises:
            NotFoundError: If the category doesn't exist
            CatalogInUseError: If it has transactions and cascade_transactions is False
        """
        category = await self.get_category(category_id)
        transactions = await self._transactions.list_transactions(category_id=category_id)

        if transactions and not cascade_transactions:
            raise CatalogInUseError(
                f"Category {category.name} still has {len(transactions)} transactions"
            )

        for transaction in transactions:
            await self._transactions.delete_transaction(transaction.id)

        await self._catalog.delete_category(category_id)
        await self._audit.log_catalog_changed(
            AuditEventType.CATEGORY_DELETED,
            "category",
            category.id,
            category.name,
            details={"deleted_transactions": len(transactions)},
        )
        return len(transactions)

    # -------------------------------------------------------------------------
    # Subcategories
    # -------------------------------------------------------------------------

    async def add_subcategory(self, category_id: UUID, name: str) -> Subcategory:
        category = await self.get_category(category_id)
        subcategory = Subcategory(name=name, order=category.next_subcategory_order)
        await self._catalog.save_category(category.model_copy(
            update={"subcategories": [*category.subcategories, subcategory]}
        ))
        await self._audit.log_catalog_changed(
            AuditEventType.SUBCATEGORY_ADDED,
            "subcategory",
            subcategory.id,
            subcategory.name,
            details={"category_id": str(category.id)},
        )
        return subcategory

    async def delete_subcategory(
        self,
        category_id: UUID,
        subcategory_id: UUID,
        cascade_transactions: bool = False,
    ) -> int:
        """
        Remove a subcategory from its category.

        Returns the number of transactions deleted with it.
        """
        category = await self.get_category(category_id)
        subcategory = category.get_subcategory(subcategory_id)
        if subcategory is None:
            raise NotFoundError(f"Subcategory not found: {subcategory_id}")

        transactions = await self._transactions.list_transactions(subcategory_id=subcategory_id)
        if transactions and not cascade_transactions:
            raise CatalogInUseError(
                f"Subcategory {subcategory.name} still has {len(transactions)} transactions"
            )

        for transaction in transactions:
            await self._transactions.delete_transaction(transaction.id)

        await self._catalog.save_category(category.model_copy(update={
            "subcategories": [s for s in category.subcategories if s.id != subcategory_id]
        }))
        await self._audit.log_catalog_changed(
            AuditEventType.SUBCATEGORY_DELETED,
            "subcategory",
            subcategory.id,
            subcategory.name,
            details={"deleted_transactions": len(transactions)},
        )
        return len(transactions)

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def add_project(self, name: str) -> Project:
        projects = await self._catalog.list_projects()
        order = max((p.order for p in projects), default=-1) + 1
        project = Project(name=name, order=order)
        await self._catalog.save_project(project)
        await self._audit.log_catalog_changed(
            AuditEventType.PROJECT_ADDED, "project", project.id, project.name
        )
        return project

    async def delete_project(
        self,
        project_id: UUID,
        cascade_transactions: bool = False,
    ) -> int:
        """
        Delete a project.

        Without cascading, its transactions are kept and untagged.
        Returns the number of transactions deleted or untagged.
        """
        project = await self.get_project(project_id)
        transactions = await self._transactions.list_transactions(project_id=project_id)

        for transaction in transactions:
            if cascade_transactions:
                await self._transactions.delete_transaction(transaction.id)
            else:
                await self._transactions.update_transaction(
                    transaction.model_copy(update={"project_id": None})
                )

        await self._catalog.delete_project(project_id)
        await self._audit.log_catalog_changed(
            AuditEventType.PROJECT_DELETED,
            "project",
            project.id,
            project.name,
            details={
                "transactions": len(transactions),
                "cascade": cascade_transactions,
            },
        )
        return len(transactions)

    # -------------------------------------------------------------------------
    # Reassignment
    # -------------------------------------------------------------------------

    async def reassign_category_transactions(
        self,
        from_category_id: UUID,
        to_category_id: UUID,
    ) -> int:
        """
        Move every transaction of one category into another.

        Moved transactions land in the target's first subcategory.

        Raises:
            CatalogError: If the target has no subcategories
        """
        await self.get_category(from_category_id)
        target = await self.get_category(to_category_id)
        if not target.subcategories:
            raise CatalogError(
                f"Category {target.name} has no subcategories to move transactions into"
            )
        first_subcategory = min(target.subcategories, key=lambda s: s.order)

        transactions = await self._transactions.list_transactions(category_id=from_category_id)
        for transaction in transactions:
            await self._transactions.update_transaction(transaction.model_copy(update={
                "category_id": target.id,
                "subcategory_id": first_subcategory.id,
            }))

        await self._audit.log_transactions_reassigned(
            "category", from_category_id, to_category_id, len(transactions)
        )
        return len(transactions)

    async def reassign_subcategory_transactions(
        self,
        from_subcategory_id: UUID,
        to_subcategory_id: UUID,
    ) -> int:
        """Move every transaction of one subcategory into another."""
        await self.find_subcategory(from_subcategory_id)
        target_category, target = await self.find_subcategory(to_subcategory_id)

        transactions = await self._transactions.list_transactions(
            subcategory_id=from_subcategory_id
        )
        for transaction in transactions:
            await self._transactions.update_transaction(transaction.model_copy(update={
                "category_id": target_category.id,
                "subcategory_id": target.id,
            }))

        await self._audit.log_transactions_reassigned(
            "subcategory", from_subcategory_id, to_subcategory_id, len(transactions)
        )
        return len(transactions)

    async def reassign_project_transactions(
        self,
        from_project_id: UUID,
        to_project_id: UUID,
    ) -> int:
        await self.get_project(from_project_id)
        await self.get_project(to_project_id)

        transactions = await self._transactions.list_transactions(project_id=from_project_id)
        for transaction in transactions:
            await self._transactions.update_transaction(
                transaction.model_copy(update={"project_id": to_project_id})
            )

        await self._audit.log_transactions_reassigned(
            "project", from_project_id, to_project_id, len(transactions)
        )
        return len(transactions)
