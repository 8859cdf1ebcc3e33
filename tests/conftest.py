"""
Shared fixtures.

Everything runs against in-memory storage; async code is driven with
asyncio.run so no event-loop plugin is needed.
"""

import asyncio

import pytest

from pocketbook.audit import AuditLogger
from pocketbook.ledger import CatalogService, TransactionService
from pocketbook.models.ledger import Category, Subcategory
from pocketbook.services.notifications import CollectingNotifier
from pocketbook.services.storage import InMemoryAuditStorage, InMemoryStorage


def subcategory_named(category: Category, name: str) -> Subcategory:
    return next(s for s in category.subcategories if s.name == name)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def catalog(storage, audit_logger):
    """Catalog seeded with the default categories and projects."""
    service = CatalogService(storage, storage, audit_logger)
    asyncio.run(service.seed_defaults_if_empty())
    return service


@pytest.fixture
def transactions(storage, catalog, audit_logger):
    return TransactionService(storage, catalog, audit_logger)


@pytest.fixture
def food(catalog):
    categories = asyncio.run(catalog.list_categories())
    return next(c for c in categories if c.name == "Food & Drink")


@pytest.fixture
def transport(catalog):
    categories = asyncio.run(catalog.list_categories())
    return next(c for c in categories if c.name == "Transport")


@pytest.fixture
def lunch(food):
    return subcategory_named(food, "Lunch")


@pytest.fixture
def project_a(catalog):
    projects = asyncio.run(catalog.list_projects())
    return next(p for p in projects if p.name == "Project A")


@pytest.fixture
def notifier():
    return CollectingNotifier()
