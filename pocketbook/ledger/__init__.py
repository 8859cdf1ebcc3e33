"""
Ledger Package

Catalog (categories, subcategories, projects) and manual transactions.
"""

from pocketbook.ledger.catalog import (
    CatalogError,
    CatalogInUseError,
    CatalogService,
    DEFAULT_CATEGORIES,
    DEFAULT_PROJECTS,
)
from pocketbook.ledger.transactions import (
    TransactionSearchResult,
    TransactionService,
)

__all__ = [
    "CatalogError",
    "CatalogInUseError",
    "CatalogService",
    "DEFAULT_CATEGORIES",
    "DEFAULT_PROJECTS",
    "TransactionSearchResult",
    "TransactionService",
]
