"""
Services package.

Currency services live in pocketbook.services.currency and are imported
from there directly (they depend on the audit logger, which depends on
storage).
"""

from pocketbook.services.notifications import (
    CollectingNotifier,
    LoggingNotifier,
    NotificationInterface,
)
from pocketbook.services.storage import (
    AuditStorageInterface,
    CatalogStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryStorage,
    NotFoundError,
    RecurringExpenseStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Notification services
    "CollectingNotifier",
    "LoggingNotifier",
    "NotificationInterface",
    # Storage services
    "AuditStorageInterface",
    "CatalogStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryStorage",
    "NotFoundError",
    "RecurringExpenseStorageInterface",
    "StorageError",
    "TransactionStorageInterface",
]
