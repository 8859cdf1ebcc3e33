"""
Main Orchestrator for Pocketbook

This module ties together all the components and defines the
end-to-end flows for:
1. Expense entry (foreign amount -> converted -> validated -> saved)
2. App startup (seed catalog -> load recurring expenses -> refresh rates)

DESIGN DECISION: There are no global singletons. create_app_components
builds every service once and hands them out; the Streamlit app caches
the result for the session.

Storage falls back to memory when Google Sheets isn't configured, so
the app and the tests run without any external setup.
"""

from decimal import ROUND_HALF_UP, Decimal
from datetime import datetime
from typing import NamedTuple, Optional, Union
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel

from pocketbook.audit import AuditLogger
from pocketbook.config import get_settings
from pocketbook.ledger import CatalogService, TransactionService
from pocketbook.models.currency import Currency, normalize_currency
from pocketbook.models.ledger import Transaction
from pocketbook.queries import StatisticsExecutor
from pocketbook.scheduling import RecurringCheckRunner, RecurringExpenseScheduler
from pocketbook.services.currency import (
    CurrencyConversionService,
    ExchangeRateCache,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    to_decimal,
)
from pocketbook.services.notifications import CollectingNotifier, NotificationInterface
from pocketbook.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryStorage,
)
from pocketbook.validation import RecurringExpenseValidator


logger = structlog.get_logger(__name__)


class ConversionPreview(BaseModel):
    """What a foreign amount becomes in the home currency."""

    original_amount: Decimal
    original_currency: str
    home_amount: int
    home_currency: str
    rate: Optional[str] = None
    rates_warning: Optional[str] = None

    @property
    def was_converted(self) -> bool:
        return self.original_currency != self.home_currency


class ExpenseEntryFlow:
    """
    Orchestrates manual expense entry.

    Flow:
    1. Preview → Convert the typed amount into the home currency
    2. Record → Save the transaction with the rounded home amount

    The original amount and currency go to the audit trail only; the
    ledger is kept in the home currency.
    """

    def __init__(
        self,
        transactions: TransactionService,
        currency_service: CurrencyConversionService,
    ):
        self._transactions = transactions
        self._currency = currency_service

    def preview_conversion(
        self,
        amount: Union[Decimal, int, float, str],
        currency: Union[str, Currency],
    ) -> ConversionPreview:
        code = normalize_currency(currency)
        original = to_decimal(amount)
        converted = self._currency.convert_to_home(original, code)
        home_amount = int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        return ConversionPreview(
            original_amount=original,
            original_currency=code,
            home_amount=home_amount,
            home_currency=self._currency.home_currency,
            rate=self._currency.display_rate(code),
            rates_warning=self._currency.error_message,
        )

    async def record_expense(
        self,
        amount: Union[Decimal, int, float, str],
        currency: Union[str, Currency],
        category_id: UUID,
        subcategory_id: UUID,
        date: Optional[datetime] = None,
        note: Optional[str] = None,
        project_id: Optional[UUID] = None,
    ) -> tuple[Transaction, ConversionPreview]:
        """
        Convert and save an expense.

        Raises:
            ValueError: If the amount is not a number or converts to less than
                one home unit
            NotFoundError: If a catalog handle doesn't resolve
        """
        preview = self.preview_conversion(amount, currency)
        if preview.home_amount <= 0:
            raise ValueError(
                f"{preview.original_amount} {preview.original_currency} is less than "
                f"1 {preview.home_currency}"
            )

        transaction = await self._transactions.add_transaction(
            category_id=category_id,
            subcategory_id=subcategory_id,
            amount=preview.home_amount,
            date=date,
            note=note,
            project_id=project_id,
            original_amount=str(preview.original_amount) if preview.was_converted else None,
            original_currency=preview.original_currency if preview.was_converted else None,
        )
        return transaction, preview


class AppComponents(NamedTuple):
    """Everything the front end needs, built once."""

    catalog: CatalogService
    transactions: TransactionService
    statistics: StatisticsExecutor
    scheduler: RecurringExpenseScheduler
    runner: RecurringCheckRunner
    currency: CurrencyConversionService
    expense_entry: ExpenseEntryFlow
    notifier: NotificationInterface
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    use_storage: bool = True,
    cache_store: Optional[KeyValueStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    notifier: Optional[NotificationInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage and the
                    on-disk rate cache. Set to False for testing.
        cache_store: Key-value store for the rate cache (overrides the default)
        http_client: Client for rate downloads (tests pass a mock transport)
        notifier: Receiver of "N expenses recorded" notifications

    Returns:
        AppComponents
    """
    sheets_client = None
    ledger_storage = None
    audit_storage: Optional[AuditStorageInterface] = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            ledger_storage = None
            audit_storage = None

    if ledger_storage is None:
        ledger_storage = InMemoryStorage()
        audit_storage = InMemoryAuditStorage()

    if cache_store is None:
        cache_store = (
            JsonFileKeyValueStore(get_settings().cache.path)
            if use_storage else InMemoryKeyValueStore()
        )

    audit_logger = AuditLogger(audit_storage)
    notifier = notifier or CollectingNotifier()

    catalog = CatalogService(ledger_storage, ledger_storage, audit_logger)
    transactions = TransactionService(ledger_storage, catalog, audit_logger)
    statistics = StatisticsExecutor(ledger_storage, catalog)

    scheduler = RecurringExpenseScheduler(
        storage=ledger_storage,
        catalog=catalog,
        validator=RecurringExpenseValidator(catalog),
        notifier=notifier,
        audit_logger=audit_logger,
    )
    runner = RecurringCheckRunner(scheduler)

    currency = CurrencyConversionService(
        cache=ExchangeRateCache(cache_store),
        http_client=http_client,
        audit_logger=audit_logger,
    )

    return AppComponents(
        catalog=catalog,
        transactions=transactions,
        statistics=statistics,
        scheduler=scheduler,
        runner=runner,
        currency=currency,
        expense_entry=ExpenseEntryFlow(transactions, currency),
        notifier=notifier,
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )


async def initialize_app(components: AppComponents) -> None:
    """
    First-launch work: default catalog, recurring expenses, fresh rates.

    Rate refresh never raises; it falls back to offline rates.
    """
    await components.catalog.seed_defaults_if_empty()
    await components.scheduler.load()
    await components.currency.update_rates_if_needed()
