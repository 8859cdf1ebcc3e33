"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of what the scheduler recorded on its own
2. Debugging capability
3. User can see history of their ledger changes

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events (one due-check pass)
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocketbook.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from pocketbook.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Recurring expenses
    # -------------------------------------------------------------------------

    async def log_recurring_expense_created(
        self,
        expense_id: UUID,
        name: str,
        amount: int,
        recurrence: str,
        next_execution_date: datetime,
    ) -> None:
        event = AuditEventBuilder.recurring_expense_created(
            expense_id=expense_id,
            name=name,
            amount=amount,
            recurrence=recurrence,
            next_execution_date=next_execution_date,
        )
        await self.log(event)

    async def log_recurring_expense_updated(
        self,
        expense_id: UUID,
        name: str,
        next_execution_date: datetime,
    ) -> None:
        event = AuditEventBuilder.recurring_expense_updated(
            expense_id=expense_id,
            name=name,
            next_execution_date=next_execution_date,
        )
        await self.log(event)

    async def log_recurring_expense_deleted(self, expense_id: UUID, name: str) -> None:
        await self.log(AuditEventBuilder.recurring_expense_deleted(expense_id, name))

    async def log_recurring_expense_toggled(
        self,
        expense_id: UUID,
        name: str,
        is_active: bool,
    ) -> None:
        event = AuditEventBuilder.recurring_expense_toggled(
            expense_id=expense_id,
            name=name,
            is_active=is_active,
        )
        await self.log(event)

    async def log_recurring_expense_executed(
        self,
        expense_id: UUID,
        transaction_id: UUID,
        amount: int,
        next_execution_date: datetime,
        correlation_id: UUID,
    ) -> None:
        """Log an automatic execution."""
        event = AuditEventBuilder.recurring_expense_executed(
            expense_id=expense_id,
            transaction_id=transaction_id,
            amount=amount,
            next_execution_date=next_execution_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_recurring_expense_skipped(
        self,
        expense_id: UUID,
        reason: str,
        message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a due expense that could not be executed."""
        event = AuditEventBuilder.recurring_expense_skipped(
            expense_id=expense_id,
            reason=reason,
            message=message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_recurring_check_completed(
        self,
        due_count: int,
        executed_count: int,
        skipped_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_check_completed(
            due_count=due_count,
            executed_count=executed_count,
            skipped_count=skipped_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def log_transaction_saved(
        self,
        transaction_id: UUID,
        amount: int,
        original_amount: Optional[str] = None,
        original_currency: Optional[str] = None,
    ) -> None:
        """Log transaction save."""
        event = AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            amount=amount,
            original_amount=original_amount,
            original_currency=original_currency,
        )
        await self.log(event)

    async def log_transaction_updated(self, transaction_id: UUID, amount: int) -> None:
        await self.log(AuditEventBuilder.transaction_updated(transaction_id, amount))

    async def log_transaction_deleted(self, transaction_id: UUID) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(transaction_id))

    async def log_catalog_changed(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        name: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a category, subcategory or project change."""
        event = AuditEventBuilder.catalog_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            name=name,
            details=details,
        )
        await self.log(event)

    async def log_transactions_reassigned(
        self,
        entity_type: str,
        from_id: UUID,
        to_id: UUID,
        count: int,
    ) -> None:
        event = AuditEventBuilder.transactions_reassigned(
            entity_type=entity_type,
            from_id=from_id,
            to_id=to_id,
            count=count,
        )
        await self.log(event)

    # -------------------------------------------------------------------------
    # Exchange rates
    # -------------------------------------------------------------------------

    async def log_rates_refreshed(self, currencies: list[str]) -> None:
        await self.log(AuditEventBuilder.rates_refreshed(currencies))

    async def log_rates_fallback_used(
        self,
        error_message: str,
        currencies: list[str],
    ) -> None:
        """Log that the offline rate table was installed."""
        event = AuditEventBuilder.rates_fallback_used(
            error_message=error_message,
            currencies=currencies,
        )
        await self.log(event)

    # -------------------------------------------------------------------------
    # Errors
    # -------------------------------------------------------------------------

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a due-check pass or a user action.
    Pass it through all subsequent operations.
    """
    return uuid4()
