"""
Audit Models for Pocketbook

Every mutation of the ledger, every automatic execution of a recurring
expense and every rate refresh is recorded as an AuditEvent.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Automatic executions happen without the user watching, so the audit
trail is how they find out what was recorded on their behalf.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Recurring expenses
    RECURRING_EXPENSE_CREATED = "recurring_expense_created"
    RECURRING_EXPENSE_UPDATED = "recurring_expense_updated"
    RECURRING_EXPENSE_DELETED = "recurring_expense_deleted"
    RECURRING_EXPENSE_TOGGLED = "recurring_expense_toggled"
    RECURRING_EXPENSE_EXECUTED = "recurring_expense_executed"
    RECURRING_EXPENSE_SKIPPED = "recurring_expense_skipped"
    RECURRING_CHECK_COMPLETED = "recurring_check_completed"

    # Transactions
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Catalog
    CATEGORY_ADDED = "category_added"
    CATEGORY_RENAMED = "category_renamed"
    CATEGORY_DELETED = "category_deleted"
    SUBCATEGORY_ADDED = "subcategory_added"
    SUBCATEGORY_DELETED = "subcategory_deleted"
    PROJECT_ADDED = "project_added"
    PROJECT_DELETED = "project_deleted"
    TRANSACTIONS_REASSIGNED = "transactions_reassigned"

    # Exchange rates
    RATES_REFRESHED = "rates_refreshed"
    RATES_FALLBACK_USED = "rates_fallback_used"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'recurring_expense', 'transaction')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all executions in one check)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.recurring_expense_created(expense_id, name, rule)
        event = AuditEventBuilder.rates_fallback_used(error, currencies)
    """

    @staticmethod
    def recurring_expense_created(
        expense_id: UUID,
        name: str,
        amount: int,
        recurrence: str,
        next_execution_date: datetime,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_EXPENSE_CREATED,
            entity_type="recurring_expense",
            entity_id=expense_id,
            description=f"Recurring expense created: {name}",
            details={
                "amount": amount,
                "recurrence": recurrence,
                "next_execution_date": next_execution_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def recurring_expense_updated(
        expense_id: UUID,
        name: str,
        next_execution_date: datetime,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_EXPENSE_UPDATED,
            entity_type="recurring_expense",
            entity_id=expense_id,
            description=f"Recurring expense updated: {name}",
            details={"next_execution_date": next_execution_date.isoformat()},
            is_user_action=True,
        )

    @staticmethod
    def recurring_expense_deleted(expense_id: UUID, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_EXPENSE_DELETED,
            entity_type="recurring_expense",
            entity_id=expense_id,
            description=f"Recurring expense deleted: {name}",
            is_user_action=True,
        )

    @staticmethod
    def recurring_expense_toggled(
        expense_id: UUID,
        name: str,
        is_active: bool,
    ) -> AuditEvent:
        state = "enabled" if is_active else "disabled"
        return AuditEvent(
            event_type=AuditEventType.RECURRING_EXPENSE_TOGGLED,
            entity_type="recurring_expense",
            entity_id=expense_id,
            description=f"Recurring expense {state}: {name}",
            details={"is_active": is_active},
            is_user_action=True,
        )

    @staticmethod
    def recurring_expense_executed(
        expense_id: UUID,
        transaction_id: UUID,
        amount: int,
        next_execution_date: datetime,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_EXPENSE_EXECUTED,
            entity_type="recurring_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Recurring expense recorded: {amount}",
            details={
                "transaction_id": str(transaction_id),
                "amount": amount,
                "next_execution_date": next_execution_date.isoformat(),
            },
        )

    @staticmethod
    def recurring_expense_skipped(
        expense_id: UUID,
        reason: str,
        message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_EXPENSE_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="recurring_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Recurring expense skipped: {reason}",
            error_message=message,
            details={"reason": reason},
        )

    @staticmethod
    def recurring_check_completed(
        due_count: int,
        executed_count: int,
        skipped_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_CHECK_COMPLETED,
            entity_type="recurring_check",
            entity_id=correlation_id,
            correlation_id=correlation_id,
            description=f"Due check recorded {executed_count} of {due_count} due expenses",
            details={
                "due_count": due_count,
                "executed_count": executed_count,
                "skipped_count": skipped_count,
            },
        )

    @staticmethod
    def transaction_saved(
        transaction_id: UUID,
        amount: int,
        original_amount: Optional[str] = None,
        original_currency: Optional[str] = None,
    ) -> AuditEvent:
        details: dict[str, Any] = {"amount": amount}
        if original_currency:
            details["original_amount"] = original_amount
            details["original_currency"] = original_currency
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction saved: {amount}",
            details=details,
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(transaction_id: UUID, amount: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction updated: {amount}",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(transaction_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def catalog_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        name: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        verb = event_type.value.rsplit("_", 1)[-1]
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} {verb}: {name}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def transactions_reassigned(
        entity_type: str,
        from_id: UUID,
        to_id: UUID,
        count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_REASSIGNED,
            entity_type=entity_type,
            entity_id=from_id,
            description=f"{count} transactions moved to another {entity_type}",
            details={"to_id": str(to_id), "count": count},
            is_user_action=True,
        )

    @staticmethod
    def rates_refreshed(currencies: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_REFRESHED,
            entity_type="exchange_rates",
            description=f"Exchange rates refreshed for {len(currencies)} currencies",
            details={"currencies": currencies},
        )

    @staticmethod
    def rates_fallback_used(error_message: str, currencies: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_FALLBACK_USED,
            severity=AuditSeverity.WARNING,
            entity_type="exchange_rates",
            description="Rate feed unavailable, using offline rates",
            error_message=error_message,
            details={"currencies": currencies},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
