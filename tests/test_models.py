"""
Tests for Pocketbook models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (in-memory storage, mocked HTTP)
3. No real API calls in tests
"""

import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from pocketbook.models.ledger import (
    Category,
    Subcategory,
    Transaction,
    ValidationIssue,
    ValidationResult,
)
from pocketbook.models.recurring import (
    ExecutionReport,
    RecurrenceRule,
    RecurrenceType,
    RecurringExpense,
    SkippedExecution,
)
from pocketbook.models.currency import (
    Currency,
    ExchangeRateSnapshot,
    normalize_currency,
)
from pocketbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def make_expense(**overrides) -> RecurringExpense:
    fields = dict(
        name="Rent",
        amount=15000,
        recurrence=RecurrenceRule.monthly(1),
        next_execution_date=datetime(2025, 2, 1),
        category_id=uuid4(),
        subcategory_id=uuid4(),
    )
    fields.update(overrides)
    return RecurringExpense(**fields)


class TestLedgerModels:
    """Tests for catalog and transaction models."""

    def test_transaction_creation(self):
        """Test Transaction model creation."""
        transaction = Transaction(
            category_id=uuid4(),
            subcategory_id=uuid4(),
            amount=120,
            note="Noodles",
        )
        assert transaction.amount == 120
        assert transaction.project_id is None
        assert transaction.is_recurring is False

    def test_transaction_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in (0, -50):
            with pytest.raises(ValidationError):
                Transaction(category_id=uuid4(), subcategory_id=uuid4(), amount=amount)

    def test_transaction_blank_note_is_none(self):
        """Test that a whitespace-only note is stored as None."""
        transaction = Transaction(
            category_id=uuid4(),
            subcategory_id=uuid4(),
            amount=10,
            note="   ",
        )
        assert transaction.note is None

    def test_category_subcategory_lookup(self):
        """Test get_subcategory and next_subcategory_order."""
        lunch = Subcategory(name="Lunch", order=0)
        dinner = Subcategory(name="Dinner", order=3)
        category = Category(name="  Food  ", subcategories=[lunch, dinner])

        assert category.name == "Food"
        assert category.get_subcategory(dinner.id) == dinner
        assert category.get_subcategory(uuid4()) is None
        assert category.next_subcategory_order == 4

    def test_empty_category_next_order(self):
        assert Category(name="Empty").next_subcategory_order == 0


class TestRecurrenceRule:
    """Tests for RecurrenceRule validation and derived values."""

    def test_monthly_days_sorted_and_deduplicated(self):
        rule = RecurrenceRule.monthly(15, 1, 15)
        assert rule.monthly_dates == [1, 15]
        assert rule.recurrence_type == RecurrenceType.MONTHLY_DATES

    def test_monthly_requires_a_day(self):
        """Test that an empty day set is rejected."""
        with pytest.raises(ValidationError):
            RecurrenceRule(recurrence_type=RecurrenceType.MONTHLY_DATES, monthly_dates=[])

    def test_monthly_rejects_out_of_range_days(self):
        for day in (0, 32):
            with pytest.raises(ValidationError):
                RecurrenceRule.monthly(day)

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            RecurrenceRule.every(0)

    def test_interval_rule_ignores_monthly_dates(self):
        """Test that only the parameters of the selected type are validated."""
        rule = RecurrenceRule(
            recurrence_type=RecurrenceType.FIXED_INTERVAL,
            monthly_dates=[],
            interval_days=10,
        )
        assert rule.interval_days == 10

    def test_occurrences_per_month(self):
        """Test the budgeting approximation (30-day month for intervals)."""
        assert RecurrenceRule.monthly(1, 15).occurrences_per_month == 2
        assert RecurrenceRule.every(7).occurrences_per_month == 4
        assert RecurrenceRule.every(45).occurrences_per_month == 0

    def test_description(self):
        assert RecurrenceRule.monthly(1, 15).description == "Every month on day 1, 15"
        assert RecurrenceRule.every(1).description == "Every day"
        assert RecurrenceRule.every(30).description == "Every 30 days"

    def test_rule_is_frozen(self):
        rule = RecurrenceRule.every(3)
        with pytest.raises(ValidationError):
            rule.interval_days = 5


class TestRecurringExpense:
    """Tests for RecurringExpense behaviour."""

    def test_is_due(self):
        expense = make_expense()
        assert expense.is_due(datetime(2025, 2, 1)) is True
        assert expense.is_due(datetime(2025, 1, 31, 23, 59)) is False

    def test_inactive_is_never_due(self):
        expense = make_expense(is_active=False)
        assert expense.is_due(datetime(2030, 1, 1)) is False

    def test_transaction_note_uses_note_then_name(self):
        assert make_expense().transaction_note == "[Recurring] Rent"
        assert make_expense(note="Flat 3B").transaction_note == "[Recurring] Flat 3B"

    def test_build_transaction_copies_definition(self):
        """Test that a generated transaction snapshots the definition."""
        project_id = uuid4()
        expense = make_expense(project_id=project_id)
        now = datetime(2025, 2, 1, 9, 30)

        transaction = expense.build_transaction(now)

        assert transaction.amount == expense.amount
        assert transaction.date == now
        assert transaction.category_id == expense.category_id
        assert transaction.subcategory_id == expense.subcategory_id
        assert transaction.project_id == project_id
        assert transaction.recurring_expense_id == expense.id
        assert transaction.is_recurring is True

    def test_monthly_amount(self):
        expense = make_expense(amount=100, recurrence=RecurrenceRule.monthly(1, 15))
        assert expense.monthly_amount == 200

    def test_execution_report_counts(self):
        expense = make_expense()
        report = ExecutionReport(
            checked_at=datetime(2025, 2, 1),
            due_count=3,
            transactions=[expense.build_transaction(datetime(2025, 2, 1))],
            skipped=[
                SkippedExecution(
                    expense_id=uuid4(),
                    expense_name="Gym",
                    reason="storage_error",
                    message="timeout",
                ),
                SkippedExecution(
                    expense_id=uuid4(),
                    expense_name="Phone",
                    reason="reference_not_found",
                    message="Category not found",
                ),
            ],
        )
        assert report.executed_count == 1
        assert report.failed_count == 1


class TestCurrencyModels:
    """Tests for currency models."""

    def test_normalize_currency(self):
        assert normalize_currency(" usd ") == "USD"
        assert normalize_currency(Currency.JPY) == "JPY"

    def test_normalize_currency_rejects_garbage(self):
        for value in ("US", "DOLLAR", "U5D"):
            with pytest.raises(ValueError):
                normalize_currency(value)

    def test_snapshot_normalizes_codes(self):
        snapshot = ExchangeRateSnapshot(
            rates={"usd": Decimal("0.031")},
            fetched_at=datetime(2025, 1, 10),
        )
        assert snapshot.rate_for("USD") == Decimal("0.031")
        assert snapshot.rate_for("JPY") is None

    def test_snapshot_rejects_non_positive_rate(self):
        with pytest.raises(ValidationError):
            ExchangeRateSnapshot(rates={"USD": Decimal("0")}, fetched_at=datetime.now())

    def test_format_amount(self):
        """Test that yen and won are shown without decimals."""
        assert Currency.JPY.format_amount(Decimal("1234.6")) == "JPY¥1,235"
        assert Currency.USD.format_amount(Decimal("3.1")) == "US$3.10"
        assert Currency.TWD.format_amount(3226) == "NT$3,226.00"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.RATES_REFRESHED,
            description="Rates refreshed",
        )
        assert event.event_type == AuditEventType.RATES_REFRESHED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            description="Transaction saved",
            details={"amount": 120},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transaction_saved"
        assert log_dict["details"]["amount"] == 120

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.RECURRING_EXPENSE_DELETED,
            description="Recurring expense deleted",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "recurring_expense_deleted"  # event_type
        assert row[10] == "True"  # is_user_action

    def test_audit_event_builder_recurring_executed(self):
        """Test AuditEventBuilder.recurring_expense_executed."""
        expense_id = uuid4()
        transaction_id = uuid4()
        correlation_id = uuid4()

        event = AuditEventBuilder.recurring_expense_executed(
            expense_id=expense_id,
            transaction_id=transaction_id,
            amount=15000,
            next_execution_date=datetime(2025, 3, 1),
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.RECURRING_EXPENSE_EXECUTED
        assert event.entity_id == expense_id
        assert event.correlation_id == correlation_id
        assert event.details["transaction_id"] == str(transaction_id)
        # Automatic executions are not user actions
        assert event.is_user_action is False

    def test_audit_event_builder_rates_fallback(self):
        """Test AuditEventBuilder.rates_fallback_used."""
        event = AuditEventBuilder.rates_fallback_used("HTTP 500", ["USD", "JPY"])
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "HTTP 500"
        assert event.details["currencies"] == ["USD", "JPY"]

    def test_catalog_changed_description(self):
        event = AuditEventBuilder.catalog_changed(
            AuditEventType.CATEGORY_ADDED, "category", uuid4(), "Groceries"
        )
        assert event.description == "Category added: Groceries"
        assert event.is_user_action is True


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            schema_valid=False,
            references_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.is_valid is False

    def test_validation_result_info_only(self):
        """Test that info issues don't count as errors."""
        result = ValidationResult(
            schema_valid=True,
            references_valid=True,
            issues=[
                ValidationIssue(
                    field="monthly_dates",
                    issue_type="clamped",
                    message="Runs on the last day of shorter months",
                    severity="info",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.is_valid is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
