"""
Two-Stage Validation for Recurring Expenses

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (name)
- Name and note length limits
- Amount is positive and not absurd
- Recurrence parameters match the recurrence type
  (at least one day in 1-31, or an interval of at least one day)

STAGE 2 - REFERENCE VALIDATION:
- Category exists
- Subcategory exists inside that category
- Project exists (when given)

WHY TWO STAGES:
1. Separation of concerns (structural vs catalog)
2. Better error messages (know exactly what kind of issue)
3. Can skip stage 2 if stage 1 fails
4. Stage 2 needs the catalog

IMPORTANT: Validation NEVER silently fixes issues.
A draft with errors is rejected, never persisted.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from pocketbook.config import get_settings
from pocketbook.ledger.catalog import CatalogService
from pocketbook.models.ledger import ValidationIssue, ValidationResult
from pocketbook.models.recurring import (
    MAX_NAME_LENGTH,
    MAX_NOTE_LENGTH,
    RecurrenceRule,
    RecurrenceType,
)
from pocketbook.services.storage.interface import NotFoundError


class RecurringExpenseDraft(BaseModel):
    """
    Unvalidated user input for a recurring expense.

    Deliberately loose: anything the form can produce fits here, and the
    validator reports what's wrong with it.
    """

    name: str = ""
    amount: int = 0
    note: Optional[str] = None
    recurrence_type: RecurrenceType = RecurrenceType.MONTHLY_DATES
    monthly_dates: list[int] = Field(default_factory=list)
    interval_days: int = 30
    category_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    project_id: Optional[UUID] = None

    def to_rule(self) -> RecurrenceRule:
        """Build the rule. Only call on a draft that passed validation."""
        return RecurrenceRule(
            recurrence_type=self.recurrence_type,
            monthly_dates=self.monthly_dates,
            interval_days=self.interval_days,
        )


class RecurringExpenseValidationError(Exception):
    """A recurring expense draft was rejected."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(
            issue.message for issue in result.issues if issue.severity == "error"
        )
        super().__init__(f"Invalid recurring expense: {messages}")


class RecurringExpenseValidator:
    """
    Validates recurring expense drafts through a two-stage pipeline.

    Stage 1: Schema validation (no I/O)
    Stage 2: Reference validation (needs the catalog)
    """

    def __init__(
        self,
        catalog: Optional[CatalogService] = None,
        max_amount: Optional[int] = None,
    ):
        """
        Initialize validator.

        Args:
            catalog: Catalog for reference checks.
                     If None, reference checking is skipped.
            max_amount: Largest accepted amount (defaults to settings)
        """
        self._catalog = catalog
        self._max_amount = max_amount or get_settings().app.max_transaction_amount

    def _validate_schema(
        self,
        draft: RecurringExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not draft.name.strip():
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Name is required",
                severity="error",
            ))
        elif len(draft.name.strip()) > MAX_NAME_LENGTH:
            issues.append(ValidationIssue(
                field="name",
                issue_type="too_long",
                message=f"Name must be at most {MAX_NAME_LENGTH} characters",
                severity="error",
            ))

        if draft.note and len(draft.note.strip()) > MAX_NOTE_LENGTH:
            issues.append(ValidationIssue(
                field="note",
                issue_type="too_long",
                message=f"Note must be at most {MAX_NOTE_LENGTH} characters",
                severity="error",
            ))

        if draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))
        elif draft.amount > self._max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message=f"Amount ({draft.amount:,}) exceeds the limit of {self._max_amount:,}",
                severity="error",
            ))

        if draft.recurrence_type == RecurrenceType.MONTHLY_DATES:
            if not draft.monthly_dates:
                issues.append(ValidationIssue(
                    field="monthly_dates",
                    issue_type="missing",
                    message="Select at least one day of the month",
                    severity="error",
                ))
            invalid_days = [d for d in draft.monthly_dates if d < 1 or d > 31]
            if invalid_days:
                issues.append(ValidationIssue(
                    field="monthly_dates",
                    issue_type="out_of_range",
                    message=f"Days of the month must be between 1 and 31 (got {invalid_days})",
                    severity="error",
                ))
            elif any(d > 28 for d in draft.monthly_dates):
                # Clamped to the last day in shorter months
                issues.append(ValidationIssue(
                    field="monthly_dates",
                    issue_type="clamped",
                    message="Days after the 28th run on the last day of shorter months",
                    severity="info",
                ))
        elif draft.interval_days <= 0:
            issues.append(ValidationIssue(
                field="interval_days",
                issue_type="out_of_range",
                message="Interval must be at least one day",
                severity="error",
            ))

        if draft.category_id is None:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="missing",
                message="Category is required",
                severity="error",
            ))
        if draft.subcategory_id is None:
            issues.append(ValidationIssue(
                field="subcategory_id",
                issue_type="missing",
                message="Subcategory is required",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _validate_references(
        self,
        draft: RecurringExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Reference validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if self._catalog is None:
            return True, issues

        try:
            await self._catalog.resolve_references(
                draft.category_id,
                draft.subcategory_id,
                draft.project_id,
            )
        except NotFoundError as e:
            issues.append(ValidationIssue(
                field="references",
                issue_type="not_found",
                message=str(e),
                severity="error",
            ))

        return not issues, issues

    async def validate(self, draft: RecurringExpenseDraft) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(draft)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        references_valid = False
        if schema_valid:
            references_valid, reference_issues = await self._validate_references(draft)
            all_issues.extend(reference_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            references_valid=references_valid,
            issues=all_issues,
        )

    async def validate_or_raise(self, draft: RecurringExpenseDraft) -> ValidationResult:
        """
        Validate and raise on errors.

        Raises:
            RecurringExpenseValidationError: If the draft has error-level issues
        """
        result = await self.validate(draft)
        if not result.is_valid:
            raise RecurringExpenseValidationError(result)
        return result

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the UI shows next to the form.
        """
        if result.is_valid and not result.issues:
            return "✅ All checks passed."

        lines = []
        if not result.schema_valid:
            lines.append("❌ Please fix the following:")
        elif not result.references_valid:
            lines.append("❌ Category, subcategory or project no longer exists:")

        for issue in result.issues:
            icon = {"error": "•", "warning": "⚠️", "info": "ℹ️"}[issue.severity]
            lines.append(f"  {icon} {issue.message}")

        return "\n".join(lines)
