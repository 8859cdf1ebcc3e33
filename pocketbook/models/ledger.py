"""
Ledger Models for Pocketbook

Categories, subcategories, projects and the transactions tagged with them.

DESIGN DECISION: A category owns its subcategories BY VALUE.
There is no separate subcategory table and no ORM cascade rule:
deleting a category drops the embedded list, and anything that
references a subcategory (transactions, recurring expenses) holds
its id only. Cascades over transactions are explicit code in the
catalog service.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# CATALOG
# =============================================================================

class Subcategory(BaseModel):
    """A subcategory, stored inside its parent category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    order: int = Field(default=0, ge=0)


class Category(BaseModel):
    """
    Top-level expense category.

    Subcategories are kept sorted by their `order` field.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    order: int = Field(default=0, ge=0)
    subcategories: list[Subcategory] = Field(default_factory=list)

    def get_subcategory(self, subcategory_id: UUID) -> Optional[Subcategory]:
        for subcategory in self.subcategories:
            if subcategory.id == subcategory_id:
                return subcategory
        return None

    @property
    def next_subcategory_order(self) -> int:
        return max((s.order for s in self.subcategories), default=-1) + 1


class Project(BaseModel):
    """Optional cross-category tag (a trip, a renovation, ...)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    order: int = Field(default=0, ge=0)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A single expense record.

    Amounts are whole units of the home currency. Foreign amounts are
    converted before a Transaction is built.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    category_id: UUID
    subcategory_id: UUID
    project_id: Optional[UUID] = None

    amount: int = Field(
        ...,
        gt=0,
        description="Amount in home currency (no minor units)"
    )
    date: datetime = Field(
        default_factory=datetime.now,
        description="When the expense happened"
    )
    note: Optional[str] = Field(
        default=None,
        max_length=1000,
    )

    # Set when the transaction was generated by a recurring expense
    recurring_expense_id: Optional[UUID] = None

    @field_validator('note')
    @classmethod
    def blank_note_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def is_recurring(self) -> bool:
        return self.recurring_expense_id is not None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'out_of_range', 'not_found')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (recurrence parameters, amount, name)
    Stage 2: Reference validation (category, subcategory, project exist)
    """

    validated_at: datetime = Field(
        default_factory=datetime.now
    )
    schema_valid: bool
    references_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.references_valid and not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
