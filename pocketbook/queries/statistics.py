"""
Statistics Queries

DESIGN DECISION: Statistics are computed from stored transactions only.
No estimates and no projections (the recurring expense overview has its
own monthly estimate). An empty range gives empty results, not an error.

Date ranges are half-open: date_from inclusive, date_to exclusive.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from pocketbook.ledger.catalog import CatalogService
from pocketbook.models.ledger import Transaction
from pocketbook.services.storage.interface import TransactionStorageInterface


UNKNOWN_NAME = "Unknown"
NO_PROJECT_NAME = "No project"


class CategoryTotal(BaseModel):
    """Spending of one category, subcategory or project."""

    id: Optional[UUID] = None
    name: str
    total: int = Field(ge=0)
    count: int = Field(ge=0)
    share: float = Field(
        ge=0.0,
        le=1.0,
        description="Fraction of the grand total of the same query"
    )


class LedgerSummary(BaseModel):
    """Totals of a date range."""

    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    total: int = 0
    count: int = 0
    daily_average: Decimal = Decimal("0")


def month_range(year: int, month: int) -> tuple[datetime, datetime]:
    """[first day of month, first day of next month)"""
    start = datetime(year, month, 1)
    if month == 12:
        return start, datetime(year + 1, 1, 1)
    return start, datetime(year, month + 1, 1)


class StatisticsExecutor:
    """
    Aggregates transactions for the statistics and calendar screens.

    GUARANTEES:
    - Only returns real data from storage
    - Totals of each grouping add up to the grand total of the range
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        catalog: CatalogService,
    ):
        self._storage = storage
        self._catalog = catalog

    async def _transactions(
        self,
        date_from: Optional[datetime],
        date_to: Optional[datetime],
        **filters,
    ) -> list[Transaction]:
        return await self._storage.list_transactions(
            date_from=date_from,
            date_to=date_to,
            **filters,
        )

    @staticmethod
    def _group(
        transactions: list[Transaction],
        key,
        names: dict[Optional[UUID], str],
        default_name: str = UNKNOWN_NAME,
    ) -> list[CategoryTotal]:
        totals: dict[Optional[UUID], list[int]] = {}
        for transaction in transactions:
            bucket = totals.setdefault(key(transaction), [0, 0])
            bucket[0] += transaction.amount
            bucket[1] += 1

        grand_total = sum(t.amount for t in transactions)
        results = [
            CategoryTotal(
                id=group_id,
                name=names.get(group_id, default_name),
                total=total,
                count=count,
                share=(total / grand_total) if grand_total else 0.0,
            )
            for group_id, (total, count) in totals.items()
        ]
        results.sort(key=lambda r: (-r.total, r.name))
        return results

    async def totals_by_category(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[CategoryTotal]:
        transactions = await self._transactions(date_from, date_to)
        names = {c.id: c.name for c in await self._catalog.list_categories()}
        return self._group(transactions, lambda t: t.category_id, names)

    async def totals_by_subcategory(
        self,
        category_id: UUID,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[CategoryTotal]:
        """Breakdown of one category."""
        transactions = await self._transactions(date_from, date_to, category_id=category_id)
        names: dict[Optional[UUID], str] = {}
        for category in await self._catalog.list_categories():
            if category.id == category_id:
                names = {s.id: s.name for s in category.subcategories}
        return self._group(transactions, lambda t: t.subcategory_id, names)

    async def totals_by_project(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[CategoryTotal]:
        """Untagged transactions are grouped under "No project" (id None)."""
        transactions = await self._transactions(date_from, date_to)
        names: dict[Optional[UUID], str] = {
            p.id: p.name for p in await self._catalog.list_projects()
        }
        names[None] = NO_PROJECT_NAME
        return self._group(transactions, lambda t: t.project_id, names)

    async def daily_totals(self, year: int, month: int) -> dict[int, int]:
        """Day of month -> total, for days with at least one transaction."""
        start, end = month_range(year, month)
        totals: dict[int, int] = {}
        for transaction in await self._transactions(start, end):
            day = transaction.date.day
            totals[day] = totals.get(day, 0) + transaction.amount
        return dict(sorted(totals.items()))

    async def summary(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> LedgerSummary:
        """
        Grand total, count and daily average of a range.

        Without explicit bounds the range spans the first to the last
        transaction, both days included.
        """
        transactions = await self._transactions(date_from, date_to)
        if not transactions:
            return LedgerSummary(date_from=date_from, date_to=date_to)

        total = sum(t.amount for t in transactions)
        if date_from and date_to:
            days = (date_to.date() - date_from.date()).days
        else:
            first = date_from.date() if date_from else min(t.date for t in transactions).date()
            last = (
                date_to.date() if date_to
                else max(t.date for t in transactions).date()
            )
            days = (last - first).days + (0 if date_to else 1)
        days = max(days, 1)

        average = (Decimal(total) / days).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return LedgerSummary(
            date_from=date_from,
            date_to=date_to,
            total=total,
            count=len(transactions),
            daily_average=average,
        )
