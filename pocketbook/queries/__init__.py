"""Statistics query package."""

from pocketbook.queries.statistics import (
    CategoryTotal,
    LedgerSummary,
    StatisticsExecutor,
    month_range,
)

__all__ = ["CategoryTotal", "LedgerSummary", "StatisticsExecutor", "month_range"]
