"""
Notifications

The scheduler tells the user how many recurring expenses it recorded on
their behalf. How that reaches the user (banner, push, e-mail) is up to
the implementation; the default one writes a structured log line.
"""

from abc import ABC, abstractmethod

import structlog


logger = structlog.get_logger(__name__)


class NotificationInterface(ABC):
    """Receives scheduler events meant for the user."""

    @abstractmethod
    async def notify_recurring_executed(self, count: int) -> None:
        """Called once per due-check pass that recorded at least one expense."""
        pass


class LoggingNotifier(NotificationInterface):
    """Writes notifications to the structured log."""

    async def notify_recurring_executed(self, count: int) -> None:
        logger.info(
            "recurring_expenses_recorded",
            count=count,
            message=f"{count} recurring expense(s) were recorded automatically",
        )


class CollectingNotifier(NotificationInterface):
    """
    Keeps notifications in memory.

    The Streamlit app drains it to show a banner after a check.
    """

    def __init__(self):
        self.executed_counts: list[int] = []

    async def notify_recurring_executed(self, count: int) -> None:
        self.executed_counts.append(count)

    def drain(self) -> list[int]:
        counts, self.executed_counts = self.executed_counts, []
        return counts
