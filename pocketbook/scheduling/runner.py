"""
Periodic Due-Check Runner

Hosts the scheduler's timer: one check shortly after start (so expenses
that came due while the app was closed are recorded on launch), then one
every check interval.
"""

import asyncio
from typing import Optional

import structlog

from pocketbook.config import get_settings
from pocketbook.models.recurring import ExecutionReport
from pocketbook.scheduling.scheduler import RecurringExpenseScheduler


logger = structlog.get_logger(__name__)


class RecurringCheckRunner:
    """
    asyncio task calling scheduler.tick() on a fixed cadence.

    Usage:
        runner = RecurringCheckRunner(scheduler)
        runner.start()
        ...
        await runner.stop()
    """

    def __init__(
        self,
        scheduler: RecurringExpenseScheduler,
        check_interval_seconds: Optional[float] = None,
        startup_delay_seconds: Optional[float] = None,
    ):
        settings = get_settings().scheduler
        self._scheduler = scheduler
        self._interval = (
            settings.check_interval_seconds
            if check_interval_seconds is None else check_interval_seconds
        )
        self._startup_delay = (
            settings.startup_delay_seconds
            if startup_delay_seconds is None else startup_delay_seconds
        )
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[ExecutionReport] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        await asyncio.sleep(self._startup_delay)
        while True:
            try:
                self.last_report = await self._scheduler.tick()
            except Exception as e:
                # A failed pass must not stop the timer
                logger.error("recurring_check_failed", error=str(e), exc_info=True)
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        """Start the timer on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            "recurring_check_runner_started",
            startup_delay=self._startup_delay,
            interval=self._interval,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("recurring_check_runner_stopped")
