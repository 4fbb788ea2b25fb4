"""Background sync scheduling.

This module provides:
- SyncScheduler: Abstract "wake me later" collaborator
- APSchedulerSyncScheduler: One-shot wakes on an APScheduler AsyncIOScheduler
- BackgroundSyncRunner: What to do when a wake fires

Every wake re-arms the next one before syncing, so a wake that gets cut
short still leaves a future wake scheduled.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from lifesync.client.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

BACKGROUND_JOB_ID = "lifesync-background-sync"

WakeCallback = Callable[[], Awaitable[None]]
CompletionCallback = Callable[[bool], None]


class SyncScheduler(ABC):
    """Schedules a single future background wake."""

    @abstractmethod
    def schedule_next(self, after: float, callback: WakeCallback) -> None:
        """Arrange for callback to run after the given number of seconds.

        Replaces any wake scheduled earlier.
        """


class APSchedulerSyncScheduler(SyncScheduler):
    """SyncScheduler backed by APScheduler's AsyncIOScheduler.

    Usage:
        scheduler = APSchedulerSyncScheduler()
        scheduler.start()
        runner = BackgroundSyncRunner(orchestrator, scheduler)
        runner.start()
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler()

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self) -> None:
        """Start the scheduler (requires a running event loop)."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Background scheduler started")

    def stop(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Background scheduler stopped")

    def schedule_next(self, after: float, callback: WakeCallback) -> None:
        run_date = datetime.now().astimezone() + timedelta(seconds=after)
        self._scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_date),
            id=BACKGROUND_JOB_ID,
            name="Background sync",
            replace_existing=True,
        )
        logger.debug("Next background sync at %s", run_date.isoformat(timespec="seconds"))


class BackgroundSyncRunner:
    """Runs one sync cycle per background wake.

    A wake first schedules the next wake, then runs a cycle the same way a
    user trigger does, except that the throttle is bypassed. The completion
    callback receives True when the cycle finished without recording an
    error.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        scheduler: SyncScheduler,
        interval: float | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            orchestrator: Orchestrator that performs the cycles.
            scheduler: Scheduler for the next wake.
            interval: Seconds between wakes (defaults to the config's
                background interval).
        """
        self._orchestrator = orchestrator
        self._scheduler = scheduler
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        if self._interval is not None:
            return self._interval
        return self._orchestrator.config.background_interval

    def start(self) -> None:
        """Schedule the first background wake."""
        self._scheduler.schedule_next(self.interval, self._on_scheduled_wake)

    async def _on_scheduled_wake(self) -> None:
        await self.handle_wake(self._log_completion)

    @staticmethod
    def _log_completion(success: bool) -> None:
        if success:
            logger.info("Background sync completed")
        else:
            logger.warning("Background sync did not complete cleanly")

    async def handle_wake(self, completion: CompletionCallback) -> None:
        """Handle a background wake.

        Args:
            completion: Called exactly once with the wake's success.
        """
        self._scheduler.schedule_next(self.interval, self._on_scheduled_wake)

        task = self._orchestrator.sync(force=True)
        if task is None:
            logger.info("Background wake: no cycle started")
            completion(False)
            return

        self._task = task
        try:
            await asyncio.wait([task])
        finally:
            self._task = None

        completion(not task.cancelled() and self._orchestrator.last_error is None)

    def expire(self) -> None:
        """Cancel the cycle started by the current wake, if any."""
        if self._task is not None and not self._task.done():
            logger.info("Background time expired, cancelling sync")
            self._orchestrator.cancel_sync()
