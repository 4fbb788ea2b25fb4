"""Tests for background sync scheduling."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import date
from unittest.mock import MagicMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from lifesync.client.sync import (
    APSchedulerSyncScheduler,
    BackgroundSyncRunner,
    SyncOrchestrator,
    SyncScheduler,
)
from lifesync.client.sync.scheduler import BACKGROUND_JOB_ID, WakeCallback
from lifesync.core.types import SyncState
from tests.client.fakes import FakeAuth, FakeClock, FakeCollector, FakeTransport, make_batch

MakeOrchestrator = Callable[..., SyncOrchestrator]


class RecordingScheduler(SyncScheduler):
    """SyncScheduler that only records requested wakes."""

    def __init__(self) -> None:
        self.calls: list[tuple[float, WakeCallback]] = []

    def schedule_next(self, after: float, callback: WakeCallback) -> None:
        self.calls.append((after, callback))


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


class TestBackgroundSyncRunner:
    """Tests for BackgroundSyncRunner."""

    def test_start_schedules_first_wake(
        self, make_orchestrator: MakeOrchestrator, scheduler: RecordingScheduler
    ) -> None:
        """Should schedule the first wake at the configured interval."""
        orchestrator = make_orchestrator()
        BackgroundSyncRunner(orchestrator, scheduler).start()

        assert [after for after, _ in scheduler.calls] == [orchestrator.config.background_interval]

    def test_interval_override(
        self, make_orchestrator: MakeOrchestrator, scheduler: RecordingScheduler
    ) -> None:
        """Should honor an explicit interval."""
        BackgroundSyncRunner(make_orchestrator(), scheduler, interval=60).start()
        assert scheduler.calls[0][0] == 60

    @pytest.mark.asyncio
    async def test_wake_success(
        self,
        make_orchestrator: MakeOrchestrator,
        scheduler: RecordingScheduler,
        transport: FakeTransport,
    ) -> None:
        """Should reschedule, sync and report success."""
        runner = BackgroundSyncRunner(
            make_orchestrator(FakeCollector(batches=[make_batch(date(2024, 1, 5), "steps")])),
            scheduler,
        )
        completions: list[bool] = []

        await runner.handle_wake(completions.append)

        assert completions == [True]
        assert len(scheduler.calls) == 1
        assert len(transport.uploads) == 1

    @pytest.mark.asyncio
    async def test_wake_bypasses_throttle(
        self,
        make_orchestrator: MakeOrchestrator,
        scheduler: RecordingScheduler,
        clock: FakeClock,
    ) -> None:
        """Should sync even right after another cycle."""
        orchestrator = make_orchestrator(FakeCollector())
        task = orchestrator.sync()
        assert task is not None
        await task
        clock.advance(5)
        completions: list[bool] = []

        await BackgroundSyncRunner(orchestrator, scheduler).handle_wake(completions.append)

        assert completions == [True]

    @pytest.mark.asyncio
    async def test_wake_with_errors(
        self,
        make_orchestrator: MakeOrchestrator,
        scheduler: RecordingScheduler,
        transport: FakeTransport,
    ) -> None:
        """Should report failure when the cycle recorded errors."""
        batch = make_batch(date(2024, 1, 5), "steps")
        transport.failing.add(batch.destination)
        runner = BackgroundSyncRunner(make_orchestrator(FakeCollector(batches=[batch])), scheduler)
        completions: list[bool] = []

        await runner.handle_wake(completions.append)

        assert completions == [False]

    @pytest.mark.asyncio
    async def test_wake_without_cycle(
        self,
        make_orchestrator: MakeOrchestrator,
        scheduler: RecordingScheduler,
        auth: FakeAuth,
    ) -> None:
        """Should report failure but still reschedule when no cycle starts."""
        auth.is_authenticated = False
        runner = BackgroundSyncRunner(make_orchestrator(FakeCollector()), scheduler)
        completions: list[bool] = []

        await runner.handle_wake(completions.append)

        assert completions == [False]
        assert len(scheduler.calls) == 1

    @pytest.mark.asyncio
    async def test_expire_cancels_cycle(
        self,
        make_orchestrator: MakeOrchestrator,
        scheduler: RecordingScheduler,
        transport: FakeTransport,
    ) -> None:
        """Should cancel the running cycle and report failure once."""
        batch = make_batch(date(2024, 1, 5), "steps")
        transport.blocking.add(batch.destination)
        orchestrator = make_orchestrator(FakeCollector(batches=[batch]))
        runner = BackgroundSyncRunner(orchestrator, scheduler)
        completions: list[bool] = []

        wake = asyncio.create_task(runner.handle_wake(completions.append))
        await transport.blocked.wait()
        runner.expire()
        await wake

        assert completions == [False]
        assert orchestrator.state == SyncState.IDLE
        assert len(scheduler.calls) == 1

    def test_expire_when_idle(
        self, make_orchestrator: MakeOrchestrator, scheduler: RecordingScheduler
    ) -> None:
        """Should do nothing when no wake is running."""
        orchestrator = make_orchestrator()
        BackgroundSyncRunner(orchestrator, scheduler).expire()
        assert orchestrator.state == SyncState.IDLE


class TestAPSchedulerSyncScheduler:
    """Tests for the APScheduler-backed scheduler."""

    def test_schedule_next_replaces_job(self) -> None:
        """Should add a one-shot job under a fixed id."""
        backend = MagicMock(spec=AsyncIOScheduler)

        async def wake() -> None:
            pass

        APSchedulerSyncScheduler(backend).schedule_next(60, wake)

        backend.add_job.assert_called_once()
        args, kwargs = backend.add_job.call_args
        assert args == (wake,)
        assert kwargs["id"] == BACKGROUND_JOB_ID
        assert kwargs["replace_existing"] is True
        assert isinstance(kwargs["trigger"], DateTrigger)

    def test_start_and_stop(self) -> None:
        """Should start and shut down the backend once."""
        backend = MagicMock(spec=AsyncIOScheduler)
        backend.running = False
        scheduler = APSchedulerSyncScheduler(backend)

        scheduler.start()
        backend.start.assert_called_once()

        backend.running = True
        scheduler.start()
        scheduler.stop()

        backend.start.assert_called_once()
        backend.shutdown.assert_called_once_with(wait=False)
