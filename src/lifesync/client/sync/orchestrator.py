"""Sync orchestrator: drives collectors and uploads their batches.

This module provides:
- SyncOrchestrator: Runs sync cycles and full-history syncs
- Transport / AuthGate / SyncStore: Protocols for its collaborators

Cycle rules:
    - Only one cycle runs at a time; a trigger while busy is ignored.
    - An unforced trigger within the throttle interval is ignored.
    - A batch whose content is unchanged is skipped without a network call.
    - After a successful upload the watermark is recorded, then the
      collector's anchor is committed for that batch only. A failed upload
      leaves the anchor where it was, so the data is collected again.
    - Collector and upload failures never abort the cycle; they end up in
      the failure map and the cycle result.

Full-history mode walks the months of the primary history collector oldest
first, day by day, persisting each fully uploaded month so that an
interrupted run resumes where it stopped. A month whose sample or event
query failed is reported in the failure map and never persisted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, auto
from typing import Any, Protocol

from lifesync.client.api import APIError
from lifesync.client.sync.collector import DataCollector, HistoryCollector
from lifesync.client.sync.progress import AggregateStatus, DaySyncStatus, FullSyncProgress
from lifesync.client.sync.types import (
    Batch,
    CollectorAuthStatus,
    CollectorSyncState,
    SyncCycleResult,
    SyncDetail,
    SyncError,
)
from lifesync.client.sync.watermark import ContentWatermark
from lifesync.core.config import ClientConfig
from lifesync.core.types import SyncState

logger = logging.getLogger(__name__)

PERMISSION_DENIED = "Permission denied"
DAY_UPLOAD_FAILED = "Upload failed"
MONTH_QUERY_FAILED = "Query failed"


class Transport(Protocol):
    """Upload side of the HTTP client."""

    async def upload_content(self, destination: str, data: bytes) -> None: ...


class AuthGate(Protocol):
    """Read-only view of the auth state."""

    @property
    def is_authenticated(self) -> bool: ...


class SyncStore(Protocol):
    """Persistent cycle time and full-sync progress (LocalSyncState)."""

    def get_last_sync_at(self) -> float | None: ...

    def set_last_sync_at(self, timestamp: float) -> None: ...

    def get_completed_months(self) -> set[str]: ...

    def add_completed_month(self, month_key: str) -> None: ...

    def clear_completed_months(self) -> None: ...


class _Access(Enum):
    GRANTED = auto()
    DENIED = auto()
    UNAVAILABLE = auto()


class _BatchOutcome(Enum):
    UPLOADED = auto()
    SKIPPED = auto()
    FAILED = auto()


@dataclass
class _Tally:
    """Counters accumulated during one cycle."""

    uploaded: int = 0
    skipped: int = 0
    collectors_run: int = 0
    samples_collected: int = 0
    types_queried: int = 0
    types_with_data: int = 0
    authorization_requested: bool = False
    failures: dict[str, str] = field(default_factory=dict)


def _describe(error: Exception) -> str:
    if isinstance(error, APIError):
        return error.user_message
    return str(error) or type(error).__name__


class SyncOrchestrator:
    """Drives registered collectors through sync cycles.

    Usage:
        orchestrator = SyncOrchestrator(auth, client, watermark, state, collectors, config)

        task = orchestrator.sync()  # None if busy, throttled or signed out
        if task is not None:
            await task
        print(orchestrator.last_result)
    """

    def __init__(
        self,
        auth: AuthGate,
        transport: Transport,
        watermark: ContentWatermark,
        store: SyncStore,
        collectors: Sequence[DataCollector],
        config: ClientConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            auth: Auth state; cycles only start when authenticated.
            transport: Uploads batch content.
            watermark: Skips unchanged content.
            store: Persists last cycle time and completed months.
            collectors: Registered collectors, in run order.
            config: Client configuration (throttle interval).
            clock: Time source returning Unix timestamps.
        """
        self._auth = auth
        self._transport = transport
        self._watermark = watermark
        self._store = store
        self._collectors = list(collectors)
        self._config = config
        self._clock = clock

        self._state = SyncState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._collector_states: dict[str, CollectorSyncState] = {
            c.id: CollectorSyncState.idle() for c in self._collectors
        }
        self._last_sync_at = store.get_last_sync_at()
        self._last_error: SyncError | None = None
        self._last_result: SyncCycleResult | None = None
        self._last_detail: SyncDetail | None = None
        self._progress: FullSyncProgress | None = None

    # === Observable state ===

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def collectors(self) -> list[DataCollector]:
        return list(self._collectors)

    @property
    def collector_states(self) -> dict[str, CollectorSyncState]:
        return dict(self._collector_states)

    @property
    def last_sync_date(self) -> datetime | None:
        """Completion time of the last cycle (UTC)."""
        if self._last_sync_at is None:
            return None
        return datetime.fromtimestamp(self._last_sync_at, UTC)

    @property
    def last_error(self) -> SyncError | None:
        return self._last_error

    @property
    def last_result(self) -> SyncCycleResult | None:
        return self._last_result

    @property
    def last_detail(self) -> SyncDetail | None:
        return self._last_detail

    @property
    def full_sync_progress(self) -> FullSyncProgress | None:
        return self._progress

    @property
    def has_resumable_full_sync(self) -> bool:
        """Check if a previous full sync persisted completed months."""
        return bool(self._store.get_completed_months())

    # === Triggers ===

    def sync(self, force: bool = False) -> asyncio.Task[None] | None:
        """Start a sync cycle in the background.

        Must be called from a running event loop.

        Args:
            force: Ignore the throttle interval.

        Returns:
            The cycle task, or None if no cycle was started.
        """
        if self._state != SyncState.IDLE:
            logger.debug("Sync already running, trigger ignored")
            return None

        if not force and self._last_sync_at is not None:
            elapsed = self._clock() - self._last_sync_at
            if elapsed < self._config.throttle_interval:
                logger.debug("Sync throttled (last cycle %.0fs ago)", elapsed)
                return None

        if not self._auth.is_authenticated:
            logger.debug("Not authenticated, sync skipped")
            return None

        return self._start(self._run_cycle, SyncState.SYNCING)

    def sync_all(self) -> asyncio.Task[None] | None:
        """Start (or resume) a full-history sync in the background.

        Returns:
            The sync task, or None if no sync was started.
        """
        if self._state != SyncState.IDLE:
            logger.debug("Sync already running, full sync ignored")
            return None
        if not self._auth.is_authenticated:
            logger.debug("Not authenticated, full sync skipped")
            return None
        return self._start(self._run_full_sync, SyncState.SYNCING_ALL)

    def cancel_sync(self) -> None:
        """Cancel the running sync.

        The state returns to IDLE once the task has unwound, after any
        anchor commit already in progress. Uploads, watermarks and anchors
        committed so far are kept.
        """
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("Sync cancelled")

    def _start(
        self,
        work: Callable[[], Coroutine[Any, Any, None]],
        state: SyncState,
    ) -> asyncio.Task[None]:
        self._state = state
        self._last_error = None
        task = asyncio.create_task(work())
        self._task = task
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        # A cancelled task must not reset state owned by a newer one
        if self._task is not task:
            return
        self._task = None
        self._state = SyncState.IDLE
        if not task.cancelled() and task.exception() is not None:
            logger.error("Sync task crashed", exc_info=task.exception())

    # === Full-sync progress ===

    def _history_collector(self) -> HistoryCollector | None:
        for collector in self._collectors:
            if isinstance(collector, HistoryCollector):
                return collector
        return None

    async def prepare_full_sync(self) -> FullSyncProgress | None:
        """Build the month model from the primary history collector.

        Completed months persisted by an earlier run are restored.

        Returns:
            The progress model, or None if there is no history to sync.
        """
        collector = self._history_collector()
        if collector is None:
            return None

        date_range = await collector.discover_date_range()
        if date_range is None:
            logger.info("%s has no history to sync", collector.display_name)
            return None

        progress = FullSyncProgress(
            date_range.start.year,
            date_range.start.month,
            date_range.end.year,
            date_range.end.month,
        )
        completed = self._store.get_completed_months()
        if completed:
            progress.restore_completed(completed)
        self._progress = progress
        logger.info(
            "Full sync covers %d months (%d already completed)",
            len(progress.months),
            len(progress.completed_month_keys),
        )
        return progress

    def clear_full_sync_progress(self) -> None:
        """Drop the month model and the persisted completed months."""
        self._progress = None
        self._store.clear_completed_months()

    def reset_watermarks(self) -> None:
        """Forget all upload watermarks so every batch is uploaded again."""
        self._watermark.clear_all()

    # === Shared steps ===

    async def _resolve_access(self, collector: DataCollector, tally: _Tally) -> _Access:
        status = collector.authorization_status()
        if status == CollectorAuthStatus.NOT_DETERMINED:
            tally.authorization_requested = True
            granted = await collector.request_authorization()
            return _Access.GRANTED if granted else _Access.DENIED
        if status in (CollectorAuthStatus.DENIED, CollectorAuthStatus.RESTRICTED):
            return _Access.DENIED
        if status == CollectorAuthStatus.UNAVAILABLE:
            return _Access.UNAVAILABLE
        return _Access.GRANTED

    async def _upload_batch(
        self,
        collector: DataCollector,
        batch: Batch,
        tally: _Tally,
    ) -> _BatchOutcome:
        if not self._watermark.has_changed(batch.destination, batch.data):
            logger.debug("Unchanged, skipping %s", batch.destination)
            tally.skipped += 1
            return _BatchOutcome.SKIPPED

        try:
            await self._transport.upload_content(batch.destination, batch.data)
        except Exception as e:
            logger.warning("Upload of %s failed: %s", batch.destination, e)
            tally.failures[f"{collector.id}/{batch.destination}"] = _describe(e)
            return _BatchOutcome.FAILED

        self._watermark.record_upload(batch.destination, batch.data)
        # The upload happened; the anchor must follow even if we get cancelled
        commit = asyncio.ensure_future(collector.commit_anchor(batch))
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            await commit
            raise
        tally.uploaded += 1
        return _BatchOutcome.UPLOADED

    def _finish(self, tally: _Tally, detail: SyncDetail | None) -> None:
        self._last_error = SyncError(dict(tally.failures)) if tally.failures else None

        now = self._clock()
        self._store.set_last_sync_at(now)
        self._last_sync_at = now

        self._last_result = SyncCycleResult.from_counts(tally.uploaded, len(tally.failures))
        if detail is not None:
            self._last_detail = detail
        logger.info(
            "Sync finished: %s (%d uploaded, %d skipped, %d errors)",
            self._last_result,
            tally.uploaded,
            tally.skipped,
            len(tally.failures),
        )

    # === Incremental cycle ===

    async def _run_cycle(self) -> None:
        logger.info("Sync cycle started")
        tally = _Tally()

        for collector in self._collectors:
            if not collector.has_enabled_sources:
                logger.debug("%s has no enabled sources, skipping", collector.id)
                continue

            access = await self._resolve_access(collector, tally)
            if access == _Access.UNAVAILABLE:
                logger.debug("%s unavailable on this device, skipping", collector.id)
                continue
            tally.collectors_run += 1
            if access == _Access.DENIED:
                tally.failures[collector.id] = PERMISSION_DENIED
                self._collector_states[collector.id] = CollectorSyncState.error(PERMISSION_DENIED)
                continue

            await self._sync_collector(collector, tally)

        self._finish(
            tally,
            SyncDetail(
                samples_collected=tally.samples_collected,
                types_queried=tally.types_queried,
                types_with_data=tally.types_with_data,
                files_uploaded=tally.uploaded,
                files_skipped=tally.skipped,
                files_failed=len(tally.failures),
                collectors_run=tally.collectors_run,
                authorization_requested=tally.authorization_requested,
            ),
        )

    async def _sync_collector(self, collector: DataCollector, tally: _Tally) -> None:
        self._collector_states[collector.id] = CollectorSyncState.collecting()
        try:
            result = await collector.collect_new_samples()
            tally.samples_collected += result.stats.samples_collected
            tally.types_queried += result.stats.types_queried
            tally.types_with_data += result.stats.types_with_data

            batches = result.batches
            if not batches:
                self._collector_states[collector.id] = CollectorSyncState.idle()
                return

            self._collector_states[collector.id] = CollectorSyncState.uploading(0.0)
            failed = 0
            for index, batch in enumerate(batches, start=1):
                outcome = await self._upload_batch(collector, batch, tally)
                if outcome == _BatchOutcome.FAILED:
                    failed += 1
                self._collector_states[collector.id] = CollectorSyncState.uploading(
                    index / len(batches)
                )
        except Exception as e:
            logger.warning("%s failed: %s", collector.display_name, e)
            tally.failures[collector.id] = _describe(e)
            self._collector_states[collector.id] = CollectorSyncState.error(_describe(e))
            return

        if failed:
            message = f"{failed} upload{'' if failed == 1 else 's'} failed"
            self._collector_states[collector.id] = CollectorSyncState.error(message)
        else:
            self._collector_states[collector.id] = CollectorSyncState.idle()

    # === Full-history sync ===

    async def _run_full_sync(self) -> None:
        collector = self._history_collector()
        if collector is None:
            logger.info("No collector supports full sync")
            return
        if not collector.has_enabled_sources:
            logger.info("%s has no enabled sources, full sync skipped", collector.id)
            return

        tally = _Tally()
        access = await self._resolve_access(collector, tally)
        if access == _Access.UNAVAILABLE:
            return
        if access == _Access.DENIED:
            self._last_error = SyncError({collector.id: PERMISSION_DENIED})
            return

        progress = self._progress
        if progress is None:
            progress = await self.prepare_full_sync()
        if progress is None:
            self._last_result = SyncCycleResult.from_counts(0, 0)
            return

        logger.info("Full sync started")
        for month in progress.months:
            if month.status == AggregateStatus.DONE:
                continue

            batches, query_errors = await self._collect_month(collector, month.year, month.month)
            if query_errors:
                tally.failures[f"{collector.id}/{month.key}"] = "; ".join(query_errors)

            by_day: dict[int, list[Batch]] = defaultdict(list)
            for batch in batches:
                by_day[batch.date.day].append(batch)

            for day in range(1, month.days_in_month + 1):
                if month.day_status(day).is_done:
                    continue
                month.set_day_status(day, DaySyncStatus.syncing())

                day_failed = False
                for batch in by_day.get(day, []):
                    if await self._upload_batch(collector, batch, tally) == _BatchOutcome.FAILED:
                        day_failed = True

                if day_failed:
                    month.set_day_status(day, DaySyncStatus.error(DAY_UPLOAD_FAILED))
                elif query_errors:
                    # Data missing from a failed query may belong to any day
                    month.set_day_status(day, DaySyncStatus.error(MONTH_QUERY_FAILED))
                else:
                    month.set_day_status(day, DaySyncStatus.done())

            if month.status == AggregateStatus.DONE:
                self._store.add_completed_month(month.key)
                logger.debug("Month %s completed", month.key)

        self._finish(tally, None)

    async def _collect_month(
        self,
        collector: HistoryCollector,
        year: int,
        month: int,
    ) -> tuple[list[Batch], list[str]]:
        """Collect one month's samples and events.

        Returns:
            The batches that were collected and a message per failed query.
        """
        batches: list[Batch] = []
        errors: list[str] = []
        try:
            result = await collector.collect_samples_for_month(year, month)
            batches.extend(result.batches)
        except Exception as e:
            logger.warning("Failed to collect samples for %04d-%02d: %s", year, month, e)
            errors.append(f"Sample query failed: {_describe(e)}")

        try:
            batches.extend(await collector.collect_events_for_month(year, month))
        except Exception as e:
            logger.warning("Failed to collect events for %04d-%02d: %s", year, month, e)
            errors.append(f"Event query failed: {_describe(e)}")
        return batches, errors
