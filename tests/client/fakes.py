"""Fakes for collectors, transport, auth and time used by the sync tests."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from datetime import date

from lifesync.client.api import NetworkError
from lifesync.client.sync import (
    Batch,
    CollectionResult,
    CollectionStats,
    CollectorAuthStatus,
    CursorAnchor,
    DataCollector,
    DateRange,
    HistoryCollector,
)


class EnabledSources:
    """SourceToggles with a fixed set of enabled ids."""

    def __init__(self, enabled: Iterable[str] = ()) -> None:
        self.enabled = set(enabled)

    def is_source_enabled(self, source_id: str) -> bool:
        return source_id in self.enabled


def make_batch(day: date, name: str, data: bytes | None = None, collector_id: str = "health") -> Batch:
    """Build a batch for one day with a cursor anchor named after it."""
    return Batch(
        date=day,
        collector_id=collector_id,
        destination=f"imports/{collector_id}/{day:%Y/%m/%d}/{name}.json",
        data=data if data is not None else f"{day.isoformat()}:{name}".encode(),
        anchor=CursorAnchor(f"{day.isoformat()}:{name}"),
    )


class FakeCollector(DataCollector):
    """Collector returning prepared batches and recording commits."""

    def __init__(
        self,
        toggles: EnabledSources | None = None,
        collector_id: str = "health",
        sources: Sequence[str] = ("steps",),
        status: CollectorAuthStatus = CollectorAuthStatus.AUTHORIZED,
        batches: list[Batch] | None = None,
        grant: bool = True,
        error: Exception | None = None,
    ) -> None:
        super().__init__(toggles if toggles is not None else EnabledSources(sources))
        self._id = collector_id
        self._sources = tuple(sources)
        self.status = status
        self.batches = list(batches or [])
        self.grant = grant
        self.error = error
        self.authorization_requests = 0
        self.committed: list[Batch] = []
        # Set commit_release to hold anchor commits until it is set
        self.commit_release: asyncio.Event | None = None
        self.commit_blocked = asyncio.Event()

    @property
    def id(self) -> str:
        return self._id

    @property
    def display_name(self) -> str:
        return self._id.title()

    @property
    def source_ids(self) -> Sequence[str]:
        return self._sources

    def authorization_status(self) -> CollectorAuthStatus:
        return self.status

    async def request_authorization(self) -> bool:
        self.authorization_requests += 1
        if self.grant:
            self.status = CollectorAuthStatus.AUTHORIZED
        return self.grant

    async def collect_new_samples(self) -> CollectionResult:
        if self.error is not None:
            raise self.error
        return CollectionResult(
            batches=list(self.batches),
            stats=CollectionStats(
                types_queried=len(self._sources),
                types_with_data=1 if self.batches else 0,
                samples_collected=len(self.batches) * 10,
            ),
        )

    async def commit_anchor(self, batch: Batch) -> None:
        if self.commit_release is not None:
            self.commit_blocked.set()
            await self.commit_release.wait()
        self.committed.append(batch)


class FakeHistoryCollector(FakeCollector, HistoryCollector):
    """FakeCollector with a month-by-month history."""

    def __init__(
        self,
        date_range: DateRange | None = None,
        samples: dict[tuple[int, int], list[Batch]] | None = None,
        events: dict[tuple[int, int], list[Batch]] | None = None,
        failing_events: Iterable[tuple[int, int]] = (),
        failing_samples: Iterable[tuple[int, int]] = (),
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.date_range = date_range
        self.samples = samples or {}
        self.events = events or {}
        self.failing_events = set(failing_events)
        self.failing_samples = set(failing_samples)
        self.months_collected: list[tuple[int, int]] = []

    async def discover_date_range(self) -> DateRange | None:
        return self.date_range

    async def collect_samples_for_month(self, year: int, month: int) -> CollectionResult:
        self.months_collected.append((year, month))
        if (year, month) in self.failing_samples:
            raise RuntimeError("sample query timed out")
        return CollectionResult(batches=list(self.samples.get((year, month), [])))

    async def collect_events_for_month(self, year: int, month: int) -> list[Batch]:
        if (year, month) in self.failing_events:
            raise RuntimeError("event query failed")
        return list(self.events.get((year, month), []))


class FakeTransport:
    """Transport recording uploads, failing or blocking on chosen destinations."""

    def __init__(self) -> None:
        self.uploads: list[tuple[str, bytes]] = []
        self.failing: set[str] = set()
        self.blocking: set[str] = set()
        self.blocked = asyncio.Event()
        self.release = asyncio.Event()

    async def upload_content(self, destination: str, data: bytes) -> None:
        if destination in self.blocking:
            self.blocked.set()
            await self.release.wait()
        if destination in self.failing:
            raise NetworkError("Connection refused")
        self.uploads.append((destination, data))

    @property
    def destinations(self) -> list[str]:
        return [d for d, _ in self.uploads]


class FakeAuth:
    """AuthGate with a settable flag."""

    def __init__(self, authenticated: bool = True) -> None:
        self.is_authenticated = authenticated


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


