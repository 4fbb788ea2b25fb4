"""Collector contract for sync.

A collector gathers samples from one local data framework and turns them
into day batches. The orchestrator drives collectors; collectors own their
anchors and are told to commit one only after its batch was uploaded.

Collectors are registered through the ``lifesync.collectors`` entry point
group. Each entry point must resolve to a callable taking a SourceToggles
lookup and returning a DataCollector.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from importlib.metadata import entry_points
from typing import Protocol

from lifesync.client.sync.types import (
    Batch,
    CollectionResult,
    CollectorAuthStatus,
    DateRange,
)

logger = logging.getLogger(__name__)

COLLECTOR_ENTRY_POINT_GROUP = "lifesync.collectors"


class SourceToggles(Protocol):
    """Lookup of user-enabled data sources (LocalSyncState in production)."""

    def is_source_enabled(self, source_id: str) -> bool: ...


class DataCollector(ABC):
    """Base class for data collectors.

    Subclasses define ``id``, ``display_name`` and ``source_ids`` and
    implement authorization, collection and anchor commits.
    """

    def __init__(self, toggles: SourceToggles) -> None:
        self._toggles = toggles

    @property
    @abstractmethod
    def id(self) -> str:
        """Unique identifier (e.g., "health")."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name for logs and status output."""

    @property
    @abstractmethod
    def source_ids(self) -> Sequence[str]:
        """Data source toggle ids this collector covers."""

    @property
    def enabled_source_ids(self) -> list[str]:
        """Source ids the user has enabled."""
        return [s for s in self.source_ids if self._toggles.is_source_enabled(s)]

    @property
    def has_enabled_sources(self) -> bool:
        """Check if at least one source is enabled."""
        return bool(self.enabled_source_ids)

    @abstractmethod
    def authorization_status(self) -> CollectorAuthStatus:
        """Return the current authorization status without prompting."""

    @abstractmethod
    async def request_authorization(self) -> bool:
        """Prompt for authorization.

        Returns:
            True if access was granted (even partially).
        """

    @abstractmethod
    async def collect_new_samples(self) -> CollectionResult:
        """Collect samples since the last committed anchor, grouped by day.

        Raises:
            CollectorError: If collection failed.
        """

    @abstractmethod
    async def commit_anchor(self, batch: Batch) -> None:
        """Advance the anchor past batch. Called only after a successful upload."""


class HistoryCollector(DataCollector):
    """Collector that can also enumerate its full history month by month."""

    @abstractmethod
    async def discover_date_range(self) -> DateRange | None:
        """Find the earliest and latest dates with data, or None if empty."""

    @abstractmethod
    async def collect_samples_for_month(self, year: int, month: int) -> CollectionResult:
        """Collect the recurring samples of one calendar month."""

    @abstractmethod
    async def collect_events_for_month(self, year: int, month: int) -> list[Batch]:
        """Collect the discrete events (e.g., workouts) of one calendar month."""


def load_collectors(toggles: SourceToggles) -> list[DataCollector]:
    """Instantiate every collector registered under the entry point group.

    A collector whose factory fails is logged and left out.

    Args:
        toggles: Source toggle lookup handed to each collector.

    Returns:
        Collectors sorted by entry point name.
    """
    collectors: list[DataCollector] = []
    for ep in sorted(entry_points(group=COLLECTOR_ENTRY_POINT_GROUP), key=lambda e: e.name):
        try:
            factory = ep.load()
            collector = factory(toggles)
        except Exception:
            logger.exception("Failed to load collector %s", ep.name)
            continue
        if not isinstance(collector, DataCollector):
            logger.warning("Entry point %s did not produce a DataCollector", ep.name)
            continue
        collectors.append(collector)
    return collectors
