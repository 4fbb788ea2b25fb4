"""Shared types and dataclasses for sync operations.

This module provides:
- CollectorAuthStatus: Framework permission status of a collector
- CollectorSyncState: Per-collector progress (idle / collecting / uploading / error)
- SyncOutcome, SyncCycleResult: Result of one sync cycle
- SyncError: Failure map of a cycle
- SyncDetail: Counters describing a cycle
- DateAnchor, CursorAnchor: Opaque collector progress markers
- Batch, DateRange, CollectionStats, CollectionResult: Collector output
- CollectorError hierarchy
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, auto


class CollectorAuthStatus(Enum):
    """Authorization status of a collector's data framework."""

    NOT_DETERMINED = auto()
    AUTHORIZED = auto()
    DENIED = auto()
    RESTRICTED = auto()  # Parental controls, device management, etc.
    UNAVAILABLE = auto()  # Framework not available on this device


# === Per-collector state ===


class CollectorPhase(Enum):
    """Phase of a collector within a sync cycle."""

    IDLE = auto()
    COLLECTING = auto()
    UPLOADING = auto()
    ERROR = auto()


@dataclass(frozen=True)
class CollectorSyncState:
    """Sync state of a single collector.

    Attributes:
        phase: Current phase.
        progress: Upload progress between 0.0 and 1.0 (UPLOADING only).
        message: Error message (ERROR only).
    """

    phase: CollectorPhase
    progress: float = 0.0
    message: str | None = None

    @classmethod
    def idle(cls) -> CollectorSyncState:
        return cls(CollectorPhase.IDLE)

    @classmethod
    def collecting(cls) -> CollectorSyncState:
        return cls(CollectorPhase.COLLECTING)

    @classmethod
    def uploading(cls, progress: float) -> CollectorSyncState:
        return cls(CollectorPhase.UPLOADING, progress=progress)

    @classmethod
    def error(cls, message: str) -> CollectorSyncState:
        return cls(CollectorPhase.ERROR, message=message)


# === Cycle results ===


class SyncOutcome(Enum):
    """Overall outcome of a sync cycle."""

    SUCCESS = auto()
    NO_NEW_DATA = auto()
    PARTIAL = auto()
    FAILED = auto()


@dataclass(frozen=True)
class SyncCycleResult:
    """Result of a completed sync cycle.

    Attributes:
        outcome: Overall outcome.
        uploaded: Number of files uploaded.
        failed: Number of failures recorded.
    """

    outcome: SyncOutcome
    uploaded: int = 0
    failed: int = 0

    @classmethod
    def from_counts(cls, uploaded: int, errors: int) -> SyncCycleResult:
        """Derive the result from upload and error counts.

        Args:
            uploaded: Files uploaded during the cycle.
            errors: Entries in the cycle's failure map.

        Returns:
            SUCCESS, PARTIAL, FAILED or NO_NEW_DATA.
        """
        if uploaded > 0 and errors == 0:
            return cls(SyncOutcome.SUCCESS, uploaded=uploaded)
        if uploaded > 0:
            return cls(SyncOutcome.PARTIAL, uploaded=uploaded, failed=errors)
        if errors > 0:
            return cls(SyncOutcome.FAILED, failed=errors)
        return cls(SyncOutcome.NO_NEW_DATA)

    @property
    def file_count(self) -> int:
        """Number of uploaded files (alias used for SUCCESS)."""
        return self.uploaded

    def __str__(self) -> str:
        if self.outcome == SyncOutcome.SUCCESS:
            return f"Synced {self.uploaded} file{'' if self.uploaded == 1 else 's'}"
        if self.outcome == SyncOutcome.PARTIAL:
            return f"Synced {self.uploaded}, {self.failed} failed"
        if self.outcome == SyncOutcome.FAILED:
            return f"Sync failed ({self.failed} error{'' if self.failed == 1 else 's'})"
        return "No new data"


@dataclass(frozen=True)
class SyncError:
    """Aggregated failures of a sync cycle.

    Attributes:
        failures: Map of "collector_id" or "collector_id/destination" to message.
    """

    failures: dict[str, str]

    @property
    def summary(self) -> str:
        count = len(self.failures)
        return f"{count} sync error{'' if count == 1 else 's'}"


@dataclass(frozen=True)
class SyncDetail:
    """Breakdown of what happened during a sync cycle."""

    samples_collected: int = 0
    types_queried: int = 0
    types_with_data: int = 0
    files_uploaded: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    collectors_run: int = 0
    authorization_requested: bool = False


# === Anchors ===


@dataclass(frozen=True)
class DateAnchor:
    """Progress marker expressed as a point in time."""

    timestamp: datetime


@dataclass(frozen=True)
class CursorAnchor:
    """Progress marker expressed as an opaque framework cursor."""

    cursor: str


Anchor = DateAnchor | CursorAnchor


def serialize_anchor(anchor: Anchor) -> str:
    """Serialize an anchor for LocalSyncState.set_anchor()."""
    if isinstance(anchor, DateAnchor):
        return json.dumps({"type": "date", "value": anchor.timestamp.isoformat()})
    return json.dumps({"type": "cursor", "value": anchor.cursor})


def parse_anchor(raw: str | None) -> Anchor | None:
    """Parse an anchor written by serialize_anchor().

    Returns:
        The anchor, or None if raw is missing or not a recognized anchor.
    """
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("value"), str):
        return None
    if data.get("type") == "date":
        try:
            return DateAnchor(datetime.fromisoformat(data["value"]))
        except ValueError:
            return None
    if data.get("type") == "cursor":
        return CursorAnchor(data["value"])
    return None


# === Collector output ===


@dataclass
class Batch:
    """One day of content from a collector, ready for upload.

    Attributes:
        date: Calendar day the batch covers.
        collector_id: Collector that produced the batch.
        destination: Upload path on the server.
        data: Encoded content.
        anchor: Progress marker committed after a successful upload.
    """

    date: date
    collector_id: str
    destination: str
    data: bytes
    anchor: Anchor | None = None


@dataclass(frozen=True)
class DateRange:
    """Earliest and latest dates for which a collector holds data."""

    start: date
    end: date


@dataclass(frozen=True)
class CollectionStats:
    """Statistics reported alongside collected batches."""

    types_queried: int = 0
    types_with_data: int = 0
    samples_collected: int = 0


@dataclass
class CollectionResult:
    """Batches collected in one run plus statistics."""

    batches: list[Batch] = field(default_factory=list)
    stats: CollectionStats = field(default_factory=CollectionStats)


# === Errors ===


class CollectorError(Exception):
    """Base exception for data collection errors."""


class AuthorizationDenied(CollectorError):
    """Framework permission was denied."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Permission denied: {detail}")


class FrameworkUnavailable(CollectorError):
    """Framework not available on this device."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Unavailable: {detail}")


class NoEnabledSources(CollectorError):
    """All data source toggles are off for this collector."""

    def __init__(self) -> None:
        super().__init__("No data sources enabled")


class QueryFailed(CollectorError):
    """A query for one data source failed."""

    def __init__(self, source_id: str, error: Exception) -> None:
        super().__init__(f"Failed to query {source_id}: {error}")
        self.source_id = source_id


class EncodingFailed(CollectorError):
    """Content could not be encoded."""

    def __init__(self, error: Exception) -> None:
        super().__init__(f"Failed to encode data: {error}")
