"""Sync package for collecting local data and uploading it.

This package provides:
- SyncOrchestrator: Drives collectors through sync cycles
- ContentWatermark: Skips uploads of unchanged content
- FullSyncProgress: Resumable calendar progress of full-history sync
- DataCollector / HistoryCollector: Collector contract
- BackgroundSyncRunner: Periodic background cycles
"""

from lifesync.client.sync.collector import (
    COLLECTOR_ENTRY_POINT_GROUP,
    DataCollector,
    HistoryCollector,
    SourceToggles,
    load_collectors,
)
from lifesync.client.sync.orchestrator import SyncOrchestrator
from lifesync.client.sync.payload import DayKey, day_key, day_upload_path, encode_day_payload
from lifesync.client.sync.progress import (
    AggregateStatus,
    DayState,
    DaySyncStatus,
    FullSyncProgress,
    MonthProgress,
)
from lifesync.client.sync.scheduler import (
    APSchedulerSyncScheduler,
    BackgroundSyncRunner,
    SyncScheduler,
)
from lifesync.client.sync.types import (
    Anchor,
    AuthorizationDenied,
    Batch,
    CollectionResult,
    CollectionStats,
    CollectorAuthStatus,
    CollectorError,
    CollectorPhase,
    CollectorSyncState,
    CursorAnchor,
    DateAnchor,
    DateRange,
    EncodingFailed,
    FrameworkUnavailable,
    NoEnabledSources,
    QueryFailed,
    SyncCycleResult,
    SyncDetail,
    SyncError,
    SyncOutcome,
    parse_anchor,
    serialize_anchor,
)
from lifesync.client.sync.watermark import ContentWatermark, WatermarkStore

__all__ = [
    # Orchestration
    "SyncOrchestrator",
    "SyncCycleResult",
    "SyncOutcome",
    "SyncDetail",
    "SyncError",
    "CollectorSyncState",
    "CollectorPhase",
    # Collectors
    "COLLECTOR_ENTRY_POINT_GROUP",
    "DataCollector",
    "HistoryCollector",
    "SourceToggles",
    "load_collectors",
    "CollectorAuthStatus",
    "Batch",
    "DateRange",
    "CollectionStats",
    "CollectionResult",
    "Anchor",
    "DateAnchor",
    "CursorAnchor",
    "serialize_anchor",
    "parse_anchor",
    # Errors
    "CollectorError",
    "AuthorizationDenied",
    "FrameworkUnavailable",
    "NoEnabledSources",
    "QueryFailed",
    "EncodingFailed",
    # Watermark
    "ContentWatermark",
    "WatermarkStore",
    # Full-sync progress
    "FullSyncProgress",
    "MonthProgress",
    "DaySyncStatus",
    "DayState",
    "AggregateStatus",
    # Payloads
    "DayKey",
    "day_key",
    "encode_day_payload",
    "day_upload_path",
    # Scheduling
    "SyncScheduler",
    "APSchedulerSyncScheduler",
    "BackgroundSyncRunner",
]
