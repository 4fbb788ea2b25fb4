"""Shared types for lifesync.

This module defines enums used across the auth and sync components.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """Overall state of a sync orchestrator.

    A new cycle is only accepted while IDLE.
    """

    IDLE = "idle"
    SYNCING = "syncing"
    SYNCING_ALL = "syncing_all"
