"""Core module - Shared config, hashing, and types."""

from lifesync.core.config import ClientConfig
from lifesync.core.hashing import compute_content_hash
from lifesync.core.types import SyncState

__all__ = [
    # Config
    "ClientConfig",
    # Hashing
    "compute_content_hash",
    # Types
    "SyncState",
]
