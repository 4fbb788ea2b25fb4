"""Upload watermark: skip content the server already has.

ContentWatermark remembers the SHA-256 digest of the last content uploaded
to each destination. A later upload of byte-identical content to the same
destination can then be skipped without a network round trip.
"""

from __future__ import annotations

import logging
from typing import Protocol

from lifesync.core.hashing import compute_content_hash

logger = logging.getLogger(__name__)


class WatermarkStore(Protocol):
    """Persistent destination -> digest map (LocalSyncState in production)."""

    def get_watermark(self, destination: str) -> str | None: ...

    def set_watermark(self, destination: str, content_hash: str) -> None: ...

    def clear_watermarks(self) -> int: ...


class ContentWatermark:
    """Content-hash watermark keyed by upload destination.

    Usage:
        watermark = ContentWatermark(local_state)
        if watermark.has_changed(path, data):
            await transport.upload_content(path, data)
            watermark.record_upload(path, data)
    """

    def __init__(self, store: WatermarkStore) -> None:
        self._store = store

    def has_changed(self, destination: str, data: bytes) -> bool:
        """Check if data differs from what was last uploaded to destination.

        A destination with no recorded upload always counts as changed.
        Never modifies the store.
        """
        stored = self._store.get_watermark(destination)
        if stored is None:
            return True
        return stored != compute_content_hash(data)

    def record_upload(self, destination: str, data: bytes) -> None:
        """Record data as uploaded to destination. Call only after success."""
        self._store.set_watermark(destination, compute_content_hash(data))

    def clear_all(self) -> None:
        """Forget every recorded upload so that everything is re-uploaded."""
        count = self._store.clear_watermarks()
        logger.info("Watermarks reset (%d destinations)", count)
