"""Local persistent state for the sync client.

This module provides:
- LocalSyncState: SQLite-based storage for everything sync must remember

Stored here:
    - last cycle timestamp (throttling)
    - per-destination content digests (upload watermark)
    - fully completed "YYYY-MM" months (full-history resume)
    - collector anchors and user source toggles (key/value)

Tokens are NOT stored here; they live in the OS keyring.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from pathlib import Path

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "sync.last_sync_at"
ANCHOR_PREFIX = "sync.anchor."
SOURCE_PREFIX = "collect.source."


class LocalSyncState:
    """SQLite-based local state for the sync client."""

    def __init__(self, db_path: Path) -> None:
        """Initialize local state database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrency
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            -- Key-value sync state
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            -- Last successfully uploaded content hash per destination
            CREATE TABLE IF NOT EXISTS watermarks (
                destination TEXT PRIMARY KEY,
                content_hash TEXT NOT NULL,
                recorded_at REAL NOT NULL
            );

            -- Months fully uploaded by a full-history sync
            CREATE TABLE IF NOT EXISTS completed_months (
                month_key TEXT PRIMARY KEY,
                completed_at REAL NOT NULL
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === Key-value state ===

    def get_state(self, key: str) -> str | None:
        """Get a sync state value."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a sync state value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def delete_state(self, key: str) -> None:
        """Delete a sync state value."""
        with self._lock:
            self._conn.execute("DELETE FROM sync_state WHERE key = ?", (key,))

    def get_last_sync_at(self) -> float | None:
        """Get timestamp of the last completed sync cycle."""
        value = self.get_state(LAST_SYNC_KEY)
        return float(value) if value else None

    def set_last_sync_at(self, timestamp: float) -> None:
        """Set timestamp of the last completed sync cycle."""
        self.set_state(LAST_SYNC_KEY, str(timestamp))

    # === Collector anchors ===

    def get_anchor(self, collector_id: str) -> str | None:
        """Get the serialized anchor of a collector."""
        return self.get_state(ANCHOR_PREFIX + collector_id)

    def set_anchor(self, collector_id: str, value: str) -> None:
        """Store the serialized anchor of a collector."""
        self.set_state(ANCHOR_PREFIX + collector_id, value)

    # === Source toggles ===

    def is_source_enabled(self, source_id: str) -> bool:
        """Check if the user enabled a data source toggle."""
        return self.get_state(SOURCE_PREFIX + source_id) == "1"

    def set_source_enabled(self, source_id: str, enabled: bool) -> None:
        """Enable or disable a data source toggle."""
        self.set_state(SOURCE_PREFIX + source_id, "1" if enabled else "0")

    # === Watermarks ===

    def get_watermark(self, destination: str) -> str | None:
        """Get the content hash last uploaded to destination."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT content_hash FROM watermarks WHERE destination = ?",
                (destination,),
            )
            row = cursor.fetchone()
        return row["content_hash"] if row else None

    def set_watermark(self, destination: str, content_hash: str) -> None:
        """Record the content hash uploaded to destination."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO watermarks (destination, content_hash, recorded_at)
                VALUES (?, ?, ?)
                """,
                (destination, content_hash, time.time()),
            )

    def clear_watermarks(self) -> int:
        """Delete every watermark.

        Returns:
            Number of watermarks deleted.
        """
        with self._lock:
            cursor = self._conn.execute("DELETE FROM watermarks")
        return cursor.rowcount

    def count_watermarks(self) -> int:
        """Count stored watermarks."""
        with self._lock:
            cursor = self._conn.execute("SELECT COUNT(*) AS n FROM watermarks")
            row = cursor.fetchone()
        return int(row["n"])

    # === Full-history progress ===

    def get_completed_months(self) -> set[str]:
        """Get the set of fully completed "YYYY-MM" month keys."""
        with self._lock:
            cursor = self._conn.execute("SELECT month_key FROM completed_months")
            rows = cursor.fetchall()
        return {row["month_key"] for row in rows}

    def add_completed_month(self, month_key: str) -> None:
        """Persist a month as fully completed."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO completed_months (month_key, completed_at) VALUES (?, ?)",
                (month_key, time.time()),
            )

    def clear_completed_months(self) -> None:
        """Forget all completed months."""
        with self._lock:
            self._conn.execute("DELETE FROM completed_months")
        logger.debug("Cleared completed months")
