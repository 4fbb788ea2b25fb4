"""Shared configuration classes for lifesync.

This module defines the configuration used by the auth, transport and sync
components.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ClientConfig:
    """Configuration for talking to the remote service and pacing sync.

    Used by both TokenLifecycle and HTTPClient so that auth calls and data
    calls hit the same server with consistent settings.

    Attributes:
        server_url: Base URL of the service (e.g., "https://life.example.com").
        auth_timeout: Timeout for validate/refresh calls in seconds.
        logout_timeout: Timeout for the best-effort logout call in seconds.
        request_timeout: Timeout for regular API requests in seconds.
        upload_timeout: Timeout for bulk content uploads in seconds.
        throttle_interval: Minimum seconds between two unforced sync cycles.
        refresh_horizon: Refresh proactively when the access token expires
            within this many seconds.
        background_interval: Delay before the next background wake in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    auth_timeout: float = 10.0
    logout_timeout: float = 5.0
    request_timeout: float = 30.0
    upload_timeout: float = 60.0
    throttle_interval: float = 300.0
    refresh_horizon: float = 120.0
    background_interval: float = 4 * 3600.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")
