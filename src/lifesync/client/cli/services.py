"""Wiring of the client components for CLI commands."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator
from dataclasses import dataclass

from lifesync.client.api import HTTPClient
from lifesync.client.auth import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TokenLifecycle
from lifesync.client.cli.config import get_state_db_path
from lifesync.client.keystore import KeyringSecretStore, SecretStore
from lifesync.client.state import LocalSyncState
from lifesync.client.sync import ContentWatermark, SyncOrchestrator, load_collectors
from lifesync.core.config import ClientConfig


@dataclass
class Services:
    """Client components sharing one configuration."""

    config: ClientConfig
    state: LocalSyncState
    auth: TokenLifecycle
    http: HTTPClient
    orchestrator: SyncOrchestrator


def create_secret_store() -> SecretStore:
    """Create the keyring-backed token store."""
    return KeyringSecretStore(known_keys=(ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY))


@contextlib.asynccontextmanager
async def open_services(config: ClientConfig) -> AsyncIterator[Services]:
    """Create every client component and close them on exit.

    Raises:
        KeyStoreError: If the keyring cannot be read.
    """
    state = LocalSyncState(get_state_db_path())
    try:
        auth = TokenLifecycle(config, create_secret_store())
    except Exception:
        state.close()
        raise
    http = HTTPClient(config, auth)
    orchestrator = SyncOrchestrator(
        auth,
        http,
        ContentWatermark(state),
        state,
        load_collectors(state),
        config,
    )
    try:
        yield Services(config, state, auth, http, orchestrator)
    finally:
        await http.close()
        await auth.close()
        state.close()
