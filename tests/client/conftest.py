"""Fixtures for the sync tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from lifesync.client.state import LocalSyncState
from lifesync.client.sync import ContentWatermark, DataCollector, SyncOrchestrator
from lifesync.core.config import ClientConfig
from tests.client.fakes import FakeAuth, FakeClock, FakeTransport


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_orchestrator(
    auth: FakeAuth,
    transport: FakeTransport,
    local_state: LocalSyncState,
    config: ClientConfig,
    clock: FakeClock,
) -> Callable[..., SyncOrchestrator]:
    """Factory for orchestrators wired to the fakes and a real LocalSyncState."""

    def _make(*collectors: DataCollector) -> SyncOrchestrator:
        return SyncOrchestrator(
            auth=auth,
            transport=transport,
            watermark=ContentWatermark(local_state),
            store=local_state,
            collectors=collectors,
            config=config,
            clock=clock,
        )

    return _make
