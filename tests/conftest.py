"""Shared pytest fixtures for lifesync tests."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from lifesync.client.state import LocalSyncState
from lifesync.core.config import ClientConfig

SERVER_URL = "http://test"


class MemorySecretStore:
    """In-memory SecretStore recording what was deleted."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})
        self.deleted: list[str] = []
        self.wiped = False

    def load(self, key: str) -> str | None:
        return self.data.get(key)

    def save(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.data.pop(key, None)

    def delete_all(self) -> None:
        self.wiped = True
        self.data.clear()


def encode_jwt(claims: dict[str, object]) -> str:
    """Build an unsigned JWT carrying claims."""

    def _b64(data: dict[str, object]) -> str:
        raw = json.dumps(data).encode()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()

    return f"{_b64({'alg': 'HS256', 'typ': 'JWT'})}.{_b64(claims)}.signature"


@pytest.fixture
def config() -> ClientConfig:
    """Client configuration pointing at the mocked server."""
    return ClientConfig(server_url=SERVER_URL)


@pytest.fixture
def secret_store() -> MemorySecretStore:
    """Empty in-memory secret store."""
    return MemorySecretStore()


@pytest.fixture
def make_jwt() -> Callable[[dict[str, object]], str]:
    """Factory for unsigned JWTs."""
    return encode_jwt


@pytest.fixture
def local_state(tmp_path: Path) -> Generator[LocalSyncState, None, None]:
    """SQLite local state in a temporary directory."""
    state = LocalSyncState(tmp_path / "state.db")
    yield state
    state.close()
