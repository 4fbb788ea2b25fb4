"""Secure credential storage for lifesync.

This module provides:
- SecretStore: Protocol for the credential store used by TokenLifecycle
- KeyringSecretStore: OS keyring backend (Keychain, Secret Service, Credential Locker)

Tokens never go to the plain JSON config; they live in the OS keyring.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Protocol

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "lifesync.auth"


class KeyStoreError(Exception):
    """Exception raised when the credential store cannot be used."""


class SecretStore(Protocol):
    """Credential store used for access/refresh tokens."""

    def load(self, key: str) -> str | None:
        """Return the stored value for key, or None."""
        ...

    def save(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        ...

    def delete(self, key: str) -> None:
        """Delete the entry for key. Missing entries are ignored."""
        ...

    def delete_all(self) -> None:
        """Delete every entry this store knows about."""
        ...


class KeyringSecretStore:
    """Secret store backed by the OS keyring.

    The keyring API cannot enumerate entries, so the store remembers the keys
    it has touched in this process and delete_all() clears those plus any
    ``known_keys`` given at construction.
    """

    def __init__(
        self,
        service: str = KEYRING_SERVICE,
        known_keys: tuple[str, ...] = (),
    ) -> None:
        """Initialize the store.

        Args:
            service: Keyring service name all entries are stored under.
            known_keys: Keys to wipe on delete_all() even if not touched yet.
        """
        self._service = service
        self._keys: set[str] = set(known_keys)

    @property
    def service(self) -> str:
        """Get the keyring service name."""
        return self._service

    def load(self, key: str) -> str | None:
        """Load a secret from the keyring.

        Raises:
            KeyStoreError: If the keyring backend is unusable.
        """
        self._keys.add(key)
        try:
            return keyring.get_password(self._service, key)
        except KeyringError as e:
            raise KeyStoreError(f"Cannot read '{key}' from keyring: {e}") from e

    def save(self, key: str, value: str) -> None:
        """Save a secret to the keyring.

        Raises:
            KeyStoreError: If the keyring backend is unusable.
        """
        self._keys.add(key)
        try:
            keyring.set_password(self._service, key, value)
        except KeyringError as e:
            raise KeyStoreError(f"Cannot write '{key}' to keyring: {e}") from e

    def delete(self, key: str) -> None:
        """Delete a secret; a missing entry is not an error."""
        with contextlib.suppress(PasswordDeleteError):
            keyring.delete_password(self._service, key)
        logger.debug("Deleted keyring entry %s/%s", self._service, key)

    def delete_all(self) -> None:
        """Delete every known secret of this service."""
        for key in sorted(self._keys):
            self.delete(key)
