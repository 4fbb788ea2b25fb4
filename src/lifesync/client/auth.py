"""Authentication state and token lifecycle for lifesync.

This module provides:
- TokenLifecycle: Owns auth state, token storage and refresh
- AuthState / AuthStatus: Observable authentication state
- RefreshOutcome: Result of a refresh attempt (success / rejected / failed)
- UnauthorizedAction: What a caller should do after receiving a 401
- jwt_expiration: Decode the ``exp`` claim of a JWT access token

Refresh semantics:
    Refresh is single-flight. Concurrent callers (several 401s at once, a
    foreground resume racing a sync) share one in-flight refresh, so the
    refresh token, which the server rotates on use, is never spent twice.

    Only an explicit 401 from the refresh endpoint is treated as a rejection
    and wipes credentials. Network errors, timeouts and 5xx responses are
    transient and keep the stored tokens.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum, auto

import httpx

from lifesync.client.keystore import SecretStore
from lifesync.core.config import ClientConfig

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "lifesync.accessToken"
REFRESH_TOKEN_KEY = "lifesync.refreshToken"

DEFAULT_USERNAME = "User"
DEFAULT_TOKEN_MAX_AGE = 3600


class AuthStatus(Enum):
    """Authentication status."""

    UNKNOWN = auto()
    CHECKING = auto()
    AUTHENTICATED = auto()
    UNAUTHENTICATED = auto()


@dataclass(frozen=True)
class AuthState:
    """Current authentication state.

    Attributes:
        status: Authentication status.
        username: Signed-in username (only when AUTHENTICATED).
    """

    status: AuthStatus
    username: str | None = None

    @classmethod
    def authenticated(cls, username: str) -> AuthState:
        """Create an AUTHENTICATED state for username."""
        return cls(AuthStatus.AUTHENTICATED, username)

    @property
    def is_authenticated(self) -> bool:
        """Check if the state is AUTHENTICATED."""
        return self.status == AuthStatus.AUTHENTICATED


UNKNOWN = AuthState(AuthStatus.UNKNOWN)
CHECKING = AuthState(AuthStatus.CHECKING)
UNAUTHENTICATED = AuthState(AuthStatus.UNAUTHENTICATED)


class RefreshOutcome(Enum):
    """Outcome of a token refresh attempt.

    REJECTED means the server confirmed the refresh token is invalid (401).
    FAILED is transient (network, timeout, server error, malformed body).
    """

    SUCCESS = auto()
    REJECTED = auto()
    FAILED = auto()


class UnauthorizedAction(Enum):
    """Instruction returned by handle_unauthorized()."""

    RETRY = auto()  # Tokens refreshed, retry the request once
    GIVE_UP = auto()  # Session ended, user must sign in again
    GIVE_UP_KEEP_CREDENTIALS = auto()  # Transient, tokens kept for a later retry


class AuthEvent(Enum):
    """Events emitted to listeners."""

    TOKENS_CHANGED = auto()
    SIGNED_OUT = auto()


class ValidationStatus(Enum):
    """Result of validating an access token against the server."""

    VALID = auto()
    INVALID = auto()
    NO_OAUTH = auto()  # Server has no OAuth configured (404)
    CONNECTION_ERROR = auto()


@dataclass(frozen=True)
class TokenValidation:
    """Validation result with the username for VALID tokens."""

    status: ValidationStatus
    username: str | None = None


AuthListener = Callable[[AuthEvent], None]


def jwt_expiration(token: str) -> float | None:
    """Decode the expiry of a JWT without verifying its signature.

    Args:
        token: Encoded JWT ("header.payload.signature").

    Returns:
        Expiry as a Unix timestamp, or None if the token has no parsable exp.
    """
    parts = token.split(".")
    if len(parts) < 2:
        return None

    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (binascii.Error, ValueError):
        return None

    if not isinstance(claims, dict):
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, int | float):
        return None
    return float(exp)


class TokenLifecycle:
    """Owns the authentication state machine and the stored tokens.

    Tokens are loaded from the secret store at construction and written back
    synchronously on every change. A cleared token deletes its entry.

    Usage:
        auth = TokenLifecycle(config, KeyringSecretStore())
        await auth.check_auth()

        if auth.is_authenticated:
            print(f"Signed in as {auth.username}")

        # In an HTTP client after a 401
        if await auth.handle_unauthorized() is UnauthorizedAction.RETRY:
            ...  # retry once
    """

    def __init__(
        self,
        config: ClientConfig,
        secret_store: SecretStore,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the token lifecycle.

        Args:
            config: Client configuration (server URL, auth timeouts).
            secret_store: Credential store for the tokens.
            http_client: Client for auth calls (created if not provided).
            clock: Time source returning Unix timestamps.
        """
        self._config = config
        self._store = secret_store
        self._clock = clock
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.auth_timeout,
            verify=config.verify_ssl,
        )

        self._state = UNKNOWN
        self._access_token = secret_store.load(ACCESS_TOKEN_KEY)
        self._refresh_token = secret_store.load(REFRESH_TOKEN_KEY)

        self._refresh_in_flight: asyncio.Task[RefreshOutcome] | None = None
        self._background: set[asyncio.Task[RefreshOutcome]] = set()
        self._listeners: list[AuthListener] = []

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    # === State ===

    @property
    def state(self) -> AuthState:
        """Get the current auth state."""
        return self._state

    @property
    def is_authenticated(self) -> bool:
        """Check if the user is authenticated."""
        return self._state.is_authenticated

    @property
    def username(self) -> str | None:
        """Get the signed-in username."""
        return self._state.username

    @property
    def access_token(self) -> str | None:
        """Get the current access token (for bearer injection)."""
        return self._access_token

    @property
    def has_refresh_token(self) -> bool:
        """Check if a refresh token is stored."""
        return self._refresh_token is not None

    @property
    def refresh_in_flight(self) -> bool:
        """Check if a refresh is currently running."""
        return self._refresh_in_flight is not None

    def add_listener(self, listener: AuthListener) -> None:
        """Register a callback for token changes and sign-out."""
        self._listeners.append(listener)

    def _emit(self, event: AuthEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Auth listener failed for %s", event.name)

    def _set_state(self, state: AuthState) -> None:
        if state != self._state:
            logger.debug("Auth state: %s -> %s", self._state.status.name, state.status.name)
        self._state = state

    # === Token storage ===

    def _set_access_token(self, token: str | None) -> None:
        self._access_token = token
        self._persist(ACCESS_TOKEN_KEY, token)

    def _set_refresh_token(self, token: str | None) -> None:
        self._refresh_token = token
        self._persist(REFRESH_TOKEN_KEY, token)

    def _persist(self, key: str, value: str | None) -> None:
        if value:
            self._store.save(key, value)
        else:
            self._store.delete(key)

    # === Expiry ===

    @property
    def access_token_expiry(self) -> datetime | None:
        """Get the access token's expiry time (UTC)."""
        if self._access_token is None:
            return None
        exp = jwt_expiration(self._access_token)
        if exp is None:
            return None
        return datetime.fromtimestamp(exp, UTC)

    @property
    def access_token_max_age(self) -> int:
        """Seconds until the access token expires (defaults to 3600)."""
        if self._access_token is None:
            return DEFAULT_TOKEN_MAX_AGE
        exp = jwt_expiration(self._access_token)
        if exp is None:
            return DEFAULT_TOKEN_MAX_AGE
        return max(int(exp - self._clock()), 0)

    def is_token_expiring_soon(self, token: str) -> bool:
        """Check if token expires within the refresh horizon.

        A token without a parsable expiry is treated as expiring.
        """
        exp = jwt_expiration(token)
        if exp is None:
            return True
        return exp - self._clock() < self._config.refresh_horizon

    # === Auth check ===

    async def check_auth(self) -> AuthState:
        """Determine the auth state at launch.

        Returns:
            The resulting auth state.
        """
        self._set_state(CHECKING)

        if self._access_token is not None:
            result = await self._validate_token(self._access_token)
            if result.status == ValidationStatus.VALID:
                self._set_state(AuthState.authenticated(result.username or DEFAULT_USERNAME))
                return self._state
            if result.status == ValidationStatus.CONNECTION_ERROR:
                # Unreachable server: let the user fix the server URL
                logger.info("Cannot reach %s to validate token", self._config.server_url)
                self._set_state(UNAUTHENTICATED)
                return self._state
            if await self.refresh() == RefreshOutcome.SUCCESS:
                return self._state
            self._set_state(UNAUTHENTICATED)
            return self._state

        if self._refresh_token is not None and await self.refresh() == RefreshOutcome.SUCCESS:
            return self._state

        self._set_state(UNAUTHENTICATED)
        return self._state

    async def handle_oauth_completion(
        self,
        access_token: str,
        refresh_token: str | None,
    ) -> AuthState:
        """Store tokens from an interactive login and validate them.

        Args:
            access_token: Newly issued access token.
            refresh_token: Newly issued refresh token, if any.

        Returns:
            The resulting auth state.
        """
        self._set_access_token(access_token)
        self._set_refresh_token(refresh_token)

        result = await self._validate_token(access_token)
        if result.status == ValidationStatus.VALID:
            self._set_state(AuthState.authenticated(result.username or DEFAULT_USERNAME))
        else:
            # Just issued; don't bounce the user back to the login screen
            logger.warning("Fresh token failed validation (%s)", result.status.name)
            self._set_state(AuthState.authenticated(DEFAULT_USERNAME))
        self._emit(AuthEvent.TOKENS_CHANGED)
        return self._state

    # === Refresh ===

    async def refresh(self) -> RefreshOutcome:
        """Refresh the access token (single-flight).

        If a refresh is already running, wait for its outcome instead of
        starting another one.

        Returns:
            The refresh outcome shared by all concurrent callers.
        """
        existing = self._refresh_in_flight
        if existing is not None:
            return await asyncio.shield(existing)

        refresh_token = self._refresh_token
        if refresh_token is None:
            return RefreshOutcome.FAILED

        task = asyncio.ensure_future(self._perform_refresh(refresh_token))
        self._refresh_in_flight = task
        task.add_done_callback(self._clear_refresh_slot)
        return await asyncio.shield(task)

    def _clear_refresh_slot(self, task: asyncio.Task[RefreshOutcome]) -> None:
        if self._refresh_in_flight is task:
            self._refresh_in_flight = None

    async def _perform_refresh(self, refresh_token: str) -> RefreshOutcome:
        try:
            response = await self._client.post(
                "/api/oauth/refresh",
                json={"refresh_token": refresh_token},
                timeout=self._config.auth_timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Token refresh failed (transient): %s", e)
            return RefreshOutcome.FAILED

        if response.status_code == 401:
            logger.warning("Refresh token rejected by server")
            return RefreshOutcome.REJECTED

        if response.status_code != 200:
            logger.warning("Token refresh failed: HTTP %d", response.status_code)
            return RefreshOutcome.FAILED

        try:
            data = response.json()
        except ValueError:
            logger.warning("Token refresh returned a malformed body")
            return RefreshOutcome.FAILED
        if not isinstance(data, dict):
            logger.warning("Token refresh returned a malformed body")
            return RefreshOutcome.FAILED

        new_access = data.get("access_token")
        if isinstance(new_access, str) and new_access:
            self._set_access_token(new_access)
        new_refresh = data.get("refresh_token")
        if isinstance(new_refresh, str) and new_refresh:
            self._set_refresh_token(new_refresh)

        if self._access_token is None:
            return RefreshOutcome.FAILED

        result = await self._validate_token(self._access_token)
        if result.status == ValidationStatus.VALID:
            self._set_state(AuthState.authenticated(result.username or DEFAULT_USERNAME))
        else:
            logger.info("Refreshed token not validated (%s)", result.status.name)
            self._set_state(AuthState.authenticated(self._state.username or DEFAULT_USERNAME))

        logger.info("Access token refreshed")
        self._emit(AuthEvent.TOKENS_CHANGED)
        return RefreshOutcome.SUCCESS

    # === 401 handling ===

    async def handle_unauthorized(self) -> UnauthorizedAction:
        """React to a 401 received by any API caller.

        Returns:
            Whether the caller should retry its request.
        """
        outcome = await self.refresh()
        if outcome == RefreshOutcome.SUCCESS:
            return UnauthorizedAction.RETRY
        if outcome == RefreshOutcome.REJECTED:
            await self.logout()
            return UnauthorizedAction.GIVE_UP
        return UnauthorizedAction.GIVE_UP_KEEP_CREDENTIALS

    def handle_foreground(self) -> asyncio.Task[RefreshOutcome] | None:
        """Refresh proactively when the app comes to the foreground.

        Does not block: the refresh runs as a background task.

        Returns:
            The background refresh task, or None if no refresh was needed.
        """
        if not self.is_authenticated:
            return None
        token = self._access_token
        if token is None or not self.is_token_expiring_soon(token):
            return None

        logger.debug("Access token expiring soon, refreshing in background")
        task = asyncio.ensure_future(self.refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # === Logout ===

    async def logout(self) -> None:
        """Sign out: notify the server (best-effort) and wipe local credentials."""
        headers = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        try:
            await self._client.post(
                "/api/oauth/logout",
                headers=headers,
                timeout=self._config.logout_timeout,
            )
        except httpx.HTTPError as e:
            logger.debug("Logout request failed (ignored): %s", e)

        self._set_access_token(None)
        self._set_refresh_token(None)
        self._store.delete_all()
        self._set_state(UNAUTHENTICATED)
        logger.info("Signed out")
        self._emit(AuthEvent.SIGNED_OUT)

    # === Validation ===

    async def _validate_token(self, token: str) -> TokenValidation:
        try:
            response = await self._client.get(
                "/api/oauth/token",
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._config.auth_timeout,
            )
        except httpx.HTTPError as e:
            logger.debug("Token validation failed to connect: %s", e)
            return TokenValidation(ValidationStatus.CONNECTION_ERROR)

        if response.status_code == 404:
            return TokenValidation(ValidationStatus.NO_OAUTH)
        if response.status_code != 200:
            return TokenValidation(ValidationStatus.INVALID)

        try:
            data = response.json()
        except ValueError:
            return TokenValidation(ValidationStatus.INVALID)

        if isinstance(data, dict) and data.get("authenticated") is True:
            username = data.get("username")
            if not isinstance(username, str) or not username:
                username = DEFAULT_USERNAME
            return TokenValidation(ValidationStatus.VALID, username)
        return TokenValidation(ValidationStatus.INVALID)
