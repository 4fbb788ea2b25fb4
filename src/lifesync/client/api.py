"""HTTP client for the lifesync remote service.

This module provides:
- HTTPClient: Async HTTP transport with bearer-token injection
- Raw content upload/download (/raw/<path>)
- APIError hierarchy mapping HTTP status codes to exceptions

A 401 on any request is handed to TokenLifecycle.handle_unauthorized();
the request is retried once when the refresh succeeded.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from lifesync.client.auth import UnauthorizedAction
from lifesync.core.config import ClientConfig

if TYPE_CHECKING:
    from lifesync.client.auth import TokenLifecycle

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        """Check if a later retry may succeed."""
        return self.status_code is not None and self.status_code >= 500

    @property
    def user_message(self) -> str:
        """Message suitable for display to the user."""
        return str(self)


class BadRequestError(APIError):
    """Request rejected as malformed (400)."""


class AuthenticationError(APIError):
    """Authentication required or failed (401)."""

    @property
    def user_message(self) -> str:
        """Message suitable for display to the user."""
        return "Please sign in again."


class ForbiddenError(APIError):
    """Access denied (403)."""


class NotFoundError(APIError):
    """Resource not found (404)."""


class ConflictError(APIError):
    """Resource conflict (409)."""


class ServerError(APIError):
    """Server-side failure (5xx)."""


class UnexpectedStatusError(APIError):
    """Any other non-success status code."""


class NetworkError(APIError):
    """Request never got a response (connection error or timeout)."""

    def __init__(self, message: str, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out

    @property
    def is_retryable(self) -> bool:
        """Network failures are transient."""
        return True


def _parse_error_message(response: httpx.Response) -> str | None:
    """Extract an error message from an ``{"error"}`` or ``{"message"}`` body."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        message = data.get("error") or data.get("message")
        if isinstance(message, str):
            return message
    return None


class HTTPClient:
    """Async HTTP client for the lifesync service.

    Usage:
        async with HTTPClient(config, auth) as client:
            await client.upload_content("imports/2025/01/02/steps.json", data)
    """

    def __init__(
        self,
        config: ClientConfig,
        auth: TokenLifecycle | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            config: Client configuration (server URL, timeouts).
            auth: Token lifecycle supplying bearer tokens and 401 handling.
            client: Underlying httpx client (created if not provided).
        """
        self._config = config
        self._auth = auth
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.request_timeout,
            verify=config.verify_ssl,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.close()

    def _auth_headers(self) -> dict[str, str]:
        if self._auth is not None and self._auth.access_token:
            return {"Authorization": f"Bearer {self._auth.access_token}"}
        return {}

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        content: bytes | None = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        allow_retry_on_401: bool = True,
    ) -> httpx.Response:
        """Send a request, refreshing the token and retrying once on 401."""
        request_headers = {"Accept": "application/json", **self._auth_headers()}
        if headers:
            request_headers.update(headers)

        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                content=content,
                params=params,
                headers=request_headers,
                timeout=timeout if timeout is not None else self._config.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkError("Request timed out", timed_out=True) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Network error: {e}") from e

        if response.status_code == 401 and allow_retry_on_401 and self._auth is not None:
            action = await self._auth.handle_unauthorized()
            if action == UnauthorizedAction.RETRY:
                logger.debug("Retrying %s %s after token refresh", method, path)
                return await self._send(
                    method,
                    path,
                    json=json,
                    content=content,
                    params=params,
                    headers=headers,
                    timeout=timeout,
                    allow_retry_on_401=False,
                )
        return response

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        status = response.status_code
        if 200 <= status < 300:
            return response
        message = _parse_error_message(response)
        if status == 400:
            raise BadRequestError(message or "Bad request", status)
        if status == 401:
            raise AuthenticationError("Authentication required", status)
        if status == 403:
            raise ForbiddenError("Access denied", status)
        if status == 404:
            raise NotFoundError("Resource not found", status)
        if status == 409:
            raise ConflictError(message or "Resource conflict", status)
        if status >= 500:
            raise ServerError(message or f"Server error ({status})", status)
        raise UnexpectedStatusError(f"Unexpected response ({status})", status)

    # === Generic requests ===

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
    ) -> tuple[int, bytes]:
        """Send a request and return the raw status and body.

        Status codes are not turned into exceptions here.

        Raises:
            NetworkError: If no response was received.
        """
        response = await self._send(method, path, json=json)
        return response.status_code, response.content

    async def get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET a JSON resource.

        Raises:
            APIError: On any non-2xx status or network failure.
        """
        response = self._handle_response(await self._send("GET", path, params=params))
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Failed to parse response: {e}", response.status_code) from e

    async def post_json(self, path: str, body: Any = None) -> Any:
        """POST a JSON body and return the decoded JSON response (or None)."""
        response = self._handle_response(await self._send("POST", path, json=body))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Failed to parse response: {e}", response.status_code) from e

    # === Health ===

    async def health_check(self) -> bool:
        """Check if the server is reachable and healthy."""
        try:
            response = await self._client.get("/health", timeout=self._config.auth_timeout)
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    # === Raw content ===

    async def upload_content(self, destination: str, data: bytes) -> None:
        """Upload content to /raw/<destination> (PUT, overwrite).

        Args:
            destination: Upload path on the server.
            data: Content bytes.

        Raises:
            APIError: If the upload did not succeed.
        """
        self._handle_response(
            await self._send(
                "PUT",
                f"/raw/{destination.lstrip('/')}",
                content=data,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self._config.upload_timeout,
            )
        )

    async def get_raw_file(self, path: str) -> bytes:
        """Download content from /raw/<path>.

        Raises:
            NotFoundError: If the file does not exist.
        """
        response = self._handle_response(
            await self._send("GET", f"/raw/{path.lstrip('/')}")
        )
        return response.content
