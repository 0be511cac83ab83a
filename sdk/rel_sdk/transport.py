"""
HTTP transport for the Rel SDK.

This module provides the low-level communication layer. It owns the base
address, timeout and bearer credential, and knows nothing about
transactions beyond the path they are posted to.

Network and HTTP failures are reported in the returned RawResponse rather
than raised, so callers can resolve every round trip into an Outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import SecretStr

from .config import Settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8010"
TRANSACTION_PATH = "/transaction"


@dataclass
class RawResponse:
    """Undecoded result of one HTTP round trip.

    Attributes:
        status_code: HTTP status, None when no response was received
        body: Decoded JSON body, None if empty or not JSON
        error: Failure description for network errors and non-2xx statuses
        url: Request URL
    """

    status_code: int | None
    body: Any = None
    error: str | None = None
    url: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


class HttpTransport:
    """Async HTTP client for the service.

    Connects lazily on first request; connect() may also be called
    explicitly, or the transport used as an async context manager.

    Example:
        >>> async with HttpTransport("http://127.0.0.1:8010") as transport:
        ...     raw = await transport.post_transaction(txn.to_wire())
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 60.0,
        access_token: str | SecretStr | None = None,
        default_headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Base URL every request path is resolved against
            timeout: Request timeout in seconds
            access_token: Bearer token sent in the Authorization header
            default_headers: Headers added to every request
            transport: Optional httpx transport (e.g. ASGI or mock) for testing
        """
        if isinstance(access_token, str):
            access_token = SecretStr(access_token)

        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._access_token = access_token
        self._default_headers = dict(default_headers or {})
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HttpTransport:
        return cls(
            settings.endpoint,
            timeout=settings.timeout,
            access_token=settings.access_token,
            default_headers=settings.default_headers,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def default_headers(self) -> dict[str, str]:
        return dict(self._default_headers)

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", **self._default_headers}
        if self._access_token is not None:
            headers["Authorization"] = f"Bearer {self._access_token.get_secret_value()}"
        return headers

    async def connect(self) -> None:
        """Open the underlying HTTP client."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=self._headers(),
            transport=self._transport,
        )
        logger.debug(f"Transport opened for {self._base_url}")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug(f"Transport closed for {self._base_url}")

    async def __aenter__(self) -> HttpTransport:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> RawResponse:
        """Send one request.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            json: JSON body
            params: Query parameters; None values are dropped

        Returns:
            RawResponse describing the response or the failure
        """
        await self.connect()
        if self._client is None:
            raise RuntimeError("Not connected. Call connect() first.")

        url = f"{self._base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            response = await self._client.request(method, path, json=json, params=query or None)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e!r}")
            return RawResponse(status_code=None, error=str(e) or type(e).__name__, url=url)

        body = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = None

        error = None
        if not response.is_success:
            error = f"HTTP {response.status_code} {response.reason_phrase}".strip()
            logger.warning(f"{method} {url} returned {response.status_code}")

        return RawResponse(
            status_code=response.status_code,
            body=body,
            error=error,
            url=str(response.request.url),
        )

    async def post_transaction(self, payload: dict[str, Any]) -> RawResponse:
        """POST a serialized transaction."""
        return await self.request("POST", TRANSACTION_PATH, json=payload)
