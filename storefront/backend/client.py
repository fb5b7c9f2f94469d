"""
HTTP client for the hosted backend-as-a-service.

One pooled ``httpx.AsyncClient`` serves the auth API (``client.auth``) and
the REST data layer (``client.table(name)``).
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

import httpx

from shared.config.logging import get_logger
from shared.config.settings import Settings
from storefront.backend.auth import AuthClient
from storefront.backend.storage import LocalStorage, MemoryStorage
from storefront.backend.tables import TableClient
from storefront.backend.types import BackendError, BackendResult

logger = get_logger(__name__)


class BackendClient:
    """
    Client for the hosted auth/data service.

    The HTTP client is created lazily inside the running event loop and
    must be closed with ``close()`` on shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        storage: LocalStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            settings: Backend URL, key and timeouts.
            storage: Client-local storage for the persisted session.
            transport: Custom httpx transport (tests pass an ``httpx.MockTransport``).
            clock: Wall clock in epoch seconds, used for session expiry.
        """
        self.base_url = settings.backend_url.rstrip("/")
        self._anon_key = settings.backend_anon_key
        self._timeout = settings.http_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock: asyncio.Lock | None = None

        self.auth = AuthClient(
            self,
            storage if storage is not None else MemoryStorage(),
            settings.session_storage_key,
            clock=clock,
        )

    def _get_lock(self) -> asyncio.Lock:
        if self._client_lock is None:
            self._client_lock = asyncio.Lock()
        return self._client_lock

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is not None and not self._client.is_closed:
            return self._client

        async with self._get_lock():
            if self._client is None or self._client.is_closed:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self._timeout,
                    transport=self._transport,
                    headers={"apikey": self._anon_key},
                    limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client. Call on application shutdown."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def table(self, name: str) -> TableClient:
        return TableClient(self, name)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        access_token: str | None = None,
        authenticated: bool = False,
    ) -> BackendResult[Any]:
        """
        Perform one request and fold the outcome into a ``BackendResult``.

        Args:
            access_token: Bearer token to send. When omitted and
                ``authenticated`` is set, the held session's token is used
                (falling back to the anon key).
        """
        token = access_token
        if token is None and authenticated:
            token = self.auth.current_access_token()

        request_headers = {"Authorization": f"Bearer {token or self._anon_key}"}
        if headers:
            request_headers.update(headers)

        try:
            client = await self._get_client()
            response = await client.request(
                method,
                path,
                params=params,
                json=json,
                headers=request_headers,
            )
        except httpx.HTTPError as e:
            logger.warning("Backend request failed", method=method, path=path, error=str(e))
            return BackendResult(error=BackendError(f"Network error: {e}", status=0))

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text

        if response.is_success:
            return BackendResult(data=body)

        error = BackendError.from_response_body(response.status_code, body)
        logger.debug(
            "Backend returned error",
            method=method,
            path=path,
            status=response.status_code,
            error=error.message,
        )
        return BackendResult(error=error)
