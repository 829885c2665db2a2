# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_discovery

"""
DiscoveryCache component for caching discovery documents.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import timedelta

import anyio
import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_discovery.config import DEFAULT_HTTP_TIMEOUT, DiscoverySettings
from coreason_discovery.exceptions import AuthorityResolutionError
from coreason_discovery.fetcher import get_discovery_document
from coreason_discovery.models import DiscoveryDocumentRequest, DiscoveryDocumentResponse
from coreason_discovery.policy import DiscoveryPolicy
from coreason_discovery.transport import DEFAULT_MAX_RESPONSE_BYTES
from coreason_discovery.utils.logger import logger

AuthoritySource = str | Callable[[], str]
HttpClientSource = httpx.AsyncClient | Callable[[], httpx.AsyncClient]


class _PendingFetch:
    """
    A fetch shared by every caller of one cache generation.

    The underlying task is created on first use, so installing a new generation
    performs no I/O.
    """

    def __init__(self, factory: Callable[["_PendingFetch"], Awaitable[DiscoveryDocumentResponse]]) -> None:
        self._factory = factory
        self._task: asyncio.Task[DiscoveryDocumentResponse] | None = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> "asyncio.Task[DiscoveryDocumentResponse]":
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self) -> DiscoveryDocumentResponse:
        return await self._factory(self)


class DiscoveryCache:
    """
    Caches a discovery document behind a time-to-live.

    Concurrent callers share a single in-flight fetch. Error responses are not
    cached: the next call to `get()` after a failed fetch retries immediately.

    A cache instance belongs to the event loop it is first used on. The pending
    fetch and the reload time are read and swapped together without an
    intervening await, so the event loop keeps the pair consistent without a lock.

    Attributes:
        policy (DiscoveryPolicy): The policy applied to every fetched document.
        cache_duration (timedelta): Time-to-live of a successfully loaded document.
    """

    def __init__(
        self,
        authority: AuthoritySource,
        http_client: HttpClientSource | None = None,
        policy: DiscoveryPolicy | None = None,
        *,
        cache_duration: timedelta = timedelta(hours=24),
        settings: DiscoverySettings | None = None,
    ) -> None:
        """
        Initialize the DiscoveryCache.

        Args:
            authority: Issuer base address or discovery document URL, or a zero-argument callable
                returning one. A callable is evaluated once per fetch.
            http_client: An `httpx.AsyncClient` or a zero-argument factory returning one. Both are
                borrowed and never closed, so a factory must hand out long-lived clients it
                owns, not a new client per call. If not provided, a transient client is
                created and closed per fetch.
            policy: The discovery policy. Defaults to the settings policy, or a default policy.
            cache_duration: Time-to-live of a successfully loaded document. Defaults to 24 hours.
            settings: Settings for transient clients and response size limits.
        """
        if authority is None:
            raise AuthorityResolutionError("Authority must not be None")
        if isinstance(authority, str) and not authority.strip():
            raise AuthorityResolutionError("Authority must not be empty")

        self._authority = authority
        self._http_client = http_client
        if policy is not None:
            self.policy = policy
        elif settings is not None:
            self.policy = settings.to_policy()
        else:
            self.policy = DiscoveryPolicy()
        self.cache_duration = cache_duration

        self._http_timeout = settings.http_timeout if settings else DEFAULT_HTTP_TIMEOUT
        self._max_response_bytes = settings.max_response_bytes if settings else DEFAULT_MAX_RESPONSE_BYTES

        self._next_reload: float = 0.0
        self._pending = _PendingFetch(self._load)

    @classmethod
    def from_settings(
        cls,
        settings: DiscoverySettings,
        http_client: HttpClientSource | None = None,
    ) -> "DiscoveryCache":
        """
        Creates a cache from settings.

        Raises:
            AuthorityResolutionError: If the settings define no authority.
        """
        if not settings.authority:
            raise AuthorityResolutionError("COREASON_DISCOVERY_AUTHORITY is not configured")

        return cls(
            settings.authority,
            http_client,
            cache_duration=settings.cache_duration,
            settings=settings,
        )

    def refresh(self) -> None:
        """
        Marks the cached document as stale.

        The next call to `get()` starts a new fetch. A fetch already in flight is
        not cancelled; its callers still receive its result.
        """
        self._install_pending()

    def _install_pending(self) -> None:
        self._pending = _PendingFetch(self._load)
        self._next_reload = 0.0

    async def get(self, timeout: float | None = None) -> DiscoveryDocumentResponse:
        """
        Returns the discovery document, from the cache or from the discovery endpoint.

        Network, HTTP and policy failures are reported on the response (`is_error`).

        Args:
            timeout: Maximum time in seconds this caller waits. Expiry does not cancel
                the shared fetch for other callers.

        Returns:
            DiscoveryDocumentResponse: The discovery document response.

        Raises:
            TimeoutError: If `timeout` expires.
            MalformedUrlError: If the authority is not an absolute http(s) URL.
            AuthorityResolutionError: If the authority resolver returns an empty value.
        """
        if self._next_reload <= time.monotonic() and self._pending.done:
            self._install_pending()
        pending = self._pending

        task = pending.start()

        if timeout is None:
            return await asyncio.shield(task)

        with anyio.fail_after(timeout):
            return await asyncio.shield(task)

    async def _load(self, pending: _PendingFetch) -> DiscoveryDocumentResponse:
        try:
            response = await self._fetch()
        except Exception:
            self._complete(pending, success=False)
            raise

        self._complete(pending, success=not response.is_error)
        return response

    def _complete(self, pending: _PendingFetch, success: bool) -> None:
        # A fetch abandoned by refresh() must not overwrite the newer generation
        if pending is not self._pending:
            return
        if success:
            self._next_reload = time.monotonic() + self.cache_duration.total_seconds()
        else:
            self._install_pending()

    def _resolve_authority(self) -> str:
        if isinstance(self._authority, str):
            return self._authority

        authority = self._authority()
        if not authority or not authority.strip():
            raise AuthorityResolutionError("Authority resolver returned an empty value")
        return authority

    @asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is None:
            async with httpx.AsyncClient(timeout=self._http_timeout) as client:
                HTTPXClientInstrumentor().instrument_client(client)
                yield client
        elif isinstance(self._http_client, httpx.AsyncClient):
            yield self._http_client
        else:
            # Factory clients are owned by the factory
            yield self._http_client()

    async def _fetch(self) -> DiscoveryDocumentResponse:
        authority = self._resolve_authority()
        logger.debug(f"Refreshing discovery document for {authority}")

        request = DiscoveryDocumentRequest(address=authority, policy=self.policy)
        async with self._client_scope() as client:
            response = await get_discovery_document(client, request, max_bytes=self._max_response_bytes)

        if response.is_error:
            logger.warning(f"Discovery for {authority} failed ({response.error_type}): {response.error}")
        return response
