"""
Seismic data fetcher.

═══════════════════════════════════════════════════════════════════════════
QUERY IDENTITY & CACHING
═══════════════════════════════════════════════════════════════════════════

Every fetch is keyed by QueryIdentity(month, refresh_token):

    month          None → "current month" (server default), or "March 2024"
    refresh_token  bumped on manual refresh; a new token is a new cache slot

Results live in a QueryCache slot per identity:

    fresh   (< SEISMIC_STALE_SECONDS old)  served without touching the network
    stale   served, and re-fetched by the next query()
    idle    (> SEISMIC_GC_SECONDS unread)  evicted on the next cache access

A response only ever writes into the slot of the identity that requested
it. If the user switches month while an older request is still in flight,
the late response lands in the old slot and never replaces what is being
displayed for the new identity.

While the current identity has no result yet, the snapshot carries the
last successfully displayed payload as placeholder data, so the map keeps
its points until the new month arrives (or fails).

═══════════════════════════════════════════════════════════════════════════
TRANSPORT
═══════════════════════════════════════════════════════════════════════════

    POST <SEISMIC_API_URL>seismic[?_=<refresh_token>]
    body {"month": "March 2024"}      pinned month
    no body                           current month

Response: {"AllThisMonth": [...]} or {"error": "..."}.

Failures never escape query(); they are recorded on the cache slot and
reported through QueryResult.error:

    SeismicTransportError   connect/read failure, timeout   (retried)
    SeismicServerError      5xx                             (retried)
    SeismicServerError      4xx, "error" in payload         (not retried)
    anything else           e.g. httpx.InvalidURL           (not retried)

Retries back off as min(1s × 2^attempt, SEISMIC_RETRY_DELAY_CAP).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from quakemap.app.core.cache import EntryStatus, QueryCache
from quakemap.app.core.config import settings
from quakemap.app.core.errors import (
    SeismicFeedError,
    SeismicServerError,
    SeismicTransportError,
)
from quakemap.app.seismic.models import QueryIdentity, QueryResult, QueryStatus
from quakemap.app.seismic.transformer import extract_records

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY = 1.0  # seconds


class SeismicFetcher:
    """
    Cache-aware client for the seismic feed.

    Usage:
        fetcher = SeismicFetcher()

        result = await fetcher.query(month=None, refresh_token=0)
        if result.error:
            ...
        features = to_feature_collection(result.data)

        await fetcher.close()
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        cache: Optional[QueryCache] = None,
        timeout: Optional[float] = None,
        retry_count: Optional[int] = None,
        retry_delay_cap: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.endpoint = endpoint or settings.seismic_endpoint
        self.cache = cache or QueryCache(
            stale_seconds=settings.SEISMIC_STALE_SECONDS,
            gc_seconds=settings.SEISMIC_GC_SECONDS,
            clock=clock,
        )
        self.timeout = timeout if timeout is not None else settings.SEISMIC_FETCH_TIMEOUT
        self.retry_count = retry_count if retry_count is not None else settings.SEISMIC_RETRY_COUNT
        self.retry_delay_cap = (
            retry_delay_cap if retry_delay_cap is not None else settings.SEISMIC_RETRY_DELAY_CAP
        )
        self._transport = transport
        self._sleep = sleep
        self._http_client: Optional[httpx.AsyncClient] = None
        self._inflight: Dict[str, asyncio.Task] = {}
        self._current: Optional[QueryIdentity] = None
        self._placeholder: Optional[Dict[str, Any]] = None
        self.request_count = 0

    # ── HTTP client ──

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    # ── Network ──

    async def _request(self, identity: QueryIdentity) -> Dict[str, Any]:
        """One POST to the feed. Raises SeismicFeedError on any failure."""
        params = {"_": str(identity.refresh_token)} if identity.refresh_token else None
        body = {"month": identity.month} if identity.month else None

        client = await self._get_client()
        self.request_count += 1
        try:
            response = await client.post(self.endpoint, params=params, json=body)
        except httpx.TimeoutException as e:
            raise SeismicTransportError(str(e) or "Request to seismic feed timed out") from e
        except httpx.RequestError as e:
            raise SeismicTransportError(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise SeismicServerError(response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise SeismicServerError(
                response.status_code, "Invalid JSON in seismic feed response",
            ) from e

        if isinstance(payload, dict) and payload.get("error"):
            raise SeismicServerError(response.status_code, str(payload["error"]))
        return payload

    def _retry_delay(self, attempt: int) -> float:
        return min(RETRY_BASE_DELAY * (2 ** attempt), self.retry_delay_cap)

    async def fetch(self, identity: QueryIdentity) -> Dict[str, Any]:
        """Fetch the payload for `identity`, retrying transient failures."""
        attempt = 0
        while True:
            try:
                return await self._request(identity)
            except SeismicServerError as e:
                if not e.retryable or attempt >= self.retry_count:
                    raise
                last_error: SeismicFeedError = e
            except SeismicTransportError as e:
                if attempt >= self.retry_count:
                    raise
                last_error = e

            wait_time = self._retry_delay(attempt)
            logger.warning(
                "Seismic fetch failed: %s, retrying in %.1f seconds (attempt %d/%d)",
                last_error.message, wait_time, attempt + 1, self.retry_count,
            )
            await self._sleep(wait_time)
            attempt += 1

    async def _run(self, identity: QueryIdentity) -> None:
        key = identity.cache_key
        start = time.perf_counter()
        try:
            payload = await self.fetch(identity)
        except SeismicFeedError as e:
            self.cache.set_error(key, e.message)
            logger.error(
                "Seismic fetch failed for %s: %s", key, e.message,
                extra={"cache_key": key, "month": identity.month},
            )
        except Exception as e:
            self.cache.set_error(key, str(e) or type(e).__name__)
            logger.exception(
                "Unexpected error fetching %s", key,
                extra={"cache_key": key, "month": identity.month},
            )
        else:
            self.cache.set_success(key, payload)
            if identity == self._current:
                self._placeholder = payload
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "Fetched %d seismic events for %s (%.0fms)",
                len(extract_records(payload)), identity.month or "current month", duration_ms,
                extra={
                    "cache_key": key,
                    "month": identity.month,
                    "refresh_token": identity.refresh_token,
                    "feature_count": len(extract_records(payload)),
                    "duration_ms": duration_ms,
                },
            )
        finally:
            self._inflight.pop(key, None)

    # ── Query state ──

    def _observe(self, identity: QueryIdentity) -> None:
        """Make `identity` the displayed one and run eviction."""
        self._current = identity
        keep = [identity.cache_key, *self._inflight]
        self.cache.collect_garbage(keep=keep)
        self.cache.get(identity.cache_key)

    def _is_fetching(self, key: str) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    def _snapshot(self, identity: QueryIdentity) -> QueryResult:
        key = identity.cache_key
        entry = self.cache.peek(key)
        fetching = self._is_fetching(key)

        if entry is None:
            return QueryResult(
                identity=identity,
                status=QueryStatus.PENDING,
                data=self._placeholder,
                is_fetching=fetching,
                is_placeholder=self._placeholder is not None,
            )

        if entry.status is EntryStatus.SUCCESS:
            if identity == self._current:
                self._placeholder = entry.data
            return QueryResult(
                identity=identity,
                status=QueryStatus.SUCCESS,
                data=entry.data,
                is_fetching=fetching,
                is_stale=not self.cache.is_fresh(entry),
                updated_at=entry.updated_at,
            )

        # Error: keep showing whatever was last shown
        data = entry.data if entry.data is not None else self._placeholder
        return QueryResult(
            identity=identity,
            status=QueryStatus.ERROR,
            data=data,
            error=entry.error,
            is_fetching=fetching,
            is_placeholder=entry.data is None and data is not None,
            updated_at=entry.updated_at,
        )

    def _needs_fetch(self, identity: QueryIdentity) -> bool:
        entry = self.cache.peek(identity.cache_key)
        return entry is None or not self.cache.is_fresh(entry)

    def _ensure_task(self, identity: QueryIdentity) -> asyncio.Task:
        key = identity.cache_key
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._run(identity))
            self._inflight[key] = task
        return task

    def read(self, month: Optional[str] = None, refresh_token: Any = 0) -> QueryResult:
        """Current snapshot for the identity, without starting a fetch."""
        identity = QueryIdentity(month, refresh_token)
        self._observe(identity)
        return self._snapshot(identity)

    def start(self, month: Optional[str] = None, refresh_token: Any = 0) -> QueryResult:
        """Schedule a fetch if the identity needs one; return the snapshot immediately."""
        identity = QueryIdentity(month, refresh_token)
        self._observe(identity)
        if self._needs_fetch(identity):
            self._ensure_task(identity)
        return self._snapshot(identity)

    async def query(
        self,
        month: Optional[str] = None,
        refresh_token: Any = 0,
        force: bool = False,
    ) -> QueryResult:
        """
        Settled result for the identity.

        Fresh slots are served from the cache. Missing, stale or errored
        slots are fetched (joining a request already in flight). With
        force=True the network is hit even if the slot is fresh.
        """
        identity = QueryIdentity(month, refresh_token)
        self._observe(identity)
        if force or self._needs_fetch(identity):
            await self._ensure_task(identity)
        return self._snapshot(identity)

    async def refetch(self) -> QueryResult:
        """Re-fetch the displayed identity regardless of freshness."""
        identity = self._current or QueryIdentity()
        return await self.query(identity.month, identity.refresh_token, force=True)

    @property
    def current(self) -> Optional[QueryIdentity]:
        return self._current

    def reset(self) -> None:
        """Forget every cached result and the placeholder (full reload)."""
        dropped = self.cache.clear()
        self._placeholder = None
        logger.info("Seismic cache reset (%d entries dropped)", dropped)

    def stats(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "requests": self.request_count,
            "in_flight": sum(1 for key in self._inflight if self._is_fetching(key)),
            "current": self._current.cache_key if self._current else None,
            "cache": self.cache.stats(),
        }
