"""
test_fetcher.py — Tests for the cache-aware seismic feed client.

Covers:
    • Request shape (POST, month body, cache-busting parameter)
    • Freshness window, refresh-token identity, forced refetch
    • Retry policy (5xx and transport retried, 4xx / in-band errors not)
    • Stale-if-error data retention and the placeholder across identities
    • Late responses for superseded identities
    • Idle eviction, in-flight deduplication, reset

The upstream feed is an httpx.MockTransport; async code is driven with
asyncio.run.

Run with:
    pytest tests/test_fetcher.py -v
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx

from quakemap.app.core.cache import QueryCache
from quakemap.app.seismic.fetcher import SeismicFetcher
from quakemap.app.seismic.models import QueryStatus

ENDPOINT = "http://feed.test/seismic"


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FeedStub:
    """Replays queued responses (the last one repeats) and records requests."""

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses) or [_ok()]
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def bodies(self) -> List[Optional[Dict[str, Any]]]:
        return [json.loads(r.content) if r.content else None for r in self.requests]


def _payload(n: int = 2, month: str = "March 2024") -> Dict[str, Any]:
    return {
        "AllThisMonth": [
            {
                "datetime": "15 March 2024 - 02:30 PM",
                "magnitude": 3.0 + i,
                "depth": 10,
                "location": f"Event {i}",
                "longitude": 126.0,
                "latitude": 8.0,
                "month": month,
            }
            for i in range(n)
        ]
    }


def _ok(n: int = 2, month: str = "March 2024") -> httpx.Response:
    return httpx.Response(200, json=_payload(n, month))


def _make_fetcher(handler, clock: Optional[FakeClock] = None, retry_count: int = 2):
    clock = clock or FakeClock()
    delays: List[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    fetcher = SeismicFetcher(
        endpoint=ENDPOINT,
        cache=QueryCache(stale_seconds=300, gc_seconds=600, clock=clock),
        retry_count=retry_count,
        retry_delay_cap=30.0,
        transport=httpx.MockTransport(handler),
        clock=clock,
        sleep=fake_sleep,
    )
    return fetcher, delays


def _run(coro):
    return asyncio.run(coro)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Request shape
# ═══════════════════════════════════════════════════════════════════════════

class TestRequestShape:

    def test_current_month_has_no_body(self):
        feed = FeedStub()
        fetcher, _ = _make_fetcher(feed)

        result = _run(fetcher.query())

        assert result.status is QueryStatus.SUCCESS
        assert len(result.data["AllThisMonth"]) == 2
        request = feed.requests[0]
        assert request.method == "POST"
        assert str(request.url) == ENDPOINT
        assert feed.bodies() == [None]

    def test_pinned_month_sent_in_body(self):
        feed = FeedStub()
        fetcher, _ = _make_fetcher(feed)
        _run(fetcher.query("January 2024"))
        assert feed.bodies() == [{"month": "January 2024"}]

    def test_refresh_token_sent_as_cache_buster(self):
        feed = FeedStub()
        fetcher, _ = _make_fetcher(feed)
        _run(fetcher.query(None, 1710000000000))
        assert feed.requests[0].url.params["_"] == "1710000000000"


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Caching by identity
# ═══════════════════════════════════════════════════════════════════════════

class TestCaching:

    def test_fresh_result_served_from_cache(self):
        feed = FeedStub()
        fetcher, _ = _make_fetcher(feed)

        async def scenario():
            await fetcher.query()
            return await fetcher.query()

        result = _run(scenario())
        assert len(feed.requests) == 1
        assert result.status is QueryStatus.SUCCESS
        assert not result.is_stale

    def test_new_refresh_token_forces_fetch(self):
        feed = FeedStub()
        fetcher, _ = _make_fetcher(feed)

        async def scenario():
            await fetcher.query(None, 1)
            await fetcher.query(None, 2)

        _run(scenario())
        assert len(feed.requests) == 2

    def test_stale_result_refetched(self):
        feed = FeedStub(_ok(1), _ok(3))
        clock = FakeClock()
        fetcher, _ = _make_fetcher(feed, clock)

        async def scenario():
            await fetcher.query()
            clock.advance(301)
            assert fetcher.read().is_stale
            return await fetcher.query()

        result = _run(scenario())
        assert len(feed.requests) == 2
        assert len(result.data["AllThisMonth"]) == 3

    def test_refetch_ignores_freshness(self):
        feed = FeedStub()
        fetcher, _ = _make_fetcher(feed)

        async def scenario():
            await fetcher.query("March 2024")
            await fetcher.refetch()

        _run(scenario())
        assert len(feed.requests) == 2
        assert feed.bodies() == [{"month": "March 2024"}, {"month": "March 2024"}]

    def test_idle_entries_evicted(self):
        feed = FeedStub()
        clock = FakeClock()
        fetcher, _ = _make_fetcher(feed, clock)

        async def scenario():
            await fetcher.query("January 2024")
            clock.advance(601)
            await fetcher.query("February 2024")

        _run(scenario())
        assert "seismic:January 2024:0" not in fetcher.cache
        assert "seismic:February 2024:0" in fetcher.cache

    def test_concurrent_queries_share_one_request(self):
        feed = FeedStub()
        fetcher, _ = _make_fetcher(feed)

        async def scenario():
            return await asyncio.gather(fetcher.query(), fetcher.query())

        first, second = _run(scenario())
        assert len(feed.requests) == 1
        assert first.data == second.data

    def test_reset_drops_everything(self):
        feed = FeedStub()
        fetcher, _ = _make_fetcher(feed)

        async def scenario():
            await fetcher.query()
            fetcher.reset()
            return fetcher.read()

        result = _run(scenario())
        assert len(fetcher.cache) == 0
        assert result.status is QueryStatus.PENDING
        assert result.data is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Failures
# ═══════════════════════════════════════════════════════════════════════════

class TestFailures:

    def test_server_error_retried_then_succeeds(self):
        feed = FeedStub(httpx.Response(503), httpx.Response(502), _ok())
        fetcher, delays = _make_fetcher(feed, retry_count=3)

        result = _run(fetcher.query())

        assert result.status is QueryStatus.SUCCESS
        assert len(feed.requests) == 3
        assert delays == [1.0, 2.0]

    def test_server_error_exhausts_retries(self):
        feed = FeedStub(httpx.Response(500))
        fetcher, delays = _make_fetcher(feed, retry_count=2)

        result = _run(fetcher.query())

        assert result.status is QueryStatus.ERROR
        assert result.error == "HTTP error! status: 500"
        assert result.data is None
        assert len(feed.requests) == 3
        assert delays == [1.0, 2.0]

    def test_client_error_not_retried(self):
        feed = FeedStub(httpx.Response(404))
        fetcher, delays = _make_fetcher(feed)

        result = _run(fetcher.query())

        assert result.error == "HTTP error! status: 404"
        assert len(feed.requests) == 1
        assert delays == []

    def test_in_band_error_not_retried(self):
        feed = FeedStub(httpx.Response(200, json={"error": "Max retries exceeded with url: /"}))
        fetcher, _ = _make_fetcher(feed)

        result = _run(fetcher.query())

        assert result.status is QueryStatus.ERROR
        assert "Max retries exceeded" in result.error
        assert len(feed.requests) == 1

    def test_transport_error_message_kept(self):
        feed = FeedStub(httpx.ConnectError("Connection refused"))
        fetcher, _ = _make_fetcher(feed, retry_count=1)

        result = _run(fetcher.query())

        assert result.status is QueryStatus.ERROR
        assert result.error == "Connection refused"
        assert len(feed.requests) == 2

    def test_unexpected_exception_recorded_as_error(self):
        feed = FeedStub(RuntimeError("decoder exploded"))
        fetcher, delays = _make_fetcher(feed)

        result = _run(fetcher.query())

        assert result.status is QueryStatus.ERROR
        assert result.error == "decoder exploded"
        assert len(feed.requests) == 1
        assert delays == []

    def test_malformed_endpoint_settles_scheduled_fetch(self):
        fetcher = SeismicFetcher(
            endpoint="http://[::1/seismic",
            cache=QueryCache(),
            retry_count=0,
            transport=httpx.MockTransport(FeedStub()),
        )

        async def scenario():
            pending = fetcher.start()
            await asyncio.gather(*list(fetcher._inflight.values()))
            return pending, fetcher.read(), await fetcher.query()

        pending, settled, queried = _run(scenario())
        assert pending.is_pending
        assert settled.status is QueryStatus.ERROR
        assert settled.error
        assert queried.status is QueryStatus.ERROR
        assert not fetcher._inflight

    def test_invalid_json_is_error(self):
        feed = FeedStub(httpx.Response(200, content=b"<html>oops</html>"))
        fetcher, _ = _make_fetcher(feed)
        result = _run(fetcher.query())
        assert result.error == "Invalid JSON in seismic feed response"

    def test_stale_data_kept_on_error(self):
        feed = FeedStub(_ok(4), httpx.Response(500))
        clock = FakeClock()
        fetcher, _ = _make_fetcher(feed, clock, retry_count=0)

        async def scenario():
            await fetcher.query()
            clock.advance(301)
            return await fetcher.query()

        result = _run(scenario())
        assert result.status is QueryStatus.ERROR
        assert len(result.data["AllThisMonth"]) == 4
        assert not result.is_placeholder

    def test_errored_slot_refetched_on_next_query(self):
        feed = FeedStub(httpx.Response(500), _ok())
        fetcher, _ = _make_fetcher(feed, retry_count=0)

        async def scenario():
            await fetcher.query()
            return await fetcher.query()

        result = _run(scenario())
        assert result.status is QueryStatus.SUCCESS
        assert result.error is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Identity changes
# ═══════════════════════════════════════════════════════════════════════════

class TestIdentityChanges:

    def test_previous_data_shown_while_new_month_loads(self):
        gate_holder: Dict[str, asyncio.Event] = {}

        async def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content) if request.content else {}
            if body.get("month") == "February 2024":
                await gate_holder["gate"].wait()
                return _ok(5, "February 2024")
            return _ok(2, "January 2024")

        fetcher, _ = _make_fetcher(handler)

        async def scenario():
            gate_holder["gate"] = asyncio.Event()
            await fetcher.query("January 2024")
            pending = fetcher.start("February 2024")
            gate_holder["gate"].set()
            settled = await fetcher.query("February 2024")
            return pending, settled

        pending, settled = _run(scenario())
        assert pending.is_pending
        assert pending.is_placeholder
        assert len(pending.data["AllThisMonth"]) == 2
        assert not settled.is_pending
        assert len(settled.data["AllThisMonth"]) == 5

    def test_late_response_does_not_replace_current(self):
        gate_holder: Dict[str, asyncio.Event] = {}

        async def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content) if request.content else {}
            if body.get("month") == "January 2024":
                await gate_holder["gate"].wait()
                return _ok(9, "January 2024")
            return _ok(1, "February 2024")

        fetcher, _ = _make_fetcher(handler)

        async def scenario():
            gate_holder["gate"] = asyncio.Event()
            fetcher.start("January 2024")
            await asyncio.sleep(0)
            current = await fetcher.query("February 2024")
            gate_holder["gate"].set()
            await asyncio.gather(*list(fetcher._inflight.values()))
            return current, fetcher.read("February 2024")

        current, after = _run(scenario())
        assert after.data == current.data
        assert after.data["AllThisMonth"][0]["month"] == "February 2024"
        january = fetcher.cache.peek("seismic:January 2024:0")
        assert len(january.data["AllThisMonth"]) == 9

    def test_first_load_is_pending_without_data(self):
        fetcher, _ = _make_fetcher(FeedStub())

        async def scenario():
            return fetcher.start()

        result = _run(scenario())
        assert result.is_pending
        assert result.data is None
        assert result.error is None
