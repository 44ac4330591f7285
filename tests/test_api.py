"""
test_api.py — HTTP surface of the dashboard backend.

The process-wide dashboard is swapped for one wired to an
httpx.MockTransport feed before the app starts.

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

from datetime import date
from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient

from quakemap.app.api.v1.seismic import reset_controller
from quakemap.app.core.cache import QueryCache
from quakemap.app.dashboard.controller import DashboardController
from quakemap.app.dashboard.folium_engine import FoliumMapEngine
from quakemap.app.dashboard.map_view import MapView
from quakemap.app.dashboard.month_selector import MonthSelector
from quakemap.app.main import app
from quakemap.app.seismic.fetcher import SeismicFetcher

TODAY = date(2024, 3, 15)


class Feed:
    def __init__(self):
        self.status = 200
        self.error_text = ""
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error_text:
            return httpx.Response(200, json={"error": self.error_text})
        if self.status != 200:
            return httpx.Response(self.status)
        return httpx.Response(200, json={"AllThisMonth": [
            {
                "datetime": "15 March 2024 - 02:30 PM",
                "magnitude": 3.0 + i * 0.5,
                "depth": 5 + i,
                "location": f"Event {i}",
                "longitude": 125.0 + i * 0.1,
                "latitude": 9.0,
                "month": "March 2024",
            }
            for i in range(6)
        ]})


@pytest.fixture
def feed() -> Feed:
    return Feed()


@pytest.fixture
def client(feed):
    async def no_sleep(seconds: float) -> None:
        return None

    controller = DashboardController(
        fetcher=SeismicFetcher(
            endpoint="http://feed.test/seismic",
            cache=QueryCache(),
            retry_count=0,
            transport=httpx.MockTransport(feed),
            sleep=no_sleep,
        ),
        map_view=MapView(FoliumMapEngine),
        selector=MonthSelector(min_year=2018, disable_future=True, today=lambda: TODAY),
    )
    reset_controller(controller)
    with TestClient(app) as test_client:
        yield test_client
    reset_controller()


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Dashboard data
# ═══════════════════════════════════════════════════════════════════════════

class TestDashboard:

    def test_snapshot(self, client):
        response = client.get("/api/v1/seismic/dashboard")
        assert response.status_code == 200
        data = response.json()
        assert data["query"]["status"] == "success"
        assert data["list"]["state"] == "ready"
        assert data["list"]["summary"] == "Showing 6 earthquakes of 6"
        assert data["map"]["feature_count"] == 6
        assert "X-Request-ID" in response.headers

    def test_events_geojson(self, client):
        data = client.get("/api/v1/seismic/events").json()
        assert data["count"] == 6
        assert data["data"]["type"] == "FeatureCollection"

    def test_feed_error_shown_in_list(self, client, feed):
        feed.error_text = "Max retries exceeded with url: /seismic"
        data = client.get("/api/v1/seismic/dashboard").json()
        assert data["list"]["state"] == "error"
        assert data["list"]["message"] == "Failed to load earthquake data"
        assert data["list"]["detail"].startswith("Unable to connect to PHIVOLCS")

    def test_retry(self, client, feed):
        feed.status = 500
        assert client.get("/api/v1/seismic/dashboard").json()["list"]["state"] == "error"
        feed.status = 200
        data = client.post("/api/v1/seismic/retry").json()
        assert data["list"]["state"] == "ready"


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Month / refresh
# ═══════════════════════════════════════════════════════════════════════════

class TestMonth:

    def test_pin_month(self, client):
        data = client.post("/api/v1/seismic/month", json={"month": "january 2024"}).json()
        assert data["subtitle"] == "January 2024"
        assert data["title"] == "Previous Earthquake Activity"

    def test_malformed_month(self, client):
        response = client.post("/api/v1/seismic/month", json={"month": "Smarch 2024"})
        assert response.status_code == 422

    def test_future_month(self, client):
        response = client.post("/api/v1/seismic/month", json={"month": "April 2024"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "MONTH_OUT_OF_RANGE"

    def test_null_month_refreshes(self, client, feed):
        client.get("/api/v1/seismic/dashboard")
        data = client.post("/api/v1/seismic/month", json={"month": None}).json()
        assert data["query"]["month"] is None
        assert data["query"]["refresh_token"] != 0
        assert len(feed.requests) == 2

    def test_refresh(self, client, feed):
        client.get("/api/v1/seismic/dashboard")
        client.post("/api/v1/seismic/refresh")
        assert len(feed.requests) == 2
        assert "_" in feed.requests[-1].url.params

    def test_months_grid(self, client):
        data = client.get("/api/v1/seismic/months", params={"year": 2019}).json()
        assert data["year"] == 2019
        assert not any(cell["disabled"] for cell in data["months"])

    def test_months_grid_does_not_move_picker(self, client):
        client.get("/api/v1/seismic/months", params={"year": 2019})
        assert client.get("/api/v1/seismic/months").json()["year"] == 2024
        assert client.get("/api/v1/seismic/dashboard").json()["months"]["year"] == 2024

    def test_months_grid_year_clamped(self, client):
        assert client.get("/api/v1/seismic/months", params={"year": 1990}).json()["year"] == 2018


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Map
# ═══════════════════════════════════════════════════════════════════════════

class TestMap:

    def test_focus(self, client):
        client.get("/api/v1/seismic/dashboard")
        data = client.post("/api/v1/seismic/focus", json={"index": 2}).json()
        assert data["shown"] is True
        assert data["row"]["location"] == "Event 2"

    def test_focus_missing(self, client):
        client.get("/api/v1/seismic/dashboard")
        response = client.post("/api/v1/seismic/focus", json={"index": 40})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_resize(self, client):
        first = client.post("/api/v1/seismic/resize", json={"width": 900, "height": 500}).json()
        second = client.post("/api/v1/seismic/resize", json={"width": 900, "height": 500}).json()
        assert first["resized"] is True
        assert second["resized"] is False

    def test_map_page(self, client):
        client.get("/api/v1/seismic/dashboard")
        response = client.get("/api/v1/seismic/map")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Legend" in response.text

    def test_legend(self, client):
        entries = client.get("/api/v1/seismic/legend").json()["entries"]
        assert entries[0] == {"color": "#2ECC71", "label": "Minor, Less than 3.9"}
        assert len(entries) == 6


class TestRootAndHealth:

    def test_root(self, client):
        assert client.get("/").json()["map"] == "/api/v1/seismic/map"

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_health(self, client):
        client.get("/api/v1/seismic/dashboard")
        report = client.get("/health").json()
        names = [c["name"] for c in report["components"]]
        assert names == ["seismic_feed", "query_cache", "map_view"]
        assert report["status"] == "healthy"

    def test_ready(self, client):
        assert client.get("/health/ready").status_code == 200
