"""
Health check aggregation — deep health probe for the dashboard backend.

Checks:
    • Seismic feed configuration and the outcome of the last fetch
    • Query cache occupancy
    • Map view lifecycle state

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List

from quakemap.app.core.config import settings

if TYPE_CHECKING:
    from quakemap.app.dashboard.controller import DashboardController

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # serving, but stale or last fetch failed
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


def check_seismic_feed(controller: "DashboardController") -> ComponentHealth:
    """Feed endpoint plus the state of the displayed query (no network call)."""
    comp = ComponentHealth(name="seismic_feed")
    start = time.monotonic()

    fetcher = controller.fetcher
    entry = fetcher.cache.peek(fetcher.current.cache_key) if fetcher.current else None
    comp.details = {
        "endpoint": fetcher.endpoint,
        "requests": fetcher.request_count,
        "data_source": settings.DATA_SOURCE_URL,
    }

    if entry is None:
        comp.status = HealthStatus.HEALTHY
        comp.message = "No data requested yet"
    elif entry.error:
        comp.status = HealthStatus.DEGRADED
        comp.message = f"Last fetch failed: {entry.error}"
    elif not fetcher.cache.is_fresh(entry):
        comp.status = HealthStatus.DEGRADED
        comp.message = "Displayed data is stale"
    else:
        comp.status = HealthStatus.HEALTHY
        comp.message = "Displayed data is fresh"

    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_query_cache(controller: "DashboardController") -> ComponentHealth:
    comp = ComponentHealth(name="query_cache")
    start = time.monotonic()
    comp.details = controller.fetcher.cache.stats()
    comp.message = f"{comp.details['entries']} cached queries"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_map_view(controller: "DashboardController") -> ComponentHealth:
    comp = ComponentHealth(name="map_view")
    start = time.monotonic()
    view = controller.map_view
    comp.details = {"state": view.state.value, "features": len(view.collection)}

    if view.is_ready:
        comp.status = HealthStatus.HEALTHY
        comp.message = "Map ready"
    elif view.engine is not None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Map style still loading"
    else:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "No map engine attached"

    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(controller: "DashboardController") -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    for check in (check_seismic_feed, check_query_cache, check_map_view):
        report.components.append(check(controller))

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
