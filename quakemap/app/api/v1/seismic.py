"""
FastAPI seismic dashboard endpoints.

Endpoints:
    GET  /api/v1/seismic/dashboard  — Full dashboard snapshot (list, map, legend, months)
    GET  /api/v1/seismic/events     — Current FeatureCollection as GeoJSON
    POST /api/v1/seismic/month      — Pin a month (or null to track the current one)
    POST /api/v1/seismic/refresh    — Manual refresh of the current month
    POST /api/v1/seismic/retry      — Full reload after an error
    POST /api/v1/seismic/focus      — Show a list row's popup on the map
    POST /api/v1/seismic/resize     — Map container size changed
    GET  /api/v1/seismic/months     — Month picker grid for a year
    GET  /api/v1/seismic/legend     — Magnitude colour legend
    GET  /api/v1/seismic/map        — Rendered map page (HTML)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field, field_validator

from quakemap.app.core.errors import QuakeMapError
from quakemap.app.dashboard.controller import DashboardController
from quakemap.app.dashboard.folium_engine import FoliumMapEngine
from quakemap.app.dashboard.styles import LEGEND
from quakemap.app.seismic.time_format import canonical_month_label
from quakemap.app.seismic.transformer import to_feature_collection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/seismic", tags=["seismic-dashboard"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class MonthRequest(BaseModel):
    month: Optional[str] = Field(
        None, description="'Month YYYY' (e.g. 'March 2024'); null tracks the current month",
    )

    @field_validator("month")
    @classmethod
    def _canonical(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return canonical_month_label(value)


class FocusRequest(BaseModel):
    index: int = Field(..., ge=0, description="Position of the row in the displayed list")


class ResizeRequest(BaseModel):
    width: int = Field(..., ge=0, le=20000)
    height: int = Field(..., ge=0, le=20000)


# ---------------------------------------------------------------------------
# Dashboard singleton
# ---------------------------------------------------------------------------

_controller: Optional[DashboardController] = None


def get_controller() -> DashboardController:
    global _controller
    if _controller is None:
        _controller = DashboardController(engine_factory=FoliumMapEngine)
    return _controller


def reset_controller(controller: Optional[DashboardController] = None) -> None:
    """Swap the process-wide dashboard (app shutdown, tests)."""
    global _controller
    _controller = controller


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/dashboard", summary="Full dashboard snapshot")
async def get_dashboard(
    wait: bool = Query(True, description="Wait for a needed fetch to settle"),
    controller: DashboardController = Depends(get_controller),
) -> Dict[str, Any]:
    result = await controller.load(wait=wait)
    return controller.snapshot(result)


@router.get("/events", summary="Current events as GeoJSON")
async def get_events(
    controller: DashboardController = Depends(get_controller),
) -> Dict[str, Any]:
    result = await controller.load()
    collection = to_feature_collection(result.data)
    return {
        "query": result.to_dict(),
        "count": len(collection),
        "data": collection.to_geojson(),
    }


@router.post("/month", summary="Pin or clear the displayed month")
async def select_month(
    request: MonthRequest,
    controller: DashboardController = Depends(get_controller),
) -> Dict[str, Any]:
    result = await controller.select_month(request.month)
    return controller.snapshot(result)


@router.post("/refresh", summary="Manual refresh of the current month")
async def refresh(
    controller: DashboardController = Depends(get_controller),
) -> Dict[str, Any]:
    result = await controller.refresh()
    return controller.snapshot(result)


@router.post("/retry", summary="Full reload after an error")
async def retry(
    controller: DashboardController = Depends(get_controller),
) -> Dict[str, Any]:
    result = await controller.retry()
    return controller.snapshot(result)


@router.post("/focus", summary="Show a list row on the map")
async def focus(
    request: FocusRequest,
    controller: DashboardController = Depends(get_controller),
) -> Dict[str, Any]:
    return controller.focus(request.index)


@router.post("/resize", summary="Map container size changed")
async def resize(
    request: ResizeRequest,
    controller: DashboardController = Depends(get_controller),
) -> Dict[str, Any]:
    resized = controller.resize(request.width, request.height)
    return {"width": request.width, "height": request.height, "resized": resized}


@router.get("/months", summary="Month picker grid")
async def get_months(
    year: Optional[int] = Query(None, description="Year to show; defaults to the current page"),
    controller: DashboardController = Depends(get_controller),
) -> Dict[str, Any]:
    selector = controller.selector
    if year is not None:
        year = selector.clamp_year(year)
    return selector.to_dict(year)


@router.get("/legend", summary="Magnitude colour legend")
async def get_legend() -> Dict[str, Any]:
    return {"title": "Legend", "entries": LEGEND}


@router.get("/map", response_class=HTMLResponse, summary="Rendered map page")
async def get_map(
    controller: DashboardController = Depends(get_controller),
) -> HTMLResponse:
    engine = controller.map_view.engine
    if not isinstance(engine, FoliumMapEngine):
        raise QuakeMapError(
            "Map engine is not attached",
            status_code=503,
            error_code="MAP_NOT_READY",
            details={"state": controller.map_view.state.value},
        )
    return HTMLResponse(engine.render_html())
