"""
Dashboard controller — the data flow between the dashboard's parts.

    MonthSelector ──month──▶ SeismicFetcher ──payload──▶ transformer
                                                          │
                               ┌──── FeatureCollection ───┤
                               ▼                          ▼
                            MapView                 event_list.render
                               ▲                          │
                               └──── focus(index) ────────┘

State owned here is just the query identity: the pinned month (None while
tracking the current month) and the refresh token. Everything else lives
in the component that owns it.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from quakemap.app.core.errors import NotFoundError
from quakemap.app.dashboard.event_list import EventListView, render
from quakemap.app.dashboard.folium_engine import FoliumMapEngine
from quakemap.app.dashboard.map_view import EngineFactory, MapView
from quakemap.app.dashboard.month_selector import MonthSelector
from quakemap.app.dashboard.styles import LEGEND
from quakemap.app.seismic.fetcher import SeismicFetcher
from quakemap.app.seismic.models import FeatureCollection, QueryIdentity, QueryResult
from quakemap.app.seismic.time_format import current_month_label
from quakemap.app.seismic.transformer import to_feature_collection

logger = logging.getLogger(__name__)


class DashboardController:
    def __init__(
        self,
        fetcher: Optional[SeismicFetcher] = None,
        map_view: Optional[MapView] = None,
        selector: Optional[MonthSelector] = None,
        engine_factory: EngineFactory = FoliumMapEngine,
        clock: Callable[[], float] = time.time,
    ):
        self.fetcher = fetcher or SeismicFetcher()
        self.map_view = map_view or MapView(engine_factory)
        self.selector = selector or MonthSelector()
        self._clock = clock

        self.month: Optional[str] = None
        self.refresh_token: int = 0

    # ── Query identity ──

    @property
    def is_current_month(self) -> bool:
        return self.month is None or self.month == current_month_label(self.selector.today)

    @property
    def identity(self) -> QueryIdentity:
        return QueryIdentity(self.month, self.refresh_token)

    def _new_refresh_token(self) -> int:
        token = int(self._clock() * 1000)
        if token <= self.refresh_token:
            token = self.refresh_token + 1
        return token

    # ── Data flow ──

    def _sync_map(self, result: QueryResult) -> FeatureCollection:
        collection = to_feature_collection(result.data)
        if collection != self.map_view.collection:
            self.map_view.sync_layer(collection)
        return collection

    def _settle(self, result: QueryResult) -> QueryResult:
        """Push `result` to the map unless the identity moved on while it was in flight."""
        if result.identity != self.identity:
            logger.debug(
                "Dropping late result for %s", result.identity.cache_key,
                extra={"cache_key": result.identity.cache_key},
            )
            result = self.fetcher.read(self.month, self.refresh_token)
        self._sync_map(result)
        return result

    async def load(self, wait: bool = True) -> QueryResult:
        """
        Query the feed for the current identity and push the result to the map.

        With wait=False a needed fetch is only scheduled, and the snapshot
        reflects whatever is cached (or the placeholder) right now.
        """
        if wait:
            result = await self.fetcher.query(self.month, self.refresh_token)
        else:
            result = self.fetcher.start(self.month, self.refresh_token)
        return self._settle(result)

    async def select_month(self, label: Optional[str]) -> QueryResult:
        """Pin a month, or go back to tracking the current one (None / current month)."""
        month = self.selector.resolve(label)
        if month is None:
            return await self.refresh()
        self.month = month
        logger.info("Month pinned to %s", month, extra={"month": month})
        return await self.load()

    async def refresh(self) -> QueryResult:
        """Manual refresh: unpin and force a new fetch of the current month."""
        self.selector.clear()
        self.month = None
        self.refresh_token = self._new_refresh_token()
        logger.info(
            "Manual refresh of current month",
            extra={"refresh_token": self.refresh_token},
        )
        return await self.load()

    async def retry(self) -> QueryResult:
        """Full reload after an error: forget every cached result, fetch again."""
        self.fetcher.reset()
        result = await self.fetcher.query(self.month, self.refresh_token, force=True)
        return self._settle(result)

    # ── Map interaction ──

    def event_list(
        self,
        result: Optional[QueryResult] = None,
        now: Optional[datetime] = None,
    ) -> EventListView:
        result = result or self.fetcher.read(self.month, self.refresh_token)
        collection = to_feature_collection(result.data)
        return render(
            collection,
            is_pending=result.is_pending,
            error=result.error,
            month=self.month,
            now=now,
            today_label=current_month_label(self.selector.today),
        )

    def focus(self, position: int) -> Dict[str, Any]:
        """Show the popup of the row at `position` in the displayed list."""
        view = self.event_list()
        try:
            row = view.row_for(position)
        except IndexError:
            raise NotFoundError("Event row", position=position, displayed=view.displayed) from None

        feature = to_feature_collection(
            self.fetcher.read(self.month, self.refresh_token).data
        )[row.index]
        shown = self.map_view.show_popup(feature)
        return {"position": position, "shown": shown, "row": row.to_dict()}

    def resize(self, width: int, height: int) -> bool:
        return self.map_view.container_resized(width, height)

    # ── Lifecycle ──

    def mount(self) -> None:
        self.map_view.init()

    async def close(self) -> None:
        self.map_view.dispose()
        await self.fetcher.close()

    # ── Snapshot ──

    def snapshot(
        self,
        result: Optional[QueryResult] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        result = result or self.fetcher.read(self.month, self.refresh_token)
        collection = self._sync_map(result)
        view = self.event_list(result, now=now)
        return {
            "title": view.title,
            "subtitle": view.subtitle,
            "is_current_month": self.is_current_month,
            "query": result.to_dict(),
            "feature_count": len(collection),
            "list": view.to_dict(),
            "map": self.map_view.to_dict(),
            "legend": LEGEND,
            "months": self.selector.to_dict(),
        }
