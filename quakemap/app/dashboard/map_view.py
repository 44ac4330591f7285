"""
Map view — owns the map engine and its single popup for one mount.

State machine:

    UNINITIALIZED ──init()──▶ LOADING ──engine "load"──▶ READY
          ▲                     │                          │
          └──── init() ─── DISPOSED ◀──── dispose() ───────┘

    • init() constructs the engine once; calling it again while an engine
      exists does nothing.
    • Layer sync and popups only touch the engine in READY. A sync requested
      earlier is remembered and applied when the engine reports "load".
    • dispose() releases the popup and the engine; it is safe to call twice,
      and a disposed view can be init()-ed again.

The engine is an external collaborator described by the MapEngine protocol;
FoliumMapEngine is the concrete one used by the app.
"""

from __future__ import annotations

import html
import logging
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    Union,
)

from quakemap.app.core.config import settings
from quakemap.app.dashboard.styles import circle_paint
from quakemap.app.seismic.models import (
    EMPTY_COLLECTION,
    Feature,
    FeatureCollection,
    SeismicEvent,
)
from quakemap.app.seismic.time_format import parse_event_datetime

logger = logging.getLogger(__name__)

SOURCE_ID = "earthquakes"
LAYER_ID = "earthquake-points"

LngLat = Tuple[float, float]
ClickHandler = Callable[[Mapping[str, Any]], None]


# ═══════════════════════════════════════════════════════════════════════════
# Engine collaborator
# ═══════════════════════════════════════════════════════════════════════════

class MapPopup(Protocol):
    @property
    def is_open(self) -> bool: ...

    def set_lnglat(self, lnglat: LngLat) -> "MapPopup": ...

    def set_html(self, content: str) -> "MapPopup": ...

    def add_to(self, engine: "MapEngine") -> "MapPopup": ...

    def remove(self) -> None: ...


class MapEngine(Protocol):
    def on(self, event: str, handler: Callable[[], None]) -> None: ...

    def is_style_loaded(self) -> bool: ...

    def add_source(self, source_id: str, source: Dict[str, Any]) -> None: ...

    def get_source(self, source_id: str) -> Optional[Dict[str, Any]]: ...

    def remove_source(self, source_id: str) -> None: ...

    def add_layer(self, layer: Dict[str, Any]) -> None: ...

    def get_layer(self, layer_id: str) -> Optional[Dict[str, Any]]: ...

    def remove_layer(self, layer_id: str) -> None: ...

    def on_layer_click(self, layer_id: str, handler: ClickHandler) -> None: ...

    def off_layer_click(self, layer_id: str, handler: ClickHandler) -> None: ...

    def resize(self) -> None: ...

    def fly_to(self, center: LngLat, duration_ms: int) -> None: ...

    def create_popup(self, **options: Any) -> MapPopup: ...

    def remove(self) -> None: ...


EngineFactory = Callable[..., MapEngine]


class MapState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    DISPOSED = "disposed"


# ═══════════════════════════════════════════════════════════════════════════
# Popup content
# ═══════════════════════════════════════════════════════════════════════════

def _display(value: Any) -> str:
    if value is None or value == "":
        return "N/A"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def popup_html(feature: Feature) -> str:
    event = feature.event
    date_text = event.datetime if parse_event_datetime(event.datetime) else None
    rows = [
        ("Date", date_text),
        ("Magnitude", event.magnitude),
        ("Depth", event.depth),
        ("Location", event.location),
        ("Month", event.month),
    ]
    body = "".join(
        f'<div style="text-align:left"><b>{label}:</b> {html.escape(_display(value))}</div>'
        for label, value in rows
    )
    return (
        '<div style="font-size:12px;line-height:1.2;max-width:250px;text-align:left">'
        '<div style="font-weight:600;margin-bottom:6px;text-align:left">Seismic Information</div>'
        f"{body}</div>"
    )


def feature_from_geojson(data: Mapping[str, Any]) -> Feature:
    """Rebuild a Feature from the GeoJSON dict an engine hands to click handlers."""
    props = dict(data.get("properties") or {})
    coords = (data.get("geometry") or {}).get("coordinates") or [None, None]
    props["longitude"], props["latitude"] = (list(coords) + [None, None])[:2]
    return Feature(SeismicEvent.from_record(props))


# ═══════════════════════════════════════════════════════════════════════════
# Map view
# ═══════════════════════════════════════════════════════════════════════════

class MapView:
    """
    Single owner of one map engine and its popup.

    Usage:
        view = MapView(FoliumMapEngine, container="map")
        view.init()
        view.sync_layer(features)       # applied now, or on "load"
        view.show_popup(features[0])    # list selection
        view.dispose()
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        container: str = "map",
        center: Optional[LngLat] = None,
        zoom: Optional[float] = None,
        style: Optional[str] = None,
        fly_duration_ms: Optional[int] = None,
    ):
        self.engine_factory = engine_factory
        self.container = container
        self.center = center or (settings.MAP_CENTER_LON, settings.MAP_CENTER_LAT)
        self.zoom = zoom if zoom is not None else settings.MAP_ZOOM
        self.style = style or settings.MAP_STYLE
        self.fly_duration_ms = (
            fly_duration_ms if fly_duration_ms is not None else settings.MAP_FLY_DURATION_MS
        )

        self.state = MapState.UNINITIALIZED
        self._engine: Optional[MapEngine] = None
        self._popup: Optional[MapPopup] = None
        self._collection: FeatureCollection = EMPTY_COLLECTION
        self._selected: Optional[Feature] = None
        self._container_size: Optional[Tuple[int, int]] = None

    # ── Lifecycle ──

    @property
    def engine(self) -> Optional[MapEngine]:
        return self._engine

    @property
    def is_ready(self) -> bool:
        return (
            self.state is MapState.READY
            and self._engine is not None
            and self._engine.is_style_loaded()
        )

    def init(self) -> bool:
        """Construct the engine. No-op (False) while one already exists."""
        if self._engine is not None:
            return False

        self.state = MapState.LOADING
        self._engine = self.engine_factory(
            container=self.container,
            center=self.center,
            zoom=self.zoom,
            style=self.style,
            access_token=settings.MAPBOX_TOKEN,
        )
        logger.info("Map engine attached to '%s'", self.container)
        self._engine.on("load", self._handle_load)
        return True

    def _handle_load(self) -> None:
        if self._engine is None or self.state is not MapState.LOADING:
            return
        self.state = MapState.READY
        logger.info("Map style loaded; syncing %d features", len(self._collection))
        self._apply_layer()

    def dispose(self) -> None:
        if self._popup is not None:
            self._popup.remove()
            self._popup = None
        if self._engine is not None:
            self._engine.remove()
            self._engine = None
            logger.info("Map engine released")
        if self.state is not MapState.UNINITIALIZED:
            self.state = MapState.DISPOSED
        self._selected = None
        self._container_size = None

    # ── Data layer ──

    @property
    def collection(self) -> FeatureCollection:
        return self._collection

    def sync_layer(self, collection: FeatureCollection) -> bool:
        """
        Replace the point layer wholesale with `collection`.

        Returns False if the map is not ready yet; the collection is kept
        and applied once the engine reports "load".
        """
        self._collection = collection
        if not self.is_ready:
            return False
        self._apply_layer()
        return True

    def _apply_layer(self) -> None:
        engine = self._engine
        if engine is None:
            return

        if engine.get_layer(LAYER_ID) is not None:
            engine.remove_layer(LAYER_ID)
        if engine.get_source(SOURCE_ID) is not None:
            engine.remove_source(SOURCE_ID)

        positioned = [f.to_geojson() for f in self._collection if f.has_position]
        if len(positioned) < len(self._collection):
            logger.debug(
                "%d features without coordinates left off the map",
                len(self._collection) - len(positioned),
            )

        engine.add_source(SOURCE_ID, {
            "type": "geojson",
            "data": {"type": "FeatureCollection", "features": positioned},
            "cluster": False,
        })
        engine.add_layer({
            "id": LAYER_ID,
            "type": "circle",
            "source": SOURCE_ID,
            "paint": circle_paint(),
        })
        engine.off_layer_click(LAYER_ID, self._handle_click)
        engine.on_layer_click(LAYER_ID, self._handle_click)

    # ── Popup ──

    @property
    def selected(self) -> Optional[Feature]:
        return self._selected

    @property
    def popup(self) -> Optional[MapPopup]:
        return self._popup

    def show_popup(self, feature: Union[Feature, Mapping[str, Any]], fly: bool = True) -> bool:
        """Move the shared popup to `feature` and pan there. False if not shown."""
        if not isinstance(feature, Feature):
            feature = feature_from_geojson(feature)
        if not self.is_ready or not feature.has_position:
            return False

        engine = self._engine
        if self._popup is None:
            self._popup = engine.create_popup(
                close_button=True,
                close_on_click=False,
                close_on_move=False,
                focus_after_open=False,
            )
        center = (feature.event.longitude, feature.event.latitude)
        self._popup.set_lnglat(center).set_html(popup_html(feature)).add_to(engine)
        if fly:
            engine.fly_to(center, self.fly_duration_ms)
        self._selected = feature
        return True

    def close_popup(self) -> None:
        """User dismissal; the popup instance is kept for the next selection."""
        if self._popup is not None and self._popup.is_open:
            self._popup.remove()
        self._selected = None

    def _handle_click(self, event: Mapping[str, Any]) -> None:
        features: List[Mapping[str, Any]] = list(event.get("features") or [])
        if not features:
            return
        self.show_popup(features[0])

    # ── Resize ──

    def container_resized(self, width: int, height: int) -> bool:
        """
        The container's on-screen size changed.

        Resizes the render buffer only on an actual change and only once the
        style is loaded; before that the signal is dropped, not queued.
        """
        size = (int(width), int(height))
        if size == self._container_size:
            return False
        self._container_size = size
        if self._engine is None or not self._engine.is_style_loaded():
            logger.debug("Skipping resize to %sx%s: style not loaded", *size)
            return False
        self._engine.resize()
        return True

    def to_dict(self) -> Dict[str, Any]:
        selected = self._selected.to_geojson() if self._selected else None
        return {
            "state": self.state.value,
            "container": self.container,
            "center": list(self.center),
            "zoom": self.zoom,
            "style": self.style,
            "feature_count": len(self._collection),
            "popup_open": bool(self._popup is not None and self._popup.is_open),
            "selected": selected,
        }
