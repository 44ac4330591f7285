"""
folium-backed MapEngine.

Keeps the same source / layer / popup bookkeeping a browser map SDK would,
and renders it on demand as a standalone Leaflet page:

    • each circle layer becomes a FeatureGroup of CircleMarkers, coloured and
      sized by the Python evaluators in dashboard.styles at the current zoom
    • the shared popup, when open, is drawn pre-opened at its position
    • fly_to() moves the centre the next render starts from

There is no asynchronous style download, so the style counts as loaded as
soon as the engine exists; "load" handlers registered afterwards run
immediately.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import folium

from quakemap.app.core.config import settings
from quakemap.app.dashboard.styles import (
    CIRCLE_OPACITY,
    LEGEND,
    STROKE_COLOR,
    STROKE_WIDTH,
    circle_radius,
    magnitude_color,
)
from quakemap.app.dashboard.map_view import ClickHandler, LngLat, feature_from_geojson, popup_html

logger = logging.getLogger(__name__)


class FoliumPopup:
    """The engine's single popup: a position, some HTML, and an open flag."""

    def __init__(self, **options: Any):
        self.options = options
        self.lnglat: Optional[LngLat] = None
        self.content = ""
        self._engine: Optional["FoliumMapEngine"] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def set_lnglat(self, lnglat: LngLat) -> "FoliumPopup":
        self.lnglat = (float(lnglat[0]), float(lnglat[1]))
        return self

    def set_html(self, content: str) -> "FoliumPopup":
        self.content = content
        return self

    def add_to(self, engine: "FoliumMapEngine") -> "FoliumPopup":
        self._engine = engine
        engine._open_popup = self
        return self

    def remove(self) -> None:
        if self._engine is not None and self._engine._open_popup is self:
            self._engine._open_popup = None
        self._engine = None


class FoliumMapEngine:
    def __init__(
        self,
        container: str = "map",
        center: LngLat = (settings.MAP_CENTER_LON, settings.MAP_CENTER_LAT),
        zoom: float = settings.MAP_ZOOM,
        style: Optional[str] = None,
        access_token: Optional[str] = None,
        tiles: Optional[str] = None,
    ):
        self.container = container
        self.center: LngLat = (float(center[0]), float(center[1]))
        self.zoom = float(zoom)
        self.style = style
        self.tiles = tiles or settings.MAP_TILES
        self.resize_count = 0
        self._sources: Dict[str, Dict[str, Any]] = {}
        self._layers: Dict[str, Dict[str, Any]] = {}
        self._click_handlers: Dict[str, List[ClickHandler]] = {}
        self._open_popup: Optional[FoliumPopup] = None
        self._removed = False

    # ── Events ──

    def on(self, event: str, handler: Callable[[], None]) -> None:
        if event == "load" and self.is_style_loaded():
            handler()

    def on_layer_click(self, layer_id: str, handler: ClickHandler) -> None:
        self._click_handlers.setdefault(layer_id, []).append(handler)

    def off_layer_click(self, layer_id: str, handler: ClickHandler) -> None:
        handlers = self._click_handlers.get(layer_id, [])
        if handler in handlers:
            handlers.remove(handler)

    def click(self, layer_id: str, index: int) -> bool:
        """Dispatch a click on the index-th feature of a layer's source."""
        layer = self._layers.get(layer_id)
        if layer is None:
            return False
        features = self._sources.get(layer["source"], {}).get("data", {}).get("features", [])
        if not 0 <= index < len(features):
            return False
        event = {"layer": layer_id, "features": [features[index]]}
        for handler in list(self._click_handlers.get(layer_id, [])):
            handler(event)
        return True

    # ── Style / sources / layers ──

    def is_style_loaded(self) -> bool:
        return not self._removed

    def add_source(self, source_id: str, source: Dict[str, Any]) -> None:
        if source_id in self._sources:
            raise ValueError(f"There is already a source with ID '{source_id}'")
        self._sources[source_id] = source

    def get_source(self, source_id: str) -> Optional[Dict[str, Any]]:
        return self._sources.get(source_id)

    def remove_source(self, source_id: str) -> None:
        if any(layer["source"] == source_id for layer in self._layers.values()):
            raise ValueError(f"Source '{source_id}' is still used by a layer")
        self._sources.pop(source_id, None)

    def add_layer(self, layer: Dict[str, Any]) -> None:
        if layer["id"] in self._layers:
            raise ValueError(f"Layer with id '{layer['id']}' already exists")
        if layer.get("source") not in self._sources:
            raise ValueError(f"Source '{layer.get('source')}' does not exist")
        self._layers[layer["id"]] = layer

    def get_layer(self, layer_id: str) -> Optional[Dict[str, Any]]:
        return self._layers.get(layer_id)

    def remove_layer(self, layer_id: str) -> None:
        self._layers.pop(layer_id, None)
        self._click_handlers.pop(layer_id, None)

    @property
    def source_ids(self) -> List[str]:
        return list(self._sources)

    @property
    def layer_ids(self) -> List[str]:
        return list(self._layers)

    # ── Camera / popup ──

    def resize(self) -> None:
        # Leaflet sizes itself to the page; nothing to recompute server-side.
        self.resize_count += 1

    def fly_to(self, center: LngLat, duration_ms: int) -> None:
        self.center = (float(center[0]), float(center[1]))

    def create_popup(self, **options: Any) -> FoliumPopup:
        return FoliumPopup(**options)

    @property
    def open_popup(self) -> Optional[FoliumPopup]:
        return self._open_popup

    def remove(self) -> None:
        if self._open_popup is not None:
            self._open_popup.remove()
        self._sources.clear()
        self._layers.clear()
        self._click_handlers.clear()
        self._removed = True

    # ── Rendering ──

    def build_map(self) -> folium.Map:
        lon, lat = self.center
        logger.debug("Rendering map at (%.4f, %.4f) zoom %.1f", lon, lat, self.zoom)
        m = folium.Map(
            location=[lat, lon],
            zoom_start=self.zoom,
            tiles=self.tiles,
            control_scale=True,
            prefer_canvas=True,
        )

        for layer_id, layer in self._layers.items():
            if layer.get("type") != "circle":
                continue
            fg = folium.FeatureGroup(name=layer_id, show=True)
            source = self._sources.get(layer["source"], {})
            for data in source.get("data", {}).get("features", []):
                feature = feature_from_geojson(data)
                if not feature.has_position:
                    continue
                mag = feature.magnitude
                folium.CircleMarker(
                    location=[feature.event.latitude, feature.event.longitude],
                    radius=circle_radius(mag, self.zoom),
                    color=STROKE_COLOR,
                    weight=STROKE_WIDTH,
                    fill=True,
                    fill_color=magnitude_color(mag),
                    fill_opacity=CIRCLE_OPACITY,
                    popup=folium.Popup(popup_html(feature), max_width=250),
                ).add_to(fg)
            fg.add_to(m)

        popup = self._open_popup
        if popup is not None and popup.lnglat is not None:
            plon, plat = popup.lnglat
            folium.CircleMarker(
                location=[plat, plon],
                radius=1,
                opacity=0,
                fill_opacity=0,
                popup=folium.Popup(popup.content, max_width=250, show=True),
            ).add_to(m)

        m.get_root().html.add_child(folium.Element(_legend_html()))
        return m

    def render_html(self) -> str:
        return self.build_map().get_root().render()


def _legend_html() -> str:
    rows = "".join(
        f'<div><span style="display:inline-block;width:10px;height:10px;'
        f'border-radius:50%;background:{entry["color"]};margin-right:6px"></span>'
        f'{entry["label"]}</div>'
        for entry in LEGEND
    )
    return (
        '<div style="position:fixed;bottom:16px;left:16px;z-index:9999;'
        'background:rgba(255,255,255,0.8);padding:8px 12px;border-radius:6px;'
        'font-size:11px;box-shadow:0 2px 6px rgba(0,0,0,0.3)">'
        f'<div style="font-weight:600;margin-bottom:4px">Legend</div>{rows}</div>'
    )
