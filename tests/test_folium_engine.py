"""
test_folium_engine.py — Tests for the folium-backed map engine.

Run with:
    pytest tests/test_folium_engine.py -v
"""

from __future__ import annotations

import pytest

from quakemap.app.dashboard.folium_engine import FoliumMapEngine
from quakemap.app.dashboard.map_view import LAYER_ID, SOURCE_ID, MapState, MapView
from quakemap.app.seismic.transformer import to_feature_collection


def _make_collection(n: int = 3):
    return to_feature_collection([
        {
            "datetime": "15 March 2024 - 02:30 PM",
            "magnitude": 3.5 + i,
            "depth": 10,
            "location": f"Quake {i}",
            "longitude": 124.0 + i,
            "latitude": 10.0 + i,
            "month": "March 2024",
        }
        for i in range(n)
    ])


def _ready_view(n: int = 3) -> MapView:
    view = MapView(FoliumMapEngine, zoom=6)
    view.init()
    view.sync_layer(_make_collection(n))
    return view


class TestEngineBookkeeping:

    def test_load_fires_immediately(self):
        view = MapView(FoliumMapEngine)
        view.init()
        assert view.state is MapState.READY

    def test_duplicate_source_rejected(self):
        engine = FoliumMapEngine()
        engine.add_source("s", {"type": "geojson", "data": {"features": []}})
        with pytest.raises(ValueError):
            engine.add_source("s", {"type": "geojson", "data": {"features": []}})

    def test_source_in_use_cannot_be_removed(self):
        engine = FoliumMapEngine()
        engine.add_source("s", {"data": {"features": []}})
        engine.add_layer({"id": "l", "type": "circle", "source": "s"})
        with pytest.raises(ValueError):
            engine.remove_source("s")

    def test_layer_needs_source(self):
        with pytest.raises(ValueError):
            FoliumMapEngine().add_layer({"id": "l", "type": "circle", "source": "missing"})

    def test_resync_keeps_single_pair(self):
        view = _ready_view()
        view.sync_layer(view.collection)
        engine = view.engine
        assert engine.source_ids == [SOURCE_ID]
        assert engine.layer_ids == [LAYER_ID]

    def test_remove_unloads_style(self):
        engine = FoliumMapEngine()
        engine.remove()
        assert not engine.is_style_loaded()


class TestClickAndPopup:

    def test_click_opens_shared_popup(self):
        view = _ready_view()
        engine = view.engine
        assert engine.click(LAYER_ID, 1) is True
        assert engine.open_popup is view.popup
        assert engine.open_popup.lnglat == (125.0, 11.0)
        assert engine.center == (125.0, 11.0)

    def test_click_out_of_range(self):
        view = _ready_view(2)
        assert view.engine.click(LAYER_ID, 5) is False
        assert view.popup is None

    def test_close_popup(self):
        view = _ready_view()
        view.engine.click(LAYER_ID, 0)
        view.close_popup()
        assert view.engine.open_popup is None

    def test_resize_counted(self):
        view = _ready_view()
        view.container_resized(640, 480)
        assert view.engine.resize_count == 1


class TestRender:

    def test_html_contains_markers_and_legend(self):
        view = _ready_view()
        html = view.engine.render_html()
        assert "Legend" in html
        assert "Minor, Less than 3.9" in html
        assert html.count("L.circleMarker") >= 3

    def test_open_popup_rendered(self):
        view = _ready_view()
        view.show_popup(view.collection[2])
        html = view.engine.render_html()
        assert "Quake 2" in html
