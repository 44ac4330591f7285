"""
Visual encoding of earthquake points.

Colour is a 6-bucket step function of magnitude:

    < 4.0      #2ECC71  Minor
    4.0 – 4.9  #F1C40F  Light
    5.0 – 5.9  #E67E22  Moderate
    6.0 – 6.9  #E74C3C  Strong
    7.0 – 7.9  #8E44AD  Major
    ≥ 8.0      #641E16  Great

Radius (px) is interpolated on two axes, magnitude within each zoom stop
and then between zoom stops:

    zoom  0:  M1 0.5 … M7 3.5   (+0.5 per magnitude)
    zoom  8:  M1 3   … M7 15    (+2 per magnitude)
    zoom 16:  M1 8   … M7 32    (+4 per magnitude)

Both are exposed twice: as Mapbox-style expressions for engines that
evaluate paint expressions themselves, and as plain functions for engines
(folium) that need concrete values per point.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Any, Dict, List, Optional, Sequence, Tuple

MAGNITUDE_COLORS: List[Tuple[float, str]] = [
    (4.0, "#F1C40F"),
    (5.0, "#E67E22"),
    (6.0, "#E74C3C"),
    (7.0, "#8E44AD"),
    (8.0, "#641E16"),
]
BASE_COLOR = "#2ECC71"

LEGEND: List[Dict[str, str]] = [
    {"color": "#2ECC71", "label": "Minor, Less than 3.9"},
    {"color": "#F1C40F", "label": "Light, 4.0-4.9"},
    {"color": "#E67E22", "label": "Moderate, 5.0-5.9"},
    {"color": "#E74C3C", "label": "Strong, 6.0-6.9"},
    {"color": "#8E44AD", "label": "Major, 7.0-7.9"},
    {"color": "#641E16", "label": "Great, 8.0+"},
]

# zoom → [(magnitude, radius_px), ...]
RADIUS_TABLE: List[Tuple[float, List[Tuple[float, float]]]] = [
    (0.0, [(1, 0.5), (2, 1), (3, 1.5), (4, 2), (5, 2.5), (6, 3), (7, 3.5)]),
    (8.0, [(1, 3), (2, 5), (3, 7), (4, 9), (5, 11), (6, 13), (7, 15)]),
    (16.0, [(1, 8), (2, 12), (3, 16), (4, 20), (5, 24), (6, 28), (7, 32)]),
]

CIRCLE_OPACITY = 0.8
STROKE_WIDTH = 0.7
STROKE_COLOR = "#ffffff"

_MAGNITUDE = ["to-number", ["get", "magnitude"], 0]


def magnitude_color(magnitude: Optional[float]) -> str:
    mag = magnitude or 0.0
    color = BASE_COLOR
    for threshold, bucket_color in MAGNITUDE_COLORS:
        if mag >= threshold:
            color = bucket_color
    return color


def _interpolate(stops: Sequence[Tuple[float, float]], x: float) -> float:
    """Piecewise-linear, clamped to the first / last stop."""
    if x <= stops[0][0]:
        return float(stops[0][1])
    if x >= stops[-1][0]:
        return float(stops[-1][1])
    i = bisect_right([s[0] for s in stops], x)
    (x0, y0), (x1, y1) = stops[i - 1], stops[i]
    return y0 + (y1 - y0) * (x - x0) / (x1 - x0)


def circle_radius(magnitude: Optional[float], zoom: float) -> float:
    mag = magnitude or 0.0
    per_zoom = [(z, _interpolate(stops, mag)) for z, stops in RADIUS_TABLE]
    return _interpolate(per_zoom, zoom)


def color_expression() -> List[Any]:
    expr: List[Any] = ["step", _MAGNITUDE, BASE_COLOR]
    for threshold, color in MAGNITUDE_COLORS:
        expr.extend([threshold, color])
    return expr


def radius_expression() -> List[Any]:
    expr: List[Any] = ["interpolate", ["linear"], ["zoom"]]
    for zoom, stops in RADIUS_TABLE:
        inner: List[Any] = ["interpolate", ["linear"], _MAGNITUDE]
        for mag, radius in stops:
            inner.extend([mag, radius])
        expr.extend([zoom, inner])
    return expr


def circle_paint() -> Dict[str, Any]:
    """Paint block of the earthquake point layer."""
    return {
        "circle-color": color_expression(),
        "circle-radius": radius_expression(),
        "circle-opacity": CIRCLE_OPACITY,
        "circle-stroke-width": STROKE_WIDTH,
        "circle-stroke-color": STROKE_COLOR,
    }
