"""
Data model for the seismic dashboard.

    SeismicEvent       raw record as received from the feed (immutable)
    Feature            one SeismicEvent plus its point geometry
    FeatureCollection  ordered features handed to the map and the list
    QueryIdentity      (month, refresh_token) — the cache key of a fetch
    QueryResult        what the fetcher reports for the current identity

Feed record shape:

    {
        "datetime": "15 March 2024 - 02:30 PM",
        "magnitude": 4.2,
        "depth": 12,
        "location": "012 km N 45° E of Hinatuan (Surigao Del Sur)",
        "longitude": 126.41,
        "latitude": 8.45,
        "month": "March 2024"
    }
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, NamedTuple, Optional, Tuple


def _to_float(value: Any) -> Optional[float]:
    """Coerce feed numbers (sometimes sent as strings) to float; None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class SeismicEvent:
    datetime: Optional[str]
    magnitude: Optional[float]
    depth: Optional[float]
    location: Optional[str]
    longitude: Optional[float]
    latitude: Optional[float]
    month: Optional[str]

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "SeismicEvent":
        return cls(
            datetime=_to_str(record.get("datetime")),
            magnitude=_to_float(record.get("magnitude")),
            depth=_to_float(record.get("depth")),
            location=_to_str(record.get("location")),
            longitude=_to_float(record.get("longitude")),
            latitude=_to_float(record.get("latitude")),
            month=_to_str(record.get("month")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "datetime": self.datetime,
            "magnitude": self.magnitude,
            "depth": self.depth,
            "location": self.location,
            "longitude": self.longitude,
            "latitude": self.latitude,
            "month": self.month,
        }


@dataclass(frozen=True)
class Feature:
    """A SeismicEvent prepared for the map layer."""
    event: SeismicEvent

    @property
    def coordinates(self) -> Tuple[Optional[float], Optional[float]]:
        """(longitude, latitude) — GeoJSON axis order."""
        return (self.event.longitude, self.event.latitude)

    @property
    def has_position(self) -> bool:
        return self.event.longitude is not None and self.event.latitude is not None

    @property
    def magnitude(self) -> Optional[float]:
        return self.event.magnitude

    @property
    def properties(self) -> Dict[str, Any]:
        return {
            "datetime": self.event.datetime,
            "magnitude": self.event.magnitude,
            "depth": self.event.depth,
            "location": self.event.location,
            "month": self.event.month,
        }

    def to_geojson(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": {
                "type": "Point",
                "coordinates": list(self.coordinates),
            },
            "properties": self.properties,
        }


@dataclass(frozen=True)
class FeatureCollection:
    """Ordered, never-None sequence of features. Empty means no data."""
    features: Tuple[Feature, ...] = ()

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def __getitem__(self, index: int) -> Feature:
        return self.features[index]

    @property
    def is_empty(self) -> bool:
        return not self.features

    def to_geojson(self) -> Dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": [f.to_geojson() for f in self.features],
        }


EMPTY_COLLECTION = FeatureCollection()


class QueryIdentity(NamedTuple):
    """
    Identity of a seismic query.

    month is None while tracking the current month, otherwise a canonical
    "Month YYYY" label. refresh_token changes on every manual refresh so the
    new identity can never be satisfied from an older cache slot.
    """
    month: Optional[str] = None
    refresh_token: Any = 0

    @property
    def cache_key(self) -> str:
        return f"seismic:{self.month or 'current'}:{self.refresh_token}"


class QueryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class QueryResult:
    """Snapshot of the data fetcher for one identity."""
    identity: QueryIdentity
    status: QueryStatus = QueryStatus.PENDING
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    is_fetching: bool = False
    is_stale: bool = False
    is_placeholder: bool = False  # data belongs to a previously displayed identity
    updated_at: Optional[float] = None

    @property
    def is_pending(self) -> bool:
        """No settled result for this identity yet, or a fetch is in flight."""
        return self.status is QueryStatus.PENDING or self.is_fetching

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.identity.month,
            "refresh_token": self.identity.refresh_token,
            "status": self.status.value,
            "is_pending": self.is_pending,
            "is_fetching": self.is_fetching,
            "is_stale": self.is_stale,
            "is_placeholder": self.is_placeholder,
            "error": self.error,
        }
