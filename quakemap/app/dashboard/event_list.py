"""
Event list view — pure rendering of the current FeatureCollection.

Displayed set (received order is kept, there is no sorting):

    recent   the first EVENT_LIST_HEAD_SIZE features
    strong   any later feature with magnitude ≥ EVENT_LIST_MIN_MAGNITUDE

Visual states are mutually exclusive, in priority order:

    ERROR  >  PENDING  >  EMPTY  >  READY
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from quakemap.app.core.config import settings
from quakemap.app.dashboard.styles import magnitude_color
from quakemap.app.seismic.models import Feature, FeatureCollection
from quakemap.app.seismic.time_format import current_month_label, time_ago

ERROR_HEADLINE = "Failed to load earthquake data"
LOADING_MESSAGE = "We're fetching earthquake data. Please wait…"
EMPTY_MESSAGE = "No earthquake data available"

# (substring of the raw error, message shown instead)
KNOWN_ERRORS: List[Tuple[str, str]] = [
    (
        "Connection to earthquake.phivolcs.dost.gov.ph timed out",
        "PHIVOLCS server is taking too long to respond. Please try again in a moment.",
    ),
    (
        "Max retries exceeded",
        "Unable to connect to PHIVOLCS data source. The server may be temporarily unavailable.",
    ),
]
GENERIC_ERROR = "There was an error fetching the latest earthquake data."


class ListState(str, Enum):
    ERROR = "error"
    PENDING = "pending"
    EMPTY = "empty"
    READY = "ready"


class RowGroup(str, Enum):
    RECENT = "recent"
    STRONG = "strong"


def friendly_error(message: Optional[str]) -> str:
    text = message or ""
    for needle, friendly in KNOWN_ERRORS:
        if needle in text:
            return friendly
    return GENERIC_ERROR


def _number(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:g}"


# ═══════════════════════════════════════════════════════════════════════════
# Selection
# ═══════════════════════════════════════════════════════════════════════════

def select_displayed(
    features: Sequence[Feature],
    head_size: Optional[int] = None,
    min_magnitude: Optional[float] = None,
) -> List[Tuple[int, Feature, RowGroup]]:
    """
    Pick the rows to show as (index into `features`, feature, group).

    Lists no longer than `head_size` are shown whole; beyond that only
    events at or above `min_magnitude` are appended.
    """
    head_size = settings.EVENT_LIST_HEAD_SIZE if head_size is None else head_size
    min_magnitude = settings.EVENT_LIST_MIN_MAGNITUDE if min_magnitude is None else min_magnitude

    selected = [(i, f, RowGroup.RECENT) for i, f in enumerate(features[:head_size])]
    for i in range(head_size, len(features)):
        mag = features[i].magnitude
        if mag is not None and mag >= min_magnitude:
            selected.append((i, features[i], RowGroup.STRONG))
    return selected


# ═══════════════════════════════════════════════════════════════════════════
# View model
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class EventRow:
    index: int  # position in the FeatureCollection
    magnitude_label: str
    depth_label: str
    time_ago: str
    location: str
    datetime: str
    color: str
    group: RowGroup
    has_position: bool

    @classmethod
    def from_feature(
        cls,
        index: int,
        feature: Feature,
        group: RowGroup,
        now: Optional[datetime] = None,
    ) -> "EventRow":
        event = feature.event
        return cls(
            index=index,
            magnitude_label=f"M {_number(event.magnitude)}",
            depth_label=f"{_number(event.depth)} km deep",
            time_ago=time_ago(event.datetime, now=now),
            location=event.location or "Unknown location",
            datetime=event.datetime or "Unknown time",
            color=magnitude_color(event.magnitude),
            group=group,
            has_position=feature.has_position,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["group"] = self.group.value
        return data


@dataclass
class EventListView:
    state: ListState
    title: str
    subtitle: str
    rows: List[EventRow] = field(default_factory=list)
    total: int = 0
    message: Optional[str] = None
    detail: Optional[str] = None
    skeleton_rows: int = 0

    @property
    def displayed(self) -> int:
        return len(self.rows)

    @property
    def summary(self) -> str:
        return f"Showing {self.displayed} earthquakes of {self.total}"

    def row_for(self, position: int) -> EventRow:
        """The row at `position` in display order. IndexError if absent."""
        if not 0 <= position < len(self.rows):
            raise IndexError(position)
        return self.rows[position]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "title": self.title,
            "subtitle": self.subtitle,
            "message": self.message,
            "detail": self.detail,
            "skeleton_rows": self.skeleton_rows,
            "displayed": self.displayed,
            "total": self.total,
            "summary": self.summary if self.state is ListState.READY else None,
            "rows": [row.to_dict() for row in self.rows],
        }


def header(month: Optional[str], today_label: Optional[str] = None) -> Tuple[str, str]:
    """(title, subtitle) for the list panel."""
    current = today_label or current_month_label()
    if month is None or month == current:
        return "Recent Earthquake Activity", current
    return "Previous Earthquake Activity", month


def render(
    collection: FeatureCollection,
    is_pending: bool = False,
    error: Optional[str] = None,
    month: Optional[str] = None,
    now: Optional[datetime] = None,
    today_label: Optional[str] = None,
) -> EventListView:
    title, subtitle = header(month, today_label)
    total = len(collection)

    if error:
        return EventListView(
            state=ListState.ERROR,
            title=title,
            subtitle=subtitle,
            total=total,
            message=ERROR_HEADLINE,
            detail=friendly_error(error),
        )

    if is_pending:
        return EventListView(
            state=ListState.PENDING,
            title=title,
            subtitle=subtitle,
            total=total,
            message=LOADING_MESSAGE,
            skeleton_rows=settings.EVENT_LIST_SKELETON_ROWS,
        )

    if collection.is_empty:
        return EventListView(
            state=ListState.EMPTY,
            title=title,
            subtitle=subtitle,
            message=EMPTY_MESSAGE,
        )

    rows = [
        EventRow.from_feature(i, f, group, now=now)
        for i, f, group in select_displayed(collection.features)
    ]
    return EventListView(
        state=ListState.READY,
        title=title,
        subtitle=subtitle,
        rows=rows,
        total=total,
    )
