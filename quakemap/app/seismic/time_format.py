"""
Time formatting for feed timestamps and month labels.

The feed writes wall-clock timestamps as "DD Month YYYY - HH:MM AM/PM"
(e.g. "05 March 2024 - 02:30 PM"), in the feed's local zone. Month labels
are always "Month YYYY" (e.g. "March 2024").

Nothing here raises on bad input from the feed: an unparseable timestamp
yields None / "Unknown". Month labels typed by a caller are validated by
parse_month_label(), which does raise.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

from quakemap.app.core.config import settings

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

_DATETIME_RE = re.compile(r"^(\d{2}) (\w+) (\d{4}) - (\d{2}):(\d{2}) (AM|PM)$")
_MONTH_LABEL_RE = re.compile(r"^([A-Za-z]+) (\d{4})$")


def _month_index(name: str) -> Optional[int]:
    lowered = name.lower()
    for i, month in enumerate(MONTH_NAMES):
        if month.lower() == lowered:
            return i + 1
    return None


def parse_event_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a feed timestamp into a naive datetime, or None."""
    if not value or not isinstance(value, str):
        return None
    match = _DATETIME_RE.match(value.strip())
    if not match:
        return None

    day, month_name, year, hour, minute, ampm = match.groups()
    month = _month_index(month_name)
    if month is None:
        return None

    hour_num = int(hour)
    if ampm == "PM" and hour_num != 12:
        hour_num += 12
    if ampm == "AM" and hour_num == 12:
        hour_num = 0

    try:
        return datetime(int(year), month, int(day), hour_num, int(minute))
    except ValueError:
        # e.g. "31 February 2024" or "13:75 PM"
        return None


def feed_now() -> datetime:
    """Current wall-clock time in the feed's zone, as a naive datetime."""
    return datetime.now(ZoneInfo(settings.FEED_TIMEZONE)).replace(tzinfo=None)


def time_ago(value: Optional[str], now: Optional[datetime] = None) -> str:
    """
    Relative label for a feed timestamp.

        < 1 min  → "Just now"
        < 60 min → "Nm ago"
        < 24 h   → "Nh ago"
        else     → "Nd ago"

    Timestamps in the future count as "Just now".
    """
    moment = parse_event_datetime(value)
    if moment is None:
        return "Unknown"

    reference = now if now is not None else feed_now()
    elapsed = (reference - moment).total_seconds()
    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)
    days = int(elapsed // 86400)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{days}d ago"


def month_label(value: Union[date, datetime]) -> str:
    """date(2024, 3, 9) → "March 2024"."""
    return f"{MONTH_NAMES[value.month - 1]} {value.year}"


def current_month_label(today: Optional[date] = None) -> str:
    return month_label(today or feed_now().date())


def parse_month_label(label: str) -> date:
    """
    "March 2024" → date(2024, 3, 1).

    Raises ValueError for anything that is not a full month name followed
    by a 4-digit year. Month names are matched case-insensitively.
    """
    match = _MONTH_LABEL_RE.match(label.strip()) if isinstance(label, str) else None
    if not match:
        raise ValueError(f"Invalid month label: {label!r} (expected 'Month YYYY')")
    month = _month_index(match.group(1))
    if month is None:
        raise ValueError(f"Unknown month name in {label!r}")
    return date(int(match.group(2)), month, 1)


def canonical_month_label(label: str) -> str:
    """Normalise capitalisation: "march 2024" → "March 2024"."""
    return month_label(parse_month_label(label))


def is_month_label(label: Optional[str]) -> bool:
    if label is None:
        return False
    try:
        parse_month_label(label)
    except ValueError:
        return False
    return True
