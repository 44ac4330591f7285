"""
test_time_format.py — Tests for feed timestamp parsing and month labels.

Covers:
    • "DD Month YYYY - HH:MM AM/PM" parsing, including 12 AM / 12 PM
    • Relative time buckets (Just now, Nm, Nh, Nd ago)
    • Month label formatting and validation

Run with:
    pytest tests/test_time_format.py -v
"""

from __future__ import annotations

from datetime import date, datetime

import pytest

from quakemap.app.seismic.time_format import (
    canonical_month_label,
    current_month_label,
    is_month_label,
    month_label,
    parse_event_datetime,
    parse_month_label,
    time_ago,
)


NOW = datetime(2024, 3, 15, 14, 45)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Timestamp parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestParseEventDatetime:

    def test_afternoon(self):
        assert parse_event_datetime("15 March 2024 - 02:30 PM") == datetime(2024, 3, 15, 14, 30)

    def test_morning(self):
        assert parse_event_datetime("05 January 2023 - 09:05 AM") == datetime(2023, 1, 5, 9, 5)

    def test_noon_is_twelve(self):
        assert parse_event_datetime("01 June 2024 - 12:10 PM").hour == 12

    def test_midnight_is_zero(self):
        assert parse_event_datetime("01 June 2024 - 12:10 AM").hour == 0

    def test_month_name_case_insensitive(self):
        assert parse_event_datetime("15 march 2024 - 02:30 PM") == datetime(2024, 3, 15, 14, 30)

    @pytest.mark.parametrize("value", [
        "garbage",
        "",
        None,
        "2024-03-15T14:30:00",
        "15 Foo 2024 - 02:30 PM",
        "31 February 2024 - 02:30 PM",
        "5 March 2024 - 02:30 PM",
    ])
    def test_unparseable_is_none(self, value):
        assert parse_event_datetime(value) is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Relative time
# ═══════════════════════════════════════════════════════════════════════════

class TestTimeAgo:

    def test_fifteen_minutes(self):
        assert time_ago("15 March 2024 - 02:30 PM", now=NOW) == "15m ago"

    def test_same_minute_is_just_now(self):
        assert time_ago("15 March 2024 - 02:45 PM", now=NOW) == "Just now"

    def test_future_is_just_now(self):
        assert time_ago("15 March 2024 - 03:45 PM", now=NOW) == "Just now"

    def test_fifty_nine_minutes(self):
        assert time_ago("15 March 2024 - 01:46 PM", now=NOW) == "59m ago"

    def test_hours(self):
        assert time_ago("15 March 2024 - 09:45 AM", now=NOW) == "5h ago"

    def test_hours_floor(self):
        assert time_ago("14 March 2024 - 02:46 PM", now=NOW) == "23h ago"

    def test_days(self):
        assert time_ago("12 March 2024 - 02:45 PM", now=NOW) == "3d ago"

    def test_garbage_is_unknown(self):
        assert time_ago("garbage", now=NOW) == "Unknown"

    def test_none_is_unknown(self):
        assert time_ago(None, now=NOW) == "Unknown"


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Month labels
# ═══════════════════════════════════════════════════════════════════════════

class TestMonthLabels:

    def test_month_label(self):
        assert month_label(date(2024, 3, 9)) == "March 2024"

    def test_current_month_label_uses_given_day(self):
        assert current_month_label(date(2025, 12, 31)) == "December 2025"

    def test_parse(self):
        assert parse_month_label("March 2024") == date(2024, 3, 1)

    def test_canonical_capitalisation(self):
        assert canonical_month_label("  march 2024 ") == "March 2024"

    @pytest.mark.parametrize("label", ["Mar 2024", "March 24", "2024 March", "", "Smarch 2024"])
    def test_invalid_labels_raise(self, label):
        with pytest.raises(ValueError):
            parse_month_label(label)

    def test_is_month_label(self):
        assert is_month_label("July 2019")
        assert not is_month_label("July")
        assert not is_month_label(None)
