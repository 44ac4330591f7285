"""
Month selector — year-paged month grid with bounded navigation.

Emits None for "track the current month" (which the dashboard turns into a
forced refresh) or a canonical "Month YYYY" label for a pinned month.
Years below the floor are never reachable; with future restriction on,
months after the current one are disabled and later years unreachable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from quakemap.app.core.config import settings
from quakemap.app.core.errors import MonthOutOfRangeError
from quakemap.app.seismic.time_format import (
    MONTH_NAMES,
    feed_now,
    month_label,
    parse_month_label,
)


@dataclass
class MonthCell:
    month: int
    short_name: str
    label: str
    disabled: bool
    selected: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "short_name": self.short_name,
            "label": self.label,
            "disabled": self.disabled,
            "selected": self.selected,
        }


class MonthSelector:
    def __init__(
        self,
        min_year: Optional[int] = None,
        disable_future: Optional[bool] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.min_year = settings.MONTH_PICKER_MIN_YEAR if min_year is None else min_year
        self.disable_future = (
            settings.MONTH_PICKER_DISABLE_FUTURE if disable_future is None else disable_future
        )
        self._today = today or (lambda: feed_now().date())
        self.year = max(self._today().year, self.min_year)
        self.selected: Optional[str] = None

    @property
    def today(self) -> date:
        return self._today()

    @property
    def max_year(self) -> Optional[int]:
        return self.today.year if self.disable_future else None

    # ── Navigation ──

    @property
    def can_go_previous(self) -> bool:
        return self.year > self.min_year

    @property
    def can_go_next(self) -> bool:
        return self.max_year is None or self.year < self.max_year

    def previous_year(self) -> int:
        if self.can_go_previous:
            self.year -= 1
        return self.year

    def next_year(self) -> int:
        if self.can_go_next:
            self.year += 1
        return self.year

    def clamp_year(self, year: int) -> int:
        year = max(int(year), self.min_year)
        if self.max_year is not None:
            year = min(year, self.max_year)
        return year

    def show_year(self, year: int) -> int:
        """Jump to `year`, clamped into the navigable range."""
        self.year = self.clamp_year(year)
        return self.year

    # ── Grid ──

    def is_disabled(self, year: int, month: int) -> bool:
        if year < self.min_year:
            return True
        if self.disable_future:
            today = self.today
            if (year, month) > (today.year, today.month):
                return True
        return False

    def grid(self, year: Optional[int] = None) -> List[MonthCell]:
        year = self.year if year is None else year
        today = self.today
        current = (today.year, today.month)
        cells = []
        for i, name in enumerate(MONTH_NAMES, start=1):
            label = f"{name} {year}"
            if self.selected is None:
                selected = (year, i) == current
            else:
                selected = label == self.selected
            cells.append(MonthCell(
                month=i,
                short_name=name[:3],
                label=label,
                disabled=self.is_disabled(year, i),
                selected=selected,
            ))
        return cells

    # ── Selection ──

    def select(self, year: int, month: int) -> Optional[str]:
        """
        Pick a grid cell.

        Returns None when the pick is the current month, the canonical
        label otherwise. Raises MonthOutOfRangeError for disabled cells.
        """
        if not 1 <= month <= 12:
            raise MonthOutOfRangeError(f"Month must be 1-12, got {month}", year=year, month=month)
        label = month_label(date(year, month, 1))
        if self.is_disabled(year, month):
            raise MonthOutOfRangeError(
                f"{label} is outside the selectable range",
                min_year=self.min_year,
                disable_future=self.disable_future,
            )

        today = self.today
        if (year, month) == (today.year, today.month):
            self.selected = None
        else:
            self.selected = label
        self.year = year
        return self.selected

    def resolve(self, label: Optional[str]) -> Optional[str]:
        """Validate a typed "Month YYYY" label and select it."""
        if label is None:
            return self.clear()
        try:
            first = parse_month_label(label)
        except ValueError as e:
            raise MonthOutOfRangeError(str(e), label=label) from e
        return self.select(first.year, first.month)

    def clear(self) -> None:
        """Back to tracking the current month."""
        self.selected = None
        self.year = max(self.today.year, self.min_year)
        return None

    def to_dict(self, year: Optional[int] = None) -> Dict[str, Any]:
        year = self.year if year is None else year
        return {
            "year": year,
            "min_year": self.min_year,
            "max_year": self.max_year,
            "can_go_previous": year > self.min_year,
            "can_go_next": self.max_year is None or year < self.max_year,
            "selected": self.selected,
            "months": [cell.to_dict() for cell in self.grid(year)],
        }
