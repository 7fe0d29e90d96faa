"""
Calendar Index: pure lookups over a list of bookings plus week arithmetic.

Holds no state of its own besides the grid configuration.  Hours are always
base-zone integers; the secondary label is display-only.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable

from trainer_calendar.config import Settings
from trainer_calendar.models import Booking


def format_hour(hour: int) -> str:
    return f"{hour % 24:02d}:00"


class CalendarIndex:
    def __init__(self, settings: Settings) -> None:
        self.hours = settings.hours
        self.week_start_day = settings.week_start
        self.secondary_offset = settings.secondary_tz_offset
        self.base_label = settings.base_zone_label
        self.secondary_label = settings.secondary_zone_label

    # --- week window ---------------------------------------------------

    def week_start(self, anchor: date) -> date:
        return anchor - timedelta(days=(anchor.weekday() - self.week_start_day) % 7)

    def week_days(self, anchor: date) -> list[date]:
        start = self.week_start(anchor)
        return [start + timedelta(days=i) for i in range(7)]

    @staticmethod
    def shift_week(anchor: date, weeks: int) -> date:
        return anchor + timedelta(weeks=weeks)

    def visible_weeks(self, anchor: date) -> list[list[date]]:
        """Previous, current and next week around ``anchor`` (the swipe strip)."""
        return [self.week_days(self.shift_week(anchor, n)) for n in (-1, 0, 1)]

    @staticmethod
    def is_weekend(day: date) -> bool:
        return day.weekday() >= 5

    # --- hours ---------------------------------------------------------

    def is_bookable(self, hour: int) -> bool:
        return hour in self.hours

    def secondary_hour(self, hour: int) -> int:
        return (hour + self.secondary_offset) % 24

    def hour_rows(self, hours: Iterable[int] | None = None) -> list[tuple[int, str, str]]:
        """``(hour, base label, secondary label)`` for every grid row."""
        return [
            (h, format_hour(h), format_hour(self.secondary_hour(h)))
            for h in (self.hours if hours is None else hours)
        ]

    def grid_hours(self, bookings: Iterable[Booking], days: Iterable[date]) -> list[int]:
        """Bookable hours plus any out-of-range hour holding a booking on ``days``."""
        shown = {d.isoformat() for d in days}
        extra = {b.hour for b in bookings if b.date_iso in shown and b.hour not in self.hours}
        return sorted(set(self.hours) | extra)

    # --- slot lookups --------------------------------------------------

    @staticmethod
    def bookings_at(bookings: Iterable[Booking], day: date | str, hour: int) -> list[Booking]:
        date_iso = day.isoformat() if isinstance(day, date) else day
        return [b for b in bookings if b.date_iso == date_iso and b.hour == hour]

    @staticmethod
    def by_slot(bookings: Iterable[Booking]) -> dict[tuple[str, int], Booking]:
        return {b.slot: b for b in bookings}
