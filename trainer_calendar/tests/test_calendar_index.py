from __future__ import annotations

from datetime import date

from trainer_calendar.calendar_index import CalendarIndex, format_hour
from trainer_calendar.config import Settings
from trainer_calendar.models import Booking


def _booking(date_iso: str, hour: int, client: str = "Ivan") -> Booking:
    return Booking(id=f"{date_iso}_{hour:02d}", date_iso=date_iso, hour=hour, client_name=client, package_id="p", session_number=1)


def test_week_starts_on_monday_and_spans_seven_days() -> None:
    index = CalendarIndex(Settings())
    days = index.week_days(date(2025, 5, 8))  # Thursday

    assert days[0] == date(2025, 5, 5)
    assert days[-1] == date(2025, 5, 11)
    assert len(days) == 7
    assert index.week_start(date(2025, 5, 5)) == date(2025, 5, 5)
    assert index.week_start(date(2025, 5, 11)) == date(2025, 5, 5)


def test_configurable_week_start_day() -> None:
    index = CalendarIndex(Settings(week_start=6))
    assert index.week_start(date(2025, 5, 8)) == date(2025, 5, 4)  # Sunday


def test_visible_weeks_are_previous_current_and_next() -> None:
    index = CalendarIndex(Settings())
    weeks = index.visible_weeks(date(2025, 5, 8))

    assert [w[0] for w in weeks] == [date(2025, 4, 28), date(2025, 5, 5), date(2025, 5, 12)]
    assert index.shift_week(date(2025, 5, 8), -1) == date(2025, 5, 1)


def test_hour_rows_carry_both_zone_labels() -> None:
    index = CalendarIndex(Settings())
    rows = index.hour_rows()

    assert len(rows) == 15
    assert rows[0] == (9, "09:00", "05:00")
    assert rows[-1] == (23, "23:00", "19:00")


def test_secondary_label_wraps_around_midnight() -> None:
    index = CalendarIndex(Settings(first_hour=0, hour_count=4, secondary_tz_offset=-4))
    assert index.hour_rows()[2] == (2, "02:00", "22:00")
    assert format_hour(25) == "01:00"


def test_out_of_range_booking_is_still_shown() -> None:
    index = CalendarIndex(Settings())
    days = index.week_days(date(2025, 5, 5))
    bookings = [_booking("2025-05-06", 7), _booking("2025-05-20", 6), _booking("2025-05-06", 9)]

    hours = index.grid_hours(bookings, days)

    assert hours[0] == 7
    assert 6 not in hours
    assert hours[1:] == list(range(9, 24))
    assert not index.is_bookable(7)


def test_slot_lookup() -> None:
    index = CalendarIndex(Settings())
    bookings = [_booking("2025-05-05", 9, "Ivan"), _booking("2025-05-05", 10, "Olga")]

    assert index.by_slot(bookings)[("2025-05-05", 10)].client_name == "Olga"
    assert index.bookings_at(bookings, "2025-05-06", 10) == []
    assert index.bookings_at(bookings, "2025-05-05", 9) == [bookings[0]]
    assert set(index.by_slot(bookings)) == {("2025-05-05", 9), ("2025-05-05", 10)}
    assert index.is_weekend(date(2025, 5, 10))
    assert not index.is_weekend(date(2025, 5, 9))
