from __future__ import annotations

import random
from datetime import date, datetime, timedelta
from unittest.mock import patch

import pytest

from trainer_calendar.calendar_index import CalendarIndex
from trainer_calendar.config import Settings
from trainer_calendar.engine import BookingEngine
from trainer_calendar.errors import (
    CalendarError,
    CapacityExceeded,
    EmptyClient,
    NoActivePackage,
    NotFound,
    PackageIncomplete,
    SlotOccupied,
    ValidationError,
)
from trainer_calendar.ledger import PackageLedger
from trainer_calendar.models import BOOKINGS, PACKAGES
from trainer_calendar.store import MemoryStore

MONDAY = date(2025, 5, 5)


def _calendar(*, allow_concurrent: bool = False, renumber: bool = True, clock=None) -> BookingEngine:
    settings = Settings(allow_concurrent_packages=allow_concurrent, renumber_on_cancel=renumber)
    store = MemoryStore()
    ledger = PackageLedger(store, settings, clock=clock or datetime.now)
    return BookingEngine(store, ledger, CalendarIndex(settings), renumber_on_cancel=renumber)


def _days(*dates: datetime):
    it = iter(dates)
    return lambda: next(it)


def _assert_counters_match(engine: BookingEngine) -> None:
    bookings = engine.bookings()
    for p in engine.ledger.packages():
        assert p.used == sum(1 for b in bookings if b.package_id == p.id), p


def test_ivan_end_to_end_scenario() -> None:
    engine = _calendar()
    pkg = engine.ledger.purchase_package("Ivan", 10)

    first = engine.create_booking(MONDAY, 9, "Ivan")
    assert first.session_number == 1
    assert engine.ledger.get(pkg.id).progress == "1/10"

    with pytest.raises(SlotOccupied):
        engine.create_booking(MONDAY, 9, "Ivan")
    assert engine.ledger.get(pkg.id).used == 1

    engine.cancel_booking(first.id)
    assert engine.ledger.get(pkg.id).used == 0

    with pytest.raises(PackageIncomplete):
        engine.ledger.delete_package(pkg.id)
    assert engine.ledger.get(pkg.id).size == 10


def test_slot_is_exclusive_regardless_of_client() -> None:
    engine = _calendar()
    engine.ledger.purchase_package("Anna", 5)
    olga_pkg = engine.ledger.purchase_package("Olga", 5)

    engine.create_booking(MONDAY, 10, "Anna")
    with pytest.raises(SlotOccupied):
        engine.create_booking(MONDAY.isoformat(), 10, "Olga")

    assert engine.ledger.get(olga_pkg.id).used == 0
    assert len(engine.bookings()) == 1


def test_slot_held_by_document_with_foreign_id_is_occupied() -> None:
    engine = _calendar()
    engine.ledger.purchase_package("Anna", 5)
    engine.store.add(BOOKINGS, {"clientName": "Old", "dateISO": "2025-05-05", "hour": 11, "packageId": "gone", "sessionNumber": 1})

    with pytest.raises(SlotOccupied):
        engine.create_booking(MONDAY, 11, "Anna")


def test_no_active_package_without_package_or_when_all_complete() -> None:
    engine = _calendar()
    with pytest.raises(NoActivePackage):
        engine.create_booking(MONDAY, 9, "Nobody")

    engine.ledger.purchase_package("Ivan", 1)
    engine.create_booking(MONDAY, 9, "Ivan")
    with pytest.raises(NoActivePackage):
        engine.create_booking(MONDAY, 10, "Ivan")


def test_blank_client_is_rejected_first() -> None:
    engine = _calendar()
    with pytest.raises(EmptyClient):
        engine.create_booking(MONDAY, 9, "   ")
    assert issubclass(EmptyClient, ValidationError)


def test_hour_outside_grid_or_bad_date_is_rejected() -> None:
    engine = _calendar()
    engine.ledger.purchase_package("Ivan", 5)

    with pytest.raises(ValidationError):
        engine.create_booking(MONDAY, 3, "Ivan")
    with pytest.raises(ValidationError):
        engine.create_booking("05.05.2025", 9, "Ivan")
    assert engine.bookings() == []


def test_fifo_first_package_is_consumed_before_the_second() -> None:
    engine = _calendar(allow_concurrent=True, clock=_days(datetime(2025, 5, 1, 10), datetime(2025, 5, 2, 10)))
    p1 = engine.ledger.purchase_package("A", 5)
    p2 = engine.ledger.purchase_package("A", 5)

    made = [engine.create_booking(MONDAY, 9 + i, "A") for i in range(6)]

    assert [b.package_id for b in made[:5]] == [p1.id] * 5
    assert [b.session_number for b in made[:5]] == [1, 2, 3, 4, 5]
    assert made[5].package_id == p2.id
    assert made[5].session_number == 1
    _assert_counters_match(engine)


def test_shared_package_pools_consumption() -> None:
    engine = _calendar()
    shared = engine.ledger.purchase_package("A, B", 10)

    a = engine.create_booking(MONDAY, 9, "A")
    b = engine.create_booking(MONDAY, 10, "B")

    assert a.package_id == b.package_id == shared.id
    assert (a.session_number, b.session_number) == (1, 2)
    assert engine.ledger.get(shared.id).used == 2


def test_member_of_shared_group_does_not_fall_back_to_solo_package() -> None:
    engine = _calendar(allow_concurrent=True, clock=_days(datetime(2025, 5, 1), datetime(2025, 5, 2)))
    solo = engine.ledger.purchase_package("A", 5)
    shared = engine.ledger.purchase_package(["B", "A"], 5)

    booking = engine.create_booking(MONDAY, 9, "A")

    assert booking.package_id == shared.id
    assert engine.ledger.get(solo.id).used == 0


def test_cancel_releases_one_session_and_never_goes_below_zero() -> None:
    engine = _calendar()
    pkg = engine.ledger.purchase_package("Ivan", 5)
    first = engine.create_booking(MONDAY, 9, "Ivan")
    engine.create_booking(MONDAY, 10, "Ivan")

    engine.cancel_booking(first.id)
    assert engine.ledger.get(pkg.id).used == 1

    # counter drifted to 0 outside the engine
    engine.store.update(PACKAGES, pkg.id, {"used": 0})
    engine.cancel_booking(engine.bookings()[0].id)
    assert engine.ledger.get(pkg.id).used == 0


def test_cancel_unknown_booking_raises_not_found() -> None:
    engine = _calendar()
    with pytest.raises(NotFound):
        engine.cancel_booking("2025-05-05_09")


def test_cancel_succeeds_when_package_was_deleted() -> None:
    engine = _calendar()
    pkg = engine.ledger.purchase_package("Ivan", 1)
    booking = engine.create_booking(MONDAY, 9, "Ivan")
    engine.ledger.delete_package(pkg.id)

    engine.cancel_booking(booking.id)

    assert engine.bookings() == []
    assert engine.ledger.packages() == []


def test_cancel_renumbers_remaining_sessions_densely() -> None:
    engine = _calendar()
    engine.ledger.purchase_package("Ivan", 10)
    made = [engine.create_booking(MONDAY + timedelta(days=i), 9, "Ivan") for i in range(3)]

    engine.cancel_booking(made[1].id)

    assert [b.session_number for b in engine.bookings()] == [1, 2]
    nxt = engine.create_booking(MONDAY + timedelta(days=5), 9, "Ivan")
    assert nxt.session_number == 3


def test_cancel_without_renumbering_keeps_gaps() -> None:
    engine = _calendar(renumber=False)
    engine.ledger.purchase_package("Ivan", 10)
    made = [engine.create_booking(MONDAY + timedelta(days=i), 9, "Ivan") for i in range(3)]

    engine.cancel_booking(made[0].id)

    assert [b.session_number for b in engine.bookings()] == [2, 3]


def test_failed_session_increment_rolls_back_the_booking() -> None:
    engine = _calendar()
    pkg = engine.ledger.purchase_package("Ivan", 1)
    stale = engine.ledger.get(pkg.id)
    engine.store.update(PACKAGES, pkg.id, {"used": 1})

    with patch.object(engine.ledger, "active_package_for", return_value=stale):
        with pytest.raises(CapacityExceeded):
            engine.create_booking(MONDAY, 9, "Ivan")

    assert engine.bookings() == []
    assert engine.ledger.get(pkg.id).used == 1


def test_bookings_for_package_are_sorted_and_filtered_by_client() -> None:
    engine = _calendar()
    shared = engine.ledger.purchase_package("A, B", 10)
    engine.create_booking(MONDAY + timedelta(days=1), 9, "A")
    engine.create_booking(MONDAY, 12, "B")
    engine.create_booking(MONDAY, 10, "A")

    all_sessions = engine.bookings_for_package(shared.id)
    assert [(b.date_iso, b.hour) for b in all_sessions] == [
        ("2025-05-05", 10),
        ("2025-05-05", 12),
        ("2025-05-06", 9),
    ]
    assert [b.client_name for b in engine.bookings_for_package(shared.id, "A")] == ["A", "A"]


def test_bookings_for_week_only_returns_the_anchor_week() -> None:
    engine = _calendar()
    engine.ledger.purchase_package("Ivan", 10)
    engine.create_booking(MONDAY, 9, "Ivan")
    engine.create_booking(MONDAY + timedelta(days=6), 9, "Ivan")
    engine.create_booking(MONDAY + timedelta(days=7), 9, "Ivan")

    week = engine.bookings_for_week(MONDAY + timedelta(days=3))
    assert [b.date_iso for b in week] == ["2025-05-05", "2025-05-11"]


def test_random_create_cancel_sequences_keep_counters_and_slots_consistent() -> None:
    rng = random.Random(7)
    engine = _calendar(allow_concurrent=True)
    for name in ("A", "B", "C"):
        engine.ledger.purchase_package(name, 5)
    engine.ledger.purchase_package("A, B", 10)

    for _ in range(200):
        bookings = engine.bookings()
        try:
            if bookings and rng.random() < 0.4:
                engine.cancel_booking(rng.choice(bookings).id)
            else:
                day = MONDAY + timedelta(days=rng.randrange(7))
                engine.create_booking(day, rng.randrange(9, 24), rng.choice("ABC"))
        except CalendarError:
            pass

        _assert_counters_match(engine)
        slots = [b.slot for b in engine.bookings()]
        assert len(slots) == len(set(slots))
        for p in engine.ledger.packages():
            assert 0 <= p.used <= p.size
