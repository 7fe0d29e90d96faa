"""
Booking Engine: the only place bookings are created or cancelled.

``create_booking`` writes the booking document and bumps the package
counter inside one store transaction.  The booking document id is the slot
id (``YYYY-MM-DD_HH``), which makes "slot is free" and "write booking" a
single create-if-absent inside that transaction.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from trainer_calendar.calendar_index import CalendarIndex
from trainer_calendar.errors import EmptyClient, NoActivePackage, NotFound, SlotOccupied, ValidationError
from trainer_calendar.ledger import PackageLedger
from trainer_calendar.models import BOOKINGS, Booking, slot_id
from trainer_calendar.store import Store, Transaction

logger = logging.getLogger(__name__)


def _date_iso(day: date | str) -> str:
    if isinstance(day, datetime):
        day = day.date()
    if isinstance(day, date):
        return day.isoformat()
    try:
        return date.fromisoformat(str(day).strip()).isoformat()
    except ValueError as e:
        raise ValidationError(f"Invalid date: {day!r}. Expected YYYY-MM-DD.") from e


def _sort_key(b: Booking) -> tuple[str, int]:
    return (b.date_iso, b.hour)


class BookingEngine:
    def __init__(
        self,
        store: Store,
        ledger: PackageLedger,
        index: CalendarIndex,
        renumber_on_cancel: bool = True,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.index = index
        self.renumber_on_cancel = renumber_on_cancel

    # --- reads ---------------------------------------------------------

    def bookings(self) -> list[Booking]:
        return sorted((Booking.from_doc(d) for d in self.store.list(BOOKINGS)), key=_sort_key)

    def get(self, booking_id: str) -> Booking:
        doc = self.store.get(BOOKINGS, booking_id)
        if doc is None:
            raise NotFound("booking", booking_id)
        return Booking.from_doc(doc)

    def bookings_at(self, day: date | str, hour: int) -> list[Booking]:
        date_iso = _date_iso(day)
        on_day = [Booking.from_doc(d) for d in self.store.where(BOOKINGS, "dateISO", date_iso)]
        return self.index.bookings_at(on_day, date_iso, hour)

    def bookings_for_week(self, anchor: date) -> list[Booking]:
        days = {d.isoformat() for d in self.index.week_days(anchor)}
        return [b for b in self.bookings() if b.date_iso in days]

    def bookings_for_package(self, package_id: str, client_name: str | None = None) -> list[Booking]:
        found = (Booking.from_doc(d) for d in self.store.where(BOOKINGS, "packageId", package_id))
        if client_name is not None:
            found = (b for b in found if b.client_name == client_name)
        return sorted(found, key=_sort_key)

    # --- mutations -----------------------------------------------------

    def create_booking(self, day: date | str, hour: Any, client_name: str) -> Booking:
        name = (client_name or "").strip()
        if not name:
            raise EmptyClient()

        date_iso = _date_iso(day)
        try:
            hour = int(hour)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid hour: {hour!r}") from e
        if not self.index.is_bookable(hour):
            raise ValidationError(f"Hour {hour} is outside the bookable range")

        package = self.ledger.active_package_for(name)
        if package is None:
            logger.info("Booking rejected: %s has no active package", name)
            raise NoActivePackage(name)

        # Catches slots held by documents with a non-slot id as well.
        if self.bookings_at(date_iso, hour):
            logger.info("Booking rejected: %s %02d:00 is occupied", date_iso, hour)
            raise SlotOccupied(date_iso, hour)

        doc_id = slot_id(date_iso, hour)

        def body(txn: Transaction) -> Booking:
            if txn.get(BOOKINGS, doc_id) is not None:
                raise SlotOccupied(date_iso, hour)
            consumed = self.ledger.consume_session(package.id, txn)
            booking = Booking(
                id=doc_id,
                date_iso=date_iso,
                hour=hour,
                client_name=name,
                package_id=package.id,
                session_number=consumed.used,
            )
            txn.set(BOOKINGS, doc_id, booking.to_doc())
            return booking

        booking = self.store.run_transaction(body)
        logger.info(
            "Booked %s %02d:00 for %s (package %s, session %d/%d)",
            date_iso,
            hour,
            name,
            package.id,
            booking.session_number,
            package.size,
        )
        return booking

    def cancel_booking(self, booking_id: str) -> Booking:
        def body(txn: Transaction) -> tuple[Booking, int]:
            doc = txn.get(BOOKINGS, booking_id)
            if doc is None:
                raise NotFound("booking", booking_id)
            booking = Booking.from_doc(doc)

            siblings: list[Booking] = []
            if self.renumber_on_cancel and booking.package_id:
                siblings = [
                    Booking.from_doc(d)
                    for d in txn.where(BOOKINGS, "packageId", booking.package_id)
                    if d["id"] != booking_id
                ]
            if booking.package_id:
                self.ledger.release_session(booking.package_id, txn)

            txn.delete(BOOKINGS, booking_id)
            return booking, self._renumber(txn, siblings)

        booking, renumbered = self.store.run_transaction(body)
        logger.info(
            "Cancelled %s %02d:00 for %s (package %s, %d renumbered)",
            booking.date_iso,
            booking.hour,
            booking.client_name,
            booking.package_id,
            renumbered,
        )
        return booking

    @staticmethod
    def _renumber(txn: Transaction, bookings: list[Booking]) -> int:
        changed = 0
        for number, b in enumerate(sorted(bookings, key=_sort_key), start=1):
            if b.session_number != number:
                txn.update(BOOKINGS, b.id, {"sessionNumber": number})
                changed += 1
        return changed
