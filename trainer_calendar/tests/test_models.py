from __future__ import annotations

from trainer_calendar.models import Booking, Package, parse_owner_names, slot_id


def test_parse_owner_names_trims_and_deduplicates() -> None:
    assert parse_owner_names(" Ivan, Olga ,,Ivan ") == ("Ivan", "Olga")
    assert parse_owner_names(["Olga", " "]) == ("Olga",)
    assert parse_owner_names("") == ()


def test_solo_and_shared_package_documents() -> None:
    solo = Package.from_doc({"id": "p1", "clientName": "Ivan", "size": 10, "used": 2, "addedISO": "2025-05-01"})
    shared = Package.from_doc({"id": "p2", "clientNames": ["Olga", "Petr"], "size": 5, "addedISO": "2025-05-02"})

    assert not solo.is_shared and solo.remaining == 8
    assert solo.to_doc()["clientName"] == "Ivan"
    assert "clientNames" not in solo.to_doc()

    assert shared.is_shared and shared.used == 0
    assert shared.owners == frozenset({"Petr", "Olga"})
    assert shared.to_doc()["clientNames"] == ["Olga", "Petr"]
    assert shared.belongs_to("Petr") and not shared.belongs_to("Ivan")


def test_booking_document_uses_legacy_field_names() -> None:
    booking = Booking(id=slot_id("2025-05-05", 9), date_iso="2025-05-05", hour=9, client_name="Ivan", package_id="p1", session_number=3)

    assert booking.id == "2025-05-05_09"
    assert booking.to_doc() == {
        "clientName": "Ivan",
        "dateISO": "2025-05-05",
        "hour": 9,
        "packageId": "p1",
        "sessionNumber": 3,
    }
    assert Booking.from_doc({"id": booking.id, **booking.to_doc()}) == booking
