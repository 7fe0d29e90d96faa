"""
Record types stored in the three collections.

The document (dict) form keeps the field names the calendar has always
written to Firestore, so existing data keeps loading:

    bookings  {clientName, dateISO, hour, packageId, sessionNumber}
    packages  {clientName | clientNames, size, used, addedISO, createdAt}
    payments  {clientName, amount, day, month}
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

BOOKINGS = "bookings"
PACKAGES = "packages"
PAYMENTS = "payments"


def slot_id(date_iso: str, hour: int) -> str:
    """Document id of the booking occupying a slot, e.g. ``2025-05-07_09``."""
    return f"{date_iso}_{hour:02d}"


def parse_owner_names(raw: str | Iterable[str]) -> tuple[str, ...]:
    """Split ``"Ivan, Olga"`` (or a list) into trimmed, de-duplicated names."""
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    names: list[str] = []
    for part in parts:
        name = str(part).strip()
        if name and name not in names:
            names.append(name)
    return tuple(names)


@dataclass(frozen=True)
class Booking:
    id: str
    date_iso: str
    hour: int
    client_name: str
    package_id: str
    session_number: int

    @property
    def slot(self) -> tuple[str, int]:
        return (self.date_iso, self.hour)

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Booking":
        return cls(
            id=str(doc["id"]),
            date_iso=str(doc["dateISO"]),
            hour=int(doc["hour"]),
            client_name=str(doc.get("clientName", "")),
            package_id=str(doc.get("packageId", "")),
            session_number=int(doc.get("sessionNumber") or 0),
        )

    def to_doc(self) -> dict[str, Any]:
        return {
            "clientName": self.client_name,
            "dateISO": self.date_iso,
            "hour": self.hour,
            "packageId": self.package_id,
            "sessionNumber": self.session_number,
        }


@dataclass(frozen=True)
class Package:
    id: str
    client_names: tuple[str, ...]
    size: int
    used: int
    added_iso: str
    created_at: str = ""

    @property
    def owners(self) -> frozenset[str]:
        return frozenset(self.client_names)

    @property
    def is_shared(self) -> bool:
        return len(self.client_names) > 1

    @property
    def is_complete(self) -> bool:
        return self.used >= self.size

    @property
    def remaining(self) -> int:
        return max(0, self.size - self.used)

    @property
    def progress(self) -> str:
        return f"{self.used}/{self.size}"

    def belongs_to(self, client: str) -> bool:
        return client in self.owners

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Package":
        names = doc.get("clientNames")
        if isinstance(names, list) and names:
            owners = parse_owner_names(names)
        else:
            owners = parse_owner_names([doc.get("clientName", "")])
        return cls(
            id=str(doc["id"]),
            client_names=owners,
            size=int(doc.get("size") or 0),
            used=int(doc.get("used") or 0),
            added_iso=str(doc.get("addedISO") or ""),
            created_at=str(doc.get("createdAt") or ""),
        )

    def to_doc(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "size": self.size,
            "used": self.used,
            "addedISO": self.added_iso,
            "createdAt": self.created_at,
        }
        if self.is_shared:
            data["clientNames"] = list(self.client_names)
        else:
            data["clientName"] = self.client_names[0]
        return data


@dataclass(frozen=True)
class Payment:
    id: str
    client_name: str
    amount: str
    day: int
    month: str  # YYYY-MM

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Payment":
        return cls(
            id=str(doc["id"]),
            client_name=str(doc.get("clientName", "")),
            amount=str(doc.get("amount", "")),
            day=int(doc.get("day") or 0),
            month=str(doc.get("month", "")),
        )

    def to_doc(self) -> dict[str, Any]:
        return {
            "clientName": self.client_name,
            "amount": self.amount,
            "day": self.day,
            "month": self.month,
        }
