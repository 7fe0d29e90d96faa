"""
Error taxonomy shared by the ledger, the booking engine and the adapters.

Every domain error derives from ``CalendarError`` (itself a ``ValueError``),
so the Streamlit surface can keep the simple pattern

    try:
        engine.create_booking(...)
    except ValueError as e:
        st.error(str(e))

Storage failures are *not* domain errors: they surface as
``PersistenceError`` (a ``RuntimeError``) and may be retried as-is.
"""
from __future__ import annotations


class CalendarError(ValueError):
    """Base class for rejected calendar operations (never retryable as-is)."""


class ValidationError(CalendarError):
    """Bad input: empty name, unknown package size, invalid day, ..."""


class EmptyClient(ValidationError):
    def __init__(self) -> None:
        super().__init__("Client name is empty")


class NoActivePackage(CalendarError):
    def __init__(self, client: str) -> None:
        super().__init__(f"{client} has no package with sessions left")
        self.client = client


class SlotOccupied(CalendarError):
    def __init__(self, date_iso: str, hour: int) -> None:
        super().__init__(f"Slot {date_iso} {hour:02d}:00 is already booked")
        self.date_iso = date_iso
        self.hour = hour


class CapacityExceeded(CalendarError):
    def __init__(self, package_id: str, size: int) -> None:
        super().__init__(f"Package {package_id} already used {size}/{size}")
        self.package_id = package_id


class IncompletePackageExists(CalendarError):
    def __init__(self, client: str, used: int, size: int) -> None:
        super().__init__(f"{client} still has an unfinished package ({used}/{size})")
        self.client = client


class PackageIncomplete(CalendarError):
    def __init__(self, package_id: str, used: int, size: int) -> None:
        super().__init__(f"Package {package_id} is not finished yet ({used}/{size})")
        self.package_id = package_id


class ClientHasActivePackages(CalendarError):
    def __init__(self, client: str) -> None:
        super().__init__(f"{client} still has unfinished packages")
        self.client = client


class NotFound(CalendarError):
    def __init__(self, kind: str, doc_id: str) -> None:
        super().__init__(f"No {kind} with id {doc_id!r}")
        self.kind = kind
        self.doc_id = doc_id


class PersistenceError(RuntimeError):
    """Network / storage failure; the UI may offer a retry."""
