"""
Package initialiser for the `trainer_calendar` helper package.

Exposes the calendar core so the Streamlit app (or a script) can do:

    from trainer_calendar import build_calendar, load_settings

    settings = load_settings()
    engine = build_calendar(settings)
    engine.ledger.purchase_package("Ivan", 10)
    engine.create_booking("2025-05-05", 9, "Ivan")
"""
from .calendar_index import CalendarIndex
from .config import Settings, load_settings
from .engine import BookingEngine
from .ledger import PackageLedger
from .payments import PaymentBook
from .store import Store, open_store


def build_calendar(settings: Settings, store: Store | None = None) -> BookingEngine:
    """Wire store, ledger, index and engine from one ``Settings``."""
    store = store or open_store(settings)
    ledger = PackageLedger(store, settings)
    index = CalendarIndex(settings)
    return BookingEngine(store, ledger, index, renumber_on_cancel=settings.renumber_on_cancel)


__all__ = [
    "BookingEngine",
    "CalendarIndex",
    "PackageLedger",
    "PaymentBook",
    "Settings",
    "Store",
    "build_calendar",
    "load_settings",
    "open_store",
]
