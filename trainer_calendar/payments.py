from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from datetime import date

from trainer_calendar.errors import NotFound, ValidationError
from trainer_calendar.models import PAYMENTS, Payment
from trainer_calendar.store import Store, new_id

logger = logging.getLogger(__name__)


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def _parse_month(month: str) -> tuple[int, int]:
    try:
        year, mon = (int(p) for p in month.split("-"))
    except ValueError as e:
        raise ValidationError(f"Invalid month: {month!r}. Expected YYYY-MM.") from e
    if not 1 <= mon <= 12:
        raise ValidationError(f"Invalid month: {month!r}. Expected YYYY-MM.")
    return year, mon


class PaymentBook:
    """Informational payment notes per client, shown against the viewed month."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def record(self, client_name: str, amount: str | int | float, day: int, month: str) -> Payment:
        name = (client_name or "").strip()
        if not name:
            raise ValidationError("Client name is empty")
        amount_text = str(amount).strip() if amount is not None else ""
        if not amount_text:
            raise ValidationError("Payment amount is empty")

        year, mon = _parse_month(month)
        last_day = calendar.monthrange(year, mon)[1]
        try:
            day = int(day)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid day: {day!r}") from e
        if not 1 <= day <= last_day:
            raise ValidationError(f"Day must be within 1..{last_day} for {month}")

        payment = Payment(
            id=new_id(),
            client_name=name,
            amount=amount_text,
            day=day,
            month=f"{year:04d}-{mon:02d}",
        )
        self._store.add(PAYMENTS, payment.to_doc(), doc_id=payment.id)
        logger.info("Payment %s recorded: %s %s on %s-%02d", payment.id, name, amount_text, payment.month, day)
        return payment

    def for_month(self, month: str) -> dict[str, list[Payment]]:
        year, mon = _parse_month(month)
        key = f"{year:04d}-{mon:02d}"
        grouped: dict[str, list[Payment]] = defaultdict(list)
        for doc in self._store.where(PAYMENTS, "month", key):
            payment = Payment.from_doc(doc)
            grouped[payment.client_name].append(payment)
        return {name: sorted(items, key=lambda p: p.day) for name, items in grouped.items()}

    def delete(self, payment_id: str) -> None:
        if self._store.get(PAYMENTS, payment_id) is None:
            raise NotFound("payment", payment_id)
        self._store.delete(PAYMENTS, payment_id)
        logger.info("Payment %s deleted", payment_id)
