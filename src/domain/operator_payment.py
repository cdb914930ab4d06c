from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from .base_types import Currency, MovementId, OperationId, OperatorId, OperatorPaymentId, RecurringPaymentId, UserId

AIR_PAYMENT_TERM = timedelta(days=10)
HOTEL_PAYMENT_LEAD = timedelta(days=30)
DEFAULT_PAYMENT_TERM = timedelta(days=30)


class ProductType(StrEnum):
    AEREO = "AEREO"
    HOTEL = "HOTEL"
    PAQUETE = "PAQUETE"
    CRUCERO = "CRUCERO"
    OTRO = "OTRO"


class OperatorPaymentStatus(StrEnum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class OperatorPayment(BaseModel):
    id: OperatorPaymentId = OperatorPaymentId(Field(default_factory=uuid4))
    operation_id: OperationId | None
    operator_id: OperatorId
    amount: Decimal
    currency: Currency
    due_date: date
    status: OperatorPaymentStatus = OperatorPaymentStatus.PENDING
    paid_amount: Decimal = Decimal(0)
    ledger_movement_id: MovementId | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _validate_amount(self) -> OperatorPayment:
        if self.amount <= 0:
            raise ValueError("OperatorPayment.amount must be > 0")
        return self


def calculate_due_date(
    product_type: ProductType | None,
    purchase_date: date | None = None,
    checkin_date: date | None = None,
    departure_date: date | None = None,
    *,
    today: date | None = None,
) -> date:
    """Supplier payment terms by product category.

    Air tickets are due 10 days after purchase, hotels 30 days before
    check-in, anything else on departure. Without usable dates the payment is
    due 30 days from today.
    """
    if product_type == ProductType.AEREO and purchase_date is not None:
        return purchase_date + AIR_PAYMENT_TERM
    if product_type == ProductType.HOTEL and checkin_date is not None:
        return checkin_date - HOTEL_PAYMENT_LEAD
    if departure_date is not None:
        return departure_date
    return (today or date.today()) + DEFAULT_PAYMENT_TERM


class RecurringFrequency(StrEnum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


_DAY_STEPS = {
    RecurringFrequency.WEEKLY: timedelta(days=7),
    RecurringFrequency.BIWEEKLY: timedelta(days=14),
}
_MONTH_STEPS = {
    RecurringFrequency.MONTHLY: 1,
    RecurringFrequency.QUARTERLY: 3,
    RecurringFrequency.YEARLY: 12,
}


class RecurringPayment(BaseModel):
    """A supplier charge that repeats on a schedule, e.g. rent or a monthly fee."""

    id: RecurringPaymentId = RecurringPaymentId(Field(default_factory=uuid4))
    operator_id: OperatorId
    amount: Decimal
    currency: Currency
    frequency: RecurringFrequency
    start_date: date
    end_date: date | None = None
    next_due_date: date
    last_generated_date: date | None = None
    is_active: bool = True
    description: str
    notes: str | None = None
    invoice_number: str | None = None
    reference: str | None = None
    created_by: UserId | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _validate(self) -> RecurringPayment:
        if self.amount <= 0:
            raise ValueError("RecurringPayment.amount must be > 0")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("RecurringPayment.end_date must not be before start_date")
        return self


def add_months(day: date, months: int, *, anchor_day: int | None = None) -> date:
    """Move ``day`` by whole months, clamping to the last day of short months.

    ``anchor_day`` is the day of month the schedule was set up on, so a series
    started on the 31st goes Jan 31, Feb 28, Mar 31 instead of drifting to the 28th.
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor_day or day.day, last_day))


def calculate_next_due_date(last_due: date, frequency: RecurringFrequency, *, anchor_day: int | None = None) -> date:
    if frequency in _DAY_STEPS:
        return last_due + _DAY_STEPS[frequency]
    return add_months(last_due, _MONTH_STEPS[frequency], anchor_day=anchor_day)


def should_generate_payment(recurring: RecurringPayment, today: date) -> bool:
    if not recurring.is_active:
        return False
    if recurring.start_date > today or recurring.next_due_date > today:
        return False
    return recurring.end_date is None or recurring.end_date >= today
