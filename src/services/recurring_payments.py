"""Scheduled supplier charges (rent, subscriptions, monthly operator fees).

Each due date of a recurring payment is turned into a regular operator
payment without an operation, after which the schedule moves to its next
due date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.repositories import RecurringPaymentRepository
from domain.base_types import Currency, OperatorId, OperatorPaymentId, RecurringPaymentId, UserId
from domain.errors import AccountingError, NotFoundError, ValidationError
from domain.operator_payment import (
    RecurringFrequency,
    RecurringPayment,
    calculate_next_due_date,
    should_generate_payment,
)

from .operator_payments import OperatorPaymentService

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "amount",
        "currency",
        "frequency",
        "start_date",
        "end_date",
        "next_due_date",
        "is_active",
        "description",
        "notes",
        "invoice_number",
        "reference",
    }
)


@dataclass
class GenerationResult:
    generated: int = 0
    errors: list[str] = field(default_factory=list)


class RecurringPaymentService:
    def __init__(
        self,
        session: Session,
        *,
        operator_payments: OperatorPaymentService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._recurring = RecurringPaymentRepository(session)
        self._operator_payments = operator_payments or OperatorPaymentService(session, clock=self._clock)

    def create_recurring_payment(
        self,
        operator_id: OperatorId,
        amount: Decimal,
        currency: Currency,
        frequency: RecurringFrequency,
        start_date: date,
        description: str,
        *,
        end_date: date | None = None,
        notes: str | None = None,
        invoice_number: str | None = None,
        reference: str | None = None,
        user_id: UserId | None = None,
    ) -> RecurringPaymentId:
        if amount <= 0:
            raise ValidationError(f"Recurring payment amount must be positive, got {amount}")
        if end_date is not None and end_date < start_date:
            raise ValidationError(f"Recurring payment cannot end ({end_date}) before it starts ({start_date})")

        recurring = self._recurring.create(
            RecurringPayment(
                operator_id=operator_id,
                amount=amount,
                currency=currency,
                frequency=frequency,
                start_date=start_date,
                end_date=end_date,
                next_due_date=start_date,
                description=description,
                notes=notes,
                invoice_number=invoice_number,
                reference=reference,
                created_by=user_id,
            ),
            now=self._clock(),
        )
        logger.info(
            "Recurring payment %s created: %s %s %s to %s from %s",
            recurring.id,
            frequency,
            amount,
            currency,
            operator_id,
            start_date,
        )
        return recurring.id

    def get_recurring_payment(self, recurring_id: RecurringPaymentId) -> RecurringPayment:
        recurring = self._recurring.get(recurring_id)
        if recurring is None:
            raise NotFoundError("Recurring payment", recurring_id)
        return recurring

    def list_recurring_payments(
        self, operator_id: OperatorId | None = None, is_active: bool | None = None
    ) -> list[RecurringPayment]:
        return self._recurring.list_filtered(operator_id, is_active)

    def update_recurring_payment(self, recurring_id: RecurringPaymentId, **changes: Any) -> RecurringPayment:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Recurring payment fields cannot be updated: {', '.join(sorted(unknown))}")

        current = self.get_recurring_payment(recurring_id)
        try:
            updated = RecurringPayment.model_validate({**current.model_dump(), **changes})
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return self._save(updated)

    def deactivate_recurring_payment(self, recurring_id: RecurringPaymentId) -> RecurringPayment:
        current = self.get_recurring_payment(recurring_id)
        deactivated = self._save(current.model_copy(update={"is_active": False}))
        logger.info("Recurring payment %s deactivated", recurring_id)
        return deactivated

    def generate_from_recurring(self, recurring_id: RecurringPaymentId) -> OperatorPaymentId:
        recurring = self.get_recurring_payment(recurring_id)
        today = self._clock().date()
        if not should_generate_payment(recurring, today):
            raise ValidationError(f"Recurring payment {recurring_id} is not due on {today}")

        due_date = recurring.next_due_date
        payment_id = self._operator_payments.create_payment(
            None,
            recurring.operator_id,
            recurring.amount,
            recurring.currency,
            due_date=due_date,
            notes=f"Pago recurrente: {recurring.description} ({recurring.frequency})",
        )
        next_due_date = calculate_next_due_date(due_date, recurring.frequency, anchor_day=recurring.start_date.day)
        self._save(recurring.model_copy(update={"next_due_date": next_due_date, "last_generated_date": due_date}))
        logger.info(
            "Recurring payment %s generated operator payment %s due %s, next due %s",
            recurring_id,
            payment_id,
            due_date,
            next_due_date,
        )
        return payment_id

    def generate_all(self) -> GenerationResult:
        """Generate one operator payment for every schedule that is due today.

        A schedule that fails is logged and reported in ``errors``; the rest
        are still processed. Schedules several periods behind catch up one
        period per run.
        """
        result = GenerationResult()
        for recurring in self._recurring.list_due(self._clock().date()):
            try:
                self.generate_from_recurring(recurring.id)
            except (AccountingError, SQLAlchemyError) as exc:
                logger.exception("Could not generate payment for recurring payment %s", recurring.id)
                result.errors.append(f"{recurring.id}: {exc}")
            else:
                result.generated += 1
        logger.info("Generated %d recurring operator payments, %d failed", result.generated, len(result.errors))
        return result

    def _save(self, recurring: RecurringPayment) -> RecurringPayment:
        saved = self._recurring.save(recurring, now=self._clock())
        if saved is None:
            raise NotFoundError("Recurring payment", recurring.id)
        return saved


__all__ = ["GenerationResult", "RecurringPaymentService", "UPDATABLE_FIELDS"]
