from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from db.repositories import OperatorPaymentRepository
from domain.base_types import Currency, MovementId, OperationId, OperatorId, OperatorPaymentId
from domain.errors import NotFoundError, ValidationError
from domain.operator_payment import OperatorPayment, ProductType, calculate_due_date

logger = logging.getLogger(__name__)


class OperatorPaymentService:
    """Supplier obligations: opening, closing and the overdue sweep.

    Closing an obligation only links the movement that paid it; recording the
    money is the caller's job.
    """

    def __init__(self, session: Session, *, clock: Callable[[], datetime] | None = None) -> None:
        self._payments = OperatorPaymentRepository(session)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create_payment(
        self,
        operation_id: OperationId | None,
        operator_id: OperatorId,
        amount: Decimal,
        currency: Currency,
        *,
        due_date: date | None = None,
        product_type: ProductType | None = None,
        purchase_date: date | None = None,
        checkin_date: date | None = None,
        departure_date: date | None = None,
        notes: str | None = None,
    ) -> OperatorPaymentId:
        if amount <= 0:
            raise ValidationError(f"Operator payment amount must be positive, got {amount}")
        if due_date is None:
            due_date = calculate_due_date(
                product_type, purchase_date, checkin_date, departure_date, today=self._clock().date()
            )

        payment = self._payments.create(
            OperatorPayment(
                operation_id=operation_id,
                operator_id=operator_id,
                amount=amount,
                currency=currency,
                due_date=due_date,
                notes=notes,
            ),
            now=self._clock(),
        )
        logger.info(
            "Operator payment %s opened: %s %s to %s due %s", payment.id, amount, currency, operator_id, due_date
        )
        return payment.id

    def get_payment(self, payment_id: OperatorPaymentId) -> OperatorPayment:
        payment = self._payments.get(payment_id)
        if payment is None:
            raise NotFoundError("Operator payment", payment_id)
        return payment

    def list_for_operation(self, operation_id: OperationId) -> list[OperatorPayment]:
        return self._payments.list_for_operation(operation_id)

    def mark_as_paid(self, payment_id: OperatorPaymentId, ledger_movement_id: MovementId) -> OperatorPayment:
        payment = self._payments.mark_paid(payment_id, ledger_movement_id, now=self._clock())
        if payment is None:
            raise NotFoundError("Operator payment", payment_id)
        logger.info("Operator payment %s settled by movement %s", payment_id, ledger_movement_id)
        return payment

    def get_overdue_payments(self, operator_id: OperatorId | None = None) -> list[OperatorPayment]:
        return self._payments.list_pending_due_before(self._clock().date(), operator_id)

    def sweep_overdue(self) -> int:
        swept = self._payments.mark_overdue(self._clock().date(), now=self._clock())
        logger.info("Marked %d operator payments as overdue", swept)
        return swept


__all__ = ["OperatorPaymentService"]
