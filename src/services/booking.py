"""Operation booking and payment settlement.

Each step commits on its own and is keyed by the operation (or payment) id, so
a run interrupted halfway can simply be repeated: steps already done are
found and skipped instead of booked twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.repositories import LedgerMovementRepository, OperationRepository, PaymentRepository
from domain.base_types import (
    BASE_CURRENCY,
    Currency,
    MovementId,
    OperationId,
    OperatorPaymentId,
    PaymentId,
    UserId,
    VatRecordId,
    round_money,
)
from domain.currency import to_base
from domain.errors import AccountingError, MissingRateError, NotFoundError, ValidationError
from domain.ledger import PAYABLES_CODE, RECEIVABLES_CODE, MovementMethod, MovementType, NewLedgerMovement
from domain.operation import Operation, PayerType, Payment, PaymentDirection, PaymentStatus
from domain.operator_payment import OperatorPaymentStatus

from .exchange_rates import ExchangeRateProvider
from .fx_service import FxService
from .ledger_service import LedgerService
from .operator_payments import OperatorPaymentService
from .vat_service import VatService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingResult:
    sale_vat_id: VatRecordId
    purchase_vat_id: VatRecordId | None
    receivable_movement_id: MovementId | None
    payable_movement_id: MovementId | None
    operator_payment_id: OperatorPaymentId | None


class BookingService:
    def __init__(
        self,
        session: Session,
        *,
        rates: ExchangeRateProvider | None = None,
        ledger: LedgerService | None = None,
        vat: VatService | None = None,
        fx: FxService | None = None,
        operator_payments: OperatorPaymentService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rates = rates or ExchangeRateProvider(session, clock=self._clock)
        self._ledger = ledger or LedgerService(session, clock=self._clock)
        self._vat = vat or VatService(session)
        self._fx = fx or FxService(session, rates=self._rates, ledger=self._ledger, clock=self._clock)
        self._operator_payments = operator_payments or OperatorPaymentService(session, clock=self._clock)
        self._operations = OperationRepository(session)
        self._payments = PaymentRepository(session)
        self._movements = LedgerMovementRepository(session)

    def book_operation(self, operation_id: OperationId, user_id: UserId | None = None) -> BookingResult:
        operation = self._operations.get(operation_id)
        if operation is None:
            raise NotFoundError("Operation", operation_id)
        if operation.sale_amount_total is None or operation.sale_currency is None:
            raise ValidationError(f"Operation {operation_id} has no sale amount or currency")

        sale_date = operation.created_at.date()
        cost = operation.operator_cost_total
        cost_currency = operation.operator_cost_currency or operation.sale_currency

        sale_vat_id = self._vat.create_sale_vat(
            operation_id, operation.sale_amount_total, operation.sale_currency, sale_date, cost
        )
        purchase_vat_id = None
        if cost > 0:
            purchase_vat_id = self._vat.create_purchase_vat(
                operation_id, operation.operator_id, cost, cost_currency, operation.purchase_date or sale_date
            )

        receivable_movement_id = self._book_once(
            operation,
            RECEIVABLES_CODE,
            MovementType.INCOME,
            operation.sale_amount_total,
            operation.sale_currency,
            concept=f"Venta - Operación {operation.file_code or operation_id}",
            user_id=user_id,
        )
        payable_movement_id = None
        if cost > 0:
            payable_movement_id = self._book_once(
                operation,
                PAYABLES_CODE,
                MovementType.EXPENSE,
                cost,
                cost_currency,
                concept=f"Costo de operador - Operación {operation.file_code or operation_id}",
                user_id=user_id,
            )

        operator_payment_id = None
        if cost > 0 and operation.operator_id is not None:
            existing = self._operator_payments.list_for_operation(operation_id)
            if existing:
                operator_payment_id = existing[0].id
            else:
                operator_payment_id = self._operator_payments.create_payment(
                    operation_id,
                    operation.operator_id,
                    cost,
                    cost_currency,
                    product_type=operation.product_type,
                    purchase_date=operation.purchase_date,
                    checkin_date=operation.checkin_date,
                    departure_date=operation.departure_date,
                )

        logger.info("Operation %s booked", operation_id)
        return BookingResult(
            sale_vat_id=sale_vat_id,
            purchase_vat_id=purchase_vat_id,
            receivable_movement_id=receivable_movement_id,
            payable_movement_id=payable_movement_id,
            operator_payment_id=operator_payment_id,
        )

    def settle_payment(
        self,
        payment_id: PaymentId,
        date_paid: date,
        user_id: UserId | None = None,
        reference: str | None = None,
    ) -> MovementId:
        payment = self._payments.get(payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        if payment.status == PaymentStatus.PAID and payment.ledger_movement_id is not None:
            logger.info("Payment %s already settled", payment_id)
            return payment.ledger_movement_id
        if payment.account_id is None:
            raise ValidationError(f"Payment {payment_id} has no financial account")

        rate = self._payment_rate(payment, date_paid)
        if payment.direction == PaymentDirection.EXPENSE:
            self._ledger.validate_balance_for_expense(payment.account_id, payment.amount, payment.currency, rate)

        self._payments.mark_paid(payment_id, date_paid=date_paid, reference=reference)

        is_operator = payment.payer_type == PayerType.OPERATOR
        if payment.direction == PaymentDirection.INCOME:
            movement_type = MovementType.INCOME
        elif is_operator:
            movement_type = MovementType.OPERATOR_PAYMENT
        else:
            movement_type = MovementType.EXPENSE

        label = "Pago a operador" if is_operator else "Cobro de cliente"
        movement_id = self._ledger.record_movement(
            NewLedgerMovement(
                operation_id=payment.operation_id,
                type=movement_type,
                concept=f"{label} - Operación {payment.operation_id or '-'}",
                currency=payment.currency,
                amount_original=payment.amount,
                exchange_rate=rate,
                amount_ars_equivalent=round_money(to_base(payment.amount, payment.currency, rate)),
                method=_movement_method(payment.method),
                account_id=payment.account_id,
                receipt_number=reference,
                created_by=user_id,
            )
        )
        self._payments.link_movement(payment_id, movement_id)

        if payment.operation_id is not None:
            self._reduce_receivable_or_payable(payment, rate, user_id)
            if is_operator:
                self._close_operator_obligation(payment.operation_id, movement_id)
            elif payment.direction == PaymentDirection.INCOME:
                self._reconcile_fx(payment, user_id)

        return movement_id

    def _book_once(
        self,
        operation: Operation,
        account_code: str,
        movement_type: MovementType,
        amount: Decimal,
        currency: Currency,
        *,
        concept: str,
        user_id: UserId | None,
    ) -> MovementId | None:
        account_id = self._ledger.get_or_create_chart_account_account(account_code, currency, user_id)
        if self._movements.exists_for_operation(operation.id, movement_type, account_id):
            logger.info("Operation %s already has its %s entry on %s", operation.id, movement_type, account_code)
            return None

        rate = None
        if currency != BASE_CURRENCY:
            reference_date = operation.created_at.date()
            rate = self._rates.get_rate(reference_date) or self._rates.get_latest_rate()
            if rate is None:
                raise MissingRateError(currency)

        return self._ledger.record_movement(
            NewLedgerMovement(
                operation_id=operation.id,
                type=movement_type,
                concept=concept,
                currency=currency,
                amount_original=amount,
                exchange_rate=rate,
                amount_ars_equivalent=round_money(to_base(amount, currency, rate)),
                account_id=account_id,
                seller_id=operation.seller_id,
                operator_id=operation.operator_id,
                created_by=user_id,
            )
        )

    def _payment_rate(self, payment: Payment, date_paid: date) -> Decimal | None:
        if payment.currency == BASE_CURRENCY:
            return None
        rate = payment.exchange_rate or self._rates.get_rate(date_paid) or self._rates.get_latest_rate()
        if rate is None:
            raise MissingRateError(payment.currency)
        return rate

    def _reduce_receivable_or_payable(self, payment: Payment, rate: Decimal | None, user_id: UserId | None) -> None:
        if payment.payer_type == PayerType.OPERATOR:
            account_code, movement_type, label = PAYABLES_CODE, MovementType.INCOME, "Cancelación de deuda"
        else:
            account_code, movement_type, label = RECEIVABLES_CODE, MovementType.EXPENSE, "Cobranza"

        account_id = self._ledger.get_or_create_chart_account_account(account_code, payment.currency, user_id)
        self._ledger.record_movement(
            NewLedgerMovement(
                operation_id=payment.operation_id,
                type=movement_type,
                concept=f"{label} - Pago {payment.id}",
                currency=payment.currency,
                amount_original=payment.amount,
                exchange_rate=rate,
                amount_ars_equivalent=round_money(to_base(payment.amount, payment.currency, rate)),
                account_id=account_id,
                created_by=user_id,
            )
        )

    def _close_operator_obligation(self, operation_id: OperationId, movement_id: MovementId) -> None:
        try:
            open_obligations = [
                obligation
                for obligation in self._operator_payments.list_for_operation(operation_id)
                if obligation.status != OperatorPaymentStatus.PAID
            ]
            if not open_obligations:
                logger.info("No open operator obligation for operation %s", operation_id)
                return
            self._operator_payments.mark_as_paid(open_obligations[0].id, movement_id)
        except (AccountingError, SQLAlchemyError):
            logger.exception("Could not close operator obligation for operation %s", operation_id)

    def _reconcile_fx(self, payment: Payment, user_id: UserId | None) -> None:
        assert payment.operation_id is not None
        try:
            self._fx.auto_calculate_fx_for_payment(
                payment.operation_id,
                payment.currency,
                payment.amount,
                payment.exchange_rate,
                user_id,
                settlement_id=payment.id,
            )
        except (AccountingError, SQLAlchemyError):
            logger.exception("FX reconciliation failed for payment %s", payment.id)


def _movement_method(method: str | None) -> MovementMethod:
    try:
        return MovementMethod(method) if method else MovementMethod.OTHER
    except ValueError:
        return MovementMethod.OTHER


__all__ = ["BookingResult", "BookingService"]
