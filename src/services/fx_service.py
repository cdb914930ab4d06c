"""Booking of exchange differences (FX_GAIN / FX_LOSS).

An exchange difference appears when a customer pays in a currency other than
the one the sale was quoted in. Two variants exist:

* ``auto_calculate_fx_for_payment`` compares the whole sale against every paid
  customer installment in the payment currency, both valued in ARS, and books
  the difference in ARS. This is the one used when settling payments.
* ``calculate_and_record_fx`` compares one sale amount against one payment and
  books the difference in the sale currency.

Both label ``sale - paid > 0`` as FX_GAIN.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from config import AppSettings, config
from db.repositories import LedgerMovementRepository, OperationRepository, PaymentRepository
from domain.base_types import BASE_CURRENCY, Currency, MovementId, OperationId, UserId, round_money
from domain.currency import to_base
from domain.ledger import FX_TYPES, MovementMethod, MovementType, NewLedgerMovement
from domain.operation import Operation
from utils.formatting import format_decimal

from .exchange_rates import ExchangeRateProvider
from .ledger_service import LedgerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FxResult:
    """Outcome of an FX check; ``movement_id`` is None when nothing was booked."""

    fx_type: MovementType | None
    amount: Decimal
    movement_id: MovementId | None = None


NO_FX = FxResult(fx_type=None, amount=Decimal(0))


def fx_idempotency_key(settlement_id: object) -> str:
    return f"fx:{settlement_id}"


class FxService:
    def __init__(
        self,
        session: Session,
        *,
        rates: ExchangeRateProvider | None = None,
        ledger: LedgerService | None = None,
        settings: AppSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._settings = settings or config()
        self._rates = rates or ExchangeRateProvider(session, clock=self._clock)
        self._ledger = ledger or LedgerService(session, clock=self._clock)
        self._operations = OperationRepository(session)
        self._payments = PaymentRepository(session)
        self._movements = LedgerMovementRepository(session)

    def auto_calculate_fx_for_payment(
        self,
        operation_id: OperationId,
        payment_currency: Currency,
        payment_amount: Decimal,
        payment_rate: Decimal | None = None,
        user_id: UserId | None = None,
        settlement_id: object | None = None,
    ) -> FxResult:
        operation = self._operations.get(operation_id)
        if operation is None:
            logger.warning("FX check skipped: operation %s not found", operation_id)
            return NO_FX
        if operation.sale_amount_total is None or operation.sale_currency is None:
            logger.info("FX check skipped: operation %s has no sale amount or currency", operation_id)
            return NO_FX
        if operation.sale_currency == payment_currency:
            return NO_FX

        idempotency_key = fx_idempotency_key(settlement_id) if settlement_id is not None else None
        if idempotency_key is not None and self._movements.exists_with_key(idempotency_key):
            logger.info("FX already booked for settlement %s", settlement_id)
            return NO_FX

        sale_rate = self._sale_rate(operation)
        paid = [
            payment
            for payment in self._payments.list_paid_customer_income(operation_id)
            if payment.currency == payment_currency
        ]
        total_paid = sum((payment.amount for payment in paid), Decimal(0))
        logger.debug(
            "FX check for operation %s after a payment of %s %s", operation_id, payment_amount, payment_currency
        )

        effective_payment_rate = payment_rate
        if effective_payment_rate is None and paid and paid[0].date_paid is not None:
            effective_payment_rate = self._rates.get_rate(paid[0].date_paid)
        if effective_payment_rate is None:
            effective_payment_rate = self._rates.get_latest_rate()

        sale_in_base = self._to_base_or_fallback(operation.sale_amount_total, operation.sale_currency, sale_rate)
        paid_in_base = self._to_base_or_fallback(total_paid, payment_currency, effective_payment_rate)
        difference = sale_in_base - paid_in_base
        if abs(difference) < self._settings.fx_noise_threshold:
            return NO_FX

        fx_type = MovementType.FX_GAIN if difference > 0 else MovementType.FX_LOSS
        amount = round_money(abs(difference))

        if self._booked_recently(operation_id):
            logger.info("FX for operation %s skipped: another FX movement was booked moments ago", operation_id)
            return NO_FX

        account_id = self._ledger.get_or_create_default_account(MovementMethod.CASH, BASE_CURRENCY, user_id)
        movement_id = self._ledger.record_movement(
            NewLedgerMovement(
                operation_id=operation_id,
                type=fx_type,
                concept=(
                    f"Diferencia de cambio: Venta {format_decimal(operation.sale_amount_total)} "
                    f"{operation.sale_currency} vs Pagos {total_paid:.2f} {payment_currency}"
                ),
                currency=BASE_CURRENCY,
                amount_original=amount,
                amount_ars_equivalent=amount,
                method=MovementMethod.OTHER,
                account_id=account_id,
                notes=(
                    f"Venta: {format_decimal(operation.sale_amount_total)} {operation.sale_currency} "
                    f"(ARS: {sale_in_base:.2f}), Pagos acumulados: {total_paid:.2f} {payment_currency} "
                    f"(ARS: {paid_in_base:.2f})"
                ),
                created_by=user_id,
                idempotency_key=idempotency_key,
            )
        )
        logger.info("Booked %s of %s ARS for operation %s", fx_type, amount, operation_id)
        return FxResult(fx_type=fx_type, amount=amount, movement_id=movement_id)

    def calculate_and_record_fx(
        self,
        operation_id: OperationId,
        sale_currency: Currency,
        sale_amount: Decimal,
        sale_rate: Decimal | None,
        payment_currency: Currency,
        payment_amount: Decimal,
        payment_rate: Decimal | None,
        user_id: UserId | None = None,
    ) -> FxResult:
        """Compare a single sale against a single payment.

        The difference is expressed in the sale currency, so a USD sale paid in
        ARS books a USD movement valued at the sale rate.
        """
        if sale_currency == payment_currency:
            return NO_FX

        sale_in_base = to_base(sale_amount, sale_currency, sale_rate)
        payment_in_base = to_base(payment_amount, payment_currency, payment_rate)
        base_difference = sale_in_base - payment_in_base
        if sale_currency == BASE_CURRENCY:
            difference = base_difference
        else:
            assert sale_rate is not None
            difference = base_difference / sale_rate

        if abs(difference) < self._settings.fx_pairwise_noise_threshold:
            return NO_FX

        fx_type = MovementType.FX_GAIN if difference > 0 else MovementType.FX_LOSS
        amount = round_money(abs(difference))
        exchange_rate = None if sale_currency == BASE_CURRENCY else sale_rate
        account_id = self._ledger.get_or_create_default_account(MovementMethod.CASH, sale_currency, user_id)

        movement_id = self._ledger.record_movement(
            NewLedgerMovement(
                operation_id=operation_id,
                type=fx_type,
                concept=f"Diferencia de cambio: {sale_currency} → {payment_currency}",
                currency=sale_currency,
                amount_original=amount,
                exchange_rate=exchange_rate,
                amount_ars_equivalent=round_money(to_base(amount, sale_currency, exchange_rate)),
                method=MovementMethod.OTHER,
                account_id=account_id,
                notes=(
                    f"Venta: {format_decimal(sale_amount)} {sale_currency} (ARS: {sale_in_base:.2f}), "
                    f"Pago: {format_decimal(payment_amount)} {payment_currency} (ARS: {payment_in_base:.2f})"
                ),
                created_by=user_id,
            )
        )
        return FxResult(fx_type=fx_type, amount=amount, movement_id=movement_id)

    def _sale_rate(self, operation: Operation) -> Decimal | None:
        first_income = self._movements.first_income_with_rate(operation.id)
        if first_income is not None and first_income.exchange_rate is not None:
            return first_income.exchange_rate
        reference_date = operation.departure_date or operation.created_at.date()
        return self._rates.get_rate(reference_date) or self._rates.get_latest_rate()

    def _to_base_or_fallback(self, amount: Decimal, currency: Currency, rate: Decimal | None) -> Decimal:
        if currency == BASE_CURRENCY:
            return amount
        if rate is None or rate <= 0:
            rate = self._settings.fx_fallback_rate
            logger.warning("No %s rate available, valuing %s at fallback rate %s", currency, amount, rate)
        return amount * rate

    def _booked_recently(self, operation_id: OperationId) -> bool:
        latest = self._movements.latest_of_types(operation_id, FX_TYPES)
        if latest is None:
            return False
        window = timedelta(minutes=self._settings.fx_dedup_window_minutes)
        return self._clock() - latest.created_at < window


__all__ = ["FxResult", "FxService", "NO_FX", "fx_idempotency_key"]
