from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from db.repositories import PaymentRepository, VatPurchaseRepository, VatSaleRepository
from domain.base_types import Currency, OperationId, PaymentId
from domain.errors import InsufficientFundsError, MissingRateError, NotFoundError, ValidationError
from domain.ledger import FX_TYPES, PAYABLES_CODE, RECEIVABLES_CODE, MovementMethod, MovementType
from domain.operation import Operation, PayerType, PaymentDirection, PaymentStatus
from domain.operator_payment import OperatorPaymentStatus
from services.booking import BookingService
from services.exchange_rates import ExchangeRateProvider
from services.ledger_service import LedgerService
from services.operator_payments import OperatorPaymentService
from tests.helpers.factories import make_account, make_operation, make_payment

SETTLED_ON = date(2025, 1, 15)


@pytest.fixture()
def rates(rate_provider: ExchangeRateProvider) -> ExchangeRateProvider:
    rate_provider.upsert_rate(date(2025, 1, 1), Decimal("1000"))
    return rate_provider


@pytest.fixture()
def operation(test_session: Session) -> Operation:
    return make_operation(
        test_session,
        sale_amount_total=Decimal("1210"),
        sale_currency=Currency.USD,
        operator_cost_total=Decimal("800"),
    )


@pytest.fixture()
def booked(booking_service: BookingService, rates: ExchangeRateProvider, operation: Operation) -> Operation:
    booking_service.book_operation(operation.id)
    return operation


def test_book_operation_records_vat_entries_and_obligation(
    test_session: Session,
    booking_service: BookingService,
    ledger_service: LedgerService,
    operator_payment_service: OperatorPaymentService,
    rates: ExchangeRateProvider,
    operation: Operation,
) -> None:
    result = booking_service.book_operation(operation.id)

    sale_vat = VatSaleRepository(test_session).get_by_operation(operation.id)
    purchase_vat = VatPurchaseRepository(test_session).get_by_operation(operation.id)
    assert sale_vat is not None and sale_vat.id == result.sale_vat_id
    assert purchase_vat is not None and purchase_vat.id == result.purchase_vat_id
    assert purchase_vat.iva_amount == Decimal("138.84")

    receivables = ledger_service.get_or_create_chart_account_account(RECEIVABLES_CODE, Currency.USD)
    payables = ledger_service.get_or_create_chart_account_account(PAYABLES_CODE, Currency.USD)
    assert ledger_service.get_account_balance(receivables) == Decimal("1210")
    assert ledger_service.get_account_balance(payables) == Decimal("800")

    movements = {movement.id: movement for movement in ledger_service.get_operation_movements(operation.id)}
    assert set(movements) == {result.receivable_movement_id, result.payable_movement_id}
    receivable = movements[result.receivable_movement_id]
    assert receivable.type == MovementType.INCOME
    assert receivable.exchange_rate == Decimal("1000")
    assert receivable.amount_ars_equivalent == Decimal("1210000.00")
    assert movements[result.payable_movement_id].type == MovementType.EXPENSE

    [obligation] = operator_payment_service.list_for_operation(operation.id)
    assert obligation.id == result.operator_payment_id
    assert obligation.amount == Decimal("800")
    assert obligation.due_date == date(2025, 3, 1)


def test_book_operation_twice_books_nothing_new(
    booking_service: BookingService, ledger_service: LedgerService, booked: Operation
) -> None:
    before = ledger_service.get_operation_movements(booked.id)

    again = booking_service.book_operation(booked.id)

    assert again.receivable_movement_id is None
    assert again.payable_movement_id is None
    assert again.operator_payment_id is not None
    assert ledger_service.get_operation_movements(booked.id) == before


def test_book_operation_resumes_after_missing_rate(
    test_session: Session,
    booking_service: BookingService,
    ledger_service: LedgerService,
    rate_provider: ExchangeRateProvider,
    operation: Operation,
) -> None:
    with pytest.raises(MissingRateError):
        booking_service.book_operation(operation.id)

    assert VatSaleRepository(test_session).get_by_operation(operation.id) is not None
    assert ledger_service.get_operation_movements(operation.id) == []

    rate_provider.upsert_rate(date(2025, 1, 1), Decimal("1000"))
    result = booking_service.book_operation(operation.id)

    assert result.receivable_movement_id is not None
    assert len(ledger_service.get_operation_movements(operation.id)) == 2


def test_book_operation_without_cost_skips_purchase_side(
    test_session: Session, booking_service: BookingService, rates: ExchangeRateProvider
) -> None:
    operation = make_operation(test_session, sale_currency=Currency.ARS, sale_amount_total=Decimal("50000"))

    result = booking_service.book_operation(operation.id)

    assert result.purchase_vat_id is None
    assert result.payable_movement_id is None
    assert result.operator_payment_id is None
    assert result.receivable_movement_id is not None


def test_book_operation_rejects_missing_or_incomplete_operations(
    test_session: Session, booking_service: BookingService
) -> None:
    with pytest.raises(NotFoundError):
        booking_service.book_operation(OperationId(uuid4()))

    operation = make_operation(test_session, sale_amount_total=None)
    with pytest.raises(ValidationError):
        booking_service.book_operation(operation.id)


def test_settle_customer_payment_clears_receivable(
    test_session: Session, booking_service: BookingService, ledger_service: LedgerService, booked: Operation
) -> None:
    cash = make_account(test_session, currency=Currency.USD)
    payment = make_payment(test_session, booked, amount=Decimal("1210"), currency=Currency.USD, account_id=cash.id)

    movement_id = booking_service.settle_payment(payment.id, SETTLED_ON, reference="REC-1")

    [movement] = [m for m in ledger_service.get_operation_movements(booked.id) if m.id == movement_id]
    assert movement.type == MovementType.INCOME
    assert movement.account_id == cash.id
    assert movement.exchange_rate == Decimal("1000")
    assert movement.method == MovementMethod.CASH
    assert movement.receipt_number == "REC-1"
    assert ledger_service.get_account_balance(cash.id) == Decimal("1210")

    receivables = ledger_service.get_or_create_chart_account_account(RECEIVABLES_CODE, Currency.USD)
    assert ledger_service.get_account_balance(receivables) == 0

    settled = PaymentRepository(test_session).get(payment.id)
    assert settled is not None
    assert settled.status == PaymentStatus.PAID
    assert settled.date_paid == SETTLED_ON
    assert settled.ledger_movement_id == movement_id
    assert not [m for m in ledger_service.get_operation_movements(booked.id) if m.type in FX_TYPES]


def test_settle_is_idempotent(
    test_session: Session, booking_service: BookingService, ledger_service: LedgerService, booked: Operation
) -> None:
    cash = make_account(test_session, currency=Currency.USD)
    payment = make_payment(test_session, booked, amount=Decimal("1210"), currency=Currency.USD, account_id=cash.id)

    first = booking_service.settle_payment(payment.id, SETTLED_ON)
    count = len(ledger_service.get_operation_movements(booked.id))
    second = booking_service.settle_payment(payment.id, SETTLED_ON)

    assert second == first
    assert len(ledger_service.get_operation_movements(booked.id)) == count


def test_settle_customer_payment_in_ars_books_fx(
    test_session: Session, booking_service: BookingService, ledger_service: LedgerService, booked: Operation
) -> None:
    cash = make_account(test_session, currency=Currency.ARS)
    payment = make_payment(
        test_session, booked, amount=Decimal("1150000"), currency=Currency.ARS, account_id=cash.id
    )

    booking_service.settle_payment(payment.id, SETTLED_ON)

    [fx] = [m for m in ledger_service.get_operation_movements(booked.id) if m.type in FX_TYPES]
    assert fx.type == MovementType.FX_GAIN
    assert fx.currency == Currency.ARS
    assert fx.amount_original == Decimal("60000.00")
    assert fx.idempotency_key == f"fx:{payment.id}"


def test_settle_operator_payment_checks_funds_first(
    test_session: Session, booking_service: BookingService, ledger_service: LedgerService, booked: Operation
) -> None:
    bank = make_account(test_session, currency=Currency.USD, initial_balance=Decimal("500"))
    payment = make_payment(
        test_session,
        booked,
        amount=Decimal("800"),
        currency=Currency.USD,
        account_id=bank.id,
        direction=PaymentDirection.EXPENSE,
        payer_type=PayerType.OPERATOR,
        method="BANK",
    )
    before = ledger_service.get_operation_movements(booked.id)

    with pytest.raises(InsufficientFundsError):
        booking_service.settle_payment(payment.id, SETTLED_ON)

    unchanged = PaymentRepository(test_session).get(payment.id)
    assert unchanged is not None and unchanged.status == PaymentStatus.PENDING
    assert ledger_service.get_operation_movements(booked.id) == before


def test_settle_operator_payment_closes_obligation(
    test_session: Session,
    booking_service: BookingService,
    ledger_service: LedgerService,
    operator_payment_service: OperatorPaymentService,
    booked: Operation,
) -> None:
    bank = make_account(test_session, currency=Currency.USD, initial_balance=Decimal("1000"))
    payment = make_payment(
        test_session,
        booked,
        amount=Decimal("800"),
        currency=Currency.USD,
        account_id=bank.id,
        direction=PaymentDirection.EXPENSE,
        payer_type=PayerType.OPERATOR,
        method="BANK",
    )

    movement_id = booking_service.settle_payment(payment.id, SETTLED_ON)

    assert ledger_service.get_account_balance(bank.id) == Decimal("200")
    payables = ledger_service.get_or_create_chart_account_account(PAYABLES_CODE, Currency.USD)
    assert ledger_service.get_account_balance(payables) == 0
    [obligation] = operator_payment_service.list_for_operation(booked.id)
    assert obligation.status == OperatorPaymentStatus.PAID
    assert obligation.ledger_movement_id == movement_id
    operator_movements = [
        m for m in ledger_service.get_operation_movements(booked.id) if m.type == MovementType.OPERATOR_PAYMENT
    ]
    assert [m.id for m in operator_movements] == [movement_id]
    assert operator_movements[0].method == MovementMethod.BANK


def test_settle_rejects_unknown_payment_or_missing_account(
    test_session: Session, booking_service: BookingService, booked: Operation
) -> None:
    with pytest.raises(NotFoundError):
        booking_service.settle_payment(PaymentId(uuid4()), SETTLED_ON)

    payment = make_payment(test_session, booked, amount=Decimal("10"), currency=Currency.USD)
    with pytest.raises(ValidationError):
        booking_service.settle_payment(payment.id, SETTLED_ON)
