from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from db.repositories import FinancialAccountRepository, OperationRepository, PaymentRepository
from domain.base_types import AccountId, Currency, OperatorId, SellerId
from domain.ledger import AccountType, FinancialAccount, MovementType, NewLedgerMovement
from domain.operation import Operation, PayerType, Payment, PaymentDirection, PaymentStatus
from domain.operator_payment import ProductType


def make_account(
    session: Session,
    *,
    currency: Currency = Currency.ARS,
    account_type: AccountType | None = None,
    initial_balance: Decimal = Decimal(0),
    name: str = "Test account",
) -> FinancialAccount:
    if account_type is None:
        account_type = AccountType.CASH_ARS if currency == Currency.ARS else AccountType.CASH_USD
    return FinancialAccountRepository(session).create(
        FinancialAccount(name=name, type=account_type, currency=currency, initial_balance=initial_balance)
    )


def make_operation(
    session: Session,
    *,
    sale_amount_total: Decimal | None = Decimal("100"),
    sale_currency: Currency | None = Currency.USD,
    operator_cost_total: Decimal = Decimal(0),
    operator_id: str | None = "operator-1",
    product_type: ProductType | None = ProductType.PAQUETE,
    departure_date: date | None = date(2025, 3, 1),
    checkin_date: date | None = None,
    purchase_date: date | None = None,
    created_at: datetime = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc),
) -> Operation:
    return OperationRepository(session).create(
        Operation(
            file_code="OP-0001",
            destination="Bariloche",
            product_type=product_type,
            sale_amount_total=sale_amount_total,
            sale_currency=sale_currency,
            operator_cost_total=operator_cost_total,
            operator_id=OperatorId(operator_id) if operator_id else None,
            seller_id=SellerId("seller-1"),
            departure_date=departure_date,
            checkin_date=checkin_date,
            purchase_date=purchase_date,
            created_at=created_at,
        )
    )


def make_payment(
    session: Session,
    operation: Operation | None,
    *,
    amount: Decimal,
    currency: Currency,
    account_id: AccountId | None = None,
    direction: PaymentDirection = PaymentDirection.INCOME,
    payer_type: PayerType = PayerType.CUSTOMER,
    status: PaymentStatus = PaymentStatus.PENDING,
    date_paid: date | None = None,
    exchange_rate: Decimal | None = None,
    method: str | None = "CASH",
) -> Payment:
    return PaymentRepository(session).create(
        Payment(
            operation_id=operation.id if operation is not None else None,
            amount=amount,
            currency=currency,
            direction=direction,
            payer_type=payer_type,
            method=method,
            status=status,
            date_paid=date_paid,
            account_id=account_id,
            exchange_rate=exchange_rate,
        )
    )


def ars_movement(
    account_id: AccountId, movement_type: MovementType, amount: Decimal, **kwargs: object
) -> NewLedgerMovement:
    return NewLedgerMovement(
        type=movement_type,
        concept=f"{movement_type} test",
        currency=Currency.ARS,
        amount_original=amount,
        amount_ars_equivalent=amount,
        account_id=account_id,
        **kwargs,
    )


def usd_movement(
    account_id: AccountId, movement_type: MovementType, amount: Decimal, rate: Decimal, **kwargs: object
) -> NewLedgerMovement:
    return NewLedgerMovement(
        type=movement_type,
        concept=f"{movement_type} test",
        currency=Currency.USD,
        amount_original=amount,
        exchange_rate=rate,
        amount_ars_equivalent=amount * rate,
        account_id=account_id,
        **kwargs,
    )
