from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from .base_types import AccountId, CommissionId, Currency, MovementId, OperationId, OperatorId, PaymentId, SellerId
from .operator_payment import ProductType


class PaymentDirection(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class PayerType(StrEnum):
    CUSTOMER = "CUSTOMER"
    OPERATOR = "OPERATOR"


class PaymentStatus(StrEnum):
    PENDING = "PENDING"
    PAID = "PAID"


class CommissionStatus(StrEnum):
    PENDING = "PENDING"
    PAID = "PAID"


class Operation(BaseModel):
    id: OperationId = OperationId(Field(default_factory=uuid4))
    file_code: str | None = None
    destination: str | None = None
    product_type: ProductType | None = None
    sale_amount_total: Decimal | None = None
    sale_currency: Currency | None = None
    operator_cost_total: Decimal = Decimal(0)
    operator_cost_currency: Currency | None = None
    operator_id: OperatorId | None = None
    seller_id: SellerId | None = None
    departure_date: date | None = None
    checkin_date: date | None = None
    purchase_date: date | None = None
    created_at: datetime


class Payment(BaseModel):
    id: PaymentId = PaymentId(Field(default_factory=uuid4))
    operation_id: OperationId | None = None
    amount: Decimal
    currency: Currency
    direction: PaymentDirection
    payer_type: PayerType
    method: str | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    date_paid: date | None = None
    reference: str | None = None
    account_id: AccountId | None = None
    ledger_movement_id: MovementId | None = None
    exchange_rate: Decimal | None = None

    @model_validator(mode="after")
    def _validate_amount(self) -> Payment:
        if self.amount <= 0:
            raise ValueError("Payment.amount must be > 0")
        return self


class CommissionRecord(BaseModel):
    id: CommissionId = CommissionId(Field(default_factory=uuid4))
    operation_id: OperationId
    seller_id: SellerId
    amount: Decimal
    currency: Currency
    status: CommissionStatus = CommissionStatus.PENDING
    date_paid: date | None = None
