from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import NewType
from uuid import UUID

AccountId = NewType("AccountId", UUID)
ChartAccountId = NewType("ChartAccountId", UUID)
MovementId = NewType("MovementId", UUID)
OperationId = NewType("OperationId", UUID)
LeadId = NewType("LeadId", UUID)
PaymentId = NewType("PaymentId", UUID)
OperatorPaymentId = NewType("OperatorPaymentId", UUID)
RecurringPaymentId = NewType("RecurringPaymentId", UUID)
ExchangeRateId = NewType("ExchangeRateId", UUID)
VatRecordId = NewType("VatRecordId", UUID)
CommissionId = NewType("CommissionId", UUID)
UserId = NewType("UserId", str)
OperatorId = NewType("OperatorId", str)
SellerId = NewType("SellerId", str)

CENT = Decimal("0.01")


class Currency(StrEnum):
    ARS = "ARS"
    USD = "USD"


BASE_CURRENCY = Currency.ARS
FOREIGN_CURRENCY = Currency.USD


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
