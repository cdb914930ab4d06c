"""VAT (IVA) arithmetic.

Sales are taxed on the agency's margin (sale minus operator cost), not on the
gross fare. Purchases carry VAT inside the operator's price, so it is backed
out of the total.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field

from .base_types import Currency, OperationId, OperatorId, VatRecordId, round_money

DEFAULT_VAT_RATE = Decimal("0.21")


class SaleVat(BaseModel):
    net: Decimal
    vat: Decimal
    margin: Decimal


class PurchaseVat(BaseModel):
    net: Decimal
    vat: Decimal


class MonthlyVatPosition(BaseModel):
    sales_vat: Decimal
    purchases_vat: Decimal
    net: Decimal


class VatSaleRecord(BaseModel):
    id: VatRecordId = VatRecordId(Field(default_factory=uuid4))
    operation_id: OperationId
    sale_amount_total: Decimal
    net_amount: Decimal
    iva_amount: Decimal
    currency: Currency
    sale_date: date


class VatPurchaseRecord(BaseModel):
    id: VatRecordId = VatRecordId(Field(default_factory=uuid4))
    operation_id: OperationId
    operator_id: OperatorId | None = None
    operator_cost_total: Decimal
    net_amount: Decimal
    iva_amount: Decimal
    currency: Currency
    purchase_date: date


def calculate_sale_vat(
    sale_total: Decimal, cost_total: Decimal = Decimal(0), *, rate: Decimal = DEFAULT_VAT_RATE
) -> SaleVat:
    margin = sale_total - cost_total
    vat = margin * rate
    net = margin - vat
    return SaleVat(net=round_money(net), vat=round_money(vat), margin=round_money(margin))


def calculate_purchase_vat(cost_total: Decimal, *, rate: Decimal = DEFAULT_VAT_RATE) -> PurchaseVat:
    net = cost_total / (1 + rate)
    vat = cost_total - net
    return PurchaseVat(net=round_money(net), vat=round_money(vat))
