from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from config import config
from db.repositories import VatPurchaseRepository, VatSaleRepository
from domain.base_types import Currency, OperationId, OperatorId, VatRecordId, round_money
from domain.errors import ValidationError
from domain.vat import (
    MonthlyVatPosition,
    VatPurchaseRecord,
    VatSaleRecord,
    calculate_purchase_vat,
    calculate_sale_vat,
)

logger = logging.getLogger(__name__)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {month}")
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


class VatService:
    def __init__(self, session: Session, *, vat_rate: Decimal | None = None) -> None:
        self._sales = VatSaleRepository(session)
        self._purchases = VatPurchaseRepository(session)
        self.vat_rate = vat_rate if vat_rate is not None else config().vat_rate

    def create_sale_vat(
        self,
        operation_id: OperationId,
        sale_amount_total: Decimal,
        currency: Currency,
        sale_date: date,
        operator_cost_total: Decimal = Decimal(0),
    ) -> VatRecordId:
        existing = self._sales.get_by_operation(operation_id)
        if existing is not None:
            return existing.id

        vat = calculate_sale_vat(sale_amount_total, operator_cost_total, rate=self.vat_rate)
        record = self._sales.create(
            VatSaleRecord(
                operation_id=operation_id,
                sale_amount_total=sale_amount_total,
                net_amount=vat.net,
                iva_amount=vat.vat,
                currency=currency,
                sale_date=sale_date,
            )
        )
        logger.info("Sale VAT %s %s recorded for operation %s", vat.vat, currency, operation_id)
        return record.id

    def create_purchase_vat(
        self,
        operation_id: OperationId,
        operator_id: OperatorId | None,
        operator_cost_total: Decimal,
        currency: Currency,
        purchase_date: date,
    ) -> VatRecordId:
        existing = self._purchases.get_by_operation(operation_id)
        if existing is not None:
            return existing.id

        vat = calculate_purchase_vat(operator_cost_total, rate=self.vat_rate)
        record = self._purchases.create(
            VatPurchaseRecord(
                operation_id=operation_id,
                operator_id=operator_id,
                operator_cost_total=operator_cost_total,
                net_amount=vat.net,
                iva_amount=vat.vat,
                currency=currency,
                purchase_date=purchase_date,
            )
        )
        logger.info("Purchase VAT %s %s recorded for operation %s", vat.vat, currency, operation_id)
        return record.id

    def update_sale_vat(
        self,
        operation_id: OperationId,
        sale_amount_total: Decimal,
        currency: Currency,
        operator_cost_total: Decimal = Decimal(0),
    ) -> VatSaleRecord | None:
        """Recompute the sale VAT of an operation; never creates a record."""
        existing = self._sales.get_by_operation(operation_id)
        if existing is None:
            logger.debug("No sale VAT to update for operation %s", operation_id)
            return None

        vat = calculate_sale_vat(sale_amount_total, operator_cost_total, rate=self.vat_rate)
        return self._sales.update(
            existing.model_copy(
                update={
                    "sale_amount_total": sale_amount_total,
                    "net_amount": vat.net,
                    "iva_amount": vat.vat,
                    "currency": currency,
                }
            )
        )

    def update_purchase_vat(
        self, operation_id: OperationId, operator_cost_total: Decimal, currency: Currency
    ) -> VatPurchaseRecord | None:
        """Recompute the purchase VAT of an operation; never creates a record."""
        existing = self._purchases.get_by_operation(operation_id)
        if existing is None:
            logger.debug("No purchase VAT to update for operation %s", operation_id)
            return None

        vat = calculate_purchase_vat(operator_cost_total, rate=self.vat_rate)
        return self._purchases.update(
            existing.model_copy(
                update={
                    "operator_cost_total": operator_cost_total,
                    "net_amount": vat.net,
                    "iva_amount": vat.vat,
                    "currency": currency,
                }
            )
        )

    def delete_sale_vat(self, operation_id: OperationId) -> bool:
        return self._sales.delete_by_operation(operation_id) > 0

    def delete_purchase_vat(self, operation_id: OperationId) -> bool:
        return self._purchases.delete_by_operation(operation_id) > 0

    def get_monthly_vat_payable(self, year: int, month: int) -> MonthlyVatPosition:
        start, end = month_bounds(year, month)
        sales_vat = sum((record.iva_amount for record in self._sales.list_between(start, end)), Decimal(0))
        purchases_vat = sum((record.iva_amount for record in self._purchases.list_between(start, end)), Decimal(0))
        return MonthlyVatPosition(
            sales_vat=round_money(sales_vat),
            purchases_vat=round_money(purchases_vat),
            net=round_money(sales_vat - purchases_vat),
        )


__all__ = ["VatService", "month_bounds"]
