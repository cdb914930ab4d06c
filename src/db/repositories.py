from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterable, TypeVar

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import models
from domain.base_types import (
    AccountId,
    ChartAccountId,
    CommissionId,
    Currency,
    ExchangeRateId,
    LeadId,
    MovementId,
    OperationId,
    OperatorId,
    OperatorPaymentId,
    PaymentId,
    RecurringPaymentId,
    SellerId,
    UserId,
    VatRecordId,
)
from domain.errors import StoreError
from domain.exchange_rate import ExchangeRate
from domain.ledger import (
    AccountCategory,
    AccountType,
    ChartAccount,
    FinancialAccount,
    LedgerMovement,
    MovementFilters,
    MovementMethod,
    MovementType,
)
from domain.operation import (
    CommissionRecord,
    CommissionStatus,
    Operation,
    PayerType,
    Payment,
    PaymentDirection,
    PaymentStatus,
)
from domain.operator_payment import (
    OperatorPayment,
    OperatorPaymentStatus,
    ProductType,
    RecurringFrequency,
    RecurringPayment,
)
from domain.vat import VatPurchaseRecord, VatSaleRecord

_Orm = TypeVar("_Orm", bound=models.Base)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _Repository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def _commit(self, context: str) -> None:
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"{context}: {exc}") from exc

    def _add(self, orm_obj: _Orm, context: str) -> _Orm:
        self._session.add(orm_obj)
        self._commit(context)
        self._session.refresh(orm_obj)
        return orm_obj


class ChartAccountRepository(_Repository):
    def create(self, chart_account: ChartAccount) -> ChartAccount:
        orm_chart = models.ChartAccountOrm(
            id=chart_account.id,
            account_code=chart_account.account_code,
            name=chart_account.name,
            category=chart_account.category.value,
            is_active=chart_account.is_active,
        )
        return self._to_domain(self._add(orm_chart, "Error creating chart account"))

    def get(self, chart_account_id: ChartAccountId) -> ChartAccount | None:
        orm_chart = self._session.get(models.ChartAccountOrm, chart_account_id)
        if orm_chart is None:
            return None
        return self._to_domain(orm_chart)

    def get_many(self, chart_account_ids: Iterable[ChartAccountId]) -> dict[ChartAccountId, ChartAccount]:
        ids = list(set(chart_account_ids))
        if not ids:
            return {}
        orm_charts = self._session.query(models.ChartAccountOrm).filter(models.ChartAccountOrm.id.in_(ids)).all()
        return {ChartAccountId(chart.id): self._to_domain(chart) for chart in orm_charts}

    def find_active_by_code(self, account_code: str) -> ChartAccount | None:
        orm_chart = (
            self._session.query(models.ChartAccountOrm)
            .filter(
                models.ChartAccountOrm.account_code == account_code,
                models.ChartAccountOrm.is_active.is_(True),
            )
            .first()
        )
        if orm_chart is None:
            return None
        return self._to_domain(orm_chart)

    @staticmethod
    def _to_domain(orm_chart: models.ChartAccountOrm) -> ChartAccount:
        return ChartAccount(
            id=ChartAccountId(orm_chart.id),
            account_code=orm_chart.account_code,
            name=orm_chart.name,
            category=AccountCategory(orm_chart.category),
            is_active=orm_chart.is_active,
        )


class FinancialAccountRepository(_Repository):
    def create(self, account: FinancialAccount) -> FinancialAccount:
        orm_account = models.FinancialAccountOrm(
            id=account.id,
            name=account.name,
            type=account.type.value,
            currency=account.currency.value,
            initial_balance=account.initial_balance,
            is_active=account.is_active,
            chart_account_id=account.chart_account_id,
            created_by=account.created_by,
        )
        return self._to_domain(self._add(orm_account, "Error creating financial account"))

    def get(self, account_id: AccountId) -> FinancialAccount | None:
        orm_account = self._session.get(models.FinancialAccountOrm, account_id)
        if orm_account is None:
            return None
        return self._to_domain(orm_account)

    def get_many(self, account_ids: Iterable[AccountId]) -> list[FinancialAccount]:
        ids = list(set(account_ids))
        if not ids:
            return []
        orm_accounts = (
            self._session.query(models.FinancialAccountOrm).filter(models.FinancialAccountOrm.id.in_(ids)).all()
        )
        return [self._to_domain(account) for account in orm_accounts]

    def find_active(
        self, account_type: AccountType, currency: Currency, *, excluding_codes: Iterable[str] = ()
    ) -> FinancialAccount | None:
        query = self._session.query(models.FinancialAccountOrm).filter(
            models.FinancialAccountOrm.type == account_type.value,
            models.FinancialAccountOrm.currency == currency.value,
            models.FinancialAccountOrm.is_active.is_(True),
        )
        codes = list(excluding_codes)
        if codes:
            query = query.outerjoin(models.FinancialAccountOrm.chart_account).filter(
                or_(
                    models.FinancialAccountOrm.chart_account_id.is_(None),
                    models.ChartAccountOrm.account_code.not_in(codes),
                )
            )
        orm_account = query.order_by(models.FinancialAccountOrm.created_at.asc()).first()
        if orm_account is None:
            return None
        return self._to_domain(orm_account)

    def find_active_for_chart_account(
        self, chart_account_id: ChartAccountId, currency: Currency | None = None
    ) -> FinancialAccount | None:
        query = self._session.query(models.FinancialAccountOrm).filter(
            models.FinancialAccountOrm.chart_account_id == chart_account_id,
            models.FinancialAccountOrm.is_active.is_(True),
        )
        if currency is not None:
            query = query.filter(models.FinancialAccountOrm.currency == currency.value)
        orm_account = query.order_by(models.FinancialAccountOrm.created_at.asc()).first()
        if orm_account is None:
            return None
        return self._to_domain(orm_account)

    @staticmethod
    def _to_domain(orm_account: models.FinancialAccountOrm) -> FinancialAccount:
        return FinancialAccount(
            id=AccountId(orm_account.id),
            name=orm_account.name,
            type=AccountType(orm_account.type),
            currency=Currency(orm_account.currency),
            initial_balance=orm_account.initial_balance,
            is_active=orm_account.is_active,
            chart_account_id=ChartAccountId(orm_account.chart_account_id) if orm_account.chart_account_id else None,
            created_by=UserId(orm_account.created_by) if orm_account.created_by else None,
        )


class LedgerMovementRepository(_Repository):
    def create(self, movement: LedgerMovement) -> LedgerMovement:
        orm_movement = models.LedgerMovementOrm(
            id=movement.id,
            operation_id=movement.operation_id,
            lead_id=movement.lead_id,
            type=movement.type.value,
            concept=movement.concept,
            currency=movement.currency.value,
            amount_original=movement.amount_original,
            exchange_rate=movement.exchange_rate,
            amount_ars_equivalent=movement.amount_ars_equivalent,
            method=movement.method.value,
            account_id=movement.account_id,
            seller_id=movement.seller_id,
            operator_id=movement.operator_id,
            receipt_number=movement.receipt_number,
            notes=movement.notes,
            created_by=movement.created_by,
            idempotency_key=movement.idempotency_key,
            created_at=movement.created_at,
        )
        return self._to_domain(self._add(orm_movement, "Error creating ledger movement"))

    def get(self, movement_id: MovementId) -> LedgerMovement | None:
        orm_movement = self._session.get(models.LedgerMovementOrm, movement_id)
        if orm_movement is None:
            return None
        return self._to_domain(orm_movement)

    def list_for_accounts(self, account_ids: Iterable[AccountId]) -> list[LedgerMovement]:
        ids = list(set(account_ids))
        if not ids:
            return []
        orm_movements = (
            self._session.query(models.LedgerMovementOrm)
            .filter(models.LedgerMovementOrm.account_id.in_(ids))
            .order_by(models.LedgerMovementOrm.created_at.asc())
            .all()
        )
        return [self._to_domain(movement) for movement in orm_movements]

    def list(self, filters: MovementFilters | None = None) -> list[LedgerMovement]:
        filters = filters or MovementFilters()
        orm = models.LedgerMovementOrm
        query = self._session.query(orm)
        if filters.date_from is not None:
            query = query.filter(orm.created_at >= filters.date_from)
        if filters.date_to is not None:
            query = query.filter(orm.created_at <= filters.date_to)
        if filters.type is not None:
            query = query.filter(orm.type == filters.type.value)
        if filters.currency is not None:
            query = query.filter(orm.currency == filters.currency.value)
        if filters.account_id is not None:
            query = query.filter(orm.account_id == filters.account_id)
        if filters.seller_id is not None:
            query = query.filter(orm.seller_id == filters.seller_id)
        if filters.operator_id is not None:
            query = query.filter(orm.operator_id == filters.operator_id)
        if filters.operation_id is not None:
            query = query.filter(orm.operation_id == filters.operation_id)
        if filters.lead_id is not None:
            query = query.filter(orm.lead_id == filters.lead_id)
        orm_movements = query.order_by(orm.created_at.desc()).all()
        return [self._to_domain(movement) for movement in orm_movements]

    def first_income_with_rate(self, operation_id: OperationId) -> LedgerMovement | None:
        orm_movement = (
            self._session.query(models.LedgerMovementOrm)
            .filter(
                models.LedgerMovementOrm.operation_id == operation_id,
                models.LedgerMovementOrm.type == MovementType.INCOME.value,
                models.LedgerMovementOrm.exchange_rate.is_not(None),
            )
            .order_by(models.LedgerMovementOrm.created_at.asc())
            .first()
        )
        if orm_movement is None:
            return None
        return self._to_domain(orm_movement)

    def latest_of_types(self, operation_id: OperationId, types: Iterable[MovementType]) -> LedgerMovement | None:
        orm_movement = (
            self._session.query(models.LedgerMovementOrm)
            .filter(
                models.LedgerMovementOrm.operation_id == operation_id,
                models.LedgerMovementOrm.type.in_([movement_type.value for movement_type in types]),
            )
            .order_by(models.LedgerMovementOrm.created_at.desc())
            .first()
        )
        if orm_movement is None:
            return None
        return self._to_domain(orm_movement)

    def exists_for_operation(
        self, operation_id: OperationId, movement_type: MovementType, account_id: AccountId
    ) -> bool:
        return (
            self._session.query(models.LedgerMovementOrm.id)
            .filter(
                models.LedgerMovementOrm.operation_id == operation_id,
                models.LedgerMovementOrm.type == movement_type.value,
                models.LedgerMovementOrm.account_id == account_id,
            )
            .first()
            is not None
        )

    def exists_with_key(self, idempotency_key: str) -> bool:
        return (
            self._session.query(models.LedgerMovementOrm.id)
            .filter(models.LedgerMovementOrm.idempotency_key == idempotency_key)
            .first()
            is not None
        )

    def reassign_lead(self, lead_id: LeadId, operation_id: OperationId) -> int:
        try:
            updated = (
                self._session.query(models.LedgerMovementOrm)
                .filter(models.LedgerMovementOrm.lead_id == lead_id)
                .update({"operation_id": operation_id, "lead_id": None}, synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"Error transferring lead movements: {exc}") from exc
        self._commit("Error transferring lead movements")
        return updated

    @staticmethod
    def _to_domain(orm_movement: models.LedgerMovementOrm) -> LedgerMovement:
        return LedgerMovement(
            id=MovementId(orm_movement.id),
            operation_id=OperationId(orm_movement.operation_id) if orm_movement.operation_id else None,
            lead_id=LeadId(orm_movement.lead_id) if orm_movement.lead_id else None,
            type=MovementType(orm_movement.type),
            concept=orm_movement.concept,
            currency=Currency(orm_movement.currency),
            amount_original=orm_movement.amount_original,
            exchange_rate=orm_movement.exchange_rate,
            amount_ars_equivalent=orm_movement.amount_ars_equivalent,
            method=MovementMethod(orm_movement.method),
            account_id=AccountId(orm_movement.account_id),
            seller_id=SellerId(orm_movement.seller_id) if orm_movement.seller_id else None,
            operator_id=OperatorId(orm_movement.operator_id) if orm_movement.operator_id else None,
            receipt_number=orm_movement.receipt_number,
            notes=orm_movement.notes,
            created_by=UserId(orm_movement.created_by) if orm_movement.created_by else None,
            idempotency_key=orm_movement.idempotency_key,
            created_at=_as_utc(orm_movement.created_at),
        )


class ExchangeRateRepository(_Repository):
    def latest_on_or_before(self, on: date, from_currency: Currency, to_currency: Currency) -> ExchangeRate | None:
        orm_rate = (
            self._pair_query(from_currency, to_currency)
            .filter(models.ExchangeRateOrm.rate_date <= on)
            .order_by(models.ExchangeRateOrm.rate_date.desc())
            .first()
        )
        if orm_rate is None:
            return None
        return self._to_domain(orm_rate)

    def latest(self, from_currency: Currency, to_currency: Currency) -> ExchangeRate | None:
        orm_rate = (
            self._pair_query(from_currency, to_currency).order_by(models.ExchangeRateOrm.rate_date.desc()).first()
        )
        if orm_rate is None:
            return None
        return self._to_domain(orm_rate)

    def list_between(
        self, date_from: date | None, date_to: date, from_currency: Currency, to_currency: Currency
    ) -> list[ExchangeRate]:
        """Rates with ``date_from <= rate_date <= date_to``, oldest first."""
        query = self._pair_query(from_currency, to_currency).filter(models.ExchangeRateOrm.rate_date <= date_to)
        if date_from is not None:
            query = query.filter(models.ExchangeRateOrm.rate_date >= date_from)
        orm_rates = query.order_by(models.ExchangeRateOrm.rate_date.asc()).all()
        return [self._to_domain(rate) for rate in orm_rates]

    def upsert(self, exchange_rate: ExchangeRate, *, now: datetime) -> ExchangeRate:
        orm_rate = (
            self._pair_query(exchange_rate.from_currency, exchange_rate.to_currency)
            .filter(models.ExchangeRateOrm.rate_date == exchange_rate.rate_date)
            .one_or_none()
        )
        if orm_rate is None:
            orm_rate = models.ExchangeRateOrm(
                id=exchange_rate.id,
                rate_date=exchange_rate.rate_date,
                from_currency=exchange_rate.from_currency.value,
                to_currency=exchange_rate.to_currency.value,
                created_at=now,
            )
            self._session.add(orm_rate)
        orm_rate.rate = exchange_rate.rate
        orm_rate.source = exchange_rate.source
        orm_rate.notes = exchange_rate.notes
        orm_rate.created_by = exchange_rate.created_by
        orm_rate.updated_at = now
        self._commit("Error upserting exchange rate")
        self._session.refresh(orm_rate)
        return self._to_domain(orm_rate)

    def _pair_query(self, from_currency: Currency, to_currency: Currency):  # type: ignore[no-untyped-def]
        return self._session.query(models.ExchangeRateOrm).filter(
            models.ExchangeRateOrm.from_currency == from_currency.value,
            models.ExchangeRateOrm.to_currency == to_currency.value,
        )

    @staticmethod
    def _to_domain(orm_rate: models.ExchangeRateOrm) -> ExchangeRate:
        return ExchangeRate(
            id=ExchangeRateId(orm_rate.id),
            rate_date=orm_rate.rate_date,
            from_currency=Currency(orm_rate.from_currency),
            to_currency=Currency(orm_rate.to_currency),
            rate=orm_rate.rate,
            source=orm_rate.source,
            notes=orm_rate.notes,
            created_by=UserId(orm_rate.created_by) if orm_rate.created_by else None,
            created_at=_as_utc(orm_rate.created_at),
            updated_at=_as_utc(orm_rate.updated_at),
        )


class VatSaleRepository(_Repository):
    def create(self, record: VatSaleRecord) -> VatSaleRecord:
        orm_record = models.IvaSaleOrm(
            id=record.id,
            operation_id=record.operation_id,
            sale_amount_total=record.sale_amount_total,
            net_amount=record.net_amount,
            iva_amount=record.iva_amount,
            currency=record.currency.value,
            sale_date=record.sale_date,
        )
        return self._to_domain(self._add(orm_record, "Error creating sale VAT"))

    def get_by_operation(self, operation_id: OperationId) -> VatSaleRecord | None:
        orm_record = (
            self._session.query(models.IvaSaleOrm).filter(models.IvaSaleOrm.operation_id == operation_id).one_or_none()
        )
        if orm_record is None:
            return None
        return self._to_domain(orm_record)

    def update(self, record: VatSaleRecord) -> VatSaleRecord:
        orm_record = self._session.get(models.IvaSaleOrm, record.id)
        if orm_record is None:
            raise StoreError(f"Error updating sale VAT: record {record.id} vanished")
        orm_record.sale_amount_total = record.sale_amount_total
        orm_record.net_amount = record.net_amount
        orm_record.iva_amount = record.iva_amount
        orm_record.currency = record.currency.value
        self._commit("Error updating sale VAT")
        return record

    def delete_by_operation(self, operation_id: OperationId) -> int:
        deleted = (
            self._session.query(models.IvaSaleOrm)
            .filter(models.IvaSaleOrm.operation_id == operation_id)
            .delete(synchronize_session=False)
        )
        self._commit("Error deleting sale VAT")
        return deleted

    def list_between(self, start: date, end: date) -> list[VatSaleRecord]:
        orm_records = (
            self._session.query(models.IvaSaleOrm)
            .filter(models.IvaSaleOrm.sale_date >= start, models.IvaSaleOrm.sale_date <= end)
            .all()
        )
        return [self._to_domain(record) for record in orm_records]

    @staticmethod
    def _to_domain(orm_record: models.IvaSaleOrm) -> VatSaleRecord:
        return VatSaleRecord(
            id=VatRecordId(orm_record.id),
            operation_id=OperationId(orm_record.operation_id),
            sale_amount_total=orm_record.sale_amount_total,
            net_amount=orm_record.net_amount,
            iva_amount=orm_record.iva_amount,
            currency=Currency(orm_record.currency),
            sale_date=orm_record.sale_date,
        )


class VatPurchaseRepository(_Repository):
    def create(self, record: VatPurchaseRecord) -> VatPurchaseRecord:
        orm_record = models.IvaPurchaseOrm(
            id=record.id,
            operation_id=record.operation_id,
            operator_id=record.operator_id,
            operator_cost_total=record.operator_cost_total,
            net_amount=record.net_amount,
            iva_amount=record.iva_amount,
            currency=record.currency.value,
            purchase_date=record.purchase_date,
        )
        return self._to_domain(self._add(orm_record, "Error creating purchase VAT"))

    def get_by_operation(self, operation_id: OperationId) -> VatPurchaseRecord | None:
        orm_record = (
            self._session.query(models.IvaPurchaseOrm)
            .filter(models.IvaPurchaseOrm.operation_id == operation_id)
            .one_or_none()
        )
        if orm_record is None:
            return None
        return self._to_domain(orm_record)

    def update(self, record: VatPurchaseRecord) -> VatPurchaseRecord:
        orm_record = self._session.get(models.IvaPurchaseOrm, record.id)
        if orm_record is None:
            raise StoreError(f"Error updating purchase VAT: record {record.id} vanished")
        orm_record.operator_cost_total = record.operator_cost_total
        orm_record.net_amount = record.net_amount
        orm_record.iva_amount = record.iva_amount
        orm_record.currency = record.currency.value
        self._commit("Error updating purchase VAT")
        return record

    def delete_by_operation(self, operation_id: OperationId) -> int:
        deleted = (
            self._session.query(models.IvaPurchaseOrm)
            .filter(models.IvaPurchaseOrm.operation_id == operation_id)
            .delete(synchronize_session=False)
        )
        self._commit("Error deleting purchase VAT")
        return deleted

    def list_between(self, start: date, end: date) -> list[VatPurchaseRecord]:
        orm_records = (
            self._session.query(models.IvaPurchaseOrm)
            .filter(models.IvaPurchaseOrm.purchase_date >= start, models.IvaPurchaseOrm.purchase_date <= end)
            .all()
        )
        return [self._to_domain(record) for record in orm_records]

    @staticmethod
    def _to_domain(orm_record: models.IvaPurchaseOrm) -> VatPurchaseRecord:
        return VatPurchaseRecord(
            id=VatRecordId(orm_record.id),
            operation_id=OperationId(orm_record.operation_id),
            operator_id=OperatorId(orm_record.operator_id) if orm_record.operator_id else None,
            operator_cost_total=orm_record.operator_cost_total,
            net_amount=orm_record.net_amount,
            iva_amount=orm_record.iva_amount,
            currency=Currency(orm_record.currency),
            purchase_date=orm_record.purchase_date,
        )


class OperatorPaymentRepository(_Repository):
    def create(self, payment: OperatorPayment, *, now: datetime) -> OperatorPayment:
        orm_payment = models.OperatorPaymentOrm(
            id=payment.id,
            operation_id=payment.operation_id,
            operator_id=payment.operator_id,
            amount=payment.amount,
            currency=payment.currency.value,
            due_date=payment.due_date,
            status=payment.status.value,
            paid_amount=payment.paid_amount,
            ledger_movement_id=payment.ledger_movement_id,
            notes=payment.notes,
            created_at=now,
            updated_at=now,
        )
        return self._to_domain(self._add(orm_payment, "Error creating operator payment"))

    def get(self, payment_id: OperatorPaymentId) -> OperatorPayment | None:
        orm_payment = self._session.get(models.OperatorPaymentOrm, payment_id)
        if orm_payment is None:
            return None
        return self._to_domain(orm_payment)

    def list_for_operation(self, operation_id: OperationId) -> list[OperatorPayment]:
        orm_payments = (
            self._session.query(models.OperatorPaymentOrm)
            .filter(models.OperatorPaymentOrm.operation_id == operation_id)
            .order_by(models.OperatorPaymentOrm.due_date.asc())
            .all()
        )
        return [self._to_domain(payment) for payment in orm_payments]

    def mark_paid(
        self, payment_id: OperatorPaymentId, ledger_movement_id: MovementId, *, now: datetime
    ) -> OperatorPayment | None:
        orm_payment = self._session.get(models.OperatorPaymentOrm, payment_id)
        if orm_payment is None:
            return None
        orm_payment.status = OperatorPaymentStatus.PAID.value
        orm_payment.paid_amount = orm_payment.amount
        orm_payment.ledger_movement_id = ledger_movement_id
        orm_payment.updated_at = now
        self._commit("Error marking operator payment as paid")
        return self._to_domain(orm_payment)

    def list_pending_due_before(self, today: date, operator_id: OperatorId | None = None) -> list[OperatorPayment]:
        query = self._session.query(models.OperatorPaymentOrm).filter(
            models.OperatorPaymentOrm.status == OperatorPaymentStatus.PENDING.value,
            models.OperatorPaymentOrm.due_date < today,
        )
        if operator_id is not None:
            query = query.filter(models.OperatorPaymentOrm.operator_id == operator_id)
        orm_payments = query.order_by(models.OperatorPaymentOrm.due_date.asc()).all()
        return [self._to_domain(payment) for payment in orm_payments]

    def mark_overdue(self, today: date, *, now: datetime) -> int:
        try:
            updated = (
                self._session.query(models.OperatorPaymentOrm)
                .filter(
                    models.OperatorPaymentOrm.status == OperatorPaymentStatus.PENDING.value,
                    models.OperatorPaymentOrm.due_date < today,
                )
                .update(
                    {"status": OperatorPaymentStatus.OVERDUE.value, "updated_at": now},
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"Error updating overdue payments: {exc}") from exc
        self._commit("Error updating overdue payments")
        return updated

    @staticmethod
    def _to_domain(orm_payment: models.OperatorPaymentOrm) -> OperatorPayment:
        return OperatorPayment(
            id=OperatorPaymentId(orm_payment.id),
            operation_id=OperationId(orm_payment.operation_id) if orm_payment.operation_id else None,
            operator_id=OperatorId(orm_payment.operator_id),
            amount=orm_payment.amount,
            currency=Currency(orm_payment.currency),
            due_date=orm_payment.due_date,
            status=OperatorPaymentStatus(orm_payment.status),
            paid_amount=orm_payment.paid_amount,
            ledger_movement_id=MovementId(orm_payment.ledger_movement_id) if orm_payment.ledger_movement_id else None,
            notes=orm_payment.notes,
            created_at=_as_utc(orm_payment.created_at),
            updated_at=_as_utc(orm_payment.updated_at),
        )


class RecurringPaymentRepository(_Repository):
    def create(self, recurring: RecurringPayment, *, now: datetime) -> RecurringPayment:
        orm_recurring = models.RecurringPaymentOrm(id=recurring.id, created_at=now)
        self._copy_fields(recurring, orm_recurring, now)
        return self._to_domain(self._add(orm_recurring, "Error creating recurring payment"))

    def get(self, recurring_id: RecurringPaymentId) -> RecurringPayment | None:
        orm_recurring = self._session.get(models.RecurringPaymentOrm, recurring_id)
        if orm_recurring is None:
            return None
        return self._to_domain(orm_recurring)

    def list_filtered(
        self, operator_id: OperatorId | None = None, is_active: bool | None = None
    ) -> list[RecurringPayment]:
        query = self._session.query(models.RecurringPaymentOrm)
        if operator_id is not None:
            query = query.filter(models.RecurringPaymentOrm.operator_id == operator_id)
        if is_active is not None:
            query = query.filter(models.RecurringPaymentOrm.is_active.is_(is_active))
        orm_recurring = query.order_by(models.RecurringPaymentOrm.next_due_date.asc()).all()
        return [self._to_domain(recurring) for recurring in orm_recurring]

    def list_due(self, today: date) -> list[RecurringPayment]:
        orm_recurring = (
            self._session.query(models.RecurringPaymentOrm)
            .filter(
                models.RecurringPaymentOrm.is_active.is_(True),
                models.RecurringPaymentOrm.start_date <= today,
                models.RecurringPaymentOrm.next_due_date <= today,
                or_(models.RecurringPaymentOrm.end_date.is_(None), models.RecurringPaymentOrm.end_date >= today),
            )
            .order_by(models.RecurringPaymentOrm.next_due_date.asc())
            .all()
        )
        return [self._to_domain(recurring) for recurring in orm_recurring]

    def save(self, recurring: RecurringPayment, *, now: datetime) -> RecurringPayment | None:
        orm_recurring = self._session.get(models.RecurringPaymentOrm, recurring.id)
        if orm_recurring is None:
            return None
        self._copy_fields(recurring, orm_recurring, now)
        self._commit("Error updating recurring payment")
        return self._to_domain(orm_recurring)

    @staticmethod
    def _copy_fields(recurring: RecurringPayment, orm_recurring: models.RecurringPaymentOrm, now: datetime) -> None:
        orm_recurring.operator_id = recurring.operator_id
        orm_recurring.amount = recurring.amount
        orm_recurring.currency = recurring.currency.value
        orm_recurring.frequency = recurring.frequency.value
        orm_recurring.start_date = recurring.start_date
        orm_recurring.end_date = recurring.end_date
        orm_recurring.next_due_date = recurring.next_due_date
        orm_recurring.last_generated_date = recurring.last_generated_date
        orm_recurring.is_active = recurring.is_active
        orm_recurring.description = recurring.description
        orm_recurring.notes = recurring.notes
        orm_recurring.invoice_number = recurring.invoice_number
        orm_recurring.reference = recurring.reference
        orm_recurring.created_by = recurring.created_by
        orm_recurring.updated_at = now

    @staticmethod
    def _to_domain(orm_recurring: models.RecurringPaymentOrm) -> RecurringPayment:
        return RecurringPayment(
            id=RecurringPaymentId(orm_recurring.id),
            operator_id=OperatorId(orm_recurring.operator_id),
            amount=orm_recurring.amount,
            currency=Currency(orm_recurring.currency),
            frequency=RecurringFrequency(orm_recurring.frequency),
            start_date=orm_recurring.start_date,
            end_date=orm_recurring.end_date,
            next_due_date=orm_recurring.next_due_date,
            last_generated_date=orm_recurring.last_generated_date,
            is_active=orm_recurring.is_active,
            description=orm_recurring.description,
            notes=orm_recurring.notes,
            invoice_number=orm_recurring.invoice_number,
            reference=orm_recurring.reference,
            created_by=UserId(orm_recurring.created_by) if orm_recurring.created_by else None,
            created_at=_as_utc(orm_recurring.created_at),
            updated_at=_as_utc(orm_recurring.updated_at),
        )


class OperationRepository(_Repository):
    def create(self, operation: Operation) -> Operation:
        orm_operation = models.OperationOrm(
            id=operation.id,
            file_code=operation.file_code,
            destination=operation.destination,
            product_type=operation.product_type.value if operation.product_type else None,
            sale_amount_total=operation.sale_amount_total,
            sale_currency=operation.sale_currency.value if operation.sale_currency else None,
            operator_cost_total=operation.operator_cost_total,
            operator_cost_currency=operation.operator_cost_currency.value if operation.operator_cost_currency else None,
            operator_id=operation.operator_id,
            seller_id=operation.seller_id,
            departure_date=operation.departure_date,
            checkin_date=operation.checkin_date,
            purchase_date=operation.purchase_date,
            created_at=operation.created_at,
        )
        return self._to_domain(self._add(orm_operation, "Error creating operation"))

    def get(self, operation_id: OperationId) -> Operation | None:
        orm_operation = self._session.get(models.OperationOrm, operation_id)
        if orm_operation is None:
            return None
        return self._to_domain(orm_operation)

    @staticmethod
    def _to_domain(orm_operation: models.OperationOrm) -> Operation:
        return Operation(
            id=OperationId(orm_operation.id),
            file_code=orm_operation.file_code,
            destination=orm_operation.destination,
            product_type=ProductType(orm_operation.product_type) if orm_operation.product_type else None,
            sale_amount_total=orm_operation.sale_amount_total,
            sale_currency=Currency(orm_operation.sale_currency) if orm_operation.sale_currency else None,
            operator_cost_total=orm_operation.operator_cost_total,
            operator_cost_currency=(
                Currency(orm_operation.operator_cost_currency) if orm_operation.operator_cost_currency else None
            ),
            operator_id=OperatorId(orm_operation.operator_id) if orm_operation.operator_id else None,
            seller_id=SellerId(orm_operation.seller_id) if orm_operation.seller_id else None,
            departure_date=orm_operation.departure_date,
            checkin_date=orm_operation.checkin_date,
            purchase_date=orm_operation.purchase_date,
            created_at=_as_utc(orm_operation.created_at),
        )


class PaymentRepository(_Repository):
    def create(self, payment: Payment) -> Payment:
        orm_payment = models.PaymentOrm(
            id=payment.id,
            operation_id=payment.operation_id,
            amount=payment.amount,
            currency=payment.currency.value,
            direction=payment.direction.value,
            payer_type=payment.payer_type.value,
            method=payment.method,
            status=payment.status.value,
            date_paid=payment.date_paid,
            reference=payment.reference,
            account_id=payment.account_id,
            ledger_movement_id=payment.ledger_movement_id,
            exchange_rate=payment.exchange_rate,
        )
        return self._to_domain(self._add(orm_payment, "Error creating payment"))

    def get(self, payment_id: PaymentId) -> Payment | None:
        orm_payment = self._session.get(models.PaymentOrm, payment_id)
        if orm_payment is None:
            return None
        return self._to_domain(orm_payment)

    def mark_paid(self, payment_id: PaymentId, *, date_paid: date, reference: str | None) -> Payment:
        orm_payment = self._session.get(models.PaymentOrm, payment_id)
        if orm_payment is None:
            raise StoreError(f"Error updating payment: payment {payment_id} vanished")
        orm_payment.status = PaymentStatus.PAID.value
        orm_payment.date_paid = date_paid
        orm_payment.reference = reference
        self._commit("Error marking payment as paid")
        return self._to_domain(orm_payment)

    def link_movement(self, payment_id: PaymentId, ledger_movement_id: MovementId) -> None:
        orm_payment = self._session.get(models.PaymentOrm, payment_id)
        if orm_payment is None:
            raise StoreError(f"Error linking payment movement: payment {payment_id} vanished")
        orm_payment.ledger_movement_id = ledger_movement_id
        self._commit("Error linking payment movement")

    def list_paid_customer_income(self, operation_id: OperationId) -> list[Payment]:
        orm_payments = (
            self._session.query(models.PaymentOrm)
            .filter(
                models.PaymentOrm.operation_id == operation_id,
                models.PaymentOrm.status == PaymentStatus.PAID.value,
                models.PaymentOrm.direction == PaymentDirection.INCOME.value,
                models.PaymentOrm.payer_type == PayerType.CUSTOMER.value,
            )
            .order_by(models.PaymentOrm.date_paid.asc())
            .all()
        )
        return [self._to_domain(payment) for payment in orm_payments]

    @staticmethod
    def _to_domain(orm_payment: models.PaymentOrm) -> Payment:
        return Payment(
            id=PaymentId(orm_payment.id),
            operation_id=OperationId(orm_payment.operation_id) if orm_payment.operation_id else None,
            amount=orm_payment.amount,
            currency=Currency(orm_payment.currency),
            direction=PaymentDirection(orm_payment.direction),
            payer_type=PayerType(orm_payment.payer_type),
            method=orm_payment.method,
            status=PaymentStatus(orm_payment.status),
            date_paid=orm_payment.date_paid,
            reference=orm_payment.reference,
            account_id=AccountId(orm_payment.account_id) if orm_payment.account_id else None,
            ledger_movement_id=MovementId(orm_payment.ledger_movement_id) if orm_payment.ledger_movement_id else None,
            exchange_rate=orm_payment.exchange_rate,
        )


class CommissionRecordRepository(_Repository):
    def create(self, record: CommissionRecord) -> CommissionRecord:
        orm_record = models.CommissionRecordOrm(
            id=record.id,
            operation_id=record.operation_id,
            seller_id=record.seller_id,
            amount=record.amount,
            currency=record.currency.value,
            status=record.status.value,
            date_paid=record.date_paid,
        )
        return self._to_domain(self._add(orm_record, "Error creating commission record"))

    def list_for_operation(self, operation_id: OperationId) -> list[CommissionRecord]:
        orm_records = (
            self._session.query(models.CommissionRecordOrm)
            .filter(models.CommissionRecordOrm.operation_id == operation_id)
            .all()
        )
        return [self._to_domain(record) for record in orm_records]

    def mark_paid_for_operation(self, operation_id: OperationId, *, date_paid: date) -> int:
        try:
            updated = (
                self._session.query(models.CommissionRecordOrm)
                .filter(
                    models.CommissionRecordOrm.operation_id == operation_id,
                    models.CommissionRecordOrm.status == CommissionStatus.PENDING.value,
                )
                .update(
                    {"status": CommissionStatus.PAID.value, "date_paid": date_paid},
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"Error marking commissions as paid: {exc}") from exc
        self._commit("Error marking commissions as paid")
        return updated

    @staticmethod
    def _to_domain(orm_record: models.CommissionRecordOrm) -> CommissionRecord:
        return CommissionRecord(
            id=CommissionId(orm_record.id),
            operation_id=OperationId(orm_record.operation_id),
            seller_id=SellerId(orm_record.seller_id),
            amount=orm_record.amount,
            currency=Currency(orm_record.currency),
            status=CommissionStatus(orm_record.status),
            date_paid=orm_record.date_paid,
        )
