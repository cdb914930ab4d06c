from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DecimalAsString(TypeDecorator):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: object) -> str | None:
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value: str | None, dialect: object) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    pass


class ChartAccountOrm(Base):
    __tablename__ = "chart_of_accounts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_code: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class FinancialAccountOrm(Base):
    __tablename__ = "financial_accounts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    initial_balance: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    chart_account_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("chart_of_accounts.id"), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    chart_account: Mapped[ChartAccountOrm | None] = relationship()
    movements: Mapped[list["LedgerMovementOrm"]] = relationship(back_populates="account")


class LedgerMovementOrm(Base):
    __tablename__ = "ledger_movements"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    operation_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    lead_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    concept: Mapped[str] = mapped_column(String, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    amount_original: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    exchange_rate: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    amount_ars_equivalent: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    method: Mapped[str] = mapped_column(String, nullable=False)
    account_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("financial_accounts.id"), nullable=False, index=True)
    seller_id: Mapped[str | None] = mapped_column(String, nullable=True)
    operator_id: Mapped[str | None] = mapped_column(String, nullable=True)
    receipt_number: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    account: Mapped[FinancialAccountOrm] = relationship(back_populates="movements")


class ExchangeRateOrm(Base):
    __tablename__ = "exchange_rates"
    __table_args__ = (UniqueConstraint("rate_date", "from_currency", "to_currency"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    rate_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    from_currency: Mapped[str] = mapped_column(String, nullable=False)
    to_currency: Mapped[str] = mapped_column(String, nullable=False)
    rate: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="MANUAL")
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class IvaSaleOrm(Base):
    __tablename__ = "iva_sales"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    operation_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    sale_amount_total: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    iva_amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)


class IvaPurchaseOrm(Base):
    __tablename__ = "iva_purchases"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    operation_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    operator_id: Mapped[str | None] = mapped_column(String, nullable=True)
    operator_cost_total: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    iva_amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)


class OperatorPaymentOrm(Base):
    __tablename__ = "operator_payments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    operation_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    operator_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    paid_amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False, default=Decimal("0"))
    ledger_movement_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("ledger_movements.id"), nullable=True)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class RecurringPaymentOrm(Base):
    __tablename__ = "recurring_payments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    operator_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    frequency: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    last_generated_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String, nullable=True)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class OperationOrm(Base):
    __tablename__ = "operations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    file_code: Mapped[str | None] = mapped_column(String, nullable=True)
    destination: Mapped[str | None] = mapped_column(String, nullable=True)
    product_type: Mapped[str | None] = mapped_column(String, nullable=True)
    sale_amount_total: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    sale_currency: Mapped[str | None] = mapped_column(String, nullable=True)
    operator_cost_total: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False, default=Decimal("0"))
    operator_cost_currency: Mapped[str | None] = mapped_column(String, nullable=True)
    operator_id: Mapped[str | None] = mapped_column(String, nullable=True)
    seller_id: Mapped[str | None] = mapped_column(String, nullable=True)
    departure_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    checkin_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class PaymentOrm(Base):
    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    operation_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    direction: Mapped[str] = mapped_column(String, nullable=False)
    payer_type: Mapped[str] = mapped_column(String, nullable=False)
    method: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    date_paid: Mapped[date | None] = mapped_column(Date, nullable=True)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    account_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("financial_accounts.id"), nullable=True)
    ledger_movement_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("ledger_movements.id"), nullable=True)
    exchange_rate: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)


class CommissionRecordOrm(Base):
    __tablename__ = "commission_records"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    operation_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    seller_id: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    date_paid: Mapped[date | None] = mapped_column(Date, nullable=True)
