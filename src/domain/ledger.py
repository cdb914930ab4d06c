from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from .base_types import (
    AccountId,
    ChartAccountId,
    Currency,
    LeadId,
    MovementId,
    OperationId,
    OperatorId,
    SellerId,
    UserId,
)


class MovementType(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    FX_GAIN = "FX_GAIN"
    FX_LOSS = "FX_LOSS"
    COMMISSION = "COMMISSION"
    OPERATOR_PAYMENT = "OPERATOR_PAYMENT"


INFLOW_TYPES = frozenset({MovementType.INCOME, MovementType.FX_GAIN})
OUTFLOW_TYPES = frozenset(
    {MovementType.EXPENSE, MovementType.FX_LOSS, MovementType.COMMISSION, MovementType.OPERATOR_PAYMENT}
)
FX_TYPES = frozenset({MovementType.FX_GAIN, MovementType.FX_LOSS})


class MovementMethod(StrEnum):
    CASH = "CASH"
    BANK = "BANK"
    MP = "MP"
    USD = "USD"
    OTHER = "OTHER"


class AccountType(StrEnum):
    CASH_ARS = "CASH_ARS"
    CASH_USD = "CASH_USD"
    CHECKING_ARS = "CHECKING_ARS"
    CHECKING_USD = "CHECKING_USD"
    SAVINGS_ARS = "SAVINGS_ARS"
    SAVINGS_USD = "SAVINGS_USD"
    CREDIT_CARD = "CREDIT_CARD"


class AccountCategory(StrEnum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    RESULT = "RESULT"


class NewLedgerMovement(BaseModel):
    """Parameters for a movement about to be recorded.

    ``amount_ars_equivalent`` is always supplied by the caller; the ledger
    never converts on its own.
    """

    operation_id: OperationId | None = None
    lead_id: LeadId | None = None
    type: MovementType
    concept: str
    currency: Currency
    amount_original: Decimal
    exchange_rate: Decimal | None = None
    amount_ars_equivalent: Decimal | None = None
    method: MovementMethod = MovementMethod.OTHER
    account_id: AccountId
    seller_id: SellerId | None = None
    operator_id: OperatorId | None = None
    receipt_number: str | None = None
    notes: str | None = None
    created_by: UserId | None = None
    idempotency_key: str | None = None

    @model_validator(mode="after")
    def _validate_concept(self) -> NewLedgerMovement:
        if not self.concept:
            raise ValueError("concept must be non-empty")
        return self


class LedgerMovement(BaseModel):
    id: MovementId = MovementId(Field(default_factory=uuid4))
    operation_id: OperationId | None = None
    lead_id: LeadId | None = None
    type: MovementType
    concept: str
    currency: Currency
    amount_original: Decimal
    exchange_rate: Decimal | None = None
    amount_ars_equivalent: Decimal
    method: MovementMethod
    account_id: AccountId
    seller_id: SellerId | None = None
    operator_id: OperatorId | None = None
    receipt_number: str | None = None
    notes: str | None = None
    created_by: UserId | None = None
    idempotency_key: str | None = None
    created_at: datetime


class MovementFilters(BaseModel):
    date_from: datetime | None = None
    date_to: datetime | None = None
    type: MovementType | None = None
    currency: Currency | None = None
    account_id: AccountId | None = None
    seller_id: SellerId | None = None
    operator_id: OperatorId | None = None
    operation_id: OperationId | None = None
    lead_id: LeadId | None = None


class FinancialAccount(BaseModel):
    id: AccountId = AccountId(Field(default_factory=uuid4))
    name: str
    type: AccountType
    currency: Currency
    initial_balance: Decimal = Decimal(0)
    is_active: bool = True
    chart_account_id: ChartAccountId | None = None
    created_by: UserId | None = None


class ChartAccount(BaseModel):
    id: ChartAccountId = ChartAccountId(Field(default_factory=uuid4))
    account_code: str
    name: str
    category: AccountCategory
    is_active: bool = True


RECEIVABLES_CODE = "1.1.03"
PAYABLES_CODE = "2.1.01"
ACCOUNTING_ONLY_CODES = frozenset({RECEIVABLES_CODE, PAYABLES_CODE})

CHART_ACCOUNT_DEFAULTS: dict[str, tuple[str, AccountCategory]] = {
    RECEIVABLES_CODE: ("Cuentas por Cobrar", AccountCategory.ASSET),
    PAYABLES_CODE: ("Cuentas por Pagar", AccountCategory.LIABILITY),
}

DEFAULT_ACCOUNT_TYPES: dict[MovementMethod, dict[Currency, AccountType]] = {
    MovementMethod.CASH: {Currency.ARS: AccountType.CASH_ARS, Currency.USD: AccountType.CASH_USD},
    MovementMethod.BANK: {Currency.ARS: AccountType.CHECKING_ARS, Currency.USD: AccountType.CHECKING_USD},
    MovementMethod.MP: {Currency.ARS: AccountType.CREDIT_CARD, Currency.USD: AccountType.CREDIT_CARD},
    MovementMethod.USD: {Currency.ARS: AccountType.SAVINGS_ARS, Currency.USD: AccountType.SAVINGS_USD},
}

DEFAULT_ACCOUNT_NAMES: dict[AccountType, str] = {
    AccountType.CASH_ARS: "Caja Principal ARS",
    AccountType.CASH_USD: "Caja Principal USD",
    AccountType.CHECKING_ARS: "Banco Principal ARS",
    AccountType.CHECKING_USD: "Banco Principal USD",
    AccountType.CREDIT_CARD: "Mercado Pago",
    AccountType.SAVINGS_ARS: "Caja de Ahorro ARS",
    AccountType.SAVINGS_USD: "Caja de Ahorro USD",
}


def default_account_type(kind: MovementMethod | str, currency: Currency) -> AccountType:
    """Canonical account archetype for a payment method token.

    Raises ``ValueError`` for tokens with no archetype (including ``OTHER``).
    """
    try:
        return DEFAULT_ACCOUNT_TYPES[MovementMethod(kind)][currency]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"No default account for method {kind!r} in {currency}") from exc


def signed_amount(movement_type: MovementType, amount: Decimal, category: AccountCategory | None) -> Decimal:
    """Contribution of a movement to an account balance.

    Inflows add and outflows subtract; liabilities run the other way.
    """
    sign = 1 if movement_type in INFLOW_TYPES else -1
    if category == AccountCategory.LIABILITY:
        sign = -sign
    return amount * sign
