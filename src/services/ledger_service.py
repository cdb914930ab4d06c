from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from db.repositories import (
    ChartAccountRepository,
    CommissionRecordRepository,
    FinancialAccountRepository,
    LedgerMovementRepository,
)
from domain.base_types import BASE_CURRENCY, CENT, AccountId, Currency, LeadId, MovementId, OperationId, UserId
from domain.currency import to_base
from domain.errors import AccountingError, InsufficientFundsError, NotFoundError, ValidationError
from domain.ledger import (
    ACCOUNTING_ONLY_CODES,
    CHART_ACCOUNT_DEFAULTS,
    DEFAULT_ACCOUNT_NAMES,
    AccountCategory,
    AccountType,
    ChartAccount,
    FinancialAccount,
    LedgerMovement,
    MovementFilters,
    MovementMethod,
    MovementType,
    NewLedgerMovement,
    default_account_type,
    signed_amount,
)

logger = logging.getLogger(__name__)


class LedgerService:
    """Single writer of ledger movements and calculator of account balances.

    Balances are never cached: every read sums the movements of the account.
    """

    def __init__(self, session: Session, *, clock: Callable[[], datetime] | None = None) -> None:
        self._accounts = FinancialAccountRepository(session)
        self._chart_accounts = ChartAccountRepository(session)
        self._movements = LedgerMovementRepository(session)
        self._commissions = CommissionRecordRepository(session)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record_movement(self, params: NewLedgerMovement) -> MovementId:
        self._validate_movement(params)
        if self._accounts.get(params.account_id) is None:
            raise NotFoundError("Financial account", params.account_id)

        movement = self._movements.create(LedgerMovement(**params.model_dump(), created_at=self._clock()))
        logger.info(
            "Recorded %s %s %s on account %s (operation=%s)",
            movement.type,
            movement.amount_original,
            movement.currency,
            movement.account_id,
            movement.operation_id,
        )

        if movement.type == MovementType.COMMISSION and movement.operation_id is not None:
            self._mark_commissions_paid(movement.operation_id)

        return movement.id

    def get_account_balance(self, account_id: AccountId) -> Decimal:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError("Financial account", account_id)
        category = self._category_of(account)
        return self._balance(account, category, self._movements.list_for_accounts([account_id]))

    def get_account_balances_batch(self, account_ids: Iterable[AccountId]) -> dict[AccountId, Decimal]:
        requested = list(account_ids)
        accounts = {account.id: account for account in self._accounts.get_many(requested)}
        charts = self._chart_accounts.get_many(
            account.chart_account_id for account in accounts.values() if account.chart_account_id is not None
        )

        movements_by_account: dict[AccountId, list[LedgerMovement]] = {account_id: [] for account_id in accounts}
        for movement in self._movements.list_for_accounts(accounts):
            movements_by_account[movement.account_id].append(movement)

        balances: dict[AccountId, Decimal] = {}
        for account_id in requested:
            account = accounts.get(account_id)
            if account is None:
                balances[account_id] = Decimal(0)
                continue
            chart = charts.get(account.chart_account_id) if account.chart_account_id is not None else None
            category = chart.category if chart is not None else None
            balances[account_id] = self._balance(account, category, movements_by_account[account_id])
        return balances

    def validate_balance_for_expense(
        self,
        account_id: AccountId,
        amount: Decimal,
        currency: Currency,
        exchange_rate: Decimal | None = None,
    ) -> None:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError("Financial account", account_id)

        if currency == account.currency:
            required = amount
        elif account.currency == BASE_CURRENCY:
            required = to_base(amount, currency, exchange_rate)
        else:
            if exchange_rate is None or exchange_rate <= 0:
                raise ValidationError(
                    f"An exchange rate is required to compare {currency} against a {account.currency} account"
                )
            required = amount / exchange_rate

        available = self.get_account_balance(account_id)
        if available < required:
            raise InsufficientFundsError(
                account_id=account_id, available=available, required=required, currency=account.currency
            )

    def transfer_lead_to_operation(self, lead_id: LeadId, operation_id: OperationId) -> int:
        moved = self._movements.reassign_lead(lead_id, operation_id)
        logger.info("Transferred %d movements from lead %s to operation %s", moved, lead_id, operation_id)
        return moved

    def get_or_create_default_account(
        self, kind: MovementMethod | str, currency: Currency, user_id: UserId | None = None
    ) -> AccountId:
        try:
            account_type = default_account_type(kind, currency)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        existing = self._accounts.find_active(account_type, currency, excluding_codes=ACCOUNTING_ONLY_CODES)
        if existing is not None:
            return existing.id

        created = self._accounts.create(
            FinancialAccount(
                name=DEFAULT_ACCOUNT_NAMES[account_type],
                type=account_type,
                currency=currency,
                created_by=user_id,
            )
        )
        logger.info("Created default account %r (%s)", created.name, created.id)
        return created.id

    def get_or_create_chart_account_account(
        self, account_code: str, currency: Currency = BASE_CURRENCY, user_id: UserId | None = None
    ) -> AccountId:
        """Financial account backing a chart-of-accounts entry (receivables, payables)."""
        chart = self._chart_accounts.find_active_by_code(account_code)
        if chart is None:
            defaults = CHART_ACCOUNT_DEFAULTS.get(account_code)
            if defaults is None:
                raise ValidationError(f"Unknown chart account code: {account_code}")
            name, category = defaults
            chart = self._chart_accounts.create(ChartAccount(account_code=account_code, name=name, category=category))

        existing = self._accounts.find_active_for_chart_account(chart.id, currency)
        if existing is not None:
            return existing.id

        created = self._accounts.create(
            FinancialAccount(
                name=f"{chart.name} {currency}",
                type=AccountType.CASH_ARS if currency == Currency.ARS else AccountType.CASH_USD,
                currency=currency,
                chart_account_id=chart.id,
                created_by=user_id,
            )
        )
        return created.id

    def is_accounting_only_account(self, account_id: AccountId) -> bool:
        account = self._accounts.get(account_id)
        if account is None or account.chart_account_id is None:
            return False
        chart = self._chart_accounts.get(account.chart_account_id)
        return chart is not None and chart.account_code in ACCOUNTING_ONLY_CODES

    def get_operation_movements(self, operation_id: OperationId) -> list[LedgerMovement]:
        return self._movements.list(MovementFilters(operation_id=operation_id))

    def get_lead_movements(self, lead_id: LeadId) -> list[LedgerMovement]:
        return self._movements.list(MovementFilters(lead_id=lead_id))

    def list_movements(self, filters: MovementFilters | None = None) -> list[LedgerMovement]:
        return self._movements.list(filters)

    @staticmethod
    def _validate_movement(params: NewLedgerMovement) -> None:
        if params.amount_original < 0:
            raise ValidationError(f"amount_original must not be negative, got {params.amount_original}")
        if params.amount_ars_equivalent is None:
            raise ValidationError("amount_ars_equivalent is required")

        if params.currency == BASE_CURRENCY:
            if params.amount_ars_equivalent != params.amount_original:
                raise ValidationError(
                    f"ARS movement must carry amount_ars_equivalent == amount_original "
                    f"({params.amount_ars_equivalent} != {params.amount_original})"
                )
            return

        if params.exchange_rate is None or params.exchange_rate <= 0:
            raise ValidationError(f"{params.currency} movement requires a positive exchange_rate")
        expected = params.amount_original * params.exchange_rate
        if abs(expected - params.amount_ars_equivalent) > CENT:
            raise ValidationError(
                f"amount_ars_equivalent {params.amount_ars_equivalent} does not match "
                f"{params.amount_original} x {params.exchange_rate}"
            )

    def _mark_commissions_paid(self, operation_id: OperationId) -> None:
        try:
            updated = self._commissions.mark_paid_for_operation(operation_id, date_paid=self._clock().date())
        except AccountingError:
            logger.exception("Could not mark commissions as paid for operation %s", operation_id)
            return
        logger.info("Marked %d commission records as paid for operation %s", updated, operation_id)

    def _category_of(self, account: FinancialAccount) -> AccountCategory | None:
        if account.chart_account_id is None:
            return None
        chart = self._chart_accounts.get(account.chart_account_id)
        return chart.category if chart is not None else None

    @staticmethod
    def _balance(
        account: FinancialAccount, category: AccountCategory | None, movements: Iterable[LedgerMovement]
    ) -> Decimal:
        balance = account.initial_balance
        for movement in movements:
            amount = _amount_in_account_currency(movement, account.currency)
            if amount is None:
                logger.warning(
                    "Skipping movement %s on %s account %s: no exchange rate",
                    movement.id,
                    account.currency,
                    account.id,
                )
                continue
            balance += signed_amount(movement.type, amount, category)
        return balance


def _amount_in_account_currency(movement: LedgerMovement, account_currency: Currency) -> Decimal | None:
    if movement.currency == account_currency:
        return movement.amount_original
    if account_currency == BASE_CURRENCY:
        return movement.amount_ars_equivalent
    if movement.exchange_rate is None or movement.exchange_rate <= 0:
        return None
    return movement.amount_original / movement.exchange_rate


__all__ = ["LedgerService"]
