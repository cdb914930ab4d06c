from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel

from utils.formatting import format_currency

from .base_types import BASE_CURRENCY, Currency
from .errors import MissingRateError


@dataclass(frozen=True)
class CurrencyAmount:
    amount: Decimal
    currency: Currency
    exchange_rate: Decimal | None = None


class MultiCurrencyTotal(BaseModel):
    """Totals per currency plus the combined base-currency total.

    ``total_base`` and ``foreign_in_base`` are ``None`` when any foreign item
    has no usable rate, so a partial sum is never reported as the total.
    """

    base: Decimal
    foreign: Decimal
    foreign_in_base: Decimal | None
    total_base: Decimal | None
    has_missing_rates: bool


class FormattedAmount(BaseModel):
    original: str
    base_equivalent: Decimal | None
    base_equivalent_formatted: str | None
    display: str


def to_base(amount: Decimal, currency: Currency, rate: Decimal | None = None) -> Decimal:
    if currency == BASE_CURRENCY:
        return amount
    if rate is None or rate <= 0:
        raise MissingRateError(currency)
    return amount * rate


def convert_to_base(amount: Decimal, currency: Currency, rate: Decimal | None = None) -> Decimal | None:
    if currency == BASE_CURRENCY:
        return amount
    if rate is None or rate <= 0:
        return None
    return amount * rate


def sum_multi_currency(items: Iterable[CurrencyAmount]) -> MultiCurrencyTotal:
    base_total = Decimal(0)
    foreign_total = Decimal(0)
    foreign_in_base: Decimal | None = Decimal(0)
    missing = False

    for item in items:
        if item.currency == BASE_CURRENCY:
            base_total += item.amount
            continue
        foreign_total += item.amount
        converted = convert_to_base(item.amount, item.currency, item.exchange_rate)
        if converted is None:
            missing = True
        elif foreign_in_base is not None:
            foreign_in_base += converted

    if missing:
        foreign_in_base = None

    return MultiCurrencyTotal(
        base=base_total,
        foreign=foreign_total,
        foreign_in_base=foreign_in_base,
        total_base=None if foreign_in_base is None else base_total + foreign_in_base,
        has_missing_rates=missing,
    )


def format_currency_amount(
    amount: Decimal, currency: Currency, rate: Decimal | None = None, *, show_base_equivalent: bool = True
) -> FormattedAmount:
    original = format_currency(amount, currency)
    base_equivalent = convert_to_base(amount, currency, rate)
    base_formatted = format_currency(base_equivalent, BASE_CURRENCY) if base_equivalent is not None else None

    display = original
    if show_base_equivalent and currency != BASE_CURRENCY and base_formatted is not None:
        display = f"{original} (≈ {base_formatted})"

    return FormattedAmount(
        original=original,
        base_equivalent=base_equivalent,
        base_equivalent_formatted=base_formatted,
        display=display,
    )
