from decimal import Decimal

import pytest

from domain.base_types import Currency
from domain.ledger import (
    DEFAULT_ACCOUNT_NAMES,
    AccountCategory,
    AccountType,
    MovementMethod,
    MovementType,
    default_account_type,
    signed_amount,
)


@pytest.mark.parametrize(
    "kind, currency, expected",
    [
        (MovementMethod.CASH, Currency.ARS, AccountType.CASH_ARS),
        (MovementMethod.CASH, Currency.USD, AccountType.CASH_USD),
        ("BANK", Currency.ARS, AccountType.CHECKING_ARS),
        ("BANK", Currency.USD, AccountType.CHECKING_USD),
        ("MP", Currency.ARS, AccountType.CREDIT_CARD),
        ("USD", Currency.USD, AccountType.SAVINGS_USD),
    ],
)
def test_default_account_type_mapping(kind: str, currency: Currency, expected: AccountType) -> None:
    assert default_account_type(kind, currency) == expected


@pytest.mark.parametrize("kind", ["OTHER", "CHEQUE", ""])
def test_unknown_method_has_no_default_account(kind: str) -> None:
    with pytest.raises(ValueError):
        default_account_type(kind, Currency.ARS)


def test_every_account_type_has_a_canonical_name() -> None:
    assert set(DEFAULT_ACCOUNT_NAMES) == set(AccountType)
    assert DEFAULT_ACCOUNT_NAMES[AccountType.CASH_ARS] == "Caja Principal ARS"


@pytest.mark.parametrize(
    "movement_type, asset_sign",
    [
        (MovementType.INCOME, 1),
        (MovementType.FX_GAIN, 1),
        (MovementType.EXPENSE, -1),
        (MovementType.FX_LOSS, -1),
        (MovementType.COMMISSION, -1),
        (MovementType.OPERATOR_PAYMENT, -1),
    ],
)
def test_signed_amount_polarity(movement_type: MovementType, asset_sign: int) -> None:
    amount = Decimal("10")

    assert signed_amount(movement_type, amount, AccountCategory.ASSET) == amount * asset_sign
    assert signed_amount(movement_type, amount, None) == amount * asset_sign
    assert signed_amount(movement_type, amount, AccountCategory.LIABILITY) == -amount * asset_sign
