from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from domain.base_types import Currency, OperationId, OperatorId
from domain.operator_payment import (
    OperatorPayment,
    ProductType,
    RecurringFrequency,
    RecurringPayment,
    calculate_due_date,
    calculate_next_due_date,
    should_generate_payment,
)


def test_air_tickets_are_due_ten_days_after_purchase() -> None:
    assert calculate_due_date(ProductType.AEREO, purchase_date=date(2025, 1, 1)) == date(2025, 1, 11)


def test_hotels_are_due_thirty_days_before_checkin() -> None:
    assert calculate_due_date(ProductType.HOTEL, checkin_date=date(2025, 2, 1)) == date(2025, 1, 2)


def test_other_products_are_due_on_departure() -> None:
    assert calculate_due_date(ProductType.PAQUETE, departure_date=date(2025, 3, 1)) == date(2025, 3, 1)
    assert calculate_due_date(None, departure_date=date(2025, 3, 1)) == date(2025, 3, 1)


def test_air_without_purchase_date_falls_back_to_departure() -> None:
    assert calculate_due_date(ProductType.AEREO, departure_date=date(2025, 4, 5)) == date(2025, 4, 5)


def test_without_dates_payment_is_due_in_thirty_days() -> None:
    assert calculate_due_date(ProductType.CRUCERO, today=date(2025, 1, 15)) == date(2025, 2, 14)


def test_operator_payment_requires_positive_amount() -> None:
    with pytest.raises(ValueError):
        OperatorPayment(
            operation_id=OperationId(uuid4()),
            operator_id=OperatorId("operator-1"),
            amount=Decimal("0"),
            currency=Currency.ARS,
            due_date=date(2025, 1, 1),
        )


def test_operator_payment_may_have_no_operation() -> None:
    payment = OperatorPayment(
        operation_id=None,
        operator_id=OperatorId("operator-1"),
        amount=Decimal("10"),
        currency=Currency.ARS,
        due_date=date(2025, 1, 1),
    )

    assert payment.operation_id is None


@pytest.mark.parametrize(
    "last_due, frequency, expected",
    [
        (date(2025, 1, 10), RecurringFrequency.WEEKLY, date(2025, 1, 17)),
        (date(2025, 12, 29), RecurringFrequency.BIWEEKLY, date(2026, 1, 12)),
        (date(2025, 1, 15), RecurringFrequency.MONTHLY, date(2025, 2, 15)),
        (date(2025, 11, 30), RecurringFrequency.QUARTERLY, date(2026, 2, 28)),
        (date(2025, 12, 5), RecurringFrequency.MONTHLY, date(2026, 1, 5)),
    ],
)
def test_next_due_date_steps(last_due: date, frequency: RecurringFrequency, expected: date) -> None:
    assert calculate_next_due_date(last_due, frequency) == expected


def test_month_end_rolls_over_to_last_day_of_short_months() -> None:
    assert calculate_next_due_date(date(2025, 1, 31), RecurringFrequency.MONTHLY) == date(2025, 2, 28)
    assert calculate_next_due_date(date(2024, 1, 31), RecurringFrequency.MONTHLY) == date(2024, 2, 29)
    assert calculate_next_due_date(date(2024, 2, 29), RecurringFrequency.YEARLY) == date(2025, 2, 28)


def test_month_end_series_returns_to_its_anchor_day() -> None:
    february = calculate_next_due_date(date(2025, 1, 31), RecurringFrequency.MONTHLY, anchor_day=31)
    march = calculate_next_due_date(february, RecurringFrequency.MONTHLY, anchor_day=31)
    april = calculate_next_due_date(march, RecurringFrequency.MONTHLY, anchor_day=31)

    assert [february, march, april] == [date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]


def _recurring(**overrides: object) -> RecurringPayment:
    fields: dict[str, object] = {
        "operator_id": OperatorId("operator-1"),
        "amount": Decimal("1500"),
        "currency": Currency.ARS,
        "frequency": RecurringFrequency.MONTHLY,
        "start_date": date(2025, 1, 1),
        "next_due_date": date(2025, 1, 15),
        "description": "Alquiler oficina",
    }
    fields.update(overrides)
    return RecurringPayment.model_validate(fields)


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({}, True),
        ({"next_due_date": date(2025, 1, 16)}, False),
        ({"is_active": False}, False),
        ({"start_date": date(2025, 1, 16), "next_due_date": date(2025, 1, 10)}, False),
        ({"end_date": date(2025, 1, 15)}, True),
        ({"end_date": date(2025, 1, 14)}, False),
    ],
)
def test_should_generate_payment(overrides: dict[str, object], expected: bool) -> None:
    assert should_generate_payment(_recurring(**overrides), date(2025, 1, 15)) is expected


def test_recurring_payment_validates_amount_and_end_date() -> None:
    with pytest.raises(ValueError):
        _recurring(amount=Decimal("0"))
    with pytest.raises(ValueError):
        _recurring(end_date=date(2024, 12, 31))
