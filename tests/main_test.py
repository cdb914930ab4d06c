from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from db.db import init_db
from domain.base_types import Currency, OperatorId
from domain.operator_payment import RecurringFrequency
from main import main
from services.exchange_rates import ExchangeRateProvider
from services.recurring_payments import RecurringPaymentService


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'cli' / 'ledger.db'}"


def test_set_rate_persists_manual_rate(database_url: str, capsys: pytest.CaptureFixture[str]) -> None:
    main(["--database-url", database_url, "set-rate", "2025-01-01", "1050.25", "--notes", "blue"])

    assert "Stored rate 1050.25 for 2025-01-01" in capsys.readouterr().out
    with init_db(database_url) as session:
        assert ExchangeRateProvider(session).get_rate(date(2025, 1, 3)) == Decimal("1050.25")


def test_sweep_and_vat_position_on_empty_database(database_url: str, capsys: pytest.CaptureFixture[str]) -> None:
    main(["--database-url", database_url, "sweep-overdue"])
    main(["--database-url", database_url, "vat-position", "2025", "2"])

    out = capsys.readouterr().out
    assert "Marked 0 operator payments as overdue" in out
    assert "VAT position 2025-02:" in out
    assert "Net payable" in out


def test_rejects_unknown_command(database_url: str) -> None:
    with pytest.raises(SystemExit):
        main(["--database-url", database_url, "nope"])


def test_generate_recurring_opens_due_payments(database_url: str, capsys: pytest.CaptureFixture[str]) -> None:
    main(["--database-url", database_url, "init-db"])
    with init_db(database_url) as session:
        recurring_id = RecurringPaymentService(session).create_recurring_payment(
            OperatorId("operator-1"),
            Decimal("1500"),
            Currency.ARS,
            RecurringFrequency.MONTHLY,
            date(2020, 1, 31),
            "Alquiler oficina",
            end_date=date(2020, 3, 31),
        )
        due_id = RecurringPaymentService(session).create_recurring_payment(
            OperatorId("operator-1"),
            Decimal("800"),
            Currency.USD,
            RecurringFrequency.YEARLY,
            date(2020, 1, 1),
            "Hosting",
        )

    main(["--database-url", database_url, "generate-recurring"])

    assert "Generated 1 recurring operator payments" in capsys.readouterr().out
    with init_db(database_url) as session:
        service = RecurringPaymentService(session)
        assert service.get_recurring_payment(recurring_id).last_generated_date is None
        assert service.get_recurring_payment(due_id).next_due_date == date(2021, 1, 1)
