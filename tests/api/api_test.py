from datetime import date
from decimal import Decimal
from typing import Generator
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from api.api import app
from api.dependencies import get_session
from domain.base_types import Currency, OperationId, OperatorId
from domain.operation import PayerType, PaymentDirection
from services.exchange_rates import ExchangeRateProvider
from services.operator_payments import OperatorPaymentService
from tests.helpers.factories import make_account, make_operation, make_payment


@pytest.fixture()
def client(test_session: Session) -> Generator[TestClient, None, None]:
    def override_get_session() -> Generator[Session, None, None]:
        yield test_session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides = {}


def test_create_movement_and_read_balance(client: TestClient, test_session: Session) -> None:
    account = make_account(test_session, initial_balance=Decimal("100"))

    response = client.post(
        "/ledger-movements",
        json={
            "type": "INCOME",
            "concept": "Cobro",
            "currency": "ARS",
            "amount_original": "250.50",
            "amount_ars_equivalent": "250.50",
            "method": "CASH",
            "account_id": str(account.id),
        },
    )

    assert response.status_code == 201
    assert response.json()["id"]

    balance = client.get(f"/accounts/{account.id}/balance")
    assert balance.status_code == 200
    assert Decimal(balance.json()["balance"]) == Decimal("350.50")


def test_invalid_movement_maps_to_422(client: TestClient, test_session: Session) -> None:
    account = make_account(test_session)

    response = client.post(
        "/ledger-movements",
        json={
            "type": "INCOME",
            "concept": "Cobro",
            "currency": "USD",
            "amount_original": "10",
            "exchange_rate": "1000",
            "amount_ars_equivalent": "9000",
            "account_id": str(account.id),
        },
    )

    assert response.status_code == 422
    assert "amount_ars_equivalent" in response.json()["detail"]


def test_unknown_account_maps_to_404(client: TestClient) -> None:
    response = client.get(f"/accounts/{uuid4()}/balance")

    assert response.status_code == 404


def test_exchange_rate_put_then_get(client: TestClient) -> None:
    assert client.get("/exchange-rates/2025-01-10").status_code == 404

    stored = client.put("/exchange-rates", json={"rate_date": "2025-01-01", "rate": "1050.5"})
    assert stored.status_code == 200

    response = client.get("/exchange-rates/2025-01-10")
    assert response.status_code == 200
    body = response.json()
    assert body["rate_date"] == "2025-01-10"
    assert body["from_currency"] == "USD"
    assert body["to_currency"] == "ARS"
    assert Decimal(body["rate"]) == Decimal("1050.5")


def test_exchange_rate_validation_errors(client: TestClient) -> None:
    assert client.put("/exchange-rates", json={"rate_date": "2025-01-01", "rate": "-1"}).status_code == 422
    assert client.get("/exchange-rates/not-a-date").status_code == 422


def test_monthly_vat_position(client: TestClient, test_session: Session) -> None:
    response = client.get("/vat/2025/2")
    assert response.status_code == 200
    assert {key: Decimal(value) for key, value in response.json().items()} == {
        "sales_vat": Decimal(0),
        "purchases_vat": Decimal(0),
        "net": Decimal(0),
    }

    assert client.get("/vat/2025/13").status_code == 422


def test_overdue_listing_and_sweep(client: TestClient, test_session: Session) -> None:
    service = OperatorPaymentService(test_session)
    overdue_id = service.create_payment(
        OperationId(uuid4()), OperatorId("operator-1"), Decimal("500"), Currency.USD, due_date=date(2020, 1, 1)
    )
    service.create_payment(
        OperationId(uuid4()), OperatorId("operator-2"), Decimal("500"), Currency.USD, due_date=date(2020, 1, 1)
    )

    listed = client.get("/operator-payments/overdue", params={"operator_id": "operator-1"})
    assert listed.status_code == 200
    assert [payment["id"] for payment in listed.json()] == [str(overdue_id)]

    swept = client.post("/operator-payments/sweep-overdue")
    assert swept.json() == {"updated": 2}
    assert client.get("/operator-payments/overdue").json() == []


def test_settle_payment_endpoint(client: TestClient, test_session: Session) -> None:
    ExchangeRateProvider(test_session).upsert_rate(date(2025, 1, 1), Decimal("1000"))
    operation = make_operation(test_session)
    bank = make_account(test_session, currency=Currency.USD, initial_balance=Decimal("50"))
    payment = make_payment(
        test_session,
        operation,
        amount=Decimal("80"),
        currency=Currency.USD,
        account_id=bank.id,
        direction=PaymentDirection.EXPENSE,
        payer_type=PayerType.OPERATOR,
    )

    short = client.post(f"/payments/{payment.id}/settle", json={"date_paid": "2025-01-15"})
    assert short.status_code == 409

    cash = make_account(test_session, currency=Currency.USD)
    customer_payment = make_payment(
        test_session, operation, amount=Decimal("100"), currency=Currency.USD, account_id=cash.id
    )
    settled = client.post(
        f"/payments/{customer_payment.id}/settle", json={"date_paid": "2025-01-15", "reference": "REC-9"}
    )
    assert settled.status_code == 200
    assert settled.json()["id"]

    assert client.post(f"/payments/{uuid4()}/settle", json={"date_paid": "2025-01-15"}).status_code == 404
