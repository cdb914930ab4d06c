from typing import Generator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import AppSettings
from db.models import Base
from services.booking import BookingService
from services.exchange_rates import ExchangeRateProvider
from services.fx_service import FxService
from services.ledger_service import LedgerService
from services.operator_payments import OperatorPaymentService
from services.recurring_payments import RecurringPaymentService
from services.vat_service import VatService
from tests.helpers.clock import FakeClock

engine: Engine = create_engine(
    "sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool
)
session_factory = sessionmaker(engine)


@pytest.fixture(scope="function")
def test_session() -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture(scope="function", autouse=True)
def reset_db() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def settings() -> AppSettings:
    return AppSettings(_env_file=None)


@pytest.fixture(scope="function")
def rate_provider(test_session: Session, clock: FakeClock) -> ExchangeRateProvider:
    return ExchangeRateProvider(test_session, clock=clock)


@pytest.fixture(scope="function")
def ledger_service(test_session: Session, clock: FakeClock) -> LedgerService:
    return LedgerService(test_session, clock=clock)


@pytest.fixture(scope="function")
def vat_service(test_session: Session, settings: AppSettings) -> VatService:
    return VatService(test_session, vat_rate=settings.vat_rate)


@pytest.fixture(scope="function")
def fx_service(
    test_session: Session,
    rate_provider: ExchangeRateProvider,
    ledger_service: LedgerService,
    settings: AppSettings,
    clock: FakeClock,
) -> FxService:
    return FxService(test_session, rates=rate_provider, ledger=ledger_service, settings=settings, clock=clock)


@pytest.fixture(scope="function")
def operator_payment_service(test_session: Session, clock: FakeClock) -> OperatorPaymentService:
    return OperatorPaymentService(test_session, clock=clock)


@pytest.fixture(scope="function")
def recurring_payment_service(
    test_session: Session, operator_payment_service: OperatorPaymentService, clock: FakeClock
) -> RecurringPaymentService:
    return RecurringPaymentService(test_session, operator_payments=operator_payment_service, clock=clock)


@pytest.fixture(scope="function")
def booking_service(
    test_session: Session,
    rate_provider: ExchangeRateProvider,
    ledger_service: LedgerService,
    vat_service: VatService,
    fx_service: FxService,
    operator_payment_service: OperatorPaymentService,
    clock: FakeClock,
) -> BookingService:
    return BookingService(
        test_session,
        rates=rate_provider,
        ledger=ledger_service,
        vat=vat_service,
        fx=fx_service,
        operator_payments=operator_payment_service,
        clock=clock,
    )
