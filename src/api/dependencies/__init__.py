from typing import Annotated, Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from services.booking import BookingService
from services.exchange_rates import ExchangeRateProvider, SqlFunctionRateLookup
from services.ledger_service import LedgerService
from services.operator_payments import OperatorPaymentService
from services.vat_service import VatService


def get_session(request: Request) -> Generator[Session, None, None]:
    with request.app.state.sessionmaker() as session:
        yield session


def get_exchange_rate_provider(session: Annotated[Session, Depends(get_session)]) -> ExchangeRateProvider:
    lookup = SqlFunctionRateLookup(session) if session.get_bind().dialect.name == "postgresql" else None
    return ExchangeRateProvider(session, lookup=lookup)


def get_ledger_service(session: Annotated[Session, Depends(get_session)]) -> LedgerService:
    return LedgerService(session)


def get_vat_service(session: Annotated[Session, Depends(get_session)]) -> VatService:
    return VatService(session)


def get_operator_payment_service(session: Annotated[Session, Depends(get_session)]) -> OperatorPaymentService:
    return OperatorPaymentService(session)


def get_booking_service(
    session: Annotated[Session, Depends(get_session)],
    rates: Annotated[ExchangeRateProvider, Depends(get_exchange_rate_provider)],
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> BookingService:
    return BookingService(session, rates=rates, ledger=ledger)
