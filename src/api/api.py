import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from time import perf_counter
from typing import Annotated, AsyncGenerator, Awaitable, Callable
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import sessionmaker

from api.dependencies import (
    get_booking_service,
    get_exchange_rate_provider,
    get_ledger_service,
    get_operator_payment_service,
    get_vat_service,
)
from config import config
from db.db import create_db_engine
from domain.base_types import BASE_CURRENCY, FOREIGN_CURRENCY, AccountId, Currency, OperatorId, PaymentId, UserId
from domain.errors import InsufficientFundsError, NotFoundError, StoreError, ValidationError
from domain.exchange_rate import MANUAL_SOURCE
from domain.ledger import NewLedgerMovement
from domain.operator_payment import OperatorPayment
from domain.vat import MonthlyVatPosition
from services.booking import BookingService
from services.exchange_rates import ExchangeRateProvider
from services.ledger_service import LedgerService
from services.operator_payments import OperatorPaymentService
from services.vat_service import VatService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    engine = create_db_engine(config().database_url)
    fastapi_app.state.sessionmaker = sessionmaker(engine)
    yield
    engine.dispose()


app = FastAPI(lifespan=lifespan)


class CreatedResponse(BaseModel):
    id: UUID


class AccountBalance(BaseModel):
    account_id: AccountId
    balance: Decimal


class RateResponse(BaseModel):
    rate_date: date
    from_currency: Currency
    to_currency: Currency
    rate: Decimal


class RateInput(BaseModel):
    rate_date: date
    rate: Decimal
    from_currency: Currency = FOREIGN_CURRENCY
    to_currency: Currency = BASE_CURRENCY
    source: str = MANUAL_SOURCE
    notes: str | None = None
    user_id: UserId | None = None


class SweepResponse(BaseModel):
    updated: int


class SettlePaymentInput(BaseModel):
    date_paid: date
    user_id: UserId | None = None
    reference: str | None = None


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(422, exc)


@app.exception_handler(InsufficientFundsError)
async def insufficient_funds_handler(request: Request, exc: InsufficientFundsError) -> JSONResponse:
    return _error_response(409, exc)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(404, exc)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(500, exc)


@app.middleware("http")
async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    start_time = perf_counter()
    response = await call_next(request)
    logger.info("Request time: %s %s: %.4fs", request.method, request.url, perf_counter() - start_time)
    return response


@app.post("/ledger-movements", status_code=201)
def create_ledger_movement(
    movement: NewLedgerMovement, ledger: Annotated[LedgerService, Depends(get_ledger_service)]
) -> CreatedResponse:
    return CreatedResponse(id=ledger.record_movement(movement))


@app.get("/accounts/{account_id}/balance")
def get_account_balance(
    account_id: UUID, ledger: Annotated[LedgerService, Depends(get_ledger_service)]
) -> AccountBalance:
    typed_id = AccountId(account_id)
    return AccountBalance(account_id=typed_id, balance=ledger.get_account_balance(typed_id))


@app.get("/exchange-rates/{rate_date}")
def get_exchange_rate(
    rate_date: str,
    rates: Annotated[ExchangeRateProvider, Depends(get_exchange_rate_provider)],
    from_currency: Currency = FOREIGN_CURRENCY,
    to_currency: Currency = BASE_CURRENCY,
) -> RateResponse:
    rate = rates.get_rate(rate_date, from_currency, to_currency)
    if rate is None:
        raise HTTPException(status_code=404, detail=f"No {from_currency}/{to_currency} rate on or before {rate_date}")
    return RateResponse(
        rate_date=date.fromisoformat(rate_date), from_currency=from_currency, to_currency=to_currency, rate=rate
    )


@app.put("/exchange-rates")
def put_exchange_rate(
    payload: RateInput, rates: Annotated[ExchangeRateProvider, Depends(get_exchange_rate_provider)]
) -> CreatedResponse:
    rate_id = rates.upsert_rate(
        payload.rate_date,
        payload.rate,
        payload.from_currency,
        payload.to_currency,
        source=payload.source,
        notes=payload.notes,
        user_id=payload.user_id,
    )
    return CreatedResponse(id=rate_id)


@app.get("/vat/{year}/{month}")
def get_monthly_vat(
    year: int, month: int, vat: Annotated[VatService, Depends(get_vat_service)]
) -> MonthlyVatPosition:
    return vat.get_monthly_vat_payable(year, month)


@app.get("/operator-payments/overdue")
def get_overdue_operator_payments(
    operator_payments: Annotated[OperatorPaymentService, Depends(get_operator_payment_service)],
    operator_id: str | None = None,
) -> list[OperatorPayment]:
    return operator_payments.get_overdue_payments(OperatorId(operator_id) if operator_id else None)


@app.post("/operator-payments/sweep-overdue")
def sweep_overdue_operator_payments(
    operator_payments: Annotated[OperatorPaymentService, Depends(get_operator_payment_service)],
) -> SweepResponse:
    return SweepResponse(updated=operator_payments.sweep_overdue())


@app.post("/payments/{payment_id}/settle")
def settle_payment(
    payment_id: UUID,
    payload: SettlePaymentInput,
    booking: Annotated[BookingService, Depends(get_booking_service)],
) -> CreatedResponse:
    movement_id = booking.settle_payment(
        PaymentId(payment_id), payload.date_paid, user_id=payload.user_id, reference=payload.reference
    )
    return CreatedResponse(id=movement_id)
