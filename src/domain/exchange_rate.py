from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from .base_types import Currency, ExchangeRateId, UserId

MANUAL_SOURCE = "MANUAL"


class ExchangeRate(BaseModel):
    """Units of ``to_currency`` per one unit of ``from_currency`` on ``rate_date``."""

    id: ExchangeRateId = ExchangeRateId(Field(default_factory=uuid4))
    rate_date: date
    from_currency: Currency = Currency.USD
    to_currency: Currency = Currency.ARS
    rate: Decimal
    source: str = MANUAL_SOURCE
    notes: str | None = None
    created_by: UserId | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _validate_rate(self) -> ExchangeRate:
        if self.rate <= 0:
            raise ValueError("ExchangeRate.rate must be > 0")
        if self.from_currency == self.to_currency:
            raise ValueError("ExchangeRate currencies must differ")
        return self
