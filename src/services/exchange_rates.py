from __future__ import annotations

import bisect
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.repositories import ExchangeRateRepository
from domain.base_types import BASE_CURRENCY, FOREIGN_CURRENCY, Currency, ExchangeRateId, UserId
from domain.errors import ValidationError
from domain.exchange_rate import MANUAL_SOURCE, ExchangeRate

from .open_exchange_rates_source import OpenExchangeRatesSource

logger = logging.getLogger(__name__)

DateLike = date | str


class RateLookup(Protocol):
    def lookup(self, on: date, from_currency: Currency, to_currency: Currency) -> Decimal | None: ...


class SqlFunctionRateLookup(RateLookup):
    """Delegates to the ``get_exchange_rate(date, from, to)`` database function."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def lookup(self, on: date, from_currency: Currency, to_currency: Currency) -> Decimal | None:
        try:
            value = self._session.execute(
                select(func.get_exchange_rate(on, from_currency.value, to_currency.value))
            ).scalar()
        except SQLAlchemyError:
            self._session.rollback()
            raise
        if value is None:
            return None
        return Decimal(str(value))


def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid date: {value!r}") from exc


class ExchangeRateProvider:
    def __init__(
        self,
        session: Session,
        *,
        lookup: RateLookup | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = ExchangeRateRepository(session)
        self._lookup = lookup
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_rate(
        self, on: DateLike, from_currency: Currency = FOREIGN_CURRENCY, to_currency: Currency = BASE_CURRENCY
    ) -> Decimal | None:
        """Rate in effect on ``on``: the latest one dated on or before it, or None."""
        target = parse_date(on)
        if self._lookup is not None:
            try:
                rate = self._lookup.lookup(target, from_currency, to_currency)
            except Exception:
                logger.warning(
                    "Rate lookup function failed for %s %s/%s, querying table",
                    target,
                    from_currency,
                    to_currency,
                    exc_info=True,
                )
            else:
                if rate is not None:
                    return rate

        try:
            exchange_rate = self._repository.latest_on_or_before(target, from_currency, to_currency)
        except SQLAlchemyError:
            logger.warning(
                "Could not read exchange rate for %s %s/%s", target, from_currency, to_currency, exc_info=True
            )
            return None
        return exchange_rate.rate if exchange_rate is not None else None

    def get_latest_rate(
        self, from_currency: Currency = FOREIGN_CURRENCY, to_currency: Currency = BASE_CURRENCY
    ) -> Decimal | None:
        try:
            exchange_rate = self._repository.latest(from_currency, to_currency)
        except SQLAlchemyError:
            logger.warning("Could not read latest exchange rate %s/%s", from_currency, to_currency, exc_info=True)
            return None
        return exchange_rate.rate if exchange_rate is not None else None

    def upsert_rate(
        self,
        on: DateLike,
        rate: Decimal,
        from_currency: Currency = FOREIGN_CURRENCY,
        to_currency: Currency = BASE_CURRENCY,
        *,
        source: str = MANUAL_SOURCE,
        notes: str | None = None,
        user_id: UserId | None = None,
    ) -> ExchangeRateId:
        target = parse_date(on)
        if rate <= 0:
            raise ValidationError(f"Exchange rate must be positive, got {rate}")
        if from_currency == to_currency:
            raise ValidationError(f"Exchange rate currencies must differ, got {from_currency}/{to_currency}")

        stored = self._repository.upsert(
            ExchangeRate(
                rate_date=target,
                from_currency=from_currency,
                to_currency=to_currency,
                rate=rate,
                source=source,
                notes=notes,
                created_by=user_id,
            ),
            now=self._clock(),
        )
        logger.info("Stored %s/%s rate %s for %s (%s)", from_currency, to_currency, rate, target, source)
        return stored.id

    def get_rates_batch(
        self,
        dates: Iterable[DateLike],
        from_currency: Currency = FOREIGN_CURRENCY,
        to_currency: Currency = BASE_CURRENCY,
    ) -> dict[date, Decimal]:
        """Resolve each date to its nearest prior rate with one anchor lookup and one range query.

        Dates with no rate on or before them map to ``Decimal(0)``; callers must
        check for it before converting.
        """
        targets = sorted({parse_date(value) for value in dates})
        if not targets:
            return {}

        try:
            anchor = self._repository.latest_on_or_before(targets[0], from_currency, to_currency)
            start = anchor.rate_date if anchor is not None else targets[0]
            known = self._repository.list_between(start, targets[-1], from_currency, to_currency)
        except SQLAlchemyError:
            logger.warning("Could not read exchange rates up to %s", targets[-1], exc_info=True)
            known = []

        known_dates = [exchange_rate.rate_date for exchange_rate in known]
        resolved: dict[date, Decimal] = {}
        for target in targets:
            index = bisect.bisect_right(known_dates, target)
            resolved[target] = known[index - 1].rate if index > 0 else Decimal(0)
        return resolved

    def get_rates_in_range(
        self,
        date_from: DateLike,
        date_to: DateLike,
        from_currency: Currency = FOREIGN_CURRENCY,
        to_currency: Currency = BASE_CURRENCY,
    ) -> list[ExchangeRate]:
        start, end = parse_date(date_from), parse_date(date_to)
        if start > end:
            raise ValidationError(f"Invalid range: {start} is after {end}")
        return list(reversed(self._repository.list_between(start, end, from_currency, to_currency)))

    def refresh_rate(self, on: DateLike, source: OpenExchangeRatesSource | None = None) -> ExchangeRate:
        target = parse_date(on)
        rate_source = source or OpenExchangeRatesSource()
        fetched = rate_source.fetch_rate(target)
        self.upsert_rate(
            target,
            fetched.rate,
            fetched.from_currency,
            fetched.to_currency,
            source=fetched.source,
            notes=fetched.notes,
        )
        return fetched


__all__ = ["ExchangeRateProvider", "RateLookup", "SqlFunctionRateLookup", "parse_date"]
