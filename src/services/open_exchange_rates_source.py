from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from config import config
from domain.base_types import BASE_CURRENCY, FOREIGN_CURRENCY, Currency
from domain.errors import AccountingError
from domain.exchange_rate import ExchangeRate

# API docs: https://docs.openexchangerates.org/reference/api-introduction
OPEN_EXCHANGE_RATES_SOURCE = "OPEN_EXCHANGE_RATES"
RETRY_STATUSES = (429, 502, 503)


class OpenExchangeRatesAPIError(AccountingError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass(frozen=True)
class HistoricalRates:
    """End-of-day snapshot; ``rates`` are units of each currency per one ``base``."""

    date: date
    timestamp: datetime
    base: str
    rates: dict[str, Decimal]


class OpenExchangeRatesClient:
    def __init__(
        self,
        *,
        app_id: str | None = None,
        base_url: str = "https://openexchangerates.org/api",
        timeout: float = 10.0,
        session: requests.Session | None = None,
        retry_attempts: int = 5,
        retry_backoff_seconds: float = 1,
    ) -> None:
        self.app_id = app_id if app_id is not None else config().open_exchange_rates_app_id
        if not self.app_id:
            raise ValueError("Set OPEN_EXCHANGE_RATES_APP_ID to fetch exchange rates")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._mount_retries(retry_attempts, retry_backoff_seconds)

    def _mount_retries(self, attempts: int, backoff_seconds: float) -> None:
        adapter = HTTPAdapter(
            max_retries=Retry(
                total=attempts,
                backoff_factor=backoff_seconds,
                status_forcelist=RETRY_STATUSES,
                allowed_methods=frozenset({"GET"}),
                raise_on_status=False,
            )
        )
        for prefix in ("https://", "http://"):
            self._session.mount(prefix, adapter)

    def get_historical_rates(self, *, target_date: date) -> HistoricalRates:
        return self._parse_snapshot(target_date, self._get_json(f"/historical/{target_date.isoformat()}.json"))

    @staticmethod
    def _parse_snapshot(target_date: date, payload: dict[str, Any]) -> HistoricalRates:
        rates = payload.get("rates")
        if "timestamp" not in payload or "base" not in payload or not isinstance(rates, dict):
            raise OpenExchangeRatesAPIError(f"Incomplete rate snapshot for {target_date}", payload=payload)
        return HistoricalRates(
            date=target_date,
            timestamp=datetime.fromtimestamp(int(payload["timestamp"]), tz=timezone.utc),
            base=str(payload["base"]).upper(),
            rates={str(code).upper(): Decimal(str(value)) for code, value in rates.items()},
        )

    def _get_json(self, path: str) -> dict[str, Any]:
        try:
            response = self._session.request(
                "GET", f"{self.base_url}{path}", params={"app_id": self.app_id}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise self._http_error(exc.response) from exc
        except requests.RequestException as exc:
            raise OpenExchangeRatesAPIError(f"Rate request to {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise OpenExchangeRatesAPIError(f"Rate response for {path} is not JSON", payload=response.text) from exc
        if not isinstance(body, dict):
            raise OpenExchangeRatesAPIError(f"Rate response for {path} is not an object", payload=body)
        if body.get("error"):
            raise OpenExchangeRatesAPIError(
                body.get("description") or body.get("message") or "Rate provider error",
                status_code=body.get("status"),
                payload=body,
            )
        return body

    @staticmethod
    def _http_error(response: Response | None) -> OpenExchangeRatesAPIError:
        if response is None:
            return OpenExchangeRatesAPIError("Rate request failed without a response")
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        message = "Rate request failed"
        if isinstance(body, dict):
            message = body.get("description") or body.get("message") or message
        return OpenExchangeRatesAPIError(message, status_code=response.status_code, payload=body)


class OpenExchangeRatesSource:
    """Daily USD/ARS quotes from openexchangerates.org.

    The free plan only serves USD-based snapshots, so any pair is derived
    from the two legs against the snapshot base.
    """

    def __init__(
        self, *, client: OpenExchangeRatesClient | None = None, source_name: str = OPEN_EXCHANGE_RATES_SOURCE
    ) -> None:
        self.client = client or OpenExchangeRatesClient()
        self.source_name = source_name

    def fetch_rate(
        self,
        target_date: date,
        from_currency: Currency = FOREIGN_CURRENCY,
        to_currency: Currency = BASE_CURRENCY,
    ) -> ExchangeRate:
        snapshot = self.client.get_historical_rates(target_date=target_date)
        return ExchangeRate(
            rate_date=snapshot.date,
            from_currency=from_currency,
            to_currency=to_currency,
            rate=_units_per_base(snapshot, to_currency) / _units_per_base(snapshot, from_currency),
            source=self.source_name,
            notes=f"snapshot {snapshot.timestamp.isoformat()}",
        )


def _units_per_base(snapshot: HistoricalRates, currency: Currency) -> Decimal:
    if currency.value == snapshot.base:
        return Decimal(1)
    rate = snapshot.rates.get(currency.value)
    if rate is None or rate <= 0:
        raise OpenExchangeRatesAPIError(
            f"No usable {currency} rate in the {snapshot.date} snapshot", payload=snapshot.rates
        )
    return rate


__all__ = [
    "OPEN_EXCHANGE_RATES_SOURCE",
    "HistoricalRates",
    "OpenExchangeRatesAPIError",
    "OpenExchangeRatesClient",
    "OpenExchangeRatesSource",
]
