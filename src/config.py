from __future__ import annotations

from decimal import Decimal
from functools import cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
DB_FILE = ARTIFACTS_DIR / "travel_ledger.db"


class AppSettings(BaseSettings):
    database_url: str = f"sqlite:///{DB_FILE}"
    log_level: str = "INFO"

    vat_rate: Decimal = Decimal("0.21")

    fx_fallback_rate: Decimal = Decimal("1000")
    fx_dedup_window_minutes: int = 5
    fx_noise_threshold: Decimal = Decimal("1")
    fx_pairwise_noise_threshold: Decimal = Decimal("0.01")

    open_exchange_rates_app_id: str = ""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
