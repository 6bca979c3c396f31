from __future__ import annotations

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Carbon Ledger Calculation Core"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # Defaults only; explicit call arguments always win.
    GWP_SET: str = "EU_CBAM_2025"
    DEFAULT_SECTOR: str = "Aluminium"
    DEFAULT_CERT_PRICE_SCENARIO: str = "MID"
    DEFAULT_COMMODITY_PRICE_SCENARIO: str = "MID"
    DEFAULT_CREDIT_SCENARIO: str = "HIGH"
    DEFAULT_CREDIT_ELIGIBLE: bool = True
    TREAT_RESIDUE_AS_WASTE: bool = True

    HASH_DIGITS: int = 12

    class Config:
        env_prefix = "CARBON_LEDGER_"
        env_file = ".env"
        extra = "ignore"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Basic logging setup for scripts / notebooks. The engine never calls this itself."""
    lvl = (level or get_settings().LOG_LEVEL or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, lvl, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
