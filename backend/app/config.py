"""
Application configuration module.
Loads environment variables and provides engine-wide settings.
"""
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings

from backend.app.schemas.common import validate_currency_code

# Get project root (two levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """
    Analytics settings loaded from environment variables or .env file.
    (Note: Environment variables take precedence over .env file)
    """
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Currencies (ISO 4217 currency codes)
    DISPLAY_CURRENCY: str = "USD"
    RATES_BASE_CURRENCY: str = "USD"

    # Valuation
    UNCATEGORIZED_LABEL: str = "Uncategorized"
    CARRY_FORWARD_SCOPE: Literal["asset", "platform"] = "asset"

    # Rebalancing: adjustments below this many currency units are "no action"
    REBALANCING_THRESHOLD: Decimal = Decimal("1")

    # Performance
    DAYS_PER_YEAR: float = 365.25

    # Human-readable texts (babel locale identifier)
    LOCALE: str = "en_US"

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        case_sensitive=True,
        env_file_encoding='utf-8',
        extra="ignore",
        )

    @field_validator('DISPLAY_CURRENCY', 'RATES_BASE_CURRENCY', mode='before')
    @classmethod
    def _validate_currency(cls, v):
        return validate_currency_code(v)


@lru_cache
def get_settings() -> Settings:
    """
    Get settings instance (cached after first call).

    Returns:
        Settings: Application settings
    """
    return Settings()


def reset_settings_cache() -> None:
    """Drop the cached Settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
