"""
Common schemas shared across the analytics modules.

**Domain Coverage**:
- Currency code validation (ISO 4217 via pycountry + supported crypto symbols)
- EngineModel: base class for the immutable records handed to the engine

**Design Notes**:
- Inputs are snapshots-in-time: every model is frozen, the engine never
  mutates what the caller passes in.
"""
# Postpones evaluation of type hints to improve imports and performance. Also avoid circular import issues.
from __future__ import annotations

from typing import Any

import pycountry
from pydantic import BaseModel, ConfigDict

# =============================================================================
# CRYPTOCURRENCY SUPPORT
# =============================================================================

# Cryptocurrencies not in pycountry ISO 4217 database
CRYPTO_CURRENCIES = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "USDT": "Tether",
    "USDC": "USD Coin",
    "BNB": "Binance Coin",
    "XRP": "Ripple",
    "ADA": "Cardano",
    "SOL": "Solana",
    "DOT": "Polkadot",
    "DOGE": "Dogecoin",
    "LTC": "Litecoin",
    "XLM": "Stellar",
    }


def validate_currency_code(v: Any) -> str:
    """
    Validate and normalize a currency code.

    Use this in Pydantic @field_validator for fields that must name a real
    currency (rate table base currency, configured display currency).
    User-entered asset currencies go through the lenient
    normalize_currency_code() instead.

    Args:
        v: Currency code to validate

    Returns:
        Uppercase validated currency code

    Raises:
        ValueError: If currency code is invalid

    Example:
        @field_validator('base_currency')
        @classmethod
        def _validate_base(cls, v):
            return validate_currency_code(v)
    """
    if not isinstance(v, str):
        raise ValueError(f"Currency code must be a string, got {type(v)}")

    # Normalize: uppercase and strip whitespace
    code = v.upper().strip()

    if not code:
        raise ValueError("Currency code cannot be empty")

    # Check ISO 4217 via pycountry
    try:
        pycountry.currencies.lookup(code)
        return code
    except LookupError:
        pass

    # Check crypto currencies
    if code in CRYPTO_CURRENCIES:
        return code

    raise ValueError(
        f"Invalid currency code: '{code}'. "
        f"Must be ISO 4217 currency or supported crypto."
        )


class EngineModel(BaseModel):
    """Immutable, strict base model for engine inputs and outputs."""
    model_config = ConfigDict(frozen=True, extra="forbid")
