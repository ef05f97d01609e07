"""
FX (Foreign Exchange) service.
Handles currency conversion against a single base-relative rate table.

Conversion policy is "fail open, pass through": a missing or unusable rate
never raises and never corrupts a valuation. The amount is returned
unchanged, as if it were already in the target currency, and the caller can
surface the table's is_fallback flag to warn about stale data.

Rates are base-relative multipliers: 1 base = rates[code] * code.
- from == base:  amount * rates[to]
- to == base:    amount / rates[from]
- cross:         amount / rates[from] * rates[to]
A rate that is missing, zero or negative is unusable.
"""
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Tuple

import structlog

from backend.app.schemas.portfolio import ExchangeRateTable
from backend.app.utils.financial_math import Number, parse_decimal_value

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def _to_amount(amount) -> Decimal:
    """Coerce an int, float, str or Decimal amount; floats go through str()."""
    value = parse_decimal_value(amount)
    if value is None:
        raise TypeError(f"Expected a numeric amount, got {amount!r}")
    return value


def _lookup_rate(rates: Mapping[str, object], code: str) -> Optional[Decimal]:
    """
    Find a usable (strictly positive) rate for a currency, case-insensitively.

    Returns None when the rate is missing, not numeric, zero or negative.
    """
    if not rates or not code:
        return None

    raw = rates.get(code)
    if raw is None:
        raw = rates.get(code.lower())
    if raw is None:
        for key, value in rates.items():
            if isinstance(key, str) and key.strip().upper() == code:
                raw = value
                break
    if raw is None:
        return None

    rate = parse_decimal_value(raw)
    if rate is None or not rate.is_finite() or rate <= ZERO:
        return None
    return rate


# ============================================================================
# CONVERSION
# ============================================================================

def rate_between(
    from_currency: str,
    to_currency: str,
    rates: Mapping[str, object],
    base_currency: str,
    ) -> Optional[Decimal]:
    """
    Effective multiplier converting one unit of from_currency into to_currency.

    Returns:
        Decimal multiplier (1 for identical currencies), or None when either
        leg has no usable rate.

    Example:
        >>> rate_between("EUR", "JPY", {"EUR": 0.85, "JPY": 110}, "USD")
        Decimal('129.4117647058823529411764706')
    """
    source = _normalize_code(from_currency)
    target = _normalize_code(to_currency)
    base = _normalize_code(base_currency)

    if source == target:
        return Decimal("1")

    from_rate = Decimal("1") if source == base else _lookup_rate(rates, source)
    to_rate = Decimal("1") if target == base else _lookup_rate(rates, target)
    if from_rate is None or to_rate is None:
        return None
    return to_rate / from_rate


def convert(
    amount: Number,
    from_currency: str,
    to_currency: str,
    rates: Optional[Mapping[str, object]],
    base_currency: str,
    ) -> Decimal:
    """
    Convert an amount between two currencies using base-relative rates.

    Never raises for missing data: same currency, zero amount, empty table or
    an unusable rate all return the amount unchanged.

    Args:
        amount: Amount to convert (Decimal, int, float or numeric str)
        from_currency: Source currency code (case-insensitive)
        to_currency: Target currency code (case-insensitive)
        rates: Mapping currency code -> units per one base unit
        base_currency: Currency the rates are expressed against

    Returns:
        Converted amount, or the original amount when conversion is not possible

    Examples:
        >>> rates = {"USD": 1, "EUR": Decimal("0.85"), "JPY": 110}
        >>> convert(Decimal("100"), "USD", "EUR", rates, "USD")
        Decimal('85.00')
        >>> convert(Decimal("85"), "eur", "usd", rates, "USD")
        Decimal('100')
        >>> convert(Decimal("100"), "EUR", "GBP", rates, "USD")  # no GBP rate
        Decimal('100')
    """
    amount = _to_amount(amount)
    source = _normalize_code(from_currency)
    target = _normalize_code(to_currency)
    base = _normalize_code(base_currency)

    if source == target or amount == ZERO:
        return amount

    if source == base:
        to_rate = _lookup_rate(rates, target)
        if to_rate is None:
            logger.debug("FX pass-through: no usable rate", currency=target, base=base)
            return amount
        return amount * to_rate

    if target == base:
        from_rate = _lookup_rate(rates, source)
        if from_rate is None:
            logger.debug("FX pass-through: no usable rate", currency=source, base=base)
            return amount
        return amount / from_rate

    from_rate = _lookup_rate(rates, source)
    to_rate = _lookup_rate(rates, target)
    if from_rate is None or to_rate is None:
        logger.debug(
            "FX pass-through: cross conversion unavailable",
            from_currency=source,
            to_currency=target,
            base=base,
            )
        return amount
    return amount / from_rate * to_rate


def convert_with_table(
    amount: Number,
    from_currency: str,
    to_currency: str,
    table: Optional[ExchangeRateTable],
    ) -> Decimal:
    """
    Convert using an ExchangeRateTable; no table means pass-through.

    This is a convenience wrapper around convert().
    """
    if table is None:
        return _to_amount(amount)
    return convert(amount, from_currency, to_currency, table.rates, table.base_currency)


def can_convert(from_currency: str, to_currency: str, table: Optional[ExchangeRateTable]) -> bool:
    """Check whether a real conversion (not a pass-through) is possible between two currencies."""
    if _normalize_code(from_currency) == _normalize_code(to_currency):
        return True
    if table is None:
        return False
    return rate_between(from_currency, to_currency, table.rates, table.base_currency) is not None


def convert_bulk(
    conversions: Iterable[Tuple[Number, str, str]],
    table: Optional[ExchangeRateTable],
    ) -> list[Decimal]:
    """
    Convert multiple amounts with the same rate table.

    Args:
        conversions: (amount, from_currency, to_currency) tuples
        table: Rate table (None = pass-through for every item)

    Returns:
        Converted amounts, in input order
    """
    return [convert_with_table(amount, source, target, table) for amount, source, target in conversions]
