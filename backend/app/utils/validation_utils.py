"""
Validation utilities for Pydantic models.

Provides reusable validator functions for the loosely-typed fields that come
from user-entered portfolio data (currency codes, percentages, amounts).

Note: strict ISO 4217 validation is handled by validate_currency_code()
in backend.app.schemas.common
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def normalize_currency_code(v: Any) -> str:
    """
    Normalize a user-entered currency code without rejecting unknown codes.

    Codes are compared case-insensitively across the engine, so they are
    stored stripped and upper-cased. An empty code is kept empty: it means
    "same as the display currency" when values are aggregated.

    Raises:
        ValueError: If the value is not a string (None is treated as empty)

    Examples:
        >>> normalize_currency_code(" eur ")
        'EUR'
        >>> normalize_currency_code(None)
        ''
    """
    if v is None:
        return ""
    if not isinstance(v, str):
        raise ValueError(f"Currency code must be a string, got {type(v)}")
    return v.strip().upper()


def coerce_decimal(v: Any, field_name: str = "amount") -> Decimal:
    """
    Convert numeric input to Decimal through str() to avoid float artifacts.

    Raises:
        ValueError: If the value cannot be represented as a finite Decimal
    """
    if isinstance(v, bool):
        raise ValueError(f"{field_name} must be numeric, got bool")
    if isinstance(v, Decimal):
        result = v
    elif isinstance(v, (int, float, str)):
        try:
            result = Decimal(str(v).strip())
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{v}' to Decimal for {field_name}")
    else:
        raise ValueError(f"{field_name} must be numeric, got {type(v)}")
    if not result.is_finite():
        raise ValueError(f"{field_name} must be a finite number, got {v}")
    return result


def validate_percentage(v: Optional[Decimal], field_name: str = "percentage") -> Optional[Decimal]:
    """
    Validate an optional percentage in the closed range [0, 100].

    Examples:
        >>> validate_percentage(Decimal("60"))
        Decimal('60')
        >>> validate_percentage(None) is None
        True
        >>> validate_percentage(Decimal("120"))  # ValueError
    """
    if v is None:
        return None
    value = coerce_decimal(v, field_name)
    if value < 0 or value > 100:
        raise ValueError(f"{field_name} must be between 0 and 100, got {value}")
    return value
