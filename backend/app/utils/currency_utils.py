"""
Currency formatting utilities with multi-language support via Babel.

Used to render amounts inside the human-readable rebalancing texts. The
analytics functions themselves never format numbers.
"""
from decimal import Decimal

from babel.numbers import format_currency, format_decimal

from backend.app.utils.translation_utils import get_babel_locale


def format_money(amount: Decimal, currency: str, language: str = 'en_US') -> str:
    """
    Format an amount with its currency symbol for the given locale.

    Unknown or non-ISO codes (e.g. crypto symbols) do not fail: Babel falls
    back to the raw code as symbol.

    Examples:
        >>> format_money(Decimal("1000"), "USD")
        '$1,000.00'
        >>> format_money(Decimal("1000"), "EUR", "it")
        '1.000,00\xa0€'
    """
    locale = get_babel_locale(language)
    code = (currency or "").strip().upper()
    if not code:
        return format_decimal(amount, format="#,##0.00", locale=locale)
    return format_currency(amount, code, locale=locale)


def format_percentage(value: Decimal, language: str = 'en_US') -> str:
    """
    Format a percentage expressed in points (60 means 60%).

    Examples:
        >>> format_percentage(Decimal("95"))
        '95%'
        >>> format_percentage(Decimal("99.5"))
        '99.5%'
    """
    locale = get_babel_locale(language)
    return f"{format_decimal(value, format='#,##0.##', locale=locale)}%"
