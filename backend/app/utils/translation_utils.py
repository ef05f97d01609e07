"""
Localization utilities.

Uses Babel for locale resolution with automatic fallback to English.
"""

import structlog
from babel import Locale

logger = structlog.get_logger(__name__)


def get_babel_locale(language: str) -> Locale:
    """
    Get Babel Locale object for given locale identifier.
    Falls back to English if the identifier is not supported.

    Args:
        language: Locale identifier (e.g., 'en', 'en_US', 'it', 'de_CH')

    Returns:
        Babel Locale object

    Examples:
        >>> get_babel_locale('it').language
        'it'
        >>> get_babel_locale('invalid_lang').language  # Falls back to 'en'
        'en'
    """
    try:
        return Locale.parse(language)
    except Exception as e:
        logger.warning(
            "Locale not supported, falling back to English",
            language=language,
            error=str(e)
            )
        return Locale.parse('en')
