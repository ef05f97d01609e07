"""
Logging configuration for the analytics engine.

Uses structlog for structured logging with:
- Console output on stdout
- JSON formatting (default, for log shipping)
- Human-readable formatting for development (json_output=False)

The engine itself never configures logging on import: the host application
calls configure_logging() once at startup. Library modules only call
structlog.get_logger(__name__).
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict

from backend.app.config import get_settings


def add_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add log level to the event dict.
    """
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name.upper()
    return event_dict


def configure_logging(log_level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """
    Configure structured logging for the engine.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to Settings.LOG_LEVEL.
        json_output: Render events as JSON (True) or as colored console lines (False).
            Defaults to Settings.LOG_JSON.
    """
    settings = get_settings()
    if log_level is None:
        log_level = settings.LOG_LEVEL
    if json_output is None:
        json_output = settings.LOG_JSON

    # Convert string level to logging constant
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)

    logging.basicConfig(
        format="%(message)s",
        handlers=[console_handler],
        level=numeric_level,
        force=True
        )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance (structured logger).

    Args:
        name: Logger name (typically __name__)

    Returns:
        structlog.stdlib.BoundLogger: Configured logger

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value")
    """
    return structlog.get_logger(name)
