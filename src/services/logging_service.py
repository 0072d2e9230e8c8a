"""Structured logging configuration with redaction support."""

import logging
import sys
from typing import Any, Dict

import structlog

# Redacted when the key contains one of these
SENSITIVE_SUBSTRINGS = (
    "api_key",
    "authorization",
    "secret",
    "password",
)

# Redacted only on an exact key match; "tokens" is a balance and stays visible
SENSITIVE_KEYS = {
    "otp",
    "code",
    "access_token",
    "refresh_token",
    "raw_token",
    "token_hash",
}


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Redact credentials and one-time codes from log entries."""
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        if key_lower in SENSITIVE_KEYS or any(
            sensitive in key_lower for sensitive in SENSITIVE_SUBSTRINGS
        ):
            event_dict[key] = "REDACTED"

    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog for JSON output with correlation ID support.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger, bound to ``logger_name`` when given."""
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger_name=name)
    return logger
