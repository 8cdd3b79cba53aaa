"""
Structured logging configuration for WatchMe.

structlog is set up with:
- JSON output in production, console output in development
- request ids merged in from contextvars
- scrubbing of API keys, tokens and e-mail addresses
- a level taken from the LOG_LEVEL environment variable
"""

import os
import re
import logging
from typing import Any, Dict, Optional

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

REDACTED = "[REDACTED]"

# key=value style secrets embedded in free text (URLs, error messages)
SECRET_IN_TEXT_PATTERNS = [
    re.compile(r'((?:tmdb[_\-]?)?api[_\-]?key["\s:=]+)([A-Za-z0-9_\-]{8,})', re.IGNORECASE),
    re.compile(r'(access[_\-]?token["\s:=]+)([A-Za-z0-9_\-\.]{8,})', re.IGNORECASE),
    re.compile(r'(bearer\s+)([A-Za-z0-9_\-\.]{8,})', re.IGNORECASE),
]

SENSITIVE_FIELD_NAMES = {
    "api_key", "apikey", "api-key",
    "tmdb_api_key", "tmdb_key",
    "secret", "secret_key", "password", "token",
    "access_token", "authorization",
}

# Never scrubbed, even when the value looks like a key
SAFE_FIELD_NAMES = {
    "request_id", "event", "timestamp", "level",
    "service", "environment", "duration_ms", "status_code",
}

EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')


def scrub_sensitive_data(value: Any, parent_key: Optional[str] = None) -> Any:
    """
    Recursively redact secrets from a log event.

    Args:
        value: Value to scrub (dict, list, str or anything else)
        parent_key: Key the value was found under, for field-level redaction

    Returns:
        The value with sensitive data replaced by [REDACTED]
    """
    key = parent_key.lower() if isinstance(parent_key, str) else None

    if isinstance(value, dict):
        return {k: scrub_sensitive_data(v, k) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub_sensitive_data(item, parent_key) for item in value]
    if key in SAFE_FIELD_NAMES:
        return value
    if key in SENSITIVE_FIELD_NAMES:
        return REDACTED
    if isinstance(value, str):
        scrubbed = value
        for pattern in SECRET_IN_TEXT_PATTERNS:
            scrubbed = pattern.sub(r'\1' + REDACTED, scrubbed)
        return EMAIL_PATTERN.sub('[EMAIL_REDACTED]', scrubbed)
    return value


def add_app_context(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    """Stamp every event with the service name and environment."""
    event_dict["service"] = "watchme"
    event_dict["environment"] = os.getenv("WATCHME_ENV", "local")
    return event_dict


def add_scrubbing(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    return scrub_sensitive_data(event_dict)


def configure_structlog():
    """
    Configure structlog for the application.

    Development (FLASK_ENV=development or DEBUG=1) gets the console
    renderer, everything else gets one JSON object per line.
    """
    is_dev = os.getenv("FLASK_ENV") == "development" or os.getenv("DEBUG") == "1"

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        add_scrubbing,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_dev:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(LOG_LEVEL)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Return a structlog logger, optionally named after the calling module."""
    return structlog.get_logger(name)


configure_structlog()
