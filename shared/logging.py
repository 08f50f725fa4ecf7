"""
Structured logging for the college portal backend.

Provides:
- setup_logging(): configure stdlib logging + structlog once at start-up
- get_logger(): get a configured logger instance
- hash_ip(): hash IP addresses for privacy in production

Production: JSON formatting for easy parsing.
Development: pretty console formatting with colors.
"""

from __future__ import annotations

import hashlib
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import EventDict, Processor

ENV = os.getenv("ENV", "development")
IS_PRODUCTION = ENV == "production"

# Sensitive fields to redact from logs
REDACTED_FIELDS = {
    "password",
    "password_hash",
    "new_password",
    "current_password",
    "token",
    "access_token",
    "refresh_token",
    "reset_token",
    "authorization",
    "cookie",
    "secret",
}

# Keys that contain a sensitive fragment but only ever hold ids or counts
_SAFE_KEYS = {"level", "event", "timestamp", "logger", "token_version", "token_type"}


def hash_ip(ip_address: Optional[str]) -> Optional[str]:
    """Hash an IP address in production, return it unchanged in development."""
    if ip_address is None:
        return None
    if IS_PRODUCTION and ip_address:
        return hashlib.sha256(ip_address.encode()).hexdigest()[:16]
    return ip_address


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add ISO format timestamp to event dict."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def redact_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Redact sensitive fields from logs."""
    for key in list(event_dict.keys()):
        if key in _SAFE_KEYS:
            continue
        lowered = key.lower()
        if lowered in REDACTED_FIELDS or any(
            sensitive in lowered for sensitive in ("password", "token", "secret")
        ):
            event_dict[key] = "***REDACTED***"
    return event_dict


def configure_structlog(log_format: str) -> None:
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        redact_sensitive_fields,
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True, pad_event=15, sort_keys=False
        )

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_stdlib_logging(log_level: str) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Silence pymongo debug logs (connection pool, server monitoring, etc.)
    for noisy in ("pymongo", "pymongo.connection", "pymongo.topology", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Initialize logging. Called once from create_app()."""
    configure_stdlib_logging(log_level)
    configure_structlog(log_format)

    structlog.get_logger(__name__).info(
        "logging_initialized", env=ENV, log_level=log_level, log_format=log_format
    )


def get_logger(name: str) -> BoundLogger:
    """
    Get a configured logger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("login_success", user_id="123", session_id="abc")
    """
    return structlog.get_logger(name)
