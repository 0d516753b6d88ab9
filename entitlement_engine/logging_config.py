"""Structured logging configuration using structlog.

Every log event carries:
- The application name and level
- Context bound for the current control request (request_id,
  control_operation)
- Plain values for enums, so JSON output stays readable
- Masked billing API keys and shortened anonymous app user ids
"""

import logging
import os
import sys
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator

import structlog
from structlog.typing import EventDict, Processor

APP_NAME = "entitlement-engine"

ANONYMOUS_ID_PREFIX = "$RCAnonymousID:"

# Event keys whose values are billing SDK keys
SECRET_KEYS = frozenset({"api_key", "mobile_api_key", "web_api_key"})

# Event keys holding app user ids
USER_ID_KEYS = frozenset({"user_id", "app_user_id", "billing_user_id"})


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every event with the application name."""
    event_dict["app"] = APP_NAME
    return event_dict


def add_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add log level to event dict if not present."""
    if "level" not in event_dict:
        event_dict["level"] = method_name.upper()
    return event_dict


def render_enum_values(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Log platforms, statuses and lifecycle events by value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def mask_billing_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Keep only the platform prefix of API keys (``appl_``, ``rcb_``)."""
    for key in SECRET_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value:
            prefix = str(value).split("_", 1)[0] if "_" in str(value) else ""
            event_dict[key] = f"{prefix}_***" if prefix else "***"
    return event_dict


def shorten_anonymous_ids(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Anonymous ids are random and long; the first characters identify them in logs."""
    for key in USER_ID_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and value.startswith(ANONYMOUS_ID_PREFIX) and len(value) > 24:
            event_dict[key] = f"{value[:24]}..."
    return event_dict


def drop_debug_in_production(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Drop DEBUG logs if not in debug mode."""
    if method_name == "debug" and not is_debug_mode():
        raise structlog.DropEvent
    return event_dict


def is_debug_mode() -> bool:
    """Check if debug mode is enabled via LOG_LEVEL environment variable."""
    return os.getenv("LOG_LEVEL", "INFO").upper() == "DEBUG"


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    include_timestamp: bool = True,
) -> None:
    """Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON; if False, use colored console output
        include_timestamp: Include ISO8601 timestamps in logs
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        add_log_level,
        structlog.stdlib.add_logger_name,
        render_enum_values,
        mask_billing_secrets,
        shorten_anonymous_ids,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    if numeric_level > logging.DEBUG:
        processors.append(drop_debug_in_production)

    renderer: Processor
    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_env(default_format: str = "json") -> None:
    """Configure logging from LOG_LEVEL and LOG_FORMAT (json or console)."""
    configure_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_format=os.getenv("LOG_FORMAT", default_format).lower() == "json",
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a logger; modules call this once at import with ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables that will be included in all subsequent logs.

    Example:
        bind_context(platform="mobile-billing", control_operation="purchase")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind ``kwargs`` for the duration of a block, then restore the previous values."""
    tokens = structlog.contextvars.bind_contextvars(**kwargs)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
