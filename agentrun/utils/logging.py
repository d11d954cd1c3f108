"""
Structured logging for agentrun.

All modules log through structlog with an event name plus keyword fields:

    logger = get_logger(__name__)
    logger.info("round_trip_retry", attempt=1, delay=0.9)

configure_logging() is idempotent and is called lazily by get_logger().
"""

import logging
import sys
from typing import Any

import structlog

SENSITIVE_KEYS = ("api_key", "password", "secret", "authorization")

_configured = False


def filter_sensitive_data(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Redact credential-like fields from a log event.

    Token counters ("tokens", "input_tokens", ...) are left untouched.
    """
    for key in list(event_dict.keys()):
        lowered = key.lower()
        if any(marker in lowered for marker in SENSITIVE_KEYS):
            event_dict[key] = "***REDACTED***"
    return event_dict


def configure_logging(
    level: str | None = None,
    json_output: bool | None = None,
    force: bool = False,
) -> None:
    """
    Initialise stdlib + structlog logging.

    Args:
        level: Log level name, defaults to settings.log_level
        json_output: Render JSON lines instead of console output
        force: Reconfigure even if already configured
    """
    global _configured
    if _configured and not force:
        return

    from agentrun.config.settings import settings

    level_name = (level or settings.log_level).upper()
    use_json = settings.log_json if json_output is None else json_output
    numeric_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            filter_sensitive_data,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )
    _configured = True


def get_logger(name: str, **initial_values: Any) -> Any:
    """Return a bound structured logger."""
    configure_logging()
    logger = structlog.get_logger(name)
    if initial_values:
        return logger.bind(**initial_values)
    return logger


__all__ = ["configure_logging", "filter_sensitive_data", "get_logger"]
