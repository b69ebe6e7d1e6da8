"""
Structured logging setup.

All modules log through structlog with snake_case event names; this module
wires the processor pipeline once at startup.
"""

import logging
import sys

import structlog

SENSITIVE_FIELDS = {
    "api_key", "apikey", "apiKey", "token", "secret", "password", "credentials",
}


def redact_secrets(logger, method_name, event_dict):
    """Redact credential fields before rendering."""
    for name in SENSITIVE_FIELDS:
        if name in event_dict:
            event_dict[name] = "[REDACTED]"
    return event_dict


def _stderr_logger(*args):
    return structlog.PrintLogger(file=sys.stderr)


def setup_logging(level: str = "info", json_output: bool = False) -> None:
    """Configure structlog and route stdlib logging at the same level.

    Args:
        level: One of debug, info, warning, error
        json_output: Render JSON lines instead of the console format
    """
    min_level = getattr(logging, level.upper(), logging.INFO)

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        redact_secrets,
    ]
    if json_output:
        # The console renderer formats exceptions itself
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=min_level,
    )
