"""Logging and observability configuration using Pydantic Logfire.

All modules use Python's standard logging library (logging.getLogger(__name__)),
and Logfire captures and enriches these logs once configured.

Standard usage:
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Message", extra={"key": "value"})

Structured logging utilities:
    log_with_context(logger, "info", "Message", activity_id="123", trigger="tick")
"""

import logging

import logfire
from fastapi import FastAPI

from timeblock.core.config import settings


def configure_logfire() -> None:
    """Configure Pydantic Logfire with token from environment.

    Standard library log records are forwarded to Logfire through its logging handler.
    """
    logfire.configure(
        token=settings.logfire_token,
        service_name="timeblock",
        service_version="0.1.0",
        send_to_logfire="if-token-present",
    )
    logging.basicConfig(level=logging.INFO, handlers=[logfire.LogfireLoggingHandler()])

    logger = logging.getLogger(__name__)
    logger.info("Logfire configured successfully")


def instrument_fastapi(app: FastAPI) -> None:
    """Add Logfire instrumentation to FastAPI application."""
    logfire.instrument_fastapi(app)
    logger = logging.getLogger(__name__)
    logger.info("FastAPI instrumentation configured")


def span(name: str) -> logfire.LogfireSpan:
    """Create a custom span for service layer functions.

    Usage:
        with span("sequencer.complete"):
            # Your service logic here
            pass
    """
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log a message with structured context fields.

    Args:
        logger: Logger instance to use
        level: Log level ("debug", "info", "warning", "error", "critical")
        message: Log message
        **context: Additional context fields (activity_id, scope, trigger, etc.)

    Usage:
        log_with_context(logger, "info", "Activity completed", activity_id="123", trigger="tick")
    """
    log_method = getattr(logger, level.lower())
    log_method(message, extra=context)
