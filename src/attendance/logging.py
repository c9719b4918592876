"""Structured logging for the attendance service, built on structlog.

Console output for local runs, JSON lines when LOG_JSON is set. Webhook
handlers bind the event type and meeting id into context variables so every
line emitted while processing one delivery carries them.
"""

import logging
import sys

import structlog


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog processors and the stdlib logging bridge.

    Args:
        json_output: Emit JSON lines instead of the coloured console format.
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # merge_contextvars comes first so webhook_event and meeting_id bound by
    # bind_delivery() appear on every line logged while a delivery is handled
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        # Tracebacks from the alert worker and timer threads as one JSON string
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # http.server and smtplib log through stdlib logging
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    logging.getLogger().handlers = []
    logging.getLogger().addHandler(logging.StreamHandler(sys.stdout))


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)


def bind_delivery(webhook_event: str | None, meeting_id: str | None = None) -> None:
    """Attach webhook delivery context to every log line on this thread."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(webhook_event=webhook_event, meeting_id=meeting_id)


def clear_delivery() -> None:
    structlog.contextvars.clear_contextvars()
