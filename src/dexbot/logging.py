"""Structured logging configuration using structlog with async context propagation.

Event handling binds the mint, strategy and event variant it is working on
through ``trade_context`` so every log line emitted underneath carries them
without each call site repeating the fields.
"""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# Third-party loggers that are too chatty below WARNING
NOISY_LOGGERS = ("websockets", "httpx", "httpcore", "uvicorn.access")


def setup_logging(log_level: str = "INFO", log_format: str | None = None) -> None:
    """Configure structlog with JSON or console rendering.

    Context bound with ``trade_context`` lives in contextvars, so it follows
    the coroutine that bound it and never leaks into other tasks.

    Args:
        log_level: Root level name, e.g. "DEBUG".
        log_format: "json" for machine-readable output or "console" for
            development. Defaults to the LOG_FORMAT environment variable,
            then "console".
    """
    if log_format is None:
        log_format = os.environ.get("LOG_FORMAT", "console")
    log_format = log_format.lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def trade_context(**fields: object) -> Iterator[None]:
    """Bind trading fields to every log line emitted inside the block.

    Fields whose value is None are skipped. Previous values are restored on
    exit, so nested blocks (an event, then each signal it produced) compose.
    """
    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
