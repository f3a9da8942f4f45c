"""Structured logging for the ledger idempotency layer.

Events are named ``<component>.<what happened>`` and carry their details as
keyword fields. The idempotency key and trace ID of the request being
mediated are bound as context variables, so every event emitted while a
request is in flight (coordinator, ledger) carries them without passing
them around.

Examples:
    At startup::

        from ledger_idempotency.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    In a module::

        logger = get_logger(__name__)

        with request_context(key="withdraw-7f3a", trace_id="req-1"):
            logger.info("coordinator.replayed", status_code=200)

    Output (JSON)::

        {"key": "withdraw-7f3a", "trace_id": "req-1", "status_code": 200,
         "event": "coordinator.replayed", "logger": "ledger_idempotency.core.coordinator",
         "level": "info", "timestamp": "2024-01-01T00:00:00.000000Z"}
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

LOG_LEVEL_ENV = "IDEMPOTENCY_LOG_LEVEL"


def configure_logging(level: str | None = None, json_output: bool = True) -> None:
    """Configure structlog and the standard library root logger.

    Call once at application startup. Events go through the standard library
    so that uvicorn's handlers and ours share one stream.

    Args:
        level: Log level name. Defaults to $IDEMPOTENCY_LOG_LEVEL, then INFO.
        json_output: JSON lines if True, coloured console output otherwise
    """
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a structured logger named after the calling module."""
    return structlog.get_logger(name)


@contextmanager
def request_context(key: str | None, trace_id: str | None = None) -> Iterator[None]:
    """Bind the idempotency key and trace ID to every event logged inside.

    None values are not bound. Bindings made outside are restored on exit.
    """
    bindings = {
        name: value for name, value in (("key", key), ("trace_id", trace_id)) if value is not None
    }
    with structlog.contextvars.bound_contextvars(**bindings):
        yield
