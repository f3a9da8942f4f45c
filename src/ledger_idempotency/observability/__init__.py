"""Logging and Prometheus metrics for the idempotency layer."""

from ledger_idempotency.observability.logging import (
    configure_logging,
    get_logger,
    request_context,
)
from ledger_idempotency.observability.metrics import (
    record_execution_time,
    record_request,
    record_sweep,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "request_context",
    "record_execution_time",
    "record_request",
    "record_sweep",
]
