"""Prometheus metrics for the ledger idempotency layer.

Metrics include:

- Request counters by mediation result (executed, replayed, conflict, ...)
- Execution time histogram for operations run by an executor
- Gauge of keys currently PENDING in this process
- Eviction sweep tracking

Examples:
    Recording a replayed request::

        from ledger_idempotency.observability.metrics import record_request

        record_request(result="replayed", status_code=200)
"""

from prometheus_client import Counter, Gauge, Histogram

# Labels: result (executed, replayed, waited, conflict, timeout, failed,
# rejected, passthrough), status_code
requests_total = Counter(
    "ledger_idempotency_requests_total",
    "Total number of requests seen by the idempotency layer",
    ["result", "status_code"],
)

# Only tracks executions, not replays
execution_time_seconds = Histogram(
    "ledger_idempotency_execution_time_seconds",
    "Ledger operation execution time in seconds (executions only)",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

pending_keys = Gauge(
    "ledger_idempotency_pending_keys",
    "Number of idempotency keys currently executing in this process",
)

sweep_operations = Counter(
    "ledger_idempotency_sweep_operations_total",
    "Total number of eviction sweeps performed",
)

sweep_records_removed = Counter(
    "ledger_idempotency_sweep_records_removed_total",
    "Total number of expired records removed by eviction sweeps",
)


def record_request(result: str, status_code: int) -> None:
    """Record a mediated request.

    Args:
        result: The mediation result label
        status_code: HTTP status code of the response

    Examples:
        >>> record_request("replayed", 200)
        >>> record_request("conflict", 409)
    """
    requests_total.labels(result=result, status_code=str(status_code)).inc()


def record_execution_time(exec_time_ms: int) -> None:
    """Record operation execution time. Executions only, never replays."""
    execution_time_seconds.observe(exec_time_ms / 1000.0)


def increment_pending_keys() -> None:
    pending_keys.inc()


def decrement_pending_keys() -> None:
    pending_keys.dec()


def record_sweep(records_removed: int) -> None:
    """Record an eviction sweep.

    Args:
        records_removed: Number of expired records removed
    """
    sweep_operations.inc()
    sweep_records_removed.inc(records_removed)
