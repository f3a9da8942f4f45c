"""Background eviction of expired idempotency records.

The sweeper periodically asks the record store to drop records that are no
longer honoured: COMPLETED records past their TTL and PENDING claims past
their liveness deadline. Lookups already ignore expired records, so the sweep
only bounds memory; it never changes what a caller observes.

The sweep task:
1. Runs at a configurable interval (default 5 minutes)
2. Calls store.sweep_expired()
3. Reports metrics and logs
4. Keeps running when a pass fails

Examples:
    Start the sweeper in the background::

        from ledger_idempotency.core.sweeper import start_sweeper, stop_sweeper

        task = await start_sweeper(store, interval_seconds=300)

        # Later, when shutting down
        await stop_sweeper(task)
"""

import asyncio

from ledger_idempotency.observability.logging import get_logger
from ledger_idempotency.observability.metrics import record_sweep
from ledger_idempotency.storage.base import RecordStore

logger = get_logger(__name__)


async def sweep_once(store: RecordStore) -> int:
    """Run a single eviction pass and return the number of records removed."""
    count = await store.sweep_expired()
    record_sweep(count)

    if count > 0:
        logger.info("sweeper.completed", records_removed=count, records_remaining=store.count())
    else:
        logger.debug("sweeper.completed", records_removed=0)

    return count


async def sweep_loop(
    store: RecordStore,
    interval_seconds: float = 300,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Periodically evict expired records until ``stop_event`` is set.

    Args:
        store: Record store to sweep
        interval_seconds: Time between passes
        stop_event: Event that stops the loop (optional)
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    logger.info("sweeper.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        try:
            await sweep_once(store)
        except Exception as e:
            logger.error(
                "sweeper.failed",
                error=str(e),
                error_type=type(e).__name__,
            )

        # Wait for next interval or stop signal
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue

    logger.info("sweeper.stopped")


async def start_sweeper(
    store: RecordStore,
    interval_seconds: float = 300,
) -> asyncio.Task[None]:
    """Start the sweep loop as a background task.

    Returns:
        The asyncio Task running the loop; pass it to stop_sweeper()
    """
    stop_event = asyncio.Event()

    task = asyncio.create_task(
        sweep_loop(
            store=store,
            interval_seconds=interval_seconds,
            stop_event=stop_event,
        )
    )

    # Store the stop_event in the task for later use
    task._stop_event = stop_event  # type: ignore[attr-defined]

    return task


async def stop_sweeper(task: asyncio.Task[None], timeout: float = 5.0) -> None:
    """Stop a running sweeper gracefully, cancelling it if it does not stop in time."""
    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)

    if stop_event:
        stop_event.set()

    try:
        await asyncio.wait_for(task, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("sweeper.stop_timeout", message="Sweeper did not stop in time")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("sweeper.cancelled")
