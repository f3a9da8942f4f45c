"""At-most-once execution per idempotency key.

The coordinator decides, for every protected request, whether the caller
executes the ledger operation, replays a stored outcome, or waits for the
caller that is executing it:

    claim PENDING ──> execute ──> COMPLETED (outcome replayable until TTL)
                         └──────> released (failure, key claimable again)

The key is claimed in the record store *before* the operation runs, so no
duplicate can slip in between "not cached yet" and "executing".

Roles:
    executed: This caller won the claim and ran the operation.
    replayed: The key already had a COMPLETED outcome.
    waited:   The key was PENDING; this caller suspended until the executor
              published its outcome.

Examples:
    Running an operation once per key::

        from ledger_idempotency.core.coordinator import IdempotencyCoordinator
        from ledger_idempotency.storage.memory import MemoryRecordStore

        coordinator = IdempotencyCoordinator(MemoryRecordStore(), config)

        async def withdraw() -> CapturedResponse:
            result = await ledger.execute(account_id, "withdraw", 100)
            return CapturedResponse(200, {}, json.dumps(...).encode())

        result = await coordinator.execute(
            key="withdraw-7f3a",
            fingerprint=fingerprint,
            operation=withdraw,
        )
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum

from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.core.replay import CapturedResponse, mark_response, replay_response
from ledger_idempotency.exceptions import (
    ConflictError,
    CoordinationTimeoutError,
    UpstreamExecutionError,
)
from ledger_idempotency.models import IdempotencyRecord, RecordState
from ledger_idempotency.observability.logging import get_logger
from ledger_idempotency.observability.metrics import (
    decrement_pending_keys,
    increment_pending_keys,
    record_execution_time,
)
from ledger_idempotency.storage.base import RecordStore

logger = get_logger(__name__)

Operation = Callable[[], Awaitable[CapturedResponse]]

RETRY_AFTER_SECONDS = 5


class Role(str, Enum):
    """How a caller obtained its response."""

    EXECUTED = "executed"
    REPLAYED = "replayed"
    WAITED = "waited"


class CoordinationResult:
    """Result of coordinating one request.

    Attributes:
        response: The response to send, idempotency markers included
        role: How the response was obtained
        execution_time_ms: Execution time of the operation that produced it
    """

    def __init__(
        self,
        response: CapturedResponse,
        role: Role,
        execution_time_ms: int | None = None,
    ) -> None:
        self.response = response
        self.role = role
        self.execution_time_ms = execution_time_ms

    @property
    def was_replayed(self) -> bool:
        return self.role is not Role.EXECUTED


class _Outcome:
    """What the executor publishes to callers waiting on its key."""

    def __init__(
        self,
        response: CapturedResponse | None = None,
        record: IdempotencyRecord | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.response = response
        self.record = record
        self.error = error


def _retrieve_exception(task: "asyncio.Task[CoordinationResult]") -> None:
    # A cancelled caller no longer awaits the task; its failure is already logged
    if not task.cancelled():
        task.exception()


class IdempotencyCoordinator:
    """Coordinates executors, replayers and waiters over a record store.

    Waiters on a key claimed by this coordinator suspend on a future shared
    per claim. Keys claimed elsewhere (another coordinator over the same
    store) are waited on by polling the store.

    Attributes:
        store: Record store holding the key space
        config: Configuration object
    """

    POLL_INTERVAL_SECONDS = 0.1

    def __init__(self, store: RecordStore, config: IdempotencyConfig | None = None) -> None:
        self.store = store
        self.config = config or IdempotencyConfig()
        # key -> (lease token, future resolved with the executor's outcome)
        self._inflight: dict[str, tuple[str, asyncio.Future[_Outcome]]] = {}

    async def execute(
        self,
        key: str,
        fingerprint: str,
        operation: Operation,
        trace_id: str | None = None,
    ) -> CoordinationResult:
        """Run ``operation`` at most once for ``key``.

        Args:
            key: Idempotency key from the request
            fingerprint: Fingerprint of the request
            operation: Zero-argument coroutine function producing the response
            trace_id: Optional correlation ID

        Returns:
            CoordinationResult with the response and the caller's role

        Raises:
            ConflictError: The key is in use with a different fingerprint
            CoordinationTimeoutError: The executor did not finish in time
            UpstreamExecutionError: The executor's operation raised
            StoreCapacityError: The store refused the claim
            Exception: Whatever ``operation`` raised, for the executor itself
        """
        claim = await self.store.insert_if_absent(key, fingerprint, trace_id=trace_id)

        if claim.inserted:
            if claim.lease_token is None:
                raise RuntimeError("Claim succeeded but no lease token returned")
            return await self._execute_as_owner(key, claim.lease_token, operation, trace_id)

        existing = claim.existing_record
        if existing is None:
            raise RuntimeError("Claim failed but no existing record returned")

        self._check_fingerprint(existing, fingerprint)

        if existing.state == RecordState.COMPLETED:
            logger.info("coordinator.replayed", key=key, trace_id=trace_id)
            return CoordinationResult(
                response=replay_response(existing, key),
                role=Role.REPLAYED,
                execution_time_ms=existing.execution_time_ms,
            )

        return await self._wait_for_outcome(existing, trace_id)

    def _check_fingerprint(self, record: IdempotencyRecord, fingerprint: str) -> None:
        if record.fingerprint == fingerprint:
            return
        logger.warning("coordinator.conflict", key=record.key, state=record.state.value)
        raise ConflictError(
            message=f"Idempotency key {record.key} was already used for a different request",
            key=record.key,
            stored_fingerprint=record.fingerprint,
            request_fingerprint=fingerprint,
        )

    async def _execute_as_owner(
        self,
        key: str,
        lease_token: str,
        operation: Operation,
        trace_id: str | None,
    ) -> CoordinationResult:
        resolution: asyncio.Future[_Outcome] = asyncio.get_running_loop().create_future()
        self._inflight[key] = (lease_token, resolution)
        increment_pending_keys()
        logger.info("coordinator.claimed", key=key, trace_id=trace_id)

        # The caller may go away; the operation's own completion decides the record
        task = asyncio.create_task(self._run_operation(key, lease_token, operation, resolution))
        task.add_done_callback(_retrieve_exception)
        return await asyncio.shield(task)

    async def _run_operation(
        self,
        key: str,
        lease_token: str,
        operation: Operation,
        resolution: "asyncio.Future[_Outcome]",
    ) -> CoordinationResult:
        outcome = _Outcome()
        start_time = time.monotonic()
        try:
            response = await operation()
            execution_time_ms = int((time.monotonic() - start_time) * 1000)
            record_execution_time(execution_time_ms)

            if response.is_success:
                record = await self.store.complete(
                    key=key,
                    lease_token=lease_token,
                    response=response.to_stored(),
                    execution_time_ms=execution_time_ms,
                )
                if record is None:
                    logger.warning("coordinator.lease_lost", key=key)
                logger.info(
                    "coordinator.completed",
                    key=key,
                    status_code=response.status,
                    execution_time_ms=execution_time_ms,
                )
                outcome = _Outcome(response=response, record=record)
            else:
                # Failed outcomes are not cached; the key becomes claimable again
                await self.store.fail(key, lease_token)
                logger.info(
                    "coordinator.released",
                    key=key,
                    status_code=response.status,
                    execution_time_ms=execution_time_ms,
                )
                outcome = _Outcome(response=response)

            return CoordinationResult(
                response=mark_response(response, key, is_replay=False),
                role=Role.EXECUTED,
                execution_time_ms=execution_time_ms,
            )
        except BaseException as exc:
            outcome = _Outcome(error=exc)
            logger.warning(
                "coordinator.execution_failed",
                key=key,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self.store.fail(key, lease_token)
            raise
        finally:
            resolution.set_result(outcome)
            current = self._inflight.get(key)
            if current is not None and current[1] is resolution:
                del self._inflight[key]
            decrement_pending_keys()

    async def _wait_for_outcome(
        self,
        record: IdempotencyRecord,
        trace_id: str | None,
    ) -> CoordinationResult:
        key = record.key

        if self.config.wait_policy == "no-wait":
            logger.info("coordinator.in_progress", key=key, trace_id=trace_id)
            raise CoordinationTimeoutError(
                f"Request with idempotency key {key} is still being processed",
                key=key,
                waited_seconds=0.0,
                retry_after_seconds=RETRY_AFTER_SECONDS,
            )

        timeout = self.config.wait_timeout_seconds
        start_time = time.monotonic()
        inflight = self._inflight.get(key)

        try:
            if inflight is not None and inflight[0] == record.lease_token:
                # Shielded so one waiter timing out does not cancel the others
                outcome = await asyncio.wait_for(asyncio.shield(inflight[1]), timeout=timeout)
                return self._result_for_waiter(key, outcome)
            return await asyncio.wait_for(self._poll_store(record), timeout=timeout)
        except asyncio.TimeoutError:
            waited = time.monotonic() - start_time
            logger.warning(
                "coordinator.wait_timeout",
                key=key,
                trace_id=trace_id,
                waited_seconds=round(waited, 3),
            )
            raise CoordinationTimeoutError(
                f"Timed out after {waited:.1f}s waiting for idempotency key {key}",
                key=key,
                waited_seconds=waited,
                retry_after_seconds=RETRY_AFTER_SECONDS,
            ) from None

    def _result_for_waiter(self, key: str, outcome: _Outcome) -> CoordinationResult:
        if outcome.error is not None:
            raise UpstreamExecutionError(
                f"Operation for idempotency key {key} failed: {outcome.error!r}",
                key=key,
                cause=outcome.error,
            )

        if outcome.record is not None:
            return CoordinationResult(
                response=replay_response(outcome.record, key),
                role=Role.WAITED,
                execution_time_ms=outcome.record.execution_time_ms,
            )

        if outcome.response is None:
            raise RuntimeError(f"Outcome for key {key} has neither response nor error")

        return CoordinationResult(
            response=mark_response(outcome.response, key, is_replay=True),
            role=Role.WAITED,
        )

    async def _poll_store(self, record: IdempotencyRecord) -> CoordinationResult:
        key = record.key
        while True:
            await asyncio.sleep(self.POLL_INTERVAL_SECONDS)

            updated = await self.store.get(key)
            if (
                updated is None
                or updated.lease_token != record.lease_token
                or updated.state == RecordState.FAILED
            ):
                # Released after a failure, or abandoned and reclaimed
                raise UpstreamExecutionError(
                    f"Idempotency key {key} was released without a stored outcome",
                    key=key,
                )

            if updated.state == RecordState.COMPLETED:
                return CoordinationResult(
                    response=replay_response(updated, key),
                    role=Role.WAITED,
                    execution_time_ms=updated.execution_time_ms,
                )
