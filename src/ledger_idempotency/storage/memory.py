"""In-memory record store with asyncio concurrency control.

This module provides the process-local implementation of the RecordStore
protocol. It is constructed once at process start and handed to the
coordinator; tests build a fresh instance per test.

Concurrency:
    - Each idempotency key has its own asyncio.Lock (the per-key critical
      section); unrelated keys never wait on each other
    - The check for a live record and the write of the PENDING record happen
      under the key lock with no suspension point in between
    - Locks are held only for the duration of a single store operation,
      never across the execution of the ledger operation
    - Idle locks are dropped by sweep_expired()

Lease Management:
    - Lease tokens are UUID4 strings issued by insert_if_absent()
    - complete() and fail() require the token of the current claim, so an
      executor whose claim expired and was reclaimed cannot touch the new one

Expiry:
    - PENDING records expire at created_at + pending_liveness_seconds
    - COMPLETED records expire at completed_at + ttl_seconds
    - Expired records are invisible to get() and replaced by
      insert_if_absent(); sweep_expired() reclaims their memory

Examples:
    Basic usage::

        from ledger_idempotency.storage.memory import MemoryRecordStore

        store = MemoryRecordStore(ttl_seconds=86400, pending_liveness_seconds=120)

        claim = await store.insert_if_absent("withdraw-7f3a", fingerprint)
        if claim.inserted:
            response = await execute_withdrawal()
            await store.complete(
                key="withdraw-7f3a",
                lease_token=claim.lease_token,
                response=response,
                execution_time_ms=15,
            )
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.exceptions import StoreCapacityError
from ledger_idempotency.models import (
    ClaimResult,
    IdempotencyRecord,
    RecordState,
    StoredResponse,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MemoryRecordStore:
    """In-memory record store with per-key asyncio locks.

    Attributes:
        ttl_seconds: Lifetime of COMPLETED records, counted from completion.
        pending_liveness_seconds: Lifetime of unresolved PENDING records.
        max_records: Capacity of the store, 0 for unlimited.
        _store: Dictionary mapping keys to IdempotencyRecord objects.
        _locks: Dictionary mapping keys to asyncio.Lock objects.
    """

    def __init__(
        self,
        ttl_seconds: int = 86400,
        pending_liveness_seconds: int = 120,
        max_records: int = 0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize an empty store.

        Args:
            ttl_seconds: Lifetime of COMPLETED records in seconds.
            pending_liveness_seconds: Lifetime of PENDING records in seconds.
            max_records: Maximum number of records, 0 for unlimited.
            clock: Returns the current UTC time. Injected by tests.
        """
        self.ttl_seconds = ttl_seconds
        self.pending_liveness_seconds = pending_liveness_seconds
        self.max_records = max_records
        self._clock = clock or _utcnow
        self._store: dict[str, IdempotencyRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_config(
        cls,
        config: IdempotencyConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> "MemoryRecordStore":
        return cls(
            ttl_seconds=config.ttl_seconds,
            pending_liveness_seconds=config.pending_liveness_seconds,
            max_records=config.max_records,
            clock=clock,
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _live_record(self, key: str, now: datetime) -> IdempotencyRecord | None:
        record = self._store.get(key)
        if record is None or record.is_expired(now):
            return None
        return record

    async def get(self, key: str) -> IdempotencyRecord | None:
        """Retrieve a snapshot of the live record for a key.

        Args:
            key: The idempotency key to look up.

        Returns:
            A copy of the record, or None if absent or expired.
        """
        record = self._live_record(key, self._clock())
        if record is None:
            return None
        return record.model_copy(deep=True)

    async def insert_if_absent(
        self,
        key: str,
        fingerprint: str,
        trace_id: str | None = None,
    ) -> ClaimResult:
        """Atomically claim a key by inserting a PENDING record.

        Race Condition Handling:
            The live-record check and the insert run under the key lock with
            no await in between. Of any number of concurrent callers, the
            first to take the lock inserts; the rest find its record.

        Args:
            key: The idempotency key.
            fingerprint: SHA-256 fingerprint of the claiming request.
            trace_id: Optional correlation ID.

        Returns:
            ClaimResult with inserted=True and a lease token, or
            inserted=False with a snapshot of the existing record.

        Raises:
            StoreCapacityError: If the store is full of live records.
        """
        async with self._lock_for(key):
            now = self._clock()
            existing = self._live_record(key, now)
            if existing is not None:
                return ClaimResult(
                    inserted=False,
                    lease_token=None,
                    existing_record=existing.model_copy(deep=True),
                )

            if key not in self._store:
                self._ensure_capacity(now)

            lease_token = str(uuid.uuid4())
            self._store[key] = IdempotencyRecord(
                key=key,
                fingerprint=fingerprint,
                state=RecordState.PENDING,
                response=None,
                created_at=now,
                expires_at=now + timedelta(seconds=self.pending_liveness_seconds),
                lease_token=lease_token,
                trace_id=trace_id,
            )

            return ClaimResult(
                inserted=True,
                lease_token=lease_token,
                existing_record=None,
            )

    async def complete(
        self,
        key: str,
        lease_token: str,
        response: StoredResponse,
        execution_time_ms: int,
    ) -> IdempotencyRecord | None:
        """Mark a PENDING record as COMPLETED and store its outcome.

        Args:
            key: The idempotency key.
            lease_token: The lease token issued by insert_if_absent.
            response: The captured outcome.
            execution_time_ms: Operation execution time in milliseconds.

        Returns:
            Snapshot of the completed record, or None if lease validation failed.
        """
        async with self._lock_for(key):
            record = self._store.get(key)
            if record is None or record.state != RecordState.PENDING:
                return None

            if record.lease_token != lease_token:
                # Stale completion from an executor whose claim was reclaimed
                return None

            now = self._clock()
            completed = record.model_copy(
                update={
                    "state": RecordState.COMPLETED,
                    "response": response,
                    "completed_at": now,
                    "expires_at": now + timedelta(seconds=self.ttl_seconds),
                    "execution_time_ms": execution_time_ms,
                }
            )
            self._store[key] = completed
            return completed.model_copy(deep=True)

    async def fail(self, key: str, lease_token: str) -> bool:
        """Release a PENDING record after its operation failed.

        Failures are not cached: the record is deleted so that a retry with
        the same key is executed afresh.

        Args:
            key: The idempotency key.
            lease_token: The lease token issued by insert_if_absent.

        Returns:
            True if the record was deleted, False if lease validation failed.
        """
        async with self._lock_for(key):
            record = self._store.get(key)
            if record is None or record.state != RecordState.PENDING:
                return False

            if record.lease_token != lease_token:
                return False

            del self._store[key]
            return True

    async def sweep_expired(self) -> int:
        """Remove expired records from storage.

        Removes COMPLETED records past their TTL and PENDING records past
        their liveness deadline, then drops locks that no key uses any more.
        Keys whose lock is currently held are left for the next pass.

        Returns:
            The number of records removed.
        """
        return self._purge_expired(self._clock())

    def count(self) -> int:
        return len(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def _purge_expired(self, now: datetime) -> int:
        removed_count = 0
        for key, record in list(self._store.items()):
            if not record.is_expired(now):
                continue
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                continue
            del self._store[key]
            removed_count += 1

        for key, lock in list(self._locks.items()):
            if key not in self._store and not lock.locked():
                del self._locks[key]

        return removed_count

    def _ensure_capacity(self, now: datetime) -> None:
        if not self.max_records or len(self._store) < self.max_records:
            return
        self._purge_expired(now)
        if len(self._store) >= self.max_records:
            raise StoreCapacityError(
                f"Idempotency store is full ({self.max_records} records)",
                capacity=self.max_records,
            )
