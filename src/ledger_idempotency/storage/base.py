"""Record store protocol for the ledger idempotency layer.

This module defines the interface every record store must implement. The
store owns the key space: one record per idempotency key, created by an
exclusive check-and-set and mutated only through the operations below.

Examples:
    Using a record store::

        from ledger_idempotency.storage.base import RecordStore

        async def run_once(store: RecordStore, key: str, fingerprint: str) -> None:
            claim = await store.insert_if_absent(key, fingerprint)

            if not claim.inserted:
                # Somebody else owns the key, or an outcome exists
                return handle_existing(claim.existing_record)

            try:
                response = await execute_operation()
            except Exception:
                await store.fail(key, claim.lease_token)
                raise
            await store.complete(key, claim.lease_token, response, execution_time_ms=12)

Atomicity Requirements:
    All RecordStore implementations MUST guarantee:

    1. **Atomic claims**: insert_if_absent() checks for a live record and
       creates a PENDING one with no window in between. Exactly one of any
       number of concurrent callers for a key gets ``inserted=True``.

    2. **Lease validation**: complete() and fail() only act when the lease
       token matches the one issued by the claim, so an executor whose claim
       was abandoned and reclaimed cannot overwrite the new owner's record.

    3. **Per-key serialization**: mutations of one key are serialized; keys
       never contend with each other.

    4. **Expiration handling**: records past ``expires_at`` are treated as
       absent by get() and insert_if_absent().

    5. **Immutability of outcomes**: a COMPLETED record is never modified;
       callers receive snapshots, not live references.

    6. **Fail-closed capacity**: a store that cannot hold another record
       raises StoreCapacityError rather than admitting an untracked request.
"""

from typing import Protocol, runtime_checkable

from ledger_idempotency.models import ClaimResult, IdempotencyRecord, StoredResponse


@runtime_checkable
class RecordStore(Protocol):
    """Protocol defining the interface for idempotency record stores.

    Error Handling:
        Methods raise StoreCapacityError when a claim cannot be admitted.
    """

    async def get(self, key: str) -> IdempotencyRecord | None:
        """Return a snapshot of the live record for ``key``, or None.

        Expired records are reported as absent.
        """
        ...

    async def insert_if_absent(
        self,
        key: str,
        fingerprint: str,
        trace_id: str | None = None,
    ) -> ClaimResult:
        """Atomically claim ``key`` by inserting a PENDING record.

        Args:
            key: The idempotency key.
            fingerprint: Fingerprint of the claiming request.
            trace_id: Optional correlation ID.

        Returns:
            ClaimResult with inserted=True and a lease token if the key was
            free (or held only by an expired record), otherwise inserted=False
            with a snapshot of the live record.

        Raises:
            StoreCapacityError: If the store is full.
        """
        ...

    async def complete(
        self,
        key: str,
        lease_token: str,
        response: StoredResponse,
        execution_time_ms: int,
    ) -> IdempotencyRecord | None:
        """Transition a PENDING record to COMPLETED with its outcome.

        Sets ``completed_at`` to now and ``expires_at`` to now + TTL.

        Returns:
            A snapshot of the completed record, or None if the lease is no
            longer valid (record evicted, reclaimed or already resolved).
        """
        ...

    async def fail(self, key: str, lease_token: str) -> bool:
        """Release a PENDING record after a failed execution.

        The record is deleted so a retry with the same key executes again.

        Returns:
            True if the record was deleted, False if the lease was not valid.
        """
        ...

    async def sweep_expired(self) -> int:
        """Remove all expired records and return how many were removed."""
        ...

    def count(self) -> int:
        """Return the number of records currently held, expired ones included."""
        ...
