"""Custom exceptions for the ledger idempotency layer.

This module defines the exception hierarchy used to signal why a protected
request could not be mediated. Every exception carries the HTTP status code
the framework-agnostic middleware answers with, so adapters never need to
know the taxonomy.

The families are:

- Client errors (missing/invalid key, oversized body, conflicting key reuse).
  Surfaced immediately; the record store is not mutated.
- ``CoordinationTimeoutError``: a duplicate caller gave up waiting for the
  executor. Retryable; says nothing about the outcome of the operation.
- ``UpstreamExecutionError``: the ledger operation failed while a duplicate
  caller was waiting on it.
- ``StoreCapacityError``: the record store refused a new claim. The request
  is rejected rather than executed without deduplication.

Examples:
    Handling a conflict error::

        from ledger_idempotency.exceptions import ConflictError

        try:
            result = await coordinator.execute(key, fingerprint, operation)
        except ConflictError as e:
            logger.warning("coordinator.conflict", key=e.key)
            return Response(status_code=e.status_code)
"""


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status the middleware answers with.
        code: Stable machine-readable error code for response bodies.
    """

    status_code = 500
    code = "idempotency_error"

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class ClientError(IdempotencyError):
    """The request itself is unusable for idempotent mediation."""

    status_code = 400
    code = "idempotency_client_error"


class MissingKeyError(ClientError):
    """A protected request arrived without an idempotency key header."""

    code = "idempotency_key_missing"

    def __init__(self, header_name: str = "Idempotency-Key") -> None:
        super().__init__(f"{header_name} header required")
        self.header_name = header_name


class InvalidKeyError(ClientError):
    """The idempotency key is empty or exceeds the configured length."""

    code = "idempotency_key_invalid"


class PayloadTooLargeError(ClientError):
    """The request body is too large to fingerprint."""

    status_code = 413
    code = "idempotency_payload_too_large"

    def __init__(self, message: str, limit: int) -> None:
        super().__init__(message)
        self.limit = limit


class ConflictError(ClientError):
    """Request conflict detected - same key, different fingerprint.

    Raised when a request reuses an idempotency key whose stored fingerprint
    (hash of method, path and canonical body) differs from the fingerprint of
    the incoming request. The stored record is left untouched and the
    operation is never executed for the conflicting request.

    Attributes:
        message: Human-readable error description.
        key: The idempotency key that conflicted.
        stored_fingerprint: The fingerprint stored for the key.
        request_fingerprint: The fingerprint of the incoming request.

    Examples:
        Raising a conflict error::

            if record.fingerprint != request_fingerprint:
                raise ConflictError(
                    message=f"Fingerprint mismatch for key {key}",
                    key=key,
                    stored_fingerprint=record.fingerprint,
                    request_fingerprint=request_fingerprint,
                )
    """

    status_code = 409
    code = "idempotency_key_conflict"

    def __init__(
        self,
        message: str,
        key: str,
        stored_fingerprint: str,
        request_fingerprint: str,
    ) -> None:
        """Initialize the conflict error with details.

        Args:
            message: Human-readable error description.
            key: The idempotency key that conflicted.
            stored_fingerprint: The fingerprint stored in the backend.
            request_fingerprint: The fingerprint of the incoming request.
        """
        super().__init__(message)
        self.key = key
        self.stored_fingerprint = stored_fingerprint
        self.request_fingerprint = request_fingerprint


class CoordinationTimeoutError(IdempotencyError):
    """A duplicate caller stopped waiting for the executing request.

    The operation may still complete (or fail) after this error is raised.
    Clients should retry with the same key after ``retry_after_seconds``.

    Attributes:
        key: The idempotency key being waited on.
        waited_seconds: How long the caller waited before giving up.
        retry_after_seconds: Suggested delay before retrying.
    """

    status_code = 409
    code = "idempotency_request_in_progress"

    def __init__(
        self,
        message: str,
        key: str,
        waited_seconds: float,
        retry_after_seconds: int = 1,
    ) -> None:
        super().__init__(message)
        self.key = key
        self.waited_seconds = waited_seconds
        self.retry_after_seconds = retry_after_seconds


class UpstreamExecutionError(IdempotencyError):
    """The ledger operation behind a key raised instead of answering.

    The executing caller receives the original exception; callers that were
    waiting on the same key receive this wrapper. The key is released, so a
    retry with the same key executes again.

    Attributes:
        key: The idempotency key whose execution failed.
        cause: The exception raised by the operation.
    """

    status_code = 502
    code = "idempotency_upstream_failed"

    def __init__(self, message: str, key: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.key = key
        self.cause = cause


class StoreCapacityError(IdempotencyError):
    """The record store cannot accept another claim.

    Attributes:
        capacity: The configured maximum number of records.
    """

    status_code = 503
    code = "idempotency_store_full"

    def __init__(self, message: str, capacity: int) -> None:
        super().__init__(message)
        self.capacity = capacity
