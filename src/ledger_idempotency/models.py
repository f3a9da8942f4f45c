"""Core type definitions for the ledger idempotency layer.

This module provides the data structures shared by the record store, the
coordinator and the replayer: record states, captured responses, idempotency
records and claim results.

Examples:
    Creating a pending record::

        from datetime import UTC, datetime, timedelta
        from ledger_idempotency.models import IdempotencyRecord, RecordState

        now = datetime.now(UTC)
        record = IdempotencyRecord(
            key="withdraw-7f3a",
            fingerprint="a" * 64,
            state=RecordState.PENDING,
            created_at=now,
            expires_at=now + timedelta(seconds=120),
        )

    Capturing a response::

        response = StoredResponse.from_body(
            status=200,
            headers={"content-type": "application/json"},
            body=b'{"balance": 900}',
        )
"""

import base64
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class RecordState(str, Enum):
    """Lifecycle state of an idempotency record.

    Attributes:
        PENDING: The key has been claimed and the operation is executing.
        COMPLETED: The operation succeeded and its outcome is replayable.
        FAILED: The operation failed; the record is being released.
    """

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StoredResponse(BaseModel):
    """A captured HTTP response replayed to duplicate callers.

    The body is base64-encoded so that arbitrary bytes survive serialization
    in any storage backend.

    Attributes:
        status: HTTP status code.
        headers: Response headers as key-value pairs.
        body_b64: Base64-encoded response body.
    """

    status: int = Field(
        ...,
        description="HTTP status code",
        ge=100,
        le=599,
        examples=[200, 201],
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="HTTP response headers",
        examples=[{"content-type": "application/json"}],
    )
    body_b64: str = Field(
        ...,
        description="Base64-encoded response body",
        examples=["eyJiYWxhbmNlIjogOTAwfQ=="],
    )

    @field_validator("body_b64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Validate that the body is properly base64-encoded.

        Raises:
            ValueError: If the string is not valid base64.
        """
        try:
            base64.b64decode(v, validate=True)
        except Exception as e:
            raise ValueError(f"Invalid base64 encoding: {e}") from e
        return v

    @classmethod
    def from_body(cls, status: int, headers: dict[str, str], body: bytes) -> "StoredResponse":
        """Build a stored response from raw body bytes."""
        return cls(
            status=status,
            headers=dict(headers),
            body_b64=base64.b64encode(body).decode("ascii"),
        )

    def get_body_bytes(self) -> bytes:
        """Decode and return the response body as bytes.

        Examples:
            >>> response = StoredResponse(status=200, headers={}, body_b64="SGVsbG8=")
            >>> response.get_body_bytes()
            b'Hello'
        """
        return base64.b64decode(self.body_b64)


class IdempotencyRecord(BaseModel):
    """Coordination state and cached outcome for one idempotency key.

    While the record is PENDING, ``expires_at`` is the liveness deadline of the
    claim: past it, the claim is treated as abandoned. When the record is
    completed, ``expires_at`` is fixed to ``completed_at + ttl`` and does not
    change again.

    Attributes:
        key: The idempotency key provided by the client.
        fingerprint: SHA-256 hex digest of the request's semantic content.
        state: Current lifecycle state.
        response: Captured outcome, present only when COMPLETED.
        created_at: When the key was claimed.
        completed_at: When the outcome was published.
        expires_at: When the record stops being honoured.
        execution_time_ms: Time the operation took, in milliseconds.
        lease_token: UUID identifying the executor holding the claim.
        trace_id: Correlation ID of the request that claimed the key.
    """

    key: str = Field(
        ...,
        description="Idempotency key provided by the client",
        min_length=1,
        max_length=1024,
        examples=["b1946ac9-2f42-4c7c-9a2d-1e1f5d3c8e11"],
    )
    fingerprint: str = Field(
        ...,
        description="SHA-256 hash of request fingerprint (64 hex characters)",
        pattern=r"^[a-f0-9]{64}$",
    )
    state: RecordState = Field(
        ...,
        description="Current lifecycle state of the record",
    )
    response: StoredResponse | None = Field(
        default=None,
        description="Captured outcome (set when COMPLETED)",
    )
    created_at: datetime = Field(
        ...,
        description="Timestamp when the key was claimed",
    )
    completed_at: datetime | None = Field(
        default=None,
        description="Timestamp when the outcome was published",
    )
    expires_at: datetime = Field(
        ...,
        description="Timestamp after which the record is treated as absent",
    )
    execution_time_ms: int | None = Field(
        default=None,
        description="Operation execution time in milliseconds",
        ge=0,
    )
    lease_token: str | None = Field(
        default=None,
        description="UUID of the executor holding the claim",
    )
    trace_id: str | None = Field(
        default=None,
        description="Correlation ID of the claiming request",
    )

    @field_validator("lease_token")
    @classmethod
    def validate_lease_token(cls, v: str | None) -> str | None:
        """Validate that the lease token is a valid UUID if present.

        Raises:
            ValueError: If the lease token is not a valid UUID.
        """
        if v is not None:
            try:
                UUID(v)
            except ValueError as e:
                raise ValueError(f"Invalid UUID format for lease_token: {e}") from e
        return v

    @field_validator("expires_at")
    @classmethod
    def validate_expires_after_created(cls, v: datetime, info: Any) -> datetime:
        """Validate that expires_at is after created_at.

        Raises:
            ValueError: If expires_at is not after created_at.
        """
        if "created_at" in info.data and v <= info.data["created_at"]:
            raise ValueError("expires_at must be after created_at")
        return v

    def is_expired(self, now: datetime) -> bool:
        """Return True when the record is no longer honoured at ``now``."""
        return self.expires_at <= now


class ClaimResult(BaseModel):
    """Result of attempting to claim an idempotency key.

    Exactly one concurrent caller per key gets ``inserted=True`` together with
    a lease token; everybody else gets the record that beat them.

    Attributes:
        inserted: Whether this caller created the PENDING record.
        lease_token: UUID token if the claim succeeded, None otherwise.
        existing_record: Snapshot of the current record if the claim failed.
    """

    inserted: bool = Field(
        ...,
        description="Whether the PENDING record was inserted by this caller",
    )
    lease_token: str | None = Field(
        default=None,
        description="UUID token if the key was claimed, None otherwise",
    )
    existing_record: IdempotencyRecord | None = Field(
        default=None,
        description="Current record if the claim failed, None if it succeeded",
    )

    @field_validator("lease_token")
    @classmethod
    def validate_lease_token_with_inserted(cls, v: str | None, info: Any) -> str | None:
        """Validate that lease_token is present if and only if inserted is True."""
        if "inserted" in info.data:
            inserted = info.data["inserted"]
            if inserted and v is None:
                raise ValueError("lease_token must be provided when inserted is True")
            if not inserted and v is not None:
                raise ValueError("lease_token must be None when inserted is False")
        return v

    @field_validator("existing_record")
    @classmethod
    def validate_existing_record_with_inserted(
        cls, v: IdempotencyRecord | None, info: Any
    ) -> IdempotencyRecord | None:
        """Validate that existing_record is present if and only if inserted is False."""
        if "inserted" in info.data:
            inserted = info.data["inserted"]
            if inserted and v is not None:
                raise ValueError("existing_record must be None when inserted is True")
            if not inserted and v is None:
                raise ValueError("existing_record must be provided when inserted is False")
        return v
