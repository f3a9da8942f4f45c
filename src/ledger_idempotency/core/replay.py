"""Response replay logic.

This module reconstructs HTTP responses from stored idempotency records. The
replay process:
1. Decodes the base64-encoded response body
2. Filters volatile headers (Date, Server, etc.)
3. Adds the idempotency markers (Idempotent-Replay, Idempotency-Key)

Status code and body are reproduced byte for byte. Replaying never touches
the ledger or any other side effect.

Examples:
    Basic replay::

        from ledger_idempotency.core.replay import replay_response

        response = replay_response(record, "withdraw-7f3a")
        # response.status == record.response.status
        # response.headers["Idempotent-Replay"] == "true"
"""

from ledger_idempotency.models import IdempotencyRecord, StoredResponse
from ledger_idempotency.utils.headers import mark_headers, strip_volatile_headers


class CapturedResponse:
    """An HTTP response as seen by the idempotency layer.

    Fresh responses produced by the application, replayed responses and the
    layer's own error responses all travel in this form between the core and
    the framework adapters.

    Attributes:
        status: HTTP status code (e.g., 200, 404, 500)
        headers: Response headers as key-value pairs
        body: Response body as bytes
    """

    def __init__(self, status: int, headers: dict[str, str], body: bytes) -> None:
        self.status = status
        self.headers = headers
        self.body = body

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    def to_stored(self) -> StoredResponse:
        """Capture this response for storage."""
        return StoredResponse.from_body(self.status, self.headers, self.body)

    def __repr__(self) -> str:
        return f"CapturedResponse(status={self.status}, body_bytes={len(self.body)})"


def replay_response(record: IdempotencyRecord, key: str) -> CapturedResponse:
    """Reconstruct an HTTP response from a completed idempotency record.

    Args:
        record: The idempotency record containing the stored response
        key: The idempotency key for this request

    Returns:
        CapturedResponse with status, headers, and body

    Raises:
        ValueError: If the record has no stored response

    Examples:
        >>> response = replay_response(record, "withdraw-7f3a")
        >>> response.status
        200
        >>> response.headers["Idempotent-Replay"]
        'true'
        >>> "date" in response.headers  # Volatile headers filtered out
        False
    """
    if record.response is None:
        raise ValueError(f"Record {record.key} has no stored response")

    stored = record.response
    return mark_response(
        CapturedResponse(
            status=stored.status,
            headers=stored.headers,
            body=stored.get_body_bytes(),
        ),
        key,
        is_replay=True,
    )


def mark_response(response: CapturedResponse, key: str, is_replay: bool) -> CapturedResponse:
    """Return a copy of ``response`` carrying the idempotency markers.

    Replays also lose their volatile headers.
    """
    headers = dict(response.headers)
    if is_replay:
        headers = strip_volatile_headers(headers)
    return CapturedResponse(
        status=response.status,
        headers=mark_headers(headers, key, replayed=is_replay),
        body=response.body,
    )
