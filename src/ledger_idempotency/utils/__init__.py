"""Helpers with no dependency on the rest of the package."""

from ledger_idempotency.utils.headers import (
    KEY_HEADER,
    REPLAY_HEADER,
    VOLATILE_HEADERS,
    find_header,
    mark_headers,
    strip_volatile_headers,
)

__all__ = [
    "KEY_HEADER",
    "REPLAY_HEADER",
    "VOLATILE_HEADERS",
    "find_header",
    "mark_headers",
    "strip_volatile_headers",
]
