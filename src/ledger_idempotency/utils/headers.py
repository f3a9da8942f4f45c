"""Header helpers shared by the replay path and the middleware.

Header dicts handled here come from different frameworks and keep whatever
case the producer used, so every lookup is case-insensitive.
"""

from collections.abc import Iterable

REPLAY_HEADER = "Idempotent-Replay"
KEY_HEADER = "Idempotency-Key"

# Hop-by-hop and per-transmission headers; a replay gets fresh ones from the server
VOLATILE_HEADERS = frozenset(
    {
        "date",
        "server",
        "connection",
        "keep-alive",
        "transfer-encoding",
        "trailer",
        "upgrade",
        "proxy-connection",
        "proxy-authenticate",
        "proxy-authorization",
    }
)


def strip_volatile_headers(
    headers: dict[str, str],
    extra: Iterable[str] = (),
) -> dict[str, str]:
    """Return a copy of ``headers`` without volatile headers.

    Args:
        headers: Headers of the stored response
        extra: More header names to drop, in any case

    Example:
        >>> strip_volatile_headers({"Content-Type": "application/json", "Date": "today"})
        {'Content-Type': 'application/json'}
    """
    dropped = VOLATILE_HEADERS | {name.lower() for name in extra}
    return {name: value for name, value in headers.items() if name.lower() not in dropped}


def mark_headers(headers: dict[str, str], key: str, replayed: bool) -> dict[str, str]:
    """Return a copy of ``headers`` carrying the idempotency markers.

    Markers already present under any case are replaced, so a stored response
    never leaks the flags of the request that produced it.
    """
    markers = {REPLAY_HEADER.lower(), KEY_HEADER.lower()}
    marked = {name: value for name, value in headers.items() if name.lower() not in markers}
    marked[REPLAY_HEADER] = "true" if replayed else "false"
    marked[KEY_HEADER] = key
    return marked


def find_header(headers: dict[str, str], name: str) -> str | None:
    wanted = name.lower()
    return next((value for header, value in headers.items() if header.lower() == wanted), None)
