"""Request fingerprinting for idempotency.

The fingerprint is computed from canonical representations of the request
components, so that logically identical requests map to the same signature
regardless of JSON key order or insignificant whitespace, while any change to
the method, path or payload produces a different one.
"""

import hashlib
import json
from urllib.parse import parse_qsl, urlencode


def compute_fingerprint(
    method: str,
    path: str,
    body: bytes,
    query_string: str = "",
    headers: dict[str, str] | None = None,
    included_headers: list[str] | None = None,
) -> str:
    """Compute a deterministic fingerprint for a request.

    Components, joined by newlines and hashed with SHA-256:
    the uppercase method, the path without trailing slash (case is kept,
    account IDs may be case-sensitive), the sorted query string, the selected
    headers as sorted JSON, and the SHA-256 of the canonical body.

    Args:
        method: HTTP method (e.g., "POST", "PUT")
        path: URL path component
        body: Request body as bytes
        query_string: Raw query string (without leading '?')
        headers: Request headers as key-value pairs
        included_headers: Header names folded into the fingerprint.
                         Defaults to none.

    Returns:
        Hexadecimal SHA-256 hash string (64 characters)

    Examples:
        >>> a = compute_fingerprint("POST", "/clients/1/withdraw", b'{"amount": 100}')
        >>> b = compute_fingerprint("post", "/clients/1/withdraw/", b'{ "amount":100 }')
        >>> a == b
        True
    """
    components = [
        method.upper(),
        path.rstrip("/") or "/",
        _canonicalize_query_string(query_string),
        _canonicalize_headers(headers or {}, included_headers or []),
        hashlib.sha256(canonicalize_body(body)).hexdigest(),
    ]
    return hashlib.sha256("\n".join(components).encode("utf-8")).hexdigest()


def canonicalize_body(body: bytes) -> bytes:
    """Return the canonical byte form of a request body.

    JSON documents are re-serialized with sorted keys and compact separators.
    Anything else, including JSON nested too deeply to decode, is used
    verbatim, minus surrounding whitespace.

    Examples:
        >>> canonicalize_body(b'{"b": 1,  "a": 2}')
        b'{"a":2,"b":1}'
        >>> canonicalize_body(b"  amount=100 ")
        b'amount=100'
    """
    stripped = body.strip()
    if not stripped:
        return b""
    try:
        canonical = json.dumps(
            json.loads(stripped),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
    except (UnicodeDecodeError, ValueError, RecursionError):
        return stripped
    return canonical.encode("utf-8")


def _canonicalize_query_string(query_string: str) -> str:
    # Sorting pairs orders by name first, then by value for repeated names
    pairs = parse_qsl(query_string.strip(), keep_blank_values=True)
    return urlencode(sorted(pairs))


def _canonicalize_headers(headers: dict[str, str], included_headers: list[str]) -> str:
    wanted = {name.lower() for name in included_headers}
    selected = {
        name.lower(): value.strip() for name, value in headers.items() if name.lower() in wanted
    }
    return json.dumps(selected, sort_keys=True, separators=(",", ":"))
