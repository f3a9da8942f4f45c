"""Property-based tests for request fingerprinting."""

import json

from hypothesis import given
from hypothesis import strategies as st

from ledger_idempotency.fingerprint import canonicalize_body, compute_fingerprint

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(10**12), max_value=10**12),
    st.text(max_size=20),
)
json_documents = st.recursive(
    json_scalars,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(st.text(max_size=8), children, max_size=4),
    ),
    max_leaves=12,
)
paths = st.from_regex(r"\A/clients/[a-z0-9]{1,8}/(deposit|withdraw)\Z")


@given(document=st.dictionaries(st.text(max_size=8), json_documents, max_size=6))
def test_key_order_invariance(document: dict) -> None:
    forward = json.dumps(document).encode("utf-8")
    reversed_order = json.dumps(dict(reversed(list(document.items())))).encode("utf-8")

    assert compute_fingerprint("POST", "/clients/1/withdraw", forward) == compute_fingerprint(
        "POST", "/clients/1/withdraw", reversed_order
    )


@given(document=json_documents, indent=st.one_of(st.none(), st.integers(0, 4)))
def test_whitespace_invariance(document: object, indent: int | None) -> None:
    compact = json.dumps(document, separators=(",", ":")).encode("utf-8")
    pretty = json.dumps(document, indent=indent).encode("utf-8")

    assert canonicalize_body(compact) == canonicalize_body(pretty)


@given(document=json_documents)
def test_canonicalization_is_idempotent(document: object) -> None:
    once = canonicalize_body(json.dumps(document).encode("utf-8"))
    assert canonicalize_body(once) == once


@given(
    path=paths,
    a=st.integers(min_value=1, max_value=10**9),
    b=st.integers(min_value=1, max_value=10**9),
)
def test_distinct_amounts_distinct_fingerprints(path: str, a: int, b: int) -> None:
    fp_a = compute_fingerprint("POST", path, json.dumps({"amount": a}).encode())
    fp_b = compute_fingerprint("POST", path, json.dumps({"amount": b}).encode())

    assert (fp_a == fp_b) == (a == b)


@given(body=st.binary(max_size=256), path=paths)
def test_fingerprint_always_sha256_hex(body: bytes, path: str) -> None:
    fingerprint = compute_fingerprint("POST", path, body)

    assert len(fingerprint) == 64
    assert set(fingerprint) <= set("0123456789abcdef")
