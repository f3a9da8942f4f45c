"""Unit tests for header helpers."""

from ledger_idempotency.utils.headers import (
    KEY_HEADER,
    REPLAY_HEADER,
    find_header,
    mark_headers,
    strip_volatile_headers,
)


class TestStripVolatileHeaders:
    def test_removes_volatile_headers(self) -> None:
        headers = {
            "Content-Type": "application/json",
            "Date": "Mon, 01 Jan 2024 00:00:00 GMT",
            "Server": "uvicorn",
            "Connection": "keep-alive",
            "Transfer-Encoding": "chunked",
        }

        assert strip_volatile_headers(headers) == {"Content-Type": "application/json"}

    def test_keeps_application_headers(self) -> None:
        headers = {"set-cookie": "session=1", "etag": '"abc"', "x-balance": "900"}
        assert strip_volatile_headers(headers) == headers

    def test_extra_names_are_case_insensitive(self) -> None:
        headers = {"X-Request-Id": "r1", "content-type": "text/plain"}
        result = strip_volatile_headers(headers, extra=["x-REQUEST-id"])
        assert result == {"content-type": "text/plain"}

    def test_does_not_mutate_input(self) -> None:
        headers = {"date": "now"}
        strip_volatile_headers(headers)
        assert headers == {"date": "now"}


class TestMarkHeaders:
    def test_replay_markers(self) -> None:
        result = mark_headers({"content-type": "application/json"}, "k1", replayed=True)

        assert result[REPLAY_HEADER] == "true"
        assert result[KEY_HEADER] == "k1"
        assert result["content-type"] == "application/json"

    def test_fresh_markers(self) -> None:
        assert mark_headers({}, "k1", replayed=False) == {REPLAY_HEADER: "false", KEY_HEADER: "k1"}

    def test_existing_markers_replaced_case_insensitively(self) -> None:
        result = mark_headers(
            {"idempotent-replay": "false", "idempotency-key": "old"},
            "k2",
            replayed=True,
        )

        assert result == {REPLAY_HEADER: "true", KEY_HEADER: "k2"}


class TestFindHeader:
    def test_case_insensitive(self) -> None:
        assert find_header({"Idempotency-Key": "k1"}, "idempotency-key") == "k1"

    def test_missing(self) -> None:
        assert find_header({"content-type": "text/plain"}, "Idempotency-Key") is None
