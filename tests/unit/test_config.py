"""Unit tests for IdempotencyConfig."""

import pytest
from pydantic import ValidationError

from ledger_idempotency.config import DEFAULT_PROTECTED_PATHS, IdempotencyConfig


class TestDefaults:
    """Tests for default configuration values."""

    def test_default_values(self) -> None:
        config = IdempotencyConfig()

        assert config.protected_methods == ["POST", "PUT", "PATCH"]
        assert config.protected_paths == DEFAULT_PROTECTED_PATHS
        assert config.header_name == "Idempotency-Key"
        assert config.ttl_seconds == 86400
        assert config.pending_liveness_seconds == 120
        assert config.wait_timeout_seconds == 30.0
        assert config.wait_policy == "wait"
        assert config.max_body_bytes == 1048576
        assert config.max_key_length == 255
        assert config.max_records == 100000
        assert config.sweep_interval_seconds == 300
        assert config.fingerprint_headers == []

    def test_config_is_frozen(self) -> None:
        config = IdempotencyConfig()

        with pytest.raises(ValidationError):
            config.ttl_seconds = 10  # type: ignore[misc]


class TestFieldValidation:
    """Tests for individual field validators."""

    def test_methods_are_uppercased(self) -> None:
        config = IdempotencyConfig(protected_methods=["post", "Put"])
        assert config.protected_methods == ["POST", "PUT"]

    def test_methods_accept_comma_separated_string(self) -> None:
        config = IdempotencyConfig(protected_methods="POST, PATCH")
        assert config.protected_methods == ["POST", "PATCH"]

    def test_invalid_method_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid HTTP methods"):
            IdempotencyConfig(protected_methods=["POST", "FETCH"])

    def test_invalid_path_pattern_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid path pattern"):
            IdempotencyConfig(protected_paths=["^/clients/(unclosed"])

    @pytest.mark.parametrize("ttl", [0, -1, 604801])
    def test_ttl_out_of_range(self, ttl: int) -> None:
        with pytest.raises(ValidationError, match="ttl_seconds"):
            IdempotencyConfig(ttl_seconds=ttl, pending_liveness_seconds=1, wait_timeout_seconds=1)

    def test_ttl_upper_bound_accepted(self) -> None:
        config = IdempotencyConfig(ttl_seconds=604800)
        assert config.ttl_seconds == 604800

    @pytest.mark.parametrize("timeout", [0, -5, 301])
    def test_wait_timeout_out_of_range(self, timeout: float) -> None:
        with pytest.raises(ValidationError, match="wait_timeout_seconds"):
            IdempotencyConfig(wait_timeout_seconds=timeout, pending_liveness_seconds=600)

    def test_invalid_wait_policy(self) -> None:
        with pytest.raises(ValidationError):
            IdempotencyConfig(wait_policy="sometimes")  # type: ignore[arg-type]

    def test_negative_limits_rejected(self) -> None:
        with pytest.raises(ValidationError):
            IdempotencyConfig(max_body_bytes=-1)
        with pytest.raises(ValidationError):
            IdempotencyConfig(max_records=-1)

    @pytest.mark.parametrize("length", [0, 1025])
    def test_max_key_length_out_of_range(self, length: int) -> None:
        with pytest.raises(ValidationError, match="max_key_length"):
            IdempotencyConfig(max_key_length=length)

    def test_fingerprint_headers_lowercased(self) -> None:
        config = IdempotencyConfig(fingerprint_headers="X-Tenant-ID, Content-Type")
        assert config.fingerprint_headers == ["x-tenant-id", "content-type"]


class TestTimeBounds:
    """Tests for the wait timeout <= liveness <= TTL ordering."""

    def test_liveness_above_ttl_rejected(self) -> None:
        with pytest.raises(ValidationError, match="pending_liveness_seconds"):
            IdempotencyConfig(ttl_seconds=60, pending_liveness_seconds=120)

    def test_wait_timeout_above_liveness_rejected(self) -> None:
        with pytest.raises(ValidationError, match="wait_timeout_seconds must not exceed"):
            IdempotencyConfig(pending_liveness_seconds=10, wait_timeout_seconds=20)

    def test_equal_bounds_accepted(self) -> None:
        config = IdempotencyConfig(
            ttl_seconds=30,
            pending_liveness_seconds=30,
            wait_timeout_seconds=30,
        )
        assert config.wait_timeout_seconds == 30


class TestLoading:
    """Tests for from_env and from_dict."""

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IDEMPOTENCY_PROTECTED_METHODS", "POST")
        monkeypatch.setenv("IDEMPOTENCY_TTL_SECONDS", "3600")
        monkeypatch.setenv("IDEMPOTENCY_WAIT_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("IDEMPOTENCY_WAIT_POLICY", "no-wait")
        monkeypatch.setenv("IDEMPOTENCY_PROTECTED_PATHS", r"^/a$,^/b$")

        config = IdempotencyConfig.from_env()

        assert config.protected_methods == ["POST"]
        assert config.ttl_seconds == 3600
        assert config.wait_timeout_seconds == 2.5
        assert config.wait_policy == "no-wait"
        assert config.protected_paths == ["^/a$", "^/b$"]

    def test_from_env_custom_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEDGER_MAX_RECORDS", "10")

        config = IdempotencyConfig.from_env(prefix="LEDGER_")

        assert config.max_records == 10

    def test_from_env_without_variables_uses_defaults(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("IDEMPOTENCY_TTL_SECONDS", raising=False)
        assert IdempotencyConfig.from_env().ttl_seconds == 86400

    def test_from_dict(self) -> None:
        config = IdempotencyConfig.from_dict({"header_name": "X-Request-Key", "max_records": 5})

        assert config.header_name == "X-Request-Key"
        assert config.max_records == 5

    def test_from_dict_invalid(self) -> None:
        with pytest.raises(ValidationError):
            IdempotencyConfig.from_dict({"ttl_seconds": 0})
