"""Configuration module for the ledger idempotency layer.

This module provides the IdempotencyConfig class, which controls which requests
are protected, how long outcomes are kept, how long duplicates wait for an
executing request, and the limits the record store enforces.

Example:
    Basic usage with defaults:

        >>> config = IdempotencyConfig()
        >>> config.protected_methods
        ['POST', 'PUT', 'PATCH']
        >>> config.ttl_seconds
        86400

    Custom configuration:

        >>> config = IdempotencyConfig(
        ...     protected_paths=[r"^/accounts/[^/]+/(deposit|withdraw)$"],
        ...     ttl_seconds=3600,
        ...     wait_timeout_seconds=5,
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['IDEMPOTENCY_PROTECTED_METHODS'] = 'POST,PUT'
        >>> os.environ['IDEMPOTENCY_TTL_SECONDS'] = '3600'
        >>> config = IdempotencyConfig.from_env()
"""

import os
import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# Valid HTTP methods for idempotency
VALID_HTTP_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "CONNECT",
    "OPTIONS",
    "TRACE",
    "PATCH",
}

# Deposit and withdraw operations under a client resource, e.g. /clients/42/withdraw,
# including the Portuguese routes (/clientes/42/sacar, /clientes/42/depositar)
DEFAULT_PROTECTED_PATHS = [
    r"^/(clients|clientes)/[^/]+/(deposit|withdraw|depositar|sacar)/?$",
]

MAX_TTL_SECONDS = 604800


class IdempotencyConfig(BaseModel):
    """Configuration for the idempotency mediation layer.

    Attributes:
        protected_methods: HTTP methods eligible for protection. A request must
            use one of these methods AND match a protected path.
        protected_paths: Regular expressions matched (``re.search``) against the
            request path. Default protects deposit/withdraw (depositar/sacar)
            under /clients/{id} and /clientes/{id}.
        header_name: Name of the header carrying the idempotency key.
        ttl_seconds: How long a completed outcome is replayed, counted from
            completion. Must be between 1 and 604800 (7 days). Default 24 hours.
        pending_liveness_seconds: How long an unresolved PENDING claim is
            honoured before the key is considered abandoned and claimable again.
            Must not exceed ttl_seconds.
        wait_timeout_seconds: Maximum time a duplicate caller waits for the
            executing request. Must be > 0, <= 300 and <= pending_liveness_seconds.
        wait_policy: "wait" suspends duplicates until the outcome is published,
            "no-wait" rejects them immediately as in-progress.
        max_body_bytes: Largest request body accepted on protected routes.
        max_key_length: Longest idempotency key accepted.
        max_records: Capacity of the record store. 0 means unlimited.
        sweep_interval_seconds: Period of the background eviction sweep.
        fingerprint_headers: Request headers folded into the fingerprint.
            Empty by default so that the fingerprint only reflects method,
            path and body content.

    Note:
        This class is immutable (frozen=True). Create a new instance if you
        need different settings.
    """

    protected_methods: list[str] | str = Field(
        default=["POST", "PUT", "PATCH"],
        description="HTTP methods eligible for idempotency protection",
    )
    protected_paths: list[str] | str = Field(
        default=DEFAULT_PROTECTED_PATHS,
        description="Regular expressions selecting protected request paths",
    )
    header_name: str = Field(
        default="Idempotency-Key",
        description="Header carrying the client idempotency key",
        min_length=1,
    )
    ttl_seconds: int = Field(
        default=86400,
        description="Lifetime of completed records in seconds (1-604800)",
    )
    pending_liveness_seconds: int = Field(
        default=120,
        description="Lifetime of unresolved PENDING records in seconds",
    )
    wait_timeout_seconds: float = Field(
        default=30.0,
        description="Maximum time a duplicate request waits for the executor",
    )
    wait_policy: Literal["wait", "no-wait"] = Field(
        default="wait",
        description="Policy for concurrent duplicates: 'wait' or 'no-wait'",
    )
    max_body_bytes: int = Field(
        default=1048576,
        description="Maximum accepted request body size on protected routes",
    )
    max_key_length: int = Field(
        default=255,
        description="Maximum idempotency key length",
    )
    max_records: int = Field(
        default=100000,
        description="Maximum number of records held by the store (0=unlimited)",
    )
    sweep_interval_seconds: int = Field(
        default=300,
        description="Interval between background eviction passes in seconds",
    )
    fingerprint_headers: list[str] | str = Field(
        default=[],
        description="Request header names included in the fingerprint",
    )

    model_config = {"frozen": True}

    @field_validator("protected_methods", mode="before")
    @classmethod
    def validate_protected_methods(cls, v: Any) -> list[str]:
        """Validate and normalize protected HTTP methods.

        Args:
            v: List of HTTP method strings or comma-separated string.

        Returns:
            List of uppercase, validated HTTP methods.

        Raises:
            ValueError: If any method is not a valid HTTP method.
        """
        if isinstance(v, str):
            # Handle comma-separated string (from environment variables)
            v = [method.strip() for method in v.split(",") if method.strip()]

        if not isinstance(v, list):
            raise ValueError("protected_methods must be a list or comma-separated string")

        methods = [method.upper() for method in v]

        invalid_methods = set(methods) - VALID_HTTP_METHODS
        if invalid_methods:
            raise ValueError(
                f"Invalid HTTP methods: {', '.join(sorted(invalid_methods))}. "
                f"Valid methods are: {', '.join(sorted(VALID_HTTP_METHODS))}"
            )

        return methods

    @field_validator("protected_paths", mode="before")
    @classmethod
    def validate_protected_paths(cls, v: Any) -> list[str]:
        """Validate that every protected path pattern is a valid regex.

        Args:
            v: List of patterns or comma-separated string.

        Returns:
            List of pattern strings.

        Raises:
            ValueError: If a pattern does not compile.
        """
        if isinstance(v, str):
            v = [pattern.strip() for pattern in v.split(",") if pattern.strip()]

        if not isinstance(v, list):
            raise ValueError("protected_paths must be a list or comma-separated string")

        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid path pattern {pattern!r}: {e}") from e

        return v

    @field_validator("ttl_seconds")
    @classmethod
    def validate_ttl_seconds(cls, v: int) -> int:
        """Validate TTL is within acceptable range."""
        if not (1 <= v <= MAX_TTL_SECONDS):
            raise ValueError(f"ttl_seconds must be between 1 and 604800 (7 days), got {v}")
        return v

    @field_validator("pending_liveness_seconds", "sweep_interval_seconds")
    @classmethod
    def validate_positive_seconds(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be >= 1 second, got {v}")
        return v

    @field_validator("wait_timeout_seconds")
    @classmethod
    def validate_wait_timeout_seconds(cls, v: float) -> float:
        """Validate wait timeout is within acceptable range.

        Raises:
            ValueError: If timeout is not in (0, 300].
        """
        if not (0 < v <= 300):
            raise ValueError(f"wait_timeout_seconds must be in (0, 300] seconds, got {v}")
        return v

    @field_validator("max_body_bytes", "max_records")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"value must be >= 0, got {v}")
        return v

    @field_validator("max_key_length")
    @classmethod
    def validate_max_key_length(cls, v: int) -> int:
        if not (1 <= v <= 1024):
            raise ValueError(f"max_key_length must be between 1 and 1024, got {v}")
        return v

    @field_validator("fingerprint_headers", mode="before")
    @classmethod
    def validate_fingerprint_headers(cls, v: Any) -> list[str]:
        """Validate and normalize fingerprint headers to lowercase.

        Example:
            >>> config = IdempotencyConfig(fingerprint_headers=["X-Tenant-ID"])
            >>> config.fingerprint_headers
            ['x-tenant-id']
        """
        if isinstance(v, str):
            v = [header.strip() for header in v.split(",") if header.strip()]

        if not isinstance(v, list):
            raise ValueError("fingerprint_headers must be a list or comma-separated string")

        return [header.lower() for header in v]

    @model_validator(mode="after")
    def validate_time_bounds(self) -> "IdempotencyConfig":
        """Validate the ordering wait timeout <= pending liveness <= TTL.

        A waiter must give up before the claim it waits on can be reclaimed,
        and an abandoned claim must become reclaimable before a completed
        outcome would have expired.

        Raises:
            ValueError: If the bounds are out of order.
        """
        if self.pending_liveness_seconds > self.ttl_seconds:
            raise ValueError(
                "pending_liveness_seconds must not exceed ttl_seconds "
                f"({self.pending_liveness_seconds} > {self.ttl_seconds})"
            )
        if self.wait_timeout_seconds > self.pending_liveness_seconds:
            raise ValueError(
                "wait_timeout_seconds must not exceed pending_liveness_seconds "
                f"({self.wait_timeout_seconds} > {self.pending_liveness_seconds})"
            )
        return self

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_") -> "IdempotencyConfig":
        """Create configuration from environment variables.

        Variable names are uppercase field names with the prefix, e.g.
        ``IDEMPOTENCY_TTL_SECONDS``. List fields accept comma-separated values.

        Args:
            prefix: Prefix for environment variable names.

        Returns:
            IdempotencyConfig instance populated from environment variables.
        """
        config_dict: dict[str, Any] = {}

        # Map of field names to their types for proper conversion
        field_types = {
            "protected_methods": list,
            "protected_paths": list,
            "header_name": str,
            "ttl_seconds": int,
            "pending_liveness_seconds": int,
            "wait_timeout_seconds": float,
            "wait_policy": str,
            "max_body_bytes": int,
            "max_key_length": int,
            "max_records": int,
            "sweep_interval_seconds": int,
            "fingerprint_headers": list,
        }

        for field_name, field_type in field_types.items():
            env_var = f"{prefix}{field_name.upper()}"
            env_value = os.environ.get(env_var)

            if env_value is not None:
                if field_type is int:
                    config_dict[field_name] = int(env_value)
                elif field_type is float:
                    config_dict[field_name] = float(env_value)
                else:
                    # Lists are split by their validators
                    config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencyConfig":
        """Create configuration from a dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)
