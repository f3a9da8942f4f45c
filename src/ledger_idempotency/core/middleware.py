"""Framework-agnostic idempotency middleware.

This module ties the pieces together for one HTTP request:
1. Classifies the request (protected or passthrough)
2. Extracts and validates the idempotency key
3. Validates the request size
4. Computes the request fingerprint
5. Delegates to the coordinator
6. Maps idempotency errors to HTTP responses

Examples:
    Using the middleware directly::

        from ledger_idempotency.core.middleware import IdempotencyMiddleware, Request
        from ledger_idempotency.storage.memory import MemoryRecordStore

        store = MemoryRecordStore.from_config(config)
        middleware = IdempotencyMiddleware(store, config)

        async def handler(request: Request) -> CapturedResponse:
            return CapturedResponse(status=200, headers={}, body=b"{}")

        response = await middleware.process(request, handler)
"""

import json
from collections.abc import Awaitable, Callable

from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.core.coordinator import IdempotencyCoordinator, Role
from ledger_idempotency.core.replay import CapturedResponse
from ledger_idempotency.eligibility import EligibilityFilter
from ledger_idempotency.exceptions import (
    ClientError,
    ConflictError,
    CoordinationTimeoutError,
    IdempotencyError,
    InvalidKeyError,
    MissingKeyError,
    PayloadTooLargeError,
    StoreCapacityError,
    UpstreamExecutionError,
)
from ledger_idempotency.fingerprint import compute_fingerprint
from ledger_idempotency.observability.logging import get_logger, request_context
from ledger_idempotency.observability.metrics import record_request
from ledger_idempotency.storage.base import RecordStore
from ledger_idempotency.utils.headers import KEY_HEADER, find_header

logger = get_logger(__name__)

Handler = Callable[["Request"], Awaitable[CapturedResponse]]


class Request:
    """Abstract request representation.

    Framework adapters convert their framework-specific request objects into
    this format.

    Attributes:
        method: HTTP method (GET, POST, etc.)
        path: URL path
        query_string: Query string without leading '?'
        headers: Request headers as dict
        body: Request body as bytes
    """

    def __init__(
        self,
        method: str,
        path: str,
        query_string: str,
        headers: dict[str, str],
        body: bytes,
    ) -> None:
        self.method = method
        self.path = path
        self.query_string = query_string
        self.headers = headers
        self.body = body


class IdempotencyMiddleware:
    """Framework-agnostic idempotency middleware.

    Attributes:
        store: Record store shared by every request of the process
        config: Configuration object
        eligibility: Classifier for protected requests
        coordinator: Coordinator enforcing at-most-once execution
    """

    def __init__(
        self,
        store: RecordStore,
        config: IdempotencyConfig,
        coordinator: IdempotencyCoordinator | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.eligibility = EligibilityFilter.from_config(config)
        self.coordinator = coordinator or IdempotencyCoordinator(store, config)

    async def process(
        self,
        request: Request,
        handler: Handler,
        trace_id: str | None = None,
    ) -> CapturedResponse:
        """Process a request with idempotency handling.

        Args:
            request: The incoming request
            handler: Async function running the application for this request
            trace_id: Optional distributed tracing ID

        Returns:
            The response to send. Idempotency errors are turned into error
            responses; exceptions raised by ``handler`` propagate to the
            caller that executed it.
        """
        if not self.eligibility.classify(request.method, request.path):
            response = await handler(request)
            record_request("passthrough", response.status)
            return response

        key: str | None = None
        try:
            key = self._extract_key(request)
            self._validate_request_size(request)

            headers_list: list[str] = (
                self.config.fingerprint_headers
                if isinstance(self.config.fingerprint_headers, list)
                else [self.config.fingerprint_headers]
            )
            fingerprint = compute_fingerprint(
                method=request.method,
                path=request.path,
                body=request.body,
                query_string=request.query_string,
                headers=request.headers,
                included_headers=headers_list,
            )

            with request_context(key, trace_id):
                result = await self.coordinator.execute(
                    key=key,
                    fingerprint=fingerprint,
                    operation=lambda: handler(request),
                    trace_id=trace_id,
                )
        except IdempotencyError as e:
            return self._error_response(e, key)

        response = result.response
        if result.role is Role.EXECUTED:
            record_request("executed" if response.is_success else "failed", response.status)
        else:
            record_request(result.role.value, response.status)
        return response

    def _extract_key(self, request: Request) -> str:
        """Extract and validate the idempotency key.

        Raises:
            MissingKeyError: If the header is absent
            InvalidKeyError: If the key is empty or too long
        """
        header_name = self.config.header_name
        value = find_header(request.headers, header_name)
        if value is None:
            raise MissingKeyError(header_name)

        key = value.strip()
        if not key:
            raise InvalidKeyError(f"{header_name} header cannot be empty")

        max_length = self.config.max_key_length
        if len(key) > max_length:
            raise InvalidKeyError(
                f"{header_name} exceeds maximum length of {max_length} characters"
            )

        return key

    def _validate_request_size(self, request: Request) -> None:
        """Ensure the request body does not exceed the configured maximum size.

        Raises:
            PayloadTooLargeError: If request body is too large
        """
        max_size = self.config.max_body_bytes
        if max_size and len(request.body) > max_size:
            raise PayloadTooLargeError(
                f"Request body exceeds maximum size of {max_size} bytes",
                limit=max_size,
            )

    def _error_response(self, error: IdempotencyError, key: str | None) -> CapturedResponse:
        """Build the HTTP response for an idempotency error."""
        headers = {"content-type": "application/json"}
        if key is not None:
            headers[KEY_HEADER] = key

        if isinstance(error, CoordinationTimeoutError):
            headers["retry-after"] = str(error.retry_after_seconds)
            result = "timeout"
        elif isinstance(error, StoreCapacityError):
            headers["retry-after"] = "1"
            result = "rejected"
            logger.error("middleware.store_full", capacity=error.capacity)
        elif isinstance(error, ConflictError):
            result = "conflict"
        elif isinstance(error, UpstreamExecutionError):
            result = "failed"
        elif isinstance(error, ClientError):
            result = "rejected"
        else:
            result = "error"
            logger.error("middleware.idempotency_error", error=error.message, key=key)

        record_request(result, error.status_code)

        body = json.dumps({"error": error.message, "code": error.code}).encode("utf-8")
        return CapturedResponse(status=error.status_code, headers=headers, body=body)
