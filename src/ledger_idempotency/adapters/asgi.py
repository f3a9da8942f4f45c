"""Starlette/FastAPI adapter for the idempotency middleware.

Protected requests are buffered in full: the body is needed for the
fingerprint before the application runs, and the application's response is
drained so that it can be stored and handed to waiting duplicates.

The record store is passed in explicitly, so every application (and every
test) owns its own key space.

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        from ledger_idempotency.adapters.asgi import ASGIIdempotencyMiddleware
        from ledger_idempotency.config import IdempotencyConfig
        from ledger_idempotency.storage.memory import MemoryRecordStore

        config = IdempotencyConfig()
        app = FastAPI()
        app.add_middleware(
            ASGIIdempotencyMiddleware,
            store=MemoryRecordStore.from_config(config),
            config=config,
        )
"""

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response

from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.core.middleware import IdempotencyMiddleware, Request
from ledger_idempotency.core.replay import CapturedResponse
from ledger_idempotency.storage.base import RecordStore

CallNext = Callable[[StarletteRequest], Awaitable[Response]]

# Checked in order; the first present header wins
TRACE_HEADERS = ("x-trace-id", "x-request-id", "x-correlation-id", "traceparent")


def trace_id_from(headers: Headers) -> str | None:
    return next((headers[name] for name in TRACE_HEADERS if headers.get(name)), None)


async def capture(response: Response) -> CapturedResponse:
    """Drain a downstream response into a CapturedResponse."""
    iterator = getattr(response, "body_iterator", None)
    if iterator is None:
        body = bytes(response.body)
    else:
        chunks = [
            chunk.encode(response.charset) if isinstance(chunk, str) else bytes(chunk)
            async for chunk in iterator
        ]
        body = b"".join(chunks)
    return CapturedResponse(status=response.status_code, headers=dict(response.headers), body=body)


class ASGIIdempotencyMiddleware(BaseHTTPMiddleware):
    """Runs every request through :class:`IdempotencyMiddleware`.

    Attributes:
        store: Record store for idempotency records
        config: Configuration object
        middleware: Framework-agnostic middleware doing the work
    """

    def __init__(
        self,
        app: Any,
        store: RecordStore,
        config: IdempotencyConfig | None = None,
    ) -> None:
        super().__init__(app)
        self.store = store
        self.config = config or IdempotencyConfig()
        self.middleware = IdempotencyMiddleware(store, self.config)

    async def dispatch(self, request: StarletteRequest, call_next: CallNext) -> Response:
        async def run_application(_request: Request) -> CapturedResponse:
            return await capture(await call_next(request))

        outcome = await self.middleware.process(
            Request(
                method=request.method,
                path=request.url.path,
                query_string=request.url.query,
                headers=dict(request.headers),
                body=await request.body(),
            ),
            run_application,
            trace_id=trace_id_from(request.headers),
        )

        return Response(content=outcome.body, status_code=outcome.status, headers=outcome.headers)
