"""Framework adapters for the ledger idempotency layer.

- asgi.py: ASGI middleware for FastAPI, Starlette, etc.

The adapters convert framework-specific request/response objects to and from
the core middleware's representation.
"""

from ledger_idempotency.adapters.asgi import ASGIIdempotencyMiddleware

__all__ = ["ASGIIdempotencyMiddleware"]
