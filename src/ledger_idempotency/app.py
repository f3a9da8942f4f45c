"""FastAPI application exposing the ledger behind the idempotency layer.

Routes:
    POST /clients                   open an account (not protected)
    GET  /clients/{client_id}       read an account (not protected)
    POST /clients/{client_id}/deposit    protected by Idempotency-Key
    POST /clients/{client_id}/withdraw   protected by Idempotency-Key
    GET  /health                    liveness probe

The record store, the ledger and the configuration are created once per
application and kept on ``app.state``; nothing is shared through module
globals, so tests build a fresh application per test.

Examples:
    Running the application::

        import uvicorn
        from ledger_idempotency.app import create_app

        uvicorn.run(create_app(), host="0.0.0.0", port=8000)
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ledger_idempotency import __version__
from ledger_idempotency.adapters.asgi import ASGIIdempotencyMiddleware
from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.core.sweeper import start_sweeper, stop_sweeper
from ledger_idempotency.ledger import (
    Account,
    InMemoryLedger,
    InsufficientFundsError,
    InvalidAmountError,
    OperationType,
    UnknownAccountError,
)
from ledger_idempotency.observability.logging import get_logger
from ledger_idempotency.storage.base import RecordStore
from ledger_idempotency.storage.memory import MemoryRecordStore

logger = get_logger(__name__)


class OpenAccountRequest(BaseModel):
    owner: str
    initial_balance: int = 0


class MoneyMovementRequest(BaseModel):
    amount: int


class OperationResponse(BaseModel):
    client_id: str
    operation: OperationType
    amount: int
    balance: int


def get_ledger(request: Request) -> InMemoryLedger:
    return request.app.state.ledger


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(UnknownAccountError)
    async def unknown_account_handler(
        request: Request, exc: UnknownAccountError
    ) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": exc.message})

    @app.exception_handler(InsufficientFundsError)
    async def insufficient_funds_handler(
        request: Request, exc: InsufficientFundsError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": exc.message, "balance": exc.balance},
        )

    @app.exception_handler(InvalidAmountError)
    async def invalid_amount_handler(
        request: Request, exc: InvalidAmountError
    ) -> JSONResponse:
        return JSONResponse(status_code=422, content={"error": exc.message})


def create_app(
    config: IdempotencyConfig | None = None,
    store: RecordStore | None = None,
    ledger: InMemoryLedger | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Idempotency configuration, loaded from the environment if omitted
        store: Record store, a MemoryRecordStore built from config if omitted
        ledger: Ledger to expose, an empty InMemoryLedger if omitted

    Returns:
        The FastAPI application with the idempotency middleware installed
    """
    config = config or IdempotencyConfig.from_env()
    store = store or MemoryRecordStore.from_config(config)
    ledger = ledger or InMemoryLedger()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = await start_sweeper(store, interval_seconds=config.sweep_interval_seconds)
        logger.info("app.started", protected_paths=config.protected_paths)
        try:
            yield
        finally:
            await stop_sweeper(sweeper)
            logger.info("app.stopped")

    app = FastAPI(title="Ledger Idempotency", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.store = store
    app.state.ledger = ledger

    app.add_middleware(ASGIIdempotencyMiddleware, store=store, config=config)
    register_exception_handlers(app)

    @app.get("/health")
    async def read_health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/clients", response_model=Account, status_code=status.HTTP_201_CREATED)
    async def open_account(
        payload: OpenAccountRequest,
        ledger: InMemoryLedger = Depends(get_ledger),
    ) -> Account:
        return ledger.open_account(payload.owner, payload.initial_balance)

    @app.get("/clients/{client_id}", response_model=Account)
    async def get_account(
        client_id: str,
        ledger: InMemoryLedger = Depends(get_ledger),
    ) -> Account:
        return ledger.get_account(client_id)

    @app.post("/clients/{client_id}/deposit", response_model=OperationResponse)
    async def deposit(
        client_id: str,
        payload: MoneyMovementRequest,
        ledger: InMemoryLedger = Depends(get_ledger),
    ) -> OperationResponse:
        result = await ledger.execute(client_id, OperationType.DEPOSIT, payload.amount)
        return OperationResponse(
            client_id=client_id,
            operation=result.operation,
            amount=result.amount,
            balance=result.new_balance,
        )

    @app.post("/clients/{client_id}/withdraw", response_model=OperationResponse)
    async def withdraw(
        client_id: str,
        payload: MoneyMovementRequest,
        ledger: InMemoryLedger = Depends(get_ledger),
    ) -> OperationResponse:
        result = await ledger.execute(client_id, OperationType.WITHDRAW, payload.amount)
        return OperationResponse(
            client_id=client_id,
            operation=result.operation,
            amount=result.amount,
            balance=result.new_balance,
        )

    return app
