"""
Pytest configuration and shared fixtures for ledger_idempotency tests.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
import pytest_asyncio

from ledger_idempotency.app import create_app
from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.ledger import InMemoryLedger, LedgerResult, OperationType
from ledger_idempotency.storage.memory import MemoryRecordStore


class FakeClock:
    """Controllable UTC clock injected into record stores."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def sample_idempotency_key() -> str:
    """Provide a sample idempotency key for tests."""
    return "test-key-12345"


@pytest.fixture
def sample_request_body() -> bytes:
    """Provide a sample request body for tests."""
    return b'{"amount": 100}'


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> IdempotencyConfig:
    """Config with short bounds so timeouts are observable in tests."""
    return IdempotencyConfig(
        ttl_seconds=3600,
        pending_liveness_seconds=10,
        wait_timeout_seconds=2.0,
    )


@pytest.fixture
def store(config: IdempotencyConfig, fake_clock: FakeClock) -> MemoryRecordStore:
    """Create a fresh record store for each test."""
    return MemoryRecordStore.from_config(config, clock=fake_clock)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


class SlowLedger(InMemoryLedger):
    """Ledger that holds every operation open for ``delay`` seconds."""

    def __init__(self, delay: float = 0.2) -> None:
        super().__init__()
        self.delay = delay

    async def execute(
        self,
        account_id: str,
        operation_type: OperationType | str,
        amount: int,
    ) -> LedgerResult:
        await asyncio.sleep(self.delay)
        return await super().execute(account_id, operation_type, amount)


@asynccontextmanager
async def http_client(
    app: Any,
    raise_app_exceptions: bool = True,
) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client for an ASGI app, sharing the test's event loop."""
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def client(
    config: IdempotencyConfig,
    store: MemoryRecordStore,
    ledger: InMemoryLedger,
) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client for the application built from the shared fixtures."""
    app = create_app(config=config, store=store, ledger=ledger)
    async with http_client(app) as test_client:
        yield test_client
