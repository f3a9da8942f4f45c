"""Scenario 3: Concurrent Execution

This module tests concurrent duplicates arriving while the ledger operation
is still running:
- Only ONE ledger execution per key, however many duplicates arrive
- Every duplicate receives the executor's outcome
- Different keys never wait on each other
- The "no-wait" policy answers duplicates with 409 in-progress
- Duplicates arriving after completion are plain replays
"""

import asyncio
import time

import httpx
import pytest

from ledger_idempotency.app import create_app
from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.storage.memory import MemoryRecordStore
from tests.conftest import SlowLedger, http_client


@pytest.fixture
def slow_ledger() -> SlowLedger:
    return SlowLedger(delay=0.2)


@pytest.fixture
def no_wait_config() -> IdempotencyConfig:
    """Create a config with no-wait policy."""
    return IdempotencyConfig(
        ttl_seconds=3600,
        pending_liveness_seconds=10,
        wait_timeout_seconds=2.0,
        wait_policy="no-wait",
    )


async def withdraw(
    client: httpx.AsyncClient, account_id: str, key: str, amount: int = 100
) -> httpx.Response:
    return await client.post(
        f"/clients/{account_id}/withdraw",
        json={"amount": amount},
        headers={"Idempotency-Key": key},
    )


@pytest.mark.asyncio
async def test_many_concurrent_duplicates_execute_once(
    config: IdempotencyConfig, store: MemoryRecordStore, slow_ledger: SlowLedger
) -> None:
    """Test that 20 concurrent requests with one key run the ledger once.

    Verifies:
    - All requests succeed with the same body
    - Exactly one response is fresh, the rest are marked as replays
    - The balance moves once
    """
    account_id = slow_ledger.open_account("alice", initial_balance=1000).id
    app = create_app(config=config, store=store, ledger=slow_ledger)

    async with http_client(app) as client:
        results = await asyncio.gather(*(withdraw(client, account_id, "K1") for _ in range(20)))

    assert all(r.status_code == 200 for r in results)
    assert len({r.content for r in results}) == 1
    assert sum(1 for r in results if r.headers["idempotent-replay"] == "false") == 1
    assert slow_ledger.operations_executed == 1
    assert slow_ledger.get_balance(account_id) == 900


@pytest.mark.asyncio
async def test_different_keys_run_in_parallel(
    config: IdempotencyConfig, store: MemoryRecordStore, slow_ledger: SlowLedger
) -> None:
    """Verifies that unrelated keys are not serialized behind each other."""
    account_id = slow_ledger.open_account("alice", initial_balance=1000).id
    app = create_app(config=config, store=store, ledger=slow_ledger)

    async with http_client(app) as client:
        start = time.monotonic()
        results = await asyncio.gather(
            *(withdraw(client, account_id, f"K{i}") for i in range(5))
        )
        elapsed = time.monotonic() - start

    assert all(r.status_code == 200 for r in results)
    assert sorted(r.json()["balance"] for r in results) == [500, 600, 700, 800, 900]
    assert slow_ledger.operations_executed == 5
    # Five sequential executions would take at least 1 second
    assert elapsed < 0.9


@pytest.mark.asyncio
async def test_mixed_keys(
    config: IdempotencyConfig, store: MemoryRecordStore, slow_ledger: SlowLedger
) -> None:
    account_id = slow_ledger.open_account("alice", initial_balance=1000).id
    app = create_app(config=config, store=store, ledger=slow_ledger)

    async with http_client(app) as client:
        results = await asyncio.gather(
            *(withdraw(client, account_id, key) for key in ["A", "B", "A", "C", "B", "A"])
        )

    assert all(r.status_code == 200 for r in results)
    assert slow_ledger.operations_executed == 3
    assert slow_ledger.get_balance(account_id) == 700
    by_key: dict[str, set[bytes]] = {}
    for response in results:
        by_key.setdefault(response.headers["idempotency-key"], set()).add(response.content)
    assert all(len(bodies) == 1 for bodies in by_key.values())


@pytest.mark.asyncio
async def test_no_wait_policy_rejects_in_flight_duplicates(
    no_wait_config: IdempotencyConfig, slow_ledger: SlowLedger
) -> None:
    """Verifies duplicates get 409 in-progress and the ledger runs once."""
    account_id = slow_ledger.open_account("alice", initial_balance=1000).id
    store = MemoryRecordStore.from_config(no_wait_config)
    app = create_app(config=no_wait_config, store=store, ledger=slow_ledger)

    async with http_client(app) as client:
        results = await asyncio.gather(*(withdraw(client, account_id, "K1") for _ in range(5)))

        statuses = sorted(r.status_code for r in results)
        assert statuses == [200, 409, 409, 409, 409]
        rejected = [r for r in results if r.status_code == 409]
        assert all(r.json()["code"] == "idempotency_request_in_progress" for r in rejected)
        assert all(r.headers["retry-after"] == "5" for r in rejected)

        # Once the executor finished, the same key is a plain replay
        replay = await withdraw(client, account_id, "K1")

    assert replay.status_code == 200
    assert replay.headers["idempotent-replay"] == "true"
    assert slow_ledger.operations_executed == 1


@pytest.mark.asyncio
async def test_arrivals_during_and_after_execution(
    config: IdempotencyConfig, store: MemoryRecordStore, slow_ledger: SlowLedger
) -> None:
    account_id = slow_ledger.open_account("alice", initial_balance=1000).id
    app = create_app(config=config, store=store, ledger=slow_ledger)

    async with http_client(app) as client:
        first = asyncio.create_task(withdraw(client, account_id, "K1"))
        await asyncio.sleep(0.05)
        during = asyncio.create_task(withdraw(client, account_id, "K1"))
        await asyncio.gather(first, during)
        after = await withdraw(client, account_id, "K1")

    assert first.result().headers["idempotent-replay"] == "false"
    assert during.result().headers["idempotent-replay"] == "true"
    assert after.headers["idempotent-replay"] == "true"
    assert first.result().content == during.result().content == after.content
    assert slow_ledger.operations_executed == 1
