"""Demo server for the ledger idempotency layer.

Run with: python demo_app.py

Then try:
    curl -X POST localhost:8000/clients -H 'content-type: application/json' \
        -d '{"owner": "alice", "initial_balance": 1000}'
    curl -X POST localhost:8000/clients/1/withdraw -H 'content-type: application/json' \
        -H 'Idempotency-Key: k1' -d '{"amount": 100}'

Repeating the withdrawal with the same key returns the same balance with
``Idempotent-Replay: true`` and does not touch the ledger again.
"""

import uvicorn

from ledger_idempotency.app import create_app
from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.observability.logging import configure_logging

configure_logging(level="INFO", json_output=False)

app = create_app(IdempotencyConfig.from_env())


if __name__ == "__main__":
    print("=" * 60)
    print("Ledger Idempotency Demo Server")
    print("=" * 60)
    print("\nStarting server at http://localhost:8000")
    print("Protected: POST /clients/{id}/deposit, POST /clients/{id}/withdraw")
    print("\nPress Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
