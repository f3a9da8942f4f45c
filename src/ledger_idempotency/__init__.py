"""
Idempotency mediation for ledger operations exposed over HTTP.

This package guarantees that mutating financial operations (deposit, withdraw)
execute at most once per client-supplied idempotency key, and that every
caller presenting the same key observes the same outcome.
"""

from ledger_idempotency.config import IdempotencyConfig
from ledger_idempotency.core.coordinator import IdempotencyCoordinator
from ledger_idempotency.storage.memory import MemoryRecordStore

__version__ = "0.1.0"

__all__ = [
    "IdempotencyConfig",
    "IdempotencyCoordinator",
    "MemoryRecordStore",
    "__version__",
]
