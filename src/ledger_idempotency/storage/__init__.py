"""Record stores for the ledger idempotency layer.

All stores implement the RecordStore protocol defined in base.py.

Available Stores:
    - MemoryRecordStore: In-process store with per-key asyncio locks
"""

from ledger_idempotency.storage.base import RecordStore
from ledger_idempotency.storage.memory import MemoryRecordStore

__all__ = [
    "RecordStore",
    "MemoryRecordStore",
]
