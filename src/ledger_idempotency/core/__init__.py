"""Core mediation logic for the ledger idempotency layer.

This package contains the framework-agnostic business logic:
- Coordinator: at-most-once execution per key (claim -> execute -> publish)
- Replay: response reconstruction from stored outcomes
- Middleware: eligibility, key extraction, fingerprinting, error mapping
- Sweeper: periodic eviction of expired records

Adapters for specific web frameworks wrap the middleware.
"""

from ledger_idempotency.core.replay import CapturedResponse, replay_response

__all__ = ["CapturedResponse", "replay_response"]
