"""Conformance scenarios for the ledger idempotency layer.

This package contains end-to-end scenario tests that drive the FastAPI
application over HTTP and verify how duplicate, conflicting, concurrent and
expired requests reach the ledger. Each scenario tests a specific aspect of
idempotency handling.
"""
