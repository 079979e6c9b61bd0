"""
Larder Test Suite.

This package contains:
- unit/: Unit tests (stores, guard, sub-registries, ledger, config)
- integration/: Integration tests (applier over the in-memory ledger, HTTP API)
"""
