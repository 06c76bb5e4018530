"""
Mall Core Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (service and HTTP surface over the in-memory store)
"""
