"""
Rel SDK Test Suite.

This package contains:
- unit/: Unit tests (no network, mocked transports)
- integration/: Connection against the in-memory fake service
- e2e/: End-to-end tests against a live Rel server
- fixtures/: The FastAPI fake service
"""
