"""
E2E test fixtures for the Rel SDK.

These tests require a running Rel server (local or cloud) reachable through
the REL_* settings.
"""

import os
import socket
import time
import uuid

import pytest
import pytest_asyncio

from rel_sdk import Connection, Settings

# Skip E2E tests if not in E2E mode
E2E_ENABLED = os.environ.get("REL_E2E_TESTS", "0") == "1"

pytestmark = pytest.mark.skipif(
    not E2E_ENABLED,
    reason="E2E tests disabled. Set REL_E2E_TESTS=1 to enable."
)


def wait_for_service(host: str, port: int, timeout: int = 60) -> bool:
    """Wait for a service to become available."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1):
                return True
        except OSError:
            time.sleep(1)
    return False


@pytest.fixture(scope="session")
def settings() -> Settings:
    """Settings loaded from the REL_* environment."""
    settings = Settings()
    if E2E_ENABLED and settings.base_url is None:
        assert wait_for_service(settings.host, settings.port), "Rel server not ready"
    return settings


@pytest_asyncio.fixture
async def conn(settings):
    """Connection to the live server."""
    async with Connection(settings) as connection:
        yield connection


@pytest.fixture
def dbname() -> str:
    """Generate unique database name for test isolation."""
    return f"sdk-e2e-{uuid.uuid4().hex[:8]}"
