"""
Integration fixtures: a Connection wired to the in-memory fake service.
"""

import pytest
import pytest_asyncio

from tests.fixtures.fake_rel_service import FakeRelService, connect


@pytest.fixture
def service():
    """Fresh fake service per test."""
    return FakeRelService()


@pytest_asyncio.fixture
async def conn(service):
    """Connection to the fake service."""
    connection = connect(service)
    async with connection:
        yield connection


@pytest_asyncio.fixture
async def db(conn):
    """Name of a freshly created database."""
    outcome = await conn.create_database("testdb", overwrite=True)
    assert outcome.ok, outcome.error
    return "testdb"
