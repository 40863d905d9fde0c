"""
Pytest configuration and fixtures for search service tests
"""

import logging
import os
import sys
import tempfile
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH120


# Throw-away SQLite file by default; a file (not :memory:) so that several
# connections see the same data. Override with TEST_DATABASE_URL.
def get_test_database_url() -> str:
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url
    path = os.path.join(tempfile.gettempdir(), f"portal_search_test_{os.getpid()}.db")  # noqa: PTH118
    return f"sqlite+aiosqlite:///{path}"


TEST_DATABASE_URL = get_test_database_url()

# Settings are read at import time, so configure them before importing the app
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["DEBUG"] = "false"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    connect_args={"timeout": 30} if TEST_DATABASE_URL.startswith("sqlite") else {},
)

TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

import app.database as database_module  # noqa: E402
from app.database import Base  # noqa: E402
from app.services.search_service import search_service  # noqa: E402
from main import app  # noqa: E402

# Replace the app's engine and session maker with test versions
database_module.engine = test_engine
database_module.AsyncSessionLocal = TestSessionLocal


@pytest.fixture(scope="function")
async def setup_test_database():
    """Fresh tables for every test that touches the database."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    # background query-log writes must land before the tables go away
    await search_service.wait_for_pending_logs()
    try:
        async with test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    except Exception as e:
        logging.warning(f"Error during test cleanup: {e}")


@pytest.fixture(scope="function")
async def test_db(setup_test_database) -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
async def client(setup_test_database) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def session_factory():
    """Factory for extra independent sessions (concurrency tests)."""
    return TestSessionLocal
