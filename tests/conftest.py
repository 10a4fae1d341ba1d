"""
Pytest configuration and fixtures.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from commtrack.db import Database
from factories import seed_organization

# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def database():
    """Test database with all tables created."""
    database = Database(TEST_DATABASE_URL)
    await database.create_all()

    yield database

    await database.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    """Create test database session."""
    async with database.sessionmaker() as session:
        yield session


@pytest_asyncio.fixture
async def seed(db_session):
    """Organization with users, territory, category, clients and a project."""
    return await seed_organization(db_session)


@pytest_asyncio.fixture
async def client(database):
    """HTTP client against the app, backed by the test database."""
    from commtrack.main import app

    app.state.db = database
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
