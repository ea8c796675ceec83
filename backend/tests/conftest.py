"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite file database, injected into the app through
dependency overrides. Redis is disabled so the dashboard cache is a no-op.

Fixtures write through short-lived sessions and close them before the test
body runs: on SQLite every transaction takes the write lock, so a session
left open would block the booking transactions under test.
"""

import os

os.environ["REDIS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["BOOKING_TXN_BACKOFF_SECONDS"] = "0.001"

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from meshwar.main import app
from meshwar.db.session import Database, get_database
from meshwar.core.security import create_access_token, hash_password
from meshwar.models.activity import Activity
from meshwar.models.user import User, UserRole
from meshwar.services.cache_service import DashboardCache, get_cache

ADMIN_PASSWORD = "admin-password-123"


@pytest_asyncio.fixture(scope="function")
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Fresh schema in a per-test SQLite file."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'meshwar_test.db'}")
    await database.create_all()
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def cache() -> DashboardCache:
    return DashboardCache(None)


@pytest_asyncio.fixture(scope="function")
async def client(database: Database, cache: DashboardCache) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and a disabled cache."""
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_cache] = lambda: cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def add_rows(database: Database, *rows):
    async with database.session() as session:
        session.add_all(rows)
        await session.commit()
    return rows


@pytest_asyncio.fixture
async def admin_user(database: Database) -> User:
    user = User(
        id="admin",
        email="admin@meshwar.test",
        display_name="Admin",
        role=UserRole.ADMIN.value,
        hashed_password=hash_password(ADMIN_PASSWORD),
    )
    await add_rows(database, user)
    return user


@pytest_asyncio.fixture
async def auth_headers(admin_user: User) -> dict:
    """Authorization headers with an admin Bearer token."""
    token = create_access_token(data={"sub": admin_user.id, "role": admin_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def make_user(database: Database):
    """Factory for regular users with explicit ids."""

    async def _make(user_id: str, email: str = None, display_name: str = None) -> User:
        user = User(
            id=user_id,
            email=email or f"{user_id}@meshwar.test",
            display_name=display_name or user_id.upper(),
            role=UserRole.USER.value,
        )
        await add_rows(database, user)
        return user

    return _make


@pytest_asyncio.fixture
async def make_activity(database: Database):
    """Factory for upcoming activities with explicit ids."""

    async def _make(activity_id: str, participant_limit: int = 0, **fields) -> Activity:
        start = datetime.now(timezone.utc) + timedelta(days=10)
        values = {
            "title": f"Activity {activity_id}",
            "description": "Test activity",
            "start_date": start,
            "end_date": start + timedelta(hours=4),
            "start_time": "09:00",
            "end_time": "13:00",
            "participant_limit": participant_limit,
        }
        values.update(fields)
        activity = Activity(id=activity_id, **values)
        await add_rows(database, activity)
        return activity

    return _make


@pytest_asyncio.fixture
async def member(make_user) -> User:
    return await make_user("u1")


@pytest_asyncio.fixture
async def other_member(make_user) -> User:
    return await make_user("u2")


@pytest_asyncio.fixture
async def load_activity(database: Database):
    """Read an activity row through a short session."""

    async def _load(activity_id: str) -> Activity:
        async with database.session() as session:
            return await session.get(Activity, activity_id)

    return _load
