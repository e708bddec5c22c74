"""Shared test fixtures.

Every test gets its own SQLite database file created from the ORM metadata.
Redis is not initialised, so services run with caching and pub/sub off.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.database import close_db, get_engine, get_session, init_db
from signalmap.db.base import Base
from signalmap.db.models import User
from signalmap.gamification.seed import seed_achievements
from signalmap.redis_client import close_redis

TEST_USER_ID = "user-test-1"


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[str, None]:
    """Initialise a fresh database and create all tables."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'signalmap_test.db'}"
    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield url
    await close_db()
    await close_redis()


@pytest_asyncio.fixture
async def db_session(database: str) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for service calls and assertions."""
    async for session in get_session():
        yield session
        await session.close()
        break


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session with the achievement catalog seeded."""
    await seed_achievements(db_session)
    return db_session


@pytest.fixture
def now() -> datetime:
    """A fixed mid-afternoon UTC instant (Wednesday)."""
    return datetime(2026, 3, 4, 15, 30, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def client(database: str) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client over the app, with the catalog seeded."""
    from signalmap.main import create_app

    async for session in get_session():
        await seed_achievements(session)
        session.add(User(id=TEST_USER_ID, name="Test Mapper"))
        await session.commit()
        break

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient) -> AsyncClient:
    """Client carrying a bearer token for TEST_USER_ID."""
    from signalmap.auth.jwt import create_access_token

    client.headers["Authorization"] = f"Bearer {create_access_token(TEST_USER_ID)}"
    return client


@pytest.fixture
def auth_headers():
    """Build bearer headers for an arbitrary user id."""
    from signalmap.auth.jwt import create_access_token

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
