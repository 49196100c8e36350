"""Shared test fixtures: in-memory SQLite DB, async session, test client, notifier."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from timekeeper.core.notifier import ActiveSessionNotifier, get_notifier, set_notifier
from timekeeper.dependencies import get_db, get_session_factory
from timekeeper.main import app
from timekeeper.models.base import Base
from timekeeper.models.user import User
from timekeeper.services import token_service

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)


# Enable foreign key enforcement in SQLite (off by default).
@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def notifier() -> ActiveSessionNotifier:
    """A fresh process-wide notifier per test."""
    fresh = ActiveSessionNotifier(max_subscribers_per_user=4)
    set_notifier(fresh)
    yield fresh
    set_notifier(None)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Yield a test DB session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, notifier: ActiveSessionNotifier) -> AsyncClient:
    """Yield an httpx AsyncClient wired to the test DB."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: test_session_factory
    app.dependency_overrides[get_notifier] = lambda: notifier
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def create_user_with_token(db: AsyncSession, email: str) -> tuple[User, dict]:
    """Create a user plus a token and return (user, auth headers)."""
    user = User(email=email)
    db.add(user)
    await db.flush()
    access_token = await token_service.issue_token(db, user_id=user.id)
    await db.commit()
    return user, {"Authorization": f"Bearer {access_token.token}"}


@pytest_asyncio.fixture
async def user_and_headers(db_session: AsyncSession) -> tuple[User, dict]:
    return await create_user_with_token(db_session, "owner@example.com")


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory fixture for additional users: ``user, headers = await make_user(email)``."""

    async def _make(email: str) -> tuple[User, dict]:
        return await create_user_with_token(db_session, email)

    return _make


@pytest.fixture
def session_factory():
    """The factory stream loaders and out-of-band readers use in tests."""
    return test_session_factory
