"""
Centralized Test Configuration.
"""

import asyncio

import pytest
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool, Pool

from dutylink.app.main import app
from dutylink.app.db.session import get_db, Base, create_tables
from dutylink.app.core.jwt import create_access_token
from dutylink.app.core.redis_client import get_redis
from dutylink.app.models.driver_profile import DriverProfile
from dutylink.app.services.backend_store import BackendStore
import dutylink.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis with just enough Pub/Sub for the alert stream
class MockPubSub:
    def __init__(self, redis):
        self.redis = redis
        self.channels = set()
        self.queue = asyncio.Queue()
        self.closed = False

    async def subscribe(self, *channels):
        if self.redis.fail_subscribe:
            raise RedisConnectionError("Connection refused")
        for channel in channels:
            self.channels.add(channel)
            self.redis.subscribers.setdefault(channel, set()).add(self)
            await self.queue.put({"type": "subscribe", "channel": channel, "data": 1})

    async def unsubscribe(self, *channels):
        for channel in channels or list(self.channels):
            self.channels.discard(channel)
            self.redis.subscribers.get(channel, set()).discard(self)

    async def listen(self):
        while not self.closed:
            message = await self.queue.get()
            if isinstance(message, Exception):
                raise message
            yield message

    async def aclose(self):
        self.closed = True
        await self.unsubscribe()

    def drop(self):
        """Simulate the server closing the connection."""
        self.queue.put_nowait(RedisConnectionError("Connection closed by server"))


class MockRedis:
    def __init__(self):
        self.store = {}
        self.subscribers = {}
        self.published = []
        self.fail_subscribe = False
        self._closed = False

    async def ping(self):
        return not self._closed

    async def publish(self, channel, data):
        self.published.append((channel, data))
        receivers = list(self.subscribers.get(channel, ()))
        for pubsub in receivers:
            await pubsub.queue.put({"type": "message", "channel": channel, "data": data})
        return len(receivers)

    def pubsub(self):
        return MockPubSub(self)

    async def flushdb(self):
        self.store = {}
        self.published = []

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def redis_mock():
    return MockRedis()


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    await create_tables(engine)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Each test runs on its own event loop; do not carry the connection over
    await engine.dispose()


@pytest.fixture(autouse=True)
def apply_overrides(redis_mock):
    """Route the app's database and Redis dependencies to the test doubles."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_mock

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_mock

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def store(redis_mock):
    """Backend store opening a fresh session per call, like a long-lived driver session."""
    return BackendStore(session_factory=TestingSessionLocal, redis=redis_mock)


@pytest.fixture
async def driver(db_session):
    """A driver profile to act as the worker."""
    profile = DriverProfile(display_name="Ana Souza", email="ana@test.com")
    db_session.add(profile)
    await db_session.commit()
    return profile


@pytest.fixture
def driver_token(driver):
    return create_access_token(data={"sub": driver.email, "user_id": driver.id})


@pytest.fixture
def auth_headers(driver_token):
    return {"Authorization": f"Bearer {driver_token}"}
