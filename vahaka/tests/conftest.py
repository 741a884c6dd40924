"""
Centralized Test Configuration.

Store-backed fixtures are parametrized so every service test runs against
both the SQL adapter (in-memory SQLite) and the Redis adapter (in-memory
double below).
"""

import asyncio

import pytest
from httpx import AsyncClient, ASGITransport
from redis.exceptions import WatchError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from vahaka.app.db.session import Base
from vahaka.app.main import app
from vahaka.app.services.driver_repository import DriverRepository
from vahaka.app.services.location_updater import LocationUpdater
from vahaka.app.services.trip_coordinator import TripCoordinator
from vahaka.app.store.redis_store import RedisDocumentStore
from vahaka.app.store.sql import SqlDocumentStore
from vahaka.tests.payloads import DESTINATION, DRIVER_PROFILE, PICKUP

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Small pages so queries cross page boundaries
TEST_PAGE_SIZE = 2


# Mock Redis for reliability in CI/CD
class MockPipeline:
    """
    Transactional pipeline double.

    Mirrors redis-py: after `watch` commands run immediately, after `multi`
    (or without a watch) they are buffered until `execute`.
    """

    def __init__(self, redis):
        self.redis = redis
        self.watched = {}
        self.buffer = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.reset()

    async def reset(self):
        self.watched = {}
        self.buffer = []

    async def watch(self, *keys):
        for key in keys:
            self.watched[key] = self.redis.versions.get(key, 0)

    async def get(self, key):
        await asyncio.sleep(0)
        return self.redis.store.get(key)

    def multi(self):
        self.buffer = []

    def set(self, key, value, nx=False):
        self.buffer.append(("set", key, value, nx))
        return self

    def sadd(self, key, *members):
        self.buffer.append(("sadd", key, members, None))
        return self

    async def execute(self):
        changed = [key for key, version in self.watched.items() if self.redis.versions.get(key, 0) != version]
        if changed:
            await self.reset()
            raise WatchError("Watched variable changed.")

        results = []
        for command, key, value, nx in self.buffer:
            if command == "set":
                results.append(self.redis._set(key, value, nx))
            else:
                results.append(self.redis._sadd(key, value))
        await self.reset()
        return results


class MockRedis:
    def __init__(self):
        self.store = {}
        self.sets = {}
        self.versions = {}
        self._closed = False

    def _set(self, key, value, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.versions[key] = self.versions.get(key, 0) + 1
        return True

    def _sadd(self, key, members):
        members_set = self.sets.setdefault(key, set())
        added = len(set(members) - members_set)
        members_set.update(members)
        return added

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        await asyncio.sleep(0)
        return self.store.get(key)

    async def set(self, key, value, nx=False):
        return self._set(key, value, nx)

    async def sadd(self, key, *members):
        return self._sadd(key, members)

    async def sscan(self, key, cursor=0, count=10):
        members = sorted(self.sets.get(key, set()))
        page = members[cursor:cursor + count]
        next_cursor = cursor + count if cursor + count < len(members) else 0
        return next_cursor, page

    async def mget(self, keys):
        return [self.store.get(key) for key in keys]

    def pipeline(self, transaction=True):
        return MockPipeline(self)

    async def flushdb(self):
        self.store = {}
        self.sets = {}
        self.versions = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


async def _build_sql_store():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = SqlDocumentStore(engine, serialize=True, page_size=TEST_PAGE_SIZE)
    await store.initialize()
    return store


@pytest.fixture(params=["sql", "redis"])
async def store(request):
    """Each store-backed test runs once per adapter."""
    if request.param == "sql":
        store = await _build_sql_store()
        yield store
        async with store.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await store.close()
    else:
        store = RedisDocumentStore(MockRedis(), key_prefix="test", page_size=TEST_PAGE_SIZE)
        yield store
        await store.close()


@pytest.fixture
def drivers(store):
    return DriverRepository(store)


@pytest.fixture
def updater(store, drivers):
    return LocationUpdater(store, drivers)


@pytest.fixture
def coordinator(store, drivers):
    return TripCoordinator(store, drivers)


@pytest.fixture
def make_driver(drivers, updater):
    """Factory for approved drivers, available and positioned by default."""

    async def _make(driver_id=None, available=True, location=(12.9720, 77.5950), **profile):
        new_id = await drivers.create({**DRIVER_PROFILE, **profile}, driver_id=driver_id)
        await drivers.update(new_id, {"status": "approved"})
        if location is not None:
            await updater.set_location(new_id, {"latitude": location[0], "longitude": location[1]})
        if available:
            await updater.set_availability(new_id, True)
        return new_id

    return _make


@pytest.fixture
def make_trip(coordinator):
    async def _make(rider_id="rider-1"):
        trip = await coordinator.request_trip(rider_id, PICKUP, DESTINATION)
        return trip.id

    return _make


@pytest.fixture
async def client(store):
    """Async client for testing."""
    app.state.store = store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    del app.state.store
