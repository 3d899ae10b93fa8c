import fnmatch
import json
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("SMTP_HOST", "")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tripcrew.core.database import Base, get_db
from tripcrew.core.redis_lifecycle import get_cache
from tripcrew.core.cache import RedisCache
from tripcrew.main import app
import tripcrew.models  # noqa: F401


class FakeCache(RedisCache):
    """In-memory stand-in for Redis with the same JSON round trip."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        data = self.store.get(key)
        return json.loads(data) if data is not None else None

    async def set(self, key, value, expire=3600):
        self.store[key] = json.dumps(value, default=str)

    async def delete(self, key):
        self.store.pop(key, None)

    async def delete_pattern(self, pattern):
        for key in [k for k in self.store if fnmatch.fnmatch(k, pattern)]:
            del self.store[key]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache():
    return FakeCache()


@pytest_asyncio.fixture
async def client(session_factory, cache):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_cache():
        yield cache

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = override_get_cache
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def register_and_login(client, email, password="password123", display_name=None):
    resp = await client.post("/auth/register", json={
        "email": email,
        "password": password,
        "display_name": display_name or email.split("@")[0].title(),
    })
    assert resp.status_code == 201, resp.text
    resp = await client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]["id"]


@pytest_asyncio.fixture
async def alice(client):
    return await register_and_login(client, "alice@example.com", display_name="Alice")


@pytest_asyncio.fixture
async def bob(client):
    return await register_and_login(client, "bob@example.com", display_name="Bob")


@pytest_asyncio.fixture
async def carol(client):
    return await register_and_login(client, "carol@example.com", display_name="Carol")


@pytest_asyncio.fixture
async def trip(client, alice):
    headers, _ = alice
    resp = await client.post("/trips", json={
        "name": "Lisbon",
        "base_currency": "EUR",
        "start_date": "2030-06-01",
        "end_date": "2030-06-07",
    }, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest_asyncio.fixture
async def crew(client, trip, alice, bob, carol):
    """Trip owned by Alice with Bob and Carol joined by code."""
    resp = await client.post(f"/trips/{trip['id']}/ensure-join-code", headers=alice[0])
    code = resp.json()["join_code"]
    for headers, _ in (bob, carol):
        resp = await client.post(f"/trips/join/{code}", headers=headers)
        assert resp.status_code == 200, resp.text
    return trip
