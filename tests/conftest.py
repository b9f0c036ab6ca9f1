import os

# Settings are read at import time; pin the test environment first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("OTLP_ENABLED", "false")
os.environ.setdefault("CREDENTIALS_ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("OAUTH_TOKEN_URL", "http://auth.test/oauth/token")
os.environ.setdefault("EXTERNAL_API_URL", "http://external.test/posts/1")

from typing import Any

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.db import get_db
from app.core.errors import CoordinationStoreError
from app.main import app, configure_state
from app.models.base import Base
from app.models.product import Product  # noqa: F401
from app.services.http_client import CatalogHttpClient
from app.services.webhooks import EventPublishFailed


class InMemoryCoordinationStore:
    """
    Stand-in for the Redis-backed CoordinationStore.
    Time only moves when a test calls advance(); `fail = True` makes every call raise.
    """

    def __init__(self):
        self.now = 0.0
        self.fail = False
        self._data: dict[str, tuple[str, float | None]] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def ttl(self, key: str) -> float | None:
        entry = self._data.get(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self.now

    def _check(self) -> None:
        if self.fail:
            raise CoordinationStoreError("store unavailable")

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.now:
            del self._data[key]
            return None
        return value

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        return None

    async def get(self, key: str) -> str | None:
        self._check()
        return self._live(key)

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        self._check()
        self._data[key] = (value, self.now + ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        self._check()
        if self._live(key) is not None:
            return False
        self._data[key] = (value, self.now + ttl_seconds)
        return True

    async def incr_with_expiry(self, key: str, ttl_seconds: int) -> int:
        self._check()
        current = self._live(key)
        if current is None:
            self._data[key] = ("1", self.now + ttl_seconds)
            return 1
        count = int(current) + 1
        self._data[key] = (str(count), self._data[key][1])
        return count

    async def delete(self, key: str) -> None:
        self._check()
        self._data.pop(key, None)


class RecordingPublisher:
    def __init__(self):
        self.published: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    async def publish(self, event_id: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise EventPublishFailed("broker unreachable")
        self.published.append((event_id, payload))


@pytest.fixture
def store():
    return InMemoryCoordinationStore()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest_asyncio.fixture
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine):
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session


def _external_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/oauth/token":
        return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})
    if request.headers.get("Authorization") != "Bearer tok-1":
        return httpx.Response(401, json={"error": "unauthorized"})
    return httpx.Response(200, json={"id": 1, "title": "hello"})


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, store, publisher):
    """
    HTTP client against the app with the test DB session, an in-memory
    coordination store and a recording webhook publisher.
    ASGITransport does not run the lifespan, so app.state is wired here.
    """
    async def _override_get_db():
        yield db_session

    http = CatalogHttpClient(transport=httpx.MockTransport(_external_handler))
    configure_state(app, store=store, http=http)
    app.state.webhook_publisher = publisher
    app.dependency_overrides[get_db] = _override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await http.aclose()
