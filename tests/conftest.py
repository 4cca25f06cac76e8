"""Pytest configuration and fixtures for SportsApp tests.

This module provides reusable fixtures for:
- Settings overrides
- A fake upstream origin served through httpx.MockTransport
- Cache storage, the offline worker and its registration
- The gateway app and an async test client
- A controllable clock and query client
- Mocked Redis
"""

from collections.abc import AsyncGenerator, Callable, Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from sportsapp.config import Settings
from sportsapp.dependencies import (
    set_cache_storage,
    set_notification_sender,
    set_registration,
)
from sportsapp.main import create_app
from sportsapp.offline.notifications import (
    NotificationPermission,
    RecordingNotificationSender,
)
from sportsapp.offline.registration import ServiceWorkerRegistration
from sportsapp.offline.storage import MemoryCacheStorage
from sportsapp.offline.worker import OfflineAssetCache
from sportsapp.query.cache import QueryClient

ORIGIN = "http://upstream.test"

# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test-specific settings."""
    return Settings(
        app_env="development",  # type: ignore[arg-type]
        debug=True,
        log_level="DEBUG",  # type: ignore[arg-type]
        log_format="console",  # type: ignore[arg-type]
        cache_backend="memory",  # type: ignore[arg-type]
        redis_url="redis://localhost:6379/15",  # Use DB 15 for tests
        upstream_origin=ORIGIN,
        api_base_url=ORIGIN,
        cache_version="sportsapp-v1",
        precache_urls=["/", "/manifest.json"],
    )


# =============================================================================
# Fake Upstream
# =============================================================================


class FakeUpstream:
    """Scriptable origin server for httpx.MockTransport.

    Routes map a path (with query string, if any) to (status, body, headers).
    Unknown paths return 404. Setting `offline` makes every request fail
    with a connection error.
    """

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, bytes, dict[str, str]]] = {}
        self.requests: list[httpx.Request] = []
        self.offline = False
        self.failing: set[str] = set()

    def add(
        self,
        path: str,
        body: bytes | str = b"",
        status: int = 200,
        content_type: str = "text/plain",
    ) -> None:
        if isinstance(body, str):
            body = body.encode()
        self.routes[path] = (status, body, {"content-type": content_type})

    def add_json(self, path: str, body: str, status: int = 200) -> None:
        self.add(path, body, status, "application/json")

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if _path_of(r) == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = _path_of(request)
        if self.offline or path in self.failing:
            raise httpx.ConnectError("upstream unreachable", request=request)
        status, body, headers = self.routes.get(
            path, (404, b"Not Found", {"content-type": "text/plain"})
        )
        return httpx.Response(status, content=body, headers=headers)


def _path_of(request: httpx.Request) -> str:
    # Percent-encoded path plus query string
    return request.url.raw_path.decode()


@pytest.fixture
def upstream() -> FakeUpstream:
    """Upstream serving the app shell, the offline page and a feed."""
    fake = FakeUpstream()
    fake.add("/", "<html>home</html>", content_type="text/html")
    fake.add_json("/manifest.json", '{"name": "SportsApp"}')
    fake.add("/offline.html", "<html>offline</html>", content_type="text/html")
    fake.add_json("/api/posts", '[{"id": 1}]')
    return fake


@pytest.fixture
async def upstream_client(upstream: FakeUpstream) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(upstream.handler), base_url=ORIGIN
    ) as client:
        yield client


# =============================================================================
# Offline Cache Fixtures
# =============================================================================


@pytest.fixture
def memory_storage() -> MemoryCacheStorage:
    return MemoryCacheStorage()


@pytest.fixture
def notifications() -> RecordingNotificationSender:
    return RecordingNotificationSender(permission=NotificationPermission.GRANTED)


@pytest.fixture
def make_worker(
    memory_storage: MemoryCacheStorage,
    upstream_client: httpx.AsyncClient,
    notifications: RecordingNotificationSender,
) -> Callable[..., OfflineAssetCache]:
    """Factory for workers sharing the fixture storage and upstream."""

    def factory(version: str = "sportsapp-v1", **kwargs: Any) -> OfflineAssetCache:
        kwargs.setdefault("precache_urls", ["/", "/manifest.json"])
        kwargs.setdefault("notifications", notifications)
        return OfflineAssetCache(
            memory_storage,
            upstream_client,
            version=version,
            origin=ORIGIN,
            **kwargs,
        )

    return factory


@pytest.fixture
def worker(make_worker: Callable[..., OfflineAssetCache]) -> OfflineAssetCache:
    return make_worker()


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
async def registration(worker: OfflineAssetCache) -> ServiceWorkerRegistration:
    """Registration with the fixture worker installed and active."""
    registration = ServiceWorkerRegistration()
    await registration.register(worker)
    return registration


@pytest.fixture
def app(
    test_settings: Settings,
    memory_storage: MemoryCacheStorage,
    registration: ServiceWorkerRegistration,
    notifications: RecordingNotificationSender,
) -> Generator[FastAPI, None, None]:
    """Create a test FastAPI application wired to the fixture worker."""
    set_cache_storage(memory_storage)
    set_registration(registration)
    set_notification_sender(notifications)
    yield create_app(settings=test_settings)
    set_cache_storage(None)
    set_registration(None)
    set_notification_sender(None)


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing.

    This client makes requests to the test app without starting a server.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


# =============================================================================
# Query Fixtures
# =============================================================================


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def query_client(test_settings: Settings, clock: FakeClock) -> QueryClient:
    """QueryClient with a fake clock and no retry delay."""
    return QueryClient(settings=test_settings, clock=clock, retry_delay=lambda attempt: 0)


# =============================================================================
# Mock Service Fixtures
# =============================================================================


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mock Redis client."""
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    redis.hget = AsyncMock(return_value=None)
    redis.hset = AsyncMock(return_value=1)
    redis.hdel = AsyncMock(return_value=1)
    redis.hkeys = AsyncMock(return_value=[])
    redis.incr = AsyncMock(return_value=1)
    redis.zadd = AsyncMock(return_value=1)
    redis.zscore = AsyncMock(return_value=None)
    redis.zrem = AsyncMock(return_value=1)
    redis.zrange = AsyncMock(return_value=[])
    return redis
