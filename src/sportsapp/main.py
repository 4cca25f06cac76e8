"""Gateway application factory.

Startup opens the cache storage and the upstream client, then registers
and activates the worker generation named by CACHE_VERSION. Routes:

- /health/*   liveness and readiness probes
- /_sw/*      worker control (messages, push, notification clicks, sync)
- everything else goes through the cache-first proxy
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from redis.asyncio import Redis

from sportsapp.api import middleware
from sportsapp.api.health import router as health_router
from sportsapp.api.proxy import router as proxy_router
from sportsapp.api.v1.router import router as v1_router
from sportsapp.config import Settings, get_settings
from sportsapp.core.logging import bind_cache_version, configure_logging, get_logger
from sportsapp.dependencies import (
    set_cache_storage,
    set_notification_sender,
    set_registration,
)
from sportsapp.offline.notifications import NotificationSender, RecordingNotificationSender
from sportsapp.offline.registration import ServiceWorkerRegistration
from sportsapp.offline.storage import CacheStorage, MemoryCacheStorage, RedisCacheStorage
from sportsapp.offline.worker import OfflineAssetCache

logger = get_logger(__name__)


def create_worker(
    settings: Settings,
    storage: CacheStorage,
    client: httpx.AsyncClient,
    notifications: NotificationSender | None = None,
) -> OfflineAssetCache:
    """Build the worker for the configured cache generation."""
    return OfflineAssetCache(
        storage,
        client,
        version=settings.cache_version,
        origin=settings.upstream_origin,
        precache_urls=settings.precache_urls,
        offline_page=settings.offline_page,
        notifications=notifications,
        notification_icon=settings.notification_icon,
        notification_badge=settings.notification_badge,
    )


def _open_cache_storage(settings: Settings) -> tuple[CacheStorage, Redis | None]:
    if not settings.use_redis:
        return MemoryCacheStorage(), None
    redis = Redis.from_url(settings.redis_url)
    return RedisCacheStorage(redis), redis


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    configure_logging(settings)

    storage, redis = _open_cache_storage(settings)
    set_cache_storage(storage)

    client = httpx.AsyncClient(
        base_url=settings.upstream_origin,
        timeout=settings.upstream_timeout,
    )
    notifications = RecordingNotificationSender()
    set_notification_sender(notifications)

    registration = ServiceWorkerRegistration()
    with bind_cache_version(settings.cache_version):
        await registration.register(create_worker(settings, storage, client, notifications))
    set_registration(registration)

    logger.info(
        "gateway_started",
        environment=settings.app_env.value,
        cache_backend=settings.cache_backend.value,
        cache_version=settings.cache_version,
        upstream=settings.upstream_origin,
    )
    try:
        yield
    finally:
        await client.aclose()
        if redis is not None:
            await redis.aclose()
        set_registration(None)
        set_cache_storage(None)
        set_notification_sender(None)
        logger.info("gateway_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the gateway app; pass settings to override the environment."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Offline-first caching gateway for SportsApp. Serves the app shell "
            "and API responses cache first with network fallback."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    middleware.install(app, settings)

    app.include_router(health_router)
    app.include_router(v1_router, prefix="/_sw")
    # Catch-all, must stay last
    app.include_router(proxy_router)

    return app


def cli() -> None:
    """Run the gateway under uvicorn (``sportsapp-gateway``)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sportsapp.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    cli()
