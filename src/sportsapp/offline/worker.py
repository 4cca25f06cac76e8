"""Offline asset cache worker.

The worker owns one cache generation, named by the cache version tag, and
implements the lifecycle handlers of the SportsApp service worker:

- install: precache the app shell (all-or-nothing per batch)
- fetch: cache first, then network; successful same-origin GET responses
  are stored; navigations fall back to the offline page when the network
  is unreachable
- activate: delete every cache whose name is not the current version tag
- message / push / notificationclick / sync side channels

Cached entries are served without any freshness check. Entries are only
replaced by a later successful network fetch or dropped when the version
tag changes.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import Any
from urllib.parse import urljoin

import httpx
import structlog

from sportsapp.core.exceptions import InstallError
from sportsapp.offline.notifications import (
    Notification,
    NotificationAction,
    NotificationSender,
)
from sportsapp.offline.storage import (
    Cache,
    CachedRequest,
    CachedResponse,
    CacheStorage,
    same_origin,
)

logger = structlog.get_logger(__name__)

SKIP_WAITING = "SKIP_WAITING"
BACKGROUND_SYNC_TAG = "background-sync"
NOTIFICATION_TAG = "sportsapp-notification"

PUSH_ACTIONS = (
    NotificationAction(action="view", title="View", icon="/icons/view-action.png"),
    NotificationAction(
        action="dismiss", title="Dismiss", icon="/icons/dismiss-action.png"
    ),
)

# Headers that describe the upstream transfer, not the stored body
_HOP_HEADERS = frozenset(
    {
        "connection",
        "content-encoding",
        "content-length",
        "keep-alive",
        "transfer-encoding",
    }
)

WindowOpener = Callable[[str], Awaitable[None]]


class WorkerState(str, Enum):
    """Worker lifecycle states."""

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


class OfflineAssetCache:
    """Cache-first worker for one cache generation.

    Usage:
        ```python
        worker = OfflineAssetCache(
            storage,
            httpx.AsyncClient(base_url="https://sportsapp.example"),
            version="sportsapp-v2",
            origin="https://sportsapp.example",
        )
        await worker.install()
        await worker.activate()
        response = await worker.handle_fetch(CachedRequest(url="/"))
        ```
    """

    def __init__(
        self,
        storage: CacheStorage,
        client: httpx.AsyncClient,
        *,
        version: str,
        origin: str,
        precache_urls: Iterable[str] = (),
        offline_page: str = "/offline.html",
        notifications: NotificationSender | None = None,
        open_window: WindowOpener | None = None,
        notification_icon: str = "/icons/icon-192x192.png",
        notification_badge: str = "/icons/icon-72x72.png",
    ) -> None:
        self.storage = storage
        self.client = client
        self.version = version
        self.origin = origin.rstrip("/")
        self.offline_page = offline_page
        self.precache_urls = list(precache_urls)
        if offline_page not in self.precache_urls:
            self.precache_urls.append(offline_page)
        self.notifications = notifications
        self._open_window = open_window
        self.notification_icon = notification_icon
        self.notification_badge = notification_badge
        self.state = WorkerState.PARSED
        self.skip_waiting = False
        self.sync_runs = 0

    # -------------------------------------------------------------------------
    # Install
    # -------------------------------------------------------------------------

    async def install(self, urls: Iterable[str] | None = None) -> bool:
        """Precache a batch of URLs into the current-version cache.

        The batch is all-or-nothing: if any URL fails, or the storage
        rejects a write, nothing from the batch is kept. The failure is
        logged and install still completes.

        Returns:
            True if the whole batch was stored
        """
        batch = list(urls) if urls is not None else self.precache_urls
        self.state = WorkerState.INSTALLING
        cache: Cache | None = None
        stored: list[CachedRequest] = []
        try:
            cache = await self.storage.open(self.version)
            logger.info("cache_opened", cache=self.version, urls=len(batch))
            responses = await asyncio.gather(
                *(self._precache_fetch(url) for url in batch)
            )
            for request, response in responses:
                await cache.put(request, response)
                stored.append(request)
        except InstallError as e:
            logger.warning("install_failed", cache=self.version, error=e.message)
            return False
        except Exception as e:
            logger.warning("install_failed", cache=self.version, error=str(e))
            if cache is not None:
                await self._discard(cache, stored)
            return False
        finally:
            self.state = WorkerState.INSTALLED
        logger.info("install_completed", cache=self.version, urls=len(batch))
        return True

    async def _discard(self, cache: Cache, requests: list[CachedRequest]) -> None:
        for request in requests:
            try:
                await cache.delete(request)
            except Exception as e:
                logger.warning("precache_rollback_failed", url=request.url, error=str(e))

    async def _precache_fetch(self, url: str) -> tuple[CachedRequest, CachedResponse]:
        request = CachedRequest(url=self.resolve(url))
        try:
            response = await self._network_fetch(request)
        except httpx.RequestError as e:
            raise InstallError(url=url, error=str(e)) from e
        if not response.ok:
            raise InstallError(url=url, error=f"status {response.status}")
        return request, response

    # -------------------------------------------------------------------------
    # Activate
    # -------------------------------------------------------------------------

    async def activate(self) -> list[str]:
        """Delete every cache generation other than the current version.

        Returns:
            Names of the deleted caches
        """
        self.state = WorkerState.ACTIVATING
        deleted = []
        try:
            for name in await self.storage.keys():
                if name != self.version:
                    logger.info("deleting_old_cache", cache=name)
                    await self.storage.delete(name)
                    deleted.append(name)
        except Exception as e:
            # Old generations stay until the next activation
            logger.warning("cache_cleanup_failed", cache=self.version, error=str(e))
        self.state = WorkerState.ACTIVATED
        return deleted

    # -------------------------------------------------------------------------
    # Fetch
    # -------------------------------------------------------------------------

    async def handle_fetch(self, request: CachedRequest) -> CachedResponse | None:
        """Serve a request cache first, then from the network.

        Returns:
            The cached or network response, the offline page for failed
            navigations, or None when a non-navigation request fails.
        """
        request.url = self.resolve(request.url)

        cached = await self._match(request)
        if cached is not None:
            logger.debug("cache_hit", url=request.url)
            return cached

        try:
            response = await self._network_fetch(request)
        except httpx.RequestError as e:
            logger.info(
                "network_fetch_failed",
                url=request.url,
                destination=request.destination,
                error=str(e),
            )
            if request.is_navigation:
                return await self._match(
                    CachedRequest(url=self.resolve(self.offline_page))
                )
            return None

        if (
            request.method.upper() != "GET"
            or response.status != 200
            or response.type != "basic"
        ):
            return response

        await self._store(request, response.clone())
        return response

    async def _match(self, request: CachedRequest) -> CachedResponse | None:
        if request.method.upper() != "GET":
            return None
        try:
            cached = await self.storage.match(request)
            if cached is None and request.partition is not None:
                # Entries stored from requests without credentials are public
                cached = await self.storage.match(request.anonymous())
            return cached
        except Exception as e:
            logger.warning("cache_match_failed", url=request.url, error=str(e))
            return None

    async def _store(self, request: CachedRequest, response: CachedResponse) -> None:
        try:
            cache = await self.storage.open(self.version)
            await cache.put(request, response)
            logger.debug("cache_put", cache=self.version, url=request.url)
        except Exception as e:
            logger.warning("cache_put_failed", url=request.url, error=str(e))

    async def _network_fetch(self, request: CachedRequest) -> CachedResponse:
        response = await self.client.request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body,
        )
        url = str(response.url)
        return CachedResponse(
            status=response.status_code,
            body=response.content,
            headers={
                k: v for k, v in response.headers.items() if k.lower() not in _HOP_HEADERS
            },
            url=url,
            reason=response.reason_phrase,
            type="basic" if same_origin(url, self.origin) else "cors",
        )

    def resolve(self, url: str) -> str:
        """Resolve a path against the worker origin."""
        return urljoin(f"{self.origin}/", url)

    # -------------------------------------------------------------------------
    # Side channels
    # -------------------------------------------------------------------------

    def handle_message(self, message: dict[str, Any] | None) -> bool:
        """Handle a page message. Returns True when activation should skip waiting."""
        if message and message.get("type") == SKIP_WAITING:
            self.skip_waiting = True
            logger.info("skip_waiting_requested", cache=self.version)
            return True
        return False

    def handle_push(self, payload: dict[str, Any] | None) -> Notification | None:
        """Render a push payload ({"title", "body"}) as a notification."""
        if not payload or self.notifications is None:
            return None
        options = {
            "body": payload.get("body"),
            "icon": self.notification_icon,
            "badge": self.notification_badge,
            "tag": NOTIFICATION_TAG,
            "renotify": True,
            "actions": list(PUSH_ACTIONS),
        }
        return self.notifications.show(payload.get("title", ""), options)

    async def handle_notification_click(
        self, action: str | None, notification: Notification | None = None
    ) -> str | None:
        """Close the clicked notification; "view" opens the app root.

        Returns:
            The URL opened, if any
        """
        if notification is not None:
            notification.close()
        if action != "view":
            return None
        if self._open_window is not None:
            await self._open_window("/")
        return "/"

    async def handle_sync(self, tag: str) -> bool:
        """Run background sync for the registered tag. Returns True if it ran."""
        if tag != BACKGROUND_SYNC_TAG:
            return False
        await self._background_sync()
        return True

    async def _background_sync(self) -> None:
        # Stub: there is no offline queue to replay yet.
        self.sync_runs += 1
        logger.debug("background_sync", runs=self.sync_runs)
