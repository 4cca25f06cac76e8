"""Offline asset cache: cache storage, the cache-first worker and its registration."""

from sportsapp.offline.notifications import (
    Notification,
    NotificationAction,
    NotificationPermission,
    NotificationSender,
    RecordingNotificationSender,
)
from sportsapp.offline.registration import ServiceWorkerRegistration
from sportsapp.offline.storage import (
    CachedRequest,
    CachedResponse,
    CacheStorage,
    MemoryCacheStorage,
    RedisCacheStorage,
)
from sportsapp.offline.worker import (
    BACKGROUND_SYNC_TAG,
    SKIP_WAITING,
    OfflineAssetCache,
    WorkerState,
)

__all__ = [
    # Storage
    "CachedRequest",
    "CachedResponse",
    "CacheStorage",
    "MemoryCacheStorage",
    "RedisCacheStorage",
    # Worker
    "BACKGROUND_SYNC_TAG",
    "SKIP_WAITING",
    "OfflineAssetCache",
    "ServiceWorkerRegistration",
    "WorkerState",
    # Notifications
    "Notification",
    "NotificationAction",
    "NotificationPermission",
    "NotificationSender",
    "RecordingNotificationSender",
]
