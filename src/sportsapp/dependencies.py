"""Route dependencies for the gateway.

The lifespan opens the cache storage, the worker registration and the
notification sender once and registers them with the ``set_*`` functions.
Tests register their own instances the same way and never run the lifespan.
"""

from typing import Annotated

from fastapi import Depends, Request

from sportsapp.config import Settings
from sportsapp.core.exceptions import WorkerNotActiveError
from sportsapp.offline.notifications import RecordingNotificationSender
from sportsapp.offline.registration import ServiceWorkerRegistration
from sportsapp.offline.storage import CacheStorage
from sportsapp.offline.worker import OfflineAssetCache

_cache_storage: CacheStorage | None = None
_registration: ServiceWorkerRegistration | None = None
_notification_sender: RecordingNotificationSender | None = None


def app_settings(request: Request) -> Settings:
    """Settings the app was created with (``create_app(settings=...)``)."""
    return request.app.state.settings


def set_cache_storage(storage: CacheStorage | None) -> None:
    global _cache_storage
    _cache_storage = storage


def get_cache_storage() -> CacheStorage:
    if _cache_storage is None:
        raise RuntimeError("cache storage is not open; call set_cache_storage() first")
    return _cache_storage


def set_registration(registration: ServiceWorkerRegistration | None) -> None:
    global _registration
    _registration = registration


def get_registration() -> ServiceWorkerRegistration:
    if _registration is None:
        raise RuntimeError("no worker registration; call set_registration() first")
    return _registration


def set_notification_sender(sender: RecordingNotificationSender | None) -> None:
    global _notification_sender
    _notification_sender = sender


def get_notification_sender() -> RecordingNotificationSender:
    if _notification_sender is None:
        raise RuntimeError("no notification sender; call set_notification_sender() first")
    return _notification_sender


def get_active_worker(
    registration: Annotated[ServiceWorkerRegistration, Depends(get_registration)],
) -> OfflineAssetCache:
    """The worker controlling requests; 503 WORKER_NOT_ACTIVE before activation."""
    if registration.active is None:
        raise WorkerNotActiveError()
    return registration.active


SettingsDep = Annotated[Settings, Depends(app_settings)]
StorageDep = Annotated[CacheStorage, Depends(get_cache_storage)]
RegistrationDep = Annotated[ServiceWorkerRegistration, Depends(get_registration)]
WorkerDep = Annotated[OfflineAssetCache, Depends(get_active_worker)]
NotificationsDep = Annotated[RecordingNotificationSender, Depends(get_notification_sender)]
