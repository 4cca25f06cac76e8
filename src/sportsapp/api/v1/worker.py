"""Worker control endpoints.

Lets the page (or an operator) drive the offline worker's side channels:
lifecycle messages, push delivery, notification clicks and background
sync, plus read-only views of the cache generations.
"""

from fastapi import APIRouter, status
from fastapi.encoders import jsonable_encoder

from sportsapp.core.logging import get_logger
from sportsapp.dependencies import (
    NotificationsDep,
    RegistrationDep,
    SettingsDep,
    StorageDep,
    WorkerDep,
)
from sportsapp.offline.worker import NOTIFICATION_TAG
from sportsapp.schemas.common import ErrorResponse
from sportsapp.schemas.worker import (
    CacheListing,
    NotificationClick,
    NotificationClickResult,
    NotificationResponse,
    PushPayload,
    SyncRequest,
    SyncResult,
    WorkerInfo,
    WorkerMessage,
    WorkerMessageResult,
)

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Read-only views
# =============================================================================


@router.get(
    "/info",
    response_model=WorkerInfo,
    summary="Active worker",
    responses={503: {"model": ErrorResponse, "description": "No active worker"}},
)
async def worker_info(
    worker: WorkerDep, registration: RegistrationDep, settings: SettingsDep
) -> WorkerInfo:
    return WorkerInfo(
        service=settings.app_name,
        version=settings.app_version,
        cache_version=worker.version,
        state=worker.state.value,
        update_available=registration.update_available,
    )


@router.get(
    "/caches",
    response_model=CacheListing,
    summary="Cache generations",
    description="Lists every cache generation and the entries of the active one.",
)
async def list_caches(worker: WorkerDep, storage: StorageDep) -> CacheListing:
    names = await storage.keys()
    entries: list[str] = []
    if worker.version in names:
        cache = await storage.open(worker.version)
        entries = await cache.keys()
    return CacheListing(caches=names, current=worker.version, entries=entries)


# =============================================================================
# Side channels
# =============================================================================


@router.post(
    "/message",
    response_model=WorkerMessageResult,
    summary="Post a message to the worker",
    description='{"type": "SKIP_WAITING"} activates a waiting update.',
)
async def post_message(
    message: WorkerMessage, registration: RegistrationDep
) -> WorkerMessageResult:
    activated = await registration.post_message(message.model_dump())
    active = registration.active
    return WorkerMessageResult(
        activated=activated,
        cache_version=active.version if active else None,
    )


@router.post(
    "/push",
    response_model=NotificationResponse | None,
    status_code=status.HTTP_201_CREATED,
    summary="Deliver a push message",
)
async def push(payload: PushPayload, worker: WorkerDep) -> NotificationResponse | None:
    notification = worker.handle_push(payload.model_dump())
    if notification is None:
        return None
    return NotificationResponse(
        title=notification.title,
        options=jsonable_encoder(notification.options),
        closed=notification.closed,
    )


@router.post(
    "/notification-click",
    response_model=NotificationClickResult,
    summary="Handle a notification click",
)
async def notification_click(
    click: NotificationClick,
    worker: WorkerDep,
    notifications: NotificationsDep,
) -> NotificationClickResult:
    """Close the most recent open notification with the tag, then act on the click."""
    open_notifications = notifications.find(click.tag or NOTIFICATION_TAG)
    target = open_notifications[-1] if open_notifications else None
    opened = await worker.handle_notification_click(click.action, target)
    logger.info("notification_clicked", action=click.action, opened=opened)
    return NotificationClickResult(opened=opened, closed=1 if target else 0)


@router.post(
    "/sync",
    response_model=SyncResult,
    summary="Run background sync",
)
async def sync(request: SyncRequest, worker: WorkerDep) -> SyncResult:
    ran = await worker.handle_sync(request.tag)
    return SyncResult(tag=request.tag, ran=ran)
