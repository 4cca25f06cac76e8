"""Request/response schemas for the worker control endpoints."""

from typing import Any

from pydantic import Field

from sportsapp.schemas.common import BaseSchema

# =============================================================================
# Info
# =============================================================================


class WorkerInfo(BaseSchema):
    """Service and cache generation currently serving requests."""

    service: str
    version: str
    cache_version: str = Field(..., description="Name of the active cache generation")
    state: str
    update_available: bool = False


class CacheListing(BaseSchema):
    """Cache generations and the entries of the active one."""

    caches: list[str]
    current: str
    entries: list[str] = Field(default_factory=list)


# =============================================================================
# Lifecycle messages
# =============================================================================


class WorkerMessage(BaseSchema):
    """Message posted from the page (e.g. {"type": "SKIP_WAITING"})."""

    type: str = Field(..., min_length=1)


class WorkerMessageResult(BaseSchema):
    activated: bool
    cache_version: str | None = None


class PushPayload(BaseSchema):
    """Push message body."""

    title: str = ""
    body: str | None = None


class NotificationResponse(BaseSchema):
    title: str
    options: dict[str, Any]
    closed: bool = False


class NotificationClick(BaseSchema):
    """A click on a shown notification or one of its actions."""

    action: str | None = Field(None, description='"view", "dismiss" or None for the body')
    tag: str | None = Field(None, description="Tag of the clicked notification")


class NotificationClickResult(BaseSchema):
    opened: str | None = None
    closed: int = 0


class SyncRequest(BaseSchema):
    tag: str = Field(..., min_length=1)


class SyncResult(BaseSchema):
    tag: str
    ran: bool
