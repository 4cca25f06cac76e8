"""Notification types and the sender capability.

Used by the worker's push handler and by the PWA manager for local
notifications. The sender is injected so tests and the gateway can record
notifications instead of talking to a platform notification service.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class NotificationPermission(str, Enum):
    """Notification permission states."""

    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class NotificationAction:
    """A button rendered on a notification."""

    action: str
    title: str
    icon: str | None = None


@dataclass
class Notification:
    """A notification that has been shown."""

    title: str
    options: dict[str, Any] = field(default_factory=dict)
    closed: bool = False

    @property
    def tag(self) -> str | None:
        return self.options.get("tag")

    def close(self) -> None:
        self.closed = True


class NotificationSender(Protocol):
    """Capability to display notifications."""

    @property
    def permission(self) -> NotificationPermission: ...

    async def request_permission(self) -> NotificationPermission: ...

    def show(self, title: str, options: dict[str, Any]) -> Notification: ...


class RecordingNotificationSender:
    """In-memory sender that keeps every notification it shows.

    Args:
        permission: Initial permission state
        grant_on_request: Permission returned when a prompt is answered
    """

    def __init__(
        self,
        permission: NotificationPermission = NotificationPermission.DEFAULT,
        grant_on_request: NotificationPermission = NotificationPermission.GRANTED,
    ) -> None:
        self._permission = permission
        self._grant_on_request = grant_on_request
        self.shown: list[Notification] = []

    @property
    def permission(self) -> NotificationPermission:
        return self._permission

    async def request_permission(self) -> NotificationPermission:
        self._permission = self._grant_on_request
        return self._permission

    def show(self, title: str, options: dict[str, Any]) -> Notification:
        notification = Notification(title=title, options=dict(options))
        self.shown.append(notification)
        logger.info("notification_shown", title=title, tag=notification.tag)
        return notification

    def find(self, tag: str) -> list[Notification]:
        """Open notifications carrying the given tag."""
        return [n for n in self.shown if n.tag == tag and not n.closed]
