"""Installability, local notifications and offline-cache maintenance.

PWAManager is an ordinary object: its platform capabilities (install
prompt, notification display, cache control) are passed in, so each can
be swapped for a recording fake or left out when the platform lacks it.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import structlog

from sportsapp.config import Settings, get_settings
from sportsapp.offline.notifications import (
    Notification,
    NotificationPermission,
    NotificationSender,
)
from sportsapp.offline.registration import ServiceWorkerRegistration
from sportsapp.offline.storage import CacheStorage
from sportsapp.offline.worker import SKIP_WAITING, OfflineAssetCache

logger = structlog.get_logger(__name__)


class InstallOutcome(str, Enum):
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"


class InstallPrompt(Protocol):
    """A captured, not yet shown install prompt."""

    async def prompt(self) -> InstallOutcome: ...


class Installer(Protocol):
    """Capability to install the app."""

    def is_standalone(self) -> bool: ...

    def has_deferred_prompt(self) -> bool: ...

    def capture(self, prompt: InstallPrompt) -> None: ...

    async def prompt(self) -> InstallOutcome: ...

    def installed(self) -> None: ...


class CacheController(Protocol):
    """Capability to manage the offline cache and worker updates."""

    async def clear_cache(self) -> int: ...

    async def check_for_updates(self) -> bool: ...

    async def activate_update(self) -> bool: ...


# -----------------------------------------------------------------------------
# Installer
# -----------------------------------------------------------------------------


class DeferredInstallPrompt:
    """Holds the install prompt captured before the user asked to install.

    Args:
        display_mode: "standalone" when launched from the home screen
        standalone: Platform standalone flag (iOS)
        referrer: Document referrer; Android app launches use android-app://
    """

    def __init__(
        self,
        display_mode: str = "browser",
        standalone: bool = False,
        referrer: str = "",
    ) -> None:
        self.display_mode = display_mode
        self.standalone = standalone
        self.referrer = referrer
        self._deferred: InstallPrompt | None = None

    def is_standalone(self) -> bool:
        return (
            self.display_mode == "standalone"
            or self.standalone
            or "android-app://" in self.referrer
        )

    def has_deferred_prompt(self) -> bool:
        return self._deferred is not None

    def capture(self, prompt: InstallPrompt) -> None:
        self._deferred = prompt

    async def prompt(self) -> InstallOutcome:
        if self._deferred is None:
            return InstallOutcome.DISMISSED
        outcome = await self._deferred.prompt()
        if outcome == InstallOutcome.ACCEPTED:
            self._deferred = None
        return outcome

    def installed(self) -> None:
        logger.info("app_installed")
        self._deferred = None


# -----------------------------------------------------------------------------
# Cache controller
# -----------------------------------------------------------------------------


class RegistrationCacheController:
    """CacheController over a worker registration and its cache storage.

    Args:
        registration: The worker registration for this scope
        storage: Cache storage shared by all worker versions
        update_source: Returns the newest worker build, or None if the
            deployed version is unchanged
    """

    def __init__(
        self,
        registration: ServiceWorkerRegistration,
        storage: CacheStorage,
        update_source: Callable[[], Awaitable[OfflineAssetCache | None]] | None = None,
    ) -> None:
        self.registration = registration
        self.storage = storage
        self.update_source = update_source

    async def clear_cache(self) -> int:
        names = await self.storage.keys()
        for name in names:
            await self.storage.delete(name)
        logger.info("offline_cache_cleared", caches=names)
        return len(names)

    async def check_for_updates(self) -> bool:
        """Look for a newer worker.

        Returns:
            True if a new version is installed and waiting
        """
        if self.registration.active is None:
            return False
        if self.update_source is not None:
            candidate = await self.update_source()
            if candidate is not None:
                await self.registration.update(candidate)
        return self.registration.update_available

    async def activate_update(self) -> bool:
        if self.registration.waiting is None:
            return False
        return await self.registration.post_message({"type": SKIP_WAITING})


# -----------------------------------------------------------------------------
# Manager
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class NetworkStatus:
    online: bool
    effective_type: str | None = None


class PWAManager:
    """App-level PWA helpers.

    Usage:
        ```python
        pwa = PWAManager(
            installer=DeferredInstallPrompt(),
            notifications=RecordingNotificationSender(),
            cache=RegistrationCacheController(registration, storage),
        )
        if pwa.is_installable:
            await pwa.install()
        ```
    """

    def __init__(
        self,
        installer: Installer,
        notifications: NotificationSender | None = None,
        cache: CacheController | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.installer = installer
        self.notifications = notifications
        self.cache = cache
        self.settings = settings or get_settings()
        self._network = NetworkStatus(online=True)

    # -------------------------------------------------------------------------
    # Install
    # -------------------------------------------------------------------------

    @property
    def is_installed(self) -> bool:
        return self.installer.is_standalone()

    @property
    def is_installable(self) -> bool:
        return self.installer.has_deferred_prompt()

    @property
    def is_supported(self) -> bool:
        """Offline caching and notifications are both available."""
        return self.cache is not None and self.notifications is not None

    async def install(self) -> bool:
        """Show the captured install prompt.

        Returns:
            True if the user accepted
        """
        if not self.installer.has_deferred_prompt():
            return False
        outcome = await self.installer.prompt()
        logger.info("install_prompt_answered", outcome=outcome.value)
        return outcome == InstallOutcome.ACCEPTED

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def request_notification_permission(self) -> NotificationPermission:
        """Prompt only while the permission is still undecided."""
        if self.notifications is None:
            return NotificationPermission.DENIED
        if self.notifications.permission == NotificationPermission.DEFAULT:
            return await self.notifications.request_permission()
        return self.notifications.permission

    def send_notification(
        self, title: str, options: dict[str, Any] | None = None
    ) -> Notification | None:
        """Show a local notification if permission was granted."""
        if self.notifications is None:
            return None
        if self.notifications.permission != NotificationPermission.GRANTED:
            logger.debug("notification_suppressed", title=title)
            return None
        merged = {
            "icon": self.settings.notification_icon,
            "badge": self.settings.notification_badge,
            **(options or {}),
        }
        return self.notifications.show(title, merged)

    # -------------------------------------------------------------------------
    # Network and cache
    # -------------------------------------------------------------------------

    def network_status(self) -> NetworkStatus:
        return self._network

    def set_network_status(self, online: bool, effective_type: str | None = None) -> None:
        self._network = NetworkStatus(online=online, effective_type=effective_type)

    async def clear_cache(self) -> int:
        if self.cache is None:
            return 0
        return await self.cache.clear_cache()

    async def check_for_updates(self) -> bool:
        if self.cache is None:
            return False
        return await self.cache.check_for_updates()

    async def activate_update(self) -> bool:
        if self.cache is None:
            return False
        return await self.cache.activate_update()
