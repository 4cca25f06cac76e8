"""Tests for the PWA manager and its capabilities."""

from collections.abc import Callable

import pytest

from sportsapp.config import Settings
from sportsapp.offline.notifications import NotificationPermission, RecordingNotificationSender
from sportsapp.offline.registration import ServiceWorkerRegistration
from sportsapp.offline.storage import MemoryCacheStorage
from sportsapp.offline.worker import OfflineAssetCache
from sportsapp.services.pwa import (
    DeferredInstallPrompt,
    InstallOutcome,
    NetworkStatus,
    PWAManager,
    RegistrationCacheController,
)


class ScriptedPrompt:
    """Install prompt that answers with a fixed outcome."""

    def __init__(self, outcome: InstallOutcome) -> None:
        self.outcome = outcome
        self.shown = 0

    async def prompt(self) -> InstallOutcome:
        self.shown += 1
        return self.outcome


# =============================================================================
# Install
# =============================================================================


class TestInstall:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"display_mode": "standalone"},
            {"standalone": True},
            {"referrer": "android-app://com.sportsapp"},
        ],
    )
    def test_standalone_detection(self, kwargs: dict) -> None:
        assert PWAManager(DeferredInstallPrompt(**kwargs)).is_installed

    def test_browser_tab_is_not_installed(self, test_settings: Settings) -> None:
        pwa = PWAManager(DeferredInstallPrompt(), settings=test_settings)
        assert not pwa.is_installed
        assert not pwa.is_installable

    @pytest.mark.asyncio
    async def test_install_without_prompt(self, test_settings: Settings) -> None:
        assert await PWAManager(DeferredInstallPrompt(), settings=test_settings).install() is False

    @pytest.mark.asyncio
    async def test_accepted_prompt_is_consumed(self, test_settings: Settings) -> None:
        installer = DeferredInstallPrompt()
        prompt = ScriptedPrompt(InstallOutcome.ACCEPTED)
        installer.capture(prompt)
        pwa = PWAManager(installer, settings=test_settings)

        assert pwa.is_installable
        assert await pwa.install() is True
        assert not pwa.is_installable
        assert prompt.shown == 1

    @pytest.mark.asyncio
    async def test_dismissed_prompt_is_kept(self, test_settings: Settings) -> None:
        installer = DeferredInstallPrompt()
        installer.capture(ScriptedPrompt(InstallOutcome.DISMISSED))
        pwa = PWAManager(installer, settings=test_settings)

        assert await pwa.install() is False
        assert pwa.is_installable

    def test_installed_event_clears_prompt(self) -> None:
        installer = DeferredInstallPrompt()
        installer.capture(ScriptedPrompt(InstallOutcome.ACCEPTED))
        installer.installed()
        assert not installer.has_deferred_prompt()


# =============================================================================
# Notifications
# =============================================================================


class TestNotifications:
    @pytest.mark.asyncio
    async def test_without_sender_permission_is_denied(self, test_settings: Settings) -> None:
        pwa = PWAManager(DeferredInstallPrompt(), settings=test_settings)
        assert await pwa.request_notification_permission() == NotificationPermission.DENIED
        assert pwa.send_notification("hi") is None
        assert not pwa.is_supported

    @pytest.mark.asyncio
    async def test_prompts_only_while_undecided(self, test_settings: Settings) -> None:
        sender = RecordingNotificationSender(
            permission=NotificationPermission.DEFAULT,
            grant_on_request=NotificationPermission.GRANTED,
        )
        pwa = PWAManager(DeferredInstallPrompt(), notifications=sender, settings=test_settings)

        assert await pwa.request_notification_permission() == NotificationPermission.GRANTED

        denied = RecordingNotificationSender(permission=NotificationPermission.DENIED)
        pwa = PWAManager(DeferredInstallPrompt(), notifications=denied, settings=test_settings)
        assert await pwa.request_notification_permission() == NotificationPermission.DENIED

    def test_send_merges_default_icons(
        self, notifications: RecordingNotificationSender, test_settings: Settings
    ) -> None:
        pwa = PWAManager(
            DeferredInstallPrompt(), notifications=notifications, settings=test_settings
        )

        shown = pwa.send_notification("Drill approved", {"body": "+10 points", "icon": "/x.png"})

        assert shown is not None
        assert shown.options == {
            "icon": "/x.png",
            "badge": test_settings.notification_badge,
            "body": "+10 points",
        }

    def test_send_suppressed_without_permission(self, test_settings: Settings) -> None:
        sender = RecordingNotificationSender(permission=NotificationPermission.DEFAULT)
        pwa = PWAManager(DeferredInstallPrompt(), notifications=sender, settings=test_settings)

        assert pwa.send_notification("hi") is None
        assert sender.shown == []


# =============================================================================
# Network and Cache
# =============================================================================


class TestNetworkStatus:
    def test_defaults_online(self, test_settings: Settings) -> None:
        pwa = PWAManager(DeferredInstallPrompt(), settings=test_settings)
        assert pwa.network_status() == NetworkStatus(online=True)

        pwa.set_network_status(False, "2g")
        assert pwa.network_status() == NetworkStatus(online=False, effective_type="2g")


class TestCacheControl:
    @pytest.mark.asyncio
    async def test_without_controller(self, test_settings: Settings) -> None:
        pwa = PWAManager(DeferredInstallPrompt(), settings=test_settings)
        assert await pwa.clear_cache() == 0
        assert await pwa.check_for_updates() is False
        assert await pwa.activate_update() is False

    @pytest.mark.asyncio
    async def test_clear_cache_deletes_every_generation(
        self,
        registration: ServiceWorkerRegistration,
        memory_storage: MemoryCacheStorage,
        notifications: RecordingNotificationSender,
        test_settings: Settings,
    ) -> None:
        await memory_storage.open("other")
        pwa = PWAManager(
            DeferredInstallPrompt(),
            notifications=notifications,
            cache=RegistrationCacheController(registration, memory_storage),
            settings=test_settings,
        )

        assert pwa.is_supported
        assert await pwa.clear_cache() == 2
        assert await memory_storage.keys() == []

    @pytest.mark.asyncio
    async def test_update_flow(
        self,
        registration: ServiceWorkerRegistration,
        memory_storage: MemoryCacheStorage,
        make_worker: Callable[..., OfflineAssetCache],
        test_settings: Settings,
    ) -> None:
        async def newest() -> OfflineAssetCache:
            return make_worker("sportsapp-v2")

        pwa = PWAManager(
            DeferredInstallPrompt(),
            cache=RegistrationCacheController(registration, memory_storage, newest),
            settings=test_settings,
        )

        assert await pwa.check_for_updates() is True
        assert await pwa.activate_update() is True
        assert registration.active is not None
        assert registration.active.version == "sportsapp-v2"
        assert await pwa.activate_update() is False

    @pytest.mark.asyncio
    async def test_no_update_without_active_worker(
        self, memory_storage: MemoryCacheStorage, test_settings: Settings
    ) -> None:
        controller = RegistrationCacheController(ServiceWorkerRegistration(), memory_storage)
        assert await controller.check_for_updates() is False
