"""Worker registration and the "new version available" update flow.

A registration holds at most one active worker and one waiting worker.
A newly installed version waits until the page asks it to skip waiting,
then it is activated and purges the previous cache generation.
"""

from typing import Any

import structlog

from sportsapp.offline.worker import OfflineAssetCache, WorkerState

logger = structlog.get_logger(__name__)


class ServiceWorkerRegistration:
    """Tracks the active and waiting workers for one scope."""

    def __init__(self) -> None:
        self.active: OfflineAssetCache | None = None
        self.waiting: OfflineAssetCache | None = None

    async def register(self, worker: OfflineAssetCache) -> OfflineAssetCache:
        """Install a worker and activate it if nothing is active yet."""
        await worker.install()
        if self.active is None:
            await self._activate(worker)
        else:
            self._set_waiting(worker)
        return worker

    async def update(self, worker: OfflineAssetCache) -> bool:
        """Install a new version alongside the active one.

        Returns:
            True if an update is now waiting
        """
        if self.active is not None and worker.version == self.active.version:
            logger.debug("update_not_needed", version=worker.version)
            return False
        await worker.install()
        if self.active is None:
            await self._activate(worker)
            return False
        self._set_waiting(worker)
        return True

    @property
    def update_available(self) -> bool:
        return self.waiting is not None

    async def post_message(self, message: dict[str, Any]) -> bool:
        """Forward a page message to the waiting worker (or the active one).

        Returns:
            True if a waiting worker was promoted to active
        """
        target = self.waiting or self.active
        if target is None:
            return False
        skip = target.handle_message(message)
        if skip and target is self.waiting:
            await self._activate(target)
            return True
        return False

    def _set_waiting(self, worker: OfflineAssetCache) -> None:
        if self.waiting is not None:
            self.waiting.state = WorkerState.REDUNDANT
        self.waiting = worker
        logger.info("worker_waiting", version=worker.version)

    async def _activate(self, worker: OfflineAssetCache) -> None:
        previous = self.active
        deleted = await worker.activate()
        if previous is not None:
            previous.state = WorkerState.REDUNDANT
        self.active = worker
        if self.waiting is worker:
            self.waiting = None
        logger.info(
            "worker_activated",
            version=worker.version,
            previous=previous.version if previous else None,
            deleted_caches=deleted,
        )
