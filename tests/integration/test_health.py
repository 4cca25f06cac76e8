"""Probe endpoints and the request ID middleware."""

import pytest
from httpx import AsyncClient

from sportsapp.dependencies import set_cache_storage, set_registration
from sportsapp.offline.registration import ServiceWorkerRegistration
from sportsapp.offline.storage import MemoryCacheStorage


class UnreachableStorage(MemoryCacheStorage):
    async def ping(self) -> bool:
        return False


# =============================================================================
# Probes
# =============================================================================


class TestProbes:
    @pytest.mark.asyncio
    async def test_live(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_with_active_worker(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "checks": {"cache_storage": "ok", "worker": "ok"},
        }

    @pytest.mark.asyncio
    async def test_not_ready_before_activation(self, async_client: AsyncClient) -> None:
        set_registration(ServiceWorkerRegistration())

        response = await async_client.get("/health/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "error"
        assert body["checks"]["worker"] == "error"

    @pytest.mark.asyncio
    async def test_not_ready_when_storage_down(self, async_client: AsyncClient) -> None:
        set_cache_storage(UnreachableStorage())

        response = await async_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["cache_storage"] == "error"


# =============================================================================
# Request IDs
# =============================================================================


class TestRequestId:
    @pytest.mark.asyncio
    async def test_generated_when_missing(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/health/live")

        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_client_value_echoed(self, async_client: AsyncClient) -> None:
        response = await async_client.get(
            "/health/live", headers={"X-Request-ID": "match-day-42"}
        )

        assert response.headers["X-Request-ID"] == "match-day-42"
