"""Liveness and readiness probes.

Ready means requests can be answered offline: the cache storage backend
responds and a worker generation is active.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from sportsapp.dependencies import get_cache_storage, get_registration
from sportsapp.schemas.common import HealthCheckResponse

router = APIRouter(prefix="/health", tags=["Health"])


async def _storage_check() -> bool:
    try:
        return await get_cache_storage().ping()
    except RuntimeError:
        return False


def _worker_check() -> bool:
    try:
        return get_registration().active is not None
    except RuntimeError:
        return False


@router.get(
    "/live",
    summary="Liveness probe",
    response_model=HealthCheckResponse,
    response_model_exclude_none=True,
)
async def liveness() -> HealthCheckResponse:
    return HealthCheckResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness probe",
    response_model=HealthCheckResponse,
    responses={503: {"model": HealthCheckResponse, "description": "Not ready"}},
)
async def readiness() -> JSONResponse:
    """Check cache storage and the active worker; 503 until both pass."""
    checks = {
        "cache_storage": "ok" if await _storage_check() else "error",
        "worker": "ok" if _worker_check() else "error",
    }
    ready = all(v == "ok" for v in checks.values())
    body = HealthCheckResponse(status="ok" if ready else "error", checks=checks)
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(exclude_none=True),
    )
