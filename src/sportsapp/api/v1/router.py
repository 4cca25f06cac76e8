"""API v1 main router.

Aggregates the worker control routers into a single router for inclusion
in the app under the /_sw prefix.
"""

from fastapi import APIRouter

from sportsapp.api.v1.worker import router as worker_router

router = APIRouter()

router.include_router(worker_router, tags=["Worker"])
