"""Request context middleware and error handlers for the gateway.

Every response carries X-Request-ID (echoed from the request or newly
generated). Errors are rendered as the SportsAppError envelope:

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": ...}}
"""

import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sportsapp.config import Settings
from sportsapp.core.exceptions import SportsAppError
from sportsapp.core.logging import clear_correlation_id, get_logger, set_correlation_id

REQUEST_ID_HEADER = "X-Request-ID"

request_logger = get_logger("sportsapp.request")
error_logger = get_logger("sportsapp.errors")


async def request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind the request ID and log one line per finished request."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    set_correlation_id(request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        request_logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            duration_ms=_elapsed_ms(started),
            error=str(e),
        )
        raise
    else:
        request_logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            destination=request.headers.get("sec-fetch-dest"),
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_correlation_id()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


async def sportsapp_error_handler(request: Request, exc: SportsAppError) -> JSONResponse:
    log = error_logger.error if exc.status_code >= 500 else error_logger.warning
    log(
        "request_error",
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(request_id=getattr(request.state, "request_id", None)),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error_logger.exception(
        "unhandled_error",
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=SportsAppError().to_dict(
            request_id=getattr(request.state, "request_id", None)
        ),
    )


def install(app: FastAPI, settings: Settings) -> None:
    """Register CORS, the request context middleware and the error handlers."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.middleware("http")(request_context)
    app.add_exception_handler(SportsAppError, sportsapp_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
