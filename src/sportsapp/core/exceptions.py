"""Errors raised by the gateway, the REST client and the query layer.

Every error has a stable ``code`` and the HTTP status the gateway answers
with. ``to_dict`` renders the body the error handlers send:

    {"error": {"code": "NETWORK_ERROR", "message": "...", "request_id": "..."}}

ApiError keeps the server text in its message, e.g.
``raise ApiError(status=403, text="Admin access required")``.
"""

from typing import Any


def _compact(**values: Any) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


class SportsAppError(Exception):
    """Root of the hierarchy; subclasses override the class-level defaults."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or type(self).message
        self.code = code or type(self).code
        self.details: dict[str, Any] = dict(details) if details else {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        body = _compact(
            code=self.code,
            message=self.message,
            request_id=request_id or None,
            details=self.details or None,
        )
        return {"error": body}


# =============================================================================
# REST and network (502, 503)
# =============================================================================


class ApiError(SportsAppError):
    """Raised when a REST call returns a non-2xx status.

    The message keeps the "<status>: <server text>" shape so callers can
    surface the server-provided text unchanged.
    """

    code: str = "API_ERROR"
    message: str = "API request failed"
    status_code: int = 502

    def __init__(self, status: int, text: str = "", url: str | None = None) -> None:
        self.status = status
        self.text = text
        super().__init__(
            message=f"{status}: {text}",
            details=_compact(status=status, url=url or None),
        )


class UnauthorizedError(ApiError):
    """Raised when a REST call is rejected with 401."""

    code: str = "UNAUTHORIZED"

    def __init__(self, text: str = "Unauthorized", url: str | None = None) -> None:
        super().__init__(status=401, text=text, url=url)


class NetworkError(SportsAppError):
    """Raised when the transport fails before any response arrives."""

    code: str = "NETWORK_ERROR"
    message: str = "Network request failed"
    status_code: int = 503

    def __init__(self, url: str | None = None, error: str | None = None) -> None:
        super().__init__(details=_compact(url=url, error=error))


# =============================================================================
# Offline cache (500, 503, 504)
# =============================================================================


class CacheStorageError(SportsAppError):
    """Raised when a cache storage operation is rejected."""

    code: str = "CACHE_STORAGE_ERROR"
    message: str = "Cache storage operation failed"


class InstallError(SportsAppError):
    """Raised when a precache batch cannot be stored."""

    code: str = "INSTALL_FAILED"
    message: str = "Failed to precache app shell"

    def __init__(self, url: str | None = None, error: str | None = None) -> None:
        super().__init__(
            message=f"Failed to precache {url}" if url else None,
            details=_compact(url=url, error=error),
        )


class WorkerNotActiveError(SportsAppError):
    code: str = "WORKER_NOT_ACTIVE"
    message: str = "No active offline worker"
    status_code: int = 503


class OfflineResponseUnavailableError(SportsAppError):
    """The network failed and nothing is cached for a non-navigation request."""

    code: str = "NETWORK_ERROR"
    message: str = "Network request failed and no cached response exists"
    status_code: int = 504

    def __init__(self, url: str) -> None:
        super().__init__(details={"url": url})


# =============================================================================
# Bad input (400)
# =============================================================================


class ValidationError(SportsAppError):
    """Bad caller input; ``field`` names the offending argument."""

    code: str = "VALIDATION_ERROR"
    message: str = "Invalid input"
    status_code: int = 400

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, details={**(details or {}), **_compact(field=field)})


class InvalidQueryKeyError(ValidationError):
    """Raised when a query key is empty or does not start with a path."""

    code: str = "INVALID_QUERY_KEY"
    message: str = "Query keys must start with a resource path"

    def __init__(self, key: Any = None) -> None:
        super().__init__(field="query_key", details={"query_key": repr(key)})


class UnknownMutationError(ValidationError):
    """Raised when no invalidation rule exists for a mutation."""

    code: str = "UNKNOWN_MUTATION"
    message: str = "No invalidation rule for mutation"

    def __init__(self, mutation: str) -> None:
        super().__init__(
            message=f"No invalidation rule for mutation {mutation!r}",
            field="mutation",
        )


class MissingRouteParamError(ValidationError):
    """Raised when a path template is rendered without a required parameter."""

    code: str = "MISSING_ROUTE_PARAM"
    message: str = "Missing route parameter"

    def __init__(self, template: str, param: str) -> None:
        super().__init__(
            message=f"Missing parameter {param!r} for {template}",
            field=param,
        )
