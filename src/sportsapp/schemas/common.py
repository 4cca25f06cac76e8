"""Shared schemas: the base model, the error envelope and health probes."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base for request and response bodies of the worker routes."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# Errors
# =============================================================================


class ErrorDetail(BaseModel):
    """Body of every gateway error (see SportsAppError.to_dict)."""

    code: str = Field(..., description='Error code, e.g. "NETWORK_ERROR"')
    message: str
    request_id: str | None = Field(None, description="Echo of X-Request-ID")
    details: dict[str, Any] | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "NETWORK_ERROR",
                "message": "Network request failed and no cached response exists",
                "request_id": "abc-123-def-456",
                "details": {"url": "http://localhost:5000/static/js/bundle.js"},
            }
        }
    )


class ErrorResponse(BaseModel):
    error: ErrorDetail


# =============================================================================
# Health
# =============================================================================


class HealthCheckResponse(BaseModel):
    status: str = Field(..., pattern="^(ok|error)$")
    checks: dict[str, str] | None = Field(
        None, description="Per-dependency results (readiness only)"
    )
