"""Structured logging for the gateway and the query layer.

Everything logs through structlog; the standard library root logger only
hosts the output handler so uvicorn and httpx records share the format.

- JSON lines in production, colored console output in development
- Every entry carries the service name and, inside a request, the
  X-Request-ID as `correlation_id`
- Credential fields (quick-login tokens, admin passwords) are masked

Usage:
    from sportsapp.core.logging import configure_logging, get_logger

    configure_logging(settings)
    logger = get_logger(__name__)
    logger.info("cache_put", cache="sportsapp-v1", url="/manifest.json")
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from sportsapp.config import Settings, get_settings

correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Event keys whose values never reach the log output
SENSITIVE_KEYS = frozenset({"token", "password", "authorization", "cookie"})
MASK = "***"

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "redis")


# -----------------------------------------------------------------------------
# Correlation IDs
# -----------------------------------------------------------------------------


def get_correlation_id() -> str | None:
    return correlation_id_ctx.get()


def set_correlation_id(correlation_id: str) -> None:
    """Bind the request ID for the current task."""
    correlation_id_ctx.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_ctx.set(None)


# -----------------------------------------------------------------------------
# Processors
# -----------------------------------------------------------------------------


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def mask_sensitive(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Replace credential values, including inside nested dicts."""
    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = MASK
        elif isinstance(value, dict):
            event_dict[key] = {
                k: MASK if str(k).lower() in SENSITIVE_KEYS else v for k, v in value.items()
            }
    return event_dict


def service_context(service: str) -> Processor:
    """Processor stamping the service name on every entry."""

    def add_service(
        logger: logging.Logger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


# -----------------------------------------------------------------------------
# Setup
# -----------------------------------------------------------------------------


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the root handler.

    Args:
        settings: Application settings (defaults to get_settings())
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.value, logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_correlation_id,
        service_context(settings.app_name),
        mask_sensitive,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if settings.use_json_logs:
        renderer = structlog.processors.JSONRenderer()
        processors = [*shared_processors, structlog.processors.format_exc_info, renderer]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        processors = [*shared_processors, renderer]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )
    handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, typically get_logger(__name__)."""
    return structlog.get_logger(name)


def bind_cache_version(cache_version: str, **extra: Any) -> Any:
    """Context manager adding the cache generation to every entry inside it.

    Example:
        with bind_cache_version("sportsapp-v2"):
            await registration.register(worker)
    """
    return structlog.contextvars.bound_contextvars(cache_version=cache_version, **extra)
