"""Gateway settings, read from the environment and an optional ``.env`` file.

Field names map to upper-case variables, e.g. ``CACHE_VERSION=sportsapp-v2``
or ``CACHE_BACKEND=redis``. Settings are validated once and cached by
``get_settings()``; tests build ``Settings(...)`` directly.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Renderer for log output."""

    JSON = "json"
    CONSOLE = "console"


class CacheBackend(str, Enum):
    """Backing store for cache storage and local storage."""

    MEMORY = "memory"
    REDIS = "redis"


DEFAULT_PRECACHE_URLS = [
    "/",
    "/static/js/bundle.js",
    "/static/css/main.css",
    "/manifest.json",
    "/icons/icon-192x192.png",
    "/icons/icon-512x512.png",
]


class Settings(BaseSettings):
    """Gateway, offline cache and query cache settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Service
    # ========================================
    app_env: Environment = Environment.DEVELOPMENT
    debug: bool = False
    app_name: str = "SportsApp Gateway"
    app_version: str = "0.1.0"
    log_level: LogLevel = LogLevel.INFO
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="Forced to json in production",
    )
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # ========================================
    # Upstream origin
    # ========================================
    upstream_origin: str = Field(
        default="http://localhost:5000",
        description="SportsApp origin fronted by the gateway",
    )
    upstream_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds per upstream request; unset means no timeout",
    )

    # ========================================
    # Cache storage
    # ========================================
    cache_backend: CacheBackend = Field(
        default=CacheBackend.MEMORY,
        description="Backing store for offline caches and local storage",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Used when cache_backend is redis",
    )

    # ========================================
    # Offline asset cache
    # ========================================
    cache_version: str = Field(
        default="sportsapp-v1",
        min_length=1,
        description="Cache version tag; caches with any other name are purged",
    )
    precache_urls: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRECACHE_URLS),
        description="App shell URLs stored at install time",
    )
    offline_page: str = Field(
        default="/offline.html",
        description="Page served for navigations when the network is unreachable",
    )
    notification_icon: str = "/icons/icon-192x192.png"
    notification_badge: str = "/icons/icon-72x72.png"

    # ========================================
    # REST client
    # ========================================
    api_base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the SportsApp REST API",
    )

    # ========================================
    # Query cache
    # ========================================
    query_cache_max_entries: int = Field(
        default=50,
        ge=1,
        description="Entry count above which unobserved entries are evicted",
    )
    query_cache_evict_fraction: float = Field(
        default=0.25,
        gt=0,
        le=1,
        description="Fraction of unobserved entries evicted per bounding sweep",
    )
    query_max_age_seconds: float = Field(
        default=600,
        gt=0,
        description="Age above which entries are swept when the page is hidden",
    )
    hidden_poll_multiplier: int = Field(
        default=3,
        ge=1,
        description="Polling interval multiplier while the page is hidden",
    )

    # ========================================
    # Local storage
    # ========================================
    saved_logins_limit: int = Field(default=5, ge=1)
    recent_searches_limit: int = Field(default=3, ge=1)

    @property
    def is_development(self) -> bool:
        return self.app_env is Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.app_env is Environment.PRODUCTION

    @property
    def use_json_logs(self) -> bool:
        return self.is_production or self.log_format is LogFormat.JSON

    @property
    def use_redis(self) -> bool:
        return self.cache_backend is CacheBackend.REDIS


@lru_cache
def get_settings() -> Settings:
    """Settings for the running process, read from the environment once."""
    return Settings()
