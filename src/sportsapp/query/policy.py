"""Visibility and connection adaptation for the query client.

The page environment emits three kinds of signals; this policy turns them
into query-cache actions:

- visibility: hidden pages poll 3x slower and drop entries older than
  10 minutes; becoming visible again invalidates the critical views
- online/offline: going offline cancels in-flight fetches, coming back
  invalidates everything
- connection class: 2g-class links widen every polling interval, fast
  links restore the tier defaults
"""

from enum import Enum

import structlog

from sportsapp.query.cache import QueryClient, QueryKey

logger = structlog.get_logger(__name__)

CRITICAL_PREFIXES: tuple[QueryKey, ...] = (
    ("/api/posts",),
    ("/api/conversations/unread-count",),
    ("/api/notifications/unread-count",),
)

# Substring patterns for batch invalidation
CACHE_PATTERNS = {
    "POSTS": "/api/posts",
    "USERS": "/api/users",
    "CONVERSATIONS": "/api/conversations",
    "NOTIFICATIONS": "/api/notifications",
    "ADMIN": "/api/admin",
}


class ConnectionType(str, Enum):
    """Network Information API effective connection types."""

    SLOW_2G = "slow-2g"
    TWO_G = "2g"
    THREE_G = "3g"
    FOUR_G = "4g"


# Widened default polling interval per degraded connection class (seconds)
CONNECTION_POLLING: dict[ConnectionType, float] = {
    ConnectionType.SLOW_2G: 60.0,
    ConnectionType.TWO_G: 60.0,
    ConnectionType.THREE_G: 30.0,
}


class QueryEnvironmentPolicy:
    """Applies page-environment signals to a QueryClient."""

    def __init__(self, client: QueryClient) -> None:
        self.client = client
        self.connection: ConnectionType | None = None

    @property
    def hidden(self) -> bool:
        return not self.client.visible

    def on_visibility_change(self, hidden: bool) -> list[QueryKey]:
        """Handle a visibility change.

        Returns:
            Keys invalidated on becoming visible (empty when hiding)
        """
        self.client.visible = not hidden
        if hidden:
            aged = self.client.remove_older_than()
            bounded = self.client.enforce_max_entries()
            logger.info("page_hidden", aged_out=aged, evicted=bounded)
            return []
        invalidated: list[QueryKey] = []
        for prefix in CRITICAL_PREFIXES:
            invalidated.extend(self.client.invalidate_queries(prefix))
        logger.info("page_visible", invalidated=len(invalidated))
        return invalidated

    def on_online(self) -> list[QueryKey]:
        self.client.online = True
        keys = self.client.invalidate_queries()
        logger.info("connection_online", invalidated=len(keys))
        return keys

    def on_offline(self) -> int:
        self.client.online = False
        cancelled = self.client.cancel_queries()
        logger.info("connection_offline", cancelled=cancelled)
        return cancelled

    def on_connection_change(self, effective_type: str | None) -> float | None:
        """Adjust default polling for the reported connection class.

        Returns:
            The default polling interval now in force (None = tier defaults)
        """
        try:
            connection = ConnectionType(effective_type) if effective_type else None
        except ValueError:
            logger.debug("unknown_connection_type", effective_type=effective_type)
            connection = None
        self.connection = connection
        interval = CONNECTION_POLLING.get(connection) if connection else None
        if interval != self.client.default_refetch_interval:
            self.client.set_default_refetch_interval(interval)
        return interval

    def invalidate_patterns(self, *names: str) -> list[QueryKey]:
        """Batch-invalidate by CACHE_PATTERNS names (e.g. "POSTS", "ADMIN")."""
        return self.client.invalidate_matching(CACHE_PATTERNS[name] for name in names)
