"""Staleness profiles for query tiers.

Each logical resource is assigned exactly one tier when its query is
defined. The tier decides how often an observed query is polled and how
long a fetched value is trusted before the next observation refetches it.

    Tier      Polling   Stale after   Kept unobserved
    realtime  3s        1s            5 min
    frequent  10s       5s            10 min
    static    never     30 min        60 min
    admin     15s       10s           15 min

Polling slows down (interval multiplied, 3x by default) while the page is
hidden.
"""

from dataclasses import dataclass
from enum import Enum


class QueryTier(str, Enum):
    """Query staleness tiers."""

    REALTIME = "realtime"
    FREQUENT = "frequent"
    STATIC = "static"
    ADMIN = "admin"


@dataclass(frozen=True)
class StalenessProfile:
    """Polling and staleness configuration for one tier (seconds)."""

    tier: QueryTier
    refetch_interval: float | None
    stale_time: float
    cache_time: float

    def polling_interval(
        self, visible: bool = True, hidden_multiplier: int = 3
    ) -> float | None:
        """Polling interval adjusted for page visibility.

        Returns:
            Seconds between background refetches, or None when the tier
            does not poll
        """
        if self.refetch_interval is None:
            return None
        if visible:
            return self.refetch_interval
        return self.refetch_interval * hidden_multiplier


QUERY_PROFILES: dict[QueryTier, StalenessProfile] = {
    QueryTier.REALTIME: StalenessProfile(
        tier=QueryTier.REALTIME,
        refetch_interval=3.0,
        stale_time=1.0,
        cache_time=5 * 60.0,
    ),
    QueryTier.FREQUENT: StalenessProfile(
        tier=QueryTier.FREQUENT,
        refetch_interval=10.0,
        stale_time=5.0,
        cache_time=10 * 60.0,
    ),
    QueryTier.STATIC: StalenessProfile(
        tier=QueryTier.STATIC,
        refetch_interval=None,
        stale_time=30 * 60.0,
        cache_time=60 * 60.0,
    ),
    QueryTier.ADMIN: StalenessProfile(
        tier=QueryTier.ADMIN,
        refetch_interval=15.0,
        stale_time=10.0,
        cache_time=15 * 60.0,
    ),
}

DEFAULT_TIER = QueryTier.STATIC


def get_profile(tier: QueryTier | str | None = None) -> StalenessProfile:
    """Look up the profile for a tier (defaults to static).

    Raises:
        ValueError: If the tier name is unknown
    """
    if tier is None:
        return QUERY_PROFILES[DEFAULT_TIER]
    return QUERY_PROFILES[QueryTier(tier)]
