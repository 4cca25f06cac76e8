"""Query cache: staleness tiers, the async query client and invalidation policy."""

from sportsapp.query.cache import (
    QueryCache,
    QueryClient,
    QueryEntry,
    QueryKey,
    QueryObserver,
    key_matches,
    normalize_key,
)
from sportsapp.query.invalidation import (
    Entity,
    InvalidationGraph,
    InvalidationPolicy,
    MutationType,
    QueryView,
    build_default_graph,
)
from sportsapp.query.policy import (
    CACHE_PATTERNS,
    ConnectionType,
    QueryEnvironmentPolicy,
)
from sportsapp.query.profiles import (
    QUERY_PROFILES,
    QueryTier,
    StalenessProfile,
    get_profile,
)

__all__ = [
    # Cache
    "QueryCache",
    "QueryClient",
    "QueryEntry",
    "QueryKey",
    "QueryObserver",
    "key_matches",
    "normalize_key",
    # Profiles
    "QUERY_PROFILES",
    "QueryTier",
    "StalenessProfile",
    "get_profile",
    # Invalidation
    "Entity",
    "InvalidationGraph",
    "InvalidationPolicy",
    "MutationType",
    "QueryView",
    "build_default_graph",
    # Environment
    "CACHE_PATTERNS",
    "ConnectionType",
    "QueryEnvironmentPolicy",
]
