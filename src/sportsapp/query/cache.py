"""Client-side query cache with staleness tiers and invalidation.

This module provides the data-fetching layer used by every read view:
- Entries keyed by an ordered tuple (resource path + parameters)
- Tier-based staleness windows (see sportsapp.query.profiles)
- De-duplication: one in-flight fetch per key, shared by all callers
- Bounded retry for transient failures
- Prefix invalidation with background refetch of observed entries
- Bounding sweeps so the cache does not grow without limit

Key matching is element-wise prefix matching:
    ("/api/posts",) matches ("/api/posts", "all") and ("/api/posts", 7, "comments")
    ("/api/posts",) does not match ("/api/admin/posts",)
"""

import asyncio
import json
import math
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from sportsapp.config import Settings, get_settings
from sportsapp.core.exceptions import InvalidQueryKeyError
from sportsapp.query.profiles import QueryTier, StalenessProfile, get_profile

logger = structlog.get_logger(__name__)

QueryKey = tuple[Any, ...]
QueryFn = Callable[[QueryKey], Awaitable[Any]]
KeyPredicate = Callable[[QueryKey], bool]
Retry = bool | int | None

# Status codes that are never retried
NON_RETRYABLE_STATUSES = frozenset({404, 500})
DEFAULT_MAX_RETRIES = 2
MAX_RETRY_DELAY = 30.0


# -----------------------------------------------------------------------------
# Keys
# -----------------------------------------------------------------------------


def normalize_key(key: Sequence[Any] | str) -> QueryKey:
    """Convert a key to a tuple and check it starts with a path.

    Raises:
        InvalidQueryKeyError: If the key is empty or has no leading path
    """
    parts = (key,) if isinstance(key, str) else tuple(key)
    if not parts or not isinstance(parts[0], str) or not parts[0]:
        raise InvalidQueryKeyError(key)
    return parts


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    """Element-wise prefix match."""
    return len(prefix) <= len(key) and key[: len(prefix)] == prefix


def hash_key(key: QueryKey) -> str:
    """Stable string form of a key."""
    return json.dumps(list(key), default=str, separators=(",", ":"))


# -----------------------------------------------------------------------------
# Retry policy
# -----------------------------------------------------------------------------


def should_retry(failure_count: int, error: BaseException, retry: Retry = None) -> bool:
    """Decide whether a failed fetch is attempted again.

    Args:
        failure_count: Failures before this one (0 on the first failure)
        error: The error raised by the query function
        retry: Per-query override: False/0 disables, an int caps the number
            of retries, None applies the default policy

    Returns:
        True if another attempt should be made
    """
    if retry is False:
        return False
    if retry is True:
        return True
    if isinstance(retry, int):
        return failure_count < retry
    status = getattr(error, "status", None)
    if status in NON_RETRYABLE_STATUSES:
        return False
    return failure_count < DEFAULT_MAX_RETRIES


def default_retry_delay(attempt: int) -> float:
    """Exponential backoff: 1s, 2s, 4s... capped at 30s."""
    return min(1.0 * 2**attempt, MAX_RETRY_DELAY)


# -----------------------------------------------------------------------------
# Entries
# -----------------------------------------------------------------------------


@dataclass
class QueryEntry:
    """Cached state for one query key."""

    key: QueryKey
    profile: StalenessProfile
    data: Any = None
    error: BaseException | None = None
    data_updated_at: float | None = None
    invalidated: bool = False
    observers: int = 0
    unobserved_since: float = 0.0
    fetch_count: int = 0
    query_fn: QueryFn | None = None
    retry: Retry = None
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def has_data(self) -> bool:
        return self.data_updated_at is not None

    @property
    def is_fetching(self) -> bool:
        return self.task is not None and not self.task.done()

    def is_stale(self, now: float) -> bool:
        if self.invalidated or self.data_updated_at is None:
            return True
        return now - self.data_updated_at > self.profile.stale_time

    def age(self, now: float) -> float:
        if self.data_updated_at is None:
            return math.inf
        return now - self.data_updated_at


class QueryCache:
    """Entry store indexed by hashed key."""

    def __init__(self) -> None:
        self._entries: dict[str, QueryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: QueryKey) -> QueryEntry | None:
        return self._entries.get(hash_key(key))

    def build(self, key: QueryKey, profile: StalenessProfile, now: float) -> QueryEntry:
        """Return the entry for key, creating it if missing."""
        entry = self.get(key)
        if entry is None:
            entry = QueryEntry(key=key, profile=profile, unobserved_since=now)
            self._entries[hash_key(key)] = entry
        return entry

    def remove(self, entry: QueryEntry) -> None:
        if entry.task is not None and not entry.task.done():
            entry.task.cancel()
        self._entries.pop(hash_key(entry.key), None)

    def all(self) -> list[QueryEntry]:
        return list(self._entries.values())

    def find_all(
        self,
        prefix: QueryKey | None = None,
        predicate: KeyPredicate | None = None,
    ) -> list[QueryEntry]:
        """Entries matching a key prefix and/or a predicate (all if neither)."""
        return [
            e
            for e in self._entries.values()
            if (prefix is None or key_matches(e.key, prefix))
            and (predicate is None or predicate(e.key))
        ]

    def clear(self) -> None:
        for entry in self.all():
            self.remove(entry)


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class QueryClient:
    """Async query client.

    Usage:
        ```python
        client = QueryClient()
        posts = await client.fetch_query(("/api/posts", "all"), fetch, tier="frequent")
        client.invalidate_queries(("/api/posts",))
        ```
    """

    def __init__(
        self,
        cache: QueryCache | None = None,
        *,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        retry_delay: Callable[[int], float] = default_retry_delay,
    ) -> None:
        self.cache = cache or QueryCache()
        self.settings = settings or get_settings()
        self.clock = clock
        self.retry_delay = retry_delay
        self.visible = True
        self.online = True
        self.default_refetch_interval: float | None = None

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_query(
        self,
        key: Sequence[Any] | str,
        fn: QueryFn | None = None,
        *,
        tier: QueryTier | str | None = None,
        profile: StalenessProfile | None = None,
        retry: Retry = None,
    ) -> Any:
        """Return cached data if fresh, otherwise fetch it.

        Concurrent calls for the same key share a single fetch.

        Raises:
            ValueError: If no query function is known for the key
            Exception: Whatever the query function raised after retries
        """
        entry = self._entry(key, fn, tier=tier, profile=profile, retry=retry)
        if not entry.is_stale(self.clock()):
            logger.debug("query_cache_hit", key=entry.key)
            return entry.data
        return await self._fetch(entry)

    async def prefetch_query(
        self,
        key: Sequence[Any] | str,
        fn: QueryFn,
        *,
        tier: QueryTier | str | None = None,
    ) -> None:
        """Warm the cache; failures are logged, not raised."""
        try:
            await self.fetch_query(key, fn, tier=tier)
        except Exception as e:
            logger.warning("prefetch_failed", key=key, error=str(e))

    def get_query_data(self, key: Sequence[Any] | str) -> Any:
        entry = self.cache.get(normalize_key(key))
        return entry.data if entry else None

    def set_query_data(
        self,
        key: Sequence[Any] | str,
        data: Any,
        *,
        tier: QueryTier | str | None = None,
    ) -> None:
        now = self.clock()
        entry = self.cache.build(normalize_key(key), get_profile(tier), now)
        entry.data = data
        entry.error = None
        entry.data_updated_at = now
        entry.invalidated = False

    def is_stale(self, key: Sequence[Any] | str) -> bool:
        entry = self.cache.get(normalize_key(key))
        return entry is None or entry.is_stale(self.clock())

    def observe(
        self,
        key: Sequence[Any] | str,
        fn: QueryFn,
        *,
        tier: QueryTier | str | None = None,
        retry: Retry = None,
    ) -> "QueryObserver":
        """Subscribe to a key. Observed entries are never evicted."""
        entry = self._entry(key, fn, tier=tier, retry=retry)
        return QueryObserver(self, entry)

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate_queries(
        self,
        prefix: Sequence[Any] | str | None = None,
        *,
        predicate: KeyPredicate | None = None,
        refetch_active: bool = True,
    ) -> list[QueryKey]:
        """Mark matching entries stale; observed ones refetch in the background.

        Returns:
            Keys of the invalidated entries
        """
        normalized = normalize_key(prefix) if prefix is not None else None
        entries = self.cache.find_all(normalized, predicate)
        for entry in entries:
            entry.invalidated = True
            if refetch_active and entry.observers > 0:
                self.refetch_in_background(entry)
        keys = [e.key for e in entries]
        logger.debug("queries_invalidated", prefix=normalized, count=len(keys))
        return keys

    def invalidate_matching(self, patterns: Iterable[str]) -> list[QueryKey]:
        """Invalidate every key with a string part containing any pattern."""
        patterns = list(patterns)

        def contains(key: QueryKey) -> bool:
            return any(
                isinstance(part, str) and pattern in part
                for part in key
                for pattern in patterns
            )

        return self.invalidate_queries(predicate=contains)

    def remove_queries(
        self,
        prefix: Sequence[Any] | str | None = None,
        *,
        predicate: KeyPredicate | None = None,
    ) -> int:
        normalized = normalize_key(prefix) if prefix is not None else None
        entries = self.cache.find_all(normalized, predicate)
        for entry in entries:
            self.cache.remove(entry)
        return len(entries)

    def cancel_queries(self, prefix: Sequence[Any] | str | None = None) -> int:
        """Cancel in-flight fetches. Returns how many were cancelled."""
        normalized = normalize_key(prefix) if prefix is not None else None
        cancelled = 0
        for entry in self.cache.find_all(normalized):
            if entry.is_fetching:
                entry.task.cancel()
                cancelled += 1
        if cancelled:
            logger.info("queries_cancelled", count=cancelled)
        return cancelled

    # -------------------------------------------------------------------------
    # Polling defaults
    # -------------------------------------------------------------------------

    def set_default_refetch_interval(self, seconds: float | None) -> None:
        """Widen polling for every polling query (None restores tier defaults)."""
        self.default_refetch_interval = seconds
        logger.info("default_refetch_interval_changed", seconds=seconds)

    def polling_interval(self, profile: StalenessProfile) -> float | None:
        """Effective polling interval for a profile.

        Tiers that never poll keep not polling. A widened default only ever
        lengthens the interval. Hidden pages poll less often.
        """
        base = profile.refetch_interval
        if base is None:
            return None
        if self.default_refetch_interval is not None:
            base = max(base, self.default_refetch_interval)
        if self.visible:
            return base
        return base * self.settings.hidden_poll_multiplier

    # -------------------------------------------------------------------------
    # Bounding sweeps
    # -------------------------------------------------------------------------

    def enforce_max_entries(self) -> int:
        """Evict the oldest unobserved entries once the ceiling is exceeded.

        Returns:
            Number of entries removed
        """
        if len(self.cache) <= self.settings.query_cache_max_entries:
            return 0
        candidates = sorted(
            (e for e in self.cache.all() if e.observers == 0 and not e.is_fetching),
            key=lambda e: e.data_updated_at or 0.0,
        )
        to_remove = candidates[
            : int(len(candidates) * self.settings.query_cache_evict_fraction)
        ]
        for entry in to_remove:
            self.cache.remove(entry)
        logger.info("query_cache_bounded", removed=len(to_remove), size=len(self.cache))
        return len(to_remove)

    def remove_older_than(self, max_age: float | None = None) -> int:
        """Drop unobserved entries whose data is older than max_age seconds."""
        if max_age is None:
            max_age = self.settings.query_max_age_seconds
        now = self.clock()
        expired = [
            e
            for e in self.cache.all()
            if e.observers == 0 and not e.is_fetching and e.age(now) > max_age
        ]
        for entry in expired:
            self.cache.remove(entry)
        if expired:
            logger.info("query_cache_aged_out", removed=len(expired))
        return len(expired)

    def collect_garbage(self) -> int:
        """Drop entries left unobserved for longer than their cache time."""
        now = self.clock()
        expired = [
            e
            for e in self.cache.all()
            if e.observers == 0
            and not e.is_fetching
            and now - e.unobserved_since > e.profile.cache_time
        ]
        for entry in expired:
            self.cache.remove(entry)
        return len(expired)

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def _entry(
        self,
        key: Sequence[Any] | str,
        fn: QueryFn | None,
        *,
        tier: QueryTier | str | None = None,
        profile: StalenessProfile | None = None,
        retry: Retry = None,
    ) -> QueryEntry:
        explicit = profile is not None or tier is not None
        profile = profile or get_profile(tier)
        entry = self.cache.build(normalize_key(key), profile, self.clock())
        if explicit:
            entry.profile = profile
        if fn is not None:
            entry.query_fn = fn
        if retry is not None:
            entry.retry = retry
        return entry

    async def _fetch(self, entry: QueryEntry) -> Any:
        task = self._ensure_task(entry)
        return await asyncio.shield(task)

    def refetch_in_background(self, entry: QueryEntry) -> asyncio.Task | None:
        """Start (or join) a fetch without waiting for it."""
        if entry.query_fn is None:
            return None
        return self._ensure_task(entry)

    def _ensure_task(self, entry: QueryEntry) -> asyncio.Task:
        if entry.query_fn is None:
            raise ValueError(f"No query function registered for {entry.key!r}")
        if entry.is_fetching:
            logger.debug("query_fetch_deduplicated", key=entry.key)
            return entry.task
        task = asyncio.get_running_loop().create_task(self._run_fetch(entry))
        task.add_done_callback(_consume_result)
        entry.task = task
        return task

    async def _run_fetch(self, entry: QueryEntry) -> Any:
        failures = 0
        while True:
            entry.fetch_count += 1
            try:
                data = await entry.query_fn(entry.key)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if should_retry(failures, e, entry.retry):
                    delay = self.retry_delay(failures)
                    failures += 1
                    logger.debug(
                        "query_retry", key=entry.key, failures=failures, delay=delay
                    )
                    await asyncio.sleep(delay)
                    continue
                entry.error = e
                logger.warning("query_failed", key=entry.key, error=str(e))
                raise
            entry.data = data
            entry.error = None
            entry.data_updated_at = self.clock()
            entry.invalidated = False
            return data


def _consume_result(task: asyncio.Task) -> None:
    # Background fetch errors are kept on the entry
    if not task.cancelled():
        task.exception()


# -----------------------------------------------------------------------------
# Observers
# -----------------------------------------------------------------------------


class QueryObserver:
    """An active subscription to one key.

    While at least one observer exists the entry is exempt from eviction,
    invalidation refetches it right away, and `run()` polls it at the
    tier's (visibility- and connection-adjusted) interval.
    """

    def __init__(self, client: QueryClient, entry: QueryEntry) -> None:
        self.client = client
        self.entry = entry
        self._closed = asyncio.Event()
        self._poller: asyncio.Task | None = None
        entry.observers += 1

    async def __aenter__(self) -> "QueryObserver":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def data(self) -> Any:
        return self.entry.data

    @property
    def error(self) -> BaseException | None:
        return self.entry.error

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def result(self) -> Any:
        """Current data, fetching first if the entry is stale."""
        if self.entry.is_stale(self.client.clock()):
            return await self.client._fetch(self.entry)
        return self.entry.data

    def refetch_if_stale(self) -> asyncio.Task | None:
        """Trigger a background refetch when the entry is stale."""
        if self.entry.is_stale(self.client.clock()):
            return self.client.refetch_in_background(self.entry)
        return None

    async def poll_once(self) -> Any:
        return await self.client._fetch(self.entry)

    def polling_interval(self) -> float | None:
        return self.client.polling_interval(self.entry.profile)

    async def run(self) -> None:
        """Poll until closed. The interval is re-read every cycle."""
        while not self.closed:
            interval = self.polling_interval()
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=interval)
                return
            except TimeoutError:
                pass
            try:
                await self.poll_once()
            except Exception as e:
                logger.warning("poll_failed", key=self.entry.key, error=str(e))

    def start(self) -> asyncio.Task:
        if self._poller is None:
            self._poller = asyncio.get_running_loop().create_task(self.run())
        return self._poller

    async def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self.entry.observers -= 1
        if self.entry.observers == 0:
            self.entry.unobserved_since = self.client.clock()
        if self._poller is not None:
            await self._poller
