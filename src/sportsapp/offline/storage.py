"""Named cache storage for the offline asset cache.

Mirrors the browser Cache Storage API the worker relies on: a set of named
caches, each an opaque key-value store keyed by request URL. Two backends:

- MemoryCacheStorage: process-local dicts (tests, single-process gateway)
- RedisCacheStorage: one Redis hash per cache name plus a sorted set of the
  names, values stored as JSON with base64 bodies

Only GET requests may be stored.
"""

import base64
import hashlib
import json
from dataclasses import dataclass, field, replace
from typing import Any, Protocol
from urllib.parse import urlsplit

import structlog
from redis.asyncio import Redis

from sportsapp.core.exceptions import CacheStorageError

logger = structlog.get_logger(__name__)

# Headers identifying the client; responses to them are never shared
CREDENTIAL_HEADERS = frozenset({"authorization", "cookie"})


# -----------------------------------------------------------------------------
# Request / Response
# -----------------------------------------------------------------------------


@dataclass
class CachedRequest:
    """A request as seen by the worker.

    `destination` follows the Fetch spec values ("document" for page
    navigations, "script", "style", "image", "manifest", "" otherwise).

    The gateway's caches are shared by every client, so requests carrying
    credentials are keyed per client: `partition` is a digest of the
    credential headers and is appended to the cache key.
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    destination: str = ""
    body: bytes | None = None

    @property
    def is_navigation(self) -> bool:
        return self.destination == "document"

    @property
    def partition(self) -> str | None:
        credentials = sorted(
            f"{name.lower()}={value}"
            for name, value in self.headers.items()
            if name.lower() in CREDENTIAL_HEADERS
        )
        if not credentials:
            return None
        return hashlib.sha256("\n".join(credentials).encode()).hexdigest()[:32]

    @property
    def cache_key(self) -> str:
        """Cache identity: the URL without its fragment, plus the partition."""
        url = self.url.split("#", 1)[0]
        partition = self.partition
        return f"{url}#{partition}" if partition else url

    def anonymous(self) -> "CachedRequest":
        """The same request without credential headers."""
        return replace(
            self,
            headers={
                k: v for k, v in self.headers.items() if k.lower() not in CREDENTIAL_HEADERS
            },
        )


@dataclass
class CachedResponse:
    """A stored or network response."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    url: str = ""
    reason: str = ""
    type: str = "basic"

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def clone(self) -> "CachedResponse":
        """Return an independent copy (body is immutable bytes)."""
        return replace(self, headers=dict(self.headers))

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for persistent backends."""
        return {
            "status": self.status,
            "body": base64.b64encode(self.body).decode("ascii"),
            "headers": self.headers,
            "url": self.url,
            "reason": self.reason,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedResponse":
        """Create from a stored dict."""
        return cls(
            status=data["status"],
            body=base64.b64decode(data.get("body", "")),
            headers=data.get("headers", {}),
            url=data.get("url", ""),
            reason=data.get("reason", ""),
            type=data.get("type", "basic"),
        )


def same_origin(url: str, origin: str) -> bool:
    """Check whether an absolute URL belongs to the given origin."""
    left, right = urlsplit(url), urlsplit(origin)
    return (left.scheme, left.netloc) == (right.scheme, right.netloc)


# -----------------------------------------------------------------------------
# Protocols
# -----------------------------------------------------------------------------


class Cache(Protocol):
    """A single named cache."""

    name: str

    async def match(self, request: CachedRequest) -> CachedResponse | None: ...

    async def put(self, request: CachedRequest, response: CachedResponse) -> None: ...

    async def delete(self, request: CachedRequest) -> bool: ...

    async def keys(self) -> list[str]: ...


class CacheStorage(Protocol):
    """The set of named caches."""

    async def open(self, name: str) -> Cache: ...

    async def has(self, name: str) -> bool: ...

    async def delete(self, name: str) -> bool: ...

    async def keys(self) -> list[str]: ...

    async def match(self, request: CachedRequest) -> CachedResponse | None: ...

    async def ping(self) -> bool: ...


def _check_storable(request: CachedRequest) -> None:
    if request.method.upper() != "GET":
        raise CacheStorageError(
            message=f"Request method {request.method} is unsupported",
            details={"url": request.url, "method": request.method},
        )


# -----------------------------------------------------------------------------
# In-memory backend
# -----------------------------------------------------------------------------


class MemoryCache:
    """Dict-backed named cache."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[str, CachedResponse] = {}

    async def match(self, request: CachedRequest) -> CachedResponse | None:
        if request.method.upper() != "GET":
            return None
        stored = self._entries.get(request.cache_key)
        return stored.clone() if stored else None

    async def put(self, request: CachedRequest, response: CachedResponse) -> None:
        _check_storable(request)
        self._entries[request.cache_key] = response.clone()

    async def delete(self, request: CachedRequest) -> bool:
        return self._entries.pop(request.cache_key, None) is not None

    async def keys(self) -> list[str]:
        return list(self._entries)


class MemoryCacheStorage:
    """Process-local cache storage. Insertion order is creation order."""

    def __init__(self) -> None:
        self._caches: dict[str, MemoryCache] = {}

    async def open(self, name: str) -> MemoryCache:
        if name not in self._caches:
            self._caches[name] = MemoryCache(name)
        return self._caches[name]

    async def has(self, name: str) -> bool:
        return name in self._caches

    async def delete(self, name: str) -> bool:
        return self._caches.pop(name, None) is not None

    async def keys(self) -> list[str]:
        return list(self._caches)

    async def match(self, request: CachedRequest) -> CachedResponse | None:
        for cache in list(self._caches.values()):
            response = await cache.match(request)
            if response is not None:
                return response
        return None

    async def ping(self) -> bool:
        return True


# -----------------------------------------------------------------------------
# Redis backend
# -----------------------------------------------------------------------------


class RedisCache:
    """Named cache stored as a Redis hash (field = request URL)."""

    def __init__(self, redis: Redis, name: str, hash_key: str) -> None:
        self.name = name
        self.redis = redis
        self._hash_key = hash_key

    async def match(self, request: CachedRequest) -> CachedResponse | None:
        if request.method.upper() != "GET":
            return None
        raw = await self.redis.hget(self._hash_key, request.cache_key)
        if raw is None:
            return None
        return CachedResponse.from_dict(json.loads(raw))

    async def put(self, request: CachedRequest, response: CachedResponse) -> None:
        _check_storable(request)
        await self.redis.hset(
            self._hash_key, request.cache_key, json.dumps(response.to_dict())
        )
        logger.debug("cache_entry_stored", cache=self.name, url=request.cache_key)

    async def delete(self, request: CachedRequest) -> bool:
        return bool(await self.redis.hdel(self._hash_key, request.cache_key))

    async def keys(self) -> list[str]:
        fields = await self.redis.hkeys(self._hash_key)
        return [f.decode() if isinstance(f, bytes) else f for f in fields]


class RedisCacheStorage:
    """Cache storage persisted in Redis.

    Key layout:
        {prefix}:names        - sorted set of cache names, scored by creation order
        {prefix}:cache:{name} - hash of url -> JSON response
    """

    def __init__(self, redis: Redis, prefix: str = "sportsapp:sw") -> None:
        self.redis = redis
        self.prefix = prefix

    @property
    def _names_key(self) -> str:
        return f"{self.prefix}:names"

    def _hash_key(self, name: str) -> str:
        return f"{self.prefix}:cache:{name}"

    async def open(self, name: str) -> RedisCache:
        if not await self.has(name):
            order = await self.redis.incr(f"{self.prefix}:seq")
            await self.redis.zadd(self._names_key, {name: order}, nx=True)
            logger.debug("cache_opened", cache=name)
        return RedisCache(self.redis, name, self._hash_key(name))

    async def has(self, name: str) -> bool:
        return await self.redis.zscore(self._names_key, name) is not None

    async def delete(self, name: str) -> bool:
        removed = await self.redis.zrem(self._names_key, name)
        await self.redis.delete(self._hash_key(name))
        return bool(removed)

    async def keys(self) -> list[str]:
        names = await self.redis.zrange(self._names_key, 0, -1)
        return [n.decode() if isinstance(n, bytes) else n for n in names]

    async def match(self, request: CachedRequest) -> CachedResponse | None:
        for name in await self.keys():
            response = await RedisCache(self.redis, name, self._hash_key(name)).match(
                request
            )
            if response is not None:
                return response
        return None

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning("cache_storage_ping_failed", error=str(e))
            return False
