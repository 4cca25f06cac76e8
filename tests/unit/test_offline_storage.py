"""Tests for the offline cache storage backends."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from sportsapp.core.exceptions import CacheStorageError
from sportsapp.offline.storage import (
    CachedRequest,
    CachedResponse,
    MemoryCacheStorage,
    RedisCacheStorage,
    same_origin,
)

# =============================================================================
# Request / Response
# =============================================================================


class TestCachedRequest:
    def test_navigation_by_destination(self) -> None:
        assert CachedRequest(url="/", destination="document").is_navigation
        assert not CachedRequest(url="/app.js", destination="script").is_navigation

    def test_cache_key_drops_fragment(self) -> None:
        request = CachedRequest(url="http://a.test/page?x=1#top")
        assert request.cache_key == "http://a.test/page?x=1"

    def test_credentials_partition_cache_key(self) -> None:
        alice = CachedRequest(url="http://a.test/api/user", headers={"Cookie": "session=alice"})
        bob = CachedRequest(url="http://a.test/api/user", headers={"cookie": "session=bob"})

        assert alice.cache_key != bob.cache_key
        assert alice.cache_key.startswith("http://a.test/api/user#")
        assert alice.anonymous().cache_key == "http://a.test/api/user"

    def test_non_credential_headers_do_not_partition(self) -> None:
        request = CachedRequest(url="http://a.test/", headers={"accept": "text/html"})
        assert request.partition is None
        assert request.cache_key == "http://a.test/"


class TestCachedResponse:
    def test_clone_is_independent(self) -> None:
        original = CachedResponse(status=200, body=b"x", headers={"a": "1"})
        clone = original.clone()
        clone.headers["a"] = "2"
        assert original.headers["a"] == "1"
        assert clone.body == b"x"

    def test_dict_round_trip_keeps_binary_body(self) -> None:
        original = CachedResponse(status=200, body=b"\x89PNG\x00", url="http://a.test/i.png")
        restored = CachedResponse.from_dict(json.loads(json.dumps(original.to_dict())))
        assert restored == original

    @pytest.mark.parametrize("status,ok", [(200, True), (204, True), (304, False), (404, False)])
    def test_ok(self, status: int, ok: bool) -> None:
        assert CachedResponse(status=status).ok is ok


def test_same_origin() -> None:
    assert same_origin("http://a.test/x", "http://a.test")
    assert not same_origin("https://a.test/x", "http://a.test")
    assert not same_origin("http://cdn.test/x", "http://a.test")


# =============================================================================
# Memory Backend
# =============================================================================


class TestMemoryCacheStorage:
    @pytest.mark.asyncio
    async def test_put_and_match(self) -> None:
        storage = MemoryCacheStorage()
        cache = await storage.open("v1")
        request = CachedRequest(url="http://a.test/")
        await cache.put(request, CachedResponse(status=200, body=b"home"))

        match = await storage.match(CachedRequest(url="http://a.test/"))
        assert match is not None
        assert match.body == b"home"

    @pytest.mark.asyncio
    async def test_miss_returns_none(self) -> None:
        storage = MemoryCacheStorage()
        await storage.open("v1")
        assert await storage.match(CachedRequest(url="http://a.test/nope")) is None

    @pytest.mark.asyncio
    async def test_put_rejects_non_get(self) -> None:
        storage = MemoryCacheStorage()
        cache = await storage.open("v1")
        with pytest.raises(CacheStorageError):
            await cache.put(
                CachedRequest(url="http://a.test/api/posts", method="POST"),
                CachedResponse(status=200),
            )

    @pytest.mark.asyncio
    async def test_match_ignores_non_get(self) -> None:
        storage = MemoryCacheStorage()
        cache = await storage.open("v1")
        await cache.put(CachedRequest(url="http://a.test/"), CachedResponse(status=200))
        assert await storage.match(CachedRequest(url="http://a.test/", method="POST")) is None

    @pytest.mark.asyncio
    async def test_match_searches_caches_in_creation_order(self) -> None:
        storage = MemoryCacheStorage()
        old = await storage.open("v1")
        new = await storage.open("v2")
        request = CachedRequest(url="http://a.test/")
        await new.put(request, CachedResponse(status=200, body=b"new"))
        await old.put(request, CachedResponse(status=200, body=b"old"))

        match = await storage.match(request)
        assert match is not None
        assert match.body == b"old"

    @pytest.mark.asyncio
    async def test_keys_and_delete(self) -> None:
        storage = MemoryCacheStorage()
        await storage.open("v1")
        await storage.open("v2")
        assert await storage.keys() == ["v1", "v2"]
        assert await storage.delete("v1") is True
        assert await storage.delete("v1") is False
        assert await storage.has("v2")
        assert not await storage.has("v1")

    @pytest.mark.asyncio
    async def test_stored_entry_not_mutated_by_caller(self) -> None:
        storage = MemoryCacheStorage()
        cache = await storage.open("v1")
        request = CachedRequest(url="http://a.test/")
        response = CachedResponse(status=200, headers={"etag": "1"})
        await cache.put(request, response)
        response.headers["etag"] = "2"

        match = await cache.match(request)
        assert match is not None
        assert match.headers["etag"] == "1"


# =============================================================================
# Redis Backend
# =============================================================================


class TestRedisCacheStorage:
    @pytest.mark.asyncio
    async def test_open_registers_new_name(self, mock_redis: MagicMock) -> None:
        storage = RedisCacheStorage(mock_redis, prefix="t")
        cache = await storage.open("v1")

        assert cache.name == "v1"
        mock_redis.incr.assert_awaited_once_with("t:seq")
        mock_redis.zadd.assert_awaited_once_with("t:names", {"v1": 1}, nx=True)

    @pytest.mark.asyncio
    async def test_open_existing_does_not_reregister(self, mock_redis: MagicMock) -> None:
        mock_redis.zscore = AsyncMock(return_value=1.0)
        storage = RedisCacheStorage(mock_redis, prefix="t")
        await storage.open("v1")
        mock_redis.zadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_put_writes_json_hash_field(self, mock_redis: MagicMock) -> None:
        storage = RedisCacheStorage(mock_redis, prefix="t")
        cache = await storage.open("v1")
        await cache.put(
            CachedRequest(url="http://a.test/#x"), CachedResponse(status=200, body=b"hi")
        )

        key, field, value = mock_redis.hset.await_args.args
        assert key == "t:cache:v1"
        assert field == "http://a.test/"
        assert CachedResponse.from_dict(json.loads(value)).body == b"hi"

    @pytest.mark.asyncio
    async def test_match_reads_from_each_cache(self, mock_redis: MagicMock) -> None:
        stored = json.dumps(CachedResponse(status=200, body=b"hi").to_dict())
        mock_redis.zrange = AsyncMock(return_value=[b"v1", b"v2"])
        mock_redis.hget = AsyncMock(side_effect=[None, stored])
        storage = RedisCacheStorage(mock_redis, prefix="t")

        match = await storage.match(CachedRequest(url="http://a.test/"))

        assert match is not None
        assert match.body == b"hi"
        assert [c.args[0] for c in mock_redis.hget.await_args_list] == [
            "t:cache:v1",
            "t:cache:v2",
        ]

    @pytest.mark.asyncio
    async def test_delete_removes_name_and_hash(self, mock_redis: MagicMock) -> None:
        storage = RedisCacheStorage(mock_redis, prefix="t")
        assert await storage.delete("v1") is True
        mock_redis.zrem.assert_awaited_once_with("t:names", "v1")
        mock_redis.delete.assert_awaited_once_with("t:cache:v1")

    @pytest.mark.asyncio
    async def test_ping_failure_is_reported_not_raised(self, mock_redis: MagicMock) -> None:
        mock_redis.ping = AsyncMock(side_effect=ConnectionError("down"))
        storage = RedisCacheStorage(mock_redis)
        assert await storage.ping() is False
