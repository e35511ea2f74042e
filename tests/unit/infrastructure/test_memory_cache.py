"""Tests for the cache adapters and the cache factory."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sourcegauge.infrastructure.cache.cache_factory import create_cache
from sourcegauge.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from sourcegauge.infrastructure.cache.memory_adapter import MemoryCacheAdapter
from sourcegauge.infrastructure.cache.redis_adapter import RedisAdapter, match_pattern


class TestMemoryCacheAdapter:
    async def test_set_get_delete(self, memory_cache: MemoryCacheAdapter) -> None:
        await memory_cache.set("k", {"a": 1})
        assert await memory_cache.get("k") == {"a": 1}
        assert await memory_cache.exists("k") is True
        assert await memory_cache.delete("k") is True
        assert await memory_cache.get("k") is None
        assert await memory_cache.delete("k") is False

    async def test_entries_expire(self, memory_cache: MemoryCacheAdapter) -> None:
        await memory_cache.set("k", "v", ttl=10)
        later = time.monotonic() + 11
        with patch.object(time, "monotonic", return_value=later):
            assert await memory_cache.get("k") is None

    async def test_delete_by_prefix(self, memory_cache: MemoryCacheAdapter) -> None:
        await memory_cache.set("cache:quality:a", 1)
        await memory_cache.set("cache:quality:b", 2)
        await memory_cache.set("source_fail_count:a", 3)

        removed = await memory_cache.delete_by_prefix("cache:quality:")

        assert removed == 2
        assert await memory_cache.get("cache:quality:a") is None
        assert await memory_cache.get("source_fail_count:a") == 3

    async def test_evicts_oldest_when_full(self) -> None:
        async with MemoryCacheAdapter(max_entries=2) as cache:
            await cache.set("a", 1)
            await cache.set("b", 2)
            await cache.set("c", 3)
            assert await cache.get("a") is None
            assert await cache.get("c") == 3

    async def test_clear(self, memory_cache: MemoryCacheAdapter) -> None:
        await memory_cache.set("a", 1)
        await memory_cache.clear()
        assert await memory_cache.exists("a") is False

    async def test_use_before_open_raises(self) -> None:
        cache = MemoryCacheAdapter()
        with pytest.raises(RuntimeError, match="not initialized"):
            await cache.get("k")


class TestDiskcacheAdapter:
    async def test_roundtrip_and_prefix_delete(self, tmp_path) -> None:
        async with DiskcacheAdapter(directory=tmp_path / "cache") as cache:
            await cache.set("cache:quality:a", "x", ttl=60)
            await cache.set("cache:quality:b", "y", ttl=60)
            await cache.set("other", "z", ttl=60)

            assert await cache.get("cache:quality:a") == "x"
            assert await cache.delete_by_prefix("cache:quality:") == 2
            assert await cache.get("cache:quality:b") is None
            assert await cache.get("other") == "z"


class TestRedisAdapter:
    @pytest.fixture()
    def client(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture()
    def adapter(self, client: AsyncMock) -> RedisAdapter:
        adapter = RedisAdapter(ttl_seconds=120)
        adapter._redis = client
        return adapter

    async def test_values_are_json_encoded(
        self, adapter: RedisAdapter, client: AsyncMock
    ) -> None:
        await adapter.set("cache:quality:a", {"available": True})
        client.set.assert_awaited_once_with(
            "cache:quality:a", '{"available": true}', ex=120
        )

    async def test_get_decodes_json(self, adapter: RedisAdapter, client: AsyncMock) -> None:
        client.get.return_value = '{"count": 2}'
        assert await adapter.get("source_fail_count:a") == {"count": 2}

    async def test_redis_error_reads_as_miss(
        self, adapter: RedisAdapter, client: AsyncMock
    ) -> None:
        client.get.side_effect = RedisConnectionError("down")
        assert await adapter.get("k") is None

    async def test_use_before_open_raises(self) -> None:
        with pytest.raises(RuntimeError, match="not initialized"):
            await RedisAdapter().get("k")

    def test_match_pattern_escapes_glob_characters(self) -> None:
        assert match_pattern("cache:quality:") == "cache:quality:*"
        assert match_pattern("a*b?[c]") == r"a\*b\?\[c\]*"


class TestCreateCache:
    def test_memory(self) -> None:
        assert isinstance(create_cache("memory"), MemoryCacheAdapter)

    def test_diskcache(self, tmp_path) -> None:
        cache = create_cache("diskcache", directory=str(tmp_path))
        assert isinstance(cache, DiskcacheAdapter)

    def test_redis(self) -> None:
        cache = create_cache("redis", redis_url="redis://localhost:6379/1")
        assert isinstance(cache, RedisAdapter)

    def test_unknown_backend_raises(self) -> None:
        with pytest.raises(ValueError, match="backend"):
            create_cache("memcached")  # type: ignore[arg-type]
