"""Redis-backed CachePort for deployments sharing state across hosts."""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

log = structlog.get_logger(__name__)

_MATCH_META = re.compile(r"([*?\[\]\\])")
_DEL_CHUNK = 500


def match_pattern(prefix: str) -> str:
    """SCAN MATCH pattern selecting every key that starts with *prefix*."""
    return _MATCH_META.sub(r"\\\1", prefix) + "*"


class RedisAdapter:
    """CachePort over ``redis.asyncio`` with JSON-encoded values.

    Values must be JSON-serialisable; the health store only writes
    strings, numbers and small dicts.  Connection problems during normal
    operations are logged and degrade to cache misses so a flaky Redis
    never aborts a maintenance run.  Only the initial ``PING`` raises.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int = 3600,
        max_concurrent: int = 50,
    ) -> None:
        self.url = url
        self.default_ttl = ttl_seconds
        self._redis: Redis | None = None
        self._gate = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> RedisAdapter:
        if self._redis is not None:
            return self
        client = Redis.from_url(self.url, decode_responses=True)
        try:
            await client.ping()
        except RedisError as e:
            log.error("redis_connection_failed", url=self.url, error=str(e))
            await client.aclose()
            raise
        self._redis = client
        log.info("redis_connected", url=self.url, default_ttl=self.default_ttl)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        client, self._redis = self._redis, None
        if client is not None:
            await client.aclose()
            log.info("redis_closed", url=self.url)

    def _client(self) -> Redis:
        if self._redis is None:
            raise RuntimeError(
                "Cache not initialized. Enter it with 'async with' first."
            )
        return self._redis

    async def get(self, key: str) -> Any | None:
        client = self._client()
        async with self._gate:
            try:
                raw = await client.get(key)
            except RedisError as e:
                log.error("redis_get_error", key=key, error=str(e))
                return None
        log.debug("cache_get", key=key, hit=raw is not None)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning("redis_value_undecodable", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        client = self._client()
        expire = self.default_ttl if ttl is None else ttl
        try:
            encoded = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            log.error("redis_value_unencodable", key=key, error=str(e))
            return
        async with self._gate:
            try:
                await client.set(key, encoded, ex=expire)
            except RedisError as e:
                log.error("redis_set_error", key=key, error=str(e))
                return
        log.debug("cache_set", key=key, ttl=expire)

    async def delete(self, key: str) -> bool:
        if self._redis is None:
            return False
        async with self._gate:
            try:
                deleted = await self._redis.delete(key) > 0
            except RedisError as e:
                log.error("redis_delete_error", key=key, error=str(e))
                return False
        log.debug("cache_delete", key=key, deleted=deleted)
        return deleted

    async def delete_by_prefix(self, prefix: str) -> int:
        if self._redis is None:
            return 0
        client = self._redis
        removed = 0
        pending: list[str] = []
        async with self._gate:
            try:
                async for key in client.scan_iter(match=match_pattern(prefix)):
                    pending.append(key)
                    if len(pending) == _DEL_CHUNK:
                        removed += await client.delete(*pending)
                        pending = []
                if pending:
                    removed += await client.delete(*pending)
            except RedisError as e:
                log.error("redis_delete_prefix_error", prefix=prefix, error=str(e))
        log.debug("cache_delete_prefix", prefix=prefix, removed=removed)
        return removed

    async def exists(self, key: str) -> bool:
        if self._redis is None:
            return False
        async with self._gate:
            try:
                return await self._redis.exists(key) > 0
            except RedisError as e:
                log.error("redis_exists_error", key=key, error=str(e))
                return False

    async def clear(self) -> None:
        if self._redis is None:
            return
        async with self._gate:
            try:
                await self._redis.flushdb()
            except RedisError as e:
                log.error("redis_flush_error", error=str(e))
                return
        log.warning("cache_cleared", backend="redis", url=self.url)
