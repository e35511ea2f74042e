"""Selects and constructs the configured cache backend."""

from __future__ import annotations

from typing import Literal

import structlog

from sourcegauge.domain.ports.cache import CachePort
from sourcegauge.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from sourcegauge.infrastructure.cache.memory_adapter import MemoryCacheAdapter
from sourcegauge.infrastructure.cache.redis_adapter import RedisAdapter

log = structlog.get_logger(__name__)

CacheBackend = Literal["memory", "diskcache", "redis"]

_REDIS_CONCURRENCY = 50


def create_cache(
    backend: CacheBackend = "diskcache",
    *,
    directory: str = "./cache",
    redis_url: str = "redis://localhost:6379/0",
    ttl_seconds: int = 3600,
    max_concurrent: int = 10,
) -> CachePort:
    """Return an unopened adapter for *backend*.

    ``directory`` only applies to diskcache and ``redis_url`` only to
    redis.  ``max_concurrent`` bounds diskcache worker threads; redis
    uses a fixed, higher limit since it does no thread hopping.

    Raises:
        ValueError: If *backend* is not one of the supported names.
    """
    cache: CachePort
    if backend == "memory":
        cache = MemoryCacheAdapter(ttl_seconds=ttl_seconds)
    elif backend == "diskcache":
        cache = DiskcacheAdapter(
            directory=directory,
            ttl_seconds=ttl_seconds,
            max_concurrent=max_concurrent,
        )
    elif backend == "redis":
        cache = RedisAdapter(
            url=redis_url,
            ttl_seconds=ttl_seconds,
            max_concurrent=_REDIS_CONCURRENCY,
        )
    else:
        raise ValueError(
            f"Unsupported cache backend {backend!r}; "
            "expected one of 'memory', 'diskcache', 'redis'."
        )
    log.info("cache_backend_selected", backend=backend, default_ttl=ttl_seconds)
    return cache
