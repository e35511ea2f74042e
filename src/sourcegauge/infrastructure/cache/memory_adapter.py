"""In-process cache adapter - dict with monotonic-clock expiry."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any

import structlog

log = structlog.get_logger(__name__)


class MemoryCacheAdapter:
    """Process-local CachePort implementation.

    Intended for tests and single-process deployments without a disk or
    Redis backend.  Entries expire lazily on access.  When
    ``max_entries`` is reached the oldest entry is evicted first.

    Args:
        ttl_seconds: Default TTL for `set()` without explicit value.
        max_entries: Upper bound on stored keys (None = unbounded).
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        max_entries: int | None = 10_000,
    ) -> None:
        self.default_ttl = ttl_seconds
        self._max_entries = max_entries
        self._data: OrderedDict[str, tuple[Any, float]] | None = None

    async def __aenter__(self) -> MemoryCacheAdapter:
        if self._data is None:
            self._data = OrderedDict()
            log.info("memory_cache_opened", max_entries=self._max_entries)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._data is not None:
            self._data = None
            log.info("memory_cache_closed")

    def _store(self) -> OrderedDict[str, tuple[Any, float]]:
        if self._data is None:
            raise RuntimeError(
                "Cache not initialized. Use 'async with cache:' or await cache.__aenter__()"
            )
        return self._data

    def _live(self, key: str) -> tuple[Any, float] | None:
        data = self._store()
        entry = data.get(key)
        if entry is None:
            return None
        if entry[1] <= time.monotonic():
            del data[key]
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        entry = self._live(key)
        log.debug("cache_get", key=key, hit=entry is not None)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        data = self._store()
        expire_time = ttl if ttl is not None else self.default_ttl
        data.pop(key, None)
        if self._max_entries is not None and len(data) >= self._max_entries:
            evicted, _ = data.popitem(last=False)
            log.debug("cache_evict", key=evicted)
        data[key] = (value, time.monotonic() + expire_time)
        log.debug("cache_set", key=key, ttl=expire_time)

    async def delete(self, key: str) -> bool:
        if self._data is None:
            return False
        deleted = self._data.pop(key, None) is not None
        log.debug("cache_delete", key=key, deleted=deleted)
        return deleted

    async def delete_by_prefix(self, prefix: str) -> int:
        if self._data is None:
            return 0
        doomed = [k for k in self._data if k.startswith(prefix)]
        for k in doomed:
            del self._data[k]
        log.debug("cache_delete_prefix", prefix=prefix, removed=len(doomed))
        return len(doomed)

    async def exists(self, key: str) -> bool:
        if self._data is None:
            return False
        return self._live(key) is not None

    async def clear(self) -> None:
        if self._data is None:
            return
        self._data.clear()
        log.warning("cache_cleared", backend="memory")
