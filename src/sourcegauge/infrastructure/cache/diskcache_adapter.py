"""SQLite-backed CachePort built on diskcache."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, TypeVar

import structlog
from diskcache import Cache as DiskCache

log = structlog.get_logger(__name__)

T = TypeVar("T")


class DiskcacheAdapter:
    """Persistent cache that survives restarts of the maintenance job.

    diskcache is synchronous, so every call is pushed to a worker thread.
    A semaphore caps the number of threads touching the SQLite file at
    once to keep writer lock contention low.

    Args:
        directory: Folder holding the SQLite database.
        ttl_seconds: Expiry applied when ``set()`` receives no ``ttl``.
        max_concurrent: Upper bound on in-flight disk operations.
    """

    def __init__(
        self,
        directory: str | Path = "./cache",
        ttl_seconds: int = 3600,
        max_concurrent: int = 10,
    ) -> None:
        self.directory = Path(directory)
        self.default_ttl = ttl_seconds
        self._db: DiskCache | None = None
        self._gate = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> DiskcacheAdapter:
        if self._db is None:
            self._db = await asyncio.to_thread(DiskCache, str(self.directory))
            log.info(
                "diskcache_opened",
                directory=str(self.directory),
                default_ttl=self.default_ttl,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        db, self._db = self._db, None
        if db is not None:
            await asyncio.to_thread(db.close)
            log.info("diskcache_closed", directory=str(self.directory))

    def _open_db(self) -> DiskCache:
        if self._db is None:
            raise RuntimeError(
                "Cache not initialized. Enter it with 'async with' first."
            )
        return self._db

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        async with self._gate:
            return await asyncio.to_thread(fn, *args, **kwargs)

    async def get(self, key: str) -> Any | None:
        db = self._open_db()
        value = await self._call(db.get, key, default=None)
        log.debug("cache_get", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        db = self._open_db()
        expire = self.default_ttl if ttl is None else ttl
        await self._call(db.set, key, value, expire=expire)
        log.debug("cache_set", key=key, ttl=expire)

    async def delete(self, key: str) -> bool:
        if self._db is None:
            return False
        deleted = bool(await self._call(self._db.delete, key))
        log.debug("cache_delete", key=key, deleted=deleted)
        return deleted

    async def delete_by_prefix(self, prefix: str) -> int:
        if self._db is None:
            return 0
        db = self._db

        def sweep() -> int:
            matching = [
                k for k in db.iterkeys() if isinstance(k, str) and k.startswith(prefix)
            ]
            return sum(1 for k in matching if db.delete(k))

        removed = await self._call(sweep)
        log.debug("cache_delete_prefix", prefix=prefix, removed=removed)
        return removed

    async def exists(self, key: str) -> bool:
        if self._db is None:
            return False
        # __contains__ honours expiry.
        return await self._call(self._db.__contains__, key)

    async def clear(self) -> None:
        if self._db is None:
            return
        await self._call(self._db.clear)
        log.warning("cache_cleared", backend="diskcache", directory=str(self.directory))
