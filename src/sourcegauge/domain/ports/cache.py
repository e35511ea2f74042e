"""Key-value cache port used by the health store and the probe memo."""

from __future__ import annotations

from typing import Any, Protocol


class CachePort(Protocol):
    """Async TTL cache.

    Adapters open lazily through ``async with`` and must tolerate
    ``aclose()`` being called more than once.  Missing and expired keys
    both read as ``None``.
    """

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        """Store *value*; ``ttl`` in seconds overrides the adapter default."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove *key*; ``False`` when nothing was stored under it."""
        ...

    async def delete_by_prefix(self, prefix: str) -> int:
        """Remove all keys beginning with *prefix* and return how many."""
        ...

    async def exists(self, key: str) -> bool: ...

    async def clear(self) -> None: ...

    async def aclose(self) -> None: ...

    async def __aenter__(self) -> CachePort: ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...
