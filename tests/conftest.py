"""Shared test fixtures for the sourcegauge test suite."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from sourcegauge.domain.entities.selection import Candidate
from sourcegauge.infrastructure.cache.memory_adapter import MemoryCacheAdapter

# ---------------------------------------------------------------------------
# Domain entity helpers
# ---------------------------------------------------------------------------


def make_candidate(
    source_key: str = "yhdm",
    *,
    title_id: str = "1001",
    episodes: tuple[str, ...] | None = None,
    source_name: str | None = None,
) -> Candidate:
    if episodes is None:
        episodes = (
            f"https://{source_key}.example.com/v/{title_id}/ep1/index.m3u8",
            f"https://{source_key}.example.com/v/{title_id}/ep2/index.m3u8",
        )
    return Candidate(
        source_key=source_key,
        source_name=source_name or source_key.upper(),
        title_id=title_id,
        episodes=episodes,
    )


@pytest.fixture()
def candidate_factory() -> Callable[..., Candidate]:
    return make_candidate


# ---------------------------------------------------------------------------
# Cache fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Mock CachePort."""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.delete = AsyncMock(return_value=True)
    cache.delete_by_prefix = AsyncMock(return_value=0)
    cache.exists = AsyncMock(return_value=False)
    cache.clear = AsyncMock()
    cache.aclose = AsyncMock()
    return cache


@pytest.fixture()
async def memory_cache() -> MemoryCacheAdapter:
    """Opened in-process cache, closed after the test."""
    cache = MemoryCacheAdapter(ttl_seconds=3600)
    async with cache:
        yield cache
