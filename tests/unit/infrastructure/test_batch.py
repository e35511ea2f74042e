"""Tests for the batched probe runner."""

from __future__ import annotations

import asyncio

import pytest

from sourcegauge.infrastructure.probing.batch import (
    default_group_size,
    index_results,
    run_batched,
)


class TestDefaultGroupSize:
    @pytest.mark.parametrize(("n", "expected"), [(1, 1), (2, 1), (3, 2), (5, 3), (6, 3)])
    def test_half_rounded_up(self, n: int, expected: int) -> None:
        assert default_group_size(n) == expected


class TestRunBatched:
    async def test_empty_input(self) -> None:
        async def fn(x: int) -> int:
            return x

        assert await run_batched([], fn) == []

    async def test_preserves_order_despite_completion_order(self) -> None:
        async def fn(x: int) -> int:
            # Later targets finish first.
            await asyncio.sleep((5 - x) * 0.001)
            return x * 10

        assert await run_batched([1, 2, 3, 4], fn) == [10, 20, 30, 40]

    async def test_exceptions_become_none(self) -> None:
        async def fn(x: int) -> int:
            if x == 2:
                raise RuntimeError("probe exploded")
            return x

        assert await run_batched([1, 2, 3], fn) == [1, None, 3]

    async def test_none_means_not_attempted(self) -> None:
        async def fn(x: int) -> int | None:
            return None if x % 2 else x

        assert await run_batched([1, 2, 3, 4], fn) == [None, 2, None, 4]

    async def test_groups_run_sequentially(self) -> None:
        running = 0
        peak = 0

        async def fn(x: int) -> int:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.001)
            running -= 1
            return x

        await run_batched(list(range(6)), fn)
        assert peak == 3

    async def test_explicit_concurrency_limit(self) -> None:
        running = 0
        peak = 0

        async def fn(x: int) -> int:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.001)
            running -= 1
            return x

        await run_batched(list(range(6)), fn, concurrency_limit=2)
        assert peak == 2


class TestIndexResults:
    def test_drops_none(self) -> None:
        assert index_results(["a", "b", "c"], [1, None, 3]) == {"a": 1, "c": 3}

    def test_length_mismatch_raises(self) -> None:
        with pytest.raises(ValueError, match="same length"):
            index_results(["a"], [1, 2])
