"""Order-preserving batched fan-out for probes."""

from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable, Hashable, Sequence, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")
K = TypeVar("K", bound=Hashable)


def default_group_size(n_targets: int) -> int:
    """Half the targets per group, rounded up (at most two groups)."""
    return max(1, math.ceil(n_targets / 2))


async def run_batched(
    targets: Sequence[T],
    probe_fn: Callable[[T], Awaitable[R | None]],
    *,
    concurrency_limit: int | None = None,
) -> list[R | None]:
    """Run *probe_fn* over *targets* in sequential groups of concurrent calls.

    Groups hold at most ``concurrency_limit`` targets (default:
    ``ceil(len(targets) / 2)``).  The result list has the same length and
    order as *targets*.  ``None`` means "not attempted" when returned by
    *probe_fn*, or "faulted" when *probe_fn* raised; faults never escape.
    """
    if not targets:
        return []

    group_size = concurrency_limit or default_group_size(len(targets))
    results: list[R | None] = []

    async def _settle(target: T) -> R | None:
        try:
            return await probe_fn(target)
        except Exception:
            log.warning("batch_probe_fault", target=repr(target), exc_info=True)
            return None

    for start in range(0, len(targets), group_size):
        group = targets[start : start + group_size]
        group_results = await asyncio.gather(*(_settle(t) for t in group))
        results.extend(group_results)
        log.debug(
            "batch_group_done",
            group=start // group_size,
            size=len(group),
            settled=sum(1 for r in group_results if r is not None),
        )

    return results


def index_results(keys: Sequence[K], results: Sequence[R | None]) -> dict[K, R]:
    """Map identity keys to non-None results, positionally."""
    if len(keys) != len(results):
        raise ValueError("keys and results must have the same length")
    return {k: r for k, r in zip(keys, results) if r is not None}
