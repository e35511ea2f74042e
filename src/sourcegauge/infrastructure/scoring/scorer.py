"""Round-relative scoring of probed candidates.

All functions are pure (no I/O, no state) and operate on domain
entities from ``sourcegauge.domain.entities``.  Throughput and latency
are normalised against the current selection round only, so scores are
not comparable across rounds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from sourcegauge.domain.entities.probing import ProbeResult, QualityTier
from sourcegauge.domain.entities.selection import ScoredCandidate, ScoredInput

W_QUALITY: float = 0.4
W_THROUGHPUT: float = 0.4
W_LATENCY: float = 0.2

QUALITY_POINTS: dict[QualityTier, float] = {
    QualityTier.UHD4K: 100.0,
    QualityTier.QHD2K: 85.0,
    QualityTier.FHD1080: 75.0,
    QualityTier.HD720: 60.0,
    QualityTier.SD480: 40.0,
    QualityTier.SD: 20.0,
    QualityTier.UNKNOWN: 0.0,
}

# Points for a result whose throughput could not be measured.
UNMEASURED_THROUGHPUT_POINTS: float = 30.0

# Reference max throughput (KB/s) when nothing in the round was measured.
REFERENCE_THROUGHPUT_KBPS: float = 1024.0


@dataclass(frozen=True)
class RoundStats:
    """Normalisation bounds observed in one selection round."""

    max_throughput_kbps: float
    min_latency_ms: int | None
    max_latency_ms: int | None

    @classmethod
    def from_results(cls, results: Sequence[ProbeResult]) -> RoundStats:
        speeds = [
            r.throughput_kbps
            for r in results
            if r.throughput_kbps is not None and r.throughput_kbps > 0
        ]
        latencies = [r.latency_ms for r in results if r.latency_ms > 0]
        return cls(
            max_throughput_kbps=max(speeds) if speeds else REFERENCE_THROUGHPUT_KBPS,
            min_latency_ms=min(latencies) if latencies else None,
            max_latency_ms=max(latencies) if latencies else None,
        )


def _clamp(value: float) -> float:
    return min(100.0, max(0.0, value))


def _round2(value: float) -> float:
    """Round half up to 2 decimals."""
    return math.floor(value * 100 + 0.5) / 100


def quality_points(tier: QualityTier) -> float:
    return QUALITY_POINTS.get(tier, 0.0)


def throughput_points(throughput_kbps: float | None, stats: RoundStats) -> float:
    if throughput_kbps is None:
        return UNMEASURED_THROUGHPUT_POINTS
    return _clamp(throughput_kbps / stats.max_throughput_kbps * 100)


def latency_points(latency_ms: int, stats: RoundStats) -> float:
    """Linear map: round minimum → 100, round maximum → 0."""
    if stats.min_latency_ms is None or stats.max_latency_ms is None:
        return 0.0
    if latency_ms <= 0:
        return 0.0
    if stats.max_latency_ms == stats.min_latency_ms:
        return 100.0
    span = stats.max_latency_ms - stats.min_latency_ms
    return _clamp((stats.max_latency_ms - latency_ms) / span * 100)


def compute_score(result: ProbeResult, stats: RoundStats) -> float:
    """Weighted 0–100 score of a single result, rounded to 2 decimals."""
    raw = (
        W_QUALITY * quality_points(result.quality_tier)
        + W_THROUGHPUT * throughput_points(result.throughput_kbps, stats)
        + W_LATENCY * latency_points(result.latency_ms, stats)
    )
    return _round2(raw)


def score(inputs: Sequence[ScoredInput]) -> list[ScoredCandidate]:
    """Score every input with an available probe result, in input order.

    Inputs without a result (not attempted) or with ``available=False``
    are excluded.
    """
    usable = [
        i for i in inputs if i.probe_result is not None and i.probe_result.available
    ]
    if not usable:
        return []

    stats = RoundStats.from_results([i.probe_result for i in usable])
    return [
        ScoredCandidate(
            candidate=i.candidate,
            probe_result=i.probe_result,
            score=compute_score(i.probe_result, stats),
        )
        for i in usable
    ]


def rank(scored: Sequence[ScoredCandidate]) -> list[ScoredCandidate]:
    """Sort by score descending; ties keep input order."""
    return sorted(scored, key=lambda s: s.score, reverse=True)
