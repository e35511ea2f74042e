"""Unit tests for SourceSelector."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from sourcegauge.application.use_cases.select_source import SourceSelector
from sourcegauge.domain.entities.probing import (
    ProbeKind,
    ProbeResult,
    ProbeTarget,
    QualityTier,
)
from sourcegauge.domain.entities.selection import Candidate
from sourcegauge.infrastructure.cache.memory_adapter import MemoryCacheAdapter
from sourcegauge.infrastructure.persistence.health_cache import CacheHealthStore


class _FakeProber:
    """ProberPort returning canned results per URL (unknown → unavailable)."""

    def __init__(self) -> None:
        self.results: dict[str | None, ProbeResult] = {}
        self.calls: list[ProbeTarget] = []

    async def probe(
        self, target: ProbeTarget, timeout_ms: int | None = None
    ) -> ProbeResult:
        self.calls.append(target)
        return self.results.get(
            target.url, ProbeResult(available=False, error_kind="transport")
        )


@pytest.fixture()
def fake_prober() -> _FakeProber:
    return _FakeProber()


def _ok(tier: QualityTier, kbps: float | None, latency: int) -> ProbeResult:
    return ProbeResult(
        available=True, latency_ms=latency, quality_tier=tier, throughput_kbps=kbps
    )


class TestGuards:
    async def test_empty_raises(self, fake_prober: _FakeProber) -> None:
        with pytest.raises(ValueError):
            await SourceSelector(fake_prober).select_best([])

    async def test_single_candidate_not_probed(
        self,
        fake_prober: _FakeProber,
        candidate_factory: Callable[..., Candidate],
    ) -> None:
        only = candidate_factory("yhdm")

        result = await SourceSelector(fake_prober).select_best([only])

        assert result.best is only
        assert result.probe_results == {}
        assert result.fallback is False
        assert fake_prober.calls == []


class TestSelection:
    async def test_worked_example_picks_b(
        self,
        fake_prober: _FakeProber,
        candidate_factory: Callable[..., Candidate],
    ) -> None:
        a = candidate_factory("a")
        b = candidate_factory("b")
        c = candidate_factory("c")
        fake_prober.results = {
            a.representative_url: _ok(QualityTier.FHD1080, 800.0, 120),
            b.representative_url: _ok(QualityTier.HD720, 1200.0, 80),
            c.representative_url: ProbeResult(
                available=False, latency_ms=5000, error_kind="timeout"
            ),
        }

        result = await SourceSelector(fake_prober).select_best([a, b, c])

        assert result.best == b
        assert result.fallback is False
        assert [s.score for s in result.ranking] == [84.0, 56.67]
        assert set(result.probe_results) == {
            a.candidate_key,
            b.candidate_key,
            c.candidate_key,
        }
        assert result.probe_results[c.candidate_key].available is False

    async def test_probes_second_episode_as_stream(
        self,
        fake_prober: _FakeProber,
        candidate_factory: Callable[..., Candidate],
    ) -> None:
        a = candidate_factory(
            "a",
            episodes=("https://a.example.com/1.m3u8", "https://a.example.com/2.m3u8"),
        )
        b = candidate_factory("b", episodes=("https://b.example.com/1.m3u8",))

        await SourceSelector(fake_prober).select_best([a, b])

        assert sorted(t.url for t in fake_prober.calls) == [
            "https://a.example.com/2.m3u8",
            "https://b.example.com/1.m3u8",
        ]
        assert all(t.kind == ProbeKind.STREAM for t in fake_prober.calls)

    async def test_all_failures_fall_back_to_first(
        self,
        fake_prober: _FakeProber,
        candidate_factory: Callable[..., Candidate],
    ) -> None:
        candidates = [candidate_factory("a"), candidate_factory("b")]

        result = await SourceSelector(fake_prober).select_best(candidates)

        assert result.best == candidates[0]
        assert result.fallback is True
        assert result.ranking == []
        assert len(result.probe_results) == 2

    async def test_candidate_without_episodes_not_attempted(
        self,
        fake_prober: _FakeProber,
        candidate_factory: Callable[..., Candidate],
    ) -> None:
        empty = candidate_factory("empty", episodes=())
        good = candidate_factory("good")
        fake_prober.results = {good.representative_url: _ok(QualityTier.SD, None, 50)}

        result = await SourceSelector(fake_prober).select_best([empty, good])

        assert result.best == good
        assert empty.candidate_key not in result.probe_results
        assert len(fake_prober.calls) == 1

    async def test_raising_prober_is_contained(
        self, candidate_factory: Callable[..., Candidate]
    ) -> None:
        class ExplodingProber:
            async def probe(self, target, timeout_ms=None):
                raise RuntimeError("boom")

        candidates = [candidate_factory("a"), candidate_factory("b")]

        result = await SourceSelector(ExplodingProber()).select_best(candidates)

        assert result.fallback is True
        assert result.best == candidates[0]
        assert result.probe_results == {}


class TestProbeMemo:
    async def test_successful_probe_reused(
        self,
        fake_prober: _FakeProber,
        candidate_factory: Callable[..., Candidate],
        memory_cache: MemoryCacheAdapter,
    ) -> None:
        a = candidate_factory("a")
        b = candidate_factory("b")
        fake_prober.results = {
            a.representative_url: _ok(QualityTier.FHD1080, 800.0, 120),
            b.representative_url: _ok(QualityTier.HD720, 1200.0, 80),
        }
        selector = SourceSelector(
            fake_prober,
            probe_memo=CacheHealthStore(memory_cache),
            probe_ttl_seconds=600,
        )

        first = await selector.select_best([a, b])
        second = await selector.select_best([a, b])

        assert len(fake_prober.calls) == 2
        assert first.best == second.best == b

    async def test_zero_ttl_disables_memo(
        self,
        fake_prober: _FakeProber,
        candidate_factory: Callable[..., Candidate],
        memory_cache: MemoryCacheAdapter,
    ) -> None:
        a = candidate_factory("a")
        b = candidate_factory("b")
        fake_prober.results = {a.representative_url: _ok(QualityTier.SD, None, 10)}
        selector = SourceSelector(
            fake_prober,
            probe_memo=CacheHealthStore(memory_cache),
            probe_ttl_seconds=0,
        )

        await selector.select_best([a, b])
        await selector.select_best([a, b])

        assert len(fake_prober.calls) == 4

    async def test_memoized_figures_feed_the_round_bounds(
        self,
        fake_prober: _FakeProber,
        candidate_factory: Callable[..., Candidate],
        memory_cache: MemoryCacheAdapter,
    ) -> None:
        a = candidate_factory("a")
        b = candidate_factory("b")
        fake_prober.results = {
            a.representative_url: _ok(QualityTier.FHD1080, 800.0, 120),
            b.representative_url: _ok(QualityTier.HD720, 1200.0, 80),
        }
        selector = SourceSelector(
            fake_prober,
            probe_memo=CacheHealthStore(memory_cache),
            probe_ttl_seconds=600,
        )
        first = await selector.select_best([a, b])

        fake_prober.results[a.representative_url] = _ok(QualityTier.FHD1080, 100.0, 900)
        second = await selector.select_best([a, b])

        assert second.probe_results[a.candidate_key].latency_ms == 120
        assert [s.score for s in second.ranking] == [s.score for s in first.ranking]
