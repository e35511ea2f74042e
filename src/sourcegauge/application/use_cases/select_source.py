"""Request-time source selection use case.

candidates -> batched stream probes -> round-relative scores -> best.
"""

from __future__ import annotations

from typing import Protocol, Sequence

import structlog

from sourcegauge.domain.entities.probing import ProbeKind, ProbeResult, ProbeTarget
from sourcegauge.domain.entities.selection import (
    Candidate,
    ScoredInput,
    SelectionResult,
)
from sourcegauge.domain.ports.prober import ProberPort
from sourcegauge.infrastructure.probing.batch import index_results, run_batched
from sourcegauge.infrastructure.scoring.scorer import rank, score

log = structlog.get_logger(__name__)


class _ProbeMemo(Protocol):
    """Short-lived store for successful stream probe results."""

    async def get_probe(self, candidate_key: str) -> ProbeResult | None: ...

    async def put_probe(
        self, candidate_key: str, result: ProbeResult, *, ttl: int
    ) -> None: ...


class SourceSelector:
    """Pick the best-performing candidate for one playback request.

    Scores are normalized within the round. A memoized result still carries
    the latency and throughput measured when it was stored, so with a memo
    the round bounds can include figures up to ``probe_ttl_seconds`` old.

    Args:
        prober: Probe implementation (stream kind is used).
        stream_timeout_ms: Per-probe budget; ``None`` uses the prober default.
        probe_memo: Optional store that memoizes successful probes.
        probe_ttl_seconds: Memo TTL; ``0`` disables memoization.
        concurrency_limit: Probes per group; ``None`` means half the
            candidates, rounded up.
    """

    def __init__(
        self,
        prober: ProberPort,
        *,
        stream_timeout_ms: int | None = None,
        probe_memo: _ProbeMemo | None = None,
        probe_ttl_seconds: int = 600,
        concurrency_limit: int | None = None,
    ) -> None:
        self._prober = prober
        self._timeout_ms = stream_timeout_ms
        self._memo = probe_memo if probe_ttl_seconds > 0 else None
        self._memo_ttl = probe_ttl_seconds
        self._concurrency_limit = concurrency_limit

    async def select_best(self, candidates: Sequence[Candidate]) -> SelectionResult:
        if not candidates:
            raise ValueError("select_best() requires at least one candidate")

        if len(candidates) == 1:
            log.debug("selection_single_candidate", source=candidates[0].source_key)
            return SelectionResult(best=candidates[0])

        results = await run_batched(
            list(candidates),
            self._probe_candidate,
            concurrency_limit=self._concurrency_limit,
        )
        probe_results = index_results([c.candidate_key for c in candidates], results)

        scored = score(
            [ScoredInput(candidate=c, probe_result=r) for c, r in zip(candidates, results)]
        )
        if not scored:
            log.info(
                "selection_fallback",
                candidates=len(candidates),
                attempted=len(probe_results),
                fallback=candidates[0].source_key,
            )
            return SelectionResult(
                best=candidates[0], probe_results=probe_results, fallback=True
            )

        ranking = rank(scored)
        best = ranking[0]
        log.info(
            "selection_done",
            candidates=len(candidates),
            available=len(scored),
            best=best.candidate.source_key,
            score=best.score,
        )
        return SelectionResult(
            best=best.candidate, probe_results=probe_results, ranking=ranking
        )

    async def _probe_candidate(self, candidate: Candidate) -> ProbeResult | None:
        url = candidate.representative_url
        if url is None:
            return None

        key = candidate.candidate_key
        if self._memo is not None:
            cached = await self._memo.get_probe(key)
            if cached is not None:
                log.debug("probe_memo_hit", candidate=key)
                return cached

        result = await self._prober.probe(
            ProbeTarget(url=url, kind=ProbeKind.STREAM), self._timeout_ms
        )
        if not result.available:
            log.debug(
                "candidate_unavailable",
                candidate=key,
                error_kind=result.error_kind,
                http_status=result.http_status,
            )
        elif self._memo is not None:
            await self._memo.put_probe(key, result, ttl=self._memo_ttl)
        return result
