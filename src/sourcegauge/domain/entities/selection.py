"""Domain entities for request-time source selection."""

from __future__ import annotations

from dataclasses import dataclass, field

from sourcegauge.domain.entities.probing import ProbeResult


@dataclass(frozen=True)
class Candidate:
    """One upstream source offering a playable stream for a title.

    Built fresh for every selection round and never mutated.
    """

    source_key: str
    source_name: str
    title_id: str
    episodes: tuple[str, ...] = ()

    @property
    def candidate_key(self) -> str:
        return f"{self.source_key}-{self.title_id}"

    @property
    def episode_count(self) -> int:
        return len(self.episodes)

    @property
    def representative_url(self) -> str | None:
        """Episode URL used for probing.

        The second episode is preferred when there is more than one so
        that the sample is not biased by opening-credits artifacts.
        """
        if not self.episodes:
            return None
        if len(self.episodes) > 1:
            return self.episodes[1]
        return self.episodes[0]


@dataclass(frozen=True)
class ScoredInput:
    candidate: Candidate
    probe_result: ProbeResult | None


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    probe_result: ProbeResult
    score: float


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of one selection round.

    ``probe_results`` maps ``candidate_key`` to the result of every probe
    that was actually attempted (failed ones included), so callers can
    render per-source badges without probing again.  ``fallback`` is
    ``True`` when no probe succeeded and ``best`` is simply the first
    candidate.
    """

    best: Candidate
    probe_results: dict[str, ProbeResult] = field(default_factory=dict)
    ranking: list[ScoredCandidate] = field(default_factory=list)
    fallback: bool = False
