"""Port for endpoint probes."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sourcegauge.domain.entities.probing import ProbeResult, ProbeTarget


@runtime_checkable
class ProberPort(Protocol):
    """Issue one bounded-time request against a target.

    Implementations never raise for network problems: every failure is
    encoded as ``ProbeResult(available=False, ...)``.
    """

    async def probe(
        self, target: ProbeTarget, timeout_ms: int | None = None
    ) -> ProbeResult: ...
