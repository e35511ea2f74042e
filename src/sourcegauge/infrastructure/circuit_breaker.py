"""Per-source circuit breaker deciding enable/disable transitions.

A source that fails ``failure_threshold`` consecutive health checks is
disabled.  A source the monitor disabled is enabled again by the very
next successful check.  Sources disabled by anything else are never
touched.

The breaker itself is stateless: the caller passes the persisted
``FailureCount`` in and stores the returned one, so the counter lives
as long as the backing cache keeps it, independently of the cached
probe results.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from sourcegauge.domain.entities.health import FailureCount, SourceState

BreakerAction = Literal["disable", "enable"]


@dataclass(frozen=True)
class BreakerDecision:
    state: SourceState
    failures: FailureCount
    action: BreakerAction | None = None
    counted: bool = True


class SourceCircuitBreaker:
    """Apply one health observation to a source's breaker state."""

    def __init__(self, *, failure_threshold: int = 3) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self._threshold = failure_threshold

    @property
    def failure_threshold(self) -> int:
        return self._threshold

    def observe(
        self,
        *,
        available: bool,
        checked_at: datetime,
        previous: FailureCount,
        disabled: bool,
        disabled_by_monitor: bool,
    ) -> BreakerDecision:
        """Return the transition caused by a check made at *checked_at*.

        - success → counter reset to 0; a monitor-disabled source is
          re-enabled (``action="enable"``).
        - failure → counter + 1; an enabled source reaching the threshold
          is disabled (``action="disable"``).

        An observation whose ``checked_at`` is not newer than
        ``previous.last_observed_at`` was already counted (a reused cached
        probe) and leaves the counter unchanged.
        """
        already_counted = (
            previous.last_observed_at is not None
            and checked_at <= previous.last_observed_at
        )

        if already_counted:
            failures = previous
        elif available:
            failures = FailureCount(count=0, last_observed_at=checked_at)
        else:
            failures = FailureCount(
                count=previous.count + 1, last_observed_at=checked_at
            )

        if available:
            if disabled and disabled_by_monitor:
                return BreakerDecision(
                    state=SourceState.RECOVERING,
                    failures=failures,
                    action="enable",
                    counted=not already_counted,
                )
            return BreakerDecision(
                state=SourceState.DISABLED if disabled else SourceState.ENABLED,
                failures=failures,
                counted=not already_counted,
            )

        if not disabled and failures.count >= self._threshold:
            return BreakerDecision(
                state=SourceState.DISABLED,
                failures=failures,
                action="disable",
                counted=not already_counted,
            )
        return BreakerDecision(
            state=SourceState.DISABLED if disabled else SourceState.ENABLED,
            failures=failures,
            counted=not already_counted,
        )

    def state(
        self,
        *,
        disabled: bool,
        disabled_by_monitor: bool,
        failures: FailureCount | None,
    ) -> SourceState:
        """Diagnostic state of a source without applying an observation."""
        observed = failures is not None and failures.last_observed_at is not None
        if disabled:
            if disabled_by_monitor and observed and failures.count == 0:
                # Success observed, re-enable not persisted yet.
                return SourceState.RECOVERING
            return SourceState.DISABLED
        if not observed:
            return SourceState.UNKNOWN
        return SourceState.ENABLED
