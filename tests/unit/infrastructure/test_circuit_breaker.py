"""Tests for SourceCircuitBreaker."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sourcegauge.domain.entities.health import FailureCount, SourceState
from sourcegauge.infrastructure.circuit_breaker import SourceCircuitBreaker

_T0 = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _at(hours: int) -> datetime:
    return _T0 + timedelta(hours=hours)


class TestFailures:
    def test_failure_increments_by_one(self) -> None:
        cb = SourceCircuitBreaker(failure_threshold=3)
        d = cb.observe(
            available=False,
            checked_at=_at(1),
            previous=FailureCount(count=1, last_observed_at=_at(0)),
            disabled=False,
            disabled_by_monitor=False,
        )
        assert d.failures == FailureCount(count=2, last_observed_at=_at(1))
        assert d.action is None
        assert d.state == SourceState.ENABLED

    def test_disables_at_threshold(self) -> None:
        cb = SourceCircuitBreaker(failure_threshold=3)
        d = cb.observe(
            available=False,
            checked_at=_at(2),
            previous=FailureCount(count=2, last_observed_at=_at(1)),
            disabled=False,
            disabled_by_monitor=False,
        )
        assert d.failures.count == 3
        assert d.action == "disable"
        assert d.state == SourceState.DISABLED

    def test_already_disabled_is_not_disabled_again(self) -> None:
        cb = SourceCircuitBreaker(failure_threshold=3)
        d = cb.observe(
            available=False,
            checked_at=_at(5),
            previous=FailureCount(count=4, last_observed_at=_at(4)),
            disabled=True,
            disabled_by_monitor=True,
        )
        assert d.action is None
        assert d.state == SourceState.DISABLED


class TestSuccess:
    def test_success_resets(self) -> None:
        cb = SourceCircuitBreaker()
        d = cb.observe(
            available=True,
            checked_at=_at(1),
            previous=FailureCount(count=2, last_observed_at=_at(0)),
            disabled=False,
            disabled_by_monitor=False,
        )
        assert d.failures == FailureCount(count=0, last_observed_at=_at(1))
        assert d.action is None
        assert d.state == SourceState.ENABLED

    def test_recovers_monitor_disabled(self) -> None:
        cb = SourceCircuitBreaker()
        d = cb.observe(
            available=True,
            checked_at=_at(4),
            previous=FailureCount(count=3, last_observed_at=_at(3)),
            disabled=True,
            disabled_by_monitor=True,
        )
        assert d.action == "enable"
        assert d.state == SourceState.RECOVERING
        assert d.failures.count == 0

    def test_externally_disabled_left_alone(self) -> None:
        cb = SourceCircuitBreaker()
        d = cb.observe(
            available=True,
            checked_at=_at(1),
            previous=FailureCount(),
            disabled=True,
            disabled_by_monitor=False,
        )
        assert d.action is None
        assert d.state == SourceState.DISABLED


class TestReusedObservation:
    def test_same_timestamp_not_counted_twice(self) -> None:
        cb = SourceCircuitBreaker()
        previous = FailureCount(count=1, last_observed_at=_at(1))
        d = cb.observe(
            available=False,
            checked_at=_at(1),
            previous=previous,
            disabled=False,
            disabled_by_monitor=False,
        )
        assert d.counted is False
        assert d.failures == previous


class TestState:
    def test_unknown_without_observation(self) -> None:
        cb = SourceCircuitBreaker()
        state = cb.state(disabled=False, disabled_by_monitor=False, failures=FailureCount())
        assert state == SourceState.UNKNOWN

    def test_enabled_after_observation(self) -> None:
        cb = SourceCircuitBreaker()
        failures = FailureCount(count=1, last_observed_at=_T0)
        assert (
            cb.state(disabled=False, disabled_by_monitor=False, failures=failures)
            == SourceState.ENABLED
        )

    def test_recovering_when_success_pending_save(self) -> None:
        cb = SourceCircuitBreaker()
        failures = FailureCount(count=0, last_observed_at=_T0)
        assert (
            cb.state(disabled=True, disabled_by_monitor=True, failures=failures)
            == SourceState.RECOVERING
        )

    def test_disabled(self) -> None:
        cb = SourceCircuitBreaker()
        failures = FailureCount(count=3, last_observed_at=_T0)
        assert (
            cb.state(disabled=True, disabled_by_monitor=True, failures=failures)
            == SourceState.DISABLED
        )


def test_invalid_threshold_rejected() -> None:
    with pytest.raises(ValueError):
        SourceCircuitBreaker(failure_threshold=0)
