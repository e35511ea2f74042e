"""Domain entities for source health monitoring.

Pure value objects without I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceState(str, Enum):
    """Circuit-breaker state of one configured source."""

    UNKNOWN = "unknown"
    ENABLED = "enabled"
    RECOVERING = "recovering"
    DISABLED = "disabled"


@dataclass(frozen=True)
class SourceConfigEntry:
    """A configured catalog source, owned by the configuration store.

    The health monitor only ever toggles ``disabled``.
    """

    key: str
    name: str
    api: str
    disabled: bool = False


@dataclass(frozen=True)
class HealthRecord:
    """Latest known health of a configured source.

    ``consecutive_failures`` is the breaker counter when the record was
    read, which excludes the check that produced it until the breaker
    has run.
    """

    source_key: str
    available: bool
    latency_ms: int = 0
    catalog_size: int = 0
    consecutive_failures: int = 0
    last_checked_at: datetime = field(default_factory=_utcnow)
    name: str = ""


@dataclass(frozen=True)
class FailureCount:
    """Persisted breaker counter.

    ``last_observed_at`` is the check timestamp of the last probe that
    was counted, so a cached probe outcome is never counted twice.
    """

    count: int = 0
    last_observed_at: datetime | None = None


@dataclass(frozen=True)
class DiscoveredSource:
    key: str
    name: str
    api: str
    available: bool
    latency_ms: int = 0
    catalog_size: int = 0


@dataclass(frozen=True)
class DiscoveryReport:
    discovered: int
    available: int
    sources: list[DiscoveredSource] = field(default_factory=list)


@dataclass(frozen=True)
class QualityCheckReport:
    checked: int
    healthy: int
    results: list[HealthRecord] = field(default_factory=list)


@dataclass(frozen=True)
class AutoUpdateReport:
    updated: bool
    disabled_sources: list[str] = field(default_factory=list)
    enabled_sources: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MaintenanceReport:
    discovery: DiscoveryReport
    quality: QualityCheckReport
    update: AutoUpdateReport

    def summary(self) -> dict[str, Any]:
        """Flat counts for schedulers and log lines."""
        return {
            "discovered": self.discovery.discovered,
            "available": self.discovery.available,
            "checked": self.quality.checked,
            "healthy": self.quality.healthy,
            "updated": self.update.updated,
            "disabledSources": list(self.update.disabled_sources),
            "enabledSources": list(self.update.enabled_sources),
        }
