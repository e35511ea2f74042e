"""Periodic source maintenance: discovery, quality checks, breaker updates.

The monitor owns no timer; an external scheduler (cron via
``sourcegauge maintain``) calls :meth:`SourceHealthMonitor.run_maintenance`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

import structlog

from sourcegauge.domain.entities.health import (
    AutoUpdateReport,
    DiscoveredSource,
    DiscoveryReport,
    FailureCount,
    HealthRecord,
    MaintenanceReport,
    QualityCheckReport,
    SourceConfigEntry,
    SourceState,
)
from sourcegauge.domain.entities.probing import CatalogProbeResult, ProbeKind, ProbeTarget
from sourcegauge.domain.ports.prober import ProberPort
from sourcegauge.domain.ports.source_config import SourceConfigStorePort
from sourcegauge.infrastructure.circuit_breaker import SourceCircuitBreaker

log = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Protocols for injected collaborators.
# ---------------------------------------------------------------------------


class _KnownSource(Protocol):
    key: str
    name: str
    api: str


class _HealthConfig(Protocol):
    """Configuration values consumed by SourceHealthMonitor."""

    discovery_delay_seconds: float
    quality_delay_seconds: float
    quality_fresh_seconds: int

    @property
    def known_sources(self) -> Sequence[_KnownSource]: ...


class _HealthStore(Protocol):
    """Persistence for quality results, breaker counters and markers."""

    def lock(self, source_key: str) -> asyncio.Lock: ...

    async def get_quality(self, source_key: str) -> HealthRecord | None: ...

    async def put_quality(self, record: HealthRecord) -> None: ...

    async def get_failures(self, source_key: str) -> FailureCount: ...

    async def put_failures(self, source_key: str, failures: FailureCount) -> None: ...

    async def is_disabled_by_monitor(self, source_key: str) -> bool: ...

    async def mark_disabled_by_monitor(self, source_key: str, ts: datetime) -> None: ...

    async def clear_disabled_by_monitor(self, source_key: str) -> None: ...

    async def put_discovered(
        self, sources: list[DiscoveredSource], ts: datetime
    ) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceHealthMonitor:
    """Tracks configured sources and flips their ``disabled`` flag.

    Probes run strictly one at a time with a pause after each network
    probe so that maintenance never bursts against upstream APIs.
    """

    def __init__(
        self,
        *,
        prober: ProberPort,
        store: _HealthStore,
        config_store: SourceConfigStorePort,
        breaker: SourceCircuitBreaker,
        config: _HealthConfig,
        catalog_timeout_ms: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._prober = prober
        self._store = store
        self._config_store = config_store
        self._breaker = breaker
        self._config = config
        self._timeout_ms = catalog_timeout_ms
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover(self) -> DiscoveryReport:
        """Probe known catalog APIs that are not configured yet.

        Reachable ones are cached for operators to review; configuration
        rows are never added automatically.
        """
        configured = await self._config_store.list_sources()
        configured_apis = {s.api for s in configured}
        pending = [k for k in self._config.known_sources if k.api not in configured_apis]

        log.info("discovery_start", candidates=len(pending))
        found: list[DiscoveredSource] = []
        for i, known in enumerate(pending):
            if i:
                await self._sleep(self._config.discovery_delay_seconds)
            result = await self._probe_catalog(known.api)
            found.append(
                DiscoveredSource(
                    key=known.key,
                    name=known.name,
                    api=known.api,
                    available=result.available,
                    latency_ms=result.latency_ms,
                    catalog_size=result.catalog_size,
                )
            )

        available = [s for s in found if s.available]
        if pending:
            await self._store.put_discovered(available, self._clock())

        log.info("discovery_done", discovered=len(found), available=len(available))
        return DiscoveryReport(
            discovered=len(found), available=len(available), sources=found
        )

    # ------------------------------------------------------------------
    # Quality checks
    # ------------------------------------------------------------------

    async def check_quality(self) -> QualityCheckReport:
        """Check every enabled source, reusing fresh cached results.

        ``consecutive_failures`` on the returned records is the persisted
        counter before this check is applied; :meth:`auto_update` advances
        it and :meth:`run_maintenance` reports the advanced value.
        """
        sources = [s for s in await self._config_store.list_sources() if not s.disabled]
        return await self._check_sources(sources)

    async def _check_sources(
        self, sources: Sequence[SourceConfigEntry]
    ) -> QualityCheckReport:
        log.info("quality_check_start", sources=len(sources))
        records: list[HealthRecord] = []
        for source in sources:
            records.append(await self._check_source(source))

        healthy = sum(1 for r in records if r.available)
        log.info("quality_check_done", checked=len(records), healthy=healthy)
        return QualityCheckReport(checked=len(records), healthy=healthy, results=records)

    async def _check_source(self, source: SourceConfigEntry) -> HealthRecord:
        now = self._clock()
        failures = await self._store.get_failures(source.key)
        cached = await self._store.get_quality(source.key)
        if cached is not None:
            age = (now - cached.last_checked_at).total_seconds()
            if age < self._config.quality_fresh_seconds:
                log.debug("quality_cache_hit", source=source.key, age_s=int(age))
                return replace(cached, consecutive_failures=failures.count)

        result = await self._probe_catalog(source.api)
        record = HealthRecord(
            source_key=source.key,
            name=source.name,
            available=result.available,
            latency_ms=result.latency_ms,
            catalog_size=result.catalog_size,
            consecutive_failures=failures.count,
            last_checked_at=now,
        )
        async with self._store.lock(source.key):
            await self._store.put_quality(record)

        log.debug(
            "source_checked",
            source=source.key,
            available=record.available,
            latency_ms=record.latency_ms,
            catalog_size=record.catalog_size,
            error_kind=result.error_kind,
        )
        await self._sleep(self._config.quality_delay_seconds)
        return record

    # ------------------------------------------------------------------
    # Breaker updates
    # ------------------------------------------------------------------

    async def auto_update(self) -> AutoUpdateReport:
        """Apply the circuit breaker to all checkable sources.

        Enabled sources and sources the monitor disabled itself are
        checked; the config store is written only when a flag changes.
        A failed write is logged and reported as ``updated=False``.
        """
        sources = await self._config_store.list_sources()
        by_monitor: dict[str, bool] = {}
        checkable: list[SourceConfigEntry] = []
        for source in sources:
            flagged = await self._store.is_disabled_by_monitor(source.key)
            if flagged and not source.disabled:
                # Re-enabled outside the monitor; a later manual disable
                # must not be undone by a stale marker.
                await self._store.clear_disabled_by_monitor(source.key)
                log.info("monitor_marker_cleared", source=source.key)
                flagged = False
            by_monitor[source.key] = flagged
            if not source.disabled or flagged:
                checkable.append(source)

        report = await self._check_sources(checkable)

        changes: dict[str, bool] = {}
        disabled_names: list[str] = []
        enabled_names: list[str] = []
        for source, record in zip(checkable, report.results):
            async with self._store.lock(source.key):
                previous = await self._store.get_failures(source.key)
                decision = self._breaker.observe(
                    available=record.available,
                    checked_at=record.last_checked_at,
                    previous=previous,
                    disabled=source.disabled,
                    disabled_by_monitor=by_monitor[source.key],
                )
                if decision.counted:
                    await self._store.put_failures(source.key, decision.failures)

            if decision.action == "disable":
                changes[source.key] = True
                disabled_names.append(source.name)
                log.warning(
                    "source_disabled",
                    source=source.key,
                    failures=decision.failures.count,
                )
            elif decision.action == "enable":
                changes[source.key] = False
                enabled_names.append(source.name)
                log.info("source_recovered", source=source.key)

        if not changes:
            return AutoUpdateReport(updated=False)

        updated = [
            replace(s, disabled=changes[s.key]) if s.key in changes else s
            for s in sources
        ]
        try:
            await self._config_store.save_sources(updated)
        except Exception:
            log.error("sources_save_failed", changed=len(changes), exc_info=True)
            return AutoUpdateReport(
                updated=False,
                disabled_sources=disabled_names,
                enabled_sources=enabled_names,
            )

        now = self._clock()
        for key, disabled in changes.items():
            if disabled:
                await self._store.mark_disabled_by_monitor(key, now)
            else:
                await self._store.clear_disabled_by_monitor(key)

        log.info(
            "sources_updated",
            disabled=disabled_names,
            enabled=enabled_names,
        )
        return AutoUpdateReport(
            updated=True,
            disabled_sources=disabled_names,
            enabled_sources=enabled_names,
        )

    # ------------------------------------------------------------------

    async def run_maintenance(self) -> MaintenanceReport:
        """discover -> check_quality -> auto_update."""
        log.info("maintenance_start")
        discovery = await self.discover()
        quality = await self.check_quality()
        update = await self.auto_update()
        quality = await self._with_current_failures(quality)
        report = MaintenanceReport(discovery=discovery, quality=quality, update=update)
        log.info("maintenance_done", **report.summary())
        return report

    async def _with_current_failures(
        self, report: QualityCheckReport
    ) -> QualityCheckReport:
        results = [
            replace(
                record,
                consecutive_failures=(
                    await self._store.get_failures(record.source_key)
                ).count,
            )
            for record in report.results
        ]
        return replace(report, results=results)

    async def source_states(self) -> dict[str, SourceState]:
        """Breaker state of every configured source, keyed by source_key."""
        states: dict[str, SourceState] = {}
        for source in await self._config_store.list_sources():
            failures = await self._store.get_failures(source.key)
            flagged = await self._store.is_disabled_by_monitor(source.key)
            states[source.key] = self._breaker.state(
                disabled=source.disabled,
                disabled_by_monitor=flagged,
                failures=failures,
            )
        return states

    async def _probe_catalog(self, api: str) -> CatalogProbeResult:
        result = await self._prober.probe(
            ProbeTarget(url=api, kind=ProbeKind.CATALOG), self._timeout_ms
        )
        if isinstance(result, CatalogProbeResult):
            return result
        return CatalogProbeResult(
            available=result.available,
            latency_ms=result.latency_ms,
            error_kind=result.error_kind,
            http_status=result.http_status,
            started_at=result.started_at,
        )
