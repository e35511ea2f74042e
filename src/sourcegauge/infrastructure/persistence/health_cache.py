"""Probe-result and breaker-counter persistence backed by CachePort."""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict
from datetime import datetime

import structlog

from sourcegauge.domain.entities.health import (
    DiscoveredSource,
    FailureCount,
    HealthRecord,
)
from sourcegauge.domain.entities.probing import ProbeResult, QualityTier
from sourcegauge.domain.ports.cache import CachePort

log = structlog.get_logger(__name__)

QUALITY_PREFIX: str = "cache:quality:"
DISCOVERED_KEY: str = "cache:sources:discovered"
FAIL_COUNT_PREFIX: str = "source_fail_count:"
DISABLED_MARKER_PREFIX: str = "source_disabled_by_monitor:"
PROBE_PREFIX: str = "cache:probe:"


def quality_key(source_key: str) -> str:
    return f"{QUALITY_PREFIX}{source_key}"


def fail_count_key(source_key: str) -> str:
    return f"{FAIL_COUNT_PREFIX}{source_key}"


def disabled_marker_key(source_key: str) -> str:
    return f"{DISABLED_MARKER_PREFIX}{source_key}"


def probe_key(candidate_key: str) -> str:
    return f"{PROBE_PREFIX}{candidate_key}"


def _serialize_record(record: HealthRecord) -> str:
    return json.dumps(
        {
            "source_key": record.source_key,
            "name": record.name,
            "available": record.available,
            "latency_ms": record.latency_ms,
            "catalog_size": record.catalog_size,
            "last_checked_at": record.last_checked_at.isoformat(),
        }
    )


def _deserialize_record(data: str) -> HealthRecord:
    d = json.loads(data)
    return HealthRecord(
        source_key=d["source_key"],
        name=d.get("name", ""),
        available=bool(d["available"]),
        latency_ms=int(d["latency_ms"]),
        catalog_size=int(d.get("catalog_size", 0)),
        last_checked_at=datetime.fromisoformat(d["last_checked_at"]),
    )


def _serialize_failures(failures: FailureCount) -> str:
    ts = failures.last_observed_at
    return json.dumps(
        {"count": failures.count, "last_observed_at": ts.isoformat() if ts else None}
    )


def _deserialize_failures(data: object) -> FailureCount:
    # Bare integers are accepted for counters written by older deployments.
    if isinstance(data, int):
        return FailureCount(count=data)
    d = json.loads(data)  # type: ignore[arg-type]
    ts = d.get("last_observed_at")
    return FailureCount(
        count=int(d["count"]),
        last_observed_at=datetime.fromisoformat(ts) if ts else None,
    )


def _serialize_probe(result: ProbeResult) -> str:
    return json.dumps(
        {
            "available": result.available,
            "latency_ms": result.latency_ms,
            "quality_tier": result.quality_tier.value,
            "throughput_kbps": result.throughput_kbps,
            "http_status": result.http_status,
            "started_at": result.started_at.isoformat(),
        }
    )


def _deserialize_probe(data: str) -> ProbeResult:
    d = json.loads(data)
    return ProbeResult(
        available=bool(d["available"]),
        latency_ms=int(d["latency_ms"]),
        quality_tier=QualityTier(d["quality_tier"]),
        throughput_kbps=d.get("throughput_kbps"),
        http_status=d.get("http_status"),
        started_at=datetime.fromisoformat(d["started_at"]),
    )


class CacheHealthStore:
    """Stores health-check outcomes and breaker counters via CachePort.

    Key schema:
    - ``cache:quality:{source_key}`` → JSON HealthRecord (12 h)
    - ``source_fail_count:{source_key}`` → JSON FailureCount (24 h)
    - ``source_disabled_by_monitor:{source_key}`` → ISO timestamp
    - ``cache:sources:discovered`` → JSON discovery snapshot (24 h)
    - ``cache:probe:{candidate_key}`` → JSON stream ProbeResult

    Writes for one ``source_key`` can be serialised with :meth:`lock`.
    """

    def __init__(
        self,
        cache: CachePort,
        *,
        quality_ttl_seconds: int = 43_200,
        discovery_ttl_seconds: int = 86_400,
        fail_count_ttl_seconds: int = 86_400,
        disabled_marker_ttl_seconds: int = 30 * 86_400,
    ) -> None:
        self.cache = cache
        self.quality_ttl = quality_ttl_seconds
        self.discovery_ttl = discovery_ttl_seconds
        self.fail_count_ttl = fail_count_ttl_seconds
        self.disabled_marker_ttl = disabled_marker_ttl_seconds
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, source_key: str) -> asyncio.Lock:
        lock = self._locks.get(source_key)
        if lock is None:
            lock = self._locks[source_key] = asyncio.Lock()
        return lock

    # -- quality results ---------------------------------------------------

    async def get_quality(self, source_key: str) -> HealthRecord | None:
        key = quality_key(source_key)
        data = await self.cache.get(key)
        if data is None:
            return None
        try:
            return _deserialize_record(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("quality_deserialize_error", key=key, error=str(e))
            return None

    async def put_quality(self, record: HealthRecord) -> None:
        await self.cache.set(
            quality_key(record.source_key),
            _serialize_record(record),
            ttl=self.quality_ttl,
        )

    async def invalidate_quality(self, source_key: str | None = None) -> int:
        """Drop one cached quality result, or all of them."""
        if source_key is not None:
            return int(await self.cache.delete(quality_key(source_key)))
        removed = await self.cache.delete_by_prefix(QUALITY_PREFIX)
        log.info("quality_cache_invalidated", removed=removed)
        return removed

    # -- breaker counters --------------------------------------------------

    async def get_failures(self, source_key: str) -> FailureCount:
        key = fail_count_key(source_key)
        data = await self.cache.get(key)
        if data is None:
            return FailureCount()
        try:
            return _deserialize_failures(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("fail_count_deserialize_error", key=key, error=str(e))
            return FailureCount()

    async def put_failures(self, source_key: str, failures: FailureCount) -> None:
        await self.cache.set(
            fail_count_key(source_key),
            _serialize_failures(failures),
            ttl=self.fail_count_ttl,
        )

    async def is_disabled_by_monitor(self, source_key: str) -> bool:
        return await self.cache.get(disabled_marker_key(source_key)) is not None

    async def mark_disabled_by_monitor(self, source_key: str, ts: datetime) -> None:
        await self.cache.set(
            disabled_marker_key(source_key),
            ts.isoformat(),
            ttl=self.disabled_marker_ttl,
        )

    async def clear_disabled_by_monitor(self, source_key: str) -> None:
        await self.cache.delete(disabled_marker_key(source_key))

    # -- discovery ---------------------------------------------------------

    async def put_discovered(
        self, sources: list[DiscoveredSource], ts: datetime
    ) -> None:
        payload = {
            "last_update": ts.isoformat(),
            "sources": [asdict(s) for s in sources],
        }
        await self.cache.set(
            DISCOVERED_KEY, json.dumps(payload), ttl=self.discovery_ttl
        )

    async def get_discovered(self) -> list[DiscoveredSource]:
        data = await self.cache.get(DISCOVERED_KEY)
        if data is None:
            return []
        try:
            payload = json.loads(data)
            return [DiscoveredSource(**s) for s in payload["sources"]]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            log.error("discovered_deserialize_error", error=str(e))
            return []

    # -- stream probe memo -------------------------------------------------

    async def get_probe(self, candidate_key: str) -> ProbeResult | None:
        key = probe_key(candidate_key)
        data = await self.cache.get(key)
        if data is None:
            return None
        try:
            return _deserialize_probe(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("probe_deserialize_error", key=key, error=str(e))
            return None

    async def put_probe(
        self, candidate_key: str, result: ProbeResult, *, ttl: int
    ) -> None:
        await self.cache.set(probe_key(candidate_key), _serialize_probe(result), ttl=ttl)
