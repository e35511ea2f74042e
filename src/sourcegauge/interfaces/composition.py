"""Composition root: wires config into cache, HTTP client and use cases."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx
import structlog

from sourcegauge.application.use_cases import SourceHealthMonitor, SourceSelector
from sourcegauge.domain.ports import CachePort, SourceConfigStorePort
from sourcegauge.infrastructure.cache.cache_factory import create_cache
from sourcegauge.infrastructure.circuit_breaker import SourceCircuitBreaker
from sourcegauge.infrastructure.config.schema import AppConfig
from sourcegauge.infrastructure.persistence.health_cache import CacheHealthStore
from sourcegauge.infrastructure.persistence.source_config_yaml import (
    YamlSourceConfigStore,
)
from sourcegauge.infrastructure.probing.prober import HttpxProber

log = structlog.get_logger(__name__)


@dataclass
class Services:
    """Wired resources; valid only inside :func:`build_services`."""

    config: AppConfig
    cache: CachePort
    http_client: httpx.AsyncClient
    health_store: CacheHealthStore
    selector: SourceSelector
    monitor: SourceHealthMonitor


@asynccontextmanager
async def build_services(
    config: AppConfig,
    *,
    config_store: SourceConfigStorePort | None = None,
) -> AsyncIterator[Services]:
    """Initialize and clean up all resources.

    Order matters:
        1. Cache (health store and probe memo depend on it)
        2. HTTP client (prober depends on it)
        3. Prober, stores, breaker
        4. Selector and health monitor
    """
    # 1) Cache
    cache = create_cache(
        backend=config.cache.backend,
        directory=str(config.cache.directory),
        redis_url=config.cache.redis_url,
        ttl_seconds=config.cache.ttl_seconds,
        max_concurrent=config.cache.max_concurrent,
    )
    await cache.__aenter__()
    log.info("cache_initialized", backend=config.cache.backend)

    # 2) HTTP client; per-request budgets are set by the prober
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.probing.catalog_timeout_ms / 1000),
        headers={"User-Agent": config.probing.user_agent},
        follow_redirects=True,
    )
    log.info("http_client_initialized")

    try:
        # 3) Infrastructure
        prober = HttpxProber(
            http_client,
            stream_timeout_ms=config.probing.stream_timeout_ms,
            catalog_timeout_ms=config.probing.catalog_timeout_ms,
            segment_sample_bytes=config.probing.segment_sample_bytes,
            user_agent=config.probing.user_agent,
        )
        health = config.health
        health_store = CacheHealthStore(
            cache,
            quality_ttl_seconds=health.quality_ttl_seconds,
            discovery_ttl_seconds=health.discovery_ttl_seconds,
            fail_count_ttl_seconds=health.fail_count_ttl_seconds,
            disabled_marker_ttl_seconds=health.disabled_marker_ttl_seconds,
        )
        if config_store is None:
            config_store = YamlSourceConfigStore(config.sources_file)

        # 4) Use cases
        selector = SourceSelector(
            prober,
            stream_timeout_ms=config.probing.stream_timeout_ms,
            probe_memo=health_store,
            probe_ttl_seconds=config.probing.stream_probe_ttl_seconds,
        )
        monitor = SourceHealthMonitor(
            prober=prober,
            store=health_store,
            config_store=config_store,
            breaker=SourceCircuitBreaker(failure_threshold=health.failure_threshold),
            config=health,
            catalog_timeout_ms=config.probing.catalog_timeout_ms,
        )
        log.info("services_initialized", environment=config.environment)

        yield Services(
            config=config,
            cache=cache,
            http_client=http_client,
            health_store=health_store,
            selector=selector,
            monitor=monitor,
        )
    finally:
        await http_client.aclose()
        log.info("http_client_closed")
        await cache.aclose()
        log.info("cache_closed")
