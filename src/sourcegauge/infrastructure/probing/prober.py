"""Bounded-time probes against stream manifests and catalog APIs.

Stream probe:
  1. GET the episode URL, reading at most ``segment_sample_bytes``.
     Time to response headers is the latency.
  2. HLS master playlist → tier from the widest ``RESOLUTION``; the best
     variant's first segment is sampled for throughput.
     HLS media playlist → first segment sampled for throughput.
     Anything else (direct file) → the bytes already read are the sample.
  3. No resolution signal → heuristic tier from the URL.

Catalog probe:
  GET ``{api}?ac=list`` and read ``total`` (or ``len(list)``) as the
  catalog size.

Both kinds are bounded by a single wall-clock budget and never raise;
every failure is encoded as ``available=False``.
"""

from __future__ import annotations

import asyncio
import math
import time
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from sourcegauge.domain.entities.probing import (
    CatalogProbeResult,
    ErrorKind,
    ProbeKind,
    ProbeResult,
    ProbeTarget,
    QualityTier,
)
from sourcegauge.infrastructure.probing.quality import (
    Playlist,
    best_variant,
    infer_tier_from_url,
    is_hls_manifest,
    parse_playlist,
    tier_from_manifest,
)

log = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

STREAM_TIMEOUT_MS: int = 5_000
CATALOG_TIMEOUT_MS: int = 10_000
SEGMENT_SAMPLE_BYTES: int = 262_144


def _elapsed_ms(t0: float) -> int:
    return math.ceil((time.monotonic() - t0) * 1000)


def _kbps(n_bytes: int, seconds: float) -> float | None:
    if n_bytes <= 0 or seconds <= 0:
        return None
    return round(n_bytes / 1024 / seconds, 2)


def _catalog_size(data: Any) -> int:
    """``total`` if present and non-zero, else the length of ``list``."""
    if not isinstance(data, dict):
        return 0
    total = data.get("total")
    if total:
        try:
            return int(total)
        except (TypeError, ValueError):
            pass
    items = data.get("list")
    if isinstance(items, list):
        return len(items)
    return 0


async def _read_capped(resp: httpx.Response, cap: int) -> tuple[bytes, float]:
    """Read up to *cap* body bytes; returns ``(body, seconds_spent)``."""
    t0 = time.monotonic()
    buf = bytearray()
    async for chunk in resp.aiter_bytes():
        buf.extend(chunk)
        if len(buf) >= cap:
            break
    return bytes(buf[:cap]), time.monotonic() - t0


class HttpxProber:
    """Probe implementation on a shared ``httpx.AsyncClient``.

    Args:
        http_client: Client owned by the composition root.
        stream_timeout_ms: Default budget for stream probes.
        catalog_timeout_ms: Default budget for catalog probes.
        segment_sample_bytes: Byte cap for throughput sampling.
        user_agent: User-Agent header sent with every request.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        stream_timeout_ms: int = STREAM_TIMEOUT_MS,
        catalog_timeout_ms: int = CATALOG_TIMEOUT_MS,
        segment_sample_bytes: int = SEGMENT_SAMPLE_BYTES,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._http = http_client
        self._stream_timeout_ms = stream_timeout_ms
        self._catalog_timeout_ms = catalog_timeout_ms
        self._sample_bytes = segment_sample_bytes
        self._user_agent = user_agent

    async def probe(
        self, target: ProbeTarget, timeout_ms: int | None = None
    ) -> ProbeResult:
        """Probe a single target and return a ProbeResult (never raises)."""
        if timeout_ms is None:
            timeout_ms = (
                self._catalog_timeout_ms
                if target.kind == ProbeKind.CATALOG
                else self._stream_timeout_ms
            )
        budget = timeout_ms / 1000
        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()

        try:
            if target.kind == ProbeKind.CATALOG:
                return await asyncio.wait_for(
                    self._probe_catalog(target.url, t0, started_at, budget),
                    timeout=budget,
                )
            return await self._probe_stream(target.url, t0, started_at, budget)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            log.debug("probe_timeout", url=target.url, kind=target.kind.value)
            return self._failure(target, t0, started_at, "timeout")
        except httpx.HTTPError as exc:
            log.debug(
                "probe_transport_error",
                url=target.url,
                kind=target.kind.value,
                error=str(exc),
            )
            return self._failure(target, t0, started_at, "transport")
        except Exception:
            log.warning(
                "probe_unexpected_error",
                url=target.url,
                kind=target.kind.value,
                exc_info=True,
            )
            return self._failure(target, t0, started_at, "unexpected")

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    async def _probe_stream(
        self, url: str, t0: float, started_at: datetime, budget: float
    ) -> ProbeResult:
        status, latency_ms, body, read_s, final_url = await asyncio.wait_for(
            self._fetch_head_of_body(url, budget), timeout=budget
        )

        if status >= 400:
            return ProbeResult(
                available=False,
                latency_ms=latency_ms,
                error_kind="http_status",
                http_status=status,
                started_at=started_at,
            )

        tier: QualityTier | None = None
        throughput: float | None = None

        if is_hls_manifest(body):
            playlist = parse_playlist(body.decode("utf-8", "ignore"), final_url)
            tier = tier_from_manifest(playlist)
            remaining = budget - (time.monotonic() - t0)
            if remaining > 0:
                throughput = await self._sample_playlist(playlist, remaining)
        else:
            throughput = _kbps(len(body), read_s)

        if tier is None:
            tier = infer_tier_from_url(url)

        log.debug(
            "stream_probe_done",
            url=url,
            latency_ms=latency_ms,
            tier=tier.value,
            throughput_kbps=throughput,
        )
        return ProbeResult(
            available=True,
            latency_ms=latency_ms,
            quality_tier=tier,
            throughput_kbps=throughput,
            http_status=status,
            started_at=started_at,
        )

    async def _fetch_head_of_body(
        self, url: str, budget: float
    ) -> tuple[int, int, bytes, float, str]:
        t0 = time.monotonic()
        async with self._http.stream(
            "GET",
            url,
            headers={"User-Agent": self._user_agent},
            follow_redirects=True,
            timeout=budget,
        ) as resp:
            latency_ms = _elapsed_ms(t0)
            if resp.status_code >= 400:
                return resp.status_code, latency_ms, b"", 0.0, str(resp.url)
            body, read_s = await _read_capped(resp, self._sample_bytes)
            return resp.status_code, latency_ms, body, read_s, str(resp.url)

    async def _sample_playlist(
        self, playlist: Playlist, remaining: float
    ) -> float | None:
        """Measure throughput on the first media segment within *remaining* s.

        Sampling problems leave throughput unmeasured; they never make a
        reachable manifest unavailable.
        """
        try:
            return await asyncio.wait_for(
                self._sample_first_segment(playlist, remaining), timeout=remaining
            )
        except (asyncio.TimeoutError, httpx.HTTPError, ValueError) as exc:
            log.debug("segment_sample_failed", error=str(exc) or type(exc).__name__)
            return None

    async def _sample_first_segment(
        self, playlist: Playlist, remaining: float
    ) -> float | None:
        segments = playlist.segments
        if playlist.is_master:
            variant = best_variant(playlist)
            if variant is None:
                return None
            resp = await self._http.get(
                variant.uri,
                headers={"User-Agent": self._user_agent},
                follow_redirects=True,
                timeout=remaining,
            )
            resp.raise_for_status()
            segments = parse_playlist(resp.text, str(resp.url)).segments

        if not segments:
            return None

        t0 = time.monotonic()
        async with self._http.stream(
            "GET",
            segments[0],
            headers={"User-Agent": self._user_agent},
            follow_redirects=True,
            timeout=remaining,
        ) as resp:
            resp.raise_for_status()
            body, _ = await _read_capped(resp, self._sample_bytes)
        return _kbps(len(body), time.monotonic() - t0)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def _probe_catalog(
        self, api: str, t0: float, started_at: datetime, budget: float
    ) -> CatalogProbeResult:
        resp = await self._http.get(
            api,
            params={"ac": "list"},
            headers={
                "User-Agent": self._user_agent,
                "Accept": "application/json",
            },
            follow_redirects=True,
            timeout=budget,
        )
        latency_ms = _elapsed_ms(t0)

        if resp.status_code >= 400:
            return CatalogProbeResult(
                available=False,
                latency_ms=latency_ms,
                error_kind="http_status",
                http_status=resp.status_code,
                started_at=started_at,
            )

        try:
            data = resp.json()
        except ValueError:
            log.debug("catalog_probe_invalid_json", url=api)
            return CatalogProbeResult(
                available=False,
                latency_ms=latency_ms,
                error_kind="invalid_payload",
                http_status=resp.status_code,
                started_at=started_at,
            )

        size = _catalog_size(data)
        log.debug(
            "catalog_probe_done", url=api, latency_ms=latency_ms, catalog_size=size
        )
        return CatalogProbeResult(
            available=True,
            latency_ms=latency_ms,
            http_status=resp.status_code,
            started_at=started_at,
            catalog_size=size,
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _failure(
        target: ProbeTarget,
        t0: float,
        started_at: datetime,
        error_kind: ErrorKind,
    ) -> ProbeResult:
        cls = CatalogProbeResult if target.kind == ProbeKind.CATALOG else ProbeResult
        return cls(
            available=False,
            latency_ms=_elapsed_ms(t0),
            error_kind=error_kind,
            started_at=started_at,
        )
