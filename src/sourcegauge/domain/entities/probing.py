"""Domain entities for probing candidate endpoints.

Pure value objects without I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

ErrorKind = Literal[
    "timeout",
    "transport",
    "http_status",
    "invalid_payload",
    "unexpected",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QualityTier(str, Enum):
    """Coarse resolution classification of a stream."""

    UHD4K = "4K"
    QHD2K = "2K"
    FHD1080 = "1080p"
    HD720 = "720p"
    SD480 = "480p"
    SD = "SD"
    UNKNOWN = "unknown"


class ProbeKind(str, Enum):
    """What a probe targets: a video manifest or a catalog-listing API."""

    STREAM = "stream"
    CATALOG = "catalog"


@dataclass(frozen=True)
class ProbeTarget:
    url: str
    kind: ProbeKind = ProbeKind.STREAM


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one bounded-time probe.

    ``available=False`` means every other field is best-effort:
    ``latency_ms`` is the time spent until the failure, the tier is
    ``UNKNOWN`` and throughput is unmeasured.  ``error_kind`` and
    ``http_status`` are diagnostics only; scoring and the circuit
    breaker look at ``available`` alone.
    """

    available: bool
    latency_ms: int = 0
    quality_tier: QualityTier = QualityTier.UNKNOWN
    throughput_kbps: float | None = None
    error_kind: ErrorKind | None = None
    http_status: int | None = None
    started_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class CatalogProbeResult(ProbeResult):
    """Catalog-kind probe result carrying the advertised item count."""

    catalog_size: int = 0
