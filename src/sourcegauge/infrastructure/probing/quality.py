"""Quality-tier inference for stream probes.

Two separate signals, never mixed:

* **Measured**: ``tier_from_resolution`` / ``tier_from_manifest`` read
  the ``RESOLUTION=WxH`` attribute that HLS master playlists advertise
  per variant.
* **Heuristic**: ``infer_tier_from_url`` guesses from substrings of the
  URL.  It is a fallback for when no manifest signal exists and is not
  authoritative: a URL containing ``hd`` says nothing reliable about the
  pixels behind it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import urljoin

from sourcegauge.domain.entities.probing import QualityTier

_RESOLUTION_RE = re.compile(r"RESOLUTION=(\d+)x(\d+)", re.IGNORECASE)
_BANDWIDTH_RE = re.compile(r"(?<![-A-Z])BANDWIDTH=(\d+)", re.IGNORECASE)

# Width thresholds, widest first.
_WIDTH_TIERS: tuple[tuple[int, QualityTier], ...] = (
    (3840, QualityTier.UHD4K),
    (2560, QualityTier.QHD2K),
    (1920, QualityTier.FHD1080),
    (1280, QualityTier.HD720),
    (854, QualityTier.SD480),
)

# URL hints, checked in order; the first match wins.
_URL_HINTS: tuple[tuple[tuple[str, ...], QualityTier], ...] = (
    (("4k", "2160"), QualityTier.UHD4K),
    (("1080", "fhd"), QualityTier.FHD1080),
    (("720", "hd"), QualityTier.HD720),
)


@dataclass(frozen=True)
class Variant:
    uri: str
    width: int | None = None
    height: int | None = None
    bandwidth: int | None = None


@dataclass(frozen=True)
class Playlist:
    """Minimal view of an HLS playlist: variants (master) or segments (media)."""

    variants: list[Variant] = field(default_factory=list)
    segments: list[str] = field(default_factory=list)

    @property
    def is_master(self) -> bool:
        return bool(self.variants)


def is_hls_manifest(body: bytes | str) -> bool:
    text = body.decode("utf-8", "ignore") if isinstance(body, bytes) else body
    return text.lstrip("\ufeff \t\r\n").startswith("#EXTM3U")


def parse_playlist(text: str, base_url: str) -> Playlist:
    """Parse an HLS playlist, resolving URIs against *base_url*."""
    variants: list[Variant] = []
    segments: list[str] = []
    pending_attrs: str | None = None

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#EXT-X-STREAM-INF"):
            pending_attrs = line
            continue
        if line.startswith("#"):
            continue
        uri = urljoin(base_url, line)
        if pending_attrs is not None:
            res = _RESOLUTION_RE.search(pending_attrs)
            bw = _BANDWIDTH_RE.search(pending_attrs)
            variants.append(
                Variant(
                    uri=uri,
                    width=int(res.group(1)) if res else None,
                    height=int(res.group(2)) if res else None,
                    bandwidth=int(bw.group(1)) if bw else None,
                )
            )
            pending_attrs = None
        else:
            segments.append(uri)

    return Playlist(variants=variants, segments=segments)


def tier_from_resolution(width: int, height: int | None = None) -> QualityTier:
    """Map a measured frame width to a tier."""
    for min_width, tier in _WIDTH_TIERS:
        if width >= min_width:
            return tier
    if width > 0 or (height or 0) > 0:
        return QualityTier.SD
    return QualityTier.UNKNOWN


def tier_from_manifest(playlist: Playlist) -> QualityTier | None:
    """Best tier advertised by a master playlist, or None without a signal."""
    widths = [v.width for v in playlist.variants if v.width]
    if not widths:
        return None
    return tier_from_resolution(max(widths))


def best_variant(playlist: Playlist) -> Variant | None:
    """Variant with the highest resolution, then bandwidth."""
    if not playlist.variants:
        return None
    return max(
        playlist.variants,
        key=lambda v: ((v.width or 0) * (v.height or 0), v.bandwidth or 0),
    )


def infer_tier_from_url(url: str) -> QualityTier:
    """Heuristic tier from URL substrings (fallback only, not a measurement).

    ``4k``/``2160`` → UHD4K, ``1080``/``fhd`` → FHD1080,
    ``720``/``hd`` → HD720, anything else → SD.
    """
    lowered = url.lower()
    for needles, tier in _URL_HINTS:
        if any(n in lowered for n in needles):
            return tier
    return QualityTier.SD
