"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "sourcegauge",
    "environment": "dev",
    "sources": {
        "file": "./sources.yaml",
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "dir": "./.cache/sourcegauge",
        "backend": "diskcache",
        "ttl_seconds": 3600,
    },
    "probing": {
        "stream_timeout_ms": 5_000,
        "catalog_timeout_ms": 10_000,
        "segment_sample_bytes": 262_144,
        "stream_probe_ttl_seconds": 600,
    },
    "health": {
        "failure_threshold": 3,
        "discovery_delay_seconds": 0.5,
        "quality_delay_seconds": 0.3,
        "quality_fresh_seconds": 3_600,
        "quality_ttl_seconds": 43_200,
        "discovery_ttl_seconds": 86_400,
        "fail_count_ttl_seconds": 86_400,
    },
}
