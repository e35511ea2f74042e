"""Validated configuration models."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]
CacheBackendName = Literal["memory", "diskcache", "redis"]


def _as_path(value: Any) -> Path:
    """Coerce str/Path to an expanded Path. Never touches the filesystem."""
    if isinstance(value, (str, Path)):
        return Path(value).expanduser()
    raise TypeError(f"expected a path, got {type(value).__name__}")


class CacheConfig(BaseModel):
    """Where health records, counters and probe memos are kept."""

    model_config = ConfigDict(populate_by_name=True)

    backend: CacheBackendName = Field(
        default="diskcache",
        description="memory (per process), diskcache (SQLite file) or redis.",
    )
    directory: Path = Field(
        default=Path("./.cache/sourcegauge"),
        alias="dir",
        description="diskcache database folder.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Used only with the redis backend.",
    )
    ttl_seconds: int = Field(
        default=3600,
        description="Expiry for entries written without an explicit TTL.",
    )
    max_concurrent: int = Field(
        default=10,
        description="Concurrent diskcache worker threads.",
    )

    @field_validator("directory", mode="before")
    @classmethod
    def _directory_path(cls, v: Any) -> Path:
        return _as_path(v)


class ProbingConfig(BaseModel):
    """Time and byte budgets for a single probe."""

    stream_timeout_ms: int = Field(
        default=5_000,
        description="Ceiling for one stream probe, manifest and segment sample included.",
    )
    catalog_timeout_ms: int = Field(
        default=10_000,
        description="Ceiling for one catalog listing request.",
    )
    segment_sample_bytes: int = Field(
        default=262_144,
        description="Bytes of the first media segment read to estimate throughput.",
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    )
    stream_probe_ttl_seconds: int = Field(
        default=600,
        description="How long a successful stream probe is memoized; 0 turns it off.",
    )

    @field_validator("stream_timeout_ms", "catalog_timeout_ms", "segment_sample_bytes")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("probe budgets must be > 0")
        return v


class KnownSource(BaseModel):
    """A catalog API that discovery may offer for inclusion."""

    key: str
    name: str
    api: str


_DEFAULT_KNOWN_SOURCES: list[dict[str, str]] = [
    {
        "key": "360yingshi",
        "name": "360影视",
        "api": "https://360yingshi.com/api.php/provide/vod/",
    },
    {
        "key": "yhdm",
        "name": "樱花动漫",
        "api": "https://api.yhdm.so/api.php/provide/vod/",
    },
]


class HealthConfig(BaseModel):
    """Scheduling, retention and breaker settings of the health monitor."""

    failure_threshold: int = Field(
        default=3,
        description="Consecutive failed checks that disable a source.",
    )
    discovery_delay_seconds: float = 0.5
    quality_delay_seconds: float = 0.3
    quality_fresh_seconds: int = Field(
        default=3_600,
        description="A cached quality record younger than this skips the network.",
    )
    quality_ttl_seconds: int = 43_200
    discovery_ttl_seconds: int = 86_400
    fail_count_ttl_seconds: int = 86_400
    disabled_marker_ttl_seconds: int = Field(
        default=30 * 86_400,
        description="Retention of the 'disabled by the monitor' marker.",
    )
    known_sources: list[KnownSource] = Field(
        default_factory=lambda: [KnownSource(**s) for s in _DEFAULT_KNOWN_SOURCES],
    )

    @field_validator("failure_threshold")
    @classmethod
    def _threshold_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("failure_threshold must be >= 1")
        return v

    @field_validator("discovery_delay_seconds", "quality_delay_seconds")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v


class AppConfig(BaseModel):
    """Final, merged configuration.

    Accepts both the sectioned YAML shape (``logging: {level: ...}``) and
    flat field names; ``load_config`` is responsible for layering.
    """

    app_name: str = "sourcegauge"
    environment: Environment = "dev"

    sources_file: Path = Field(
        default=Path("./sources.yaml"),
        validation_alias=AliasChoices("sources_file", AliasPath("sources", "file")),
    )
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices("log_level", AliasPath("logging", "level")),
    )
    # None means: pick from environment.
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices("log_format", AliasPath("logging", "format")),
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    probing: ProbingConfig = Field(default_factory=ProbingConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    @field_validator("sources_file", mode="before")
    @classmethod
    def _sources_path(cls, v: Any) -> Path:
        return _as_path(v)

    @model_validator(mode="after")
    def _resolve_log_format(self) -> "AppConfig":
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """Inverse of the YAML layout; ``load_config`` reads it back unchanged."""
        cache = self.cache.model_dump(by_alias=True)
        cache["dir"] = str(self.cache.directory)
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "sources": {"file": str(self.sources_file)},
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": cache,
            "probing": self.probing.model_dump(),
            "health": self.health.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """Flat ``SOURCEGAUGE_*`` environment variables; unset ones stay None."""

    model_config = SettingsConfigDict(
        env_prefix="SOURCEGAUGE_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None
    sources_file: Optional[Path] = None
    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None
    cache_backend: Optional[CacheBackendName] = None
    cache_dir: Optional[Path] = None
    cache_redis_url: Optional[str] = None
    cache_ttl_seconds: Optional[int] = None
    stream_timeout_ms: Optional[int] = None
    catalog_timeout_ms: Optional[int] = None
    failure_threshold: Optional[int] = None

    @field_validator("sources_file", "cache_dir", mode="before")
    @classmethod
    def _paths(cls, v: Any) -> Any:
        return None if v is None else _as_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
