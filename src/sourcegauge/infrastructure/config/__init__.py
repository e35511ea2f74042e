from __future__ import annotations

from .load import load_config
from .schema import AppConfig, EnvOverrides, HealthConfig, ProbingConfig

__all__ = ["AppConfig", "EnvOverrides", "HealthConfig", "ProbingConfig", "load_config"]
