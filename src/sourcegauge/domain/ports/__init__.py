from .cache import CachePort
from .prober import ProberPort
from .source_config import SourceConfigStorePort

__all__ = [
    "CachePort",
    "ProberPort",
    "SourceConfigStorePort",
]
