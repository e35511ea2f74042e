from .select_source import SourceSelector
from .source_maintenance import SourceHealthMonitor

__all__ = ["SourceHealthMonitor", "SourceSelector"]
