from .health import (
    AutoUpdateReport,
    DiscoveredSource,
    DiscoveryReport,
    FailureCount,
    HealthRecord,
    MaintenanceReport,
    QualityCheckReport,
    SourceConfigEntry,
    SourceState,
)
from .probing import (
    CatalogProbeResult,
    ProbeKind,
    ProbeResult,
    ProbeTarget,
    QualityTier,
)
from .selection import Candidate, ScoredCandidate, ScoredInput, SelectionResult

__all__ = [
    "AutoUpdateReport",
    "Candidate",
    "CatalogProbeResult",
    "DiscoveredSource",
    "DiscoveryReport",
    "FailureCount",
    "HealthRecord",
    "MaintenanceReport",
    "ProbeKind",
    "ProbeResult",
    "ProbeTarget",
    "QualityCheckReport",
    "QualityTier",
    "ScoredCandidate",
    "ScoredInput",
    "SelectionResult",
    "SourceConfigEntry",
    "SourceState",
]
