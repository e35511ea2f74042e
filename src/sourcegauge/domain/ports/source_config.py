"""Port for the external source configuration store."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sourcegauge.domain.entities.health import SourceConfigEntry


@runtime_checkable
class SourceConfigStorePort(Protocol):
    """Read the configured source list and persist ``disabled`` flags.

    ``save_sources`` receives the full list as returned by
    ``list_sources`` with some ``disabled`` flags flipped; stores must
    not add, drop, or reorder rows.
    """

    async def list_sources(self) -> list[SourceConfigEntry]: ...

    async def save_sources(self, sources: list[SourceConfigEntry]) -> None: ...
