"""Source configuration stores (YAML file and in-memory)."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Any

import structlog
import yaml

from sourcegauge.domain.entities.health import SourceConfigEntry

log = structlog.get_logger(__name__)


def _entry_from_mapping(raw: Any, index: int) -> SourceConfigEntry:
    if not isinstance(raw, dict):
        raise ValueError(f"sources[{index}] must be a mapping, got {type(raw)!r}")
    try:
        return SourceConfigEntry(
            key=str(raw["key"]),
            name=str(raw.get("name") or raw["key"]),
            api=str(raw["api"]),
            disabled=bool(raw.get("disabled", False)),
        )
    except KeyError as e:
        raise ValueError(f"sources[{index}] is missing {e.args[0]!r}") from e


class YamlSourceConfigStore:
    """Source list kept in a YAML file.

    Expected layout::

        sources:
          - key: yhdm
            name: 樱花动漫
            api: https://api.yhdm.so/api.php/provide/vod/
            disabled: false

    ``save_sources`` rewrites only the ``disabled`` flag of existing rows;
    other keys, row order and unknown top-level sections are preserved.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            raise FileNotFoundError(f"Sources file not found: {self.path}")
        parsed = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        if parsed is None:
            return {"sources": []}
        if not isinstance(parsed, dict):
            raise ValueError(
                f"Sources YAML must be a mapping, got: {type(parsed)!r}"
            )
        rows = parsed.get("sources") or []
        if not isinstance(rows, list):
            raise ValueError("'sources' must be a list")
        parsed["sources"] = rows
        return parsed

    def _load(self) -> list[SourceConfigEntry]:
        rows = self._read_document()["sources"]
        return [_entry_from_mapping(row, i) for i, row in enumerate(rows)]

    def _store(self, sources: list[SourceConfigEntry]) -> None:
        document = self._read_document()
        flags = {s.key: s.disabled for s in sources}
        for row in document["sources"]:
            if not isinstance(row, dict) or "key" not in row:
                continue
            # Keys are compared as loaded, so `key: 360` matches "360".
            key = str(row["key"])
            if key in flags:
                row["disabled"] = flags[key]
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(
            yaml.safe_dump(document, allow_unicode=True, sort_keys=False),
            encoding="utf-8",
        )
        tmp.replace(self.path)

    async def list_sources(self) -> list[SourceConfigEntry]:
        async with self._lock:
            return await asyncio.to_thread(self._load)

    async def save_sources(self, sources: list[SourceConfigEntry]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._store, sources)
        log.info(
            "sources_saved",
            path=str(self.path),
            disabled=sum(1 for s in sources if s.disabled),
        )


class InMemorySourceConfigStore:
    """Process-local source list, for embedding and tests."""

    def __init__(self, sources: list[SourceConfigEntry] | None = None) -> None:
        self._sources: list[SourceConfigEntry] = list(sources or [])
        self.save_count = 0

    async def list_sources(self) -> list[SourceConfigEntry]:
        return list(self._sources)

    async def save_sources(self, sources: list[SourceConfigEntry]) -> None:
        flags = {s.key: s.disabled for s in sources}
        self._sources = [
            replace(s, disabled=flags[s.key]) if s.key in flags else s
            for s in self._sources
        ]
        self.save_count += 1
