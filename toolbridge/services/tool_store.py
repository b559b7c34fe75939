from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Sequence

from ..utils.errors import ToolStorageError

logger = logging.getLogger("toolbridge.store")


class ToolStore(ABC):
    """Durable home for installed tool definitions.

    ``load_all`` is called once when a registry opens; ``save_all`` receives
    the full record list after every successful install, including records
    the registry does not hold in memory. Scoping
    (per user, per workspace) is up to the implementation.
    """

    @abstractmethod
    async def load_all(self) -> List[Dict[str, Any]]:
        """Return the raw persisted definitions, oldest first."""
        raise NotImplementedError("Subclass must implement load_all()")

    @abstractmethod
    async def save_all(self, records: Sequence[Dict[str, Any]]) -> None:
        """Replace the persisted records. Raises ToolStorageError on failure."""
        raise NotImplementedError("Subclass must implement save_all()")

    async def close(self) -> None:
        return None


class InMemoryToolStore(ToolStore):
    """Process-local store, used for tests and ephemeral registries."""

    def __init__(self, records: Sequence[Dict[str, Any]] | None = None) -> None:
        self._records: List[Dict[str, Any]] = [dict(record) for record in records or []]
        self.save_count = 0

    @property
    def records(self) -> List[Dict[str, Any]]:
        return list(self._records)

    async def load_all(self) -> List[Dict[str, Any]]:
        return [dict(record) for record in self._records]

    async def save_all(self, records: Sequence[Dict[str, Any]]) -> None:
        self._records = [dict(record) for record in records]
        self.save_count += 1


class JsonFileToolStore(ToolStore):
    """Stores definitions in a single JSON document: ``{"tools": [...]}``."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Disk helpers (run in a worker thread)
    # ------------------------------------------------------------------
    def _read(self) -> List[Dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError) as exc:
            # Corrupted file: start empty, the next install rewrites it
            logger.warning("Tool store %s unreadable, starting empty: %s", self._path, exc)
            return []

        tools = data.get("tools", []) if isinstance(data, dict) else data
        if not isinstance(tools, list):
            logger.warning("Tool store %s has no tool list, ignoring contents", self._path)
            return []
        return [entry for entry in tools if isinstance(entry, dict)]

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, self._path)

    async def load_all(self) -> List[Dict[str, Any]]:
        records = await asyncio.to_thread(self._read)
        logger.debug("Loaded %d tool definitions from %s", len(records), self._path)
        return records

    async def save_all(self, records: Sequence[Dict[str, Any]]) -> None:
        payload = json.dumps(
            {"tools": list(records)},
            ensure_ascii=False,
            indent=2,
        )
        try:
            await asyncio.to_thread(self._write, payload)
        except OSError as exc:
            raise ToolStorageError(f"could not write {self._path.name}: {exc}") from exc
        logger.debug("Saved %d tool definitions to %s", len(records), self._path)
