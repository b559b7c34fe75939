"""
Tool Registry
=============

Owns the set of installed tools. The registry is an explicitly constructed
object with an injected ``ToolStore`` and an ``open``/``close`` lifecycle,
so several isolated registries can coexist (tests, per-workspace hosts).

- install: validate, insert/overwrite by name, write the record through to
  the store without disturbing other persisted records
- get / require / list: lookups, list keeps insertion order
- remove: in-memory only
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from ..schemas.tools import InstallResult, ToolDefinition
from ..services.tool_store import ToolStore
from ..utils.errors import ErrorKind, ToolNotFoundError, ToolStorageError
from .validator import validate

logger = logging.getLogger("toolbridge.registry")


class ToolRegistry:
    def __init__(self, store: ToolStore) -> None:
        self._store = store
        self._tools: Dict[str, ToolDefinition] = {}
        self._name_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        # Persisted records as last written; may hold entries not in memory
        self._records: List[Dict[str, Any]] = []
        self._store_lock = asyncio.Lock()
        self._open = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> "ToolRegistry":
        """Load persisted definitions. Entries that fail validation are skipped."""
        if self._open:
            return self

        records = await self._store.load_all()
        self._records = [dict(record) for record in records]
        for record in records:
            outcome = validate(record)
            if not outcome.valid or outcome.tool is None:
                name = record.get("name") if isinstance(record, dict) else None
                logger.warning("Skipping persisted tool %r: %s", name, outcome.reason)
                continue
            self._tools[outcome.tool.name] = outcome.tool

        self._open = True
        logger.info("Tool registry opened with %d tools", len(self._tools))
        return self

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        self._tools.clear()
        self._records = []
        self._name_locks.clear()
        self._lock_users.clear()
        await self._store.close()
        logger.info("Tool registry closed")

    async def __aenter__(self) -> "ToolRegistry":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("ToolRegistry is not open; call 'await registry.open()' first")

    @asynccontextmanager
    async def _name_guard(self, name: str) -> AsyncIterator[None]:
        """Serialize installs of one name; the lock is dropped once unused."""
        lock = self._name_locks.get(name)
        if lock is None:
            lock = self._name_locks[name] = asyncio.Lock()
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users.pop(name, 1) - 1
            if remaining:
                self._lock_users[name] = remaining
            else:
                self._name_locks.pop(name, None)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def install(self, definition: Any) -> InstallResult:
        """Validate and install a definition; last write wins for a given name."""
        self._require_open()

        outcome = validate(definition)
        if not outcome.valid or outcome.tool is None:
            logger.info("Rejected tool definition: %s", outcome.reason)
            return InstallResult.rejected(ErrorKind.VALIDATION, f"invalid tool definition: {outcome.reason}")

        tool = outcome.tool
        async with self._name_guard(tool.name):
            previous = self._tools.get(tool.name)
            self._tools[tool.name] = tool
            try:
                await self._persist(tool)
            except ToolStorageError as exc:
                # Roll the in-memory map back so it stays a subset of the store
                if previous is None:
                    self._tools.pop(tool.name, None)
                else:
                    self._tools[tool.name] = previous
                logger.error("Persisting tool %s failed: %s", tool.name, exc.message)
                return InstallResult.rejected(ErrorKind.STORAGE, f"install failed: {exc.message}")

        action = "Updated" if previous is not None else "Installed"
        logger.info("%s tool %s v%s (%d commands)", action, tool.name, tool.version, len(tool.commands))
        return InstallResult.accepted(tool)

    async def _persist(self, tool: ToolDefinition) -> None:
        """Replace or append the record for ``tool`` and save the full record list.

        Records of removed tools and entries skipped on open stay in the store.
        """
        record = tool.to_dict()
        # Built inside the store lock: the last completed save sees every insert before it
        async with self._store_lock:
            records = list(self._records)
            for index, existing in enumerate(records):
                if existing.get("name") == tool.name:
                    records[index] = record
                    break
            else:
                records.append(record)
            await self._store.save_all(records)
            self._records = records

    def remove(self, name: str) -> bool:
        """Drop a tool from memory. The store is not touched."""
        self._require_open()
        removed = self._tools.pop(name, None)
        if removed is not None:
            logger.info("Removed tool %s", name)
        return removed is not None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, name: str) -> Optional[ToolDefinition]:
        self._require_open()
        return self._tools.get(name)

    def require(self, name: str) -> ToolDefinition:
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(f"tool not found: {name}")
        return tool

    def list(self) -> List[ToolDefinition]:
        self._require_open()
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
