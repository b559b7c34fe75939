from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from ..config import Settings
from ..schemas.tools import InstallResult, InvocationResult, ToolDefinition
from ..services.tool_store import JsonFileToolStore, ToolStore
from ..utils.errors import ToolParseError
from .dispatcher import CancelToken, CommandDispatcher
from .tool_registry import ToolRegistry
from .validator import parse_definition

logger = logging.getLogger("toolbridge.service")


class ToolService:
    """Operations offered to the presentation layer (REST routes, CLI).

    Wraps one registry and one dispatcher; every method returns a value and
    never raises for parse, validation, lookup or transport problems.
    """

    def __init__(self, registry: ToolRegistry, dispatcher: CommandDispatcher) -> None:
        self.registry = registry
        self.dispatcher = dispatcher

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: Optional[ToolStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ToolService":
        registry = ToolRegistry(store or JsonFileToolStore(Path(settings.store_path)))
        dispatcher = CommandDispatcher.from_settings(registry, settings, transport=transport)
        return cls(registry, dispatcher)

    async def open(self) -> "ToolService":
        await self.registry.open()
        return self

    async def close(self) -> None:
        await self.dispatcher.close()
        await self.registry.close()

    async def __aenter__(self) -> "ToolService":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def install_tool(self, definition: Union[str, bytes, Dict[str, Any]]) -> InstallResult:
        try:
            raw = parse_definition(definition)
        except ToolParseError as exc:
            logger.info("Install rejected: %s", exc.message)
            return InstallResult.rejected(exc.kind, exc.message)
        return await self.registry.install(raw)

    async def execute_command(
        self,
        tool: str,
        command: str,
        parameters: Optional[Mapping[str, Any]] = None,
        *,
        cancel_token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
    ) -> InvocationResult:
        return await self.dispatcher.execute(
            tool, command, parameters, cancel_token=cancel_token, timeout=timeout
        )

    def get_tools(self) -> List[ToolDefinition]:
        return self.registry.list()

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        return self.registry.get(name)

    def remove_tool(self, name: str) -> bool:
        return self.registry.remove(name)
