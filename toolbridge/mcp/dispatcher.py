"""
Command Dispatcher
==================

Resolves a (tool, command) pair through the registry and forwards the call
to the execution endpoint as ``POST <server_url>/execute`` with the body
``{"tool", "command", "parameters"}``.

Every outcome comes back as an ``InvocationResult``; nothing raises past
``execute``. Lookups fail fast without touching the network. Calls carry an
explicit timeout, are retried (bounded, with backoff) only for commands
marked idempotent, and can be abandoned through a ``CancelToken``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..config import Settings
from ..schemas.tools import CommandDefinition, InvocationResult
from ..utils.errors import ErrorKind, ToolError, ToolNotFoundError, ToolSchemaError, ToolUnavailableError
from ..utils.http_client import HttpClient
from .tool_registry import ToolRegistry

logger = logging.getLogger("toolbridge.dispatch")

EXECUTE_PATH = "/execute"


class CancelToken:
    """Lets a caller abandon an in-flight dispatch.

    ``cancel()`` may be called from any task on the same loop; the pending
    ``execute`` returns a ``cancelled`` failure and the request is dropped.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


def check_parameters(command: CommandDefinition, parameters: Mapping[str, Any]) -> None:
    """Raise ToolSchemaError when values do not satisfy the declared schema.

    Required parameters must be present and non-null; supplied values must
    match their declared type. Undeclared parameters pass through.
    """
    for parameter in command.parameters:
        value = parameters.get(parameter.name)
        if value is None:
            if parameter.required:
                raise ToolSchemaError(
                    f"missing required parameter '{parameter.name}' for command '{command.name}'"
                )
            continue
        if not parameter.type.accepts(value):
            raise ToolSchemaError(
                f"parameter '{parameter.name}' must be of type {parameter.type.value}"
            )


def error_detail(response: httpx.Response) -> str:
    """Pull the failure text out of an endpoint error response.

    The endpoint answers failures with ``{"error": "..."}`` or
    ``{"error": {"message": "..."}}``; anything else falls back to the raw
    body or the reason phrase.
    """
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip() or response.reason_phrase

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return response.text.strip() or response.reason_phrase


class CommandDispatcher:
    def __init__(
        self,
        registry: ToolRegistry,
        http_client: HttpClient,
        *,
        retries: int = 0,
        timeout: Optional[httpx.Timeout] = None,
        enforce_schema: bool = False,
        owns_client: bool = False,
    ) -> None:
        self._registry = registry
        self._http = http_client
        self.retries = retries
        self.timeout = timeout or http_client.timeout
        self.enforce_schema = enforce_schema
        self._owns_client = owns_client

    @classmethod
    def from_settings(
        cls,
        registry: ToolRegistry,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CommandDispatcher":
        timeout = httpx.Timeout(settings.request_timeout, connect=settings.connect_timeout)
        http_client = HttpClient(
            timeout=timeout,
            retries=0,
            backoff=settings.backoff_seconds,
            base_url=settings.execute_base_url,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        return cls(
            registry,
            http_client,
            retries=settings.dispatch_retries,
            timeout=timeout,
            enforce_schema=settings.enforce_parameter_schema,
            owns_client=True,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._http.close()

    def _resolve(self, tool_name: str, command_name: str, parameters: Any) -> CommandDefinition:
        if not self._registry.is_open:
            raise ToolUnavailableError("tool registry is not open")
        tool = self._registry.require(tool_name)
        command = tool.get_command(command_name)
        if command is None:
            raise ToolNotFoundError(f"command not found: {command_name}")
        if not isinstance(parameters, Mapping):
            raise ToolSchemaError("parameters must be a JSON object")
        if self.enforce_schema:
            check_parameters(command, parameters)
        return command

    async def execute(
        self,
        tool_name: str,
        command_name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        *,
        cancel_token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
    ) -> InvocationResult:
        if parameters is None:
            parameters = {}

        try:
            command = self._resolve(tool_name, command_name, parameters)
        except ToolError as exc:
            logger.info("Dispatch %s.%s rejected: %s", tool_name, command_name, exc.message)
            return InvocationResult.fail(exc.kind, exc.message, tool=tool_name, command=command_name)

        if cancel_token is not None and cancel_token.cancelled:
            return self._cancelled(tool_name, command_name, cancel_token)

        payload: Dict[str, Any] = {"tool": tool_name, "command": command_name, "parameters": dict(parameters)}
        retries = self.retries if command.idempotent else 0
        request_timeout = httpx.Timeout(timeout) if timeout is not None else self.timeout

        call = self._send(payload, retries=retries, timeout=request_timeout)
        if cancel_token is None:
            return await call

        request = asyncio.ensure_future(call)
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            # Also reached when the caller itself is cancelled
            if not request.done():
                request.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await request

        if not request.cancelled():
            return request.result()
        return self._cancelled(tool_name, command_name, cancel_token)

    def _cancelled(self, tool_name: str, command_name: str, token: CancelToken) -> InvocationResult:
        logger.info("Dispatch %s.%s cancelled: %s", tool_name, command_name, token.reason)
        return InvocationResult.fail(
            ErrorKind.CANCELLED,
            f"command execution cancelled: {token.reason}",
            tool=tool_name,
            command=command_name,
        )

    async def _send(self, payload: Dict[str, Any], *, retries: int, timeout: httpx.Timeout) -> InvocationResult:
        tool_name, command_name = payload["tool"], payload["command"]
        logger.info("Dispatching %s.%s (retries=%d)", tool_name, command_name, retries)

        def failure(kind: ErrorKind, detail: str) -> InvocationResult:
            logger.warning("Dispatch %s.%s failed: %s", tool_name, command_name, detail)
            return InvocationResult.fail(
                kind, f"command execution failed: {detail}", tool=tool_name, command=command_name
            )

        try:
            response = await self._http.post(
                EXECUTE_PATH,
                json=payload,
                retries=retries,
                timeout=timeout,
                name=f"execute {tool_name}.{command_name}",
            )
        except httpx.HTTPStatusError as exc:
            return failure(
                ErrorKind.TRANSPORT,
                f"endpoint returned {exc.response.status_code}: {error_detail(exc.response)}",
            )
        except httpx.TimeoutException as exc:
            return failure(ErrorKind.TIMEOUT, f"request timed out ({exc.__class__.__name__})")
        except httpx.HTTPError as exc:
            return failure(ErrorKind.TRANSPORT, str(exc) or exc.__class__.__name__)

        try:
            body = response.json()
        except ValueError:
            return failure(ErrorKind.TRANSPORT, "endpoint returned a malformed response body")

        logger.debug("Dispatch %s.%s succeeded (%s)", tool_name, command_name, response.status_code)
        return InvocationResult.ok(body, tool=tool_name, command=command_name)
