from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ..mcp.service import ToolService
from ..schemas.tools import ExecuteCommandRequest, InstallToolRequest
from ..utils.errors import ErrorKind, api_error, sanitize_error_message, status_for_kind

logger = logging.getLogger("toolbridge.routes")

router = APIRouter(prefix="/v1/tools", tags=["Tools"])

# Failure kinds whose message comes from the network layer
_SANITIZED_KINDS = (ErrorKind.TRANSPORT, ErrorKind.TIMEOUT)


def get_tool_service(request: Request) -> ToolService:
    service = getattr(request.app.state, "tool_service", None)
    if service is None:
        raise api_error(
            "Tool service is not running",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="service_unavailable",
        )
    return service


def _envelope_response(envelope: Dict[str, Any], kind: ErrorKind | None) -> JSONResponse:
    if envelope.get("success"):
        return JSONResponse(content=envelope, status_code=status.HTTP_200_OK)
    if kind in _SANITIZED_KINDS:
        envelope = {**envelope, "error": sanitize_error_message(envelope.get("error") or "")}
    return JSONResponse(content=envelope, status_code=status_for_kind(kind))


@router.get("", summary="List installed tools")
async def list_tools(service: ToolService = Depends(get_tool_service)):
    tools = [tool.to_dict() for tool in service.get_tools()]
    return JSONResponse(content={"success": True, "data": tools})


@router.post("/install", summary="Install or replace a tool definition")
async def install_tool(body: InstallToolRequest, service: ToolService = Depends(get_tool_service)):
    result = await service.install_tool(body.definition)
    return _envelope_response(result.to_envelope(), result.error_kind)


@router.post("/execute", summary="Execute a command of an installed tool")
async def execute_command(body: ExecuteCommandRequest, service: ToolService = Depends(get_tool_service)):
    result = await service.execute_command(body.tool, body.command, body.parameters)
    return _envelope_response(result.to_envelope(), result.error_kind)


@router.get("/{name}", summary="Get a single tool definition")
async def get_tool(name: str, service: ToolService = Depends(get_tool_service)):
    tool = service.get_tool(name)
    if tool is None:
        return _envelope_response(
            {"success": False, "error": f"tool not found: {name}", "error_kind": ErrorKind.NOT_FOUND.value},
            ErrorKind.NOT_FOUND,
        )
    return JSONResponse(content={"success": True, "data": tool.to_dict()})


@router.delete("/{name}", summary="Remove a tool (in memory only)")
async def remove_tool(name: str, service: ToolService = Depends(get_tool_service)):
    if not service.remove_tool(name):
        return _envelope_response(
            {"success": False, "error": f"tool not found: {name}", "error_kind": ErrorKind.NOT_FOUND.value},
            ErrorKind.NOT_FOUND,
        )
    logger.info("Tool %s removed via API", name)
    return JSONResponse(content={"success": True, "data": {"removed": name}})
