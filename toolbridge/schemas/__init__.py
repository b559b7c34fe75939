"""Pydantic schema exports."""

from .tools import (
    CommandDefinition,
    ExecuteCommandRequest,
    InstallResult,
    InstallToolRequest,
    InvocationResult,
    ParameterDefinition,
    ParameterType,
    ToolDefinition,
    tool_to_json,
)

__all__ = [
    "CommandDefinition",
    "ExecuteCommandRequest",
    "InstallResult",
    "InstallToolRequest",
    "InvocationResult",
    "ParameterDefinition",
    "ParameterType",
    "ToolDefinition",
    "tool_to_json",
]
