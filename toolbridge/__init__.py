"""
toolbridge - runtime tool registry and remote command dispatcher.

Hosts register tools (named, versioned bundles of commands with typed
parameters) and forward command invocations to an execution endpoint.
"""

from .mcp import CancelToken, CommandDispatcher, ToolBuilder, ToolRegistry, ToolService, validate
from .schemas import (
    CommandDefinition,
    InstallResult,
    InvocationResult,
    ParameterDefinition,
    ParameterType,
    ToolDefinition,
    tool_to_json,
)
from .utils.errors import ErrorKind

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "CancelToken",
    "CommandDefinition",
    "CommandDispatcher",
    "ErrorKind",
    "InstallResult",
    "InvocationResult",
    "ParameterDefinition",
    "ParameterType",
    "ToolBuilder",
    "ToolDefinition",
    "ToolRegistry",
    "ToolService",
    "tool_to_json",
    "validate",
]
