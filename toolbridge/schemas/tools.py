from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from ..utils.errors import ErrorKind


class ParameterType(str, Enum):
    """Closed set of parameter types a command may declare."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"

    def accepts(self, value: Any) -> bool:
        """Check a runtime value against this type (bool is not a number)."""
        if self is ParameterType.STRING:
            return isinstance(value, str)
        if self is ParameterType.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self is ParameterType.BOOLEAN:
            return isinstance(value, bool)
        if self is ParameterType.OBJECT:
            return isinstance(value, dict)
        return isinstance(value, (list, tuple))

    @classmethod
    def choices(cls) -> List[str]:
        return [member.value for member in cls]


class ParameterDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    type: ParameterType
    required: bool = False


class CommandDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Tuple[ParameterDefinition, ...] = ()
    # Safe to resend on transport failure; enables bounded retries
    idempotent: bool = False

    def get_parameter(self, name: str) -> Optional[ParameterDefinition]:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None


class ToolDefinition(BaseModel):
    """A named, versioned bundle of commands. ``name`` is the primary key."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    version: str
    commands: Tuple[CommandDefinition, ...] = Field(..., min_length=1)

    def get_command(self, name: str) -> Optional[CommandDefinition]:
        for command in self.commands:
            if command.name == name:
                return command
        return None

    @property
    def command_names(self) -> List[str]:
        return [command.name for command in self.commands]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def tool_to_json(tool: ToolDefinition) -> str:
    """Render a definition as indented JSON, the format ``install_tool`` accepts."""
    return tool.model_dump_json(indent=2)


class InvocationResult(BaseModel):
    """Outcome of a dispatch: ``success`` with a payload or a failure message."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    tool: Optional[str] = None
    command: Optional[str] = None

    @classmethod
    def ok(cls, data: Any, *, tool: Optional[str] = None, command: Optional[str] = None) -> "InvocationResult":
        return cls(success=True, data=data, tool=tool, command=command)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        tool: Optional[str] = None,
        command: Optional[str] = None,
    ) -> "InvocationResult":
        return cls(success=False, error=message, error_kind=kind, tool=tool, command=command)

    def to_envelope(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "error_kind": self.error_kind.value if self.error_kind else None}


class InstallResult(BaseModel):
    """Outcome of an install: the accepted definition or the rejection reason."""

    success: bool
    tool: Optional[ToolDefinition] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def accepted(cls, tool: ToolDefinition) -> "InstallResult":
        return cls(success=True, tool=tool)

    @classmethod
    def rejected(cls, kind: ErrorKind, message: str) -> "InstallResult":
        return cls(success=False, error=message, error_kind=kind)

    def to_envelope(self) -> Dict[str, Any]:
        if self.success and self.tool is not None:
            return {"success": True, "data": self.tool.to_dict()}
        return {"success": False, "error": self.error, "error_kind": self.error_kind.value if self.error_kind else None}


# --- HTTP request bodies ---

class InstallToolRequest(BaseModel):
    # Raw JSON text (as produced by the builder) or an already decoded object
    definition: Union[str, Dict[str, Any]]


class ExecuteCommandRequest(BaseModel):
    tool: str
    command: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
