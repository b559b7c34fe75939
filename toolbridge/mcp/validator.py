"""
Definition Validator
====================

Pure checks that decide whether a raw tool definition (decoded JSON) may be
installed. ``validate`` never raises and never touches the registry; it
returns a ``ValidationOutcome`` carrying either the typed definition or the
first rule that failed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..schemas.tools import ParameterType, ToolDefinition
from ..utils.errors import ToolParseError

_META_FIELDS = ("name", "description", "version")
_SEQUENCE_TYPES = (list, tuple)


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    tool: Optional[ToolDefinition] = None
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid

    @classmethod
    def accept(cls, tool: ToolDefinition) -> "ValidationOutcome":
        return cls(valid=True, tool=tool)

    @classmethod
    def reject(cls, reason: str) -> "ValidationOutcome":
        return cls(valid=False, reason=reason)


def parse_definition(source: Union[str, bytes, Dict[str, Any]]) -> Any:
    """Decode a serialized definition. Raises ToolParseError on malformed JSON."""
    if isinstance(source, dict):
        return source
    try:
        return json.loads(source)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as exc:
        raise ToolParseError(f"invalid tool definition JSON: {exc}") from exc


def _is_filled(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _check_parameters(command_label: str, parameters: Any) -> Optional[str]:
    if not isinstance(parameters, _SEQUENCE_TYPES):
        return f"{command_label}: 'parameters' must be a list"

    seen: List[str] = []
    for index, parameter in enumerate(parameters):
        label = f"{command_label} parameters[{index}]"
        if not isinstance(parameter, dict):
            return f"{label} must be an object"
        name = parameter.get("name")
        if not _is_filled(name):
            return f"{label}: 'name' must be a non-empty string"
        label = f"{command_label} parameter '{name}'"
        if name in seen:
            return f"{command_label}: duplicate parameter name '{name}'"
        seen.append(name)
        if not isinstance(parameter.get("description"), str):
            return f"{label}: 'description' must be a string"
        if parameter.get("type") not in ParameterType.choices():
            return (
                f"{label}: unsupported type {parameter.get('type')!r} "
                f"(expected one of {', '.join(ParameterType.choices())})"
            )
        if "required" in parameter and not isinstance(parameter["required"], bool):
            return f"{label}: 'required' must be a boolean"
    return None


def _check_commands(commands: Any) -> Optional[str]:
    if not isinstance(commands, _SEQUENCE_TYPES):
        return "'commands' must be a list"
    if not commands:
        return "'commands' must contain at least one command"

    seen: List[str] = []
    for index, command in enumerate(commands):
        label = f"commands[{index}]"
        if not isinstance(command, dict):
            return f"{label} must be an object"
        name = command.get("name")
        if not _is_filled(name):
            return f"{label}: 'name' must be a non-empty string"
        label = f"command '{name}'"
        if name in seen:
            return f"duplicate command name '{name}'"
        seen.append(name)
        if not _is_filled(command.get("description")):
            return f"{label}: 'description' must be a non-empty string"
        if "idempotent" in command and not isinstance(command["idempotent"], bool):
            return f"{label}: 'idempotent' must be a boolean"
        problem = _check_parameters(label, command.get("parameters"))
        if problem:
            return problem
    return None


def validate(raw: Any) -> ValidationOutcome:
    """Check a decoded definition against the install rules.

    All of the following must hold:
      1. name, description and version are non-empty strings
      2. commands is a list with at least one element
      3. each command has a non-empty name and description and a parameters
         list; each parameter has a name, a description string, a type from
         the closed set and an optional boolean ``required``
    Command names are unique per tool, parameter names unique per command.
    """
    if isinstance(raw, ToolDefinition):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        return ValidationOutcome.reject("definition must be a JSON object")

    for field_name in _META_FIELDS:
        if not _is_filled(raw.get(field_name)):
            return ValidationOutcome.reject(f"'{field_name}' must be a non-empty string")

    problem = _check_commands(raw.get("commands"))
    if problem:
        return ValidationOutcome.reject(problem)

    try:
        tool = ToolDefinition.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        return ValidationOutcome.reject(f"{location}: {first.get('msg', 'invalid value')}".lstrip(": "))

    return ValidationOutcome.accept(tool)
