"""
Interactive Tool Builder
========================

State machine that collects a tool definition one answer at a time:

    COLLECTING_TOOL_META -> COLLECTING_COMMAND <-> COLLECTING_PARAMETER
                         -> DONE | CANCELLED

Front ends (CLI prompts, a web form) read ``builder.prompt``, ask the user
and feed the answer back with ``submit``. ``cancel`` (or submitting
``None``) from any open state discards everything collected so far. The
builder only produces a ``ToolDefinition``; installing it is up to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..schemas.tools import ParameterType, ToolDefinition, tool_to_json


class BuilderState(str, Enum):
    COLLECTING_TOOL_META = "collecting_tool_meta"
    COLLECTING_COMMAND = "collecting_command"
    COLLECTING_PARAMETER = "collecting_parameter"
    DONE = "done"
    CANCELLED = "cancelled"


class PromptKind(str, Enum):
    TEXT = "text"
    CHOICE = "choice"
    CONFIRM = "confirm"


class BuilderInputError(ValueError):
    """Answer rejected; the builder stays on the same prompt."""


@dataclass(frozen=True)
class Prompt:
    key: str
    message: str
    kind: PromptKind = PromptKind.TEXT
    placeholder: str = ""
    default: Optional[str] = None
    choices: Tuple[str, ...] = ()
    allow_empty: bool = False


PROMPTS: Dict[str, Prompt] = {
    "tool.name": Prompt("tool.name", "Tool name", placeholder="e.g. FileManager, DatabaseTool"),
    "tool.description": Prompt("tool.description", "Tool description", placeholder="e.g. Manages file operations"),
    "tool.version": Prompt("tool.version", "Tool version", placeholder="e.g. 1.0.0", default="1.0.0"),
    "command.name": Prompt("command.name", "Command name", placeholder="e.g. readFile, executeQuery"),
    "command.description": Prompt("command.description", "Command description", placeholder="e.g. Reads a file"),
    "command.add_parameter": Prompt("command.add_parameter", "Add a parameter to this command?", PromptKind.CONFIRM),
    "command.add_more": Prompt("command.add_more", "Add another command?", PromptKind.CONFIRM),
    "parameter.name": Prompt("parameter.name", "Parameter name", placeholder="e.g. filePath, query"),
    "parameter.description": Prompt(
        "parameter.description", "Parameter description", placeholder="e.g. Path of the file", allow_empty=True
    ),
    "parameter.type": Prompt(
        "parameter.type", "Parameter type", PromptKind.CHOICE, choices=tuple(ParameterType.choices())
    ),
    "parameter.required": Prompt("parameter.required", "Is this parameter required?", PromptKind.CONFIRM),
    "parameter.add_more": Prompt("parameter.add_more", "Add another parameter?", PromptKind.CONFIRM),
}

_STATE_FOR_SECTION = {
    "tool": BuilderState.COLLECTING_TOOL_META,
    "command": BuilderState.COLLECTING_COMMAND,
    "parameter": BuilderState.COLLECTING_PARAMETER,
}

_YES = {"y", "yes", "true", "1"}
_NO = {"n", "no", "false", "0"}


class ToolBuilder:
    def __init__(self) -> None:
        self._step: Optional[str] = "tool.name"
        self._state = BuilderState.COLLECTING_TOOL_META
        self._tool: Dict[str, Any] = {}
        self._commands: List[Dict[str, Any]] = []
        self._command: Dict[str, Any] = {}
        self._parameter: Dict[str, Any] = {}
        self._result: Optional[ToolDefinition] = None

    @property
    def state(self) -> BuilderState:
        return self._state

    @property
    def is_finished(self) -> bool:
        return self._state in (BuilderState.DONE, BuilderState.CANCELLED)

    @property
    def prompt(self) -> Optional[Prompt]:
        if self._step is None:
            return None
        return PROMPTS[self._step]

    @property
    def result(self) -> Optional[ToolDefinition]:
        """The finished definition; None unless the state is DONE."""
        return self._result

    def to_json(self) -> Optional[str]:
        return tool_to_json(self._result) if self._result is not None else None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def cancel(self) -> BuilderState:
        if self.is_finished:
            return self._state
        self._tool, self._commands, self._command, self._parameter = {}, [], {}, {}
        self._step = None
        self._state = BuilderState.CANCELLED
        return self._state

    def submit(self, value: Any) -> BuilderState:
        if self.is_finished:
            raise BuilderInputError(f"builder already {self._state.value}")
        if value is None:
            return self.cancel()

        prompt = PROMPTS[self._step]
        answer = self._coerce(prompt, value)
        self._advance(prompt.key, answer)
        return self._state

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _goto(self, step: Optional[str]) -> None:
        self._step = step
        if step is not None:
            self._state = _STATE_FOR_SECTION[step.split(".", 1)[0]]

    @staticmethod
    def _coerce(prompt: Prompt, value: Any) -> Any:
        if prompt.kind is PromptKind.CONFIRM:
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _YES:
                return True
            if text in _NO:
                return False
            raise BuilderInputError(f"{prompt.message}: answer yes or no")

        text = str(value).strip()
        if prompt.kind is PromptKind.CHOICE:
            if text not in prompt.choices:
                raise BuilderInputError(f"{prompt.message}: choose one of {', '.join(prompt.choices)}")
            return text

        if not text and prompt.default is not None:
            return prompt.default
        if not text and not prompt.allow_empty:
            raise BuilderInputError(f"{prompt.message} must not be empty")
        return text

    def _advance(self, key: str, answer: Any) -> None:
        if key == "tool.name":
            self._tool["name"] = answer
            self._goto("tool.description")
        elif key == "tool.description":
            self._tool["description"] = answer
            self._goto("tool.version")
        elif key == "tool.version":
            self._tool["version"] = answer
            self._goto("command.name")

        elif key == "command.name":
            if any(command["name"] == answer for command in self._commands):
                raise BuilderInputError(f"command '{answer}' already exists")
            self._command = {"name": answer, "parameters": []}
            self._goto("command.description")
        elif key == "command.description":
            self._command["description"] = answer
            self._goto("command.add_parameter")
        elif key == "command.add_parameter":
            if answer:
                self._goto("parameter.name")
            else:
                self._finish_command()
        elif key == "command.add_more":
            if answer:
                self._goto("command.name")
            else:
                self._finish_tool()

        elif key == "parameter.name":
            if any(parameter["name"] == answer for parameter in self._command["parameters"]):
                raise BuilderInputError(f"parameter '{answer}' already exists")
            self._parameter = {"name": answer}
            self._goto("parameter.description")
        elif key == "parameter.description":
            self._parameter["description"] = answer
            self._goto("parameter.type")
        elif key == "parameter.type":
            self._parameter["type"] = answer
            self._goto("parameter.required")
        elif key == "parameter.required":
            self._parameter["required"] = answer
            self._command["parameters"].append(self._parameter)
            self._parameter = {}
            self._goto("parameter.add_more")
        elif key == "parameter.add_more":
            if answer:
                self._goto("parameter.name")
            else:
                self._finish_command()

    def _finish_command(self) -> None:
        self._commands.append(self._command)
        self._command = {}
        self._goto("command.add_more")

    def _finish_tool(self) -> None:
        self._result = ToolDefinition.model_validate({**self._tool, "commands": self._commands})
        self._step = None
        self._state = BuilderState.DONE
