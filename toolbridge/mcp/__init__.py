"""
Tool registry and command dispatch.

- validator: checks raw definitions before install
- tool_registry: installed tools with write-through persistence
- dispatcher: forwards invocations to the execution endpoint
- builder: step-by-step definition collection
- service: facade used by routes and the CLI
"""

from .builder import BuilderInputError, BuilderState, Prompt, PromptKind, ToolBuilder
from .dispatcher import CancelToken, CommandDispatcher, check_parameters
from .service import ToolService
from .tool_registry import ToolRegistry
from .validator import ValidationOutcome, parse_definition, validate

__all__ = [
    "BuilderInputError",
    "BuilderState",
    "CancelToken",
    "CommandDispatcher",
    "Prompt",
    "PromptKind",
    "ToolBuilder",
    "ToolRegistry",
    "ToolService",
    "ValidationOutcome",
    "check_parameters",
    "parse_definition",
    "validate",
]
