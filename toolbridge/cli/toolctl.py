#!/usr/bin/env python3
"""
toolctl - manage and invoke toolbridge tools from the terminal.

Usage:
    toolctl serve [--host 127.0.0.1] [--port 8000]
    toolctl install definition.json
    toolctl list
    toolctl exec Files read --params '{"path": "/a"}'
    toolctl create [--install] [--output tool.json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

from rich.console import Console
from rich.prompt import Confirm
from rich.prompt import Prompt as RichPrompt
from rich.table import Table

from ..config import Settings, get_settings
from ..mcp.builder import BuilderInputError, BuilderState, Prompt, PromptKind, ToolBuilder
from ..mcp.service import ToolService
from ..schemas.tools import ToolDefinition, tool_to_json
from ..utils.central_logging import setup_central_logging

logger = logging.getLogger("toolbridge.cli")

console = Console()
err_console = Console(stderr=True)

# Returns the answer for a prompt, or None to cancel the whole flow
Asker = Callable[[Prompt], Optional[Any]]


def ask_with_rich(prompt: Prompt) -> Optional[Any]:
    try:
        if prompt.kind is PromptKind.CONFIRM:
            return Confirm.ask(prompt.message, default=False, console=console)
        if prompt.kind is PromptKind.CHOICE:
            return RichPrompt.ask(prompt.message, choices=list(prompt.choices), console=console)
        message = f"{prompt.message} [dim]({prompt.placeholder})[/dim]" if prompt.placeholder else prompt.message
        if prompt.default is not None:
            return RichPrompt.ask(message, default=prompt.default, console=console)
        return RichPrompt.ask(message, default="" if prompt.allow_empty else ..., console=console)
    except (KeyboardInterrupt, EOFError):
        return None


def run_builder(ask: Asker) -> Optional[ToolDefinition]:
    """Drive a ToolBuilder until it finishes. Returns None when cancelled."""
    builder = ToolBuilder()
    while not builder.is_finished:
        prompt = builder.prompt
        answer = ask(prompt)
        try:
            builder.submit(answer)
        except BuilderInputError as exc:
            err_console.print(f"[yellow]{exc}[/yellow]")
    if builder.state is BuilderState.CANCELLED:
        return None
    return builder.result


def render_tools(tools: List[ToolDefinition]) -> Table:
    table = Table(title="Installed tools")
    table.add_column("Tool", style="bold")
    table.add_column("Version")
    table.add_column("Description")
    table.add_column("Commands")
    for tool in tools:
        commands = ", ".join(
            f"{command.name}({', '.join(p.name + ('' if p.required else '?') for p in command.parameters)})"
            for command in tool.commands
        )
        table.add_row(tool.name, f"v{tool.version}", tool.description, commands)
    return table


def _print_envelope(envelope: dict) -> int:
    if envelope.get("success"):
        console.print_json(data=envelope.get("data"))
        return 0
    err_console.print(f"[red]{envelope.get('error')}[/red]")
    return 1


# ----------------------------------------------------------------------
# Subcommands
# ----------------------------------------------------------------------
async def _cmd_install(args: argparse.Namespace, settings: Settings) -> int:
    source = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
    async with ToolService.from_settings(settings) as service:
        result = await service.install_tool(source)
    return _print_envelope(result.to_envelope())


async def _cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    async with ToolService.from_settings(settings) as service:
        tools = service.get_tools()
    if args.json:
        console.print_json(data=[tool.to_dict() for tool in tools])
    elif not tools:
        console.print("No tools installed.")
    else:
        console.print(render_tools(tools))
    return 0


async def _cmd_exec(args: argparse.Namespace, settings: Settings) -> int:
    try:
        parameters = json.loads(args.params)
    except json.JSONDecodeError as exc:
        err_console.print(f"[red]--params is not valid JSON: {exc}[/red]")
        return 2
    async with ToolService.from_settings(settings) as service:
        result = await service.execute_command(args.tool, args.command, parameters, timeout=args.timeout)
    return _print_envelope(result.to_envelope())


async def _cmd_create(args: argparse.Namespace, settings: Settings) -> int:
    tool = run_builder(ask_with_rich)
    if tool is None:
        err_console.print("[yellow]Tool creation cancelled.[/yellow]")
        return 1

    payload = tool_to_json(tool)
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        console.print(f"Definition written to {args.output}")
    else:
        console.print_json(payload)

    if not args.install:
        return 0
    async with ToolService.from_settings(settings) as service:
        result = await service.install_tool(payload)
    return _print_envelope(result.to_envelope())


def _cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    from ..main import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="toolctl", description="toolbridge tool registry CLI")
    parser.add_argument("--server-url", help="Execution endpoint base URL (overrides TOOL_SERVER_URL)")
    parser.add_argument("--store", help="Tool store JSON file (overrides TOOL_STORE_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")
    sub = parser.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    install = sub.add_parser("install", help="Install a tool definition from a JSON file ('-' for stdin)")
    install.add_argument("file")

    listing = sub.add_parser("list", help="List installed tools")
    listing.add_argument("--json", action="store_true", help="Print raw definitions")

    execute = sub.add_parser("exec", help="Execute a tool command on the execution endpoint")
    execute.add_argument("tool")
    execute.add_argument("command")
    execute.add_argument("--params", default="{}", help="Parameters as a JSON object")
    execute.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds")

    create = sub.add_parser("create", help="Build a tool definition interactively")
    create.add_argument("--output", help="Write the definition to this file")
    create.add_argument("--install", action="store_true", help="Install the definition when done")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.server_url:
        overrides["server_url"] = args.server_url
    if args.store:
        overrides["store_path"] = args.store
    settings = get_settings().model_copy(update=overrides) if overrides else get_settings()

    # One-shot commands keep the console quiet unless asked
    if args.verbose:
        console_level = "DEBUG"
    elif args.cmd == "serve":
        console_level = settings.log_level
    else:
        console_level = "WARNING"
    setup_central_logging(
        log_dir=settings.log_dir if args.cmd == "serve" else None,
        console_level=console_level,
    )

    if args.cmd == "serve":
        return _cmd_serve(args, settings)

    handlers = {
        "install": _cmd_install,
        "list": _cmd_list,
        "exec": _cmd_exec,
        "create": _cmd_create,
    }
    return asyncio.run(handlers[args.cmd](args, settings))


if __name__ == "__main__":
    sys.exit(main())
