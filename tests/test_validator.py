import copy

import pytest

from toolbridge.mcp.validator import ValidationOutcome, parse_definition, validate
from toolbridge.schemas.tools import ToolDefinition
from toolbridge.utils.errors import ErrorKind, ToolParseError

from tests._helpers import tool_payload


def _mutated(base, mutate):
    data = copy.deepcopy(base)
    mutate(data)
    return data


def test_accepts_valid_definition(files_tool_data):
    outcome = validate(files_tool_data)

    assert outcome
    assert isinstance(outcome.tool, ToolDefinition)
    assert outcome.tool.name == "Files"
    assert outcome.reason is None


def test_accepts_typed_definition(files_tool_data):
    tool = ToolDefinition.model_validate(files_tool_data)

    assert validate(tool).tool == tool


def test_parameters_may_be_empty():
    data = tool_payload("Clock", "now")
    data["commands"][0]["parameters"] = []

    assert validate(data).valid


@pytest.mark.parametrize(
    "raw",
    [
        None,
        42,
        "Files",
        [],
        {},
        {"name": "", "description": "d", "version": "1", "commands": [{}]},
        {"name": "T", "description": "d", "version": "1"},
        {"name": "T", "description": "d", "version": "1", "commands": []},
        {"name": "T", "description": "d", "version": "1", "commands": {"a": 1}},
        {"name": "T", "description": "d", "version": "1", "commands": ["read"]},
        {"name": "T", "description": "d", "version": "1", "commands": [{"name": "x"}]},
        {"name": 5, "description": "d", "version": "1", "commands": [{}]},
    ],
)
def test_malformed_input_is_rejected_without_raising(raw):
    outcome = validate(raw)

    assert isinstance(outcome, ValidationOutcome)
    assert not outcome
    assert outcome.tool is None
    assert outcome.reason


@pytest.mark.parametrize(
    "mutate,reason",
    [
        (lambda d: d.pop("version"), "'version' must be a non-empty string"),
        (lambda d: d.update(description="   "), "'description' must be a non-empty string"),
        (lambda d: d.update(commands=[]), "'commands' must contain at least one command"),
        (lambda d: d.update(commands="read"), "'commands' must be a list"),
        (lambda d: d["commands"][0].pop("description"), "command 'read': 'description' must be a non-empty string"),
        (lambda d: d["commands"][0].pop("parameters"), "command 'read': 'parameters' must be a list"),
        (lambda d: d["commands"][0].update(idempotent="yes"), "command 'read': 'idempotent' must be a boolean"),
        (
            lambda d: d["commands"][0]["parameters"][0].update(required="true"),
            "command 'read' parameter 'path': 'required' must be a boolean",
        ),
        (
            lambda d: d["commands"][0]["parameters"][0].pop("description"),
            "command 'read' parameter 'path': 'description' must be a string",
        ),
    ],
)
def test_reports_first_failing_rule(files_tool_data, mutate, reason):
    outcome = validate(_mutated(files_tool_data, mutate))

    assert not outcome.valid
    assert outcome.reason == reason


def test_unknown_parameter_type_is_rejected(files_tool_data):
    data = _mutated(files_tool_data, lambda d: d["commands"][0]["parameters"][0].update(type="date"))

    outcome = validate(data)

    assert not outcome.valid
    assert "unsupported type 'date'" in outcome.reason
    assert "string, number, boolean, object, array" in outcome.reason


def test_duplicate_command_names_are_rejected():
    outcome = validate(tool_payload("Files", "read", "read"))

    assert outcome.reason == "duplicate command name 'read'"


def test_duplicate_parameter_names_are_rejected(files_tool_data):
    data = _mutated(
        files_tool_data,
        lambda d: d["commands"][0]["parameters"].append(
            {"name": "path", "description": "again", "type": "string"}
        ),
    )

    assert validate(data).reason == "command 'read': duplicate parameter name 'path'"


def test_required_defaults_to_false(files_tool_data):
    data = _mutated(files_tool_data, lambda d: d["commands"][0]["parameters"][1].pop("required"))

    tool = validate(data).tool

    assert tool.commands[0].get_parameter("encoding").required is False


def test_validate_does_not_mutate_input(files_tool_data):
    snapshot = copy.deepcopy(files_tool_data)

    validate(files_tool_data)

    assert files_tool_data == snapshot


def test_parse_definition_decodes_text(files_tool_data):
    import json

    assert parse_definition(json.dumps(files_tool_data)) == files_tool_data
    assert parse_definition(files_tool_data) is files_tool_data


@pytest.mark.parametrize("text", ["", "{", "not json", b"\xff\xfe"])
def test_parse_definition_raises_parse_error(text):
    with pytest.raises(ToolParseError) as exc_info:
        parse_definition(text)

    assert exc_info.value.kind is ErrorKind.PARSE
    assert exc_info.value.message.startswith("invalid tool definition JSON: ")
