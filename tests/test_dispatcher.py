import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from toolbridge.mcp.dispatcher import CancelToken, CommandDispatcher, check_parameters, error_detail
from toolbridge.mcp.tool_registry import ToolRegistry
from toolbridge.schemas.tools import CommandDefinition
from toolbridge.services.tool_store import InMemoryToolStore
from toolbridge.utils.errors import ErrorKind, ToolSchemaError
from toolbridge.utils.http_client import HttpClient

from tests._helpers import RecordingTransport, json_responder, sequence_responder, tool_payload


@pytest.fixture
def offline_client():
    """HttpClient stand-in that fails the test if anything is sent."""
    return AsyncMock(spec=HttpClient)


@pytest.mark.asyncio
async def test_success_returns_endpoint_body(registry, dispatcher, endpoint, files_tool_data):
    await registry.install(files_tool_data)

    result = await dispatcher.execute("Files", "read", {"path": "/a.txt"})

    assert result.success
    assert result.data == {"ok": True, "data": [1, 2, 3]}
    assert result.error is None
    assert endpoint.calls == 1
    request = endpoint.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "http://tools.test/execute"
    assert endpoint.last_json() == {"tool": "Files", "command": "read", "parameters": {"path": "/a.txt"}}


@pytest.mark.asyncio
async def test_missing_parameters_default_to_empty_object(registry, dispatcher, endpoint, files_tool_data):
    await registry.install(files_tool_data)

    await dispatcher.execute("Files", "read")

    assert endpoint.last_json()["parameters"] == {}


@pytest.mark.asyncio
async def test_unknown_tool_short_circuits(registry, offline_client):
    dispatcher = CommandDispatcher(registry, offline_client, timeout=httpx.Timeout(1.0))

    result = await dispatcher.execute("Ghost", "read", {})

    assert not result.success
    assert result.error == "tool not found: Ghost"
    assert result.error_kind is ErrorKind.NOT_FOUND
    offline_client.post.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_command_short_circuits(registry, dispatcher, endpoint, files_tool_data):
    await registry.install(files_tool_data)

    result = await dispatcher.execute("Files", "write", {"path": "/a"})

    assert result.error == "command not found: write"
    assert result.error_kind is ErrorKind.NOT_FOUND
    assert endpoint.calls == 0


@pytest.mark.asyncio
async def test_non_object_parameters_are_rejected(registry, dispatcher, endpoint, files_tool_data):
    await registry.install(files_tool_data)

    result = await dispatcher.execute("Files", "read", ["/a"])

    assert result.error_kind is ErrorKind.SCHEMA
    assert endpoint.calls == 0


@pytest.mark.asyncio
async def test_error_status_becomes_failure(registry, test_settings, files_tool_data):
    await registry.install(files_tool_data)
    transport = RecordingTransport(json_responder(500, {"error": "boom"}))
    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=transport)

    result = await dispatcher.execute("Files", "read", {"path": "/a"})

    assert not result.success
    assert result.error_kind is ErrorKind.TRANSPORT
    assert result.error == "command execution failed: endpoint returned 500: boom"
    assert transport.calls == 1
    await dispatcher.close()


@pytest.mark.asyncio
async def test_malformed_body_becomes_failure(registry, test_settings, files_tool_data):
    await registry.install(files_tool_data)
    transport = RecordingTransport(lambda request: httpx.Response(200, content=b"<html>"))
    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=transport)

    result = await dispatcher.execute("Files", "read", {"path": "/a"})

    assert result.error == "command execution failed: endpoint returned a malformed response body"
    await dispatcher.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc_class,kind",
    [
        (httpx.ConnectError, ErrorKind.TRANSPORT),
        (httpx.ReadTimeout, ErrorKind.TIMEOUT),
        (httpx.ConnectTimeout, ErrorKind.TIMEOUT),
    ],
)
async def test_network_errors_become_failures(registry, test_settings, files_tool_data, exc_class, kind):
    await registry.install(files_tool_data)
    transport = RecordingTransport(sequence_responder([exc_class]))
    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=transport)

    result = await dispatcher.execute("Files", "read", {"path": "/a"})

    assert not result.success
    assert result.error_kind is kind
    assert result.error.startswith("command execution failed: ")
    # Non-idempotent commands are sent once
    assert transport.calls == 1
    await dispatcher.close()


@pytest.mark.asyncio
async def test_idempotent_command_is_retried(registry, test_settings):
    await registry.install(tool_payload("Files", "stat", idempotent=True))
    transport = RecordingTransport(sequence_responder([
        httpx.ConnectError,
        httpx.Response(503, json={"error": "busy"}),
        httpx.Response(200, json={"size": 12}),
    ]))
    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=transport)

    result = await dispatcher.execute("Files", "stat", {"path": "/a"})

    assert result.success
    assert result.data == {"size": 12}
    assert transport.calls == 3
    await dispatcher.close()


@pytest.mark.asyncio
async def test_retries_are_bounded(registry, test_settings):
    await registry.install(tool_payload("Files", "stat", idempotent=True))
    transport = RecordingTransport(sequence_responder([httpx.ConnectError] * 3))
    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=transport)

    result = await dispatcher.execute("Files", "stat", {"path": "/a"})

    assert result.error_kind is ErrorKind.TRANSPORT
    assert transport.calls == test_settings.dispatch_retries + 1
    await dispatcher.close()


@pytest.mark.asyncio
async def test_schema_enforcement_blocks_bad_calls(registry, test_settings, endpoint, files_tool_data):
    await registry.install(files_tool_data)
    test_settings.enforce_parameter_schema = True
    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=endpoint)

    missing = await dispatcher.execute("Files", "read", {})
    wrong_type = await dispatcher.execute("Files", "read", {"path": 7})
    extra = await dispatcher.execute("Files", "read", {"path": "/a", "mode": "fast"})

    assert missing.error == "missing required parameter 'path' for command 'read'"
    assert missing.error_kind is ErrorKind.SCHEMA
    assert wrong_type.error == "parameter 'path' must be of type string"
    assert extra.success
    assert endpoint.calls == 1
    await dispatcher.close()


@pytest.mark.asyncio
async def test_schema_is_not_enforced_by_default(registry, dispatcher, endpoint, files_tool_data):
    await registry.install(files_tool_data)

    result = await dispatcher.execute("Files", "read", {"path": 7})

    assert result.success
    assert endpoint.calls == 1


@pytest.mark.asyncio
async def test_pre_cancelled_token_skips_network(registry, dispatcher, endpoint, files_tool_data):
    await registry.install(files_tool_data)
    token = CancelToken()
    token.cancel()

    result = await dispatcher.execute("Files", "read", {"path": "/a"}, cancel_token=token)

    assert result.error_kind is ErrorKind.CANCELLED
    assert result.error == "command execution cancelled: cancelled by caller"
    assert endpoint.calls == 0


@pytest.mark.asyncio
async def test_cancel_abandons_in_flight_call(registry, test_settings, files_tool_data):
    await registry.install(files_tool_data)
    started = asyncio.Event()

    async def slow(request):
        started.set()
        await asyncio.sleep(10)
        return httpx.Response(200, json={"late": True})

    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=RecordingTransport(slow))
    token = CancelToken()

    task = asyncio.create_task(dispatcher.execute("Files", "read", {"path": "/a"}, cancel_token=token))
    await asyncio.wait_for(started.wait(), timeout=1)
    token.cancel("user abort")
    result = await asyncio.wait_for(task, timeout=1)

    assert result.error_kind is ErrorKind.CANCELLED
    assert result.error == "command execution cancelled: user abort"
    await dispatcher.close()


@pytest.mark.asyncio
async def test_token_unused_when_call_finishes_first(registry, dispatcher, files_tool_data):
    await registry.install(files_tool_data)
    token = CancelToken()

    result = await dispatcher.execute("Files", "read", {"path": "/a"}, cancel_token=token)

    assert result.success
    assert not token.cancelled


def test_check_parameters_allows_optional_and_null_optional():
    command = CommandDefinition.model_validate({
        "name": "read",
        "description": "Read a file",
        "parameters": [
            {"name": "path", "type": "string", "required": True},
            {"name": "limit", "type": "number"},
        ],
    })

    check_parameters(command, {"path": "/a"})
    check_parameters(command, {"path": "/a", "limit": None})
    with pytest.raises(ToolSchemaError):
        check_parameters(command, {"path": None})
    with pytest.raises(ToolSchemaError):
        check_parameters(command, {"path": "/a", "limit": True})


@pytest.mark.parametrize(
    "response,expected",
    [
        (httpx.Response(404, json={"error": {"message": "no such file"}}), "no such file"),
        (httpx.Response(500, json={"error": "boom"}), "boom"),
        (httpx.Response(502, text="upstream crashed"), "upstream crashed"),
        (httpx.Response(503, content=b""), "Service Unavailable"),
        (httpx.Response(500, json=["bad"]), '["bad"]'),
    ],
)
def test_error_detail(response, expected):
    assert error_detail(response) == expected


@pytest.mark.asyncio
async def test_error_message_from_endpoint_envelope(registry, test_settings, files_tool_data):
    await registry.install(files_tool_data)
    transport = RecordingTransport(json_responder(404, {"error": {"message": "no such file"}}))
    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=transport)

    result = await dispatcher.execute("Files", "read", {"path": "/missing"})

    assert result.error == "command execution failed: endpoint returned 404: no such file"
    await dispatcher.close()


@pytest.mark.asyncio
async def test_closed_registry_returns_failure(offline_client, files_tool_data):
    registry = ToolRegistry(InMemoryToolStore([files_tool_data]))
    dispatcher = CommandDispatcher(registry, offline_client, timeout=httpx.Timeout(1.0))

    before_open = await dispatcher.execute("Files", "read", {"path": "/a"})
    await registry.open()
    await registry.close()
    after_close = await dispatcher.execute("Files", "read", {"path": "/a"})

    for result in (before_open, after_close):
        assert not result.success
        assert result.error_kind is ErrorKind.UNAVAILABLE
        assert result.error == "tool registry is not open"
    offline_client.post.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancelling_caller_abandons_request(registry, test_settings, files_tool_data):
    await registry.install(files_tool_data)
    started = asyncio.Event()
    abandoned = asyncio.Event()

    async def slow(request):
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            abandoned.set()
            raise
        return httpx.Response(200, json={"late": True})

    dispatcher = CommandDispatcher.from_settings(registry, test_settings, transport=RecordingTransport(slow))

    task = asyncio.create_task(
        dispatcher.execute("Files", "read", {"path": "/a"}, cancel_token=CancelToken())
    )
    await asyncio.wait_for(started.wait(), timeout=1)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert abandoned.is_set()
    await dispatcher.close()
