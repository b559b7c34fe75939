"""
Test configuration and fixtures for the toolbridge test suite.

Provides isolated settings, sample definitions, in-memory stores and
opened registries/services wired to fake execution endpoints.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict

import pytest
import pytest_asyncio

from toolbridge.config import Settings
from toolbridge.mcp.dispatcher import CommandDispatcher
from toolbridge.mcp.service import ToolService
from toolbridge.mcp.tool_registry import ToolRegistry
from toolbridge.services.tool_store import InMemoryToolStore

from tests._helpers import RecordingTransport, json_responder


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test data."""
    with tempfile.TemporaryDirectory() as tempdir:
        yield Path(tempdir)


@pytest.fixture
def files_tool_data() -> Dict[str, Any]:
    """The "Files" tool with a single ``read`` command."""
    return {
        "name": "Files",
        "description": "File operations",
        "version": "1.0.0",
        "commands": [
            {
                "name": "read",
                "description": "Read a file",
                "parameters": [
                    {"name": "path", "description": "File path", "type": "string", "required": True},
                    {"name": "encoding", "description": "", "type": "string", "required": False},
                ],
            }
        ],
    }


@pytest.fixture
def test_settings(temp_dir):
    """Settings pointing at a temp store and a fake endpoint, no retry delay."""
    settings = Settings(_env_file=None)
    settings.server_url = "http://tools.test"
    settings.store_path = str(temp_dir / "tools.json")
    settings.log_dir = None
    settings.request_timeout = 5.0
    settings.retry_backoff = "0"
    settings.dispatch_retries = 2
    settings.enforce_parameter_schema = False
    yield settings


@pytest.fixture(autouse=True)
def patch_settings(test_settings, monkeypatch):
    """Automatically patch settings for all tests."""
    import toolbridge.config
    import toolbridge.main
    import toolbridge.cli.toolctl

    def mock_get_settings():
        return test_settings

    monkeypatch.setattr(toolbridge.config, "get_settings", mock_get_settings)
    monkeypatch.setattr(toolbridge.main, "get_settings", mock_get_settings)
    monkeypatch.setattr(toolbridge.cli.toolctl, "get_settings", mock_get_settings)
    yield


@pytest.fixture
def memory_store():
    return InMemoryToolStore()


@pytest_asyncio.fixture
async def registry(memory_store):
    """Opened registry over an empty in-memory store."""
    reg = ToolRegistry(memory_store)
    await reg.open()
    yield reg
    await reg.close()


@pytest.fixture
def endpoint():
    """Fake execution endpoint answering ``{"ok": true, "data": [1, 2, 3]}``."""
    return RecordingTransport(json_responder(200, {"ok": True, "data": [1, 2, 3]}))


@pytest_asyncio.fixture
async def dispatcher(registry, test_settings, endpoint):
    disp = CommandDispatcher.from_settings(registry, test_settings, transport=endpoint)
    yield disp
    await disp.close()


@pytest_asyncio.fixture
async def service(test_settings, memory_store, endpoint):
    svc = ToolService.from_settings(test_settings, store=memory_store, transport=endpoint)
    await svc.open()
    yield svc
    await svc.close()
