"""Tests for the MCP tool handlers."""

import json

import pytest

from runthru import mcp_server
from runthru.mcp_server import call_tool, list_tools


@pytest.fixture
def served(app, monkeypatch):
    monkeypatch.setattr(mcp_server, "_app", app)
    return app


async def call(name: str, **arguments) -> str:
    result = await call_tool(name, arguments)
    return result[0].text


class TestTools:
    async def test_tool_names(self):
        names = {tool.name for tool in await list_tools()}
        assert names == {
            "recording_generate_steps",
            "recording_create",
            "recording_start",
            "recording_stop",
            "recording_status",
            "recording_list",
            "recording_wait",
            "recording_delete",
        }

    async def test_not_running(self, monkeypatch):
        monkeypatch.setattr(mcp_server, "_app", None)
        assert await call("recording_list") == "Error: RunThru is not running"

    async def test_generate_steps_fallback(self, served):
        text = await call("recording_generate_steps", description="Check login", target_url="https://example.com")
        steps = json.loads(text)["steps"]
        assert steps[0] == "Navigate to https://example.com"

    async def test_create_start_wait(self, served):
        text = await call(
            "recording_create",
            title="Tour",
            target_url="https://example.com",
            test_steps=["Navigate to https://example.com", "Take a screenshot"],
        )
        recording_id = (await served.list_recordings())[0].id
        assert f"Recording {recording_id}: Tour" in text

        assert (await call("recording_start", recording_id=recording_id)).startswith("Started.")
        text = await call("recording_wait", recording_id=recording_id, timeout=5)

        assert "Status: completed" in text
        assert "1. [navigate] Navigate to https://example.com -> ok" in text

    async def test_invalid_create(self, served):
        text = await call("recording_create", title="Tour", target_url="nope", test_steps=["Wait 1 s"])
        assert text.startswith("Error: Invalid recording")

    async def test_missing_argument(self, served):
        assert await call("recording_status") == "Error: missing argument 'recording_id'"

    async def test_unknown_recording(self, served):
        assert (await call("recording_status", recording_id="nope")).startswith("Error:")

    async def test_empty_list(self, served):
        assert await call("recording_list") == "No recordings."

    async def test_unknown_tool(self, served):
        assert await call("recording_explode") == "Unknown tool: recording_explode"
