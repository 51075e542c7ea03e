"""MCP server exposing RunThru recordings as tools over stdio."""

import asyncio
import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from runthru.app import RunThru
from runthru.broadcaster import Subscription
from runthru.config import Config
from runthru.errors import RunThruError
from runthru.models.recording import Recording

logger = logging.getLogger(__name__)

# Global instance, set by run_server()
_app: RunThru | None = None


def _get_app() -> RunThru:
    if _app is None:
        raise RuntimeError("RunThru is not running")
    return _app


def _format_recording(recording: Recording, with_steps: bool = False) -> str:
    lines = [
        f"Recording {recording.id}: {recording.title}",
        f"  Status: {recording.status.value}",
        f"  Progress: {recording.progress}%",
        f"  Current step: {recording.current_step or '-'}",
        f"  Target: {recording.target_url}",
        f"  Steps executed: {len(recording.steps)}/{len(recording.test_steps)}",
    ]
    if recording.final_video_path:
        lines.append(f"  Video: {recording.final_video_path}")
    if recording.duration is not None:
        lines.append(f"  Duration: {recording.duration}s")
    if with_steps:
        for step in recording.steps:
            result = "ok" if step.success else f"FAILED ({step.error})"
            lines.append(f"    {step.sequence_id}. [{step.action.value}] {step.instruction} -> {result}")
    return "\n".join(lines)


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


_RECORDING_ID = {
    "type": "object",
    "properties": {
        "recording_id": {"type": "string", "description": "Recording ID"},
    },
    "required": ["recording_id"],
}

server = Server("runthru")


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="recording_generate_steps",
            description="Generate test steps from a natural-language description. Falls back to a generic plan when no language model is configured.",
            inputSchema={
                "type": "object",
                "properties": {
                    "description": {"type": "string", "description": "What the test should demonstrate"},
                    "target_url": {"type": "string", "description": "URL of the application under test"},
                },
                "required": ["description", "target_url"],
            },
        ),
        Tool(
            name="recording_create",
            description="Create a pending recording. Call recording_start to run it.",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Recording title"},
                    "description": {"type": "string", "description": "Test description"},
                    "target_url": {"type": "string", "description": "URL of the application under test"},
                    "test_steps": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Ordered instructions, e.g. \"Navigate to https://example.com\", \"Click 'Login'\".",
                    },
                    "browser": {
                        "type": "object",
                        "description": "engine (chromium/chrome/firefox/webkit/safari), viewport_width, viewport_height, headless, quality (low/medium/high).",
                    },
                    "narration": {
                        "type": "object",
                        "description": "voice, style, speed (0.5-2.0), auto_generate.",
                    },
                    "video": {
                        "type": "object",
                        "description": "format (mp4/webm), show_avatar, avatar_position, avatar_style, avatar_size, avatar_image.",
                    },
                },
                "required": ["title", "target_url", "test_steps"],
            },
        ),
        Tool(
            name="recording_start",
            description="Start a pending recording in the background.",
            inputSchema=_RECORDING_ID,
        ),
        Tool(
            name="recording_stop",
            description="Stop a recording. It ends as failed with 'Stopped by user'.",
            inputSchema=_RECORDING_ID,
        ),
        Tool(
            name="recording_status",
            description="Get status, progress and executed steps of a recording.",
            inputSchema=_RECORDING_ID,
        ),
        Tool(
            name="recording_list",
            description="List all recordings, newest first.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="recording_wait",
            description="Wait until a recording completes or fails.",
            inputSchema={
                "type": "object",
                "properties": {
                    "recording_id": {"type": "string", "description": "Recording ID"},
                    "timeout": {"type": "number", "description": "Seconds to wait. Default: 300."},
                },
                "required": ["recording_id"],
            },
        ),
        Tool(
            name="recording_delete",
            description="Delete a recording and its files. Running recordings must be stopped first.",
            inputSchema=_RECORDING_ID,
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    try:
        app = _get_app()

        if name == "recording_generate_steps":
            steps = await app.generate_steps(arguments["description"], arguments["target_url"])
            return _text(json.dumps({"steps": steps}, indent=2))

        elif name == "recording_create":
            recording = await app.create_recording(arguments)
            return _text(f"Created.\n{_format_recording(recording)}")

        elif name == "recording_start":
            recording = await app.start_recording(arguments["recording_id"])
            return _text(f"Started.\n{_format_recording(recording)}")

        elif name == "recording_stop":
            recording = await app.stop_recording(arguments["recording_id"])
            return _text(f"Stopped.\n{_format_recording(recording)}")

        elif name == "recording_status":
            recording = await app.get_recording(arguments["recording_id"])
            return _text(_format_recording(recording, with_steps=True))

        elif name == "recording_list":
            recordings = await app.list_recordings()
            if not recordings:
                return _text("No recordings.")
            lines = [
                f"{r.id}  {r.status.value:<10}  {r.progress:>3}%  {r.title}"
                for r in recordings
            ]
            return _text("\n".join(lines))

        elif name == "recording_wait":
            recording_id = arguments["recording_id"]
            timeout = float(arguments.get("timeout", 300))
            try:
                recording = await app.wait_for(recording_id, timeout)
            except asyncio.TimeoutError:
                recording = await app.get_recording(recording_id)
                return _text(f"Still running after {timeout:.0f}s.\n{_format_recording(recording)}")
            return _text(_format_recording(recording, with_steps=True))

        elif name == "recording_delete":
            await app.delete_recording(arguments["recording_id"])
            return _text(f"Deleted recording {arguments['recording_id']}.")

        else:
            return _text(f"Unknown tool: {name}")

    except RunThruError as e:
        return _text(f"Error: {e}")
    except KeyError as e:
        return _text(f"Error: missing argument {e}")
    except Exception as e:
        logger.exception("Tool %s failed", name)
        return _text(f"Error: {e}")


async def _log_events(subscription: Subscription) -> None:
    """Log every progress event until cancelled."""
    async for event in subscription:
        if event.step is not None:
            logger.info(
                "[%s] step %d %s: %s",
                event.recording_id,
                event.step.sequence_id,
                "ok" if event.step.success else "failed",
                event.step.instruction,
            )
        else:
            logger.info(
                "[%s] %s %s %d%% %s",
                event.recording_id,
                event.event,
                event.status.value,
                event.progress,
                event.current_step or "",
            )


async def run_server(config: Config | None = None):
    """Run the MCP server."""
    global _app

    config = config or Config.load()
    logging.basicConfig(
        level=config.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    async with RunThru(config) as app:
        _app = app
        subscription = app.subscribe()
        event_logger = asyncio.create_task(_log_events(subscription))
        try:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(read_stream, write_stream, server.create_initialization_options())
        finally:
            event_logger.cancel()
            subscription.close()
            _app = None


def main():
    """Main entry point."""
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
