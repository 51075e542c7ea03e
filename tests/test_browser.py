"""Tests for browser session acquisition and release."""

import asyncio

import pytest

from runthru.artifacts import ArtifactLayout
from runthru.browser import BrowserSessionManager, resolve_engine
from runthru.config import BrowserConfig
from runthru.errors import BrowserAcquisitionError
from runthru.models.recording import BrowserSettings


@pytest.fixture
def layout(tmp_path):
    return ArtifactLayout("rec1", tmp_path / "recordings")


class TestResolveEngine:
    @pytest.mark.parametrize("name,expected", [
        ("chromium", "chromium"),
        ("chrome", "chromium"),
        ("Firefox", "firefox"),
        ("safari", "webkit"),
        ("webkit", "webkit"),
    ])
    def test_aliases(self, name, expected):
        assert resolve_engine(name) == expected

    def test_unknown(self):
        with pytest.raises(BrowserAcquisitionError, match="Unsupported browser engine"):
            resolve_engine("netscape")


class TestAcquire:
    async def test_opens_context_with_recording(self, sessions, playwright_world, layout):
        settings = BrowserSettings(engine="safari", viewport_width=1280, viewport_height=720, quality="medium")
        handle = await sessions.acquire(settings, layout)

        assert handle.engine == "webkit"
        browser = playwright_world.browsers[0]
        assert browser.engine == "webkit"
        assert browser.launch_options["headless"] is True
        options = browser.contexts[0].options
        assert options["viewport"] == {"width": 1280, "height": 720}
        assert options["record_video_dir"] == str(layout.video_dir)
        assert options["record_video_size"] == {"width": 960, "height": 540}
        assert layout.screenshots_dir.is_dir()

        await sessions.release(handle)

    @pytest.mark.parametrize("operation", ["launch", "new_context", "new_page"])
    async def test_partial_failure_leaves_nothing_running(self, sessions, playwright_world, layout, operation):
        playwright_world.fail_on.add(operation)

        with pytest.raises(BrowserAcquisitionError, match=f"injected failure in {operation}"):
            await sessions.acquire(BrowserSettings(), layout)

        assert playwright_world.open_browsers == []
        assert playwright_world.running_drivers == []

    async def test_context_failure_closes_launched_browser(self, sessions, playwright_world, layout):
        playwright_world.fail_on.add("new_context")

        with pytest.raises(BrowserAcquisitionError):
            await sessions.acquire(BrowserSettings(), layout)

        assert len(playwright_world.browsers) == 1
        assert playwright_world.browsers[0].closed
        assert playwright_world.log == ["browser.close", "playwright.stop"]

    async def test_passes_extra_args(self, playwright_world, layout):
        manager = BrowserSessionManager(
            BrowserConfig(extra_args=["--mute-audio"]),
            playwright_factory=playwright_world,
        )
        handle = await manager.acquire(BrowserSettings(headless=False), layout)
        assert playwright_world.browsers[0].launch_options == {"headless": False, "args": ["--mute-audio"]}
        await manager.release(handle)


class TestRelease:
    async def test_closes_in_order_and_collects_video(self, sessions, playwright_world, layout):
        handle = await sessions.acquire(BrowserSettings(), layout)
        await sessions.release(handle)

        assert playwright_world.log == ["page.close", "context.close", "browser.close", "playwright.stop"]
        assert handle.released
        assert handle.video_path is not None
        assert handle.video_path.parent == layout.video_dir
        assert handle.video_path.exists()

    async def test_idempotent(self, sessions, playwright_world, layout):
        handle = await sessions.acquire(BrowserSettings(), layout)
        await sessions.release(handle)
        await sessions.release(handle)

        assert playwright_world.log.count("browser.close") == 1

    async def test_concurrent_release_waits_for_first(self, sessions, playwright_world, layout):
        handle = await sessions.acquire(BrowserSettings(), layout)
        await asyncio.gather(sessions.release(handle), sessions.release(handle))

        assert playwright_world.log.count("context.close") == 1
        assert handle.video_path is not None and handle.video_path.exists()

    async def test_close_errors_are_swallowed(self, sessions, playwright_world, layout):
        handle = await sessions.acquire(BrowserSettings(), layout)
        playwright_world.fail_on.update({"context.close", "browser.close"})

        await sessions.release(handle)

        assert handle.released
        assert playwright_world.running_drivers == []
        assert playwright_world.log[-1] == "playwright.stop"
