"""Shared fixtures: an in-process stand-in for the Playwright driver."""

import asyncio
import itertools
from pathlib import Path

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError

from runthru.app import RunThru
from runthru.browser import BrowserSessionManager
from runthru.config import BrowserConfig, Config, RecordingConfig
from runthru.media import MediaComposer

# Waits at least this long block until the page is closed, like a real hung action
BLOCKING_WAIT_MS = 10_000


class FakeVideo:
    def __init__(self, path: Path):
        self._path = path

    async def path(self) -> str:
        return str(self._path)


class FakeMouse:
    def __init__(self, page: "FakePage"):
        self.page = page

    async def wheel(self, delta_x: float, delta_y: float) -> None:
        self.page.world.calls.append(("wheel", delta_x, delta_y))


class FakeLocator:
    def __init__(self, page: "FakePage", target: str, by_text: bool):
        self.page = page
        self.target = target
        self.by_text = by_text

    @property
    def first(self) -> "FakeLocator":
        return self

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        if self.by_text and self.target not in self.page.world.visible_text:
            raise PlaywrightError(f"Timeout {timeout}ms exceeded.\nCall log:\n  - waiting for get_by_text")

    async def click(self, timeout: float | None = None) -> None:
        self.page.world.calls.append(("click", self.target, self.by_text))
        self._maybe_fail(timeout)

    async def fill(self, value: str, timeout: float | None = None) -> None:
        self.page.world.calls.append(("fill", self.target, value))
        self._maybe_fail(timeout)

    def _maybe_fail(self, timeout: float | None) -> None:
        if self.page.closed:
            raise PlaywrightError("Target page, context or browser has been closed")
        if self.target in self.page.world.broken_targets:
            raise PlaywrightError(
                f"Timeout {timeout}ms exceeded.\nCall log:\n  - waiting for locator('{self.target}')"
            )


class FakePage:
    def __init__(self, context: "FakeContext"):
        self.context = context
        self.world = context.world
        self.closed = False
        self.closed_event = asyncio.Event()
        self.mouse = FakeMouse(self)
        self.video = None
        if context.video_dir is not None:
            self.video = FakeVideo(context.video_dir / f"{next(self.world.ids)}.webm")

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None) -> None:
        self.world.calls.append(("goto", url))
        if self.closed:
            raise PlaywrightError("Target page, context or browser has been closed")

    async def wait_for_timeout(self, timeout: float) -> None:
        self.world.calls.append(("wait", timeout))
        if timeout >= BLOCKING_WAIT_MS:
            self.world.blocked.set()
            await self.closed_event.wait()
            raise PlaywrightError("Target page, context or browser has been closed")

    def get_by_text(self, text: str) -> FakeLocator:
        return FakeLocator(self, text, by_text=True)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector, by_text=False)

    async def screenshot(self, path: str | None = None, timeout: float | None = None) -> bytes:
        if self.closed:
            raise PlaywrightError("Target page, context or browser has been closed")
        data = b"\x89PNG fake"
        if path:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            Path(path).write_bytes(data)
        return data

    async def close(self) -> None:
        self.world.log.append("page.close")
        self.closed = True
        self.closed_event.set()


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: dict):
        self.browser = browser
        self.world = browser.world
        self.options = options
        video_dir = options.get("record_video_dir")
        self.video_dir = Path(video_dir) if video_dir else None
        self.pages: list[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        self.world.check("new_page")
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.world.log.append("context.close")
        self.world.check("context.close")
        for page in self.pages:
            page.closed = True
            page.closed_event.set()
            if page.video is not None and not self.closed:
                self.video_dir.mkdir(parents=True, exist_ok=True)
                Path(page.video._path).write_bytes(b"webm")
        self.closed = True


class FakeBrowser:
    def __init__(self, world: "FakePlaywrightWorld", engine: str, launch_options: dict):
        self.world = world
        self.engine = engine
        self.launch_options = launch_options
        self.contexts: list[FakeContext] = []
        self.closed = False

    async def new_context(self, **options) -> FakeContext:
        self.world.check("new_context")
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.world.log.append("browser.close")
        self.world.check("browser.close")
        self.closed = True


class FakeBrowserType:
    def __init__(self, world: "FakePlaywrightWorld", name: str):
        self.world = world
        self.name = name

    async def launch(self, **options) -> FakeBrowser:
        self.world.check("launch")
        browser = FakeBrowser(self.world, self.name, options)
        self.world.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, world: "FakePlaywrightWorld"):
        self.world = world
        self.chromium = FakeBrowserType(world, "chromium")
        self.firefox = FakeBrowserType(world, "firefox")
        self.webkit = FakeBrowserType(world, "webkit")
        self.stopped = False

    async def stop(self) -> None:
        self.world.log.append("playwright.stop")
        self.stopped = True


class FakePlaywrightWorld:
    """Stands in for ``async_playwright``: call it, then ``await .start()``.

    ``fail_on`` names operations that raise (launch, new_context, new_page,
    context.close, browser.close); ``broken_targets`` are locators whose
    click/fill time out; ``visible_text`` is what ``get_by_text`` can find.
    """

    def __init__(self):
        self.fail_on: set[str] = set()
        self.broken_targets: set[str] = set()
        self.visible_text: set[str] = set()
        self.calls: list[tuple] = []
        self.log: list[str] = []
        self.browsers: list[FakeBrowser] = []
        self.playwrights: list[FakePlaywright] = []
        self.blocked = asyncio.Event()
        self.ids = itertools.count(1)

    def __call__(self) -> "FakePlaywrightWorld":
        return self

    async def start(self) -> FakePlaywright:
        playwright = FakePlaywright(self)
        self.playwrights.append(playwright)
        return playwright

    def check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"injected failure in {operation}")

    @property
    def open_browsers(self) -> list[FakeBrowser]:
        return [b for b in self.browsers if not b.closed]

    @property
    def running_drivers(self) -> list[FakePlaywright]:
        return [p for p in self.playwrights if not p.stopped]


class FakeComposer(MediaComposer):
    """Runs the real argument building but fakes the ffmpeg / ffprobe processes."""

    def __init__(self, config=None, duration: str = "12.7\n"):
        super().__init__(config)
        self.duration = duration
        self.runs: list[tuple[str, list[str]]] = []

    async def _run(self, binary: str, args: list[str]) -> str:
        self.runs.append((binary, args))
        if binary == self.config.ffprobe_bin:
            return self.duration
        Path(args[-1]).write_bytes(b"final video")
        return ""


@pytest.fixture
def playwright_world():
    return FakePlaywrightWorld()


@pytest.fixture
def browser_config():
    return BrowserConfig(step_delay_ms=0, locate_timeout_ms=10)


@pytest.fixture
def sessions(playwright_world, browser_config):
    return BrowserSessionManager(browser_config, playwright_factory=playwright_world)


@pytest.fixture
def app_config(tmp_path, browser_config):
    return Config(
        browser=browser_config,
        recording=RecordingConfig(
            recordings_dir=tmp_path / "recordings",
            data_dir=tmp_path / "data",
            store="memory",
            stop_grace_seconds=2.0,
        ),
    )


@pytest.fixture
def make_app(app_config, playwright_world):
    """Build a RunThru on the fake browser and fake ffmpeg; overrides go to the constructor."""

    def factory(client: httpx.AsyncClient, **overrides) -> RunThru:
        options = {
            "sessions": BrowserSessionManager(app_config.browser, playwright_factory=playwright_world),
            "composer": FakeComposer(app_config.media),
            "http_client": client,
        }
        options.update(overrides)
        return RunThru(app_config, **options)

    return factory


@pytest.fixture
async def app(make_app):
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    runthru = make_app(client)
    await runthru.start()
    yield runthru
    await runthru.close()
    await client.aclose()
