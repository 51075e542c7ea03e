"""Browser lifecycle: launch, record, and always clean up."""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from runthru.artifacts import ArtifactLayout
from runthru.config import BrowserConfig
from runthru.errors import BrowserAcquisitionError, describe_error
from runthru.models.recording import BrowserSettings

logger = logging.getLogger(__name__)

ENGINES = {
    "chromium": "chromium",
    "chrome": "chromium",
    "firefox": "firefox",
    "webkit": "webkit",
    "safari": "webkit",
}

# Recorded video size relative to the viewport
QUALITY_SCALE = {"high": 1.0, "medium": 0.75, "low": 0.5}


def resolve_engine(name: str) -> str:
    """Map a user-facing browser name to a Playwright browser type."""
    try:
        return ENGINES[name.lower()]
    except KeyError:
        raise BrowserAcquisitionError(
            f"Unsupported browser engine {name!r}; expected one of {', '.join(sorted(ENGINES))}"
        ) from None


@dataclass
class SessionHandle:
    """One live browser process, recording context and page."""

    playwright: Playwright
    browser: Browser
    context: BrowserContext
    page: Page
    layout: ArtifactLayout
    engine: str
    video_path: Path | None = None
    released: bool = False
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class BrowserSessionManager:
    """Acquires and releases :class:`SessionHandle` objects.

    Usage:
        manager = BrowserSessionManager(config.browser)
        handle = await manager.acquire(recording.browser, layout)
        try:
            await handle.page.goto("https://example.com", timeout=30_000)
        finally:
            await manager.release(handle)
        print(handle.video_path)
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        self.config = config or BrowserConfig()
        self._playwright_factory = playwright_factory

    def _context_options(self, settings: BrowserSettings, layout: ArtifactLayout) -> dict[str, Any]:
        scale = QUALITY_SCALE.get(settings.quality, 1.0)
        return {
            "viewport": {
                "width": settings.viewport_width,
                "height": settings.viewport_height,
            },
            "record_video_dir": str(layout.video_dir),
            "record_video_size": {
                "width": int(settings.viewport_width * scale),
                "height": int(settings.viewport_height * scale),
            },
        }

    async def acquire(self, settings: BrowserSettings, layout: ArtifactLayout) -> SessionHandle:
        """Launch a browser, open a recording context and a page.

        Args:
            settings: Engine, viewport, headless flag and quality tier
            layout: Artifact layout; video goes to ``layout.video_dir``

        Returns:
            A live SessionHandle

        Raises:
            BrowserAcquisitionError: if any sub-step fails. Anything opened
                before the failure is closed first.
        """
        engine = resolve_engine(settings.engine)
        layout.ensure()

        playwright = browser = context = None
        try:
            playwright = await self._playwright_factory().start()
            browser = await getattr(playwright, engine).launch(
                headless=settings.headless,
                args=list(self.config.extra_args),
            )
            context = await browser.new_context(**self._context_options(settings, layout))
            page = await context.new_page()
        except BaseException as e:
            # Cancellation lands here too; nothing opened may outlive the call
            await _close_quietly("context", context)
            await _close_quietly("browser", browser)
            if playwright is not None:
                await _close_quietly("playwright", playwright, method="stop")
            if isinstance(e, Exception):
                raise BrowserAcquisitionError(f"Failed to start {engine}: {describe_error(e)}") from e
            raise

        logger.info("Browser %s started for recording %s", engine, layout.recording_id)
        return SessionHandle(
            playwright=playwright,
            browser=browser,
            context=context,
            page=page,
            layout=layout,
            engine=engine,
        )

    async def release(self, handle: SessionHandle) -> None:
        """Close page, context, browser and driver, in that order.

        Close errors are logged, never raised. Releasing twice is a no-op;
        a second caller waits until the first release has finished, so the
        video file is complete once this returns.
        """
        async with handle._lock:
            if handle.released:
                return

            video = getattr(handle.page, "video", None)

            await _close_quietly("page", handle.page)
            await _close_quietly("context", handle.context)
            await _close_quietly("browser", handle.browser)
            await _close_quietly("playwright", handle.playwright, method="stop")

            if video is not None:
                try:
                    handle.video_path = Path(await video.path())
                except Exception as e:
                    logger.warning("No video for recording %s: %s", handle.layout.recording_id, e)

            handle.released = True
            logger.info("Browser released for recording %s", handle.layout.recording_id)


async def _close_quietly(name: str, resource: Any, method: str = "close") -> None:
    if resource is None:
        return
    try:
        await getattr(resource, method)()
    except Exception as e:
        logger.warning("Error closing %s: %s", name, e)
