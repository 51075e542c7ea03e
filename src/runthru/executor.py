"""Step execution: one action against the live page, always producing a Step."""

import logging
import time

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from runthru.browser import SessionHandle
from runthru.config import BrowserConfig
from runthru.errors import describe_error
from runthru.interpreter import Action, Click, Fill, Navigate, Screenshot, Scroll, Unknown, Wait
from runthru.models.recording import Step

logger = logging.getLogger(__name__)


class StepExecutor:
    """Performs one interpreted action and records the outcome.

    ``execute`` never raises for a failing action: the error goes on the
    Step and the caller moves on to the next instruction. A screenshot is
    taken after every attempt, successful or not.
    """

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()

    async def execute(
        self,
        handle: SessionHandle,
        instruction: str,
        action: Action,
        sequence_id: int,
    ) -> Step:
        """Run ``action`` on the handle's page.

        Args:
            handle: Live browser handle
            instruction: Original instruction text, stored on the Step
            action: Interpreted action
            sequence_id: Position in the recording, assigned by the lifecycle machine

        Returns:
            The recorded Step
        """
        page = handle.page
        started = time.monotonic()
        error: str | None = None
        rationale: str | None = None

        try:
            if isinstance(action, Unknown):
                rationale = action.reason
                logger.warning("Step %d not understood (%s): %s", sequence_id, action.reason, instruction)
            await self._dispatch(page, action)
            if self.config.step_delay_ms > 0:
                await page.wait_for_timeout(self.config.step_delay_ms)
        except Exception as e:
            error = describe_error(e)
            logger.warning("Step %d failed: %s (%s)", sequence_id, instruction, error)

        duration_ms = (time.monotonic() - started) * 1000
        screenshot_path = await self._capture(handle, sequence_id)

        return Step(
            sequence_id=sequence_id,
            instruction=instruction,
            action=action.kind,
            success=error is None,
            error=error,
            rationale=rationale,
            screenshot_path=screenshot_path,
            duration_ms=duration_ms,
        )

    async def _dispatch(self, page: Page, action: Action) -> None:
        if isinstance(action, Navigate):
            await page.goto(
                action.url,
                wait_until="networkidle",
                timeout=self.config.navigation_timeout_ms,
            )
        elif isinstance(action, Click):
            locator = await self._locate(page, action.target)
            await locator.click(timeout=self.config.action_timeout_ms)
        elif isinstance(action, Fill):
            locator = await self._locate(page, action.target)
            await locator.fill(action.value, timeout=self.config.action_timeout_ms)
        elif isinstance(action, Scroll):
            await page.mouse.wheel(0, action.distance)
        elif isinstance(action, Wait):
            await page.wait_for_timeout(action.duration_ms)
        elif isinstance(action, (Screenshot, Unknown)):
            # The post-action screenshot is all these need
            pass
        else:
            raise TypeError(f"Unsupported action: {action!r}")

    async def _locate(self, page: Page, target: str) -> Locator:
        """Find a target by visible text, else treat it as a selector."""
        by_text = page.get_by_text(target).first
        try:
            await by_text.wait_for(state="visible", timeout=self.config.locate_timeout_ms)
            return by_text
        except PlaywrightError:
            return page.locator(target).first

    async def _capture(self, handle: SessionHandle, sequence_id: int) -> str | None:
        path = handle.layout.screenshot_path(sequence_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await handle.page.screenshot(path=str(path), timeout=self.config.screenshot_timeout_ms)
        except Exception as e:
            logger.warning("Screenshot for step %d failed: %s", sequence_id, describe_error(e))
            return None
        return str(path)
