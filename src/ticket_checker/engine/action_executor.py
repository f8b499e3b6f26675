import asyncio
from collections.abc import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
import structlog

from .exceptions import ElementNotInteractableError
from .locators import Resolution

logger = structlog.get_logger(__name__)


class ActionExecutor:
    """
    Executes actions (click, clear-then-type, key press) on an element a
    LocatorChain has already resolved. Scrolls the element into view first
    and retries once on Playwright errors before giving up with
    ElementNotInteractableError.
    """

    DEFAULT_MAX_RETRIES = 1  # Total attempts = DEFAULT_MAX_RETRIES + 1
    POST_ACTION_DELAY_MS = 100
    RETRY_DELAY_MS = 500

    def __init__(self, action_timeout: int = 7000, type_delay_ms: int = 50):
        self.action_timeout = action_timeout
        self.type_delay_ms = type_delay_ms

    async def click(self, resolution: Resolution) -> None:
        async def _click(locator: Locator) -> None:
            await locator.click(timeout=self.action_timeout)

        await self._run("click", resolution, _click)

    async def clear_and_type(
        self, resolution: Resolution, text: str, secret: bool = False
    ) -> None:
        """
        Empties any pre-filled value, then types `text` one character at a
        time so client-side validators see every keystroke.
        """
        shown = "*" * len(text) if secret else text[:30]
        logger.debug(f"Typing into '{resolution.target}': '{shown}'")

        async def _type(locator: Locator) -> None:
            await locator.focus(timeout=self.action_timeout)
            await locator.fill("", timeout=self.action_timeout)
            await locator.type(
                text, delay=self.type_delay_ms, timeout=self.action_timeout
            )

        await self._run("type", resolution, _type)

    async def press(self, resolution: Resolution, key: str) -> None:
        async def _press(locator: Locator) -> None:
            await locator.press(key, timeout=self.action_timeout)

        await self._run(f"press {key}", resolution, _press)

    async def _run(
        self,
        action: str,
        resolution: Resolution,
        perform: Callable[[Locator], Awaitable[None]],
    ) -> None:
        locator = resolution.locator
        last_error: Exception | None = None

        for attempt in range(self.DEFAULT_MAX_RETRIES + 1):
            try:
                try:
                    await locator.scroll_into_view_if_needed(timeout=self.action_timeout)
                except PlaywrightTimeoutError:
                    logger.debug("Scroll into view timed out, acting anyway.")
                await perform(locator)
                logger.debug(
                    f"✓ Action '{action}' on '{resolution.target}' succeeded.",
                    attempt=attempt + 1,
                )
                await asyncio.sleep(self.POST_ACTION_DELAY_MS / 1000)
                return
            except PlaywrightError as e:
                last_error = e
                logger.warning(
                    f"! Action '{action}' on '{resolution.target}' failed.",
                    attempt=attempt + 1,
                    error=str(e).replace("\n", " "),
                )
            if attempt < self.DEFAULT_MAX_RETRIES:
                await asyncio.sleep(self.RETRY_DELAY_MS / 1000)

        raise ElementNotInteractableError(
            f"Action '{action}' on '{resolution.target}' failed after "
            f"{self.DEFAULT_MAX_RETRIES + 1} attempts: {last_error}"
        ) from last_error
