# Standard Library Imports
import asyncio
import time

# Playwright Imports
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
import structlog

# Local Imports
from .exceptions import NavigationError
from .locators import LocatorChain, Resolution

# --- Logger Setup ---
logger = structlog.get_logger(__name__)


class WaitHandler:
    """
    Handles the waiting between stages: load states, post-condition polling
    and the fixed settle delays kept as a last-resort fallback.
    """

    STABILITY_CHECK_INTERVAL_MS = 300
    STABILITY_CHECK_DURATION_MS = 1500

    def __init__(self, page: Page):
        if not page:
            raise ValueError("Page object is required for WaitHandler.")
        self.page = page

    async def settle(
        self,
        post_condition: LocatorChain | None,
        timeout: int,
        fallback_delay_ms: int,
    ) -> Resolution | None:
        """
        Waits for the next state to show itself. Polls `post_condition` when
        given; only when it never appears (or none is known) does the fixed
        delay apply. Returns the resolution of the post-condition, if any.
        """
        start_time = time.time()
        if post_condition is not None:
            resolution = await post_condition.try_resolve(self.page, timeout)
            if resolution is not None:
                elapsed = (time.time() - start_time) * 1000
                logger.debug(
                    f"✓ Post-condition '{post_condition.target}' met ({elapsed:.0f}ms)."
                )
                return resolution
            logger.debug(
                f"Post-condition '{post_condition.target}' not met, "
                f"falling back to fixed delay ({fallback_delay_ms}ms)."
            )
        await self.delay(fallback_delay_ms)
        return None

    async def delay(self, duration_ms: int) -> None:
        if duration_ms > 0:
            await asyncio.sleep(duration_ms / 1000)

    async def wait_for_stable_dom(self, duration_ms: int | None = None) -> bool:
        """Returns once body innerHTML length has stayed constant for `duration_ms`."""
        duration_ms = (
            self.STABILITY_CHECK_DURATION_MS if duration_ms is None else duration_ms
        )
        if duration_ms <= 0:
            return True
        start_stability_time = time.time()
        deadline = start_stability_time + (duration_ms * 3) / 1000
        try:
            last_html_len = await self.page.evaluate(
                "() => document.body?.innerHTML.length ?? 0"
            )
        except PlaywrightError as e:
            logger.warning(f"Could not get initial DOM length for stability check: {e}")
            return True

        while (time.time() - start_stability_time) * 1000 < duration_ms:
            if time.time() > deadline:
                logger.warning("! DOM did not stabilise (content might still be changing).")
                return False
            await asyncio.sleep(self.STABILITY_CHECK_INTERVAL_MS / 1000)
            try:
                current_html_len = await self.page.evaluate(
                    "() => document.body?.innerHTML.length ?? 0"
                )
            except PlaywrightError as e:
                logger.warning(f"Error during stability check loop: {e}")
                await asyncio.sleep(0.2)
                continue
            if current_html_len != last_html_len:
                logger.debug(
                    f"DOM changed (length {last_html_len} -> {current_html_len}). Resetting stability timer."
                )
                start_stability_time = time.time()
                last_html_len = current_html_len

        logger.debug("✓ DOM appears stable.")
        return True

    async def goto(self, url: str, timeout: int) -> bool:
        """
        Loads `url` and waits for network quiescence. A timeout degrades to a
        best-effort render: the page keeps whatever has loaded so far.
        """
        start_time = time.time()
        try:
            await self.page.goto(url, wait_until="networkidle", timeout=timeout)
        except PlaywrightTimeoutError:
            elapsed = (time.time() - start_time) * 1000
            logger.warning(
                f"! Navigation to {url} not quiescent after {elapsed:.0f}ms, continuing with partial render."
            )
            return False
        except PlaywrightError as e:
            raise NavigationError(f"Navigation to {url} failed: {e}") from e
        elapsed = (time.time() - start_time) * 1000
        logger.info(f"📍 Navigated to {url} ({elapsed:.0f}ms).")
        return True
