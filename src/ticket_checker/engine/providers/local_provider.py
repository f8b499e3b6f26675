from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
import structlog

from ...config import BrowserOptions
from ..exceptions import CleanupError
from .base_provider import BaseBrowserProvider

logger = structlog.get_logger(__name__)


class LocalBrowserProvider(BaseBrowserProvider):
    """Launches and manages a local browser instance using Playwright."""

    def __init__(self):
        self.playwright: Playwright | None = None
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None

    async def launch(self, options: BrowserOptions) -> tuple[BrowserContext, Page]:
        """
        Launches a local browser and opens one isolated context and page.

        Args:
            options: Browser type, headless flag, viewport and user agent.
        """
        logger.info(
            "Initializing local browser...",
            browser_type=options.browser_type,
            headless=options.headless,
        )
        self.playwright = await async_playwright().start()

        try:
            browser_launcher = getattr(self.playwright, options.browser_type)
        except AttributeError:
            logger.error(f"Invalid browser_type specified: {options.browser_type}")
            raise ValueError(f"Unsupported browser_type: {options.browser_type}")

        self.browser = await browser_launcher.launch(**options.launch_kwargs())
        self.context = await self.browser.new_context(**options.context_kwargs())
        page: Page = await self.context.new_page()

        logger.info("Local browser launched successfully.")
        return self.context, page

    async def close(self):
        """Closes the context, browser and Playwright driver, in that order."""
        errors: list[str] = []
        if self.context:
            try:
                await self.context.close()
            except PlaywrightError as e:
                errors.append(f"context: {e}")
            self.context = None
        if self.browser:
            try:
                if self.browser.is_connected():
                    logger.debug("Closing local browser...")
                    await self.browser.close()
            except PlaywrightError as e:
                errors.append(f"browser: {e}")
            self.browser = None
        if self.playwright:
            try:
                await self.playwright.stop()
            except PlaywrightError as e:
                errors.append(f"playwright: {e}")
            self.playwright = None
        if errors:
            raise CleanupError("; ".join(errors))
        logger.debug("Local provider cleaned up.")
