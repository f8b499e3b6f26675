from pathlib import Path

from playwright.async_api import BrowserContext, ConsoleMessage, Page
from playwright.async_api import Error as PlaywrightError
import structlog

from ..config import BrowserOptions
from .exceptions import CheckerError, CleanupError, InitializationError
from .providers.base_provider import BaseBrowserProvider
from .providers.browser_manager import BrowserManager
from .wait_handler import WaitHandler

logger = structlog.get_logger(__name__)
browser_logger = structlog.get_logger("browser")


class BrowserSession:
    """
    One browser, one isolated context and one page, owned by exactly one run.

    Use as an async context manager; the browser is released on every exit
    path, and close() is safe to call more than once or after a failed open().
    """

    def __init__(
        self,
        options: BrowserOptions,
        provider: BaseBrowserProvider | None = None,
    ):
        self.options = options
        self._provider = provider
        self.context: BrowserContext | None = None
        self._page: Page | None = None
        self.wait_handler: WaitHandler | None = None
        self._closed = False

    @property
    def page(self) -> Page:
        if self._page is None:
            raise CheckerError("Browser session is not open.")
        return self._page

    @property
    def is_open(self) -> bool:
        return self._page is not None and not self._closed

    async def __aenter__(self) -> "BrowserSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> "BrowserSession":
        if self._provider is None:
            self._provider = BrowserManager.get_provider("local")
        try:
            self.context, self._page = await self._provider.launch(self.options)
        except (PlaywrightError, ValueError) as e:
            logger.error("Failed to launch browser.", error=str(e))
            await self.close()
            raise InitializationError(f"Failed to launch browser: {e}") from e
        except BaseException:
            # Cancellation or an unexpected driver fault: __aexit__ will not run.
            await self.close()
            raise

        self._page.on("console", self._on_console)
        self._page.on("pageerror", self._on_page_error)
        self.wait_handler = WaitHandler(self._page)
        logger.info("✅ Browser session opened.")
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._provider is None:
            return
        try:
            await self._provider.close()
        except CleanupError as e:
            logger.warning("Browser cleanup was incomplete.", error=str(e))
        logger.info("🔒 Browser session closed.")

    async def navigate(self, url: str, timeout: int) -> bool:
        """Loads `url`; returns False when it only rendered on a best-effort basis."""
        return await self.wait_handler.goto(url, timeout)

    async def screenshot(self, path: Path, timeout: int | None = None) -> Path:
        await self.page.screenshot(path=str(path), full_page=True, timeout=timeout)
        return path

    def _on_console(self, message: ConsoleMessage) -> None:
        browser_logger.debug("Browser console.", type=message.type, text=message.text)

    def _on_page_error(self, error: Exception) -> None:
        browser_logger.warning("Page error.", error=str(error))
