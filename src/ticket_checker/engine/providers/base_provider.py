from abc import ABC, abstractmethod

from playwright.async_api import BrowserContext, Page

from ...config import BrowserOptions


class BaseBrowserProvider(ABC):
    """Abstract Base Class for all browser providers."""

    @abstractmethod
    async def launch(self, options: BrowserOptions) -> tuple[BrowserContext, Page]:
        """
        Starts a browser and returns a fresh, isolated context with one page.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self):
        """
        Releases everything launch() acquired. Must tolerate partial launches.
        """
        raise NotImplementedError
