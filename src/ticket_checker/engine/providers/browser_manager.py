import structlog
from .base_provider import BaseBrowserProvider
from .local_provider import LocalBrowserProvider

logger = structlog.get_logger(__name__)


class BrowserManager:
    """Factory for creating the appropriate browser provider."""

    @staticmethod
    def get_provider(provider_name: str = "local") -> BaseBrowserProvider:
        logger.debug(f"Creating browser provider for type: '{provider_name}'")

        if provider_name == "local":
            return LocalBrowserProvider()
        else:
            raise ValueError(f"Unsupported browser provider: '{provider_name}'")
