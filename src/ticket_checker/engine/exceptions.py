"""
Custom exceptions used by the ticket checking engine.
"""


class CheckerError(Exception):
    """Base exception for all engine errors."""

    pass


class ConfigurationError(CheckerError):
    """Error related to checker configuration."""

    pass


class InitializationError(CheckerError):
    """Error during browser or session initialization."""

    pass


class CleanupError(CheckerError):
    """Error during browser or session cleanup."""

    pass


class ElementNotFoundError(CheckerError):
    """Failed to find a specific element."""

    pass


class LocatorExhaustedError(ElementNotFoundError):
    """Every alternative strategy for one logical control failed."""

    def __init__(self, target: str, tried: list[str] | None = None):
        self.target = target
        self.tried = list(tried or [])
        super().__init__(
            f"Could not locate '{target}' after {len(self.tried)} strategies."
        )


class ElementNotInteractableError(CheckerError):
    """Element was found but could not be clicked or typed into."""

    pass


class NavigationError(CheckerError):
    """A page navigation failed outright (timeouts degrade to best effort)."""

    pass


class StageAbortedError(CheckerError):
    """A required stage (authentication, navigation) could not complete."""

    def __init__(self, stage: str, step: str | None = None, reason: str | None = None):
        self.stage = stage
        self.step = step
        self.reason = reason
        super().__init__(f"stage aborted: {stage}")
