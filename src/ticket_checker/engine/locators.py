from dataclasses import dataclass
from enum import Enum

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
import structlog

from .exceptions import LocatorExhaustedError

logger = structlog.get_logger(__name__)


class StrategyKind(str, Enum):
    STRUCTURAL = "structural"
    TEXT = "text"
    ATTRIBUTE = "attribute"
    XPATH = "xpath"


@dataclass(frozen=True)
class LocatorStrategy:
    """One way of finding a logical control: a tagged Playwright selector."""

    kind: StrategyKind
    selector: str
    description: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.selector}"


@dataclass(frozen=True)
class Resolution:
    """The element a chain settled on, and which strategy produced it."""

    target: str
    strategy: LocatorStrategy
    position: int
    locator: Locator


class LocatorChain:
    """
    An ordered list of alternative strategies for one logical control.

    Strategies are tried in declared order; the first one whose first match
    becomes visible within the per-attempt timeout wins and nothing after it
    is queried. Individual failures are logged and swallowed. Only running
    out of strategies is reported, as LocatorExhaustedError.
    """

    def __init__(self, target: str, strategies: list[LocatorStrategy]):
        if not strategies:
            raise ValueError(f"Locator chain '{target}' needs at least one strategy.")
        self.target = target
        self.strategies = tuple(strategies)

    def __len__(self) -> int:
        return len(self.strategies)

    def __repr__(self) -> str:
        return f"LocatorChain({self.target!r}, {len(self.strategies)} strategies)"

    async def locate(self, scope: Page | Locator, timeout_ms: int) -> Resolution:
        """Returns the first visible match, or raises LocatorExhaustedError."""
        tried: list[str] = []
        log = logger.bind(target=self.target)

        for position, strategy in enumerate(self.strategies):
            tried.append(str(strategy))
            candidate = scope.locator(strategy.selector).first
            try:
                await candidate.wait_for(state="visible", timeout=timeout_ms)
            except PlaywrightTimeoutError:
                log.debug(
                    "Strategy timed out.",
                    strategy=str(strategy),
                    timeout_ms=timeout_ms,
                )
                continue
            except PlaywrightError as e:
                log.debug(
                    "Strategy failed.",
                    strategy=str(strategy),
                    error=str(e).replace("\n", " "),
                )
                continue

            log.info(f"✓ Located '{self.target}'.", strategy=str(strategy))
            return Resolution(
                target=self.target,
                strategy=strategy,
                position=position,
                locator=candidate,
            )

        log.warning(f"! All strategies exhausted for '{self.target}'.", tried=tried)
        raise LocatorExhaustedError(self.target, tried)

    async def try_resolve(self, scope: Page | Locator, timeout_ms: int) -> Resolution | None:
        """Like locate(), but returns None on exhaustion."""
        try:
            return await self.locate(scope, timeout_ms)
        except LocatorExhaustedError:
            return None
