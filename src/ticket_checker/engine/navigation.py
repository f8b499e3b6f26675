from dataclasses import dataclass

import structlog

from ..config import CheckerConfig
from . import selectors
from .action_executor import ActionExecutor
from .exceptions import (
    ElementNotInteractableError,
    LocatorExhaustedError,
    StageAbortedError,
)
from .locators import LocatorChain
from .session import BrowserSession

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Hop:
    name: str
    chain: LocatorChain


class NavigationSequencer:
    """
    Walks apps menu -> projects -> the named project.

    Each hop is a chain lookup plus a click, then a bounded settle that polls
    for the next hop's control (or the board, after the last hop). Retries
    only vary the selectors for the same control; an exhausted hop aborts
    the whole sequence.
    """

    STAGE = "navigation"

    def __init__(
        self,
        session: BrowserSession,
        config: CheckerConfig,
        hops: list[Hop] | None = None,
        board_chain: LocatorChain | None = None,
    ):
        self.session = session
        self.timeouts = config.timeouts
        self.hops = hops or [
            Hop("apps_menu", selectors.apps_menu_chain()),
            Hop("projects", selectors.projects_entry_chain()),
            Hop("project", selectors.project_tile_chain(config.criteria.project_name)),
        ]
        self.board_chain = board_chain or selectors.board_indicator_chain()
        self.actions = ActionExecutor(
            action_timeout=self.timeouts.action_ms,
            type_delay_ms=self.timeouts.type_delay_ms,
        )
        self.completed: list[str] = []

    async def run(self) -> list[str]:
        log = logger.bind(stage=self.STAGE)
        log.info("🧭 Navigating to project board...")
        page = self.session.page
        wait = self.session.wait_handler

        for index, hop in enumerate(self.hops):
            try:
                target = await hop.chain.locate(page, self.timeouts.menu_control_ms)
                await self.actions.click(target)
            except (LocatorExhaustedError, ElementNotInteractableError) as e:
                log.error(f"❌ Navigation hop '{hop.name}' failed.", error=str(e))
                raise StageAbortedError(self.STAGE, step=hop.name, reason=str(e)) from e

            self.completed.append(hop.name)
            log.info(f"✅ Hop '{hop.name}' done.", strategy=str(target.strategy))

            is_last = index == len(self.hops) - 1
            next_chain = self.board_chain if is_last else self.hops[index + 1].chain
            fallback = (
                self.timeouts.board_settle_ms
                if is_last
                else self.timeouts.navigation_settle_ms
            )
            await wait.settle(
                next_chain, timeout=self.timeouts.menu_control_ms, fallback_delay_ms=fallback
            )

        await wait.wait_for_stable_dom(min(self.timeouts.board_settle_ms, 1500))
        log.info("✅ Reached project board.")
        return list(self.completed)
