from dataclasses import dataclass, field
from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ticket_checker.config import CheckerConfig, Timeouts
from ticket_checker.engine import selectors
from ticket_checker.engine.action_executor import ActionExecutor
from ticket_checker.engine.models import Credentials, MatchMode, SearchCriteria
from ticket_checker.engine.wait_handler import WaitHandler


# --- A selector-table stand-in for the Playwright Page/Locator surface ---


@dataclass
class FakeNode:
    text: str = ""
    visible: bool = True
    interactable: bool = True
    children: dict[str, list["FakeNode"]] = field(default_factory=dict)


class FakeLocator:
    def __init__(self, page: "FakePage", nodes: list[FakeNode], selector: str):
        self.page = page
        self.nodes = nodes
        self.selector = selector

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self.page, self.nodes[:1], self.selector)

    def locator(self, selector: str) -> "FakeLocator":
        self.page.queries.append(selector)
        found: list[FakeNode] = []
        for node in self.nodes:
            found.extend(node.children.get(selector, []))
        return FakeLocator(self.page, found, selector)

    def filter(self, has_text: str | None = None) -> "FakeLocator":
        needle = (has_text or "").casefold()
        return FakeLocator(
            self.page,
            [n for n in self.nodes if needle in n.text.casefold()],
            self.selector,
        )

    async def wait_for(self, state: str = "visible", timeout: float | None = None):
        if not self.nodes or (state == "visible" and not self.nodes[0].visible):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms waiting for {self.selector}")

    async def all(self) -> list["FakeLocator"]:
        return [FakeLocator(self.page, [n], self.selector) for n in self.nodes]

    async def count(self) -> int:
        return len(self.nodes)

    async def is_visible(self) -> bool:
        return bool(self.nodes) and self.nodes[0].visible

    async def text_content(self) -> str:
        return self._node().text

    async def inner_text(self) -> str:
        return self._node().text

    async def scroll_into_view_if_needed(self, timeout: float | None = None):
        self._node()

    async def click(self, timeout: float | None = None):
        self._act("click")

    async def focus(self, timeout: float | None = None):
        self._act("focus")

    async def fill(self, value: str, timeout: float | None = None):
        self._act("fill", value)

    async def type(self, text: str, delay: float | None = None, timeout: float | None = None):
        self._act("type", text)

    async def press(self, key: str, timeout: float | None = None):
        self._act("press", key)

    def _node(self) -> FakeNode:
        if not self.nodes:
            raise PlaywrightError(f"No element for {self.selector}")
        return self.nodes[0]

    def _act(self, action: str, value: str | None = None):
        node = self._node()
        if not node.interactable:
            raise PlaywrightError(f"Element {self.selector} is not interactable")
        self.page.actions.append((action, self.selector, value))


class FakePage:
    def __init__(self, dom: dict[str, list[FakeNode]] | None = None):
        self.dom = dom or {}
        self.queries: list[str] = []
        self.actions: list[tuple] = []
        self.visited: list[str] = []
        self.listeners: dict[str, object] = {}
        self.closed = False

    def locator(self, selector: str) -> FakeLocator:
        self.queries.append(selector)
        return FakeLocator(self, self.dom.get(selector, []), selector)

    def on(self, event: str, callback) -> None:
        self.listeners[event] = callback

    def is_closed(self) -> bool:
        return self.closed

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None):
        self.visited.append(url)

    async def evaluate(self, expression: str):
        return 0

    async def screenshot(self, path: str, full_page: bool = False, timeout: float | None = None):
        Path(path).write_bytes(b"\x89PNG fake")


class FakeSession:
    """Stands in for BrowserSession; counts how often it is opened and released."""

    def __init__(self, page: FakePage):
        self._page = page
        self.wait_handler = WaitHandler(page)
        self.opened = 0
        self.closed = 0

    @property
    def page(self) -> FakePage:
        return self._page

    @property
    def is_open(self) -> bool:
        return self.opened > self.closed

    async def __aenter__(self):
        self.opened += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed += 1

    async def navigate(self, url: str, timeout: int) -> bool:
        return await self.wait_handler.goto(url, timeout)

    async def screenshot(self, path: Path, timeout: int | None = None) -> Path:
        await self._page.screenshot(path=str(path), full_page=True, timeout=timeout)
        return path


# --- DOM builders using the real selector catalogue ---


def first_selector(chain) -> str:
    return chain.strategies[0].selector


def login_dom(with_indicator: bool = True) -> dict[str, list[FakeNode]]:
    dom = {
        first_selector(selectors.login_trigger_chain()): [FakeNode("")],
        first_selector(selectors.email_field_chain()): [FakeNode("")],
        first_selector(selectors.password_field_chain()): [FakeNode("")],
        first_selector(selectors.submit_control_chain()): [FakeNode("Log in")],
    }
    if with_indicator:
        dom[first_selector(selectors.authenticated_indicator_chain())] = [FakeNode("")]
    return dom


def navigation_dom(project: str = "Test Support") -> dict[str, list[FakeNode]]:
    return {
        first_selector(selectors.apps_menu_chain()): [FakeNode("")],
        first_selector(selectors.projects_entry_chain()): [FakeNode("Projects")],
        first_selector(selectors.project_tile_chain(project)): [FakeNode(project)],
        first_selector(selectors.board_indicator_chain()): [FakeNode("")],
    }


def _text_hit(text: str, title: str, mode: MatchMode) -> bool:
    haystack = " ".join(text.split()).lower()
    needle = " ".join(title.split()).lower()
    return haystack == needle if mode == MatchMode.EXACT else needle in haystack


def board_dom(
    columns: dict[str, list[str]],
    section: str,
    title: str,
    mode: MatchMode = MatchMode.PARTIAL,
    section_resolves: bool = True,
) -> dict[str, list[FakeNode]]:
    """
    A kanban board with one node per column and one card per title. Only the
    first strategy of the section chain resolves (when `section_resolves`).
    """
    exact = mode == MatchMode.EXACT
    scan = selectors.text_scan_xpath(title, exact)
    relative_scan = selectors.text_scan_xpath(title, exact, relative=True)

    all_cards: list[FakeNode] = []
    column_nodes: dict[str, FakeNode] = {}
    for label, card_texts in columns.items():
        cards = [FakeNode(text) for text in card_texts]
        all_cards.extend(cards)
        column_nodes[label] = FakeNode(
            " ".join([label, *card_texts]),
            children={
                selectors.CARD_UNION: cards,
                relative_scan: [c for c in cards if _text_hit(c.text, title, mode)],
            },
        )

    dom: dict[str, list[FakeNode]] = {
        selectors.CARD_UNION: all_cards,
        scan: [c for c in all_cards if _text_hit(c.text, title, mode)],
    }
    if section_resolves and section in column_nodes:
        dom[first_selector(selectors.section_chain(section))] = [column_nodes[section]]
    return dom


# --- Fixtures ---


@pytest.fixture(autouse=True)
def no_post_action_delay(monkeypatch):
    monkeypatch.setattr(ActionExecutor, "POST_ACTION_DELAY_MS", 0)
    monkeypatch.setattr(ActionExecutor, "RETRY_DELAY_MS", 0)


@pytest.fixture
def fast_timeouts() -> Timeouts:
    return Timeouts(
        navigation_ms=1000,
        login_control_ms=10,
        menu_control_ms=10,
        section_ms=10,
        candidate_visible_ms=10,
        last_resort_ms=10,
        auth_confirm_ms=10,
        action_ms=10,
        initial_settle_ms=0,
        step_settle_ms=0,
        login_settle_ms=0,
        navigation_settle_ms=0,
        board_settle_ms=0,
        type_delay_ms=0,
    )


@pytest.fixture
def checker_config(tmp_path: Path, fast_timeouts: Timeouts) -> CheckerConfig:
    return CheckerConfig(
        base_url="https://board.example.test/",
        credentials=Credentials(identity="qa@example.test", secret="s3cret!"),
        criteria=SearchCriteria(
            project_name="Test Support", section_label="Resolved", title="Testing"
        ),
        timeouts=fast_timeouts,
        artifacts_dir=tmp_path / "artifacts",
    )
