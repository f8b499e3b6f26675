"""
Containment search: does the target title exist *inside* the labeled section,
not merely somewhere on the board?

The section container is resolved first. When it resolves, cards are read
from inside it and every text match is re-checked by querying the same
selector constrained to the container; a match that fails that re-check is
rejected. When it does not resolve, the whole page becomes the scope and the
verdict records a DegradedScope diagnostic. A case-folding XPath text scan is
the last resort; with a resolved section it only runs inside the container.

The search is existential: the first accepted match in DOM order wins.
"""

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
import structlog

from ..config import Timeouts
from ..utils import truncate
from . import selectors
from .locators import LocatorChain, Resolution
from .models import (
    Candidate,
    Confidence,
    Diagnostic,
    DiagnosticCode,
    MatchMode,
    SearchCriteria,
    SearchOutcome,
)

logger = structlog.get_logger(__name__)


def normalize_text(text: str | None) -> str:
    return " ".join((text or "").split())


def title_matches(text: str, title: str, mode: MatchMode) -> bool:
    """
    Case-insensitive comparison after whitespace normalisation. Partial mode
    is a substring test; exact mode requires the whole text to equal the
    title, so a strict superstring never matches.
    """
    haystack = normalize_text(text).casefold()
    needle = normalize_text(title).casefold()
    if not needle:
        return False
    if mode == MatchMode.EXACT:
        return haystack == needle
    return needle in haystack


class ContainmentSearchEngine:
    STAGE = "search"
    DEBUG_LISTING_LIMIT = 10

    def __init__(
        self,
        page: Page,
        criteria: SearchCriteria,
        timeouts: Timeouts,
        section_chain: LocatorChain | None = None,
    ):
        self.page = page
        self.criteria = criteria
        self.timeouts = timeouts
        self.section_chain = section_chain or selectors.section_chain(
            criteria.section_label
        )
        self.diagnostics: list[Diagnostic] = []
        self.log = logger.bind(
            stage=self.STAGE,
            section=criteria.section_label,
            title=criteria.title,
            match_mode=criteria.match_mode.value,
        )

    def _note(self, code: DiagnosticCode, message: str) -> None:
        self.diagnostics.append(Diagnostic(code=code, stage=self.STAGE, message=message))

    def matches(self, text: str) -> bool:
        return title_matches(text, self.criteria.title, self.criteria.match_mode)

    async def search(self) -> SearchOutcome:
        self.log.info(
            f"🔍 Checking '{self.criteria.section_label}' for '{self.criteria.title}'..."
        )
        section = await self._resolve_section()
        scoped = section is not None
        scope: Page | Locator = section.locator if section else self.page

        await self._log_candidates(scope)

        candidate = await self._search_cards(scope, section)
        confidence = Confidence.HIGH if scoped else Confidence.REDUCED
        if candidate is None:
            candidate = await self._scan_text(section)
            if candidate is not None:
                confidence = Confidence.LOW
                self._note(
                    DiagnosticCode.LAST_RESORT_MATCH,
                    "Match found only by the structure-independent text scan.",
                )

        if candidate is None:
            self.log.info(
                f"❌ RESULT: NO - '{self.criteria.title}' not found in "
                f"'{self.criteria.section_label}'."
            )
            return SearchOutcome(
                found=False,
                matched_text=None,
                confidence=confidence,
                scoped=scoped,
                diagnostics=tuple(self.diagnostics),
            )

        self.log.info(
            f"🎉 RESULT: YES - found '{truncate(candidate.display_text)}'.",
            confidence=confidence.value,
        )
        return SearchOutcome(
            found=True,
            matched_text=candidate.display_text,
            confidence=confidence,
            scoped=scoped,
            diagnostics=tuple(self.diagnostics),
        )

    async def _resolve_section(self) -> Resolution | None:
        section = await self.section_chain.try_resolve(self.page, self.timeouts.section_ms)
        if section is None:
            self.log.warning(
                "⚠️ Could not find section container, checking entire page..."
            )
            self._note(
                DiagnosticCode.DEGRADED_SCOPE,
                f"Section '{self.criteria.section_label}' could not be located; "
                "searched the whole page instead.",
            )
        return section

    async def _log_candidates(self, scope: Page | Locator) -> None:
        try:
            cards = await scope.locator(selectors.CARD_UNION).all()
        except PlaywrightError as e:
            self.log.debug("Could not list cards.", error=str(e))
            return
        self.log.debug(f"Found {len(cards)} cards in search scope.")
        for index, card in enumerate(cards[: self.DEBUG_LISTING_LIMIT]):
            try:
                text = await card.text_content()
            except PlaywrightError:
                text = "<unreadable>"
            self.log.debug(f"  Card {index}: '{truncate(text or '')}'")

    async def _inspect(self, card: Locator) -> Candidate:
        """Reads a card's visibility and display text (its title element if it has one)."""
        try:
            visible = await card.is_visible()
            if not visible:
                return Candidate(display_text="", visible=False)
            for title_selector in selectors.CARD_TITLE_SELECTORS:
                title_el = card.locator(title_selector).first
                if await title_el.count():
                    return Candidate(
                        display_text=normalize_text(await title_el.inner_text()),
                        visible=True,
                    )
            return Candidate(display_text=normalize_text(await card.inner_text()), visible=True)
        except PlaywrightError as e:
            self.log.debug("Card became unreadable.", error=str(e))
            return Candidate(display_text="", visible=False)

    async def _search_cards(
        self, scope: Page | Locator, section: Resolution | None
    ) -> Candidate | None:
        try:
            cards = await scope.locator(selectors.CARD_UNION).all()
        except PlaywrightError as e:
            self.log.warning("Card enumeration failed.", error=str(e))
            return None

        for card in cards:
            candidate = await self._inspect(card)
            if not candidate.visible or not self.matches(candidate.display_text):
                continue
            self.log.debug(f"Text match on card '{truncate(candidate.display_text)}'.")
            if section is not None:
                constrained = section.locator.locator(selectors.CARD_UNION).filter(
                    has_text=candidate.display_text
                )
                candidate.in_section = await self._is_visible(constrained)
                if not candidate.in_section:
                    self._reject(candidate)
                    continue
            return candidate
        return None

    async def _scan_text(self, section: Resolution | None) -> Candidate | None:
        """
        Structure-independent fallback. With a resolved section only hits
        inside it are eligible; page-wide hits are consulted afterwards just
        to record what was rejected.
        """
        exact = self.criteria.match_mode == MatchMode.EXACT
        title = self.criteria.title
        self.log.debug(f"Trying text scan for '{title}'...")
        page_hits = self.page.locator(selectors.text_scan_xpath(title, exact))
        if section is None:
            return await self._first_text_hit(page_hits, wait=True)

        inside = section.locator.locator(
            selectors.text_scan_xpath(title, exact, relative=True)
        )
        candidate = await self._first_text_hit(inside, wait=True)
        if candidate is not None:
            candidate.in_section = True
            return candidate

        outside = await self._first_text_hit(page_hits, wait=False)
        if outside is not None:
            outside.in_section = False
            self._reject(outside)
        return None

    async def _first_text_hit(self, hits: Locator, wait: bool) -> Candidate | None:
        try:
            if wait:
                await hits.first.wait_for(
                    state="attached", timeout=self.timeouts.last_resort_ms
                )
            elements = await hits.all()
        except PlaywrightError:
            self.log.debug("Text scan found nothing.")
            return None

        for element in elements:
            try:
                if not await element.is_visible():
                    continue
                text = normalize_text(await element.text_content())
            except PlaywrightError:
                continue
            if self.matches(text):
                return Candidate(display_text=text, visible=True)
        return None

    async def _is_visible(self, locator: Locator) -> bool:
        try:
            await locator.first.wait_for(
                state="visible", timeout=self.timeouts.candidate_visible_ms
            )
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            self.log.debug("Containment re-check failed.", error=str(e))
            return False

    def _reject(self, candidate: Candidate) -> None:
        self.log.info(
            f"⚠️ Found '{truncate(candidate.display_text)}' but not in "
            f"'{self.criteria.section_label}'."
        )
        self._note(
            DiagnosticCode.CONTAINMENT_REJECTED,
            f"'{truncate(candidate.display_text)}' matched outside "
            f"'{self.criteria.section_label}'.",
        )
