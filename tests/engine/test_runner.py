import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from ticket_checker.engine import selectors
from ticket_checker.engine.models import Confidence, DiagnosticCode
from ticket_checker.engine.runner import TicketChecker, check_ticket
from ticket_checker.engine.search import ContainmentSearchEngine
from ticket_checker.engine.session import BrowserSession

from conftest import (
    FakePage,
    FakeSession,
    board_dom,
    first_selector,
    login_dom,
    navigation_dom,
)


def _board_session(columns, section="Resolved", title="Testing", **board_kwargs):
    dom = {**login_dom(), **navigation_dom("Test Support")}
    dom.update(board_dom(columns, section=section, title=title, **board_kwargs))
    return FakeSession(FakePage(dom))


class StalledSession(FakeSession):
    """A session whose first navigation never finishes on its own."""

    def __init__(self, page):
        super().__init__(page)
        self.navigating = asyncio.Event()

    async def navigate(self, url: str, timeout: int) -> bool:
        self.navigating.set()
        await asyncio.sleep(30)
        return True


def _stages(verdict) -> list[str]:
    return [artifact.stage for artifact in verdict.evidence]


@pytest.mark.asyncio
async def test_ticket_in_section_yields_yes(checker_config):
    session = _board_session({"Open": ["Broken login"], "Resolved": ["Testing Ticket"]})

    verdict = await TicketChecker(checker_config, lambda options: session).run()

    assert verdict.found is True
    assert verdict.success is True
    assert verdict.answer == "Yes"
    assert verdict.matched_text == "Testing Ticket"
    assert verdict.confidence == Confidence.HIGH
    assert (session.opened, session.closed) == (1, 1)
    assert _stages(verdict) == ["after_login", "after_navigation", "after_check"]
    for artifact in verdict.evidence:
        assert Path(artifact.path).is_file()


@pytest.mark.asyncio
async def test_absent_ticket_yields_no_without_error(checker_config):
    session = _board_session({"Resolved": ["Invoice export"]})

    verdict = await TicketChecker(checker_config, lambda options: session).run()

    assert verdict.found is False
    assert verdict.success is True
    assert verdict.error is None
    assert session.closed == 1


@pytest.mark.asyncio
async def test_ticket_in_other_section_yields_no(checker_config):
    session = _board_session({"Open": ["Testing Ticket"], "Resolved": []})

    verdict = await TicketChecker(checker_config, lambda options: session).run()

    assert verdict.found is False
    assert verdict.has_diagnostic(DiagnosticCode.CONTAINMENT_REJECTED)


@pytest.mark.asyncio
async def test_login_failure_becomes_an_error_verdict(checker_config):
    """The run resolves to a verdict; it never raises for a stage abort."""
    session = FakeSession(FakePage({}))

    verdict = await TicketChecker(checker_config, lambda options: session).run()

    assert verdict.found is False
    assert verdict.error == "stage aborted: authentication"
    assert verdict.failed_step == "login_trigger"
    assert verdict.has_diagnostic(DiagnosticCode.STAGE_ABORTED)
    assert _stages(verdict) == ["error"]
    assert (session.opened, session.closed) == (1, 1)


@pytest.mark.asyncio
async def test_unresolved_section_is_reported_as_degraded(checker_config):
    session = _board_session(
        {"Resolved": ["Testing Ticket"]}, section_resolves=False
    )

    verdict = await TicketChecker(checker_config, lambda options: session).run()

    assert verdict.found is True
    assert verdict.scoped is False
    assert verdict.has_diagnostic("DegradedScope")
    assert verdict.to_result()["diagnostics"][0]["code"] == "DegradedScope"


@pytest.mark.asyncio
async def test_unverified_login_is_noted_but_not_fatal(checker_config):
    dom = {**login_dom(with_indicator=False), **navigation_dom()}
    # The apps menu doubles as an indicator; expose only its fallback selector.
    dom[selectors.apps_menu_chain().strategies[1].selector] = dom.pop(
        first_selector(selectors.apps_menu_chain())
    )
    dom.update(board_dom({"Resolved": ["Testing"]}, section="Resolved", title="Testing"))
    session = FakeSession(FakePage(dom))

    verdict = await TicketChecker(checker_config, lambda options: session).run()

    assert verdict.found is True
    assert verdict.has_diagnostic(DiagnosticCode.AUTH_UNVERIFIED)


@pytest.mark.asyncio
async def test_unexpected_error_is_captured(checker_config, mocker):
    mocker.patch.object(
        ContainmentSearchEngine, "search", side_effect=RuntimeError("boom")
    )
    session = _board_session({"Resolved": ["Testing"]})

    verdict = await TicketChecker(checker_config, lambda options: session).run()

    assert verdict.found is False
    assert verdict.error == "RuntimeError: boom"
    assert verdict.has_diagnostic(DiagnosticCode.UNEXPECTED_ERROR)
    assert _stages(verdict)[-1] == "error"
    assert session.closed == 1


@pytest.mark.asyncio
async def test_run_deadline_releases_the_session(checker_config, fast_timeouts):
    config = checker_config.model_copy(
        update={"timeouts": fast_timeouts.model_copy(update={"run_deadline_s": 0.05})}
    )
    session = StalledSession(FakePage(login_dom()))

    verdict = await TicketChecker(config, lambda options: session).run()

    assert verdict.found is False
    assert verdict.error == "run deadline exceeded"
    assert verdict.has_diagnostic(DiagnosticCode.RUN_DEADLINE_EXCEEDED)
    assert _stages(verdict) == ["error"]
    assert (session.opened, session.closed) == (1, 1)


@pytest.mark.asyncio
async def test_cancellation_propagates_after_release(checker_config):
    session = StalledSession(FakePage(login_dom()))
    task = asyncio.create_task(
        TicketChecker(checker_config, lambda options: session).run()
    )
    await session.navigating.wait()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert (session.opened, session.closed) == (1, 1)


@pytest.mark.asyncio
async def test_screenshots_can_be_disabled(checker_config):
    config = checker_config.model_copy(update={"capture_screenshots": False})
    session = _board_session({"Resolved": ["Testing Ticket"]})

    verdict = await check_ticket(config, lambda options: session)

    assert verdict.found is True
    assert verdict.evidence == ()
    assert not config.artifacts_dir.exists()


@pytest.mark.asyncio
async def test_result_carries_search_criteria(checker_config):
    session = _board_session({"Resolved": ["Testing Ticket"]})

    result = (await TicketChecker(checker_config, lambda options: session).run()).to_result()

    assert result["success"] is True
    assert result["answer"] == "Yes"
    assert result["matchedText"] == "Testing Ticket"
    assert result["searchCriteria"] == {
        "projectName": "Test Support",
        "sectionName": "Resolved",
        "ticketTitle": "Testing",
        "matchMode": "partial",
    }
    assert "error" not in result


def _provider(launch):
    provider = MagicMock()
    provider.launch = AsyncMock(side_effect=launch)
    provider.close = AsyncMock()
    return provider


@pytest.mark.asyncio
async def test_deadline_during_launch_releases_the_browser(checker_config, fast_timeouts):
    config = checker_config.model_copy(
        update={"timeouts": fast_timeouts.model_copy(update={"run_deadline_s": 0.05})}
    )

    async def slow_launch(options):
        await asyncio.sleep(30)

    provider = _provider(slow_launch)

    verdict = await TicketChecker(
        config, lambda options: BrowserSession(options, provider=provider)
    ).run()

    assert verdict.error == "run deadline exceeded"
    provider.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_launch_fault_releases_the_browser(checker_config):
    provider = _provider(RuntimeError("driver crashed"))

    verdict = await TicketChecker(
        checker_config, lambda options: BrowserSession(options, provider=provider)
    ).run()

    assert verdict.found is False
    assert verdict.error == "RuntimeError: driver crashed"
    provider.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_unreachable_login_page_aborts_authentication(checker_config):
    class UnreachablePage(FakePage):
        async def goto(self, url, wait_until=None, timeout=None):
            raise PlaywrightError("net::ERR_CONNECTION_REFUSED")

    session = FakeSession(UnreachablePage(login_dom()))

    verdict = await TicketChecker(checker_config, lambda options: session).run()

    assert verdict.error == "stage aborted: authentication"
    assert verdict.failed_step == "open_login_page"
    assert _stages(verdict) == ["error"]
    assert session.closed == 1
