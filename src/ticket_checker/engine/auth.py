from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..config import CheckerConfig
from . import selectors
from .action_executor import ActionExecutor
from .exceptions import (
    ElementNotInteractableError,
    LocatorExhaustedError,
    NavigationError,
    StageAbortedError,
)
from .locators import LocatorChain
from .session import BrowserSession

logger = structlog.get_logger(__name__)


class AuthState(str, Enum):
    IDLE = "Idle"
    TRIGGER_CLICKED = "TriggerClicked"
    EMAIL_FILLED = "EmailFilled"
    PASSWORD_FILLED = "PasswordFilled"
    SUBMITTED = "Submitted"
    AUTHENTICATED = "Authenticated"
    FAILED = "Failed"


@dataclass
class AuthResult:
    state: AuthState
    verified: bool = False
    history: list[AuthState] = field(default_factory=list)


class Authenticator:
    """
    Drives the login form to a terminal state.

    Every forward edge needs its control located by a LocatorChain; an
    exhausted chain (or a control that refuses input) moves the machine to
    Failed and raises StageAbortedError naming the step. Submission prefers
    the submit control and otherwise presses Enter in the password field.
    """

    STAGE = "authentication"

    def __init__(
        self,
        session: BrowserSession,
        config: CheckerConfig,
        trigger_chain: LocatorChain | None = None,
        email_chain: LocatorChain | None = None,
        password_chain: LocatorChain | None = None,
        submit_chain: LocatorChain | None = None,
        indicator_chain: LocatorChain | None = None,
    ):
        self.session = session
        self.config = config
        self.timeouts = config.timeouts
        self.trigger_chain = trigger_chain or selectors.login_trigger_chain()
        self.email_chain = email_chain or selectors.email_field_chain()
        self.password_chain = password_chain or selectors.password_field_chain()
        self.submit_chain = submit_chain or selectors.submit_control_chain()
        self.indicator_chain = (
            indicator_chain or selectors.authenticated_indicator_chain()
        )
        self.actions = ActionExecutor(
            action_timeout=self.timeouts.action_ms,
            type_delay_ms=self.timeouts.type_delay_ms,
        )
        self.state = AuthState.IDLE
        self.history: list[AuthState] = [AuthState.IDLE]

    def _advance(self, state: AuthState) -> None:
        logger.debug(f"Auth state {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _fail(self, step: str, error: Exception) -> StageAbortedError:
        self._advance(AuthState.FAILED)
        logger.error(f"❌ Login failed at step '{step}'.", error=str(error))
        return StageAbortedError(self.STAGE, step=step, reason=str(error))

    async def run(self) -> AuthResult:
        log = logger.bind(stage=self.STAGE)
        log.info("🔐 Starting login process...")
        page = self.session.page
        wait = self.session.wait_handler

        try:
            await self.session.navigate(self.config.base_url, self.timeouts.navigation_ms)
        except NavigationError as e:
            raise self._fail("open_login_page", e) from e
        await wait.delay(self.timeouts.initial_settle_ms)

        step = "login_trigger"
        try:
            trigger = await self.trigger_chain.locate(page, self.timeouts.login_control_ms)
            await self.actions.click(trigger)
            self._advance(AuthState.TRIGGER_CLICKED)
            await wait.delay(self.timeouts.step_settle_ms)

            step = "email"
            email = await self.email_chain.locate(page, self.timeouts.login_control_ms)
            await self.actions.clear_and_type(email, self.config.credentials.identity)
            self._advance(AuthState.EMAIL_FILLED)
            log.info("✅ Email entered.")

            step = "password"
            password = await self.password_chain.locate(
                page, self.timeouts.login_control_ms
            )
            await self.actions.clear_and_type(
                password,
                self.config.credentials.secret.get_secret_value(),
                secret=True,
            )
            self._advance(AuthState.PASSWORD_FILLED)
            log.info("✅ Password entered.")

            step = "submit"
            submit = await self.submit_chain.try_resolve(page, self.timeouts.login_control_ms)
            if submit is not None:
                await self.actions.click(submit)
                log.info("✅ Login button clicked.")
            else:
                # No discrete submit control: commit the focused password field.
                await self.actions.press(password, "Enter")
                log.info("✅ Login submitted via Enter key.")
            self._advance(AuthState.SUBMITTED)
        except (LocatorExhaustedError, ElementNotInteractableError) as e:
            raise self._fail(step, e) from e

        indicator = await wait.settle(
            self.indicator_chain,
            timeout=self.timeouts.auth_confirm_ms,
            fallback_delay_ms=self.timeouts.login_settle_ms,
        )
        verified = indicator is not None
        self._advance(AuthState.AUTHENTICATED)
        if verified:
            log.info("✅ Login completed and confirmed.")
        else:
            log.warning("Login submitted but no authenticated indicator was seen.")
        return AuthResult(
            state=self.state, verified=verified, history=list(self.history)
        )
