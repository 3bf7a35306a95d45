"""
Login state machine for the X web session.

    NOT_LOGGED_IN -> ENTERING_CREDENTIALS -> (AWAITING_SECONDARY_FACTOR) -> LOGGED_IN

LOGIN_FAILED is absorbing. Without credentials the flow parks in ANONYMOUS and
the engine scrapes whatever the public pages show. Success is only declared when
an authenticated-only element is present on the page.
"""
from __future__ import annotations

import enum
import logging
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from crawler.errors import LoginFailedError, NavigationTimeoutError
from monitor.settings import TwitterCredentials

logger = logging.getLogger(__name__)

LOGIN_URL = "https://twitter.com/i/flow/login"
USERNAME_INPUT = 'input[autocomplete="username"]'
EMAIL_INPUT = 'input[autocomplete="email"]'
CHALLENGE_INPUT = 'input[data-testid="ocfEnterTextTextInput"]'
PASSWORD_INPUT = 'input[name="password"]'
CAPABILITY_PROBES = (
    '[data-testid="SideNav_AccountSwitcher_Button"]',
    '[data-testid="AppTabBar_Profile_Link"]',
)

_SCRIPT_CLICK = """
(label) => {
  const spans = Array.from(document.querySelectorAll('div[role="button"] span, button span'));
  const hit = spans.find((span) => span.textContent.trim() === label);
  if (!hit) { return false; }
  (hit.closest('[role="button"]') || hit.closest('button') || hit).click();
  return true;
}
"""

Strategy = Tuple[str, Callable[[], bool]]


class SessionState(str, enum.Enum):
    NOT_LOGGED_IN = "NOT_LOGGED_IN"
    ENTERING_CREDENTIALS = "ENTERING_CREDENTIALS"
    AWAITING_SECONDARY_FACTOR = "AWAITING_SECONDARY_FACTOR"
    LOGGED_IN = "LOGGED_IN"
    LOGIN_FAILED = "LOGIN_FAILED"
    ANONYMOUS = "ANONYMOUS"


TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.NOT_LOGGED_IN: frozenset(
        {SessionState.ENTERING_CREDENTIALS, SessionState.LOGGED_IN, SessionState.ANONYMOUS, SessionState.LOGIN_FAILED}
    ),
    SessionState.ENTERING_CREDENTIALS: frozenset(
        {SessionState.AWAITING_SECONDARY_FACTOR, SessionState.LOGGED_IN, SessionState.LOGIN_FAILED}
    ),
    SessionState.AWAITING_SECONDARY_FACTOR: frozenset(
        {SessionState.ENTERING_CREDENTIALS, SessionState.LOGGED_IN, SessionState.LOGIN_FAILED}
    ),
    # a logged in session can expire and be redirected back to the login flow
    SessionState.LOGGED_IN: frozenset({SessionState.NOT_LOGGED_IN}),
    SessionState.LOGIN_FAILED: frozenset(),
    SessionState.ANONYMOUS: frozenset(),
}


def attempt_chain(strategies: Sequence[Strategy]) -> Optional[str]:
    """Run strategies in order, stop at the first that reports success and return its name."""
    for name, strategy in strategies:
        if strategy():
            logger.debug("Strategy %s succeeded", name)
            return name
        logger.debug("Strategy %s did not succeed", name)
    return None


def advance_strategies(session, label: str) -> List[Strategy]:
    """Ways to press the flow's advance button (Next, Log in), most specific first."""
    return [
        ("structural", lambda: session.click(f'xpath=//button[@role="button"]//span[text()="{label}"]')),
        ("text", lambda: session.click(f'[role="button"]:has-text("{label}")')),
        ("script", lambda: bool(session.evaluate(_SCRIPT_CLICK, label))),
    ]


class LoginFlow:
    def __init__(
        self,
        session,
        credentials: Optional[TwitterCredentials],
        field_timeout_ms: int = 10000,
        probe_timeout_ms: int = 10000,
    ) -> None:
        self.session = session
        self.credentials = credentials
        self.field_timeout_ms = field_timeout_ms
        self.probe_timeout_ms = probe_timeout_ms
        self.state = SessionState.NOT_LOGGED_IN
        self.history: List[SessionState] = [self.state]

    @property
    def logged_in(self) -> bool:
        return self.state is SessionState.LOGGED_IN

    def _move(self, target: SessionState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise LoginFailedError(f"illegal login transition {self.state.value} -> {target.value}")
        logger.debug("Login state %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def _fail(self, reason: str) -> LoginFailedError:
        if self.state is not SessionState.LOGIN_FAILED:
            self._move(SessionState.LOGIN_FAILED)
        logger.error("Login failed: %s", reason)
        return LoginFailedError(reason)

    def verify(self, timeout_ms: Optional[int] = None) -> bool:
        timeout = self.probe_timeout_ms if timeout_ms is None else timeout_ms
        return any(self.session.wait_for(probe, timeout) for probe in CAPABILITY_PROBES)

    def expire(self) -> None:
        """The site sent a logged-in session back to the login flow."""
        if self.state is SessionState.LOGGED_IN:
            logger.warning("Session no longer authenticated")
            self._move(SessionState.NOT_LOGGED_IN)

    def _advance(self, label: str) -> None:
        if attempt_chain(advance_strategies(self.session, label)) is None:
            raise self._fail(f"could not press '{label}'")

    def run(self) -> SessionState:
        if self.state in (SessionState.LOGGED_IN, SessionState.ANONYMOUS):
            return self.state
        if self.state is SessionState.LOGIN_FAILED:
            raise LoginFailedError("login already failed for this session")
        if self.credentials is None:
            self._move(SessionState.ANONYMOUS)
            logger.info("No X credentials configured, continuing anonymously")
            return self.state
        try:
            return self._sign_in()
        except NavigationTimeoutError as exc:
            raise self._fail(f"timed out during login: {exc}") from exc

    def _sign_in(self) -> SessionState:
        self.session.goto(LOGIN_URL)
        self.session.pause(2)
        if self.verify(timeout_ms=3000):
            self._move(SessionState.LOGGED_IN)
            logger.info("Session already authenticated")
            return self.state

        self._move(SessionState.ENTERING_CREDENTIALS)
        if not self.session.fill(USERNAME_INPUT, self.credentials.username, self.field_timeout_ms):
            raise self._fail("username field not found")
        self._advance("Next")
        self.session.pause(2)

        challenge = self._challenge_field()
        if challenge is not None:
            self._move(SessionState.AWAITING_SECONDARY_FACTOR)
            if not self.credentials.email:
                raise self._fail("secondary verification requested but TWITTER_EMAIL is not set")
            if not self.session.fill(challenge, self.credentials.email, self.field_timeout_ms):
                raise self._fail("secondary verification field not accepting input")
            self._advance("Next")
            self.session.pause(2)
            self._move(SessionState.ENTERING_CREDENTIALS)

        if not self.session.fill(PASSWORD_INPUT, self.credentials.password, self.field_timeout_ms):
            raise self._fail("password field not found")
        self._advance("Log in")
        self.session.pause(3)

        if not self.verify():
            raise self._fail("no authenticated UI element after submitting credentials")
        self._move(SessionState.LOGGED_IN)
        logger.info("Logged in to X as %s", self.credentials.username)
        return self.state

    def _challenge_field(self) -> Optional[str]:
        for selector in (EMAIL_INPUT, CHALLENGE_INPUT):
            if self.session.wait_for(selector, 3000):
                return selector
        return None
