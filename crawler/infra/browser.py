"""
Playwright browser session owned by one acquisition engine for one run.

`BrowserSession` is a context manager: entering it launches the browser, leaving
it closes page, context, browser and the Playwright driver, whatever happened in
between. Page helpers return booleans or empty values on "not found" so callers
can chain fallbacks; navigation timeouts surface as `NavigationTimeoutError`.
"""
from __future__ import annotations

import logging
import random
import re
import time
from typing import Any, List, Optional, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from crawler.errors import NavigationTimeoutError, SessionUnavailableError
from crawler.infra.cancel import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_VIEWPORT = {"width": 1280, "height": 720}
CHROMIUM_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1280,720",
)
BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media", "websocket"})
BLOCKED_URL_PATTERN = re.compile(r"\.(png|jpg|jpeg|gif|css|woff|woff2|svg|mp4|webm)$", re.IGNORECASE)
NAVIGATION_TIMEOUT_MS = 30000


def should_block(resource_type: str, url: str) -> bool:
    if resource_type in BLOCKED_RESOURCE_TYPES:
        return True
    return bool(BLOCKED_URL_PATTERN.search(url.split("?", 1)[0]))


class CardView:
    """Narrow read-mostly view over one rendered listing item (a Playwright Locator)."""

    def __init__(self, locator) -> None:
        self._locator = locator

    def attributes(self, selector: str, name: str) -> List[str]:
        values: List[str] = []
        try:
            for element in self._locator.locator(selector).all():
                value = element.get_attribute(name)
                if value:
                    values.append(value)
        except PlaywrightError as exc:
            logger.debug("attributes(%s, %s) failed: %s", selector, name, exc)
        return values

    def texts(self, selector: str) -> List[str]:
        try:
            return [t.strip() for t in self._locator.locator(selector).all_text_contents() if t and t.strip()]
        except PlaywrightError as exc:
            logger.debug("texts(%s) failed: %s", selector, exc)
            return []

    def exists(self, selector: str) -> bool:
        try:
            return self._locator.locator(selector).count() > 0
        except PlaywrightError:
            return False

    def evaluate(self, script: str) -> Any:
        try:
            return self._locator.evaluate(script)
        except PlaywrightError as exc:
            logger.debug("evaluate on card failed: %s", exc)
            return None

    def click_all(self, selector: str) -> int:
        clicked = 0
        try:
            for element in self._locator.locator(selector).all():
                element.click(timeout=2000)
                clicked += 1
        except PlaywrightError as exc:
            logger.debug("click_all(%s) stopped after %d: %s", selector, clicked, exc)
        return clicked

    def click(self) -> bool:
        try:
            self._locator.click(timeout=5000)
            return True
        except PlaywrightError as exc:
            logger.debug("card click failed: %s", exc)
            return False


class BrowserSession:
    def __init__(
        self,
        engine: str = "chromium",
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        viewport: Optional[dict] = None,
        block_resources: bool = True,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.engine = engine
        self.headless = headless
        self.user_agent = user_agent
        self.viewport = viewport or dict(DEFAULT_VIEWPORT)
        self.block_resources = block_resources
        self.cancel = cancel
        self._p = None
        self._browser = None
        self._ctx = None
        self.page = None

    def __enter__(self) -> "BrowserSession":
        try:
            self._p = sync_playwright().start()
            launcher = getattr(self._p, self.engine)
            args = list(CHROMIUM_ARGS) if self.engine == "chromium" else []
            self._browser = launcher.launch(headless=self.headless, args=args)
            self._ctx = self._browser.new_context(user_agent=self.user_agent, viewport=self.viewport)
            self.page = self._ctx.new_page()
            self.page.set_default_timeout(NAVIGATION_TIMEOUT_MS)
            if self.block_resources:
                self.page.route("**/*", self._route)
        except (PlaywrightError, AttributeError) as exc:
            self.close()
            raise SessionUnavailableError(f"could not start {self.engine} browser: {exc}") from exc
        logger.info("Browser session started (%s, headless=%s)", self.engine, self.headless)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        for name, resource in (("page", self.page), ("context", self._ctx), ("browser", self._browser)):
            if resource is None:
                continue
            try:
                resource.close()
            except PlaywrightError as close_exc:
                logger.debug("Closing %s failed: %s", name, close_exc)
        if self._p is not None:
            try:
                self._p.stop()
            except PlaywrightError as stop_exc:
                logger.debug("Stopping playwright failed: %s", stop_exc)
        self.page = self._ctx = self._browser = self._p = None

    @staticmethod
    def _route(route) -> None:
        request = route.request
        if should_block(request.resource_type, request.url):
            route.abort()
        else:
            route.continue_()

    # --- navigation ---

    @property
    def current_url(self) -> str:
        return self.page.url if self.page is not None else ""

    def goto(self, url: str, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None:
        try:
            self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(f"timed out loading {url}") from exc

    def back(self) -> None:
        try:
            self.page.go_back(wait_until="domcontentloaded")
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError("timed out going back") from exc

    def pause(self, seconds: float, spread: float = 1.0) -> None:
        """Sleep with jitter; returns early once the run is cancelled."""
        delay = seconds + random.random() * spread
        if self.cancel is not None:
            self.cancel.wait(delay)
        else:
            time.sleep(delay)

    # --- element helpers ---

    def wait_for(self, selector: str, timeout_ms: int = 10000) -> bool:
        try:
            self.page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    def fill(self, selector: str, value: str, timeout_ms: int = 10000) -> bool:
        if not self.wait_for(selector, timeout_ms):
            return False
        try:
            self.page.click(selector)
            self.page.type(selector, value, delay=100)
            return True
        except PlaywrightError as exc:
            logger.debug("fill(%s) failed: %s", selector, exc)
            return False

    def click(self, selector: str, timeout_ms: int = 5000) -> bool:
        try:
            self.page.locator(selector).first.click(timeout=timeout_ms)
            return True
        except PlaywrightError as exc:
            logger.debug("click(%s) failed: %s", selector, exc)
            return False

    def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return self.page.evaluate(script, arg)
        except PlaywrightError as exc:
            logger.debug("page evaluate failed: %s", exc)
            return None

    def visible_text(self, selectors: Sequence[str]) -> str:
        chunks: List[str] = []
        for selector in selectors:
            try:
                chunks.extend(self.page.locator(selector).all_text_contents())
            except PlaywrightError:
                continue
        return " ".join(chunk.strip() for chunk in chunks if chunk and chunk.strip())

    def cards(self, selector: str) -> List[CardView]:
        try:
            return [CardView(locator) for locator in self.page.locator(selector).all()]
        except PlaywrightError as exc:
            logger.debug("cards(%s) failed: %s", selector, exc)
            return []

    def scroll_height(self) -> int:
        return int(self.evaluate("() => document.body.scrollHeight") or 0)

    def scroll_to_bottom(self) -> None:
        self.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
