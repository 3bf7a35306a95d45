"""
X (Twitter) live search acquisition using a Playwright browser session.

One `XSearchEngine` owns one `BrowserSession` for a whole run and walks the
configured keywords one after another. Each keyword search is throttled and
wrapped in the shared backoff policy; recovery between retries navigates to the
home timeline.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib.parse import quote

from crawler.errors import LoginFailedError, LoginRequiredError, RateLimitedError
from crawler.extractors.x_card import STATUS_PATTERN, extract_fields
from crawler.infra.browser import BrowserSession
from crawler.infra.cancel import CancelToken
from crawler.infra.login import LoginFlow, SessionState
from crawler.infra.rate_limiter import BackoffPolicy, RateLimiter, is_rate_limited
from crawler.schemas.models import RawPost
from monitor.models import Platform
from monitor.settings import MonitorSettings

logger = logging.getLogger(__name__)

SEARCH_URL = "https://twitter.com/search?q={query}&src=typed_query&f=live&lang=id"
HOME_URL = "https://twitter.com/home"
TWEET_SELECTOR = 'article[data-testid="tweet"]'
RESULTS_TIMEOUT_MS = 15000
RATE_LIMIT_TEXT_SELECTORS = ("h2", 'div[role="alert"]', "span", "p")
SCROLL_WAIT_RANGE = (3.0, 5.0)


def search_url(keyword: str) -> str:
    return SEARCH_URL.format(query=quote(keyword))


def is_login_redirect(url: str) -> bool:
    return "login" in url or "i/flow" in url


class ListingFeed(Protocol):
    """What `paginate` needs from a scrolling result list."""

    def cards(self) -> List[Any]:
        ...

    def load_more(self) -> bool:
        """Trigger loading more items; True when the listing grew."""
        ...

    def open_detail(self, index: int) -> Optional[Dict[str, Any]]:
        """Open the item at ``index`` in its own view, extract it and come back."""
        ...


@dataclass
class PaginationResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    scrolls: int = 0
    stagnated: bool = False
    deferred: int = 0
    deferred_resolved: int = 0


def paginate(
    feed: ListingFeed,
    max_items: int,
    max_stagnant: int = 2,
    cancel: Optional[CancelToken] = None,
    max_deferred: int = 5,
    extract: Callable[[Any], Dict[str, Any]] = extract_fields,
) -> PaginationResult:
    """
    Collect up to ``max_items`` distinct items from ``feed``.

    Cards whose identity cannot be read are remembered by position and opened one
    by one after the listing pass, at most ``max_deferred`` of them. The listing
    pass ends after ``max_stagnant`` consecutive loads that did not grow the page.
    """
    result = PaginationResult()
    collected: Dict[str, Dict[str, Any]] = {}
    deferred: List[int] = []
    stagnant = 0

    while len(collected) < max_items:
        if cancel is not None and cancel.cancelled:
            break
        for index, card in enumerate(feed.cards()):
            if len(collected) >= max_items:
                break
            fields = extract(card)
            external_id = fields.get("external_id")
            if not external_id:
                if index not in deferred:
                    deferred.append(index)
                continue
            if external_id not in collected:
                collected[external_id] = fields
        if len(collected) >= max_items:
            break
        if cancel is not None and cancel.cancelled:
            break
        result.scrolls += 1
        if feed.load_more():
            stagnant = 0
            continue
        stagnant += 1
        logger.debug("No new content after scroll (%d/%d)", stagnant, max_stagnant)
        if stagnant >= max_stagnant:
            result.stagnated = True
            break

    result.deferred = len(deferred)
    for index in deferred[:max_deferred]:
        if len(collected) >= max_items:
            break
        if cancel is not None and cancel.cancelled:
            break
        fields = feed.open_detail(index)
        external_id = (fields or {}).get("external_id")
        if external_id and external_id not in collected:
            collected[external_id] = fields
            result.deferred_resolved += 1
    if len(deferred) > max_deferred:
        logger.info("Skipped %d unidentified items beyond the detail budget", len(deferred) - max_deferred)

    result.items = list(collected.values())
    return result


class SearchFeed:
    """`ListingFeed` over the live search page of a browser session."""

    def __init__(self, session: BrowserSession, cancel: Optional[CancelToken] = None) -> None:
        self.session = session
        self.cancel = cancel or CancelToken()

    def cards(self) -> List[Any]:
        return self.session.cards(TWEET_SELECTOR)

    def check_rate_limit(self) -> None:
        text = self.session.visible_text(RATE_LIMIT_TEXT_SELECTORS)
        if is_rate_limited(text):
            raise RateLimitedError("rate limit message on search page")

    def load_more(self) -> bool:
        before = self.session.scroll_height()
        self.session.scroll_to_bottom()
        self.cancel.wait(random.uniform(*SCROLL_WAIT_RANGE))
        self.check_rate_limit()
        return self.session.scroll_height() > before

    def open_detail(self, index: int) -> Optional[Dict[str, Any]]:
        cards = self.cards()
        if index >= len(cards) or not cards[index].click():
            return None
        try:
            if not self.session.wait_for(TWEET_SELECTOR, 10000):
                return None
            match = STATUS_PATTERN.search(self.session.current_url)
            detail_cards = self.cards()
            if not match or not detail_cards:
                return None
            fields = extract_fields(detail_cards[0])
            fields["external_id"] = match.group(1)
            return fields
        finally:
            self.session.back()
            self.session.wait_for(TWEET_SELECTOR, 10000)


class XSearchEngine:
    platform = Platform.TWITTER

    def __init__(
        self,
        settings: MonitorSettings,
        cancel: Optional[CancelToken] = None,
        session_factory: Optional[Callable[[], BrowserSession]] = None,
        limiter: Optional[RateLimiter] = None,
        backoff: Optional[BackoffPolicy] = None,
    ) -> None:
        self.settings = settings
        self.cancel = cancel or CancelToken()
        self._session_factory = session_factory or (
            lambda: BrowserSession(
                engine=settings.browser_engine, headless=settings.headless, cancel=self.cancel
            )
        )
        self.limiter = limiter or RateLimiter(settings.twitter_request_interval)
        self.backoff = backoff or BackoffPolicy(
            base_delay=settings.rate_limit_base_delay,
            max_retries=settings.rate_limit_max_retries,
            jitter=settings.rate_limit_jitter,
            cancel=self.cancel,
        )
        self.session: Optional[BrowserSession] = None
        self.login: Optional[LoginFlow] = None
        self._searched = 0
        self._counters = {"searches": 0, "scrolls": 0, "deferred": 0, "deferred_resolved": 0, "stagnated": 0}

    def __enter__(self) -> "XSearchEngine":
        session = self._session_factory()
        self.session = session.__enter__()
        self.login = LoginFlow(self.session, self.settings.twitter_credentials)
        try:
            self.login.run()
        except LoginFailedError as exc:
            # searches that need a login will fail one by one
            logger.warning("Continuing without login: %s", exc)
        except BaseException:
            self.__exit__(None, None, None)
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.session is not None:
            self.session.__exit__(exc_type, exc, tb)
            self.session = None

    def units(self) -> List[str]:
        return list(self.settings.search_keywords)

    def acquire(self, unit: str) -> List[RawPost]:
        if self._searched and self.cancel.wait(self.settings.keyword_pause_seconds):
            return []
        self._searched += 1
        return self.search(unit, self.settings.tweets_per_keyword)

    def search(self, keyword: str, max_items: int) -> List[RawPost]:
        self.limiter.throttle()
        posts = self.backoff.run(
            lambda: self._search_once(keyword, max_items),
            recover=self._recover,
            label=f"search {keyword!r}",
        )
        logger.info("Keyword %r: %d posts", keyword, len(posts))
        return posts

    def _recover(self) -> None:
        self.session.goto(HOME_URL)

    def _ensure_login(self) -> None:
        if self.login.state is SessionState.ANONYMOUS:
            raise LoginRequiredError("search redirected to login and no credentials are configured")
        self.login.expire()
        self.login.run()

    def _search_once(self, keyword: str, max_items: int) -> List[RawPost]:
        url = search_url(keyword)
        self.session.goto(url)
        if is_login_redirect(self.session.current_url):
            self._ensure_login()
            self.session.goto(url)
            if is_login_redirect(self.session.current_url):
                raise LoginFailedError("still redirected to login after signing in")

        feed = SearchFeed(self.session, self.cancel)
        feed.check_rate_limit()
        if not self.session.wait_for(TWEET_SELECTOR, RESULTS_TIMEOUT_MS):
            feed.check_rate_limit()
            logger.info("No results for %r", keyword)
            return []

        result = paginate(
            feed,
            max_items=max_items,
            max_stagnant=self.settings.max_scroll_stagnation,
            cancel=self.cancel,
            max_deferred=self.settings.max_deferred_details,
        )
        self._counters["searches"] += 1
        self._counters["scrolls"] += result.scrolls
        self._counters["deferred"] += result.deferred
        self._counters["deferred_resolved"] += result.deferred_resolved
        self._counters["stagnated"] += int(result.stagnated)
        return [to_raw_post(fields, keyword) for fields in result.items]

    def stats(self) -> Dict[str, int]:
        stats = dict(self._counters)
        stats["logged_in"] = int(self.login is not None and self.login.logged_in)
        return stats


def to_raw_post(fields: Dict[str, Any], keyword: Optional[str]) -> RawPost:
    return RawPost(
        platform=Platform.TWITTER,
        external_id=fields["external_id"],
        text=fields.get("text") or "",
        author_id=fields.get("author_handle") or "",
        author_handle=fields.get("author_handle") or "",
        author_name=fields.get("author_name") or "",
        author_verified=bool(fields.get("author_verified")),
        likes=fields.get("likes") or 0,
        reposts=fields.get("reposts") or 0,
        replies=fields.get("replies") or 0,
        hashtags=fields.get("hashtags") or [],
        mentions=fields.get("mentions") or [],
        published_at=fields.get("published_at"),
        search_keyword=keyword,
    )


def build_x_engine(settings: MonitorSettings, cancel: CancelToken) -> XSearchEngine:
    return XSearchEngine(settings, cancel)
