"""
Field extraction for one rendered X search result card.

Each field has an ordered list of independent strategies with the signature
``(card) -> Optional[value]``; `first_success` returns the first non-empty
result. Strategies never raise for missing markup, they return None.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from crawler.schemas.models import parse_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")
Strategy = Callable[[Any], Optional[T]]

STATUS_PATTERN = re.compile(r"status/(\d+)")
LONG_NUMERIC_TOKEN = re.compile(r"(?<!\d)(\d{15,20})(?!\d)")
HANDLE_HREF = re.compile(r"^/([A-Za-z0-9_]{1,15})/?$")

TEXT_SELECTOR = '[data-testid="tweetText"]'
SHOW_MORE_SELECTOR = '[data-testid="tweet-text-show-more-link"]'
USER_NAME_SELECTOR = '[data-testid="User-Name"]'
METRIC_TEST_IDS = {"replies": "reply", "reposts": "retweet", "likes": "like"}

_COUNT_PATTERN = re.compile(r"^([\d.,]+)\s*([a-z]*)\.?$")
_MULTIPLIERS = {
    "": 1,
    "k": 1_000,
    "rb": 1_000,
    "ribu": 1_000,
    "m": 1_000_000,
    "jt": 1_000_000,
    "juta": 1_000_000,
    "b": 1_000_000_000,
}


def first_success(strategies: Sequence[Strategy], card) -> Optional[T]:
    for strategy in strategies:
        value = strategy(card)
        if value:
            return value
    return None


def parse_count(raw: Optional[str]) -> int:
    """Parse rendered counters such as "1,2 rb", "3.4K", "2M" or "1.234"."""
    if not raw:
        return 0
    text = raw.strip().lower().replace("\u00a0", " ")
    match = _COUNT_PATTERN.match(text)
    if not match:
        return 0
    number, suffix = match.groups()
    multiplier = _MULTIPLIERS.get(suffix)
    if multiplier is None:
        return 0
    if multiplier == 1:
        digits = re.sub(r"[.,]", "", number)
        return int(digits) if digits else 0
    try:
        return int(round(float(number.replace(",", ".")) * multiplier))
    except ValueError:
        return 0


def _status_id(values: Sequence[str]) -> Optional[str]:
    for value in values:
        match = STATUS_PATTERN.search(value or "")
        if match:
            return match.group(1)
    return None


# --- identity ---

def identity_from_permalink(card) -> Optional[str]:
    return _status_id(card.attributes("a:has(time)", "href"))


def identity_from_links(card) -> Optional[str]:
    return _status_id(card.attributes("a[href]", "href"))


_TIME_ADJACENT_SCRIPT = """
(el) => {
  const stamp = el.querySelector('time');
  if (!stamp) { return null; }
  let node = stamp.parentElement;
  for (let depth = 0; node && depth < 4; depth += 1, node = node.parentElement) {
    const link = node.querySelector('a[href*="/status/"]');
    if (link) { return link.getAttribute('href'); }
  }
  return null;
}
"""


def identity_from_timestamp(card) -> Optional[str]:
    href = card.evaluate(_TIME_ADJACENT_SCRIPT)
    return _status_id([href]) if isinstance(href, str) else None


def identity_from_aria(card) -> Optional[str]:
    for attribute in ("aria-labelledby", "aria-describedby", "aria-label"):
        for value in card.attributes(f"[{attribute}]", attribute):
            match = LONG_NUMERIC_TOKEN.search(value)
            if match:
                return match.group(1)
    return None


IDENTITY_STRATEGIES: List[Strategy] = [
    identity_from_permalink,
    identity_from_links,
    identity_from_timestamp,
    identity_from_aria,
]


# --- body text ---

def text_from_testid(card) -> Optional[str]:
    parts = card.texts(TEXT_SELECTOR)
    return " ".join(parts) if parts else None


def text_from_lang(card) -> Optional[str]:
    parts = card.texts("div[lang]")
    return " ".join(parts) if parts else None


def text_from_script(card) -> Optional[str]:
    value = card.evaluate(
        "(el) => { const node = el.querySelector('[data-testid=\"tweetText\"], div[lang]');"
        " return node ? node.innerText : null; }"
    )
    return value.strip() if isinstance(value, str) and value.strip() else None


TEXT_STRATEGIES: List[Strategy] = [text_from_testid, text_from_lang, text_from_script]


# --- author ---

def handle_from_profile_link(card) -> Optional[str]:
    for href in card.attributes(f'{USER_NAME_SELECTOR} a[role="link"]', "href"):
        match = HANDLE_HREF.match(href)
        if match:
            return match.group(1)
    return None


def handle_from_text(card) -> Optional[str]:
    for text in card.texts(f"{USER_NAME_SELECTOR} span"):
        if text.startswith("@") and len(text) > 1:
            return text[1:]
    return None


def handle_from_any_link(card) -> Optional[str]:
    for href in card.attributes('a[role="link"]', "href"):
        match = HANDLE_HREF.match(href)
        if match:
            return match.group(1)
    return None


HANDLE_STRATEGIES: List[Strategy] = [handle_from_profile_link, handle_from_text, handle_from_any_link]


def name_from_user_block(card) -> Optional[str]:
    for text in card.texts(f"{USER_NAME_SELECTOR} span"):
        if not text.startswith("@") and text != "·":
            return text
    return None


def name_from_script(card) -> Optional[str]:
    value = card.evaluate(
        "(el) => { const node = el.querySelector('[data-testid=\"User-Name\"]');"
        " return node ? node.innerText.split('\\n')[0] : null; }"
    )
    return value.strip() if isinstance(value, str) and value.strip() else None


NAME_STRATEGIES: List[Strategy] = [name_from_user_block, name_from_script]


def verified_from_icon(card) -> Optional[bool]:
    return True if card.exists('[data-testid="icon-verified"]') else None


def verified_from_label(card) -> Optional[bool]:
    return True if card.exists('svg[aria-label*="erified"]') else None


VERIFIED_STRATEGIES: List[Strategy] = [verified_from_icon, verified_from_label]


# --- metrics ---

def metric_strategies(test_id: str) -> List[Strategy]:
    def from_counter(card) -> Optional[int]:
        texts = card.texts(f'[data-testid="{test_id}"] span[data-testid="app-text-transition-container"] span')
        return parse_count(texts[0]) if texts else None

    def from_aria(card) -> Optional[int]:
        for label in card.attributes(f'[data-testid="{test_id}"]', "aria-label"):
            match = re.match(r"\s*([\d.,]+\s*(?:[a-zA-Z]{1,4})?)\b", label)
            if match:
                return parse_count(match.group(1))
        return None

    def from_script(card) -> Optional[int]:
        value = card.evaluate(
            f"(el) => {{ const node = el.querySelector('[data-testid=\"{test_id}\"]');"
            " return node ? node.innerText : null; }"
        )
        return parse_count(value) if isinstance(value, str) else None

    return [from_counter, from_aria, from_script]


# --- timestamp and entities ---

def timestamp(card):
    values = card.attributes("time[datetime]", "datetime")
    return parse_iso(values[0]) if values else None


def hashtags(card) -> List[str]:
    tags: List[str] = []
    for text in card.texts('a[href*="/hashtag/"]'):
        tag = text.lstrip("#").lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def mentions(card) -> List[str]:
    found: List[str] = []
    for text in card.texts(f'{TEXT_SELECTOR} a[href^="/"]'):
        if text.startswith("@") and len(text) > 1 and text[1:] not in found:
            found.append(text[1:])
    return found


def extract_fields(card) -> Dict[str, Any]:
    """All fields for one card. ``external_id`` is None when every identity strategy failed."""
    card.click_all(SHOW_MORE_SELECTOR)
    fields: Dict[str, Any] = {
        "external_id": first_success(IDENTITY_STRATEGIES, card),
        "text": first_success(TEXT_STRATEGIES, card) or "",
        "author_handle": first_success(HANDLE_STRATEGIES, card) or "",
        "author_name": first_success(NAME_STRATEGIES, card) or "",
        "author_verified": bool(first_success(VERIFIED_STRATEGIES, card)),
        "published_at": timestamp(card),
        "hashtags": hashtags(card),
        "mentions": mentions(card),
    }
    for field, test_id in METRIC_TEST_IDS.items():
        fields[field] = first_success(metric_strategies(test_id), card) or 0
    return fields
