"""
Rule-based quality gate.

Each rule yields one boolean; every failed rule subtracts its weight from 1.0
(floored at 0). An item passes when the score reaches the platform threshold
and the language rule held. Only the first failed rule in priority order is
reported as the reason.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional, Pattern, Tuple

from crawler.pipelines.dedupe import duplicate_prefix
from crawler.schemas.models import RawPost, utc_now
from monitor.config_loader import quality_overrides
from monitor.contracts import ItemStore
from monitor.models import Platform, QualityChecks, QualityVerdict
from monitor.text import clean_text, count_mentions, count_urls, normalize_text

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "duplicate": 0.5,
    "language": 0.4,
    "min_length": 0.2,
    "max_length": 0.1,
    "bot": 0.6,
    "urls": 0.1,
    "mentions": 0.1,
    "emoji": 0.15,
    "repeated": 0.15,
}

INDONESIAN_MARKERS = frozenset(
    {
        "yang", "dan", "di", "ke", "dari", "untuk", "dengan", "adalah", "ini", "itu",
        "juga", "atau", "karena", "tapi", "kalau", "yg", "dgn", "utk", "jg", "krn", "tp", "kl",
    }
)
ENGLISH_MARKERS = frozenset(
    {"the", "and", "is", "to", "of", "in", "for", "with", "this", "that", "are", "was", "were", "been", "being"}
)

EMOJI_PATTERN = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF\u2600-\u26FF\u2700-\u27BF]"
)
MAX_EMOJIS = 10
EMOJI_RATIO = 0.3
MAX_REPEATED_WORDS = 3

TWITTER_HANDLE_PATTERNS = (
    re.compile(r"bot\d*$", re.IGNORECASE),
    re.compile(r"_bot_", re.IGNORECASE),
    re.compile(r"^auto", re.IGNORECASE),
    re.compile(r"@.*@.*\.", re.IGNORECASE),
    re.compile(r"\d{5,}$"),
)
TWITTER_TEXT_PATTERNS = (
    re.compile(r"(buy|get|free).{0,20}(follower|like|retweet)", re.IGNORECASE),
    re.compile(r"https?://\S{20,}"),
    re.compile(r"\.{4,}"),
    re.compile(r"^(.)\1{10,}"),
)
YOUTUBE_HANDLE_PATTERNS = (re.compile(r"\d{5,}$"),)
YOUTUBE_TEXT_PATTERNS = (
    re.compile(r"sub\s+for\s+sub", re.IGNORECASE),
    re.compile(r"sub4sub", re.IGNORECASE),
    re.compile(r"check\s+my\s+channel", re.IGNORECASE),
    re.compile(r"subscribe\s+to\s+me", re.IGNORECASE),
    re.compile(r"free\s+(subscribe|sub|followers)", re.IGNORECASE),
    re.compile(r"click\s+my\s+profile", re.IGNORECASE),
    re.compile(r"\bfirst\b", re.IGNORECASE),
    re.compile(r"(buy|get|free).{0,20}(subscribe|sub|followers|views|like)", re.IGNORECASE),
    re.compile(r"https?://\S{20,}"),
    re.compile(r"\.{4,}"),
    re.compile(r"^(.)\1{10,}"),
    re.compile(r"copy\s+and\s+paste", re.IGNORECASE),
)


@dataclass(frozen=True)
class PlatformRules:
    platform: Platform
    item_noun: str
    min_length: int
    max_length: int
    quality_threshold: float
    max_urls: int
    max_mentions: int
    handle_patterns: Tuple[Pattern, ...] = ()
    text_patterns: Tuple[Pattern, ...] = ()
    check_emojis: bool = False
    check_repeats: bool = False
    duplicate_window_days: int = 7
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    def with_overrides(self, overrides: Mapping[str, Any]) -> "PlatformRules":
        if not overrides:
            return self
        changes: Dict[str, Any] = {}
        for key in ("min_length", "max_length", "max_urls", "max_mentions", "duplicate_window_days"):
            if key in overrides:
                changes[key] = int(overrides[key])
        if "quality_threshold" in overrides:
            changes["quality_threshold"] = float(overrides["quality_threshold"])
        for key in ("check_emojis", "check_repeats"):
            if key in overrides:
                changes[key] = bool(overrides[key])
        weights = overrides.get("weights") or {}
        if weights:
            merged = dict(self.weights)
            for name, value in weights.items():
                if name not in DEFAULT_WEIGHTS:
                    logger.warning("Ignoring unknown quality weight %r for %s", name, self.platform.value)
                    continue
                merged[name] = float(value)
            changes["weights"] = merged
        return replace(self, **changes)

    @property
    def rule_names(self) -> Tuple[str, ...]:
        names = ("duplicate_check", "language_check", "length_check", "spam_check", "url_check", "mention_check")
        if self.check_emojis:
            names += ("emoji_check",)
        if self.check_repeats:
            names += ("repetition_check",)
        return names


TWITTER_RULES = PlatformRules(
    platform=Platform.TWITTER,
    item_noun="Tweet",
    min_length=20,
    max_length=500,
    quality_threshold=0.6,
    max_urls=5,
    max_mentions=3,
    handle_patterns=TWITTER_HANDLE_PATTERNS,
    text_patterns=TWITTER_TEXT_PATTERNS,
)

YOUTUBE_RULES = PlatformRules(
    platform=Platform.YOUTUBE,
    item_noun="Comment",
    min_length=10,
    max_length=5000,
    quality_threshold=0.5,
    max_urls=2,
    max_mentions=5,
    handle_patterns=YOUTUBE_HANDLE_PATTERNS,
    text_patterns=YOUTUBE_TEXT_PATTERNS,
    check_emojis=True,
    check_repeats=True,
)

DEFAULT_RULES: Dict[Platform, PlatformRules] = {
    Platform.TWITTER: TWITTER_RULES,
    Platform.YOUTUBE: YOUTUBE_RULES,
}


def rules_from_config(config: Optional[Mapping[str, Any]] = None) -> Dict[Platform, PlatformRules]:
    config = config or {}
    return {
        platform: rules.with_overrides(quality_overrides(dict(config), platform.value))
        for platform, rules in DEFAULT_RULES.items()
    }


# --- individual rules (pure) -------------------------------------------------


def is_language_valid(text: str) -> bool:
    words = (text or "").lower().split()
    indonesian = sum(1 for word in words if word in INDONESIAN_MARKERS)
    english = sum(1 for word in words if word in ENGLISH_MARKERS)
    return indonesian >= english


def is_bot(text: str, handle: str, rules: PlatformRules) -> bool:
    if handle and any(pattern.search(handle) for pattern in rules.handle_patterns):
        return True
    return any(pattern.search(text or "") for pattern in rules.text_patterns)


def count_emojis(text: str) -> int:
    return len(EMOJI_PATTERN.findall(text or ""))


def has_acceptable_emojis(text: str) -> bool:
    allowed = min(MAX_EMOJIS, math.ceil(len(text or "") * EMOJI_RATIO))
    return count_emojis(text) <= allowed


def repeated_word_count(text: str) -> int:
    """Number of words (longer than two chars) equal to the word right before them."""
    words = (text or "").lower().split()
    return sum(1 for i in range(1, len(words)) if words[i] == words[i - 1] and len(words[i]) > 2)


def has_no_repeated_text(text: str) -> bool:
    return repeated_word_count(text) < MAX_REPEATED_WORDS


def quality_score(checks: QualityChecks, weights: Mapping[str, float]) -> float:
    score = 1.0
    if checks.is_duplicate:
        score -= weights["duplicate"]
    if not checks.is_language_valid:
        score -= weights["language"]
    if not checks.is_min_length:
        score -= weights["min_length"]
    if not checks.is_max_length:
        score -= weights["max_length"]
    if checks.is_bot:
        score -= weights["bot"]
    if not checks.has_valid_urls:
        score -= weights["urls"]
    if not checks.has_valid_mentions:
        score -= weights["mentions"]
    if checks.has_acceptable_emojis is False:
        score -= weights["emoji"]
    if checks.has_no_repeated_text is False:
        score -= weights["repeated"]
    return round(max(0.0, score), 4)


def failure_reason(checks: QualityChecks, score: float, rules: PlatformRules) -> str:
    if checks.is_duplicate:
        return f"Duplicate {rules.item_noun.lower()} detected"
    if not checks.is_language_valid:
        return "Invalid language (not Indonesian)"
    if checks.is_bot:
        return "Bot or spam detected"
    if not checks.is_min_length:
        return f"{rules.item_noun} too short"
    if not checks.is_max_length:
        return f"{rules.item_noun} too long"
    if checks.has_acceptable_emojis is False:
        return "Excessive emojis detected"
    if checks.has_no_repeated_text is False:
        return "Repeated text detected"
    return f"Quality score {score:.2f} below threshold {rules.quality_threshold}"


# --- gate --------------------------------------------------------------------


class QualityGate:
    def __init__(
        self,
        store: ItemStore,
        rules: Optional[Mapping[Platform, PlatformRules]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.rules = dict(rules or DEFAULT_RULES)
        self._clock = clock

    def rules_for(self, platform: Platform) -> PlatformRules:
        return self.rules[platform]

    def evaluate(self, raw_id: int, post: RawPost) -> QualityVerdict:
        """Run every rule. Reads the store only for the duplicate lookback."""
        platform = Platform(post.platform)
        rules = self.rules_for(platform)
        text = post.text
        now = self._clock()

        checks = QualityChecks(
            is_duplicate=self._is_duplicate(platform, raw_id, text, now, rules),
            is_language_valid=is_language_valid(text),
            is_min_length=len(text) >= rules.min_length and len(text) > 0,
            is_max_length=len(text) <= rules.max_length,
            is_bot=is_bot(text, post.author_handle or post.author_name, rules),
            has_valid_urls=count_urls(text) <= rules.max_urls,
            has_valid_mentions=count_mentions(text) <= rules.max_mentions,
            has_acceptable_emojis=has_acceptable_emojis(text) if rules.check_emojis else None,
            has_no_repeated_text=has_no_repeated_text(text) if rules.check_repeats else None,
        )
        score = quality_score(checks, rules.weights)
        passed = score >= rules.quality_threshold and checks.is_language_valid
        return QualityVerdict(
            raw_id=raw_id,
            platform=platform,
            checks=checks,
            score=score,
            passed=passed,
            reason=None if passed else failure_reason(checks, score, rules),
            rules_applied=list(rules.rule_names),
            checked_at=now,
        )

    def apply(self, raw_id: int, post: RawPost) -> QualityVerdict:
        """Evaluate, persist the verdict and, on pass, the pending enrichment placeholder."""
        verdict = self.evaluate(raw_id, post)
        self.store.create_verdict(verdict)
        if verdict.passed:
            cleaned = clean_text(post.text)
            self.store.create_or_get_placeholder(raw_id, cleaned, normalize_text(cleaned))
        else:
            logger.debug("Rejected %s %s: %s", post.platform, post.external_id, verdict.reason)
        return verdict

    def _is_duplicate(
        self, platform: Platform, raw_id: int, text: str, now: datetime, rules: PlatformRules
    ) -> bool:
        prefix = duplicate_prefix(text)
        if not prefix:
            return False
        since = now - timedelta(days=rules.duplicate_window_days)
        return self.store.has_similar_text(platform, prefix, raw_id, since)
