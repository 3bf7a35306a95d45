"""
Core data structures shared by the quality gate, enrichment and the orchestrator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional


class Platform(str, Enum):
    TWITTER = "twitter"
    YOUTUBE = "youtube"


class RunKind(str, Enum):
    ACQUISITION = "acquisition"
    ENRICHMENT = "enrichment"


class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class SentimentLabel(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"
    MIXED = "MIXED"


class TargetType(str, Enum):
    VIDEO = "video"
    CHANNEL = "channel"


@dataclass
class QualityChecks:
    """
    Individual rule outcomes. Every field is phrased so that True is the good outcome,
    except ``is_duplicate`` and ``is_bot`` which flag a problem.
    """

    is_duplicate: bool = False
    is_language_valid: bool = True
    is_min_length: bool = True
    is_max_length: bool = True
    is_bot: bool = False
    has_valid_urls: bool = True
    has_valid_mentions: bool = True
    has_acceptable_emojis: Optional[bool] = None
    has_no_repeated_text: Optional[bool] = None

    def as_dict(self) -> Dict[str, Optional[bool]]:
        return {
            "is_duplicate": self.is_duplicate,
            "is_language_valid": self.is_language_valid,
            "is_min_length": self.is_min_length,
            "is_max_length": self.is_max_length,
            "is_bot": self.is_bot,
            "has_valid_urls": self.has_valid_urls,
            "has_valid_mentions": self.has_valid_mentions,
            "has_acceptable_emojis": self.has_acceptable_emojis,
            "has_no_repeated_text": self.has_no_repeated_text,
        }


@dataclass
class QualityVerdict:
    raw_id: int
    platform: Platform
    checks: QualityChecks
    score: float
    passed: bool
    reason: Optional[str] = None
    rules_applied: List[str] = field(default_factory=list)
    checked_at: Optional[datetime] = None


@dataclass
class SentimentResult:
    label: SentimentLabel
    score: float
    confidence: float
    positive_matches: List[str] = field(default_factory=list)
    negative_matches: List[str] = field(default_factory=list)
    contextual_hits: List[str] = field(default_factory=list)
    raw_score: float = 0.0
    adjusted_score: float = 0.0
    weighted_score: float = 0.0
    negated: bool = False
    boosted: bool = False

    def details(self) -> Dict[str, object]:
        return {
            "positive_matches": list(self.positive_matches),
            "negative_matches": list(self.negative_matches),
            "contextual_hits": list(self.contextual_hits),
            "raw_score": self.raw_score,
            "adjusted_score": self.adjusted_score,
            "weighted_score": self.weighted_score,
            "negated": self.negated,
            "boosted": self.boosted,
        }


@dataclass
class KeywordScore:
    keyword: str
    count: int
    score: float


@dataclass
class EnrichmentResult:
    sentiment: SentimentResult
    keywords: List[KeywordScore]
    tokens: List[str] = field(default_factory=list)
    stemmed_text: str = ""
    has_nutrition_terms: bool = False
    has_policy_terms: bool = False


@dataclass
class PendingItem:
    """Placeholder enriched row waiting for the enrichment pass."""

    enriched_id: int
    raw_id: int
    platform: Platform
    cleaned_text: str
    normalized_text: str


@dataclass
class RunResult:
    run_id: Optional[int]
    platform: Platform
    kind: RunKind
    status: RunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    items_found: int = 0
    items_acquired: int = 0
    items_passed: int = 0
    sources: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    units_failed: int = 0
    stats: Dict[str, int] = field(default_factory=dict)


@dataclass
class DailyAggregate:
    day: date
    platform: Platform
    items_acquired: int = 0
    items_checked: int = 0
    items_passed: int = 0
    items_analyzed: int = 0
    sentiment_positive: int = 0
    sentiment_negative: int = 0
    sentiment_neutral: int = 0
    sentiment_mixed: int = 0
    avg_sentiment_score: float = 0.0
    top_keywords: List[Dict[str, object]] = field(default_factory=list)
    top_hashtags: List[Dict[str, object]] = field(default_factory=list)


@dataclass
class WhitelistEntry:
    target_type: TargetType
    target_id: str
    priority: int = 0
    max_items: Optional[int] = None
    total_collected: int = 0
    is_active: bool = True
    title: Optional[str] = None
    notes: Optional[str] = None
    last_collected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class AnalyzedRecord:
    """Enriched row as read back for aggregation."""

    label: SentimentLabel
    score: float
    keywords: List[KeywordScore] = field(default_factory=list)
