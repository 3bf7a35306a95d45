"""
Daily roll-up of stored items. Recomputed from persisted rows every time, so
calling it twice for the same day yields the same aggregate.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from monitor.contracts import ItemStore
from monitor.models import AnalyzedRecord, DailyAggregate, Platform, SentimentLabel

logger = logging.getLogger(__name__)

TOP_KEYWORDS = 20
TOP_HASHTAGS = 15


def day_bounds(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """[start, end) of ``day`` in ``tz_name`` expressed as naive UTC."""
    tz = ZoneInfo(tz_name)
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def local_today(tz_name: str, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()


def top_keywords(records: Sequence[AnalyzedRecord], limit: int = TOP_KEYWORDS) -> List[dict]:
    """Document frequency of each keyword across the day's analyzed items."""
    counts: Counter = Counter()
    for record in records:
        counts.update({keyword.keyword for keyword in record.keywords})
    total = len(records) or 1
    return [
        {"keyword": keyword, "count": count, "score": round(count / total, 4)}
        for keyword, count in counts.most_common(limit)
    ]


def top_hashtags(hashtag_lists: Iterable[Sequence[str]], limit: int = TOP_HASHTAGS) -> List[dict]:
    counts: Counter = Counter()
    for tags in hashtag_lists:
        counts.update(tag.lower() for tag in tags if tag)
    return [{"tag": tag, "count": count} for tag, count in counts.most_common(limit)]


def compute_daily_aggregate(
    day: date,
    platform: Platform,
    items_acquired: int,
    items_checked: int,
    items_passed: int,
    records: Sequence[AnalyzedRecord],
    hashtag_lists: Iterable[Sequence[str]] = (),
) -> DailyAggregate:
    distribution = Counter(record.label for record in records)
    average = sum(record.score for record in records) / len(records) if records else 0.0
    return DailyAggregate(
        day=day,
        platform=platform,
        items_acquired=items_acquired,
        items_checked=items_checked,
        items_passed=items_passed,
        items_analyzed=len(records),
        sentiment_positive=distribution[SentimentLabel.POSITIVE],
        sentiment_negative=distribution[SentimentLabel.NEGATIVE],
        sentiment_neutral=distribution[SentimentLabel.NEUTRAL],
        sentiment_mixed=distribution[SentimentLabel.MIXED],
        avg_sentiment_score=round(average, 4),
        top_keywords=top_keywords(records),
        top_hashtags=top_hashtags(hashtag_lists),
    )


def aggregate_day(store: ItemStore, platform: Platform, day: date, tz_name: str) -> DailyAggregate:
    """Read the day's rows from ``store``, compute and upsert the aggregate."""
    start, end = day_bounds(day, tz_name)
    checked, passed = store.count_verdicts(platform, start, end)
    aggregate = compute_daily_aggregate(
        day=day,
        platform=platform,
        items_acquired=store.count_acquired(platform, start, end),
        items_checked=checked,
        items_passed=passed,
        records=store.enriched_between(platform, start, end),
        hashtag_lists=store.hashtags_between(platform, start, end),
    )
    store.upsert_daily_aggregate(aggregate)
    logger.info(
        "Aggregate %s %s: acquired=%d passed=%d analyzed=%d (+%d/-%d/~%d/=%d)",
        platform.value,
        day.isoformat(),
        aggregate.items_acquired,
        aggregate.items_passed,
        aggregate.items_analyzed,
        aggregate.sentiment_positive,
        aggregate.sentiment_negative,
        aggregate.sentiment_mixed,
        aggregate.sentiment_neutral,
    )
    return aggregate
