"""
SQLite storage for acquired items, quality verdicts, enrichment, runs, daily
aggregates and the YouTube whitelist.

Uniqueness is enforced by the schema: (platform, external_id) for raw items,
raw_id for verdicts and enriched rows, (day, platform) for aggregates and
(target_type, target_id) for whitelist targets.
"""
from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import Engine

from crawler.pipelines.dedupe import fingerprint
from crawler.schemas.models import RawPost, utc_now
from monitor.models import (
    AnalyzedRecord,
    DailyAggregate,
    EnrichmentResult,
    KeywordScore,
    PendingItem,
    Platform,
    QualityVerdict,
    RunKind,
    RunResult,
    RunStatus,
    SentimentLabel,
    TargetType,
    WhitelistEntry,
)

metadata = MetaData()

raw_items_table = Table(
    "raw_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("platform", String, nullable=False, index=True),
    Column("external_id", String, nullable=False),
    Column("author_id", String),
    Column("author_handle", String),
    Column("author_name", String),
    Column("author_verified", Boolean, default=False),
    Column("text", Text, nullable=False),
    Column("fingerprint", Text, nullable=False),
    Column("likes", Integer, default=0),
    Column("reposts", Integer, default=0),
    Column("replies", Integer, default=0),
    Column("hashtags", Text),
    Column("mentions", Text),
    Column("published_at", DateTime, nullable=True),
    Column("acquired_at", DateTime, nullable=False, index=True),
    Column("search_keyword", String, nullable=True),
    Column("video_id", String, nullable=True, index=True),
    Column("video_title", String, nullable=True),
    Column("channel_id", String, nullable=True),
    Column("channel_title", String, nullable=True),
    Column("parent_id", String, nullable=True),
    UniqueConstraint("platform", "external_id", name="uq_raw_platform_external"),
)

verdicts_table = Table(
    "quality_verdicts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("raw_id", Integer, ForeignKey("raw_items.id"), nullable=False, unique=True),
    Column("platform", String, nullable=False, index=True),
    Column("is_duplicate", Boolean),
    Column("is_language_valid", Boolean),
    Column("is_min_length", Boolean),
    Column("is_max_length", Boolean),
    Column("is_bot", Boolean),
    Column("has_valid_urls", Boolean),
    Column("has_valid_mentions", Boolean),
    Column("has_acceptable_emojis", Boolean, nullable=True),
    Column("has_no_repeated_text", Boolean, nullable=True),
    Column("score", Float, nullable=False),
    Column("passed", Boolean, nullable=False),
    Column("reason", String, nullable=True),
    Column("rules_applied", Text),
    Column("checked_at", DateTime, nullable=False, index=True),
)

enriched_table = Table(
    "enriched_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("raw_id", Integer, ForeignKey("raw_items.id"), nullable=False, unique=True),
    Column("platform", String, nullable=False, index=True),
    Column("cleaned_text", Text, nullable=False),
    Column("normalized_text", Text, nullable=False),
    Column("sentiment_label", String, nullable=False, default=SentimentLabel.NEUTRAL.value),
    Column("sentiment_score", Float, nullable=False, default=0.0),
    Column("confidence", Float, nullable=False, default=0.0),
    Column("sentiment_details", Text, nullable=True),
    Column("keywords", Text, nullable=True),
    Column("tokens", Text, nullable=True),
    Column("stemmed_text", Text, nullable=True),
    Column("has_nutrition_terms", Boolean, default=False),
    Column("has_policy_terms", Boolean, default=False),
    Column("created_at", DateTime, nullable=False, index=True),
    Column("enriched_at", DateTime, nullable=True, index=True),
)

runs_table = Table(
    "runs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("platform", String, nullable=False),
    Column("kind", String, nullable=False),
    Column("status", String, nullable=False),
    Column("started_at", DateTime, nullable=False),
    Column("finished_at", DateTime, nullable=True),
    Column("items_found", Integer, default=0),
    Column("items_acquired", Integer, default=0),
    Column("items_passed", Integer, default=0),
    Column("units_failed", Integer, default=0),
    Column("sources", Text),
    Column("error_message", Text, nullable=True),
    Column("stats", Text),
)

aggregates_table = Table(
    "daily_aggregates",
    metadata,
    Column("day", Date, primary_key=True),
    Column("platform", String, primary_key=True),
    Column("items_acquired", Integer, default=0),
    Column("items_checked", Integer, default=0),
    Column("items_passed", Integer, default=0),
    Column("items_analyzed", Integer, default=0),
    Column("sentiment_positive", Integer, default=0),
    Column("sentiment_negative", Integer, default=0),
    Column("sentiment_neutral", Integer, default=0),
    Column("sentiment_mixed", Integer, default=0),
    Column("avg_sentiment_score", Float, default=0.0),
    Column("top_keywords", Text),
    Column("top_hashtags", Text),
    Column("updated_at", DateTime),
)

whitelist_table = Table(
    "whitelist",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("target_type", String, nullable=False),
    Column("target_id", String, nullable=False),
    Column("title", String, nullable=True),
    Column("notes", String, nullable=True),
    Column("priority", Integer, default=0),
    Column("max_items", Integer, nullable=True),
    Column("total_collected", Integer, default=0),
    Column("is_active", Boolean, default=True),
    Column("last_collected_at", DateTime, nullable=True),
    Column("created_at", DateTime, nullable=False),
    UniqueConstraint("target_type", "target_id", name="uq_whitelist_target"),
)


def _dumps(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def _loads(raw: Optional[str], default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


class Store:
    def __init__(self, db_path: Union[str, Path] = "data/gizi_monitor.db") -> None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.engine: Engine = create_engine(
            f"sqlite:///{db_path}",
            future=True,
            connect_args={"timeout": 30, "check_same_thread": False},
        )
        metadata.create_all(self.engine)

    # --- raw items -----------------------------------------------------------

    def exists(self, platform: Platform, external_id: str) -> bool:
        stmt = select(raw_items_table.c.id).where(
            raw_items_table.c.platform == Platform(platform).value,
            raw_items_table.c.external_id == external_id,
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).first() is not None

    def create_if_absent(self, post: RawPost) -> Tuple[int, bool]:
        """Insert ``post`` unless (platform, external_id) is stored. Returns (row id, inserted)."""
        stmt = insert(raw_items_table).values(
            platform=post.platform,
            external_id=post.external_id,
            author_id=post.author_id,
            author_handle=post.author_handle,
            author_name=post.author_name,
            author_verified=post.author_verified,
            text=post.text,
            fingerprint=fingerprint(post.text),
            likes=post.likes,
            reposts=post.reposts,
            replies=post.replies,
            hashtags=_dumps(list(post.hashtags)),
            mentions=_dumps(list(post.mentions)),
            published_at=post.published_at,
            acquired_at=post.acquired_at,
            search_keyword=post.search_keyword,
            video_id=post.video_id,
            video_title=post.video_title,
            channel_id=post.channel_id,
            channel_title=post.channel_title,
            parent_id=post.parent_id,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["platform", "external_id"])
        with self.engine.begin() as conn:
            inserted = conn.execute(stmt).rowcount == 1
            row_id = conn.execute(
                select(raw_items_table.c.id).where(
                    raw_items_table.c.platform == post.platform,
                    raw_items_table.c.external_id == post.external_id,
                )
            ).scalar_one()
        return row_id, inserted

    def has_similar_text(self, platform: Platform, prefix: str, exclude_id: int, since: datetime) -> bool:
        stmt = (
            select(raw_items_table.c.id)
            .where(
                raw_items_table.c.platform == Platform(platform).value,
                raw_items_table.c.id != exclude_id,
                raw_items_table.c.acquired_at >= since,
                raw_items_table.c.fingerprint.contains(prefix, autoescape=True),
            )
            .limit(1)
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).first() is not None

    def get_raw_text(self, raw_id: int) -> Optional[str]:
        with self.engine.connect() as conn:
            return conn.execute(select(raw_items_table.c.text).where(raw_items_table.c.id == raw_id)).scalar()

    # --- quality verdicts ----------------------------------------------------

    def create_verdict(self, verdict: QualityVerdict) -> None:
        stmt = insert(verdicts_table).values(
            raw_id=verdict.raw_id,
            platform=verdict.platform.value,
            **verdict.checks.as_dict(),
            score=verdict.score,
            passed=verdict.passed,
            reason=verdict.reason,
            rules_applied=_dumps(verdict.rules_applied),
            checked_at=verdict.checked_at or utc_now(),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["raw_id"])
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def get_verdict(self, raw_id: int) -> Optional[Dict[str, object]]:
        with self.engine.connect() as conn:
            row = conn.execute(select(verdicts_table).where(verdicts_table.c.raw_id == raw_id)).mappings().first()
        return dict(row) if row else None

    # --- enrichment ----------------------------------------------------------

    def create_or_get_placeholder(self, raw_id: int, cleaned_text: str, normalized_text: str) -> int:
        platform = select(raw_items_table.c.platform).where(raw_items_table.c.id == raw_id).scalar_subquery()
        stmt = insert(enriched_table).values(
            raw_id=raw_id,
            platform=platform,
            cleaned_text=cleaned_text,
            normalized_text=normalized_text,
            sentiment_label=SentimentLabel.NEUTRAL.value,
            sentiment_score=0.0,
            confidence=0.0,
            created_at=utc_now(),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["raw_id"])
        with self.engine.begin() as conn:
            conn.execute(stmt)
            return conn.execute(select(enriched_table.c.id).where(enriched_table.c.raw_id == raw_id)).scalar_one()

    def list_pending(self, platform: Platform, batch_size: int) -> List[PendingItem]:
        stmt = (
            select(enriched_table)
            .where(
                enriched_table.c.platform == Platform(platform).value,
                enriched_table.c.enriched_at.is_(None),
            )
            .order_by(enriched_table.c.id)
            .limit(batch_size)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [
            PendingItem(
                enriched_id=row["id"],
                raw_id=row["raw_id"],
                platform=Platform(row["platform"]),
                cleaned_text=row["cleaned_text"],
                normalized_text=row["normalized_text"],
            )
            for row in rows
        ]

    def pending_count(self, platform: Platform) -> int:
        stmt = select(func.count()).select_from(enriched_table).where(
            enriched_table.c.platform == Platform(platform).value,
            enriched_table.c.enriched_at.is_(None),
        )
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def update_enrichment(self, enriched_id: int, result: EnrichmentResult) -> bool:
        """Write the enrichment once; returns False if the row was no longer pending."""
        sentiment = result.sentiment
        stmt = (
            update(enriched_table)
            .where(enriched_table.c.id == enriched_id, enriched_table.c.enriched_at.is_(None))
            .values(
                sentiment_label=sentiment.label.value,
                sentiment_score=sentiment.score,
                confidence=sentiment.confidence,
                sentiment_details=_dumps(sentiment.details()),
                keywords=_dumps([{"keyword": k.keyword, "count": k.count, "score": k.score} for k in result.keywords]),
                tokens=_dumps(result.tokens),
                stemmed_text=result.stemmed_text,
                has_nutrition_terms=result.has_nutrition_terms,
                has_policy_terms=result.has_policy_terms,
                enriched_at=utc_now(),
            )
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount == 1

    def get_enriched(self, raw_id: int) -> Optional[Dict[str, object]]:
        with self.engine.connect() as conn:
            row = conn.execute(select(enriched_table).where(enriched_table.c.raw_id == raw_id)).mappings().first()
        return dict(row) if row else None

    # --- runs ----------------------------------------------------------------

    def create_run(self, platform: Platform, kind: RunKind, started_at: datetime) -> int:
        stmt = insert(runs_table).values(
            platform=Platform(platform).value,
            kind=RunKind(kind).value,
            status=RunStatus.RUNNING.value,
            started_at=started_at,
            sources=_dumps([]),
            stats=_dumps({}),
        )
        with self.engine.begin() as conn:
            return int(conn.execute(stmt).inserted_primary_key[0])

    def finish_run(self, result: RunResult) -> None:
        """Move a RUNNING run to its terminal state. Terminal runs are never rewritten."""
        if not result.status.terminal:
            raise ValueError(f"run {result.run_id} cannot finish as {result.status.value}")
        stmt = (
            update(runs_table)
            .where(runs_table.c.id == result.run_id, runs_table.c.status == RunStatus.RUNNING.value)
            .values(
                status=result.status.value,
                finished_at=result.finished_at or utc_now(),
                items_found=result.items_found,
                items_acquired=result.items_acquired,
                items_passed=result.items_passed,
                units_failed=result.units_failed,
                sources=_dumps(result.sources),
                error_message=result.error_message,
                stats=_dumps(result.stats),
            )
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def recent_runs(self, limit: int = 10, platform: Optional[Platform] = None) -> List[RunResult]:
        stmt = select(runs_table).order_by(runs_table.c.id.desc()).limit(limit)
        if platform is not None:
            stmt = stmt.where(runs_table.c.platform == Platform(platform).value)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [
            RunResult(
                run_id=row["id"],
                platform=Platform(row["platform"]),
                kind=RunKind(row["kind"]),
                status=RunStatus(row["status"]),
                started_at=row["started_at"],
                finished_at=row["finished_at"],
                items_found=row["items_found"] or 0,
                items_acquired=row["items_acquired"] or 0,
                items_passed=row["items_passed"] or 0,
                units_failed=row["units_failed"] or 0,
                sources=_loads(row["sources"], []),
                error_message=row["error_message"],
                stats=_loads(row["stats"], {}),
            )
            for row in rows
        ]

    # --- aggregation reads ---------------------------------------------------

    def count_acquired(self, platform: Platform, start: datetime, end: datetime) -> int:
        stmt = select(func.count()).select_from(raw_items_table).where(
            raw_items_table.c.platform == Platform(platform).value,
            raw_items_table.c.acquired_at >= start,
            raw_items_table.c.acquired_at < end,
        )
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def count_verdicts(self, platform: Platform, start: datetime, end: datetime) -> Tuple[int, int]:
        """(checked, passed) for verdicts written in [start, end)."""
        stmt = select(func.count(), func.coalesce(func.sum(verdicts_table.c.passed), 0)).where(
            verdicts_table.c.platform == Platform(platform).value,
            verdicts_table.c.checked_at >= start,
            verdicts_table.c.checked_at < end,
        )
        with self.engine.connect() as conn:
            checked, passed = conn.execute(stmt).one()
        return int(checked), int(passed)

    def enriched_between(self, platform: Platform, start: datetime, end: datetime) -> List[AnalyzedRecord]:
        stmt = select(
            enriched_table.c.sentiment_label,
            enriched_table.c.sentiment_score,
            enriched_table.c.keywords,
        ).where(
            enriched_table.c.platform == Platform(platform).value,
            enriched_table.c.enriched_at.is_not(None),
            enriched_table.c.created_at >= start,
            enriched_table.c.created_at < end,
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        records = []
        for label, score, keywords in rows:
            parsed = [
                KeywordScore(keyword=k["keyword"], count=int(k.get("count", 1)), score=float(k.get("score", 0.0)))
                for k in _loads(keywords, [])
                if isinstance(k, dict) and k.get("keyword")
            ]
            records.append(AnalyzedRecord(label=SentimentLabel(label), score=float(score or 0.0), keywords=parsed))
        return records

    def hashtags_between(self, platform: Platform, start: datetime, end: datetime) -> List[Sequence[str]]:
        stmt = select(raw_items_table.c.hashtags).where(
            raw_items_table.c.platform == Platform(platform).value,
            raw_items_table.c.acquired_at >= start,
            raw_items_table.c.acquired_at < end,
        )
        with self.engine.connect() as conn:
            return [_loads(raw, []) for raw in conn.execute(stmt).scalars()]

    # --- daily aggregates ----------------------------------------------------

    def upsert_daily_aggregate(self, aggregate: DailyAggregate) -> None:
        values = {
            "items_acquired": aggregate.items_acquired,
            "items_checked": aggregate.items_checked,
            "items_passed": aggregate.items_passed,
            "items_analyzed": aggregate.items_analyzed,
            "sentiment_positive": aggregate.sentiment_positive,
            "sentiment_negative": aggregate.sentiment_negative,
            "sentiment_neutral": aggregate.sentiment_neutral,
            "sentiment_mixed": aggregate.sentiment_mixed,
            "avg_sentiment_score": aggregate.avg_sentiment_score,
            "top_keywords": _dumps(aggregate.top_keywords),
            "top_hashtags": _dumps(aggregate.top_hashtags),
            "updated_at": utc_now(),
        }
        stmt = insert(aggregates_table).values(day=aggregate.day, platform=aggregate.platform.value, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["day", "platform"],
            set_={key: getattr(stmt.excluded, key) for key in values},
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def get_daily_aggregate(self, day: date, platform: Platform) -> Optional[DailyAggregate]:
        stmt = select(aggregates_table).where(
            aggregates_table.c.day == day,
            aggregates_table.c.platform == Platform(platform).value,
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None:
            return None
        return DailyAggregate(
            day=row["day"],
            platform=Platform(row["platform"]),
            items_acquired=row["items_acquired"],
            items_checked=row["items_checked"],
            items_passed=row["items_passed"],
            items_analyzed=row["items_analyzed"],
            sentiment_positive=row["sentiment_positive"],
            sentiment_negative=row["sentiment_negative"],
            sentiment_neutral=row["sentiment_neutral"],
            sentiment_mixed=row["sentiment_mixed"],
            avg_sentiment_score=row["avg_sentiment_score"],
            top_keywords=_loads(row["top_keywords"], []),
            top_hashtags=_loads(row["top_hashtags"], []),
        )

    # --- whitelist -----------------------------------------------------------

    def upsert_whitelist(self, entry: WhitelistEntry) -> None:
        """Add a target or update and reactivate an existing one."""
        stmt = insert(whitelist_table).values(
            target_type=entry.target_type.value,
            target_id=entry.target_id,
            title=entry.title,
            notes=entry.notes,
            priority=entry.priority,
            max_items=entry.max_items,
            total_collected=0,
            is_active=True,
            created_at=entry.created_at or utc_now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["target_type", "target_id"],
            set_={
                "title": func.coalesce(stmt.excluded.title, whitelist_table.c.title),
                "notes": func.coalesce(stmt.excluded.notes, whitelist_table.c.notes),
                "priority": stmt.excluded.priority,
                "max_items": stmt.excluded.max_items,
                "is_active": True,
            },
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def deactivate_whitelist(self, target_type: TargetType, target_id: str) -> bool:
        stmt = (
            update(whitelist_table)
            .where(
                whitelist_table.c.target_type == TargetType(target_type).value,
                whitelist_table.c.target_id == target_id,
                whitelist_table.c.is_active.is_(True),
            )
            .values(is_active=False)
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount == 1

    def list_whitelist(
        self, target_type: Optional[TargetType] = None, active_only: bool = True
    ) -> List[WhitelistEntry]:
        stmt = select(whitelist_table).order_by(whitelist_table.c.priority.desc(), whitelist_table.c.id.asc())
        if target_type is not None:
            stmt = stmt.where(whitelist_table.c.target_type == TargetType(target_type).value)
        if active_only:
            stmt = stmt.where(whitelist_table.c.is_active.is_(True))
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [
            WhitelistEntry(
                target_type=TargetType(row["target_type"]),
                target_id=row["target_id"],
                priority=row["priority"] or 0,
                max_items=row["max_items"],
                total_collected=row["total_collected"] or 0,
                is_active=bool(row["is_active"]),
                title=row["title"],
                notes=row["notes"],
                last_collected_at=row["last_collected_at"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def get_whitelist(self, target_type: TargetType, target_id: str) -> Optional[WhitelistEntry]:
        for entry in self.list_whitelist(target_type, active_only=False):
            if entry.target_id == target_id:
                return entry
        return None

    def list_active_targets(self, target_type: TargetType) -> List[WhitelistEntry]:
        """Active targets, highest priority first, then registration order."""
        return self.list_whitelist(target_type, active_only=True)

    def record_collected(self, target_type: TargetType, target_id: str, count: int) -> None:
        stmt = (
            update(whitelist_table)
            .where(
                whitelist_table.c.target_type == TargetType(target_type).value,
                whitelist_table.c.target_id == target_id,
            )
            .values(
                total_collected=whitelist_table.c.total_collected + count,
                last_collected_at=utc_now(),
            )
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
