"""
Persistence seams consumed by the core. `crawler.pipelines.store.Store` implements both;
tests drive the core with in-memory fakes.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from crawler.schemas.models import RawPost
from monitor.models import (
    AnalyzedRecord,
    DailyAggregate,
    EnrichmentResult,
    PendingItem,
    Platform,
    QualityVerdict,
    RunKind,
    RunResult,
    TargetType,
    WhitelistEntry,
)


class ItemStore(Protocol):
    def exists(self, platform: Platform, external_id: str) -> bool:
        ...

    def create_if_absent(self, post: RawPost) -> Tuple[int, bool]:
        ...

    def has_similar_text(self, platform: Platform, prefix: str, exclude_id: int, since: datetime) -> bool:
        ...

    def create_verdict(self, verdict: QualityVerdict) -> None:
        ...

    def create_or_get_placeholder(self, raw_id: int, cleaned_text: str, normalized_text: str) -> int:
        ...

    def list_pending(self, platform: Platform, batch_size: int) -> List[PendingItem]:
        ...

    def update_enrichment(self, enriched_id: int, result: EnrichmentResult) -> bool:
        ...

    def create_run(self, platform: Platform, kind: RunKind, started_at: datetime) -> int:
        ...

    def finish_run(self, result: RunResult) -> None:
        ...

    def upsert_daily_aggregate(self, aggregate: DailyAggregate) -> None:
        ...

    def get_daily_aggregate(self, day: date, platform: Platform) -> Optional[DailyAggregate]:
        ...

    def count_acquired(self, platform: Platform, start: datetime, end: datetime) -> int:
        ...

    def count_verdicts(self, platform: Platform, start: datetime, end: datetime) -> Tuple[int, int]:
        ...

    def enriched_between(self, platform: Platform, start: datetime, end: datetime) -> List[AnalyzedRecord]:
        ...

    def hashtags_between(self, platform: Platform, start: datetime, end: datetime) -> List[Sequence[str]]:
        ...


class WhitelistSource(Protocol):
    def list_active_targets(self, target_type: TargetType) -> List[WhitelistEntry]:
        ...

    def record_collected(self, target_type: TargetType, target_id: str, count: int) -> None:
        ...


class AcquisitionEngine(Protocol):
    """
    One engine instance owns one session for the lifetime of a run. Entering the
    context establishes the session (raising a fatal error if it cannot); units
    are then acquired strictly one after another.
    """

    platform: Platform

    def __enter__(self) -> "AcquisitionEngine":
        ...

    def __exit__(self, exc_type, exc, tb) -> None:
        ...

    def units(self) -> List[str]:
        ...

    def acquire(self, unit: str) -> List[RawPost]:
        ...

    def stats(self) -> Dict[str, int]:
        ...
