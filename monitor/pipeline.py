"""
Run lifecycle for acquisition, enrichment and aggregation.

The scheduler (or the CLI) calls `run_acquisition`, `run_enrichment` and
`run_aggregation`; each is safe to re-trigger. Only this module decides the
terminal status of a run.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Callable, Dict, Mapping, Optional

from crawler.errors import FATAL_RUN_ERRORS, TERMINAL_UNIT_ERRORS
from crawler.infra.cancel import CancelToken
from crawler.schemas.models import RawPost, utc_now
from monitor.aggregation import aggregate_day, local_today
from monitor.config_loader import load_monitor_config
from monitor.contracts import AcquisitionEngine, ItemStore
from monitor.enrichment import Enricher, KeywordExtractor, SentimentAnalyzer, SentimentThresholds
from monitor.models import DailyAggregate, PendingItem, Platform, RunKind, RunResult, RunStatus
from monitor.quality import QualityGate, rules_from_config
from monitor.settings import MonitorSettings
from utils.security import redact_secrets

logger = logging.getLogger(__name__)

EngineFactory = Callable[[MonitorSettings, CancelToken], AcquisitionEngine]


def default_engine_factories(store) -> Dict[Platform, EngineFactory]:
    # imported here so the core stays importable without a browser installed
    from crawler.ingesters.x_web import build_x_engine
    from crawler.ingesters.youtube_api import build_youtube_engine

    return {
        Platform.TWITTER: build_x_engine,
        Platform.YOUTUBE: lambda settings, cancel: build_youtube_engine(settings, cancel, whitelist=store),
    }


def decide_status(result: RunResult, cancelled: bool, fatal: bool) -> RunStatus:
    if cancelled:
        return RunStatus.CANCELLED
    if fatal:
        return RunStatus.FAILED
    return RunStatus.COMPLETED if result.items_acquired > 0 else RunStatus.FAILED


class MonitorPipeline:
    def __init__(
        self,
        store: ItemStore,
        settings: MonitorSettings,
        engine_factories: Optional[Mapping[Platform, EngineFactory]] = None,
        gate: Optional[QualityGate] = None,
        enricher: Optional[Enricher] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.cancel = cancel or CancelToken()
        self.gate = gate or QualityGate(store, rules_from_config(self._file_config()))
        self.enricher = enricher or Enricher(
            SentimentAnalyzer(
                SentimentThresholds(
                    positive=settings.sentiment_positive_threshold,
                    negative=settings.sentiment_negative_threshold,
                )
            ),
            KeywordExtractor(top_n=settings.keyword_top_n),
        )
        self._engine_factories = dict(engine_factories) if engine_factories is not None else None

    def _file_config(self) -> Dict[str, object]:
        if self.settings.config_path is None:
            return {}
        return load_monitor_config(self.settings.config_path)

    @property
    def engine_factories(self) -> Dict[Platform, EngineFactory]:
        if self._engine_factories is None:
            self._engine_factories = default_engine_factories(self.store)
        return self._engine_factories

    # --- acquisition ---------------------------------------------------------

    def run_acquisition(self, platform: Platform, follow_up: bool = True) -> RunResult:
        platform = Platform(platform)
        started = utc_now()
        run_id = self.store.create_run(platform, RunKind.ACQUISITION, started)
        result = RunResult(run_id=run_id, platform=platform, kind=RunKind.ACQUISITION,
                           status=RunStatus.RUNNING, started_at=started)
        logger.info("Acquisition run %s started for %s", run_id, platform.value)

        fatal = False
        try:
            factory = self.engine_factories[platform]
            with factory(self.settings, self.cancel) as engine:
                self._acquire_units(engine, result)
                result.stats.update(engine.stats())
        except FATAL_RUN_ERRORS as exc:
            fatal = True
            result.error_message = redact_secrets(f"{type(exc).__name__}: {exc}")
            logger.error("Acquisition run %s aborted: %s", run_id, result.error_message)
        except Exception as exc:
            fatal = True
            result.error_message = redact_secrets(f"Unexpected {type(exc).__name__}: {exc}")
            logger.exception("Acquisition run %s crashed", run_id)

        result.status = decide_status(result, self.cancel.cancelled, fatal)
        if result.status is RunStatus.FAILED and not result.error_message:
            result.error_message = f"No items acquired ({result.items_found} found)"
        if result.status is RunStatus.CANCELLED:
            result.error_message = result.error_message or f"Cancelled: {self.cancel.reason}"
        result.finished_at = utc_now()
        self.store.finish_run(result)
        logger.info(
            "Acquisition run %s %s: found=%d acquired=%d passed=%d failed_units=%d",
            run_id,
            result.status.value,
            result.items_found,
            result.items_acquired,
            result.items_passed,
            result.units_failed,
        )

        if follow_up and result.status is not RunStatus.CANCELLED:
            self.run_enrichment(platform)
            self.run_aggregation(platform)
        return result

    def _acquire_units(self, engine: AcquisitionEngine, result: RunResult) -> None:
        for unit in engine.units():
            if self.cancel.cancelled:
                break
            result.sources.append(unit)
            try:
                posts = engine.acquire(unit)
            except TERMINAL_UNIT_ERRORS as exc:
                result.units_failed += 1
                logger.warning("Unit %r failed, moving on: %s", unit, redact_secrets(str(exc)))
                continue
            for post in posts:
                if self.cancel.cancelled:
                    break
                self._ingest(post, result)

    def _ingest(self, post: RawPost, result: RunResult) -> None:
        result.items_found += 1
        if not post.external_id or not post.text:
            logger.debug("Skipping empty item from %s", post.search_keyword or post.video_id)
            return
        platform = Platform(post.platform)
        if self.store.exists(platform, post.external_id):
            return
        raw_id, is_new = self.store.create_if_absent(post)
        if not is_new:
            return
        result.items_acquired += 1
        verdict = self.gate.apply(raw_id, post)
        if verdict.passed:
            result.items_passed += 1

    # --- enrichment ----------------------------------------------------------

    def run_enrichment(self, platform: Platform) -> RunResult:
        """Enrich one bounded batch of pending items; call repeatedly to drain the backlog."""
        platform = Platform(platform)
        started = utc_now()
        run_id = self.store.create_run(platform, RunKind.ENRICHMENT, started)
        result = RunResult(run_id=run_id, platform=platform, kind=RunKind.ENRICHMENT,
                           status=RunStatus.RUNNING, started_at=started)

        pending = []
        failed = 0
        crashed = False
        try:
            pending = self.store.list_pending(platform, self.settings.enrichment_batch_size)
            result.items_found = len(pending)
            if pending:
                workers = max(1, min(self.settings.enrichment_workers, len(pending)))
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    futures = {pool.submit(self._enrich_one, item): item for item in pending}
                    for future in as_completed(futures):
                        item = futures[future]
                        try:
                            if future.result():
                                result.items_acquired += 1
                        except Exception as exc:
                            failed += 1
                            logger.error("Enrichment failed for item %s: %s", item.enriched_id, exc)
        except Exception as exc:
            crashed = True
            result.error_message = redact_secrets(f"{type(exc).__name__}: {exc}")
            logger.exception("Enrichment run %s crashed", run_id)

        result.units_failed = failed
        result.stats = {"pending": len(pending), "enriched": result.items_acquired, "failed": failed}
        if self.cancel.cancelled:
            result.status = RunStatus.CANCELLED
            result.error_message = result.error_message or f"Cancelled: {self.cancel.reason}"
        elif crashed:
            result.status = RunStatus.FAILED
        elif pending and result.items_acquired == 0 and failed:
            result.status = RunStatus.FAILED
            result.error_message = f"All {failed} items failed enrichment"
        else:
            result.status = RunStatus.COMPLETED
        result.finished_at = utc_now()
        self.store.finish_run(result)
        logger.info(
            "Enrichment run %s %s for %s: %d/%d enriched",
            run_id,
            result.status.value,
            platform.value,
            result.items_acquired,
            len(pending),
        )
        return result

    def _enrich_one(self, item: PendingItem) -> bool:
        if self.cancel.cancelled:
            return False
        enrichment = self.enricher.enrich(item.normalized_text or item.cleaned_text)
        return self.store.update_enrichment(item.enriched_id, enrichment)

    # --- aggregation ---------------------------------------------------------

    def run_aggregation(self, platform: Platform, day: Optional[date] = None) -> DailyAggregate:
        platform = Platform(platform)
        day = day or local_today(self.settings.timezone)
        return aggregate_day(self.store, platform, day, self.settings.timezone)
