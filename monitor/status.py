"""
Status payload for operators (CLI `status`). Read-only and redacted: secrets are
reported only as "configured" booleans.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from monitor.models import Platform, RunResult
from monitor.settings import MonitorSettings
from monitor.whitelist import WhitelistManager
from utils.keywords import keyword_category
from utils.security import is_configured_key


def _run_to_dict(run: RunResult) -> Dict[str, Any]:
    return {
        "id": run.run_id,
        "platform": run.platform.value,
        "kind": run.kind.value,
        "status": run.status.value,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "finished_at": run.finished_at.isoformat() if run.finished_at else None,
        "found": run.items_found,
        "acquired": run.items_acquired,
        "passed": run.items_passed,
        "units_failed": run.units_failed,
        "error": run.error_message,
    }


def build_status(store, settings: MonitorSettings, run_limit: int = 10) -> Dict[str, Any]:
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "runs": [_run_to_dict(run) for run in store.recent_runs(run_limit)],
        "pending_enrichment": {platform.value: store.pending_count(platform) for platform in Platform},
        "whitelist": WhitelistManager(store).stats(),
        "config": {
            "db_path": str(settings.db_path),
            "timezone": settings.timezone,
            "search_keywords": list(settings.search_keywords),
            "keyword_categories": {kw: keyword_category(kw) for kw in settings.search_keywords},
            "twitter_credentials_configured": settings.twitter_credentials is not None,
            "youtube_api_key_configured": is_configured_key(settings.youtube_api_key or ""),
            "headless": settings.headless,
            "browser_engine": settings.browser_engine,
            "sentiment_thresholds": [settings.sentiment_positive_threshold, settings.sentiment_negative_threshold],
            "enrichment_batch_size": settings.enrichment_batch_size,
        },
    }
