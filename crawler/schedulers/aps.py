"""
APScheduler entry points for running the monitor on a schedule.
"""
from __future__ import annotations

import logging

from apscheduler.schedulers.blocking import BlockingScheduler

from crawler.infra.cancel import CancelToken, install_signal_handlers
from crawler.pipelines.store import Store
from monitor.models import Platform
from monitor.pipeline import MonitorPipeline
from monitor.settings import MonitorSettings, load_settings

logger = logging.getLogger(__name__)

JOB_DEFAULTS = {"max_instances": 1, "coalesce": True, "misfire_grace_time": 600}


def build_scheduler(pipeline: MonitorPipeline, timezone: str = "Asia/Jakarta", scheduler_cls=BlockingScheduler):
    scheduler = scheduler_cls(timezone=timezone, job_defaults=JOB_DEFAULTS)

    def job_enrichment():
        for platform in Platform:
            pipeline.run_enrichment(platform)

    def job_aggregation():
        for platform in Platform:
            pipeline.run_aggregation(platform)

    scheduler.add_job(
        pipeline.run_acquisition, "cron", args=[Platform.TWITTER], minute="0", hour="*/6", id="acquire_twitter"
    )
    scheduler.add_job(
        pipeline.run_acquisition, "cron", args=[Platform.YOUTUBE], minute="30", hour="*/6", id="acquire_youtube"
    )
    scheduler.add_job(job_enrichment, "cron", minute="15", id="enrichment")
    scheduler.add_job(job_aggregation, "cron", hour="23", minute="50", id="aggregation")
    return scheduler


def run_scheduler(settings: MonitorSettings | None = None) -> None:
    settings = settings or load_settings()
    cancel = CancelToken()
    pipeline = MonitorPipeline(Store(settings.db_path), settings, cancel=cancel)
    scheduler = build_scheduler(pipeline, settings.timezone)
    install_signal_handlers(cancel, on_signal=lambda: scheduler.shutdown(wait=False))
    logger.info("Scheduler starting (%s): %s", settings.timezone, ", ".join(job.id for job in scheduler.get_jobs()))
    scheduler.start()


if __name__ == "__main__":  # pragma: no cover
    run_scheduler()
