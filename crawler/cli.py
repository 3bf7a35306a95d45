"""
Command line entry point: manual runs, whitelist maintenance, status and the scheduler.
"""
from __future__ import annotations

import json
from datetime import date, datetime

import click

from crawler.infra.cancel import CancelToken, install_signal_handlers
from crawler.pipelines.store import Store
from monitor.logging_config import configure_logging
from monitor.models import Platform, RunStatus, TargetType
from monitor.pipeline import MonitorPipeline
from monitor.settings import load_settings
from monitor.status import build_status
from monitor.whitelist import WhitelistManager

PLATFORM_CHOICE = click.Choice([p.value for p in Platform], case_sensitive=False)
TARGET_CHOICE = click.Choice([t.value for t in TargetType], case_sensitive=False)


def _json_default(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return getattr(value, "value", str(value))


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=_json_default))


def _pipeline(ctx: click.Context) -> MonitorPipeline:
    settings = ctx.obj["settings"]
    cancel = CancelToken()
    install_signal_handlers(cancel)
    return MonitorPipeline(Store(settings.db_path), settings, cancel=cancel)


@click.group()
@click.option("--log-level", default="INFO", show_default=True)
@click.option("--env-file", default=None, help="Path to a .env file.")
@click.pass_context
def cli(ctx: click.Context, log_level: str, env_file: str | None):
    configure_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = load_settings(env_file)


@cli.command()
@click.argument("platform", type=PLATFORM_CHOICE)
@click.option("--no-follow-up", is_flag=True, help="Skip the enrichment batch and aggregation afterwards.")
@click.pass_context
def acquire(ctx: click.Context, platform: str, no_follow_up: bool):
    """Run one acquisition run for PLATFORM."""
    result = _pipeline(ctx).run_acquisition(Platform(platform.lower()), follow_up=not no_follow_up)
    _echo_json(result.__dict__)
    if result.status is not RunStatus.COMPLETED:
        ctx.exit(1)


@cli.command()
@click.argument("platform", type=PLATFORM_CHOICE)
@click.option("--drain", is_flag=True, help="Repeat batches until nothing is pending.")
@click.pass_context
def enrich(ctx: click.Context, platform: str, drain: bool):
    """Enrich pending items for PLATFORM."""
    pipeline = _pipeline(ctx)
    while True:
        result = pipeline.run_enrichment(Platform(platform.lower()))
        click.echo(f"{result.status.value}: {result.items_acquired}/{result.items_found} enriched")
        if not drain or result.items_acquired == 0 or pipeline.cancel.cancelled:
            break


@cli.command()
@click.argument("platform", type=PLATFORM_CHOICE)
@click.option("--day", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Local day, default today.")
@click.pass_context
def aggregate(ctx: click.Context, platform: str, day: datetime | None):
    """Recompute the daily aggregate for PLATFORM."""
    aggregate_row = _pipeline(ctx).run_aggregation(Platform(platform.lower()), day.date() if day else None)
    _echo_json(aggregate_row.__dict__)


@cli.command("search-once")
@click.argument("keyword")
@click.option("--limit", default=5, show_default=True)
@click.pass_context
def search_once(ctx: click.Context, keyword: str, limit: int):
    """Search X for KEYWORD and print the posts without storing them."""
    from crawler.ingesters.x_web import XSearchEngine

    cancel = CancelToken()
    install_signal_handlers(cancel)
    with XSearchEngine(ctx.obj["settings"], cancel) as engine:
        for post in engine.search(keyword, limit):
            click.echo(json.dumps(post.model_dump(), ensure_ascii=False, default=_json_default))


@cli.group()
def whitelist():
    """Manage YouTube collection targets."""


@whitelist.command("add")
@click.argument("target_type", type=TARGET_CHOICE)
@click.argument("target_id")
@click.option("--title", default=None)
@click.option("--priority", type=int, default=None)
@click.option("--max-items", type=int, default=None)
@click.option("--notes", default=None)
@click.pass_context
def whitelist_add(ctx, target_type, target_id, title, priority, max_items, notes):
    manager = WhitelistManager(Store(ctx.obj["settings"].db_path))
    try:
        entry = manager.add(target_type.lower(), target_id, title, priority, max_items, notes)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    _echo_json(entry.__dict__)


@whitelist.command("remove")
@click.argument("target_type", type=TARGET_CHOICE)
@click.argument("target_id")
@click.pass_context
def whitelist_remove(ctx, target_type, target_id):
    manager = WhitelistManager(Store(ctx.obj["settings"].db_path))
    if not manager.remove(target_type.lower(), target_id):
        click.echo(f"{target_type} {target_id} is not whitelisted", err=True)
        ctx.exit(1)
    click.echo(f"Removed {target_type} {target_id}")


@whitelist.command("list")
@click.option("--type", "target_type", type=TARGET_CHOICE, default=None)
@click.pass_context
def whitelist_list(ctx, target_type):
    manager = WhitelistManager(Store(ctx.obj["settings"].db_path))
    for entry in manager.active(target_type.lower() if target_type else None):
        click.echo(
            f"{entry.target_type.value}\t{entry.target_id}\tpriority={entry.priority}"
            f"\tmax={entry.max_items or '-'}\tcollected={entry.total_collected}\t{entry.title or ''}"
        )


@cli.command()
@click.option("--runs", default=10, show_default=True)
@click.pass_context
def status(ctx: click.Context, runs: int):
    """Print recent runs, backlog and configuration summary as JSON."""
    settings = ctx.obj["settings"]
    _echo_json(build_status(Store(settings.db_path), settings, run_limit=runs))


@cli.command()
@click.pass_context
def schedule(ctx: click.Context):
    """Run the cron schedule in the foreground."""
    from crawler.schedulers.aps import run_scheduler

    run_scheduler(ctx.obj["settings"])


if __name__ == "__main__":  # pragma: no cover
    cli()
