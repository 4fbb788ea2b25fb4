"""Sync commands for the lifesync CLI.

Commands:
- sync: Run one incremental sync cycle
- sync-all: Run (or resume) a full-history sync
- daemon: Run background sync cycles on a schedule
- progress: Show full-history progress per month
- sources: List or toggle data sources
- reset-watermarks: Force every file to be uploaded again
- clear-full-sync: Forget full-history progress
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from typing import Any

import click

from lifesync.client.cli.config import get_state_db_path, require_client_config
from lifesync.client.cli.services import Services, open_services
from lifesync.client.keystore import KeyStoreError
from lifesync.client.state import LocalSyncState
from lifesync.client.sync import (
    AggregateStatus,
    APSchedulerSyncScheduler,
    BackgroundSyncRunner,
    ContentWatermark,
    DayState,
    FullSyncProgress,
    SyncOutcome,
    load_collectors,
)

_STATUS_MARKS = {
    AggregateStatus.PENDING: ".",
    AggregateStatus.ACTIVE: "~",
    AggregateStatus.DONE: "#",
    AggregateStatus.ERROR: "!",
}


def _report(services: Services) -> int:
    """Print the outcome of the last cycle and return the exit code."""
    orchestrator = services.orchestrator
    result = orchestrator.last_result
    error = orchestrator.last_error

    if result is not None:
        click.echo(str(result))
    detail = orchestrator.last_detail
    if detail is not None:
        click.echo(
            f"  {detail.samples_collected} samples from {detail.collectors_run} collector(s), "
            f"{detail.files_uploaded} uploaded, {detail.files_skipped} unchanged"
        )
    if error is not None:
        click.echo(f"{error.summary}:", err=True)
        for key, message in sorted(error.failures.items()):
            click.echo(f"  {key}: {message}", err=True)

    if result is None or result.outcome == SyncOutcome.FAILED:
        return 1
    return 0


async def _require_auth(services: Services) -> bool:
    state = await services.auth.check_auth()
    if not state.is_authenticated:
        click.echo("Error: Not signed in. Run 'lifesync login' first.", err=True)
        return False
    return True


def _run(main: Coroutine[Any, Any, int]) -> None:
    try:
        code = asyncio.run(main)
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if code:
        sys.exit(code)


@click.command()
@click.option("--force", "-f", is_flag=True, help="Ignore the throttle interval.")
def sync(force: bool) -> None:
    """Collect new data and upload it."""
    client_config = require_client_config()

    async def _sync() -> int:
        async with open_services(client_config) as services:
            if not await _require_auth(services):
                return 1
            task = services.orchestrator.sync(force=force)
            if task is None:
                click.echo("Synced recently, skipping (use --force to sync now).")
                return 0
            await task
            return _report(services)

    _run(_sync())


@click.command("sync-all")
def sync_all() -> None:
    """Upload the full history, month by month (resumable)."""
    client_config = require_client_config()

    async def _sync_all() -> int:
        async with open_services(client_config) as services:
            if not await _require_auth(services):
                return 1
            orchestrator = services.orchestrator
            if orchestrator.has_resumable_full_sync:
                click.echo("Resuming previous full sync.")
            task = orchestrator.sync_all()
            if task is None:
                click.echo("Error: Could not start full sync.", err=True)
                return 1
            await task

            progress = orchestrator.full_sync_progress
            if progress is not None:
                done = len(progress.completed_month_keys)
                click.echo(f"{done}/{len(progress.months)} months completed")
            return _report(services)

    _run(_sync_all())


@click.command()
def daemon() -> None:
    """Sync now, then keep syncing in the background until interrupted."""
    client_config = require_client_config()

    async def _daemon() -> int:
        async with open_services(client_config) as services:
            if not await _require_auth(services):
                return 1

            scheduler = APSchedulerSyncScheduler()
            scheduler.start()
            runner = BackgroundSyncRunner(services.orchestrator, scheduler)
            runner.start()
            click.echo(
                f"Background sync every {runner.interval / 3600:.1f}h. Press Ctrl+C to stop."
            )

            task = services.orchestrator.sync(force=True)
            if task is not None:
                await task
                _report(services)

            try:
                await asyncio.Event().wait()
            finally:
                runner.expire()
                scheduler.stop()
        return 0

    try:
        _run(_daemon())
    except KeyboardInterrupt:
        click.echo("\nStopped.")


def _render_progress(progress: FullSyncProgress) -> list[str]:
    lines = []
    for year in progress.years:
        marks = "".join(_STATUS_MARKS[m.status] for m in progress.months_for(year))
        lines.append(f"{year}  {progress.year_status(year).name:<7}  {marks}")
        for month in progress.months_for(year):
            errors = [
                day
                for day in range(1, month.days_in_month + 1)
                if month.day_status(day).state == DayState.ERROR
            ]
            if errors:
                lines.append(f"  {month.key}: failed days {', '.join(map(str, errors))}")
    return lines


@click.command()
def progress() -> None:
    """Show full-history sync progress (# done, ~ active, . pending, ! error)."""
    client_config = require_client_config()

    async def _progress() -> int:
        async with open_services(client_config) as services:
            model = await services.orchestrator.prepare_full_sync()
            if model is None:
                click.echo("No history available for full sync.")
                return 0
            for line in _render_progress(model):
                click.echo(line)
            return 0

    _run(_progress())


@click.command()
@click.option("--enable", "enable", multiple=True, help="Source id to enable.")
@click.option("--disable", "disable", multiple=True, help="Source id to disable.")
def sources(enable: tuple[str, ...], disable: tuple[str, ...]) -> None:
    """List the data sources of installed collectors, or toggle them."""
    state = LocalSyncState(get_state_db_path())
    try:
        collectors = load_collectors(state)
        known = {s for c in collectors for s in c.source_ids}
        for source_id in (*enable, *disable):
            if source_id not in known:
                click.echo(f"Error: Unknown source '{source_id}'.", err=True)
                sys.exit(1)
        for source_id in enable:
            state.set_source_enabled(source_id, True)
        for source_id in disable:
            state.set_source_enabled(source_id, False)

        if not collectors:
            click.echo("No collectors installed.")
        for collector in collectors:
            click.echo(f"{collector.display_name} ({collector.id})")
            for source_id in collector.source_ids:
                mark = "x" if state.is_source_enabled(source_id) else " "
                click.echo(f"  [{mark}] {source_id}")
    finally:
        state.close()


@click.command("reset-watermarks")
@click.confirmation_option(prompt="Re-upload everything on the next sync?")
def reset_watermarks() -> None:
    """Forget what was uploaded so the next sync re-uploads everything."""
    state = LocalSyncState(get_state_db_path())
    try:
        ContentWatermark(state).clear_all()
    finally:
        state.close()
    click.echo("Upload watermarks cleared.")


@click.command("clear-full-sync")
def clear_full_sync() -> None:
    """Forget full-history progress; the next sync-all starts over."""
    state = LocalSyncState(get_state_db_path())
    try:
        state.clear_completed_months()
    finally:
        state.close()
    click.echo("Full sync progress cleared.")
