#!/usr/bin/env python3
"""
CLI for managing periodic calendar sync via Temporal schedules.

One schedule per (user, provider) starts CalendarSyncWorkflow on an
interval. Overlapping runs are skipped, so a slow pass is never doubled.
"""

import asyncio
import logging
import sys
from datetime import timedelta
from typing import Optional

import click
from temporalio.client import (
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleIntervalSpec,
    ScheduleOverlapPolicy,
    SchedulePolicy,
    ScheduleSpec,
)
from temporalio.service import RPCError

from calsync.config import SyncSettings, load_settings
from calsync.domain import Provider
from calsync.errors import CalendarSyncError
from calsync.worker import get_temporal_client_with_retries, setup_logging
from calsync.workflows import CalendarSyncWorkflow, sync_workflow_id

logger = logging.getLogger(__name__)

SCHEDULE_PREFIX = "calendar-sync-schedule-"


def schedule_id_for(user_id: str, provider: str) -> str:
    return f"{SCHEDULE_PREFIX}{user_id}-{provider}"


def build_schedule(
    user_id: str,
    provider: str,
    interval_minutes: int,
    task_queue: str,
    calendar_id: Optional[str] = None,
) -> Schedule:
    return Schedule(
        action=ScheduleActionStartWorkflow(
            CalendarSyncWorkflow.run,
            args=[user_id, provider, calendar_id],
            id=sync_workflow_id(user_id, provider),
            task_queue=task_queue,
        ),
        spec=ScheduleSpec(
            intervals=[
                ScheduleIntervalSpec(every=timedelta(minutes=interval_minutes))
            ]
        ),
        policy=SchedulePolicy(overlap=ScheduleOverlapPolicy.SKIP),
    )


async def _create_schedule(
    settings: SyncSettings,
    user_id: str,
    provider: str,
    interval_minutes: int,
    calendar_id: Optional[str],
) -> None:
    client = await get_temporal_client_with_retries(
        settings.temporal_address, attempts=3, delay=2
    )
    schedule_id = schedule_id_for(user_id, provider)
    await client.create_schedule(
        schedule_id,
        build_schedule(
            user_id,
            provider,
            interval_minutes,
            settings.task_queue,
            calendar_id,
        ),
    )
    logger.info(
        "Created sync schedule",
        extra={
            "schedule_id": schedule_id,
            "interval_minutes": interval_minutes,
        },
    )
    click.echo(f"Schedule created: {schedule_id}")
    click.echo(f"Sync will run every {interval_minutes} minutes")


async def _delete_schedule(
    settings: SyncSettings, user_id: str, provider: str
) -> None:
    client = await get_temporal_client_with_retries(
        settings.temporal_address, attempts=3, delay=2
    )
    schedule_id = schedule_id_for(user_id, provider)
    await client.get_schedule_handle(schedule_id).delete()
    click.echo(f"Schedule deleted: {schedule_id}")


async def _list_schedules(settings: SyncSettings) -> None:
    client = await get_temporal_client_with_retries(
        settings.temporal_address, attempts=3, delay=2
    )
    found = 0
    async for schedule in await client.list_schedules():
        if schedule.id.startswith(SCHEDULE_PREFIX):
            click.echo(schedule.id)
            found += 1
    if not found:
        click.echo("No calendar sync schedules found.")


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except RPCError as e:
        logger.error(f"Temporal request failed: {e}", exc_info=True)
        click.echo(f"Temporal request failed: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--config", "config_path", default=None, help="Settings file")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str]) -> None:
    """Manage periodic calendar sync via Temporal schedules."""
    setup_logging()
    try:
        ctx.obj = load_settings(config_path)
    except CalendarSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--user-id", required=True)
@click.option(
    "--provider",
    type=click.Choice([p.value for p in Provider]),
    required=True,
)
@click.option(
    "--interval-minutes",
    default=15,
    type=click.IntRange(min=1),
    help="Sync interval in minutes",
)
@click.option("--calendar-id", default=None, help="Remote calendar to pull")
@click.pass_obj
def start(
    settings: SyncSettings,
    user_id: str,
    provider: str,
    interval_minutes: int,
    calendar_id: Optional[str],
) -> None:
    """Create a scheduled sync for one user and provider."""
    _run(
        _create_schedule(
            settings, user_id, provider, interval_minutes, calendar_id
        )
    )


@cli.command()
@click.option("--user-id", required=True)
@click.option(
    "--provider",
    type=click.Choice([p.value for p in Provider]),
    required=True,
)
@click.pass_obj
def stop(settings: SyncSettings, user_id: str, provider: str) -> None:
    """Delete the scheduled sync for one user and provider."""
    _run(_delete_schedule(settings, user_id, provider))


@cli.command()
@click.pass_obj
def status(settings: SyncSettings) -> None:
    """List calendar sync schedules."""
    _run(_list_schedules(settings))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
