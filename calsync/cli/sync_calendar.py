#!/usr/bin/env python3
"""
CLI for connecting calendar providers and triggering sync.

Runs the sync service in-process by default; ``sync-now --via-temporal``
starts the CalendarSyncWorkflow on a worker instead.
"""

import asyncio
import logging
import sys
from typing import Optional

import click

from calsync.bootstrap import open_service
from calsync.config import load_settings
from calsync.domain import Provider
from calsync.errors import CalendarSyncError
from calsync.worker import (
    get_temporal_client_with_retries,
    setup_logging,
    start_sync_workflow,
)

logger = logging.getLogger(__name__)

PROVIDER_CHOICE = click.Choice([p.value for p in Provider])


def _run(ctx: click.Context, action) -> None:
    """Open the service, run an async action with it, map errors to exit 1."""

    async def runner():
        async with open_service(ctx.obj["settings"]) as service:
            return await action(service)

    try:
        asyncio.run(runner())
    except CalendarSyncError as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    help="Settings file (defaults to CALSYNC_CONFIG or "
    "~/.config/calendar-sync/settings.yaml)",
)
@click.option("--user-id", required=True, help="User whose calendars to use")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], user_id: str) -> None:
    """Connect calendar providers and sync activities."""
    setup_logging()
    try:
        settings = load_settings(config_path)
    except CalendarSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    ctx.obj = {"settings": settings, "user_id": user_id}


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
@click.pass_context
def authorize(ctx: click.Context, provider: str) -> None:
    """Print the URL that grants calendar access."""
    user_id = ctx.obj["user_id"]

    async def action(service):
        url = await service.authorize(user_id, provider)
        click.echo(f"Open this URL to connect {provider}:")
        click.echo(url)

    _run(ctx, action)


@cli.command("complete-auth")
@click.argument("provider", type=PROVIDER_CHOICE)
@click.argument("code")
@click.pass_context
def complete_auth(ctx: click.Context, provider: str, code: str) -> None:
    """Exchange the authorization code from the redirect."""
    user_id = ctx.obj["user_id"]

    async def action(service):
        await service.complete_auth(code, user_id, provider)
        click.echo(f"Connected {provider} for {user_id}")

    _run(ctx, action)


@cli.command("sync-now")
@click.argument("provider", type=PROVIDER_CHOICE)
@click.option("--calendar-id", default=None, help="Remote calendar to pull")
@click.option(
    "--via-temporal",
    is_flag=True,
    help="Run the pass as a workflow on a calendar sync worker",
)
@click.pass_context
def sync_now(
    ctx: click.Context,
    provider: str,
    calendar_id: Optional[str],
    via_temporal: bool,
) -> None:
    """Pull remote events into local activities."""
    user_id = ctx.obj["user_id"]
    settings = ctx.obj["settings"]

    if via_temporal:
        outcome = asyncio.run(
            _sync_via_temporal(settings, user_id, provider, calendar_id)
        )
    else:
        result = {}

        async def action(service):
            result["outcome"] = await service.sync_now(
                user_id, provider, calendar_id
            )

        _run(ctx, action)
        outcome = result["outcome"]

    click.echo(outcome.user_message)
    if not outcome.ok:
        logger.warning(
            "Sync did not complete",
            extra={
                "user_id": user_id,
                "provider": provider,
                "error_kind": outcome.kind.value,
            },
        )
        sys.exit(1)
    click.echo(
        f"Imported {outcome.created_count} new activities "
        f"({outcome.skipped_count} skipped)"
    )


async def _sync_via_temporal(settings, user_id, provider, calendar_id):
    client = await get_temporal_client_with_retries(
        settings.temporal_address, attempts=3, delay=2
    )
    handle = await start_sync_workflow(
        client,
        user_id,
        provider,
        task_queue=settings.task_queue,
        calendar_id=calendar_id,
    )
    click.echo(f"Workflow ID: {handle.id}")
    return await handle.result()


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
@click.pass_context
def disconnect(ctx: click.Context, provider: str) -> None:
    """Forget the stored credential for a provider."""
    user_id = ctx.obj["user_id"]

    async def action(service):
        await service.disconnect(user_id, provider)
        click.echo(f"Disconnected {provider} for {user_id}")

    _run(ctx, action)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show which providers are connected."""
    user_id = ctx.obj["user_id"]

    async def action(service):
        statuses = await service.status(user_id)
        if not statuses:
            click.echo("No calendar providers are configured.")
            return
        for connection in statuses:
            if not connection.connected:
                click.echo(f"{connection.provider.value}: not connected")
                continue
            expiry = (
                connection.expiry.isoformat() if connection.expiry else "-"
            )
            click.echo(
                f"{connection.provider.value}: connected "
                f"({connection.status.value}, token expires {expiry})"
            )

    _run(ctx, action)


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
@click.pass_context
def calendars(ctx: click.Context, provider: str) -> None:
    """List the remote calendars the user can see."""
    user_id = ctx.obj["user_id"]

    async def action(service):
        remote_calendars = await service.list_calendars(user_id, provider)
        if not remote_calendars:
            click.echo("No calendars found.")
            return
        for calendar in remote_calendars:
            marker = "*" if calendar.primary else " "
            click.echo(
                f"{marker} {calendar.calendar_id}  {calendar.summary}  "
                f"[{calendar.access_role}]"
            )

    _run(ctx, action)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
