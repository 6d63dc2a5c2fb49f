#!/usr/bin/env python3
"""
CLI for a calendar sync demo against in-memory providers.

Walks one user through connect, pull, push and delete for both providers
without network access. Activities and credentials are written to a local
data directory so the results can be inspected afterwards.
"""

import asyncio
import logging
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Optional

import click

from calsync.bootstrap import build_service
from calsync.config import SyncSettings
from calsync.domain import ActivityPriority, ActivityType, NewActivity, Provider
from calsync.repos.local.activity import LocalActivityRepository
from calsync.repos.local.credential import LocalCredentialRepository
from calsync.repos.mock.calendar import MockProviderCalendarRepository
from calsync.repos.mock.oauth import MockOAuthClient
from calsync.worker import setup_logging

logger = logging.getLogger(__name__)


async def run_demo(data_dir: str, user_id: str) -> None:
    settings = SyncSettings()
    activity_repo = LocalActivityRepository(data_dir)
    credential_repo = LocalCredentialRepository(data_dir)

    provider_clients = {}
    for provider in Provider:
        calendar = MockProviderCalendarRepository(provider=provider)
        calendar.seed_sample_events()
        provider_clients[provider] = (MockOAuthClient(provider), calendar)

    service = build_service(
        settings, activity_repo, credential_repo, provider_clients
    )

    click.echo("1. Connecting providers")
    for provider in Provider:
        click.echo(f"   {await service.authorize(user_id, provider)}")
        await service.complete_auth("demo-code", user_id, provider)

    click.echo("2. Pulling remote events")
    for provider in Provider:
        outcome = await service.sync_now(user_id, provider)
        click.echo(
            f"   {provider.value}: {outcome.user_message} "
            f"({outcome.created_count} imported, "
            f"{outcome.skipped_count} skipped)"
        )

    click.echo("3. Pulling again imports nothing new")
    for provider in Provider:
        outcome = await service.sync_now(user_id, provider)
        click.echo(f"   {provider.value}: {outcome.created_count} imported")

    click.echo("4. Creating and pushing a local activity")
    start = datetime.now(timezone.utc).replace(
        minute=0, second=0, microsecond=0
    ) + timedelta(days=1)
    activity = await activity_repo.create_activity(
        NewActivity(
            user_id=user_id,
            title="Office hours",
            type=ActivityType.LECTURE,
            start_time=start,
            priority=ActivityPriority.HIGH,
        )
    )
    for outcome in await service.activity_created(user_id, activity):
        click.echo(f"   {outcome.provider.value}: {outcome.pushed_event_id}")

    click.echo("5. Deleting it everywhere")
    for outcome in await service.activity_deleted(
        user_id, activity.activity_id
    ):
        click.echo(f"   {outcome.provider.value}: {outcome.user_message}")

    click.echo()
    click.echo(f"Activities for {user_id}:")
    for stored in await activity_repo.get_activities(user_id):
        click.echo(
            f"   {stored.start_time:%a %H:%M}  {stored.title:<25} "
            f"{stored.type.value:<8} "
            f"{(stored.priority.value if stored.priority else '-'):<7}"
        )
    click.echo(f"Data written to {data_dir}")


@click.command()
@click.option("--user-id", default="demo-user", help="User to sync as")
@click.option(
    "--data-dir",
    default=None,
    help="Directory for activities and credentials (defaults to a "
    "temporary directory)",
)
def main(user_id: str, data_dir: Optional[str]) -> None:
    """Run the calendar sync demo against mock providers."""
    setup_logging()
    asyncio.run(run_demo(data_dir or tempfile.mkdtemp(), user_id))


if __name__ == "__main__":
    main()
