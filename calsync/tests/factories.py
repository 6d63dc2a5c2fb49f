"""
Test object factories for calendar sync domain models.

These factories provide minimal test objects with sensible defaults and
easy customization for specific test scenarios.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from calsync.domain import (
    Activity,
    ActivityPriority,
    ActivityType,
    CredentialRecord,
    CredentialStatus,
    NewActivity,
    Provider,
    RemoteEvent,
)

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def fixed_clock(now: datetime = NOW):
    """A clock callable that always returns the same instant."""
    return lambda: now


def minimal_new_activity(
    user_id: str = "user-1",
    title: str = "Test Activity",
    start_time: Optional[datetime] = None,
    **fields,
) -> NewActivity:
    return NewActivity(
        user_id=user_id,
        title=title,
        start_time=start_time or NOW + timedelta(days=1),
        **fields,
    )


def minimal_activity(
    activity_id: str = "activity-1",
    user_id: str = "user-1",
    title: str = "Test Activity",
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    type: ActivityType = ActivityType.TASK,
    priority: Optional[ActivityPriority] = None,
    google_event_id: Optional[str] = None,
    google_calendar_id: Optional[str] = None,
    outlook_event_id: Optional[str] = None,
    **fields,
) -> Activity:
    """
    Create a minimal Activity with sensible defaults.

    Start time defaults to one day after NOW; end time stays unset so the
    one-hour default applies when pushing.
    """
    return Activity(
        activity_id=activity_id,
        user_id=user_id,
        title=title,
        start_time=start_time or NOW + timedelta(days=1),
        end_time=end_time,
        type=type,
        priority=priority,
        google_event_id=google_event_id,
        google_calendar_id=google_calendar_id,
        outlook_event_id=outlook_event_id,
        **fields,
    )


def minimal_remote_event(
    event_id: str = "remote-1",
    provider: Provider = Provider.GOOGLE,
    title: str = "Remote Event",
    start_time: Optional[datetime] = NOW,
    end_time: Optional[datetime] = None,
    calendar_id: Optional[str] = "primary",
    importance: Optional[str] = None,
    **fields,
) -> RemoteEvent:
    if end_time is None and start_time is not None:
        end_time = start_time + timedelta(hours=1)
    return RemoteEvent(
        event_id=event_id,
        provider=provider,
        title=title,
        start_time=start_time,
        end_time=end_time,
        calendar_id=calendar_id,
        importance=importance,
        **fields,
    )


def minimal_credential(
    user_id: str = "user-1",
    provider: Provider = Provider.GOOGLE,
    access_token: Optional[str] = "access-token",
    refresh_token: Optional[str] = "refresh-token",
    expiry: Optional[datetime] = None,
    status: CredentialStatus = CredentialStatus.VALID,
) -> CredentialRecord:
    if expiry is None and access_token:
        expiry = NOW + timedelta(hours=1)
    return CredentialRecord(
        user_id=user_id,
        provider=provider,
        access_token=access_token,
        refresh_token=refresh_token,
        expiry=expiry,
        status=status,
    )
