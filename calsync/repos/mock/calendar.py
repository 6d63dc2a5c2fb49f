"""
In-memory provider calendar for demos and round-trip tests.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from calsync.domain import (
    Activity,
    ActivityPriority,
    Provider,
    RemoteCalendar,
    RemoteEvent,
)
from calsync.errors import RemoteCallFailed
from calsync.repositories import ProviderCalendarRepository

logger = logging.getLogger(__name__)


class MockProviderCalendarRepository(ProviderCalendarRepository):
    """
    Behaves like a remote calendar: events live in a dict keyed by
    (calendar id, event id) and vanish when the process exits.

    Any token works unless ``valid_tokens`` is given. Setting
    ``fail_next`` makes the following call raise RemoteCallFailed once.
    """

    def __init__(
        self,
        provider: Provider = Provider.GOOGLE,
        default_calendar_id: str = "primary",
        valid_tokens: Optional[List[str]] = None,
    ):
        self.provider = provider
        self._default_calendar_id = default_calendar_id
        self._valid_tokens = valid_tokens
        self._events: Dict[str, Dict[str, RemoteEvent]] = {
            default_calendar_id: {}
        }
        self.fail_next: Optional[str] = None
        self.calls: List[str] = []

    def _check(self, access_token: str, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_next is not None:
            message, self.fail_next = self.fail_next, None
            raise RemoteCallFailed(self.provider, operation, message, 503)
        if self._valid_tokens is not None and (
            access_token not in self._valid_tokens
        ):
            raise RemoteCallFailed(
                self.provider, operation, "invalid credentials", 401
            )

    def _calendar(self, calendar_id: Optional[str]) -> Dict[str, RemoteEvent]:
        return self._events.setdefault(
            calendar_id or self._default_calendar_id, {}
        )

    def add_event(
        self,
        title: str,
        start_time: Optional[datetime],
        event_id: Optional[str] = None,
        calendar_id: Optional[str] = None,
        **fields,
    ) -> RemoteEvent:
        """Seed an event as if another client had created it remotely."""
        event = RemoteEvent(
            event_id=event_id or f"mock-{uuid.uuid4().hex[:12]}",
            provider=self.provider,
            calendar_id=calendar_id or self._default_calendar_id,
            title=title,
            start_time=start_time,
            end_time=fields.pop(
                "end_time",
                start_time + timedelta(hours=1) if start_time else None,
            ),
            **fields,
        )
        self._calendar(calendar_id)[event.event_id] = event
        return event

    def seed_sample_events(self, now: Optional[datetime] = None) -> None:
        """A small realistic week for the demo CLI."""
        base = (now or datetime.now(timezone.utc)).replace(
            hour=9, minute=0, second=0, microsecond=0
        )
        self.add_event("Linear Algebra Lecture", base, location="Room 204")
        self.add_event(
            "Study group",
            base + timedelta(days=1, hours=6),
            description="Problem set 3",
        )
        self.add_event(
            "Chess club",
            base + timedelta(days=2, hours=9),
            importance="high",
        )
        # all-day entries have no start instant
        self.add_event("Reading week", None)

    def get_event(
        self, event_id: str, calendar_id: Optional[str] = None
    ) -> Optional[RemoteEvent]:
        return self._calendar(calendar_id).get(event_id)

    def _to_remote(
        self, activity: Activity, event_id: str, calendar_id: str
    ) -> RemoteEvent:
        return RemoteEvent(
            event_id=event_id,
            provider=self.provider,
            calendar_id=calendar_id,
            title=activity.title,
            description=activity.description,
            start_time=activity.start_time,
            end_time=activity.effective_end_time(),
            time_zone="UTC",
            location=activity.location,
            importance=(
                "high"
                if activity.priority == ActivityPriority.HIGH
                else "normal"
            ),
        )

    async def push(
        self,
        access_token: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> str:
        self._check(access_token, "insert")
        calendar_id = calendar_id or self._default_calendar_id
        event_id = f"mock-{uuid.uuid4().hex[:12]}"
        self._calendar(calendar_id)[event_id] = self._to_remote(
            activity, event_id, calendar_id
        )
        logger.debug(
            "Mock event created",
            extra={"event_id": event_id, "calendar_id": calendar_id},
        )
        return event_id

    async def update(
        self,
        access_token: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> bool:
        event_id = activity.remote_event_id(self.provider)
        if not event_id:
            return False
        self._check(access_token, "update")
        if calendar_id is None and self.provider == Provider.GOOGLE:
            calendar_id = activity.google_calendar_id
        calendar_id = calendar_id or self._default_calendar_id
        events = self._calendar(calendar_id)
        if event_id not in events:
            raise RemoteCallFailed(self.provider, "update", "not found", 404)
        events[event_id] = self._to_remote(activity, event_id, calendar_id)
        return True

    async def delete(
        self,
        access_token: str,
        remote_event_id: str,
        calendar_id: Optional[str] = None,
    ) -> bool:
        self._check(access_token, "delete")
        return self._calendar(calendar_id).pop(remote_event_id, None) is not None

    async def list_events(
        self,
        access_token: str,
        start: datetime,
        end: datetime,
        calendar_id: Optional[str] = None,
    ) -> List[RemoteEvent]:
        self._check(access_token, "list")
        return [
            event
            for event in self._calendar(calendar_id).values()
            if event.start_time is None or start <= event.start_time <= end
        ]

    async def list_calendars(self, access_token: str) -> List[RemoteCalendar]:
        self._check(access_token, "calendar_list")
        return [
            RemoteCalendar(
                calendar_id=calendar_id,
                summary=calendar_id,
                primary=calendar_id == self._default_calendar_id,
                access_role="owner",
            )
            for calendar_id in self._events
        ]
