"""
Google Calendar implementation of the ProviderCalendarRepository protocol.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError

from calsync.domain import (
    Activity,
    Provider,
    RemoteCalendar,
    RemoteEvent,
)
from calsync.errors import RemoteCallFailed
from calsync.repositories import ProviderCalendarRepository

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_ID = "primary"


def build_google_calendar_service(access_token: str) -> Resource:
    """Build a Calendar v3 client authorized with a bearer token."""
    creds = Credentials(token=access_token)
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def _parse_datetime(time_data: Dict[str, str]) -> Optional[datetime]:
    """
    Parses Google's event time. Returns None for all-day events, which
    carry only a date and have no start instant.
    """
    dt_str = time_data.get("dateTime")
    if dt_str is None:
        return None
    if dt_str.endswith("Z"):
        dt_str = dt_str[:-1] + "+00:00"
    return datetime.fromisoformat(dt_str)


def _to_utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def activity_to_google_event(activity: Activity) -> Dict[str, Any]:
    """Translate an activity into a Google Calendar event resource."""
    return {
        "summary": activity.title,
        "description": activity.description or None,
        "location": activity.location or None,
        "start": {
            "dateTime": _to_utc_iso(activity.start_time),
            "timeZone": "UTC",
        },
        "end": {
            "dateTime": _to_utc_iso(activity.effective_end_time()),
            "timeZone": "UTC",
        },
    }


def google_event_to_remote_event(
    item: Dict[str, Any], calendar_id: str
) -> RemoteEvent:
    """Converts a Google Calendar API event resource to a RemoteEvent."""
    start = item.get("start", {})
    return RemoteEvent(
        event_id=item["id"],
        provider=Provider.GOOGLE,
        calendar_id=calendar_id,
        title=item.get("summary") or "No Title",
        description=item.get("description"),
        start_time=_parse_datetime(start),
        end_time=_parse_datetime(item.get("end", {})),
        time_zone=start.get("timeZone"),
        location=item.get("location"),
    )


class GoogleCalendarRepository(ProviderCalendarRepository):
    """
    Reads and writes events through the Google Calendar v3 API.
    """

    provider = Provider.GOOGLE

    def __init__(
        self,
        service_factory: Optional[Callable[[str], Resource]] = None,
        default_calendar_id: str = DEFAULT_CALENDAR_ID,
    ):
        self._service_factory = (
            service_factory or build_google_calendar_service
        )
        self._default_calendar_id = default_calendar_id

    def _calendar(self, calendar_id: Optional[str]) -> str:
        return calendar_id or self._default_calendar_id

    async def push(
        self,
        access_token: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> str:
        calendar_id = self._calendar(calendar_id)
        service = self._service_factory(access_token)
        request = service.events().insert(
            calendarId=calendar_id,
            body=activity_to_google_event(activity),
        )
        created = await self._execute_request(request, "insert")
        event_id = created.get("id") if created else None
        if not event_id:
            raise RemoteCallFailed(
                self.provider, "insert", "response carried no event id"
            )
        logger.info(
            "Created Google Calendar event",
            extra={
                "activity_id": activity.activity_id,
                "calendar_id": calendar_id,
                "event_id": event_id,
            },
        )
        return event_id

    async def update(
        self,
        access_token: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> bool:
        if not activity.google_event_id:
            return False
        calendar_id = self._calendar(
            calendar_id or activity.google_calendar_id
        )
        service = self._service_factory(access_token)
        request = service.events().update(
            calendarId=calendar_id,
            eventId=activity.google_event_id,
            body=activity_to_google_event(activity),
        )
        await self._execute_request(request, "update")
        logger.info(
            "Updated Google Calendar event",
            extra={
                "activity_id": activity.activity_id,
                "event_id": activity.google_event_id,
            },
        )
        return True

    async def delete(
        self,
        access_token: str,
        remote_event_id: str,
        calendar_id: Optional[str] = None,
    ) -> bool:
        calendar_id = self._calendar(calendar_id)
        service = self._service_factory(access_token)
        request = service.events().delete(
            calendarId=calendar_id, eventId=remote_event_id
        )
        try:
            await self._execute_request(request, "delete")
        except RemoteCallFailed as e:
            if e.status_code in (404, 410):
                logger.info(
                    "Google Calendar event already deleted",
                    extra={"event_id": remote_event_id},
                )
                return False
            raise
        return True

    async def list_events(
        self,
        access_token: str,
        start: datetime,
        end: datetime,
        calendar_id: Optional[str] = None,
    ) -> List[RemoteEvent]:
        """Fetch every single-instance event starting inside the window."""
        calendar_id = self._calendar(calendar_id)
        service = self._service_factory(access_token)
        events: List[RemoteEvent] = []
        page_token = None

        while True:
            request = service.events().list(
                calendarId=calendar_id,
                timeMin=_to_utc_iso(start),
                timeMax=_to_utc_iso(end),
                singleEvents=True,
                orderBy="startTime",
                pageToken=page_token,
            )
            events_result = await self._execute_request(request, "list")

            for item in events_result.get("items", []):
                if item.get("status") == "cancelled" or not item.get("id"):
                    continue
                try:
                    event = google_event_to_remote_event(item, calendar_id)
                except ValueError as e:
                    logger.debug(
                        f"Skipping malformed event {item.get('id')}: {e}"
                    )
                    continue
                # timeMin/timeMax match on overlap; keep events that start
                # inside the window
                if event.start_time is not None and not (
                    start <= event.start_time <= end
                ):
                    continue
                events.append(event)

            page_token = events_result.get("nextPageToken")
            if not page_token:
                break

        logger.debug(
            "Listed Google Calendar events",
            extra={"calendar_id": calendar_id, "event_count": len(events)},
        )
        return events

    async def list_calendars(self, access_token: str) -> List[RemoteCalendar]:
        service = self._service_factory(access_token)
        calendars: List[RemoteCalendar] = []
        page_token = None

        while True:
            request = service.calendarList().list(pageToken=page_token)
            result = await self._execute_request(request, "calendar_list")
            for item in result.get("items", []):
                calendars.append(
                    RemoteCalendar(
                        calendar_id=item.get("id", ""),
                        summary=item.get("summary", ""),
                        description=item.get("description"),
                        primary=bool(item.get("primary", False)),
                        access_role=item.get("accessRole", ""),
                    )
                )
            page_token = result.get("nextPageToken")
            if not page_token:
                break
        return calendars

    async def _execute_request(self, request: Any, operation: str) -> Any:
        """Execute a blocking Google API client request off the loop."""
        try:
            return await asyncio.to_thread(request.execute)
        except HttpError as e:
            status = getattr(e.resp, "status", None)
            logger.error(
                f"Google API request failed: HttpError: {e}",
                extra={
                    "operation": operation,
                    "status_code": status,
                    "request_uri": getattr(request, "uri", "unknown"),
                },
            )
            raise RemoteCallFailed(
                self.provider,
                operation,
                str(e),
                status_code=int(status) if status else None,
            ) from e
        except Exception as e:
            error_type = type(e).__name__
            logger.error(
                f"Google API request failed: {error_type}: {str(e)}",
                extra={
                    "operation": operation,
                    "error_type": error_type,
                    "request_uri": getattr(request, "uri", "unknown"),
                },
                exc_info=True,
            )
            raise RemoteCallFailed(self.provider, operation, str(e)) from e
