"""
Microsoft Graph implementation of the ProviderCalendarRepository protocol.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

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

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"


def _graph_datetime(value: datetime) -> str:
    """Graph expects a wall-clock time paired with a separate timeZone."""
    return value.astimezone(timezone.utc).replace(tzinfo=None).isoformat()


def _parse_graph_time(time_data: Optional[Dict[str, str]]) -> Optional[datetime]:
    if not time_data or not time_data.get("dateTime"):
        return None
    dt_str = time_data["dateTime"]
    if dt_str.endswith("Z"):
        dt_str = dt_str[:-1]
    # Graph returns up to seven fractional digits
    if "." in dt_str:
        head, fraction = dt_str.split(".", 1)
        dt_str = f"{head}.{fraction[:6]}"
    parsed = datetime.fromisoformat(dt_str)
    if parsed.tzinfo is None and time_data.get("timeZone", "UTC") == "UTC":
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def activity_to_graph_event(activity: Activity) -> Dict[str, Any]:
    """Translate an activity into a Graph event payload."""
    return {
        "subject": activity.title,
        "body": {
            "contentType": "Text",
            "content": activity.description or "",
        },
        "start": {
            "dateTime": _graph_datetime(activity.start_time),
            "timeZone": "UTC",
        },
        "end": {
            "dateTime": _graph_datetime(activity.effective_end_time()),
            "timeZone": "UTC",
        },
        "location": {"displayName": activity.location or ""},
        "importance": (
            "high" if activity.priority == ActivityPriority.HIGH else "normal"
        ),
    }


def graph_event_to_remote_event(item: Dict[str, Any]) -> RemoteEvent:
    """Converts a Graph event resource to a RemoteEvent."""
    start = item.get("start") or {}
    return RemoteEvent(
        event_id=item["id"],
        provider=Provider.OUTLOOK,
        title=item.get("subject") or "No Title",
        description=(item.get("body") or {}).get("content"),
        start_time=_parse_graph_time(start),
        end_time=_parse_graph_time(item.get("end")),
        time_zone=start.get("timeZone"),
        location=(item.get("location") or {}).get("displayName") or None,
        importance=item.get("importance"),
    )


class OutlookCalendarRepository(ProviderCalendarRepository):
    """
    Reads and writes events through Microsoft Graph using bearer tokens.

    Without a calendar id the user's default calendar (/me/events) is used.
    """

    provider = Provider.OUTLOOK

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = GRAPH_BASE_URL,
        timeout: float = 30.0,
    ):
        self._http_client = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _events_path(self, calendar_id: Optional[str]) -> str:
        if calendar_id:
            return f"{self._base_url}/me/calendars/{calendar_id}/events"
        return f"{self._base_url}/me/events"

    async def push(
        self,
        access_token: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> str:
        response = await self._request(
            "POST",
            self._events_path(calendar_id),
            access_token,
            operation="create",
            json_data=activity_to_graph_event(activity),
        )
        event_id = response.json().get("id")
        if not event_id:
            raise RemoteCallFailed(
                self.provider, "create", "response carried no event id"
            )
        logger.info(
            "Created Outlook event",
            extra={"activity_id": activity.activity_id, "event_id": event_id},
        )
        return event_id

    async def update(
        self,
        access_token: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> bool:
        if not activity.outlook_event_id:
            return False
        await self._request(
            "PATCH",
            f"{self._base_url}/me/events/{activity.outlook_event_id}",
            access_token,
            operation="update",
            json_data=activity_to_graph_event(activity),
        )
        logger.info(
            "Updated Outlook event",
            extra={
                "activity_id": activity.activity_id,
                "event_id": activity.outlook_event_id,
            },
        )
        return True

    async def delete(
        self,
        access_token: str,
        remote_event_id: str,
        calendar_id: Optional[str] = None,
    ) -> bool:
        try:
            await self._request(
                "DELETE",
                f"{self._base_url}/me/events/{remote_event_id}",
                access_token,
                operation="delete",
            )
        except RemoteCallFailed as e:
            if e.status_code in (404, 410):
                logger.info(
                    "Outlook event already deleted",
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
        """Fetch events in the window, following @odata.nextLink pages."""
        params: Optional[Dict[str, str]] = {
            "$filter": (
                f"start/dateTime ge '{_graph_datetime(start)}' and "
                f"start/dateTime lt '{_graph_datetime(end)}'"
            ),
            "$orderby": "start/dateTime",
        }
        url: Optional[str] = self._events_path(calendar_id)
        events: List[RemoteEvent] = []

        while url:
            response = await self._request(
                "GET", url, access_token, operation="list", params=params
            )
            body = response.json()
            for item in body.get("value", []):
                if not item.get("id"):
                    continue
                try:
                    events.append(graph_event_to_remote_event(item))
                except ValueError as e:
                    logger.debug(
                        f"Skipping malformed event {item.get('id')}: {e}"
                    )
            # nextLink already carries the query
            url = body.get("@odata.nextLink")
            params = None

        logger.debug(
            "Listed Outlook events",
            extra={"calendar_id": calendar_id, "event_count": len(events)},
        )
        return events

    async def list_calendars(self, access_token: str) -> List[RemoteCalendar]:
        url: Optional[str] = f"{self._base_url}/me/calendars"
        calendars: List[RemoteCalendar] = []
        while url:
            response = await self._request(
                "GET", url, access_token, operation="calendar_list"
            )
            body = response.json()
            for item in body.get("value", []):
                calendars.append(
                    RemoteCalendar(
                        calendar_id=item.get("id", ""),
                        summary=item.get("name", ""),
                        primary=bool(item.get("isDefaultCalendar", False)),
                        access_role=(
                            "owner" if item.get("canEdit") else "reader"
                        ),
                    )
                )
            url = body.get("@odata.nextLink")
        return calendars

    async def _request(
        self,
        method: str,
        url: str,
        access_token: str,
        operation: str,
        params: Optional[Dict[str, str]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Prefer": 'outlook.timezone="UTC"',
        }
        try:
            response = await self._client().request(
                method, url, headers=headers, params=params, json=json_data
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Graph request failed: {type(e).__name__}: {e}",
                extra={"operation": operation, "method": method},
            )
            raise RemoteCallFailed(self.provider, operation, str(e)) from e

        if response.status_code >= 400:
            try:
                error = response.json().get("error", {})
                message = error.get("message") or response.text
            except ValueError:
                message = response.text
            logger.error(
                "Graph API returned an error",
                extra={
                    "operation": operation,
                    "method": method,
                    "status_code": response.status_code,
                },
            )
            raise RemoteCallFailed(
                self.provider, operation, message, response.status_code
            )
        return response
