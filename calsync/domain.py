"""
Calendar sync domain models.

These models represent locally owned activities, per-provider OAuth
credentials and the transient events read from remote calendars, following
the Pydantic v2 patterns used throughout the package.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum
import logging
import zoneinfo

logger = logging.getLogger(__name__)

DEFAULT_EVENT_DURATION = timedelta(hours=1)


def _ensure_aware(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=zoneinfo.ZoneInfo("UTC"))
    return v


# --- Enums ---


class Provider(str, Enum):
    """External calendar systems reachable through OAuth-protected APIs."""

    GOOGLE = "google"
    OUTLOOK = "outlook"


class ActivityType(str, Enum):
    """Local categorization of an activity. Never sent to a provider."""

    LECTURE = "lecture"
    TASK = "task"
    SOCIAL = "social"
    CLUB = "club"
    EVENT = "event"


class ActivityPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActivityStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CredentialStatus(str, Enum):
    """
    Explicit state of a stored credential.

    VALID: last authorization or refresh succeeded.
    EXPIRED: the access token is stale and the last refresh attempt failed
        for a reason that may be transient; the next call retries.
    REVOKED: the provider rejected the refresh token; the user has to
        authorize again.
    """

    VALID = "valid"
    EXPIRED = "expired"
    REVOKED = "revoked"


class SyncOutcomeKind(str, Enum):
    OK = "ok"
    NOT_CONNECTED = "not_connected"
    REFRESH_FAILED = "refresh_failed"
    REMOTE_CALL_FAILED = "remote_call_failed"


class TokenResolutionKind(str, Enum):
    VALID = "valid"
    NOT_CONNECTED = "not_connected"
    REFRESH_FAILED = "refresh_failed"


# --- Activities ---


class NewActivity(BaseModel):
    """Payload for creating an activity through the activity repository."""

    user_id: str
    title: str
    description: Optional[str] = None
    type: ActivityType = ActivityType.TASK
    start_time: datetime
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    priority: Optional[ActivityPriority] = None
    status: ActivityStatus = ActivityStatus.PENDING

    google_event_id: Optional[str] = Field(
        None, description="Correlation id of the Google Calendar event"
    )
    google_calendar_id: Optional[str] = Field(
        None, description="Google calendar that holds the event"
    )
    outlook_event_id: Optional[str] = Field(
        None, description="Correlation id of the Outlook event"
    )

    @field_validator("start_time", "end_time")
    @classmethod
    def ensure_timezone_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive datetimes are read as UTC."""
        return _ensure_aware(v)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip()


class Activity(NewActivity):
    """
    A locally owned schedule entry (task, lecture, social or club event).

    Holds at most one correlation identifier per provider. A non-null
    identifier means the activity was pushed to, or pulled from, that
    provider.
    """

    activity_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def remote_event_id(self, provider: Provider) -> Optional[str]:
        """Return the correlation identifier stored for a provider."""
        if provider == Provider.GOOGLE:
            return self.google_event_id
        return self.outlook_event_id

    def effective_end_time(self) -> datetime:
        """End time, defaulting to one hour after the start."""
        if self.end_time is not None:
            return self.end_time
        return self.start_time + DEFAULT_EVENT_DURATION

    @staticmethod
    def correlation_fields(
        provider: Provider,
        event_id: Optional[str],
        calendar_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Partial update that stores (or clears) a correlation id."""
        if provider == Provider.GOOGLE:
            return {
                "google_event_id": event_id,
                "google_calendar_id": calendar_id if event_id else None,
            }
        return {"outlook_event_id": event_id}


# --- Credentials ---


class TokenGrant(BaseModel):
    """Tokens returned by a provider's token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None

    @field_validator("expiry")
    @classmethod
    def ensure_timezone_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _ensure_aware(v)


class CredentialRecord(BaseModel):
    """Per user, per provider OAuth credential."""

    user_id: str
    provider: Provider
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    status: CredentialStatus = CredentialStatus.VALID
    updated_at: Optional[datetime] = None

    @field_validator("expiry", "updated_at")
    @classmethod
    def ensure_timezone_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _ensure_aware(v)

    @model_validator(mode="after")
    def access_token_requires_expiry(self) -> "CredentialRecord":
        if self.access_token and self.expiry is None:
            raise ValueError("A credential with an access token needs an expiry")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.expiry is not None and now >= self.expiry


class TokenResolution(BaseModel):
    """Result of asking for a usable access token."""

    kind: TokenResolutionKind
    access_token: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind == TokenResolutionKind.VALID


class ConnectionStatus(BaseModel):
    provider: Provider
    connected: bool
    status: Optional[CredentialStatus] = None
    expiry: Optional[datetime] = None


# --- Remote calendar data ---


class RemoteEvent(BaseModel):
    """
    Transient, provider-owned event. Only its identifier is retained
    locally after a sync pass.
    """

    event_id: str
    provider: Provider
    calendar_id: Optional[str] = None
    title: str = "No Title"
    description: Optional[str] = None
    start_time: Optional[datetime] = Field(
        None, description="Missing for all-day or malformed events"
    )
    end_time: Optional[datetime] = None
    time_zone: Optional[str] = None
    location: Optional[str] = None
    importance: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def ensure_timezone_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _ensure_aware(v)


class RemoteCalendar(BaseModel):
    calendar_id: str
    summary: str = ""
    description: Optional[str] = None
    primary: bool = False
    access_role: str = ""


class SyncWindow(BaseModel):
    """Time window, relative to now, that a pull pass lists."""

    days_back: int = Field(7, ge=0)
    days_forward: int = Field(30, ge=0)

    def bounds(self, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
        if now is None:
            now = datetime.now(timezone.utc)
        return (
            now - timedelta(days=self.days_back),
            now + timedelta(days=self.days_forward),
        )


class SyncOutcome(BaseModel):
    """Explicit result of a sync pass or a single-activity push."""

    provider: Provider
    user_id: str
    kind: SyncOutcomeKind = SyncOutcomeKind.OK
    activity_id: Optional[str] = None
    created_count: int = 0
    skipped_count: int = 0
    pushed_event_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind == SyncOutcomeKind.OK

    @property
    def user_message(self) -> str:
        """Text shown to end users; root causes stay in the logs."""
        if self.ok:
            return "Calendar sync completed"
        return "Sync failed, try again"
