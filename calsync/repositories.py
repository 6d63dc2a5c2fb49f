"""
Defines the repository protocols for calendar sync.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .domain import (
    Activity,
    CredentialRecord,
    CredentialStatus,
    NewActivity,
    Provider,
    RemoteCalendar,
    RemoteEvent,
    TokenGrant,
)


@runtime_checkable
class ActivityRepository(Protocol):
    """
    Protocol for the store that exclusively owns Activity persistence.

    get_activities must return the user's complete activity set; the
    at-most-once check during a pull depends on it not being truncated.
    """

    async def get_activities(self, user_id: str) -> List[Activity]:
        """Retrieves every activity owned by a user."""
        ...

    async def get_activity(self, activity_id: str) -> Optional[Activity]:
        """Retrieves a single activity by id."""
        ...

    async def create_activity(self, data: NewActivity) -> Activity:
        """Persists a new activity and returns it with its id."""
        ...

    async def update_activity(
        self, activity_id: str, changes: Dict[str, Any]
    ) -> Optional[Activity]:
        """Applies a partial update. Returns None if the id is unknown."""
        ...

    async def delete_activity(self, activity_id: str) -> bool:
        """Deletes an activity. Returns False if the id is unknown."""
        ...


@runtime_checkable
class CredentialRepository(Protocol):
    """
    Protocol for per-user, per-provider credential persistence.
    """

    async def get_credential(
        self, user_id: str, provider: Provider
    ) -> Optional[CredentialRecord]:
        ...

    async def set_credential(
        self,
        user_id: str,
        provider: Provider,
        access_token: str,
        refresh_token: Optional[str],
        expiry: datetime,
    ) -> None:
        """
        Creates or replaces the credential, marking it valid.
        """
        ...

    async def set_status(
        self, user_id: str, provider: Provider, status: CredentialStatus
    ) -> None:
        """Updates only the status of an existing credential."""
        ...

    async def clear_credential(self, user_id: str, provider: Provider) -> None:
        """Removes the credential (explicit disconnect)."""
        ...


@runtime_checkable
class OAuthClientRepository(Protocol):
    """
    Protocol for a provider's OAuth authorization server.

    Implementations expose the Provider they talk to as ``provider``.
    """

    async def authorization_url(self, state: str) -> str:
        """Builds the URL the user visits to grant access."""
        ...

    async def exchange_code(self, code: str) -> TokenGrant:
        """
        Exchanges an authorization code for tokens.

        Raises AuthorizationFailed if the provider rejects the code.
        """
        ...

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """
        Exchanges a refresh token for a new access token.

        Raises TokenRefreshRejected if the provider rejects the refresh
        token, RemoteCallFailed on any other failure.
        """
        ...


@runtime_checkable
class ProviderCalendarRepository(Protocol):
    """
    Protocol for one remote provider's calendar API.

    Implementations translate between Activity and the provider's wire
    format. Access tokens are passed per call so a single instance serves
    every user. Failures raise RemoteCallFailed. Implementations expose
    the Provider they talk to as ``provider``.
    """

    async def push(
        self,
        access_token: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> str:
        """Creates a remote event and returns its identifier."""
        ...

    async def update(
        self,
        access_token: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> bool:
        """
        Updates the remote event correlated with the activity. Returns False
        without calling the provider if there is no correlation id.
        """
        ...

    async def delete(
        self,
        access_token: str,
        remote_event_id: str,
        calendar_id: Optional[str] = None,
    ) -> bool:
        """
        Deletes a remote event. Returns False if it was already gone.
        """
        ...

    async def list_events(
        self,
        access_token: str,
        start: datetime,
        end: datetime,
        calendar_id: Optional[str] = None,
    ) -> List[RemoteEvent]:
        """Lists every event starting inside the window, across pages."""
        ...

    async def list_calendars(self, access_token: str) -> List[RemoteCalendar]:
        """Lists the calendars the user can see."""
        ...
