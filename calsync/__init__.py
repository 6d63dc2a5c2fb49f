"""
Calendar sync package.

Keeps locally owned activities in step with Google Calendar and Outlook,
following Clean Architecture principles: use cases depend on repository
protocols, and provider, storage and Temporal code lives at the edges.
"""

from .domain import (
    Activity,
    ActivityPriority,
    ActivityStatus,
    ActivityType,
    ConnectionStatus,
    CredentialRecord,
    CredentialStatus,
    NewActivity,
    Provider,
    RemoteCalendar,
    RemoteEvent,
    SyncOutcome,
    SyncOutcomeKind,
    SyncWindow,
    TokenGrant,
)
from .errors import (
    AuthorizationFailed,
    CalendarSyncError,
    ConfigurationError,
    NotConnected,
    ProviderNotConfigured,
    RemoteCallFailed,
    TokenRefreshRejected,
)
from .repositories import (
    ActivityRepository,
    CredentialRepository,
    OAuthClientRepository,
    ProviderCalendarRepository,
)
from .tokens import TokenLifecycleManager
from .usecase import CalendarSyncService, CalendarSyncUseCase, SyncLockRegistry

__all__ = [
    # Domain models
    "Activity",
    "ActivityPriority",
    "ActivityStatus",
    "ActivityType",
    "ConnectionStatus",
    "CredentialRecord",
    "CredentialStatus",
    "NewActivity",
    "Provider",
    "RemoteCalendar",
    "RemoteEvent",
    "SyncOutcome",
    "SyncOutcomeKind",
    "SyncWindow",
    "TokenGrant",
    # Errors
    "AuthorizationFailed",
    "CalendarSyncError",
    "ConfigurationError",
    "NotConnected",
    "ProviderNotConfigured",
    "RemoteCallFailed",
    "TokenRefreshRejected",
    # Repository protocols
    "ActivityRepository",
    "CredentialRepository",
    "OAuthClientRepository",
    "ProviderCalendarRepository",
    # Use cases
    "TokenLifecycleManager",
    "CalendarSyncUseCase",
    "CalendarSyncService",
    "SyncLockRegistry",
]
