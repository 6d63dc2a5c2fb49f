"""
Exceptions raised across the calendar sync core.

Missing credentials and failed refreshes are reported as outcome kinds
rather than exceptions; these classes cover the cases that propagate.
"""

from typing import Optional

from .domain import Provider


class CalendarSyncError(Exception):
    """Base class for calendar sync errors"""

    pass


class ConfigurationError(CalendarSyncError):
    """Raised when settings cannot be loaded"""

    pass


class ProviderNotConfigured(CalendarSyncError):
    """Raised when a provider has no client configuration"""

    def __init__(self, provider: str):
        super().__init__(f"Calendar provider '{provider}' is not configured")
        self.provider = provider


class NotConnected(CalendarSyncError):
    """Raised when an operation needs a token the user does not have"""

    def __init__(self, provider: Provider, user_id: str):
        super().__init__(
            f"User {user_id} is not connected to {provider.value}"
        )
        self.provider = provider
        self.user_id = user_id


class AuthorizationFailed(CalendarSyncError):
    """Raised when an authorization code cannot be exchanged for tokens"""

    def __init__(self, provider: Provider, message: str):
        super().__init__(f"{provider.value} authorization failed: {message}")
        self.provider = provider


class TokenRefreshRejected(CalendarSyncError):
    """Raised by OAuth clients when the provider rejects a refresh token"""

    def __init__(self, provider: Provider, message: str):
        super().__init__(f"{provider.value} rejected refresh token: {message}")
        self.provider = provider


class RemoteCallFailed(CalendarSyncError):
    """Raised when a call to a provider API fails"""

    def __init__(
        self,
        provider: Provider,
        operation: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        detail = f" (HTTP {status_code})" if status_code else ""
        super().__init__(
            f"{provider.value} {operation} failed{detail}: {message}"
        )
        self.provider = provider
        self.operation = operation
        self.status_code = status_code
