"""In-memory stand-ins for remote calendar providers."""

from .calendar import MockProviderCalendarRepository
from .oauth import MockOAuthClient

__all__ = [
    "MockProviderCalendarRepository",
    "MockOAuthClient",
]
