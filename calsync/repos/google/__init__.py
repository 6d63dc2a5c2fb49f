"""Google Calendar API and OAuth implementations."""

from .calendar import GoogleCalendarRepository
from .oauth import GoogleOAuthClient

__all__ = [
    "GoogleCalendarRepository",
    "GoogleOAuthClient",
]
