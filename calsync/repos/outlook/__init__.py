"""Microsoft Graph calendar and identity platform implementations."""

from .calendar import OutlookCalendarRepository
from .oauth import OutlookOAuthClient

__all__ = [
    "OutlookCalendarRepository",
    "OutlookOAuthClient",
]
