"""Local storage implementations of calendar sync repositories."""

from .activity import LocalActivityRepository
from .credential import LocalCredentialRepository

__all__ = [
    "LocalActivityRepository",
    "LocalCredentialRepository",
]
