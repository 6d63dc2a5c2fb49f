"""PostgreSQL implementations of calendar sync repositories."""

from .activity import PostgreSQLActivityRepository
from .credential import PostgreSQLCredentialRepository
from .schema import ensure_schema

__all__ = [
    "PostgreSQLActivityRepository",
    "PostgreSQLCredentialRepository",
    "ensure_schema",
]
