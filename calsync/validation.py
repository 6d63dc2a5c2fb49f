"""
Runtime validation of repository implementations against their protocols.

Use cases call these at construction time so that a misconfigured wiring
fails early instead of on the first sync pass. The checks rely on
@runtime_checkable protocols and Python's built-in isinstance().
"""

from typing import Type, TypeVar
import logging

from .errors import CalendarSyncError
from .repositories import (
    ActivityRepository,
    CredentialRepository,
    OAuthClientRepository,
    ProviderCalendarRepository,
)

logger = logging.getLogger(__name__)

P = TypeVar("P")


class RepositoryValidationError(CalendarSyncError):
    """Raised when repository contract validation fails"""

    pass


def validate_repository_protocol(
    repository: object, protocol: Type[P]
) -> None:
    """
    Validate that a repository implementation satisfies a protocol contract.

    Raises:
        RepositoryValidationError: If validation fails
    """
    if not isinstance(repository, protocol):
        logger.error(
            "Repository protocol validation failed",
            extra={
                "repository_type": type(repository).__name__,
                "protocol_name": protocol.__name__,
            },
        )
        raise RepositoryValidationError(
            f"Repository {type(repository).__name__} does not implement "
            f"{protocol.__name__} protocol. Missing or incorrect methods."
        )

    logger.debug(
        "Repository protocol validation passed",
        extra={
            "repository_type": type(repository).__name__,
            "protocol_name": protocol.__name__,
        },
    )


def ensure_repository_protocol(repository: object, protocol: Type[P]) -> P:
    """Validate and return a repository with proper type annotation."""
    validate_repository_protocol(repository, protocol)
    return repository  # type: ignore[return-value]


def ensure_activity_repository(repo: object) -> ActivityRepository:
    return ensure_repository_protocol(repo, ActivityRepository)


def ensure_credential_repository(repo: object) -> CredentialRepository:
    return ensure_repository_protocol(repo, CredentialRepository)


def ensure_oauth_client_repository(repo: object) -> OAuthClientRepository:
    return ensure_repository_protocol(repo, OAuthClientRepository)


def ensure_provider_calendar_repository(
    repo: object,
) -> ProviderCalendarRepository:
    return ensure_repository_protocol(repo, ProviderCalendarRepository)
