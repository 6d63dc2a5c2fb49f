"""
Wires settings into repositories, token managers and the sync service.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Tuple

import asyncpg
import httpx

from .config import SyncSettings
from .domain import Provider
from .repositories import (
    ActivityRepository,
    CredentialRepository,
    OAuthClientRepository,
    ProviderCalendarRepository,
)
from .repos.google.calendar import GoogleCalendarRepository
from .repos.google.oauth import GoogleOAuthClient
from .repos.local.activity import LocalActivityRepository
from .repos.local.credential import LocalCredentialRepository
from .repos.outlook.calendar import OutlookCalendarRepository
from .repos.outlook.oauth import OutlookOAuthClient
from .repos.postgresql.activity import PostgreSQLActivityRepository
from .repos.postgresql.credential import PostgreSQLCredentialRepository
from .repos.postgresql.schema import ensure_schema
from .tokens import TokenLifecycleManager
from .usecase import CalendarSyncService, CalendarSyncUseCase, SyncLockRegistry

logger = logging.getLogger(__name__)

ProviderClients = Tuple[OAuthClientRepository, ProviderCalendarRepository]


class ServiceResources:
    """Connections opened while wiring; closed together."""

    def __init__(self):
        self.pool: Optional[asyncpg.Pool] = None
        self.http_client: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None
        if self.pool is not None:
            await self.pool.close()
            self.pool = None


async def build_stores(settings: SyncSettings, resources: ServiceResources):
    """Create the activity and credential stores for the storage backend."""
    storage = settings.storage
    if storage.backend == "postgresql":
        resources.pool = await asyncpg.create_pool(storage.database_url)
        await ensure_schema(resources.pool)
        return (
            PostgreSQLActivityRepository(resources.pool),
            PostgreSQLCredentialRepository(resources.pool),
        )

    data_dir = str(Path(storage.data_dir).expanduser())
    return (
        LocalActivityRepository(data_dir),
        LocalCredentialRepository(data_dir),
    )


def build_provider_clients(
    settings: SyncSettings, resources: ServiceResources
) -> Dict[Provider, ProviderClients]:
    """OAuth client and calendar repository for every enabled provider."""
    clients: Dict[Provider, ProviderClients] = {}
    if settings.google.enabled:
        clients[Provider.GOOGLE] = (
            GoogleOAuthClient(
                client_id=settings.google.client_id,
                client_secret=settings.google.client_secret or "",
                redirect_uri=settings.google.redirect_uri,
            ),
            GoogleCalendarRepository(
                default_calendar_id=settings.google.calendar_id
            ),
        )
    if settings.outlook.enabled:
        resources.http_client = httpx.AsyncClient(
            timeout=settings.http_timeout_seconds
        )
        clients[Provider.OUTLOOK] = (
            OutlookOAuthClient(
                client_id=settings.outlook.client_id,
                client_secret=settings.outlook.client_secret or "",
                redirect_uri=settings.outlook.redirect_uri,
                tenant_id=settings.outlook.tenant_id,
                http_client=resources.http_client,
            ),
            OutlookCalendarRepository(http_client=resources.http_client),
        )
    return clients


def build_service(
    settings: SyncSettings,
    activity_repo: ActivityRepository,
    credential_repo: CredentialRepository,
    provider_clients: Dict[Provider, ProviderClients],
) -> CalendarSyncService:
    """Assemble one token manager and use case per provider."""
    locks = SyncLockRegistry()
    usecases: List[CalendarSyncUseCase] = []
    for provider, (oauth_client, calendar_repo) in provider_clients.items():
        provider_settings = (
            settings.google if provider == Provider.GOOGLE else settings.outlook
        )
        token_manager = TokenLifecycleManager(
            provider, oauth_client, credential_repo
        )
        usecases.append(
            CalendarSyncUseCase(
                activity_repo=activity_repo,
                token_manager=token_manager,
                provider_repo=calendar_repo,
                window=provider_settings.window,
                default_calendar_id=provider_settings.calendar_id,
                locks=locks,
            )
        )
    logger.info(
        "Calendar sync service built",
        extra={
            "providers": [p.value for p in provider_clients],
            "storage_backend": settings.storage.backend,
        },
    )
    return CalendarSyncService(activity_repo, usecases)


@asynccontextmanager
async def open_service(
    settings: SyncSettings,
    activity_repo: Optional[ActivityRepository] = None,
    credential_repo: Optional[CredentialRepository] = None,
    provider_clients: Optional[Dict[Provider, ProviderClients]] = None,
) -> AsyncIterator[CalendarSyncService]:
    """
    Build the service from settings and close its connections on exit.

    Any collaborator passed in is used as-is instead of being built.
    """
    resources = ServiceResources()
    try:
        if activity_repo is None or credential_repo is None:
            built_activity, built_credential = await build_stores(
                settings, resources
            )
            activity_repo = activity_repo or built_activity
            credential_repo = credential_repo or built_credential
        if provider_clients is None:
            provider_clients = build_provider_clients(settings, resources)
        yield build_service(
            settings, activity_repo, credential_repo, provider_clients
        )
    finally:
        await resources.aclose()
