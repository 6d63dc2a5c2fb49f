"""
Defines the use cases for calendar synchronization.
"""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    MutableMapping,
    Optional,
    Set,
    Tuple,
)

from .domain import (
    Activity,
    ActivityPriority,
    ActivityStatus,
    ActivityType,
    ConnectionStatus,
    NewActivity,
    Provider,
    RemoteCalendar,
    RemoteEvent,
    SyncOutcome,
    SyncOutcomeKind,
    SyncWindow,
    TokenResolutionKind,
)
from .errors import NotConnected, ProviderNotConfigured, RemoteCallFailed
from .repositories import ActivityRepository, ProviderCalendarRepository
from .tokens import TokenLifecycleManager, utc_now
from .validation import (
    ensure_activity_repository,
    ensure_provider_calendar_repository,
)

logger = logging.getLogger(__name__)


class SyncLockRegistry:
    """
    Hands out one asyncio.Lock per (user_id, provider).

    Two passes for the same pair would each read the activity set before
    the other's writes land and could materialize the same remote event
    twice, so they must not overlap. Different users never share a lock.

    Entries are weak: a lock disappears once no pass holds or waits on it.
    """

    def __init__(self):
        self._locks: MutableMapping[Tuple[str, Provider], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, user_id: str, provider: Provider) -> asyncio.Lock:
        key = (user_id, provider)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


class CalendarSyncUseCase:
    """
    Reconciles one user's local activities with one provider's calendar.

    Pull imports remote events as new activities, at most once per remote
    event id. Push is per-activity: create, update and delete each mirror
    a single local mutation. Correlation ids are written back only after
    the provider confirmed the call.
    """

    def __init__(
        self,
        activity_repo: ActivityRepository,
        token_manager: TokenLifecycleManager,
        provider_repo: ProviderCalendarRepository,
        window: Optional[SyncWindow] = None,
        default_calendar_id: Optional[str] = None,
        locks: Optional[SyncLockRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.activity_repo = ensure_activity_repository(activity_repo)
        self.provider_repo = ensure_provider_calendar_repository(provider_repo)
        self.token_manager = token_manager
        self.provider = token_manager.provider
        if self.provider_repo.provider != self.provider:
            raise ValueError(
                f"Token manager for {self.provider.value} cannot drive a "
                f"{self.provider_repo.provider.value} calendar"
            )
        self.window = window or SyncWindow()
        self.default_calendar_id = default_calendar_id
        self.locks = locks or SyncLockRegistry()
        self._clock = clock or utc_now

    # --- token handling ---

    async def _resolve_token(
        self, user_id: str
    ) -> Tuple[Optional[str], Optional[SyncOutcome]]:
        resolution = await self.token_manager.resolve_token(user_id)
        if resolution.ok:
            return resolution.access_token, None

        kind = (
            SyncOutcomeKind.NOT_CONNECTED
            if resolution.kind == TokenResolutionKind.NOT_CONNECTED
            else SyncOutcomeKind.REFRESH_FAILED
        )
        logger.info(
            "No usable token for sync",
            extra={
                "provider": self.provider.value,
                "user_id": user_id,
                "error_kind": kind.value,
            },
        )
        return None, SyncOutcome(provider=self.provider, user_id=user_id, kind=kind)

    # --- pull ---

    def _materialize(
        self, user_id: str, event: RemoteEvent, calendar_id: Optional[str]
    ) -> NewActivity:
        """Build the local activity for a pulled event."""
        if self.provider == Provider.GOOGLE:
            activity_type = ActivityType.EVENT
            priority = ActivityPriority.MEDIUM
        else:
            activity_type = ActivityType.SOCIAL
            priority = (
                ActivityPriority.HIGH
                if (event.importance or "").lower() == "high"
                else ActivityPriority.MEDIUM
            )
        return NewActivity(
            user_id=user_id,
            title=event.title,
            description=event.description,
            type=activity_type,
            start_time=event.start_time,
            end_time=event.end_time,
            location=event.location,
            priority=priority,
            status=ActivityStatus.PENDING,
            **Activity.correlation_fields(
                self.provider, event.event_id, event.calendar_id or calendar_id
            ),
        )

    async def pull(
        self, user_id: str, calendar_id: Optional[str] = None
    ) -> SyncOutcome:
        """Import remote events in the sync window as local activities."""
        async with self.locks.lock_for(user_id, self.provider):
            return await self._pull(user_id, calendar_id)

    async def _pull(
        self, user_id: str, calendar_id: Optional[str]
    ) -> SyncOutcome:
        token, failed = await self._resolve_token(user_id)
        if failed is not None:
            return failed

        calendar_id = calendar_id or self.default_calendar_id
        start, end = self.window.bounds(self._clock())
        try:
            events = await self.provider_repo.list_events(
                token, start, end, calendar_id=calendar_id
            )
        except RemoteCallFailed as e:
            logger.error(
                f"Listing remote events failed: {e}",
                extra={
                    "provider": self.provider.value,
                    "user_id": user_id,
                    "error_kind": SyncOutcomeKind.REMOTE_CALL_FAILED.value,
                    "status_code": e.status_code,
                },
            )
            return SyncOutcome(
                provider=self.provider,
                user_id=user_id,
                kind=SyncOutcomeKind.REMOTE_CALL_FAILED,
                error=str(e),
            )

        # The complete activity set, read once; seen ids then also cover
        # duplicates within this response.
        activities = await self.activity_repo.get_activities(user_id)
        seen: Set[str] = {
            event_id
            for event_id in (a.remote_event_id(self.provider) for a in activities)
            if event_id
        }

        created = 0
        skipped = 0
        for event in events:
            if event.start_time is None:
                skipped += 1
                continue
            if event.event_id in seen:
                continue
            await self.activity_repo.create_activity(
                self._materialize(user_id, event, calendar_id)
            )
            seen.add(event.event_id)
            created += 1

        logger.info(
            "Pull completed",
            extra={
                "provider": self.provider.value,
                "user_id": user_id,
                "listed": len(events),
                "created": created,
                "skipped": skipped,
            },
        )
        return SyncOutcome(
            provider=self.provider,
            user_id=user_id,
            created_count=created,
            skipped_count=skipped,
        )

    async def run_pass(
        self, user_id: str, calendar_id: Optional[str] = None
    ) -> SyncOutcome:
        """
        One reconciliation pass. Push happens per activity mutation, so a
        pass imports only.
        """
        logger.info(
            "Starting reconciliation pass",
            extra={"provider": self.provider.value, "user_id": user_id},
        )
        return await self.pull(user_id, calendar_id)

    # --- push ---

    async def push_created(
        self,
        user_id: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> SyncOutcome:
        """
        Create the remote event for a new activity and record its id.

        Raises:
            RemoteCallFailed: if the provider call fails. Nothing local is
                changed in that case.
        """
        async with self.locks.lock_for(user_id, self.provider):
            existing = activity.remote_event_id(self.provider)
            if existing:
                return SyncOutcome(
                    provider=self.provider,
                    user_id=user_id,
                    activity_id=activity.activity_id,
                    pushed_event_id=existing,
                )

            token, failed = await self._resolve_token(user_id)
            if failed is not None:
                return failed.model_copy(
                    update={"activity_id": activity.activity_id}
                )

            calendar_id = calendar_id or self.default_calendar_id
            event_id = await self.provider_repo.push(
                token, activity, calendar_id=calendar_id
            )
            await self.activity_repo.update_activity(
                activity.activity_id,
                Activity.correlation_fields(
                    self.provider, event_id, calendar_id
                ),
            )
            return SyncOutcome(
                provider=self.provider,
                user_id=user_id,
                activity_id=activity.activity_id,
                pushed_event_id=event_id,
            )

    async def push_updated(
        self, user_id: str, activity: Activity
    ) -> SyncOutcome:
        """Mirror an update; activities never pushed stay local."""
        async with self.locks.lock_for(user_id, self.provider):
            event_id = activity.remote_event_id(self.provider)
            if not event_id:
                return SyncOutcome(
                    provider=self.provider,
                    user_id=user_id,
                    activity_id=activity.activity_id,
                )

            token, failed = await self._resolve_token(user_id)
            if failed is not None:
                return failed.model_copy(
                    update={"activity_id": activity.activity_id}
                )

            await self.provider_repo.update(token, activity)
            return SyncOutcome(
                provider=self.provider,
                user_id=user_id,
                activity_id=activity.activity_id,
                pushed_event_id=event_id,
            )

    async def push_deleted(
        self, user_id: str, activity: Activity
    ) -> SyncOutcome:
        """Delete the remote copy; an already-deleted event is fine."""
        async with self.locks.lock_for(user_id, self.provider):
            event_id = activity.remote_event_id(self.provider)
            if not event_id:
                return SyncOutcome(
                    provider=self.provider,
                    user_id=user_id,
                    activity_id=activity.activity_id,
                )

            token, failed = await self._resolve_token(user_id)
            if failed is not None:
                return failed.model_copy(
                    update={"activity_id": activity.activity_id}
                )

            calendar_id = (
                activity.google_calendar_id
                if self.provider == Provider.GOOGLE
                else None
            )
            deleted = await self.provider_repo.delete(
                token, event_id, calendar_id=calendar_id
            )
            if not deleted:
                logger.info(
                    "Remote event was already gone",
                    extra={
                        "provider": self.provider.value,
                        "activity_id": activity.activity_id,
                        "event_id": event_id,
                    },
                )
            return SyncOutcome(
                provider=self.provider,
                user_id=user_id,
                activity_id=activity.activity_id,
                pushed_event_id=event_id,
            )

    async def list_calendars(self, user_id: str) -> List[RemoteCalendar]:
        token, failed = await self._resolve_token(user_id)
        if failed is not None:
            raise NotConnected(self.provider, user_id)
        return await self.provider_repo.list_calendars(token)


class CalendarSyncService:
    """
    Entry point for sync triggers: OAuth callbacks, manual "sync now",
    activity mutations and periodic passes.
    """

    def __init__(
        self,
        activity_repo: ActivityRepository,
        usecases: Iterable[CalendarSyncUseCase],
    ):
        self.activity_repo = ensure_activity_repository(activity_repo)
        self._usecases: Dict[Provider, CalendarSyncUseCase] = {
            usecase.provider: usecase for usecase in usecases
        }

    @property
    def providers(self) -> List[Provider]:
        return list(self._usecases)

    def usecase(self, provider) -> CalendarSyncUseCase:
        """Look up the use case for a provider given as enum or name."""
        try:
            key = Provider(provider)
        except ValueError:
            raise ProviderNotConfigured(str(provider)) from None
        if key not in self._usecases:
            raise ProviderNotConfigured(key.value)
        return self._usecases[key]

    def tokens(self, provider) -> TokenLifecycleManager:
        return self.usecase(provider).token_manager

    async def authorize(self, user_id: str, provider) -> str:
        return await self.tokens(provider).get_authorization_url(user_id)

    async def complete_auth(self, code: str, user_id: str, provider) -> None:
        await self.tokens(provider).complete_authorization(code, user_id)

    async def sync_now(
        self, user_id: str, provider, calendar_id: Optional[str] = None
    ) -> SyncOutcome:
        return await self.usecase(provider).run_pass(user_id, calendar_id)

    async def disconnect(self, user_id: str, provider) -> None:
        await self.tokens(provider).disconnect(user_id)

    async def status(self, user_id: str) -> List[ConnectionStatus]:
        return [
            await usecase.token_manager.connection_status(user_id)
            for usecase in self._usecases.values()
        ]

    async def list_calendars(
        self, user_id: str, provider
    ) -> List[RemoteCalendar]:
        return await self.usecase(provider).list_calendars(user_id)

    def _owned(self, user_id: str, activity: Activity) -> bool:
        """Activities of other users are never pushed or deleted."""
        if activity.user_id == user_id:
            return True
        logger.warning(
            "Ignoring activity owned by another user",
            extra={
                "user_id": user_id,
                "activity_id": activity.activity_id,
            },
        )
        return False

    async def _connected(self, user_id: str) -> List[CalendarSyncUseCase]:
        connected = []
        for usecase in self._usecases.values():
            status = await usecase.token_manager.connection_status(user_id)
            if status.connected:
                connected.append(usecase)
        return connected

    async def activity_created(
        self,
        user_id: str,
        activity: Activity,
        calendar_id: Optional[str] = None,
    ) -> List[SyncOutcome]:
        """Push a new activity to every provider the user connected."""
        if not self._owned(user_id, activity):
            return []
        outcomes = []
        for usecase in await self._connected(user_id):
            # each provider pushes the stored copy, which carries the ids
            # written back by the providers before it
            current = await self.activity_repo.get_activity(
                activity.activity_id
            )
            target = current or activity
            provider_calendar = (
                calendar_id if usecase.provider == Provider.GOOGLE else None
            )
            outcomes.append(
                await self._push_guarded(
                    usecase.push_created(user_id, target, provider_calendar),
                    usecase.provider,
                    user_id,
                    target.activity_id,
                )
            )
        return outcomes

    async def activity_updated(
        self, user_id: str, activity: Activity
    ) -> List[SyncOutcome]:
        if not self._owned(user_id, activity):
            return []
        outcomes = []
        for usecase in await self._connected(user_id):
            outcomes.append(
                await self._push_guarded(
                    usecase.push_updated(user_id, activity),
                    usecase.provider,
                    user_id,
                    activity.activity_id,
                )
            )
        return outcomes

    async def activity_deleted(
        self, user_id: str, activity_id: str
    ) -> List[SyncOutcome]:
        """
        Delete the remote copies, then the local record with its ids.

        The local record is kept if a remote delete call failed so that the
        correlation id is not lost and the delete can be retried. Providers
        the user is no longer connected to do not block the local delete.
        """
        activity = await self.activity_repo.get_activity(activity_id)
        if activity is None or not self._owned(user_id, activity):
            return []

        outcomes = []
        for usecase in self._usecases.values():
            if not activity.remote_event_id(usecase.provider):
                continue
            outcomes.append(
                await self._push_guarded(
                    usecase.push_deleted(user_id, activity),
                    usecase.provider,
                    user_id,
                    activity_id,
                )
            )

        if not any(
            outcome.kind == SyncOutcomeKind.REMOTE_CALL_FAILED
            for outcome in outcomes
        ):
            await self.activity_repo.delete_activity(activity_id)
        else:
            logger.warning(
                "Keeping local activity after failed remote delete",
                extra={"activity_id": activity_id, "user_id": user_id},
            )
        return outcomes

    async def push_activities(
        self, user_id: str, provider, activities: Iterable[Activity]
    ) -> List[SyncOutcome]:
        """
        Explicit batch push; one failure does not stop the rest. Activities
        of other users are skipped without an outcome.
        """
        usecase = self.usecase(provider)
        outcomes = []
        for activity in activities:
            if not self._owned(user_id, activity):
                continue
            outcomes.append(
                await self._push_guarded(
                    usecase.push_created(user_id, activity),
                    usecase.provider,
                    user_id,
                    activity.activity_id,
                )
            )
        return outcomes

    async def _push_guarded(
        self, push, provider: Provider, user_id: str, activity_id: str
    ) -> SyncOutcome:
        try:
            return await push
        except RemoteCallFailed as e:
            logger.error(
                f"Push failed: {e}",
                extra={
                    "provider": provider.value,
                    "user_id": user_id,
                    "activity_id": activity_id,
                    "error_kind": SyncOutcomeKind.REMOTE_CALL_FAILED.value,
                    "status_code": e.status_code,
                },
            )
            return SyncOutcome(
                provider=provider,
                user_id=user_id,
                kind=SyncOutcomeKind.REMOTE_CALL_FAILED,
                activity_id=activity_id,
                error=str(e),
            )
