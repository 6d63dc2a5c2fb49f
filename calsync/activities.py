"""
Activities for calendar sync.

Activities perform the network and storage I/O that must not run inside
a workflow. They delegate to a CalendarSyncService built on the worker.
"""

import logging
from typing import Optional

from temporalio import activity

from .domain import SyncOutcome
from .usecase import CalendarSyncService

logger = logging.getLogger(__name__)

RUN_PASS_ACTIVITY = "calsync.calendar_sync.reconciler.run_pass"


class CalendarSyncActivities:
    """
    Instantiated once per worker; its methods are registered as
    activities.
    """

    def __init__(self, service: CalendarSyncService):
        self._service = service

    @activity.defn(name=RUN_PASS_ACTIVITY)
    async def run_pass(
        self,
        user_id: str,
        provider: str,
        calendar_id: Optional[str] = None,
    ) -> SyncOutcome:
        """Run one reconciliation pass for a (user, provider) pair."""
        logger.info(
            "Activity: running reconciliation pass",
            extra={"user_id": user_id, "provider": provider},
        )
        outcome = await self._service.sync_now(user_id, provider, calendar_id)
        logger.info(
            "Activity: reconciliation pass finished",
            extra={
                "user_id": user_id,
                "provider": provider,
                "outcome": outcome.kind.value,
                "created": outcome.created_count,
                "skipped": outcome.skipped_count,
            },
        )
        return outcome
