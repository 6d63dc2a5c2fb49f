"""
Temporal workflows for calendar sync.

Workflows stay deterministic and delegate every remote call to
activities.
"""

import logging
from datetime import timedelta
from typing import Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from .activities import RUN_PASS_ACTIVITY
    from .domain import SyncOutcome

logger = logging.getLogger(__name__)

ACTIVITY_TIMEOUT = timedelta(minutes=5)


def sync_workflow_id(user_id: str, provider: str) -> str:
    """
    Workflow id for a (user, provider) pair. Starting with
    WorkflowIDConflictPolicy.USE_EXISTING lets at most one pass run per
    pair across all processes.
    """
    return f"calendar-sync-{user_id}-{provider}"


@workflow.defn
class CalendarSyncWorkflow:
    """
    Runs one reconciliation pass for one user against one provider.

    The pass is attempted once. Periodic schedules and manual triggers
    re-run it; nothing is retried automatically.
    """

    @workflow.run
    async def run(
        self,
        user_id: str,
        provider: str,
        calendar_id: Optional[str] = None,
    ) -> SyncOutcome:
        logger.info(
            "Starting CalendarSyncWorkflow",
            extra={"user_id": user_id, "provider": provider},
        )
        outcome = await workflow.execute_activity(
            RUN_PASS_ACTIVITY,
            args=[user_id, provider, calendar_id],
            start_to_close_timeout=ACTIVITY_TIMEOUT,
            retry_policy=RetryPolicy(maximum_attempts=1),
            result_type=SyncOutcome,
        )
        logger.info(
            "CalendarSyncWorkflow completed",
            extra={
                "user_id": user_id,
                "provider": provider,
                "outcome": outcome.kind.value,
            },
        )
        return outcome
