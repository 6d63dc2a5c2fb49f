"""
Temporal worker for calendar sync.

Builds the sync service from settings and serves CalendarSyncWorkflow and
its activity on one task queue.
"""

import asyncio
import logging
import os
from typing import Optional

from temporalio.client import Client, WorkflowHandle
from temporalio.common import WorkflowIDConflictPolicy
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.service import RPCError
from temporalio.worker import Worker

from .activities import CalendarSyncActivities
from .bootstrap import open_service
from .config import load_settings
from .workflows import CalendarSyncWorkflow, sync_workflow_id

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Configure logging based on environment variables"""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        print(f"Invalid log level: {log_level}, defaulting to INFO")
        numeric_level = logging.INFO

    log_format = os.environ.get(
        "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        force=True,
    )
    # discovery cache warnings are noise with cache_discovery=False
    logging.getLogger("googleapiclient.discovery_cache").setLevel(
        logging.ERROR
    )
    logger.debug(
        "Logging configured",
        extra={"log_level": log_level, "numeric_level": numeric_level},
    )


async def get_temporal_client_with_retries(
    endpoint: str, attempts: int = 10, delay: int = 5
) -> Client:
    """Attempt to connect to Temporal with retries."""
    for attempt in range(attempts):
        try:
            client = await Client.connect(
                endpoint,
                namespace="default",
                data_converter=pydantic_data_converter,
            )
            logger.info(
                "Connected to Temporal",
                extra={"endpoint": endpoint, "attempt": attempt + 1},
            )
            return client
        except RPCError as e:
            logger.warning(
                "Failed to connect to Temporal",
                extra={
                    "endpoint": endpoint,
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                    "error": str(e),
                    "retry_in_seconds": delay,
                },
            )
            if attempt + 1 == attempts:
                logger.error(
                    "All connection attempts to Temporal failed",
                    extra={"endpoint": endpoint, "total_attempts": attempts},
                )
                raise
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected exit from retry loop")


async def start_sync_workflow(
    client: Client,
    user_id: str,
    provider: str,
    task_queue: str,
    calendar_id: Optional[str] = None,
) -> WorkflowHandle:
    """
    Start a reconciliation pass, or attach to the one already running for
    this (user, provider).
    """
    return await client.start_workflow(
        CalendarSyncWorkflow.run,
        args=[user_id, provider, calendar_id],
        id=sync_workflow_id(user_id, provider),
        task_queue=task_queue,
        id_conflict_policy=WorkflowIDConflictPolicy.USE_EXISTING,
    )


async def run_worker(
    config_path: Optional[str] = None,
    temporal_address: Optional[str] = None,
) -> None:
    """
    Run the Temporal worker for calendar sync.

    Args:
        config_path: Settings file; defaults to CALSYNC_CONFIG or the
            per-user settings path
        temporal_address: Overrides the address from settings
    """
    setup_logging()
    settings = load_settings(config_path)
    temporal_address = temporal_address or settings.temporal_address

    logger.info(
        "Starting calendar sync worker",
        extra={
            "temporal_address": temporal_address,
            "task_queue": settings.task_queue,
            "providers": [p.value for p in settings.enabled_providers()],
        },
    )

    client = await get_temporal_client_with_retries(temporal_address)

    async with open_service(settings) as service:
        sync_activities = CalendarSyncActivities(service)
        worker = Worker(
            client,
            task_queue=settings.task_queue,
            workflows=[CalendarSyncWorkflow],
            activities=[sync_activities.run_pass],
        )
        logger.info("Starting worker execution")
        await worker.run()


def main() -> None:
    """Entry point for the calendar sync worker."""
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
