"""
PostgreSQL implementation of ActivityRepository.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from asyncpg import Pool, Record

from calsync.domain import Activity, NewActivity
from calsync.repositories import ActivityRepository

logger = logging.getLogger(__name__)

# Columns that update_activity may touch; ids and owner are fixed.
_UPDATABLE_COLUMNS = (
    "title",
    "description",
    "type",
    "start_time",
    "end_time",
    "location",
    "priority",
    "status",
    "google_event_id",
    "google_calendar_id",
    "outlook_event_id",
)

_SELECT = """
    SELECT id, user_id, title, description, type, start_time, end_time,
           location, priority, status, google_event_id, google_calendar_id,
           outlook_event_id, created_at, updated_at
    FROM activities
"""


def _row_to_activity(row: Record) -> Activity:
    data = dict(row)
    data["activity_id"] = data.pop("id")
    return Activity.model_validate(data)


def _column_value(value: Any) -> Any:
    # str enums are stored by value
    return getattr(value, "value", value)


class PostgreSQLActivityRepository(ActivityRepository):
    """
    Activities live in the ``activities`` table, one row each, with the
    provider correlation ids as nullable columns.
    """

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLActivityRepository")

    async def get_activities(self, user_id: str) -> List[Activity]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                _SELECT + " WHERE user_id = $1 ORDER BY start_time", user_id
            )
        activities = [_row_to_activity(row) for row in rows]
        logger.debug(
            f"Retrieved {len(activities)} activities",
            extra={"user_id": user_id},
        )
        return activities

    async def get_activity(self, activity_id: str) -> Optional[Activity]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(_SELECT + " WHERE id = $1", activity_id)
        return _row_to_activity(row) if row else None

    async def create_activity(self, data: NewActivity) -> Activity:
        now = datetime.now(timezone.utc)
        query = """
            INSERT INTO activities (
                id, user_id, title, description, type, start_time, end_time,
                location, priority, status, google_event_id,
                google_calendar_id, outlook_event_id, created_at, updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
                $14, $14
            )
            RETURNING id, user_id, title, description, type, start_time,
                      end_time, location, priority, status, google_event_id,
                      google_calendar_id, outlook_event_id, created_at,
                      updated_at
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                str(uuid.uuid4()),
                data.user_id,
                data.title,
                data.description,
                data.type.value,
                data.start_time,
                data.end_time,
                data.location,
                data.priority.value if data.priority else None,
                data.status.value,
                data.google_event_id,
                data.google_calendar_id,
                data.outlook_event_id,
                now,
            )
        activity = _row_to_activity(row)
        logger.debug(
            "Activity created",
            extra={
                "activity_id": activity.activity_id,
                "user_id": activity.user_id,
            },
        )
        return activity

    async def update_activity(
        self, activity_id: str, changes: Dict[str, Any]
    ) -> Optional[Activity]:
        unknown = set(changes) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        columns = [c for c in _UPDATABLE_COLUMNS if c in changes]
        assignments = [f"{c} = ${i}" for i, c in enumerate(columns, start=2)]
        assignments.append(f"updated_at = ${len(columns) + 2}")
        query = f"""
            UPDATE activities SET {", ".join(assignments)}
            WHERE id = $1
            RETURNING id, user_id, title, description, type, start_time,
                      end_time, location, priority, status, google_event_id,
                      google_calendar_id, outlook_event_id, created_at,
                      updated_at
        """
        values = [_column_value(changes[c]) for c in columns]
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                query, activity_id, *values, datetime.now(timezone.utc)
            )
        return _row_to_activity(row) if row else None

    async def delete_activity(self, activity_id: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM activities WHERE id = $1", activity_id
            )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return result.split()[-1] != "0"
