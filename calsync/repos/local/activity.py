"""
Local file-based implementation of the ActivityRepository protocol.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from calsync.domain import Activity, NewActivity
from calsync.repos.local.paths import is_safe_segment
from calsync.repositories import ActivityRepository

logger = logging.getLogger(__name__)


class LocalActivityRepository(ActivityRepository):
    """
    Stores each activity as a JSON file under ``<base>/activities``.
    The file name is the activity id; ids that are not a single path
    component never match a stored activity.
    """

    def __init__(self, base_path: str):
        self._base_path = Path(base_path)

    def _get_activities_path(self) -> Path:
        return self._base_path / "activities"

    def _get_activity_path(self, activity_id: str) -> Path:
        return self._get_activities_path() / f"{activity_id}.json"

    def _read(self, path: Path) -> Optional[Activity]:
        try:
            with open(path, "r") as f:
                return Activity.model_validate(json.load(f))
        except (IOError, json.JSONDecodeError, ValueError):
            logger.warning(
                f"Could not read or parse activity file: {path}",
                exc_info=True,
            )
            return None

    def _write(self, activity: Activity) -> None:
        os.makedirs(self._get_activities_path(), exist_ok=True)
        path = self._get_activity_path(activity.activity_id)
        with open(path, "w") as f:
            f.write(activity.model_dump_json(indent=2))

    async def get_activities(self, user_id: str) -> List[Activity]:
        activities_path = self._get_activities_path()
        if not activities_path.exists():
            return []

        activities = []
        for activity_file in activities_path.glob("*.json"):
            activity = self._read(activity_file)
            if activity is not None and activity.user_id == user_id:
                activities.append(activity)
        activities.sort(key=lambda a: a.start_time)
        return activities

    async def get_activity(self, activity_id: str) -> Optional[Activity]:
        if not is_safe_segment(activity_id):
            return None
        path = self._get_activity_path(activity_id)
        if not path.exists():
            return None
        return self._read(path)

    async def create_activity(self, data: NewActivity) -> Activity:
        now = datetime.now(timezone.utc)
        activity = Activity(
            activity_id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        self._write(activity)
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
        existing = await self.get_activity(activity_id)
        if existing is None:
            return None
        data = existing.model_dump()
        data.update(changes)
        data["updated_at"] = datetime.now(timezone.utc)
        # activity_id and user_id are immutable
        data["activity_id"] = existing.activity_id
        data["user_id"] = existing.user_id
        updated = Activity.model_validate(data)
        self._write(updated)
        return updated

    async def delete_activity(self, activity_id: str) -> bool:
        if not is_safe_segment(activity_id):
            return False
        path = self._get_activity_path(activity_id)
        if not path.exists():
            return False
        os.remove(path)
        logger.debug("Activity deleted", extra={"activity_id": activity_id})
        return True
