from typing import Any, Dict, List

import pytest
from unittest.mock import patch

from calsync.tests.test_helpers import (
    InMemoryActivityRepository,
    InMemoryCredentialRepository,
)


@pytest.fixture
def activity_repo() -> InMemoryActivityRepository:
    return InMemoryActivityRepository()


@pytest.fixture
def credential_repo() -> InMemoryCredentialRepository:
    return InMemoryCredentialRepository()


@pytest.fixture
def mock_workflow_activities() -> Dict[str, Any]:
    """Provide utilities for mocking workflow activities in unit tests."""

    def patch_execute_activity(activity_responses: List[Any]) -> Any:
        """
        Patch workflow.execute_activity with a sequence of responses.

        Args:
            activity_responses: List of return values for activities in call
                order
        """
        return patch(
            "temporalio.workflow.execute_activity",
            side_effect=activity_responses,
        )

    return {"patch_execute_activity": patch_execute_activity}
