"""
Tests for settings loading.
"""

import pytest

from calsync.config import load_settings
from calsync.domain import Provider
from calsync.errors import ConfigurationError


def write_config(tmp_path, text: str) -> str:
    path = tmp_path / "settings.yaml"
    path.write_text(text)
    return str(path)


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / "absent.yaml"), environ={})

        assert settings.storage.backend == "local"
        assert settings.task_queue == "calendar-sync-task-queue"
        assert settings.google.window.days_back == 7
        assert settings.google.window.days_forward == 30
        assert settings.outlook.window.days_back == 30
        assert settings.outlook.window.days_forward == 90
        assert settings.enabled_providers() == []

    def test_yaml_values_are_used(self, tmp_path):
        path = write_config(
            tmp_path,
            """
google:
  client_id: google-id
  client_secret: google-secret
  calendar_id: work
outlook:
  client_id: outlook-id
  window:
    days_back: 1
    days_forward: 2
temporal_address: temporal:7233
""",
        )

        settings = load_settings(path, environ={})

        assert settings.google.calendar_id == "work"
        assert settings.outlook.window.days_forward == 2
        assert settings.temporal_address == "temporal:7233"
        assert settings.enabled_providers() == [
            Provider.GOOGLE,
            Provider.OUTLOOK,
        ]

    def test_environment_overrides_file(self, tmp_path):
        path = write_config(tmp_path, "google:\n  client_id: from-file\n")

        settings = load_settings(
            path,
            environ={
                "GOOGLE_CLIENT_ID": "from-env",
                "OUTLOOK_TENANT_ID": "contoso",
                "CALSYNC_DATA_DIR": "/var/lib/calsync",
            },
        )

        assert settings.google.client_id == "from-env"
        assert settings.outlook.tenant_id == "contoso"
        assert settings.storage.data_dir == "/var/lib/calsync"

    def test_config_path_from_environment(self, tmp_path):
        path = write_config(tmp_path, "task_queue: custom-queue\n")

        settings = load_settings(environ={"CALSYNC_CONFIG": path})

        assert settings.task_queue == "custom-queue"

    def test_invalid_yaml_is_rejected(self, tmp_path):
        path = write_config(tmp_path, "google: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_settings(path, environ={})

    def test_non_mapping_is_rejected(self, tmp_path):
        path = write_config(tmp_path, "- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="dictionary"):
            load_settings(path, environ={})

    def test_invalid_values_are_rejected(self, tmp_path):
        path = write_config(
            tmp_path, "google:\n  window:\n    days_back: -3\n"
        )

        with pytest.raises(ConfigurationError):
            load_settings(path, environ={})

    def test_postgresql_needs_database_url(self, tmp_path):
        path = write_config(tmp_path, "storage:\n  backend: postgresql\n")

        with pytest.raises(ConfigurationError, match="database_url"):
            load_settings(path, environ={})

        settings = load_settings(
            path, environ={"DATABASE_URL": "postgresql://localhost/calsync"}
        )
        assert settings.storage.database_url == (
            "postgresql://localhost/calsync"
        )
