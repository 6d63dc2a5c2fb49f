"""
Settings for calendar sync.

Values come from a YAML file (``~/.config/calendar-sync/settings.yaml`` or
the path in ``CALSYNC_CONFIG``), then environment variables override them.
A provider is enabled when its client id is set.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .domain import Provider, SyncWindow
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.config/calendar-sync/settings.yaml"


class GoogleSettings(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: str = "http://localhost:5000/api/auth/google/callback"
    calendar_id: str = Field("primary", description="Calendar used for push")
    window: SyncWindow = Field(
        default_factory=lambda: SyncWindow(days_back=7, days_forward=30)
    )

    @property
    def enabled(self) -> bool:
        return bool(self.client_id)


class OutlookSettings(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    tenant_id: str = "common"
    redirect_uri: str = "http://localhost:5000/api/auth/outlook/callback"
    calendar_id: Optional[str] = Field(
        None, description="Defaults to the user's default calendar"
    )
    window: SyncWindow = Field(
        default_factory=lambda: SyncWindow(days_back=30, days_forward=90)
    )

    @property
    def enabled(self) -> bool:
        return bool(self.client_id)


class StorageSettings(BaseModel):
    backend: Literal["local", "postgresql"] = "local"
    data_dir: str = "~/.local/share/calendar-sync"
    database_url: Optional[str] = None


class SyncSettings(BaseModel):
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    outlook: OutlookSettings = Field(default_factory=OutlookSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    temporal_address: str = "localhost:7233"
    task_queue: str = "calendar-sync-task-queue"
    http_timeout_seconds: float = Field(30.0, gt=0)

    def enabled_providers(self) -> list:
        return [
            provider
            for provider, settings in (
                (Provider.GOOGLE, self.google),
                (Provider.OUTLOOK, self.outlook),
            )
            if settings.enabled
        ]


# (environment variable, path into the settings dict)
ENV_OVERRIDES = (
    ("GOOGLE_CLIENT_ID", ("google", "client_id")),
    ("GOOGLE_CLIENT_SECRET", ("google", "client_secret")),
    ("GOOGLE_REDIRECT_URI", ("google", "redirect_uri")),
    ("OUTLOOK_CLIENT_ID", ("outlook", "client_id")),
    ("OUTLOOK_CLIENT_SECRET", ("outlook", "client_secret")),
    ("OUTLOOK_TENANT_ID", ("outlook", "tenant_id")),
    ("OUTLOOK_REDIRECT_URI", ("outlook", "redirect_uri")),
    ("CALSYNC_DATA_DIR", ("storage", "data_dir")),
    ("DATABASE_URL", ("storage", "database_url")),
    ("TEMPORAL_ADDRESS", ("temporal_address",)),
)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning(f"Configuration file not found: {path}")
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file must contain a YAML dictionary: {path}"
        )
    return data


def _apply_env(data: Dict[str, Any], environ: Mapping[str, str]) -> None:
    for name, keys in ENV_OVERRIDES:
        value = environ.get(name)
        if not value:
            continue
        target = data
        for key in keys[:-1]:
            if not isinstance(target.get(key), dict):
                target[key] = {}
            target = target[key]
        target[keys[-1]] = value


def load_settings(
    path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> SyncSettings:
    """
    Load settings from YAML and the environment.

    Raises:
        ConfigurationError: if the file is not valid YAML or the values
            do not validate.
    """
    environ = os.environ if environ is None else environ
    config_path = Path(
        path or environ.get("CALSYNC_CONFIG") or DEFAULT_CONFIG_PATH
    ).expanduser()

    data = _read_yaml(config_path)
    _apply_env(data, environ)
    try:
        settings = SyncSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings in {config_path}: {e}") from e

    if settings.storage.backend == "postgresql" and not (
        settings.storage.database_url
    ):
        raise ConfigurationError(
            "storage.backend is postgresql but no database_url is set"
        )

    logger.debug(
        "Settings loaded",
        extra={
            "config_path": str(config_path),
            "providers": [p.value for p in settings.enabled_providers()],
            "storage_backend": settings.storage.backend,
        },
    )
    return settings
