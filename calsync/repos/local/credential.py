"""
Local file-based implementation of the CredentialRepository protocol.

Credentials are stored one file per (user, provider) under
``<base>/credentials/<user_id>/<provider>.json`` with owner-only
permissions. User ids that are not a single path component raise
ValueError.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from calsync.domain import CredentialRecord, CredentialStatus, Provider
from calsync.repos.local.paths import safe_segment
from calsync.repositories import CredentialRepository

logger = logging.getLogger(__name__)


class LocalCredentialRepository(CredentialRepository):
    def __init__(self, base_path: str):
        self._base_path = Path(base_path)

    def _get_credential_path(self, user_id: str, provider: Provider) -> Path:
        # user ids arrive through the OAuth state parameter
        user_dir = safe_segment(user_id, "user id")
        return (
            self._base_path / "credentials" / user_dir / f"{provider.value}.json"
        )

    def _write(self, record: CredentialRecord) -> None:
        path = self._get_credential_path(record.user_id, record.provider)
        os.makedirs(path.parent, exist_ok=True)
        with open(path, "w") as f:
            f.write(record.model_dump_json(indent=2))
        os.chmod(path, 0o600)

    async def get_credential(
        self, user_id: str, provider: Provider
    ) -> Optional[CredentialRecord]:
        path = self._get_credential_path(user_id, provider)
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                return CredentialRecord.model_validate(json.load(f))
        except (IOError, json.JSONDecodeError, ValueError):
            logger.warning(
                f"Could not read or parse credential file: {path}",
                exc_info=True,
            )
            return None

    async def set_credential(
        self,
        user_id: str,
        provider: Provider,
        access_token: str,
        refresh_token: Optional[str],
        expiry: datetime,
    ) -> None:
        self._write(
            CredentialRecord(
                user_id=user_id,
                provider=provider,
                access_token=access_token,
                refresh_token=refresh_token,
                expiry=expiry,
                status=CredentialStatus.VALID,
                updated_at=datetime.now(timezone.utc),
            )
        )

    async def set_status(
        self, user_id: str, provider: Provider, status: CredentialStatus
    ) -> None:
        record = await self.get_credential(user_id, provider)
        if record is None:
            return
        self._write(
            record.model_copy(
                update={
                    "status": status,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
        )

    async def clear_credential(self, user_id: str, provider: Provider) -> None:
        path = self._get_credential_path(user_id, provider)
        if path.exists():
            os.remove(path)
