"""
PostgreSQL implementation of CredentialRepository.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from asyncpg import Pool

from calsync.domain import CredentialRecord, CredentialStatus, Provider
from calsync.repositories import CredentialRepository

logger = logging.getLogger(__name__)


class PostgreSQLCredentialRepository(CredentialRepository):
    """
    One row per (user_id, provider) in ``calendar_credentials``.
    """

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLCredentialRepository")

    async def get_credential(
        self, user_id: str, provider: Provider
    ) -> Optional[CredentialRecord]:
        query = """
            SELECT user_id, provider, access_token, refresh_token, expiry,
                   status, updated_at
            FROM calendar_credentials
            WHERE user_id = $1 AND provider = $2
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id, provider.value)
        if row is None:
            return None
        return CredentialRecord.model_validate(dict(row))

    async def set_credential(
        self,
        user_id: str,
        provider: Provider,
        access_token: str,
        refresh_token: Optional[str],
        expiry: datetime,
    ) -> None:
        query = """
            INSERT INTO calendar_credentials (
                user_id, provider, access_token, refresh_token, expiry,
                status, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (user_id, provider)
            DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = EXCLUDED.refresh_token,
                expiry = EXCLUDED.expiry,
                status = EXCLUDED.status,
                updated_at = EXCLUDED.updated_at
        """
        async with self.pool.acquire() as conn:
            await conn.execute(
                query,
                user_id,
                provider.value,
                access_token,
                refresh_token,
                expiry,
                CredentialStatus.VALID.value,
                datetime.now(timezone.utc),
            )
        logger.debug(
            "Stored credential",
            extra={"user_id": user_id, "provider": provider.value},
        )

    async def set_status(
        self, user_id: str, provider: Provider, status: CredentialStatus
    ) -> None:
        query = """
            UPDATE calendar_credentials
            SET status = $3, updated_at = $4
            WHERE user_id = $1 AND provider = $2
        """
        async with self.pool.acquire() as conn:
            await conn.execute(
                query,
                user_id,
                provider.value,
                status.value,
                datetime.now(timezone.utc),
            )

    async def clear_credential(self, user_id: str, provider: Provider) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                DELETE FROM calendar_credentials
                WHERE user_id = $1 AND provider = $2
                """,
                user_id,
                provider.value,
            )
