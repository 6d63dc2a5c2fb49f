"""
Table definitions for the PostgreSQL repositories.
"""

import logging

from asyncpg import Pool

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS activities (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    type TEXT NOT NULL,
    start_time TIMESTAMPTZ NOT NULL,
    end_time TIMESTAMPTZ,
    location TEXT,
    priority TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    google_event_id TEXT,
    google_calendar_id TEXT,
    outlook_event_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS activities_user_id_idx ON activities (user_id);

CREATE UNIQUE INDEX IF NOT EXISTS activities_google_event_idx
    ON activities (user_id, google_event_id)
    WHERE google_event_id IS NOT NULL;

CREATE UNIQUE INDEX IF NOT EXISTS activities_outlook_event_idx
    ON activities (user_id, outlook_event_id)
    WHERE outlook_event_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS calendar_credentials (
    user_id TEXT NOT NULL,
    provider TEXT NOT NULL,
    access_token TEXT,
    refresh_token TEXT,
    expiry TIMESTAMPTZ,
    status TEXT NOT NULL DEFAULT 'valid',
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (user_id, provider)
);
"""


async def ensure_schema(pool: Pool) -> None:
    """Create the tables if they do not exist yet."""
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA)
    logger.info("PostgreSQL schema ensured")
