import asyncpg
import json
import logging
from datetime import datetime
from typing import Any

from bluelena_connect.config import DATABASE_URL
from bluelena_connect.models import DrainSchedule, SyncRequest
from bluelena_connect.sync_queue import Reschedule

logger = logging.getLogger(__name__)

DB_POOL = None  # set by init_db_pool() in each worker process

SCHEMA = """
    CREATE TABLE IF NOT EXISTS bluelena_sync_queue (
        id BIGSERIAL PRIMARY KEY,
        request JSONB NOT NULL,
        created_at TIMESTAMPTZ DEFAULT now()
    );
    CREATE TABLE IF NOT EXISTS bluelena_queue_state (
        id SMALLINT PRIMARY KEY DEFAULT 1,
        next_drain_at TIMESTAMPTZ,
        drain_handle TEXT,
        burst_count INTEGER NOT NULL DEFAULT 0,
        burst_started_at TIMESTAMPTZ
    );
    INSERT INTO bluelena_queue_state (id) VALUES (1) ON CONFLICT (id) DO NOTHING;
    CREATE TABLE IF NOT EXISTS bluelena_options (
        option_name TEXT PRIMARY KEY,
        option_value JSONB NOT NULL
    );
"""


async def init_db_pool(dsn: str | None = DATABASE_URL):
    """Creates the asyncpg pool and makes sure the schema exists."""
    global DB_POOL
    if not dsn:
        logger.error("DATABASE_URL is not set. Cannot initialize DB Pool.")
        return None
    try:
        DB_POOL = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=10)
        logger.info("Database connection pool initialized.")
        await init_db(DB_POOL)
    except Exception:
        logger.exception("Failed to initialize database connection pool")
        DB_POOL = None
    return DB_POOL


async def close_db_pool():
    global DB_POOL
    if DB_POOL:
        await DB_POOL.close()
        logger.info("Database connection pool closed.")
        DB_POOL = None


async def init_db(pool):
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA)
    logger.info("BlueLena Connect schema is up to date.")


def _schedule_from_row(row) -> DrainSchedule:
    if row is None:
        return DrainSchedule()
    return DrainSchedule(
        next_drain_at=row["next_drain_at"],
        handle=row["drain_handle"],
        burst_count=row["burst_count"],
        burst_started_at=row["burst_started_at"],
    )


class PostgresQueueState:
    """Queue state shared by all web and worker processes through PostgreSQL."""

    def __init__(self, pool):
        self.pool = pool

    async def push(self, request: SyncRequest, now: datetime, reschedule: Reschedule) -> DrainSchedule:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                # Row lock serializes concurrent enqueues and drains
                row = await conn.fetchrow("""
                    SELECT next_drain_at, drain_handle, burst_count, burst_started_at
                    FROM bluelena_queue_state WHERE id = 1 FOR UPDATE
                """)
                current = _schedule_from_row(row)
                schedule = reschedule(current.model_copy(update={
                    "burst_count": current.burst_count + 1,
                    "burst_started_at": current.burst_started_at or now,
                }))
                await conn.execute(
                    "INSERT INTO bluelena_sync_queue (request) VALUES ($1::jsonb)",
                    request.model_dump_json(),
                )
                await conn.execute("""
                    UPDATE bluelena_queue_state
                    SET next_drain_at = $1, drain_handle = $2, burst_count = $3, burst_started_at = $4
                    WHERE id = 1
                """, schedule.next_drain_at, schedule.handle, schedule.burst_count, schedule.burst_started_at)
        return schedule

    async def take_all(self) -> list[SyncRequest]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("SELECT 1 FROM bluelena_queue_state WHERE id = 1 FOR UPDATE")
                rows = await conn.fetch("""
                    WITH taken AS (
                        DELETE FROM bluelena_sync_queue RETURNING id, request
                    )
                    SELECT id, request FROM taken ORDER BY id
                """)
                await conn.execute("""
                    UPDATE bluelena_queue_state
                    SET next_drain_at = NULL, drain_handle = NULL, burst_count = 0, burst_started_at = NULL
                    WHERE id = 1
                """)
        return [SyncRequest.model_validate_json(row["request"]) for row in rows]

    async def get_schedule(self) -> DrainSchedule:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT next_drain_at, drain_handle, burst_count, burst_started_at
                FROM bluelena_queue_state WHERE id = 1
            """)
        return _schedule_from_row(row)

    async def pending_count(self) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT count(*) FROM bluelena_sync_queue")


class PostgresSettingsStore:
    """Option store in the ``bluelena_options`` table; values are kept as JSON."""

    def __init__(self, pool):
        self.pool = pool

    async def get(self, key: str, default: Any = None) -> Any:
        async with self.pool.acquire() as conn:
            value = await conn.fetchval(
                "SELECT option_value FROM bluelena_options WHERE option_name = $1", key
            )
        if value is None:
            return default
        return json.loads(value)

    async def set(self, key: str, value: Any) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO bluelena_options (option_name, option_value)
                VALUES ($1, $2::jsonb)
                ON CONFLICT (option_name) DO UPDATE SET option_value = EXCLUDED.option_value
            """, key, json.dumps(value))
