# notifier/infra/db_async.py
"""
asyncpg connection pool.

One pool per process, opened in the application lifespan (or by the
migration runner) and shared by the record store and the history repository.
Sessions run in UTC; ``timestamptz`` values come back timezone-aware.
"""
from __future__ import annotations
from typing import AsyncIterator, Optional
from contextlib import asynccontextmanager

import asyncpg
from notifier.config import settings
from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)

APPLICATION_NAME = "order_notifier"
COMMAND_TIMEOUT = 60

_pool: Optional[asyncpg.Pool] = None


async def init_pool(dsn: Optional[str] = None) -> None:
    """Open the pool once; later calls are no-ops."""
    global _pool

    if _pool is not None:
        return

    dsn = dsn or settings.database_url
    if not dsn:
        raise RuntimeError("DATABASE_URL is not configured")

    _pool = await asyncpg.create_pool(
        dsn=dsn,
        min_size=settings.pg_pool_min,
        max_size=settings.pg_pool_max,
        command_timeout=COMMAND_TIMEOUT,
        server_settings={"application_name": APPLICATION_NAME, "timezone": "UTC"},
    )
    logger.info(f"Connection pool created: min={settings.pg_pool_min}, max={settings.pg_pool_max}")


async def close_pool() -> None:
    global _pool

    pool, _pool = _pool, None
    if pool is not None:
        await pool.close()
        logger.info("Connection pool closed")


def pool_initialized() -> bool:
    return _pool is not None


@asynccontextmanager
async def db_conn(autocommit: bool = True) -> AsyncIterator[asyncpg.Connection]:
    """
    Borrow a pooled connection.

    With ``autocommit=False`` the block runs in a transaction that commits on
    exit and rolls back on error.

    Raises:
        RuntimeError: init_pool() was not called
    """
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")

    async with _pool.acquire() as conn:
        if autocommit:
            yield conn
        else:
            async with conn.transaction():
                yield conn
