# bookings/infra/db_async.py
"""
Async database connection pool (asyncpg).
"""
from __future__ import annotations
from typing import AsyncContextManager
from contextlib import asynccontextmanager

import asyncpg
from bookings.infra.logging_config import get_logger

logger = get_logger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


async def init_pool(dsn: str, min_size: int = 1, max_size: int = 10) -> None:
    """Initialize connection pool on startup"""
    global _pool

    if _pool is not None:
        return

    logger.info("Initializing asyncpg connection pool")

    _pool = await asyncpg.create_pool(
        dsn=dsn,
        min_size=min_size,
        max_size=max_size,
        command_timeout=60,
        server_settings={
            'application_name': 'interpreter_bookings',
            'timezone': 'UTC',
        }
    )

    logger.info(f"Connection pool created: min={min_size}, max={max_size}")


async def close_pool() -> None:
    """Close connection pool on shutdown"""
    global _pool

    if _pool is None:
        return

    logger.info("Closing connection pool")
    await _pool.close()
    _pool = None
    logger.info("Connection pool closed")


@asynccontextmanager
async def db_conn(autocommit: bool = True) -> AsyncContextManager[asyncpg.Connection]:
    """
    Get database connection from pool.

    Usage:
        async with db_conn(autocommit=False) as conn:
            await conn.execute("UPDATE jobs SET status = $1 WHERE id = $2", status, job_id)

    Args:
        autocommit: If True (default), statements commit individually. If False, the
            block runs in one transaction that commits on clean exit and rolls back
            on exception.
    """
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")

    conn = await _pool.acquire()

    try:
        if not autocommit:
            transaction = conn.transaction()
            await transaction.start()

            try:
                yield conn
                await transaction.commit()
            except BaseException:
                await transaction.rollback()
                raise
        else:
            yield conn
    finally:
        await _pool.release(conn)
