# bookings/infra/db_resilience_async.py
"""
Retry helpers for transient asyncpg failures.
"""
from __future__ import annotations
import asyncio
from typing import TypeVar, Callable
from contextlib import asynccontextmanager
from functools import wraps

import asyncpg
from bookings.infra.db_async import db_conn
from bookings.infra.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

_TRANSIENT_PATTERNS = (
    "connection",
    "timeout",
    "closed",
    "network",
    "deadlock",
    "too many connections",
    "server closed",
    "connection reset",
)


def is_transient_error(exc: Exception) -> bool:
    """
    Check if database error is transient (should retry).

    Transient: connection loss, too many connections, deadlock, serialization
    failure.  Everything else (constraint violations, syntax) is not retried.
    """
    if isinstance(exc, (
        asyncpg.PostgresConnectionError,
        asyncpg.TooManyConnectionsError,
        asyncpg.DeadlockDetectedError,
        asyncpg.SerializationError,
    )):
        return True
    if isinstance(exc, asyncpg.PostgresError):
        return False
    error_message = str(exc).lower()
    return any(pattern in error_message for pattern in _TRANSIENT_PATTERNS)


def retry_on_transient_error(
    max_retries: int = 3,
    initial_delay: float = 0.1,
    backoff_factor: float = 2.0,
    max_delay: float = 5.0
):
    """
    Decorator to retry an async function on transient database errors.

    Only wrap idempotent operations (reads, or whole transactions that are
    safe to replay from the start).

    Example:
        @retry_on_transient_error(max_retries=3)
        async def get_user(user_id: int):
            async with db_conn() as conn:
                return await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if not is_transient_error(exc):
                        raise

                    if attempt >= max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded in {func.__name__}",
                            exc_info=True
                        )
                        raise

                    logger.warning(
                        f"Transient error in {func.__name__} (attempt {attempt + 1}/{max_retries}): {exc}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)

        return wrapper
    return decorator


@asynccontextmanager
async def safe_db_conn(autocommit: bool = True, max_retries: int = 3):
    """
    Database connection whose *acquisition* is retried on transient errors.

    Errors raised by the body of the ``async with`` block are not retried;
    wrap the calling function in ``retry_on_transient_error`` for that.
    """
    delay = 0.1
    attempt = 0
    while True:
        try:
            cm = db_conn(autocommit=autocommit)
            conn = await cm.__aenter__()
            break
        except Exception as exc:
            if not is_transient_error(exc) or attempt >= max_retries:
                raise
            attempt += 1
            logger.warning(
                f"Transient error getting connection (attempt {attempt}/{max_retries}): {exc}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2.0, 5.0)

    try:
        yield conn
    except BaseException as exc:
        if not await cm.__aexit__(type(exc), exc, exc.__traceback__):
            raise
    else:
        await cm.__aexit__(None, None, None)
