# bookings/infra/http_client.py
"""
Shared HTTP client sessions.

Named, lazy-initialized aiohttp.ClientSession singletons, so channels do not
create a session (and a TCP pool) per request.

- **push**    – push provider API (total=15 s, connect=5 s, pool limit=20)
- **default** – anything else      (total=30 s, connect=5 s, pool limit=10)

Call ``close_all_sessions()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from bookings.infra.logging_config import get_logger

logger = get_logger(__name__)

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            connector=aiohttp.TCPConnector(
                keepalive_timeout=30,
                limit=limit,
                enable_cleanup_closed=True,
            ),
        )
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


def get_push_session() -> aiohttp.ClientSession:
    return _get_or_create(
        "push",
        aiohttp.ClientTimeout(total=15, connect=5),
        limit=20,
    )


def get_default_session() -> aiohttp.ClientSession:
    return _get_or_create(
        "default",
        aiohttp.ClientTimeout(total=30, connect=5),
        limit=10,
    )


async def close_all_sessions() -> None:
    """Gracefully close every managed session.  Call during app shutdown."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
