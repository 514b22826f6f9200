#!/usr/bin/env python3
# bookings/infra/migrate.py
"""
Standalone migration runner.

Run migrations separately from application startup:
    python -m bookings.infra.migrate

The HTTP application never applies migrations itself.
"""
import asyncio
import sys

from bookings.config import settings
from bookings.infra.db_async import close_pool, init_pool
from bookings.infra.logging_config import get_logger, setup_logging
from bookings.infra.migrations_async import apply_migrations

logger = get_logger(__name__)


async def main() -> int:
    """Run migrations, return the process exit code."""
    logger.info(f"Migration runner: env={settings.app_env}")

    try:
        await init_pool(settings.database_url, min_size=1, max_size=2)
        result = await apply_migrations()
    except Exception as exc:
        logger.critical(f"Migration failed: {exc}", exc_info=True)
        return 1
    finally:
        await close_pool()

    if result["applied"]:
        for migration in result["applied"]:
            logger.info(f"Applied {migration}")
    else:
        logger.info("No new migrations to apply")

    return 0 if result["ok"] else 1


if __name__ == "__main__":
    setup_logging(level="INFO", use_json=False)
    sys.exit(asyncio.run(main()))
