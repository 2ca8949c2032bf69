"""Initialize database tables.

Usage::

    python -m receiptscanner.scripts.init_db
"""

import asyncio
import logging

from receiptscanner.core.config import settings
from receiptscanner.core.database import dispose_engine, get_db_debug_info, init_db
from receiptscanner.core.observability import init_sentry

logger = logging.getLogger(__name__)


async def main():
    logger.info("Initializing database tables on %s", get_db_debug_info().get("url"))
    try:
        await init_db()
    finally:
        await dispose_engine()
    logger.info("Database initialization complete!")


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    init_sentry("init_db")
    asyncio.run(main())
