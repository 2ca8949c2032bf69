"""Database configuration and session management.

This module constructs an asynchronous SQLAlchemy engine and session
factory for the application.  The engine is built lazily on first use
from ``DATABASE_URL``.  When no URL is configured a local SQLite file is
used in development if ``DB_DEV_FALLBACK_SQLITE`` allows it.

PostgreSQL URLs are normalised to the async ``psycopg`` driver.  SQLite
URLs are upgraded to ``aiosqlite`` and every SQLite connection enables
``PRAGMA foreign_keys`` so that the cascade from receipts to their items
and the restrict rules on merchants and tenants are enforced by the store.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Dict, Any, Optional

from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from receiptscanner.core.config import settings

logger = logging.getLogger(__name__)

# Declarative base
Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def resolve_database_url(url: Optional[str] = None) -> str:
    """Return the async connection string to use.

    Precedence: explicit ``url`` argument, then ``settings.DATABASE_URL``.
    If both are undefined a local SQLite database is used when
    ``DB_DEV_FALLBACK_SQLITE`` is true, otherwise a ``RuntimeError`` is
    raised.
    """
    db_url = url or settings.DATABASE_URL
    if not db_url:
        if not settings.DB_DEV_FALLBACK_SQLITE:
            raise RuntimeError(
                "No database URL provided via DATABASE_URL; with "
                "DB_DEV_FALLBACK_SQLITE=false a PostgreSQL URL is required."
            )
        return f"sqlite+aiosqlite:///{settings.SQLITE_FALLBACK_PATH}"

    url_obj = make_url(db_url)
    driver = url_obj.drivername or ""
    # SQLite: upgrade to aiosqlite
    if driver == "sqlite":
        url_obj = url_obj.set(drivername="sqlite+aiosqlite")
    # PostgreSQL: normalise every sync/async flavour to psycopg
    elif driver in {"postgresql", "postgres", "postgresql+psycopg2", "postgresql+asyncpg"}:
        url_obj = url_obj.set(drivername="postgresql+psycopg")
    return url_obj.render_as_string(hide_password=False)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: Optional[str] = None, **kwargs: Any) -> AsyncEngine:
    """Create an async engine for ``url`` with the application's defaults."""
    db_url = resolve_database_url(url)
    engine_kwargs: dict[str, Any] = dict(echo=settings.DB_ECHO, pool_pre_ping=True)
    engine_kwargs.update(kwargs)
    engine = create_async_engine(db_url, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    logger.info("[db] engine created driver=%s", engine.url.drivername)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, building it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session.

    Each session is scoped to one unit of work (typically one request)
    and closed after use.
    """
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all database tables defined on the declarative ``Base``."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        # Import all models to ensure metadata is populated
        from receiptscanner.models import tables  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
    logger.info("[db] tables ensured on %s", engine.url.drivername)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_db_debug_info() -> Dict[str, Any]:
    """Return non-sensitive information about the current DB engine for debugging."""
    info: Dict[str, Any] = {"environment": (settings.ENVIRONMENT or "development")}
    try:
        url_obj = make_url(resolve_database_url())
        info.update(
            {
                "drivername": url_obj.drivername,
                "username": url_obj.username,
                "host": url_obj.host,
                "port": url_obj.port,
                "database": url_obj.database,
                "url": url_obj.render_as_string(hide_password=True),
            }
        )
    except Exception as ex:
        info.update({"error": f"unable to parse engine url: {ex}"})
    info["has_DATABASE_URL"] = bool(settings.DATABASE_URL)
    return info
