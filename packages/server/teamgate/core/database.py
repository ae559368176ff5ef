"""
Database connection and session management.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from teamgate.core.config import Settings
from teamgate.core.errors import StorageError

log = structlog.get_logger()

SessionFactory = async_sessionmaker[AsyncSession]


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the async engine.

    SQLite connections run with foreign keys enforced and every transaction
    opened with ``BEGIN <sqlite_begin_mode>`` so writers serialize the way
    ``SELECT ... FOR UPDATE`` serializes them on PostgreSQL.
    """
    url = make_url(settings.database_url)
    is_sqlite = url.get_backend_name() == "sqlite"

    kwargs: dict = {"echo": settings.debug, "future": True}
    if is_sqlite:
        db_path = (url.database or "").strip()
        if db_path and db_path != ":memory:" and not db_path.startswith("file:"):
            Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        kwargs["connect_args"] = {"timeout": settings.sqlite_busy_timeout_seconds}
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(settings.database_url, **kwargs)

    if is_sqlite:
        begin_mode = settings.sqlite_begin_mode
        busy_ms = int(settings.sqlite_busy_timeout_seconds * 1000)

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_on_connect(dbapi_conn, _):
            # Let the "begin" listener below issue BEGIN itself
            dbapi_conn.isolation_level = None
            cur = dbapi_conn.cursor()
            try:
                cur.execute("PRAGMA foreign_keys=ON")
                cur.execute(f"PRAGMA busy_timeout={busy_ms}")
            finally:
                cur.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql(f"BEGIN {begin_mode}")

    return engine


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (development only; use migrations in production)."""
    import teamgate.models  # noqa: F401  registers tables on SQLModel.metadata

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def transaction(sessions: SessionFactory) -> AsyncIterator[AsyncSession]:
    """One unit of work: commit on success, roll back on any error.

    Driver errors are logged and re-raised as ``StorageError`` so no storage
    detail leaks past the service layer.
    """
    async with sessions() as session:
        try:
            async with session.begin():
                yield session
        except SQLAlchemyError as exc:
            log.error("storage.error", error_type=type(exc).__name__, error=str(exc))
            raise StorageError() from exc
