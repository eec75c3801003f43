"""Database utilities for the airline-ops service."""

from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

DEFAULT_DB_USER = "airline"
DEFAULT_DB_PASSWORD = "airline"
DEFAULT_DB_HOST = "localhost"
DEFAULT_DB_PORT = "5432"
DEFAULT_DB_NAME = "airlinedb"


def _build_default_dsn() -> str:
    user = os.getenv("DB_USER", DEFAULT_DB_USER)
    password = os.getenv("DB_PASSWORD", DEFAULT_DB_PASSWORD)
    host = os.getenv("DB_HOST", DEFAULT_DB_HOST)
    port = os.getenv("DB_PORT", DEFAULT_DB_PORT)
    name = os.getenv("DB_NAME", DEFAULT_DB_NAME)
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


def get_database_dsn() -> str:
    """Return the database DSN configured via environment or defaults."""

    return os.getenv("DB_DSN", _build_default_dsn())


def get_echo_flag() -> bool:
    return os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class Database:
    """Owns the engine and session factory for one application instance.

    The handle is created when the application is built and is passed to
    whoever needs a session; nothing in the package keeps a process-wide
    engine around.
    """

    def __init__(self, dsn: Optional[str] = None, echo: Optional[bool] = None) -> None:
        self.dsn = dsn or get_database_dsn()
        self.echo = get_echo_flag() if echo is None else echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def open(self) -> None:
        if self.engine is not None:
            return
        self.engine = create_async_engine(self.dsn, echo=self.echo, pool_pre_ping=True)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        logger.info("Database engine opened for %s", self.engine.url.render_as_string(hide_password=True))

    async def init_db(self) -> None:
        """Create database tables if they are missing."""

        from . import models  # noqa: F401  ensure metadata is imported

        self.open()
        assert self.engine is not None
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        logger.info("Database engine disposed")
        self.engine = None
        self.session_factory = None

    def session(self) -> AsyncSession:
        if self.session_factory is None:
            raise RuntimeError("Database is not open")
        return self.session_factory()

    async def ping(self) -> object:
        """Run a trivial round-trip and return the database's notion of now."""

        async with self.session() as session:
            result = await session.execute(text("SELECT CURRENT_TIMESTAMP"))
            return result.scalar_one()
