"""Async database engine, session factory and transaction scope.

A :class:`Database` is built once at process start (see ``meterstore.main``)
and passed to whatever needs it. It owns the connection pool for the life
of the process; call :meth:`Database.dispose` on shutdown.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

logger = logging.getLogger(__name__)

# Dialect names as reported by SQLAlchemy.
POSTGRES = "postgresql"
MYSQL = "mysql"
SQLITE = "sqlite"


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine + session factory for one relational backend."""

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 10,
    ) -> None:
        self.url = make_url(url)
        engine_kwargs: dict = {"echo": echo}
        if self.backend != SQLITE:
            engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow)

        self.engine = create_async_engine(self.url, **engine_kwargs)
        if self.backend == SQLITE:
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self.session_factory = sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

    @property
    def backend(self) -> str:
        """Dialect name: ``postgresql``, ``mysql`` or ``sqlite``."""
        return self.url.get_backend_name()

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Run the enclosed block in one transaction.

        Commits when the block exits normally and rolls back when it raises;
        the exception is re-raised unchanged.
        """
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """A plain session for read-only queries."""
        async with self.session_factory() as session:
            yield session

    async def create_all(self) -> None:
        """Create all tables. The schema itself is owned outside this package."""
        import meterstore.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Ensured tables exist on %s backend", self.backend)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the app-wide Database."""
    return request.app.state.database


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session."""
    async with get_database(request).session() as session:
        yield session
