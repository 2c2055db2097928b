"""
PayDesk - Database Configuration

This module handles database connection setup using SQLAlchemy 2.0 async.
The engine lives on a Database instance owned by the application
(``app.state.db``); nothing here opens a connection at import time.
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from paydesk.config import Settings

logger = logging.getLogger(__name__)


# Naming convention for constraints (helps with migrations)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    metadata = MetaData(naming_convention=convention)


class Database:
    """
    Owns the async engine and session factory for one application.

    Lifecycle: ``init()`` at startup, ``dispose()`` at shutdown.
    """

    def __init__(self, url: str, echo: bool = False, pool_size: int = 5, max_overflow: int = 10):
        self.url = url
        self.echo = echo
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url_async,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not initialised")
        return self._engine

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            raise RuntimeError("Database is not initialised")
        return self._session_maker

    @property
    def is_initialised(self) -> bool:
        return self._engine is not None

    def init(self) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return

        if self.url.startswith("sqlite"):
            # In-memory SQLite must share one connection across sessions
            self._engine = create_async_engine(
                self.url,
                echo=self.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self._engine = create_async_engine(
                self.url,
                echo=self.echo,           # Log SQL queries in debug mode
                pool_pre_ping=True,       # Verify connections before use
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
            )

        self._session_maker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database engine created")

    async def create_all(self) -> None:
        """
        Create all tables.
        Use this for development/testing only.
        For production, use Alembic migrations.
        """
        # Import models so every table is registered on the metadata
        import paydesk.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database connections closed")
        self._engine = None
        self._session_maker = None


async def get_async_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency for getting async database session.
    Use with FastAPI's Depends().
    """
    database: Database = request.app.state.db
    async with database.session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
