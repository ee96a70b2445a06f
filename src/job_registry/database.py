"""
Job Registry - Database Connection and Session Management

This module handles database connectivity, session management, and health checks.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.pool import StaticPool
import structlog

from ..shared.config import DatabaseSettings
from .models import Base

logger = structlog.get_logger(__name__)


class DatabaseManager:
    """
    Manages database connections and sessions for the job registry.
    Implements connection pooling and health checks.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self.settings = settings or DatabaseSettings()
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_connected = False

    def _engine_options(self, database_url: str) -> dict:
        options = {"echo": self.settings.db_echo}

        if database_url.startswith("sqlite"):
            # In-memory SQLite only exists for the lifetime of one connection
            if ":memory:" in database_url:
                options["poolclass"] = StaticPool
                options["connect_args"] = {"check_same_thread": False}
            return options

        options.update(
            pool_size=self.settings.db_pool_size,
            max_overflow=self.settings.db_max_overflow,
            pool_pre_ping=True,  # Validate connections before use
            pool_recycle=3600,   # Recycle connections every hour
        )
        return options

    async def initialize(self, create_tables: bool = False) -> None:
        """Initialize database connection and session factory."""
        try:
            database_url = self.settings.get_database_url()

            self.engine = create_async_engine(database_url, **self._engine_options(database_url))

            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            if create_tables:
                await self.create_tables()

            if not await self.health_check():
                raise RuntimeError("Database health check failed")
            self._is_connected = True

            logger.info("Database connection initialized successfully")

        except Exception as e:
            logger.error("Failed to initialize database connection", error=str(e))
            raise

    async def create_tables(self) -> None:
        """Create the registry table if it does not exist (dev and tests)."""
        if not self.engine:
            raise RuntimeError("Database not initialized")

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """
        Perform database health check.
        Returns True if database is accessible, False otherwise.
        """
        if not self.engine:
            return False

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self._is_connected = False
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get database session with automatic cleanup.

        Usage:
            async with db_manager.get_session() as session:
                # Use session here
                pass
        """
        if not self.session_factory:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    @property
    def is_connected(self) -> bool:
        """Check if database is connected."""
        return self._is_connected
