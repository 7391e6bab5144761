"""
============================================================================
MODEL VITALS - DATABASE MANAGER
============================================================================
Async engine and session management for the result store, plus the
read-side repository over persisted probe results.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from pathlib import Path
from typing import Optional, AsyncGenerator, Dict, Any, List
from contextlib import asynccontextmanager

from sqlalchemy import text, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    AsyncEngine,
    async_sessionmaker
)

from config.constants import Limits
from config.settings import DatabaseSettings
from database.models import Base, MonitoringResult
from exceptions import DatabaseConnectionError, DatabaseException
from exceptions.database import mask_password
from utils.logger import get_logger


logger = get_logger("Database")


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Owns the async engine and session factory.
    Supports SQLite (aiosqlite) and PostgreSQL (asyncpg).
    """

    def __init__(self, settings: DatabaseSettings):
        """
        Initialize database manager.

        Args:
            settings: Database settings section
        """
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        self.database_url = settings.url.get_secret_value()

        logger.info(f"DatabaseManager created for {mask_password(self.database_url)}")

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    async def initialize(self) -> None:
        """
        Create the engine and session factory, then create the tables if
        they don't exist.

        Raises:
            DatabaseConnectionError: If the database cannot be reached
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            try:
                self._ensure_sqlite_directory()

                engine_kwargs: Dict[str, Any] = {"echo": self.settings.echo}
                if not self.settings.is_sqlite:
                    engine_kwargs.update(
                        pool_size=self.settings.pool_size,
                        pool_pre_ping=True,
                    )
                self.engine = create_async_engine(self.database_url, **engine_kwargs)

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

                await self.create_tables()

                self._is_initialized = True
                logger.info("✓ Database initialized successfully")

            except (SQLAlchemyError, OSError) as e:
                if self.engine is not None:
                    await self.engine.dispose()
                    self.engine = None
                raise DatabaseConnectionError(
                    f"Failed to initialize database: {e}",
                    url=self.database_url,
                    cause=e,
                ) from e

    def _ensure_sqlite_directory(self) -> None:
        if not self.settings.is_sqlite:
            return
        database = make_url(self.database_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    async def create_tables(self) -> None:
        """Create all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug("Database tables created")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        Yields:
            AsyncSession instance

        Example:
            async with db_manager.session() as session:
                session.add(row)
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, DatabaseException) as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
        self._is_initialized = False
        logger.info("✓ Database connections closed")


# ============================================================================
# RESULT REPOSITORY
# ============================================================================

class ResultRepository:
    """
    Read-side queries over persisted probe results.

    Returns rows as stored; no aggregation is performed here.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    async def get_by_series_id(self, series_id: str) -> List[MonitoringResult]:
        """All rows written for one execution, oldest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(MonitoringResult)
                .where(MonitoringResult.series_id == series_id)
                .order_by(MonitoringResult.timestamp, MonitoringResult.id)
            )
            return list(result.scalars().all())

    async def get_recent(
        self,
        monitor_name: Optional[str] = None,
        state: Optional[str] = None,
        limit: int = Limits.DEFAULT_RESULTS_LIMIT,
        offset: int = 0,
    ) -> List[MonitoringResult]:
        """
        Most recent rows first, optionally filtered.

        Args:
            monitor_name: Only rows for this monitor
            state: Only rows in this state (``Complete`` or ``Fail``)
            limit: Page size, capped at Limits.MAX_RESULTS_LIMIT
            offset: Rows to skip
        """
        limit = max(1, min(limit, Limits.MAX_RESULTS_LIMIT))
        offset = max(0, offset)

        query = select(MonitoringResult)
        if monitor_name:
            query = query.where(MonitoringResult.monitor_name == monitor_name)
        if state:
            query = query.where(MonitoringResult.state == state)
        query = (
            query.order_by(MonitoringResult.timestamp.desc(), MonitoringResult.id.desc())
            .limit(limit)
            .offset(offset)
        )

        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_monitor_names(self) -> List[str]:
        """Distinct monitor names that have at least one row."""
        async with self.db.session() as session:
            result = await session.execute(
                select(MonitoringResult.monitor_name)
                .distinct()
                .order_by(MonitoringResult.monitor_name)
            )
            return list(result.scalars().all())
