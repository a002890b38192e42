"""Async SQLAlchemy engine, session dependency and unit-of-work helpers.

This module centralizes the database session dependency in the core layer
so it can be reused by the API, the services and the migrations.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError

from recovery_ledger.core.config import settings
from recovery_ledger.core.exceptions import AppError, ConcurrencyConflict, DatabaseError
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

# PostgreSQL SQLSTATEs that mean another writer holds the rows
LOCK_CONTENTION_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=settings.database_echo,
    future=True,
    # Disable prepared statement cache for PgBouncer compatibility
    connect_args={"statement_cache_size": 0},
)

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for getting async database session.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


def is_lock_contention(error: DBAPIError) -> bool:
    """Check whether a driver error reports lock or serialization contention."""
    orig = getattr(error, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in LOCK_CONTENTION_SQLSTATES


@asynccontextmanager
async def transactional(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a block as one unit of work.

    Commits once when the block exits cleanly. Any failure rolls the session
    back so no partial aggregate write survives, and storage failures are
    translated into the application error hierarchy.

    Args:
        session: Session shared by the repositories used inside the block

    Yields:
        AsyncSession: The same session
    """
    try:
        yield session
        await session.commit()
    except AppError:
        await session.rollback()
        raise
    except StaleDataError as e:
        await session.rollback()
        LOGGER.warning("Concurrent modification detected", extra={"error": str(e)})
        raise ConcurrencyConflict(
            "The case was modified by another request; retry the operation", e
        ) from e
    except DBAPIError as e:
        await session.rollback()
        if is_lock_contention(e):
            LOGGER.warning("Lock contention on case rows", extra={"error": str(e)})
            raise ConcurrencyConflict(
                "The case is locked by another request; retry the operation", e
            ) from e
        LOGGER.error("Database operation failed", exc_info=True)
        raise DatabaseError("Database operation failed", e) from e
    except SQLAlchemyError as e:
        await session.rollback()
        LOGGER.error("Database operation failed", exc_info=True)
        raise DatabaseError("Database operation failed", e) from e
    except BaseException:
        await session.rollback()
        raise


class DatabaseClient:
    """PostgreSQL database client with connection and migration management."""

    def __init__(self, engine: AsyncEngine):
        """Initialize database client.

        Args:
            engine: SQLAlchemy async engine
        """
        self.engine = engine
        self._connected = False

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                await conn.commit()

            self._connected = True
            LOGGER.info("Database connection successful")
            return True

        except Exception:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise

    async def disconnect(self) -> None:
        """Close database connection."""
        try:
            await self.engine.dispose()
            self._connected = False
            LOGGER.info("Database connection closed")
        except Exception as e:
            LOGGER.error(
                "Error closing database connection",
                exc_info=True,
                extra={"error": str(e)}
            )

    async def create_tables(self) -> None:
        """Create all database tables from SQLAlchemy models.

        This will create tables that don't exist without dropping existing ones.
        """
        # Register the mapped classes on Base.metadata
        from recovery_ledger.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            LOGGER.info("Database tables created/verified successfully")

        except Exception as e:
            LOGGER.error(
                "Failed to create database tables",
                exc_info=True,
                extra={"error": str(e)}
            )
            raise

    async def health_check(self) -> dict:
        """Check database health."""
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))

            self._connected = True

            return {
                "status": "healthy",
                "connected": True,
                "database": "postgresql",
                "latency_test": "passed" if val == 1 else "failed"
            }

        except Exception as e:
            self._connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
            }

    @property
    def is_connected(self) -> bool:
        """Check if database is connected."""
        return self._connected


db_client = DatabaseClient(engine)


async def init_database(auto_migrate: bool = True) -> None:
    """Initialize database connection and optionally create missing tables.

    Args:
        auto_migrate: Whether to create missing tables on startup
    """
    try:
        LOGGER.info("Initializing database connection...")
        await db_client.connect()

        if auto_migrate:
            await db_client.create_tables()

        LOGGER.info("Database initialization completed")

    except Exception as e:
        LOGGER.error(
            "Database initialization failed",
            exc_info=True,
            extra={"error": str(e)}
        )
        raise


async def close_database() -> None:
    """Close database connection."""
    try:
        LOGGER.info("Closing database connection...")
        await db_client.disconnect()
        LOGGER.info("Database connection closed successfully")
    except Exception as e:
        LOGGER.error(
            "Error closing database",
            exc_info=True,
            extra={"error": str(e)}
        )
