"""
Database engine, session factory, unit of work and declarative base.

Uses async SQLAlchemy 2.0 with asyncpg (production) or aiosqlite (dev/tests).
Nothing here is a module-level singleton: callers build an engine and a
session factory once at their entry point and inject them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError

from regwatch.config import Settings
from regwatch.errors import ComplianceError, ConflictError, StorageError

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for RegWatch models."""

    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(settings: Settings, url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine for the configured database."""
    url = url or settings.async_database_url
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=settings.debug)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_async_engine(
            url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_timeout=settings.db_pool_timeout,
            echo=settings.debug,
        )
    logger.info("database_engine_created", dialect=engine.dialect.name)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory and make sure audit guards are installed."""
    import regwatch.db.immutability  # noqa: F401  registers ORM guards

    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
    timeout_seconds: Optional[float] = None,
) -> AsyncIterator[AsyncSession]:
    """
    One transaction: commit on success, rollback on any error.

    The whole block, commit included, is bounded by ``timeout_seconds``.
    Storage failures surface as StorageError, lost optimistic-lock races
    as ConflictError. Domain errors pass through unchanged.
    """
    async with session_factory() as session:
        try:
            async with asyncio.timeout(timeout_seconds):
                yield session
                await session.commit()
        except ComplianceError:
            await session.rollback()
            raise
        except StaleDataError as exc:
            await session.rollback()
            logger.warning("unit_of_work_conflict", error=str(exc))
            raise ConflictError(
                "Row was modified by a concurrent operation; reload and retry"
            ) from exc
        except TimeoutError as exc:
            await session.rollback()
            logger.error("unit_of_work_timeout", timeout_seconds=timeout_seconds)
            raise StorageError(
                f"Storage operation exceeded {timeout_seconds}s and was rolled back"
            ) from exc
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error("unit_of_work_storage_error", error=str(exc))
            raise StorageError(f"Storage failure: {exc}") from exc
        except BaseException:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine, settings: Settings) -> None:
    """
    Create tables if needed.

    In development mode, auto-creates all tables (and the audit triggers)
    from the ORM models. In production, expects Alembic migrations.
    """
    import regwatch.db.models  # noqa: F401  populates Base.metadata

    if settings.environment.lower() == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("tables_created", mode="development", dialect=engine.dialect.name)
    else:
        logger.info("skipping_auto_create", reason="production uses alembic")

    logger.info("database_initialized")
