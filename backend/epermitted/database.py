"""
E-Permitted Backend — Database Handle & Session Management
============================================================

What:  The `Database` handle (async engine + session factory), the ORM base
       class and the per-request session dependency.
How:   The app factory constructs one `Database` and stores it on
       `app.state.db`. Route handlers receive sessions through
       `get_db_session`, which commits on success and rolls back on error.
       Shutdown disposes the engine.
Who:   Used by route handlers (via Depends), the analysis queue (its own
       sessions), the seed script and the test suite.

Connection Pooling Strategy (PostgreSQL):
    pool_size=20, max_overflow=10, pool_pre_ping, pool_recycle=3600.
    SQLite URLs skip the pool sizing arguments and instead run every
    transaction as BEGIN IMMEDIATE, so concurrent writers queue on the
    database lock rather than deadlocking when upgrading a read lock.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from epermitted.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Every model registers with this metadata, which Alembic reads for
    autogenerate and `Database.create_all()` uses in tests.
    """
    pass


def _enable_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make pysqlite/aiosqlite hand transaction control to SQLAlchemy and open
    every transaction with BEGIN IMMEDIATE.

    Also required for SAVEPOINT support on SQLite.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Explicitly constructed data-access handle.

    Lifecycle:
        1. Created by `create_app()` (engine creation does not connect)
        2. Optionally `create_all()` at startup (tests, local development)
        3. `session()` / `get_db_session` hand out sessions per unit of work
        4. `dispose()` at shutdown closes every pooled connection
    """

    def __init__(self, url: Optional[str] = None, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.url = url or self.config.database_url

        if self.url.startswith("sqlite"):
            engine_kwargs = {
                # Seconds a writer waits for the database lock
                "connect_args": {"timeout": 30},
            }
        else:
            engine_kwargs = {
                "pool_size": self.config.db_pool_size,
                "max_overflow": self.config.db_max_overflow,
                "pool_pre_ping": self.config.db_pool_pre_ping,
                "pool_recycle": 3600,
            }

        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=self.config.log_level == "DEBUG",
            **engine_kwargs,
        )
        if self.url.startswith("sqlite"):
            _enable_immediate_transactions(self.engine)

        # expire_on_commit=False: attributes stay readable after commit,
        # which the intake flow relies on when building its response
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Unit-of-work session outside the request cycle.

        Commits when the block exits cleanly, rolls back and re-raises
        otherwise. Used by the analysis queue and the seed script.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create every table registered on `Base.metadata`."""
        import epermitted.models  # noqa: F401  (registers all models)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured (%s)", self.dialect_name)

    async def ping(self) -> bool:
        """Lightweight connectivity check used by /health."""
        from sqlalchemy import text

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", str(e))
            return False

    async def dispose(self) -> None:
        """Gracefully closes all connections in the pool."""
        await self.engine.dispose()


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Takes the `Database` handle from `request.app.state.db`
        2. Yields a fresh session to the route handler
        3. On success: commits the transaction
        4. On error: rolls back and re-raises for the global error handlers
        5. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/councils")
        async def list_councils(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    database: Database = request.app.state.db
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
