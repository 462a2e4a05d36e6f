"""
Database connection management and session handling.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import Settings, get_settings
from .models.base import Base
from .utils.exceptions import CinebookError, ConcurrencyError, StorageError
from .utils.result import Err, Ok, Result
from .utils.retry import retry_on_concurrency_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATEs that mean "lost a lock race, try again"
LOCK_CONTENTION_SQLSTATES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
}


class AbortTransaction(Exception):
    """Raised inside a unit of work to roll it back and report ``error``."""

    def __init__(self, error: CinebookError):
        self.error = error
        super().__init__(error.message)


def is_lock_contention(exc: BaseException) -> bool:
    """Check whether a database error was caused by lock contention."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in LOCK_CONTENTION_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def create_database_engine(settings: Settings) -> AsyncEngine:
    """Create and configure the database engine with connection pooling."""
    if _is_sqlite(settings.database_url):
        engine = create_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            connect_args={"timeout": settings.sqlite_busy_timeout_seconds},
        )
        _configure_sqlite(engine)
        return engine

    return create_async_engine(
        settings.database_url,
        # Connection pool configuration for concurrent access
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.database_echo,
        connect_args={
            "server_settings": {
                "application_name": "cinebook",
            }
        }
    )


def _configure_sqlite(engine: AsyncEngine) -> None:
    """
    Take over transaction control from the sqlite driver.

    The driver delays BEGIN until the first write and does not support
    SAVEPOINT properly; emitting BEGIN IMMEDIATE ourselves gives every unit of
    work the write lock up front, so concurrent writers queue on the busy
    timeout instead of interleaving.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session factory for database sessions."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=True,
    )


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
    session: Optional[AsyncSession] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block atomically.

    Without ``session`` a new session and transaction are opened and committed
    on success. With ``session`` the block runs in a SAVEPOINT of the caller's
    transaction, so it can be undone on its own while the caller decides what
    happens to the rest.

    Usage:
        async with unit_of_work(factory) as session:
            await session.execute(query)
    """
    if session is not None:
        async with session.begin_nested():
            yield session
        return

    async with session_factory() as new_session:
        async with new_session.begin():
            yield new_session


@asynccontextmanager
async def read_session(
    session_factory: async_sessionmaker[AsyncSession],
    session: Optional[AsyncSession] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Yield the caller's session, or a short-lived one for a read-only query."""
    if session is not None:
        yield session
        return

    async with session_factory() as new_session:
        yield new_session


async def execute_atomically(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    session: Optional[AsyncSession] = None,
    operation: str = "operation",
    max_attempts: int = 3,
) -> Result[T, CinebookError]:
    """
    Run ``work`` in a unit of work and report the outcome as a Result.

    ``AbortTransaction`` raised by ``work`` rolls back and becomes ``Err``.
    Standalone calls retry on lock contention and turn any other storage
    failure into a generic ``StorageError``. When ``session`` is given the
    work runs in a SAVEPOINT and storage failures propagate, because only the
    owner of the outer transaction can decide to retry it.
    """
    if session is not None:
        try:
            async with unit_of_work(session_factory, session) as nested:
                return Ok(await work(nested))
        except AbortTransaction as abort:
            return Err(abort.error)

    @retry_on_concurrency_error(max_attempts=max_attempts, operation=operation)
    async def attempt() -> Result[T, CinebookError]:
        try:
            async with unit_of_work(session_factory) as new_session:
                return Ok(await work(new_session))
        except AbortTransaction as abort:
            return Err(abort.error)
        except DBAPIError as e:
            if is_lock_contention(e):
                raise ConcurrencyError(f"Lock contention during {operation}") from e
            raise

    try:
        return await attempt()
    except ConcurrencyError as e:
        logger.error(f"Giving up on {operation} after {max_attempts} attempts: {e.__cause__}")
        return Err(StorageError(retry_after=e.retry_after))
    except SQLAlchemyError as e:
        logger.error(f"Storage failure during {operation}: {e}", exc_info=True)
        return Err(StorageError())


class DatabaseManager:
    """Owns the engine and session factory; open at start-up, close at shutdown."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None

    async def initialize(self, create_tables: bool = True) -> None:
        """Initialize the database manager."""
        self.engine = create_database_engine(self.settings)
        self.session_factory = create_session_factory(self.engine)

        if create_tables:
            await self.create_all()

        logger.info("Database manager initialized")

    async def create_all(self) -> None:
        """Create all tables that do not exist yet."""
        if self.engine is None:
            raise RuntimeError("Database manager not initialized")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            logger.info("Database manager closed")

    async def __aenter__(self) -> "DatabaseManager":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def require_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self.session_factory is None:
            raise RuntimeError("Database manager not initialized")
        return self.session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session with automatic cleanup.

        Usage:
            async with db_manager.get_session() as session:
                result = await session.execute(query)
        """
        session_factory = self.require_session_factory()

        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
