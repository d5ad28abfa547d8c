"""
Database configuration and session management.
Uses SQLAlchemy 2.0 with async support.
"""

from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)

from .config import settings, DatabaseConfig
from .exceptions import BigWinAdminException, TransactionAbortedError
from .logging import get_logger

logger = get_logger(__name__)

# Global engine and session maker
async_engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None

# Tables whose mutations are announced on the change channel
WATCHED_TABLES = ("wallets", "wallet_transactions", "game_profiles")


def serialize_sqlite_writes(engine: AsyncEngine) -> None:
    """
    Start every SQLite transaction with BEGIN IMMEDIATE.

    SQLite ignores SELECT ... FOR UPDATE and the driver defers BEGIN until
    the first write, so two approvals could both read a pending request.
    Taking the write lock at BEGIN serializes them the way row locks do on
    PostgreSQL.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


async def init_database(database_url: Optional[str] = None, **engine_kwargs) -> None:
    """Initialize database connections and session makers."""
    global async_engine, async_session_maker

    logger.info("Initializing database connections")

    config = DatabaseConfig.get_engine_config() if database_url is None else {}
    config.update(engine_kwargs)

    async_engine = create_async_engine(
        database_url or DatabaseConfig.get_database_url(async_driver=True),
        **config,
        echo=settings.debug
    )

    if async_engine.dialect.name == "sqlite" and async_engine.url.database not in (None, "", ":memory:"):
        serialize_sqlite_writes(async_engine)

    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    logger.info("Database connections initialized")


async def close_database() -> None:
    """Close database connections."""
    global async_engine, async_session_maker

    logger.info("Closing database connections")

    if async_engine:
        await async_engine.dispose()

    async_engine = None
    async_session_maker = None

    logger.info("Database connections closed")


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session maker."""
    if not async_session_maker:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return async_session_maker


@asynccontextmanager
async def get_async_session(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None
) -> AsyncGenerator[AsyncSession, None]:
    """
    Get an async database session with automatic cleanup.

    Usage:
        async with get_async_session() as session:
            # Use session here
            pass
    """
    maker = session_maker or get_session_maker()

    async with maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def transactional_session(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None
) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block inside one all-or-nothing database transaction.

    Domain errors raised in the block roll the transaction back and
    propagate unchanged. Driver or commit failures roll back and surface
    as TransactionAbortedError.
    """
    maker = session_maker or get_session_maker()

    async with maker() as session:
        try:
            async with session.begin():
                yield session
        except BigWinAdminException:
            raise
        except SQLAlchemyError as e:
            logger.error("Transaction aborted", error=str(e))
            raise TransactionAbortedError(
                "Transaction aborted, no changes were applied",
                {"reason": e.__class__.__name__}
            ) from e


# Dependency for FastAPI
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency to get database session.

    Usage in route:
        async def my_route(db: AsyncSession = Depends(get_db_session)):
            # Use db here
            pass
    """
    async with get_async_session() as session:
        yield session


CHANGE_TRIGGER_FUNCTION = """
CREATE OR REPLACE FUNCTION notify_admin_change() RETURNS trigger AS $$
DECLARE
    row_data jsonb;
    changed text[];
BEGIN
    IF TG_OP = 'DELETE' THEN
        row_data := to_jsonb(OLD);
    ELSE
        row_data := to_jsonb(NEW);
    END IF;

    IF TG_OP = 'UPDATE' THEN
        SELECT coalesce(array_agg(n.key), ARRAY[]::text[]) INTO changed
        FROM jsonb_each(to_jsonb(NEW)) AS n
        WHERE n.value IS DISTINCT FROM (to_jsonb(OLD) -> n.key);
    ELSE
        changed := ARRAY[]::text[];
    END IF;

    PERFORM pg_notify(
        TG_ARGV[0],
        json_build_object(
            'collection', TG_TABLE_NAME,
            'operation', lower(TG_OP),
            'document_key', row_data ->> 'id',
            'updated_fields', changed
        )::text
    );
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;
"""


def change_trigger_statements(channel: str) -> list:
    """DDL installing the change-notification trigger on every watched table."""
    statements = [CHANGE_TRIGGER_FUNCTION]
    for table in WATCHED_TABLES:
        statements.append(f"DROP TRIGGER IF EXISTS {table}_admin_change ON {table}")
        statements.append(
            f"CREATE TRIGGER {table}_admin_change "
            f"AFTER INSERT OR UPDATE OR DELETE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION notify_admin_change('{channel}')"
        )
    return statements


class DatabaseManager:
    """Database manager for administrative operations."""

    @staticmethod
    async def create_tables() -> None:
        """Create all tables in the database."""
        from bigwin_admin.models.base import Base

        if not async_engine:
            raise RuntimeError("Database not initialized")

        logger.info("Creating database tables")
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    @staticmethod
    async def drop_tables() -> None:
        """Drop all tables in the database."""
        from bigwin_admin.models.base import Base

        if not async_engine:
            raise RuntimeError("Database not initialized")

        logger.warning("Dropping all database tables")
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database tables dropped")

    @staticmethod
    async def install_change_triggers(channel: Optional[str] = None) -> None:
        """Install the pg_notify triggers used by the change watcher (PostgreSQL only)."""
        if not async_engine:
            raise RuntimeError("Database not initialized")

        if async_engine.dialect.name != "postgresql":
            logger.info("Skipping change triggers, not a PostgreSQL database")
            return

        async with async_engine.begin() as conn:
            for statement in change_trigger_statements(channel or settings.change_channel):
                await conn.execute(text(statement))
        logger.info("Change notification triggers installed", tables=list(WATCHED_TABLES))

    @staticmethod
    async def health_check(
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None
    ) -> bool:
        """Check database connectivity."""
        try:
            async with get_async_session(session_maker) as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False
