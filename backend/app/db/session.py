"""
Async engine and sessions.

PostgreSQL (asyncpg) in production. SQLite is supported for local runs
and tests, with every transaction taking the write lock at BEGIN.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings


def enable_sqlite_serializable(async_engine):
    """
    Make SQLite transactions take the write lock up front.
    
    Every transaction starts with BEGIN IMMEDIATE, so writers are serialized
    the way SELECT ... FOR UPDATE serializes them per car on PostgreSQL.
    """
    sync_engine = async_engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return async_engine


def build_engine(database_url: str, **kwargs):
    """Create an async engine, applying SQLite transaction semantics when needed."""
    if database_url.startswith("sqlite"):
        return enable_sqlite_serializable(
            create_async_engine(database_url, echo=settings.db_echo, future=True, **kwargs)
        )
    return create_async_engine(
        database_url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        future=True,
        **kwargs,
    )


engine = build_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """One session per request."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
