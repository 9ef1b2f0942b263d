import asyncio
import logging
import pathlib
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from fest_bot.config import settings

logger = logging.getLogger(__name__)


def make_engine(db_path: pathlib.Path | str, busy_timeout: float | None = None) -> AsyncEngine:
    """Create an async SQLite engine whose transactions serialize writers.

    pysqlite/aiosqlite normally defer BEGIN until the first write, which lets
    two read-modify-write units read the same counter.  We take over BEGIN and
    issue ``BEGIN IMMEDIATE`` so the write lock is held from the first read.
    """
    timeout = settings.DB_BUSY_TIMEOUT if busy_timeout is None else busy_timeout
    async_engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        connect_args={"timeout": timeout},
    )

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return async_engine


def make_session_pool(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


# Create an async engine
engine = make_engine(settings.DB_PATH)

# Create a sync engine for Alembic migrations
sync_engine = create_engine(f"sqlite:///{settings.DB_PATH}")

# Create a session factory
SessionLocal = make_session_pool(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    """Brings the schema up to date: Alembic migrations first, then create_all."""
    root_path = pathlib.Path(__file__).resolve().parent.parent
    alembic_ini = root_path / "alembic.ini"
    if alembic_ini.exists():
        from alembic import command
        from alembic.config import Config as AlembicConfig

        cfg = AlembicConfig(str(alembic_ini))
        cfg.set_main_option("script_location", str(root_path / "alembic"))
        # Alembic runs synchronously, so it gets the plain sqlite driver
        cfg.set_main_option("sqlalchemy.url", str(sync_engine.url))
        cfg.attributes["configure_logger"] = False
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, command.upgrade, cfg, "head")
        logger.info("Alembic migrations applied")

    # Ensure all models are imported so SQLModel metadata includes them
    import fest_bot.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """One operation, one transaction: commit on success, roll back on any failure.

    Read-only operations go through here too; committing ends the transaction
    and releases the write lock taken by BEGIN IMMEDIATE.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
