from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from appointly.core.config import DATABASE_URL, DB_ECHO


def normalize_database_url(url: str) -> str:
    """Convert a plain postgres URL to its async driver form."""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = url.replace("postgresql", "postgresql+asyncpg", 1)
    return url


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    url = normalize_database_url(url)
    engine = create_async_engine(url, echo=echo, future=True)
    if engine.dialect.name == "sqlite":
        _use_immediate_transactions(engine)
    return engine


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    # SQLite has no row locks. BEGIN IMMEDIATE takes the write lock up front,
    # so a read-then-write unit of work runs serialised against other writers.
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# Create async engine
engine = create_engine_for_url(DATABASE_URL, echo=DB_ECHO)

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()


@asynccontextmanager
async def unit_of_work(session: AsyncSession):
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise


# Dependency for FastAPI
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
