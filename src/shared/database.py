"""SQLAlchemy plumbing shared by every bounded context.

Each context declares its tables on the common ``Base`` and receives an
``async_sessionmaker`` from the container. Every service call opens its own
session, so each collaborator call is its own transaction.
"""

import importlib

import structlog
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = structlog.get_logger(__name__)

# Modules whose import registers tables on Base.metadata.
MODEL_MODULES = (
    "inventory.models",
    "identity.addresses",
    "payments.models",
    "ordering.cart.models",
    "ordering.order.models",
)


class Base(DeclarativeBase):
    pass


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Writers queue on SQLite's file lock instead of failing fast.
        connect_args["timeout"] = 30
    return create_async_engine(url, echo=echo, connect_args=connect_args)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


def load_models() -> None:
    for module in MODEL_MODULES:
        importlib.import_module(module)


async def setup_db(engine: AsyncEngine) -> None:
    """Create every table."""
    load_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema created", tables=len(Base.metadata.tables))


async def drop_db(engine: AsyncEngine) -> None:
    """Drop every table."""
    load_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Database schema dropped")


def insert_for(session: AsyncSession, table):
    """Dialect-specific INSERT supporting ``on_conflict_do_update``."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(table)
    return sqlite_insert(table)
