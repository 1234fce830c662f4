"""Database primitives."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable
from typing import Any, TypeVar

from sqlalchemy import MetaData, make_url
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings

T = TypeVar("T")


class Base(DeclarativeBase):
    """Base declarative model class."""

    metadata = MetaData()


def driver_connect_args(database_url: str, timeout: float) -> dict[str, Any]:
    """Return per-driver connection and statement timeouts.

    Parameters
    ----------
    database_url : str
        SQLAlchemy database URL.
    timeout : float
        Seconds allowed for connecting and for each statement.

    Returns
    -------
    dict[str, Any]
        Keyword arguments passed to the DBAPI ``connect`` call.
    """
    backend = make_url(database_url).get_backend_name()
    if backend == "postgresql":
        return {"timeout": timeout, "command_timeout": timeout}
    if backend == "sqlite":
        # Busy timeout while waiting on another writer's lock.
        return {"timeout": timeout}
    return {}


settings = get_settings()
engine = create_async_engine(
    settings.database_url,
    future=True,
    pool_pre_ping=True,
    connect_args=driver_connect_args(settings.database_url, settings.db_timeout_seconds),
)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session.

    Yields
    ------
    AsyncSession
        Active async SQLAlchemy session.
    """
    async with SessionLocal() as session:
        yield session


def insert_for(session: AsyncSession, model: type[Base]) -> Any:
    """Return a dialect-specific INSERT that supports ``ON CONFLICT``.

    Parameters
    ----------
    session : AsyncSession
        Session whose bind decides the dialect.
    model : type[Base]
        Mapped class to insert into.

    Returns
    -------
    Any
        PostgreSQL or SQLite ``Insert`` construct.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upserts are not supported on {dialect}")


async def run_bounded(awaitable: Awaitable[T], timeout: float | None = None) -> T:
    """Await a datastore call with an upper time bound.

    Parameters
    ----------
    awaitable : Awaitable[T]
        Pending datastore operation.
    timeout : float | None, default=None
        Seconds to wait; defaults to ``db_timeout_seconds``.

    Returns
    -------
    T
        Result of the awaited call.

    Raises
    ------
    TimeoutError
        When the call does not finish in time.
    """
    limit = timeout if timeout is not None else get_settings().db_timeout_seconds
    return await asyncio.wait_for(awaitable, timeout=limit)
