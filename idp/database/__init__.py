"""
Database engine, session helpers and the transactional unit of work.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Awaitable, Callable, Tuple, Type, TypeVar
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from idp.config import settings

T = TypeVar("T")


def _create_engine(url: str):
    engine = create_async_engine(url, echo=settings.db_echo, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        # Every transaction takes the sqlite write lock at BEGIN.
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_implicit_begin(dbapi_connection, _):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = _create_engine(settings.database_url)
SessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """
    Naive UTC timestamp, matching the DateTime columns.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency, handlers commit explicitly.
    """
    async with SessionLocal() as session:
        yield session


async def run_in_transaction(
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    commit_on: Tuple[Type[BaseException], ...] = (),
) -> T:
    """
    Run `work` inside a single transaction.

    Commits on success and rolls back on any exception, except for the exception
    types listed in `commit_on`, which are committed and then re-raised (used so a
    failed redemption still consumes the code or refresh token it deleted).
    """
    async with get_session() as session:
        try:
            result = await work(session)
        except commit_on:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
        await session.commit()
        return result
