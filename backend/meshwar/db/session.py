"""
Database ownership.

One `Database` (engine + session factory) is built per process in the
application lifespan and stored on `app.state`. Routes and services receive
it, or a session made from it, through FastAPI dependencies. Nothing here is
a module-level global, so tests can build their own `Database` and inject it
with `app.dependency_overrides`.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from meshwar.core.config import Settings
from meshwar.db.base import Base


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    pysqlite defers BEGIN until the first write and issues plain BEGIN, which
    lets two writers deadlock on lock upgrade. Take over transaction control
    and begin with BEGIN IMMEDIATE so writers queue on the busy timeout.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        self.is_sqlite = url.startswith("sqlite")
        if self.is_sqlite:
            engine_kwargs.setdefault("connect_args", {"timeout": 30})
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        if self.is_sqlite:
            _use_immediate_transactions(self.engine)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if settings.DATABASE_URL.startswith("sqlite"):
            return cls(settings.DATABASE_URL, echo=settings.DEBUG)
        return cls(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,
        )

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db(database: Database = Depends(get_database)) -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session. Services commit their own writes; anything left
    uncommitted when the request ends is rolled back on close.
    """
    async with database.session() as session:
        yield session
