from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import JSON, BigInteger, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JSONType = JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    pass


class Database:
    """
    Owns the async engine and session factory.
    Built once at process start (see main.lifespan) and closed on shutdown.
    """

    def __init__(self, url: str, *, echo: bool = False, **engine_kwargs) -> None:
        self.url = url
        self._echo = echo
        self._engine_kwargs = engine_kwargs
        self.engine: AsyncEngine | None = None
        self.sessionmaker: async_sessionmaker[AsyncSession] | None = None

    async def open(self) -> None:
        if self.engine is not None:
            return
        kwargs = dict(self._engine_kwargs)
        if not self.url.startswith("sqlite"):
            kwargs.setdefault("pool_pre_ping", True)
        self.engine = create_async_engine(self.url, echo=self._echo, **kwargs)
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)
        logger.info("Database engine opened (%s)", self.engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self.sessionmaker = None
        logger.info("Database engine disposed")

    async def create_all(self) -> None:
        # Importing the models package registers every table on Base.metadata
        import scrapcore.models  # noqa: F401

        if self.engine is None:
            raise RuntimeError("Database.open() must be called first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def session(self) -> AsyncSession:
        if self.sessionmaker is None:
            raise RuntimeError("Database.open() must be called first")
        return self.sessionmaker()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    One atomic unit: commit if the block finishes, roll back and re-raise otherwise.
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise
