"""
Database Session Management

Two privilege tiers share one schema:

- the end-user tier (``DATABASE_URL``) backs the social and inbox routes
- the service tier (``SERVICE_DATABASE_URL``, falling back to the end-user
  URL) backs pipeline writes: embeddings, suggested stories and deliveries
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import settings
from .models import Base


def _engine(url: str) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def _session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async_engine = _engine(settings.database_url)
service_engine = _engine(settings.effective_service_database_url)

AsyncSessionLocal = _session_factory(async_engine)
ServiceSessionLocal = _session_factory(service_engine)


@asynccontextmanager
async def _scoped(factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for end-user scoped database access.

    Usage:
        @router.get("/feed")
        async def feed(session: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with _scoped(AsyncSessionLocal) as session:
        yield session


async def get_service_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for service scoped database access (pipeline writes)."""
    async with _scoped(ServiceSessionLocal) as session:
        yield session


async def create_schema() -> None:
    """
    Create the pgvector extension and all tables if they do not exist.
    """
    async with service_engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engines() -> None:
    await async_engine.dispose()
    await service_engine.dispose()
