"""Async SQLAlchemy engine + session factory."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cfr_cache.config import settings


class Base(DeclarativeBase):
    """Declarative base used by all ORM models."""


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    if url.startswith("sqlite"):
        # SQLite pools are not sized; writers serialise on the file lock.
        return create_async_engine(
            url,
            echo=echo,
            connect_args={"timeout": 30},
        )
    return create_async_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(bind: AsyncEngine) -> None:
    """Create cache tables if they do not exist yet."""
    import cfr_cache.models  # noqa: F401  (registers tables on Base.metadata)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = build_engine(
    settings.DATABASE_URL,
    echo=(settings.APP_ENV == "development"),
)

async_session_factory = build_session_factory(engine)
