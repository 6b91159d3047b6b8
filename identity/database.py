"""
Async SQLAlchemy engine + session factory for the credential store.

init_db() is called once from the app lifespan; get_db() is the FastAPI
dependency that yields a session per request and owns the transaction.
"""
import os
import ssl
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

AsyncSessionFactory = async_sessionmaker[AsyncSession]

_engine: AsyncEngine | None = None
_session_factory: AsyncSessionFactory | None = None


def _build_ssl_connect_args() -> dict[str, Any]:
    """Return asyncpg ``connect_args`` for SSL when DATABASE_SSL is set."""
    mode = os.environ.get("DATABASE_SSL", "").lower()
    if not mode or mode == "disable":
        return {}

    cert_path = os.environ.get("DATABASE_SSL_CERT", "")
    if cert_path and Path(cert_path).exists():
        ctx = ssl.create_default_context(cafile=cert_path)
        return {"connect_args": {"ssl": ctx}}

    # Fall back to simple 'require' (encrypted, no cert verification)
    return {"connect_args": {"ssl": "require"}}


def get_async_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    if make_url(database_url).get_backend_name() != "postgresql":
        # SQLite (tests, local dev) takes no pool sizing or SSL options.
        return create_async_engine(database_url, **kwargs)
    merged = {**_build_ssl_connect_args(), **kwargs}
    return create_async_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        **merged,
    )


def init_db(database_url: str, **engine_kwargs: Any) -> AsyncSessionFactory:
    global _engine, _session_factory
    _engine = get_async_engine(database_url, **engine_kwargs)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )
    return _session_factory


def get_session_factory() -> AsyncSessionFactory:
    if _session_factory is None:
        raise RuntimeError("Database not initialised; call init_db() first")
    return _session_factory


async def create_tables() -> None:
    """Create all tables (development / tests only; production uses Alembic)."""
    if _engine is None:
        raise RuntimeError("Database not initialised; call init_db() first")
    # Register models with Base.metadata
    from identity.auth import models  # noqa: F401

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
