"""Database configuration for the gig pack API.

The engine talks to Supabase Postgres through SQLAlchemy's asyncio support.
Supabase hands out ``postgres://`` / ``postgresql://`` DSNs, which are
rewritten to the ``postgresql+asyncpg`` driver. Other URLs (for example an
``sqlite+aiosqlite`` database for local experiments) are used verbatim.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from dotenv import find_dotenv, load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from . import migrations

logger = logging.getLogger(__name__)

_DOTENV_PATH = find_dotenv(filename=".env", raise_error_if_not_found=False, usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH)

_DATABASE_URL_ENV = "DATABASE_URL"
_ASYNCPG_PREFIX = "postgresql+asyncpg://"


def build_async_database_url(raw_url: str) -> str:
    """Ensure Postgres URLs use the asyncpg driver."""

    if raw_url.startswith(_ASYNCPG_PREFIX):
        return raw_url
    if raw_url.startswith("postgres://"):
        raw_url = raw_url.replace("postgres://", "postgresql://", 1)
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", _ASYNCPG_PREFIX, 1)
    return raw_url


def uses_transaction_pooler(url: str) -> bool:
    """Supavisor/PgBouncer in transaction mode (port 6543) cannot cache prepared statements."""

    pooled = any(marker in url for marker in (".pooler.supabase.com", "pgbouncer=true", "supavisor"))
    return pooled and ":6543" in url


def get_database_url() -> str:
    try:
        raw_url = os.environ[_DATABASE_URL_ENV]
    except KeyError as exc:  # pragma: no cover - configuration error should be explicit
        raise RuntimeError(
            "DATABASE_URL environment variable must be set to connect to Supabase"
        ) from exc
    return build_async_database_url(raw_url)


def get_engine_kwargs(url: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": False}
    if not url.startswith(_ASYNCPG_PREFIX):
        return kwargs

    kwargs.update(
        {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }
    )
    if uses_transaction_pooler(url):
        logger.info("Using transaction mode pooled connection - disabling prepared statements")
        kwargs["connect_args"] = {"statement_cache_size": 0}
    return kwargs


_database_url = get_database_url()
ASYNC_ENGINE = create_async_engine(_database_url, **get_engine_kwargs(_database_url))
ASYNC_SESSION_FACTORY = async_sessionmaker(
    ASYNC_ENGINE, expire_on_commit=False, class_=AsyncSession
)


@asynccontextmanager
async def lifespan(app):  # pragma: no cover - FastAPI hook
    """Apply the schema on startup and dispose of the engine on shutdown."""

    try:
        applied, _ = await migrations.ensure_schema(ASYNC_ENGINE)
        if applied:
            logger.info("Database schema applied during startup")
    except RuntimeError:
        logger.exception("Failed to apply database schema during startup")
        raise

    yield
    await ASYNC_ENGINE.dispose()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an ``AsyncSession``."""

    async with ASYNC_SESSION_FACTORY() as session:
        yield session
