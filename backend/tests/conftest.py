"""Pytest configuration and shared fixtures.

Tests run against an in-memory SQLite database (aiosqlite) with foreign keys
enabled, so ON DELETE CASCADE and foreign-key violations behave like Postgres.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gigpack import models, schemas
from gigpack.auth import SupabaseSession, SupabaseUser, get_current_supabase_session
from gigpack.database import get_session
from gigpack.main import app


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def musician_id() -> uuid.UUID:
    return uuid.uuid4()


def build_request(**overrides: Any) -> schemas.SaveGigPackRequest:
    """Build a save request from camelCase JSON, as the editor sends it."""

    payload: dict[str, Any] = {
        "gig": {"title": "Friday at the Blue Room", "date": "2026-11-20"},
        "schedule": [],
        "materials": [],
        "packing": [],
        "setlist": [],
        "roles": [],
        "isEditing": False,
    }
    payload.update(overrides)
    return schemas.SaveGigPackRequest.model_validate(payload)


@pytest.fixture
def make_request():
    return build_request


@dataclass
class Caller:
    user_id: uuid.UUID


@pytest.fixture
def caller(owner_id: uuid.UUID) -> Caller:
    return Caller(user_id=owner_id)


@pytest_asyncio.fixture
async def api_client(session_factory, caller: Caller) -> AsyncIterator[AsyncClient]:
    async def _override_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    async def _override_auth() -> SupabaseSession:
        return SupabaseSession(
            user=SupabaseUser(
                id=caller.user_id,
                email="player@example.com",
                roles=("authenticated",),
                user_metadata={},
            ),
            access_token="test-token",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_current_supabase_session] = _override_auth
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
