"""Applies ``db/schema.sql`` at startup, once per distinct schema file."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

LOGGER = logging.getLogger(__name__)

_SCHEMA_PATH_ENV = "APP_SCHEMA_PATH"

_MIGRATION_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS gigpack_schema_migrations ("
    " schema_hash text PRIMARY KEY,"
    " applied_at timestamptz NOT NULL DEFAULT now()"
    ")"
)


def detect_schema_path() -> Optional[Path]:
    """Return ``$APP_SCHEMA_PATH`` or the nearest ``db/schema.sql`` above this module."""

    env_override = os.environ.get(_SCHEMA_PATH_ENV)
    if env_override:
        return Path(env_override)

    for parent in Path(__file__).resolve().parents:
        candidate = parent / "db" / "schema.sql"
        if candidate.exists():
            return candidate
    return None


def split_statements(schema_sql: str) -> Iterable[str]:
    """Split on ``;``. The schema file keeps semicolons out of literals and comments."""

    for chunk in schema_sql.split(";"):
        lines = [line for line in chunk.splitlines() if not line.lstrip().startswith("--")]
        statement = "\n".join(lines).strip()
        if statement:
            yield statement


async def ensure_schema(engine: AsyncEngine, schema_path: Optional[Path] = None) -> tuple[bool, int]:
    """Apply the schema if its hash has not been recorded yet.

    Returns ``(applied, statement_count)``.
    """

    if engine.dialect.name != "postgresql":
        LOGGER.info("Skipping schema.sql for %s database", engine.dialect.name)
        return False, 0

    path = schema_path or detect_schema_path()
    if path is None:
        raise RuntimeError("Database schema file not found")
    try:
        schema_sql = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:  # pragma: no cover - developer misconfiguration
        raise RuntimeError(f"Database schema file not found: {path}") from exc

    statements = list(split_statements(schema_sql))
    if not statements:
        return False, 0

    schema_hash = hashlib.sha256(schema_sql.encode("utf-8")).hexdigest()

    async with engine.begin() as conn:
        await conn.exec_driver_sql(_MIGRATION_TABLE_SQL)
        # Concurrent workers starting together would otherwise race on DDL.
        await conn.execute(text("SELECT pg_advisory_xact_lock(hashtext('gigpack_schema'))"))

        result = await conn.execute(
            text("SELECT 1 FROM gigpack_schema_migrations WHERE schema_hash = :schema_hash"),
            {"schema_hash": schema_hash},
        )
        if result.first() is not None:
            LOGGER.debug("Database schema already applied (hash=%s)", schema_hash)
            return False, 0

        for statement in statements:
            await conn.exec_driver_sql(statement)

        await conn.execute(
            text("INSERT INTO gigpack_schema_migrations (schema_hash) VALUES (:schema_hash)"),
            {"schema_hash": schema_hash},
        )

    LOGGER.info("Applied database schema (%d statements, hash=%s)", len(statements), schema_hash)
    return True, len(statements)
