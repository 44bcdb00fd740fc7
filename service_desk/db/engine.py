from __future__ import annotations

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from service_desk.core.config import Settings


def to_async_dsn(dsn: str) -> str:
    """Ensure Postgres DSNs use the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgres://"):
        return "postgresql+asyncpg://" + dsn[len("postgres://") :]
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def json_dumps(value: Any) -> str:
    """Serialize JSON columns without escaping non-ASCII characters."""

    return json.dumps(value, ensure_ascii=False)


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        to_async_dsn(settings.database_url),
        echo=False,
        pool_pre_ping=True,
        json_serializer=json_dumps,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables known to the SQLModel metadata (development/tests)."""

    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)


async def ping(engine: AsyncEngine) -> bool:
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))
    return True
