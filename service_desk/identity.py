from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from service_desk.db.models import UserTable


class Role(str, Enum):
    """Supported roles."""

    ADMINISTRATOR = "Administrador"
    USER = "Usuario"


@dataclass(frozen=True, slots=True)
class Actor:
    """The authenticated user on whose behalf an operation runs."""

    id: int
    name: str
    role: Role
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMINISTRATOR


class ActorDirectory:
    """Looks up active accounts in ``users`` and turns them into actors."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_actor(self, user_id: int) -> Actor | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
        if row is None or not row.active:
            return None
        try:
            role = Role(row.role)
        except ValueError:
            role = Role.USER
        return Actor(id=row.id, name=row.name, role=role, email=row.email)
