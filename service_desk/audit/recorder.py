from __future__ import annotations

import logging
from datetime import timezone
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from service_desk.db.models import AuditLogTable
from service_desk.identity import Actor

from .models import AuditEntry, AuditEvent, ClientContext

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Insert-only writer for the ``audit_logs`` table.

    ``append`` stages an entry inside a transaction owned by the caller, so a
    state change and its audit row commit or roll back together. ``record``
    is the standalone variant for collaborators that have no transaction of
    their own. Entries are never changed or removed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, session: AsyncSession, event: AuditEvent) -> AuditEntry:
        client = event.client or ClientContext()
        row = AuditLogTable(
            user_id=event.actor_id,
            module=event.module,
            action=event.action,
            description=event.description,
            affected_table=event.affected_table,
            affected_id=event.affected_id,
            changes=None if event.changes is None else dict(event.changes),
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        session.add(row)
        await session.flush()
        logger.debug(
            "audit %s/%s on %s#%s by %s",
            event.module,
            event.action,
            event.affected_table,
            event.affected_id,
            event.actor_id if event.actor_id is not None else "system",
        )
        return self._table_to_entry(row)

    async def record(
        self,
        module: str,
        action: str,
        *,
        actor: Actor | None = None,
        affected_table: str | None = None,
        affected_id: int | None = None,
        changes: Mapping[str, Any] | None = None,
        client: ClientContext | None = None,
        description: str | None = None,
    ) -> AuditEntry:
        event = AuditEvent(
            module=module,
            action=action,
            actor_id=None if actor is None else actor.id,
            affected_table=affected_table,
            affected_id=affected_id,
            changes=changes,
            description=description,
            client=client,
        )
        async with self._session_factory() as session:
            async with session.begin():
                return await self.append(session, event)

    async def entries_for(self, affected_table: str, affected_id: int) -> list[AuditEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditLogTable)
                .where(
                    AuditLogTable.affected_table == affected_table,
                    AuditLogTable.affected_id == affected_id,
                )
                .order_by(AuditLogTable.id.asc())
            )
            return [self._table_to_entry(row) for row in result.scalars().all()]

    @staticmethod
    def _table_to_entry(row: AuditLogTable) -> AuditEntry:
        created_at = row.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return AuditEntry(
            id=row.id,
            module=row.module,
            action=row.action,
            created_at=created_at,
            user_id=row.user_id,
            description=row.description,
            affected_table=row.affected_table,
            affected_id=row.affected_id,
            changes=None if row.changes is None else dict(row.changes),
            ip_address=row.ip_address,
            user_agent=row.user_agent,
        )
