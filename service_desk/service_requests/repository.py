from __future__ import annotations

from dataclasses import replace
from datetime import datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import String, cast, func, or_, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import select

from service_desk.audit.models import AuditEvent
from service_desk.audit.recorder import AuditRecorder
from service_desk.db.engine import create_schema
from service_desk.db.models import ServiceRequestTable, ServiceTable, UserTable

from .models import (
    SERVICE_REQUESTS_TABLE,
    NewServiceRequest,
    RequesterSummary,
    RequestFilters,
    ServiceRequest,
    ServiceSummary,
)
from .snapshots import ServiceSnapshot, SlaSnapshot
from .state import RequestStatus


class ServiceRequestRepository:
    """Persistence for ``service_requests``; every write carries its audit row."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        audit: AuditRecorder | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit or AuditRecorder(session_factory)
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        await create_schema(self._engine)

    async def code_exists(self, code: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ServiceRequestTable.id).where(ServiceRequestTable.code == code)
            )
            return result.first() is not None

    async def create_request(self, draft: NewServiceRequest, audit: AuditEvent) -> ServiceRequest:
        async with self._session_factory() as session:
            async with session.begin():
                row = ServiceRequestTable(
                    code=draft.code,
                    service_id=draft.service_id,
                    template_id=draft.template_id,
                    template_version=draft.template_version,
                    requester_id=draft.requester_id,
                    status=draft.status.value,
                    form_payload=dict(draft.form_payload),
                    submitted_at=draft.submitted_at,
                    sla_snapshot=None if draft.sla_snapshot is None else draft.sla_snapshot.as_dict(),
                    service_snapshot=draft.service_snapshot.as_dict(),
                    created_at=draft.submitted_at,
                    updated_at=draft.submitted_at,
                )
                session.add(row)
                await session.flush()
                await self._audit.append(
                    session,
                    replace(audit, affected_table=SERVICE_REQUESTS_TABLE, affected_id=row.id),
                )
                request_id = row.id

        created = await self.get_request(request_id)
        if created is None:
            raise RuntimeError(f"Request {request_id} vanished after insert")
        return created

    async def get_request(self, request_id: int) -> ServiceRequest | None:
        async with self._session_factory() as session:
            result = await session.execute(
                self._select_with_relations().where(ServiceRequestTable.id == request_id)
            )
            row = result.first()
        if row is None:
            return None
        return self._row_to_request(*row)

    async def list_requests(
        self, filters: RequestFilters, *, page: int, per_page: int
    ) -> tuple[list[ServiceRequest], int]:
        conditions = self._filter_conditions(filters)
        async with self._session_factory() as session:
            count_statement = select(func.count()).select_from(ServiceRequestTable)
            page_statement = self._select_with_relations()
            if conditions:
                count_statement = count_statement.where(*conditions)
                page_statement = page_statement.where(*conditions)
            total = await session.scalar(count_statement)
            result = await session.execute(
                page_statement
                .order_by(ServiceRequestTable.submitted_at.desc(), ServiceRequestTable.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            rows = result.all()
        return [self._row_to_request(*row) for row in rows], int(total or 0)

    async def change_status(
        self,
        *,
        request_id: int,
        expected: RequestStatus,
        target: RequestStatus,
        changed_at: datetime,
        audit: AuditEvent,
    ) -> ServiceRequest | None:
        """Move a request from ``expected`` to ``target``.

        The update only matches while the row still holds ``expected``, so of
        two callers racing from the same status exactly one wins. Returns
        ``None`` when the row is gone or no longer in ``expected``; nothing is
        written in that case.
        """

        values: dict[str, Any] = {"status": target.value, "updated_at": changed_at}
        if expected is RequestStatus.PENDING:
            values["redirected_at"] = changed_at

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ServiceRequestTable)
                    .where(
                        ServiceRequestTable.id == request_id,
                        ServiceRequestTable.status == expected.value,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return None
                await self._audit.append(
                    session,
                    replace(audit, affected_table=SERVICE_REQUESTS_TABLE, affected_id=request_id),
                )
        return await self.get_request(request_id)

    async def delete_request(self, request_id: int, audit: AuditEvent) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(ServiceRequestTable, request_id)
                if row is None:
                    return False
                await self._audit.append(
                    session,
                    replace(audit, affected_table=SERVICE_REQUESTS_TABLE, affected_id=request_id),
                )
                await session.delete(row)
        return True

    @staticmethod
    def _select_with_relations():
        return (
            select(ServiceRequestTable, ServiceTable, UserTable)
            .outerjoin(ServiceTable, ServiceTable.id == ServiceRequestTable.service_id)
            .outerjoin(UserTable, UserTable.id == ServiceRequestTable.requester_id)
        )

    @staticmethod
    def _filter_conditions(filters: RequestFilters) -> list[Any]:
        conditions: list[Any] = []
        if filters.status is not None:
            conditions.append(ServiceRequestTable.status == RequestStatus(filters.status).value)
        if filters.service_id is not None:
            conditions.append(ServiceRequestTable.service_id == filters.service_id)
        if filters.requester_id is not None:
            conditions.append(ServiceRequestTable.requester_id == filters.requester_id)
        if filters.submitted_from is not None:
            start = datetime.combine(filters.submitted_from, time.min, tzinfo=timezone.utc)
            conditions.append(ServiceRequestTable.submitted_at >= start)
        if filters.submitted_to is not None:
            end = datetime.combine(filters.submitted_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
            conditions.append(ServiceRequestTable.submitted_at < end)
        search = (filters.search or "").strip()
        if search:
            term = f"%{_escape_like(search.lower())}%"
            conditions.append(
                or_(
                    func.lower(ServiceRequestTable.code).like(term, escape="\\"),
                    func.lower(cast(ServiceRequestTable.form_payload, String)).like(term, escape="\\"),
                )
            )
        return conditions

    @staticmethod
    def _row_to_request(
        row: ServiceRequestTable,
        service_row: ServiceTable | None,
        user_row: UserTable | None,
    ) -> ServiceRequest:
        service = None
        if service_row is not None:
            service = ServiceSummary(
                id=service_row.id,
                code=service_row.code,
                name=service_row.name,
                status=service_row.status,
            )
        requester = None
        if user_row is not None:
            requester = RequesterSummary(id=user_row.id, name=user_row.name, email=user_row.email)
        return ServiceRequest(
            id=row.id,
            code=row.code,
            service_id=row.service_id,
            requester_id=row.requester_id,
            template_id=row.template_id,
            template_version=row.template_version,
            status=RequestStatus(row.status),
            form_payload=dict(row.form_payload or {}),
            service_snapshot=ServiceSnapshot.from_dict(row.service_snapshot),
            sla_snapshot=None if row.sla_snapshot is None else SlaSnapshot.from_dict(row.sla_snapshot),
            submitted_at=_ensure_datetime(row.submitted_at),
            redirected_at=None if row.redirected_at is None else _ensure_datetime(row.redirected_at),
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
            service=service,
            requester=requester,
        )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")
