from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from service_desk.db.models import ServiceTable, ServiceTemplateTable, SlaLevelTable, TemplateFieldTable

from .models import FieldType, Service, ServicePriority, ServiceStatus, Sla, Template, TemplateField


class CatalogRepository:
    """Read-only access to catalog records maintained by the administration screens."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_service(self, service_id: int) -> Service | None:
        async with self._session_factory() as session:
            row = await session.get(ServiceTable, service_id)
            return None if row is None else self._table_to_service(row)

    async def get_sla(self, sla_id: int) -> Sla | None:
        async with self._session_factory() as session:
            row = await session.get(SlaLevelTable, sla_id)
            return None if row is None else self._table_to_sla(row)

    async def get_template(self, template_id: int) -> Template | None:
        async with self._session_factory() as session:
            row = await session.get(ServiceTemplateTable, template_id)
            if row is None:
                return None
            result = await session.execute(
                select(TemplateFieldTable)
                .where(TemplateFieldTable.template_id == template_id)
                .order_by(TemplateFieldTable.display_order.asc(), TemplateFieldTable.id.asc())
            )
            fields = [self._table_to_field(field_row) for field_row in result.scalars().all()]
        return Template(
            id=row.id,
            service_id=row.service_id,
            name=row.name,
            description=row.description,
            version=row.version,
            active=row.active,
            fields=fields,
        )

    @staticmethod
    def _table_to_service(row: ServiceTable) -> Service:
        return Service(
            id=row.id,
            code=row.code,
            name=row.name,
            slug=row.slug,
            description=row.description,
            category_id=row.category_id,
            subcategory_id=row.subcategory_id,
            sla_id=row.sla_id,
            priority=ServicePriority(row.priority),
            status=ServiceStatus(row.status),
            keywords=row.keywords,
            metadata=dict(row.metadata_ or {}),
            published_at=row.published_at,
        )

    @staticmethod
    def _table_to_sla(row: SlaLevelTable) -> Sla:
        return Sla(
            id=row.id,
            name=row.name,
            description=row.description,
            first_response_minutes=row.first_response_minutes,
            resolution_minutes=row.resolution_minutes,
            pause_conditions=row.pause_conditions,
            active=row.active,
        )

    @staticmethod
    def _table_to_field(row: TemplateFieldTable) -> TemplateField:
        return TemplateField(
            id=row.id,
            field_name=row.field_name,
            label=row.label,
            type=FieldType(row.type),
            required=row.required,
            options=tuple(row.options or ()),
            validation_pattern=row.validation_pattern,
            error_message=row.error_message,
            placeholder=row.placeholder,
            help_text=row.help_text,
            display_order=row.display_order,
        )
