from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from service_desk.audit.recorder import AuditRecorder
from service_desk.catalog.repository import CatalogRepository
from service_desk.db.engine import create_schema, json_dumps
from service_desk.db.models import (
    CategoryTable,
    ServiceTable,
    ServiceTemplateTable,
    SlaLevelTable,
    TemplateFieldTable,
    UserTable,
)
from service_desk.identity import Actor, Role
from service_desk.service_requests.repository import ServiceRequestRepository
from service_desk.service_requests.service import LifecyclePolicy, ServiceRequestLifecycle


@dataclass(slots=True)
class SeededCatalog:
    admin: Actor
    requester: Actor
    other_requester: Actor
    category_id: int
    sla_id: int
    service_id: int
    service_without_sla_id: int
    draft_service_id: int
    template_id: int
    inactive_template_id: int


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'service_desk.db'}", json_serializer=json_dumps)
    await create_schema(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def audit_recorder(session_factory):
    return AuditRecorder(session_factory)


@pytest.fixture
def request_repository(session_factory, audit_recorder, engine):
    return ServiceRequestRepository(session_factory, audit=audit_recorder, engine=engine)


@pytest.fixture
def lifecycle(request_repository, session_factory):
    return ServiceRequestLifecycle(
        request_repository,
        CatalogRepository(session_factory),
        policy=LifecyclePolicy(),
    )


def _user(name: str, email: str, role: Role) -> UserTable:
    return UserTable(name=name, email=email, role=role.value)


@pytest_asyncio.fixture
async def catalog(session_factory) -> SeededCatalog:
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            admin = _user("Ada Admin", "ada@example.com", Role.ADMINISTRATOR)
            requester = _user("Rui Requester", "rui@example.com", Role.USER)
            other = _user("Olga Other", "olga@example.com", Role.USER)
            category = CategoryTable(name="Hardware", slug="hardware")
            sla = SlaLevelTable(name="Gold", first_response_minutes=30, resolution_minutes=240)
            session.add_all([admin, requester, other, category, sla])
            await session.flush()

            service = ServiceTable(
                code="SRV-LAPTOP",
                name="Laptop request",
                slug="laptop-request",
                category_id=category.id,
                sla_id=sla.id,
                priority="Alta",
                status="Publicado",
                published_at=now,
            )
            bare_service = ServiceTable(
                code="SRV-BADGE",
                name="Badge replacement",
                slug="badge-replacement",
                category_id=category.id,
                priority="Baja",
                status="Publicado",
                published_at=now,
            )
            draft_service = ServiceTable(
                code="SRV-DRAFT",
                name="Unreleased service",
                slug="unreleased-service",
                category_id=category.id,
                priority="Media",
                status="Borrador",
            )
            session.add_all([service, bare_service, draft_service])
            await session.flush()

            template = ServiceTemplateTable(service_id=service.id, name="Laptop intake", version=3)
            inactive_template = ServiceTemplateTable(
                service_id=service.id, name="Old intake", version=1, active=False
            )
            session.add_all([template, inactive_template])
            await session.flush()

            session.add_all(
                [
                    TemplateFieldTable(
                        template_id=template.id,
                        field_name="urgency",
                        label="Urgency",
                        type="select",
                        options=["low", "high"],
                        required=True,
                        display_order=1,
                    ),
                    TemplateFieldTable(
                        template_id=template.id,
                        field_name="quantity",
                        label="Quantity",
                        type="numero",
                        display_order=2,
                    ),
                    TemplateFieldTable(
                        template_id=template.id,
                        field_name="asset_tag",
                        label="Asset tag",
                        type="texto",
                        validation_pattern=r"AT-\d{4}",
                        error_message="Asset tag must look like AT-1234",
                        display_order=3,
                    ),
                ]
            )

        return SeededCatalog(
            admin=Actor(id=admin.id, name=admin.name, role=Role.ADMINISTRATOR, email=admin.email),
            requester=Actor(id=requester.id, name=requester.name, role=Role.USER, email=requester.email),
            other_requester=Actor(id=other.id, name=other.name, role=Role.USER, email=other.email),
            category_id=category.id,
            sla_id=sla.id,
            service_id=service.id,
            service_without_sla_id=bare_service.id,
            draft_service_id=draft_service.id,
            template_id=template.id,
            inactive_template_id=inactive_template.id,
        )
