from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func
from sqlmodel import select

from service_desk.audit import ClientContext
from service_desk.catalog.repository import CatalogRepository
from service_desk.db.models import AuditLogTable, ServiceRequestTable, ServiceTable, SlaLevelTable
from service_desk.service_requests import (
    InvalidTransitionError,
    LifecyclePolicy,
    RequestAuthorizationError,
    RequestStatus,
    ServiceRequestLifecycle,
    ServiceRequestNotFoundError,
    ServiceRequestRepository,
    SubmissionValidationError,
)
from service_desk.service_requests.snapshots import SlaSnapshot

CODE_RE = re.compile(r"SR-[A-Z0-9]{8}")


class TickingClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(minutes=1)
        return current


async def _count(session_factory, table) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(table))


@pytest.mark.asyncio
async def test_create_without_template_freezes_service_and_sla(lifecycle, catalog, audit_recorder):
    client = ClientContext(ip_address="192.0.2.10", user_agent="pytest")

    request = await lifecycle.create_request(
        service_id=catalog.service_id,
        payload={"details": "New laptop for onboarding", "extras": ["dock"]},
        actor=catalog.requester,
        client=client,
    )

    assert CODE_RE.fullmatch(request.code)
    assert request.status is RequestStatus.PENDING
    assert request.requester_id == catalog.requester.id
    assert request.template_id is None
    assert request.template_version is None
    assert request.form_payload == {"details": "New laptop for onboarding", "extras": ["dock"]}
    assert request.sla_snapshot == SlaSnapshot(name="Gold", first_response_minutes=30, resolution_minutes=240)
    assert request.service_snapshot.code == "SRV-LAPTOP"
    assert request.service.name == "Laptop request"
    assert request.requester.email == "rui@example.com"
    assert request.redirected_at is None

    entries = await audit_recorder.entries_for("service_requests", request.id)
    assert len(entries) == 1
    assert (entries[0].module, entries[0].action) == ("Requests", "Create")
    assert entries[0].user_id == catalog.requester.id
    assert entries[0].changes == {"after": {"code": request.code, "status": "Pendiente"}}
    assert entries[0].ip_address == "192.0.2.10"


@pytest.mark.asyncio
async def test_create_for_service_without_sla_has_no_sla_snapshot(lifecycle, catalog):
    request = await lifecycle.create_request(
        service_id=catalog.service_without_sla_id, payload={}, actor=catalog.requester
    )

    assert request.sla_snapshot is None
    assert request.service_snapshot.name == "Badge replacement"


@pytest.mark.asyncio
async def test_invalid_submission_persists_nothing(lifecycle, catalog, session_factory):
    with pytest.raises(SubmissionValidationError) as excinfo:
        await lifecycle.create_request(
            service_id=catalog.service_id,
            template_id=catalog.template_id,
            payload={"urgency": "medium"},
            actor=catalog.requester,
        )

    assert excinfo.value.fields() == ["urgency"]
    assert excinfo.value.errors[0].code == "invalid_option"
    assert await _count(session_factory, ServiceRequestTable) == 0
    assert await _count(session_factory, AuditLogTable) == 0


@pytest.mark.asyncio
async def test_create_with_template_stores_normalized_payload_and_version(lifecycle, catalog):
    request = await lifecycle.create_request(
        service_id=catalog.service_id,
        template_id=catalog.template_id,
        payload={"urgency": "high", "quantity": "2", "asset_tag": "AT-1234"},
        actor=catalog.requester,
    )

    assert request.template_id == catalog.template_id
    assert request.template_version == 3
    assert request.form_payload == {"urgency": "high", "quantity": 2, "asset_tag": "AT-1234"}


@pytest.mark.asyncio
async def test_create_rejects_unavailable_services_and_templates(lifecycle, catalog, session_factory):
    with pytest.raises(ServiceRequestNotFoundError):
        await lifecycle.create_request(service_id=9999, payload={}, actor=catalog.requester)
    with pytest.raises(ServiceRequestNotFoundError):
        await lifecycle.create_request(service_id=catalog.draft_service_id, payload={}, actor=catalog.requester)
    with pytest.raises(ServiceRequestNotFoundError):
        await lifecycle.create_request(
            service_id=catalog.service_id,
            template_id=catalog.inactive_template_id,
            payload={},
            actor=catalog.requester,
        )
    with pytest.raises(ServiceRequestNotFoundError):
        await lifecycle.create_request(
            service_id=catalog.service_without_sla_id,
            template_id=catalog.template_id,
            payload={"urgency": "low"},
            actor=catalog.requester,
        )

    assert await _count(session_factory, ServiceRequestTable) == 0
    assert await _count(session_factory, AuditLogTable) == 0


@pytest.mark.asyncio
async def test_snapshots_survive_catalog_edits(lifecycle, catalog, session_factory):
    request = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)

    async with session_factory() as session:
        async with session.begin():
            service = await session.get(ServiceTable, catalog.service_id)
            service.name = "Laptop request (2025)"
            service.priority = "Baja"
            sla = await session.get(SlaLevelTable, catalog.sla_id)
            sla.resolution_minutes = 15
            sla.name = "Bronze"

    reloaded = await lifecycle.get_request(request.id, actor=catalog.admin)

    assert reloaded.service_snapshot == request.service_snapshot
    assert reloaded.service_snapshot.priority.value == "Alta"
    assert reloaded.sla_snapshot == SlaSnapshot(name="Gold", first_response_minutes=30, resolution_minutes=240)
    assert reloaded.service.name == "Laptop request (2025)"


@pytest.mark.asyncio
async def test_transitions_follow_the_state_machine(request_repository, session_factory, catalog, audit_recorder):
    clock = TickingClock(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))
    lifecycle = ServiceRequestLifecycle(request_repository, CatalogRepository(session_factory), clock=clock)
    request = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)

    started = await lifecycle.change_status(request.id, new_status=RequestStatus.IN_PROGRESS, actor=catalog.admin)
    resolved = await lifecycle.change_status(request.id, new_status=RequestStatus.RESOLVED, actor=catalog.admin)

    assert started.redirected_at == datetime(2025, 3, 1, 9, 1, tzinfo=timezone.utc)
    assert resolved.status is RequestStatus.RESOLVED
    assert resolved.redirected_at == started.redirected_at
    assert resolved.updated_at == datetime(2025, 3, 1, 9, 2, tzinfo=timezone.utc)

    with pytest.raises(InvalidTransitionError) as excinfo:
        await lifecycle.change_status(request.id, new_status=RequestStatus.IN_PROGRESS, actor=catalog.admin)

    assert excinfo.value.current is RequestStatus.RESOLVED
    assert excinfo.value.target is RequestStatus.IN_PROGRESS
    current = await lifecycle.get_request(request.id, actor=catalog.admin)
    assert current.status is RequestStatus.RESOLVED

    entries = await audit_recorder.entries_for("service_requests", request.id)
    assert [entry.action for entry in entries] == ["Create", "Status Change", "Status Change"]
    assert entries[1].changes == {"before": "Pendiente", "after": "En Proceso"}
    assert entries[2].changes == {"before": "En Proceso", "after": "Resuelta"}
    assert entries[2].user_id == catalog.admin.id


@pytest.mark.asyncio
async def test_cancelled_requests_are_terminal(lifecycle, catalog):
    request = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)
    await lifecycle.change_status(request.id, new_status=RequestStatus.CANCELLED, actor=catalog.admin)

    for target in (RequestStatus.PENDING, RequestStatus.IN_PROGRESS, RequestStatus.RESOLVED, RequestStatus.CANCELLED):
        with pytest.raises(InvalidTransitionError):
            await lifecycle.change_status(request.id, new_status=target, actor=catalog.admin)


class RendezvousRepository(ServiceRequestRepository):
    """Holds status writes until every racer has read the request."""

    def __init__(self, *args, parties: int, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._parties = parties
        self._arrived = 0
        self._all_arrived = asyncio.Event()

    async def change_status(self, **kwargs):
        self._arrived += 1
        if self._arrived >= self._parties:
            self._all_arrived.set()
        await asyncio.wait_for(self._all_arrived.wait(), timeout=5)
        return await super().change_status(**kwargs)


@pytest.mark.asyncio
async def test_racing_transitions_have_a_single_winner(session_factory, audit_recorder, engine, catalog):
    repository = RendezvousRepository(session_factory, audit=audit_recorder, engine=engine, parties=2)
    lifecycle = ServiceRequestLifecycle(repository, CatalogRepository(session_factory))
    request = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)

    results = await asyncio.gather(
        lifecycle.change_status(request.id, new_status=RequestStatus.IN_PROGRESS, actor=catalog.admin),
        lifecycle.change_status(request.id, new_status=RequestStatus.CANCELLED, actor=catalog.admin),
        return_exceptions=True,
    )

    winners = [result for result in results if not isinstance(result, BaseException)]
    losers = [result for result in results if isinstance(result, BaseException)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], InvalidTransitionError)

    final = await repository.get_request(request.id)
    assert final.status is winners[0].status
    assert losers[0].current is final.status

    entries = await audit_recorder.entries_for("service_requests", request.id)
    assert [entry.action for entry in entries] == ["Create", "Status Change"]
    assert entries[1].changes["after"] == final.status.value


@pytest.mark.asyncio
async def test_requesters_cannot_change_status_by_default(lifecycle, catalog, audit_recorder):
    request = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)

    with pytest.raises(RequestAuthorizationError):
        await lifecycle.change_status(request.id, new_status=RequestStatus.CANCELLED, actor=catalog.requester)

    unchanged = await lifecycle.get_request(request.id, actor=catalog.requester)
    assert unchanged.status is RequestStatus.PENDING
    assert len(await audit_recorder.entries_for("service_requests", request.id)) == 1


@pytest.mark.asyncio
async def test_policy_can_let_requesters_manage_their_own_requests(request_repository, session_factory, catalog):
    lifecycle = ServiceRequestLifecycle(
        request_repository,
        CatalogRepository(session_factory),
        policy=LifecyclePolicy(requesters_may_change_status=True, requesters_may_delete=True),
    )
    own = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)
    foreign = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.other_requester)

    cancelled = await lifecycle.change_status(own.id, new_status=RequestStatus.CANCELLED, actor=catalog.requester)
    assert cancelled.status is RequestStatus.CANCELLED

    with pytest.raises(RequestAuthorizationError):
        await lifecycle.change_status(foreign.id, new_status=RequestStatus.CANCELLED, actor=catalog.requester)
    with pytest.raises(RequestAuthorizationError):
        await lifecycle.delete_request(foreign.id, actor=catalog.requester)

    await lifecycle.delete_request(own.id, actor=catalog.requester)
    with pytest.raises(ServiceRequestNotFoundError):
        await lifecycle.get_request(own.id, actor=catalog.admin)


@pytest.mark.asyncio
async def test_get_request_is_scoped_to_owner_or_admin(lifecycle, catalog):
    request = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)

    assert (await lifecycle.get_request(request.id, actor=catalog.requester)).id == request.id
    assert (await lifecycle.get_request(request.id, actor=catalog.admin)).id == request.id
    with pytest.raises(RequestAuthorizationError):
        await lifecycle.get_request(request.id, actor=catalog.other_requester)
    with pytest.raises(ServiceRequestNotFoundError):
        await lifecycle.get_request(request.id + 100, actor=catalog.admin)


@pytest.mark.asyncio
async def test_delete_is_audited_and_audit_survives(lifecycle, catalog, audit_recorder, session_factory):
    request = await lifecycle.create_request(
        service_id=catalog.service_id, payload={"details": "spare charger"}, actor=catalog.requester
    )

    with pytest.raises(RequestAuthorizationError):
        await lifecycle.delete_request(request.id, actor=catalog.requester)

    await lifecycle.delete_request(request.id, actor=catalog.admin, client=ClientContext(ip_address="203.0.113.5"))

    assert await _count(session_factory, ServiceRequestTable) == 0
    entries = await audit_recorder.entries_for("service_requests", request.id)
    assert [entry.action for entry in entries] == ["Create", "Delete"]
    before = entries[1].changes["before"]
    assert before["code"] == request.code
    assert before["form_payload"] == {"details": "spare charger"}
    assert before["sla_snapshot"]["name"] == "Gold"
    assert entries[1].ip_address == "203.0.113.5"

    with pytest.raises(ServiceRequestNotFoundError):
        await lifecycle.delete_request(request.id, actor=catalog.admin)


@pytest.mark.asyncio
async def test_every_mutation_writes_exactly_one_audit_row(lifecycle, catalog, session_factory):
    first = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)
    second = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)
    await lifecycle.change_status(first.id, new_status=RequestStatus.IN_PROGRESS, actor=catalog.admin)
    with pytest.raises(InvalidTransitionError):
        await lifecycle.change_status(first.id, new_status=RequestStatus.PENDING, actor=catalog.admin)
    await lifecycle.delete_request(second.id, actor=catalog.admin)

    assert await _count(session_factory, AuditLogTable) == 4


@pytest.mark.asyncio
async def test_code_collisions_are_regenerated(lifecycle, request_repository, catalog, monkeypatch):
    code_exists = AsyncMock(side_effect=[True, True, False])
    monkeypatch.setattr(request_repository, "code_exists", code_exists)

    request = await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)

    assert code_exists.await_count == 3
    assert CODE_RE.fullmatch(request.code)


@pytest.mark.asyncio
async def test_code_generation_gives_up_after_bounded_attempts(lifecycle, request_repository, catalog, monkeypatch):
    monkeypatch.setattr(request_repository, "code_exists", AsyncMock(return_value=True))

    with pytest.raises(RuntimeError):
        await lifecycle.create_request(service_id=catalog.service_id, payload={}, actor=catalog.requester)


@pytest.mark.asyncio
async def test_duplicate_submissions_get_distinct_codes(lifecycle, catalog):
    payload = {"details": "same thing twice"}
    first = await lifecycle.create_request(service_id=catalog.service_id, payload=payload, actor=catalog.requester)
    second = await lifecycle.create_request(service_id=catalog.service_id, payload=payload, actor=catalog.requester)

    assert first.id != second.id
    assert first.code != second.code
