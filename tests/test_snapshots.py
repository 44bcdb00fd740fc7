import pytest

from service_desk.catalog.models import Service, ServicePriority, ServiceStatus, Sla
from service_desk.service_requests.snapshots import ServiceSnapshot, SlaSnapshot, build_snapshots


def _service(**overrides) -> Service:
    values = dict(
        id=1,
        code="SRV-LAPTOP",
        name="Laptop request",
        slug="laptop-request",
        category_id=1,
        priority=ServicePriority.HIGH,
        status=ServiceStatus.PUBLISHED,
        sla_id=4,
    )
    values.update(overrides)
    return Service(**values)


def test_snapshots_copy_service_and_active_sla():
    sla = Sla(id=4, name="Gold", first_response_minutes=30, resolution_minutes=240)

    service_snapshot, sla_snapshot = build_snapshots(_service(), sla)

    assert service_snapshot == ServiceSnapshot(code="SRV-LAPTOP", name="Laptop request", priority=ServicePriority.HIGH)
    assert sla_snapshot == SlaSnapshot(name="Gold", first_response_minutes=30, resolution_minutes=240)
    assert service_snapshot.as_dict() == {"code": "SRV-LAPTOP", "name": "Laptop request", "priority": "Alta"}


def test_missing_or_inactive_sla_yields_no_sla_snapshot():
    inactive = Sla(id=4, name="Gold", first_response_minutes=30, resolution_minutes=240, active=False)

    assert build_snapshots(_service(sla_id=None), None)[1] is None
    assert build_snapshots(_service(), inactive)[1] is None


def test_snapshot_is_independent_of_later_catalog_edits():
    service = _service()
    sla = Sla(id=4, name="Gold", first_response_minutes=30, resolution_minutes=240)
    service_snapshot, sla_snapshot = build_snapshots(service, sla)

    service.name = "Renamed"
    service.priority = ServicePriority.LOW
    sla.resolution_minutes = 10

    assert service_snapshot.name == "Laptop request"
    assert service_snapshot.priority is ServicePriority.HIGH
    assert sla_snapshot.resolution_minutes == 240


def test_snapshot_dicts_are_read_back_unchanged():
    stored = {"name": "Gold", "first_response_minutes": 30, "resolution_minutes": 240}
    assert SlaSnapshot.from_dict(stored).as_dict() == stored
    assert ServiceSnapshot.from_dict({"code": "X", "name": "Y", "priority": "Crítica"}).priority is ServicePriority.CRITICAL


def test_snapshots_require_a_service():
    with pytest.raises(ValueError):
        build_snapshots(None, None)
