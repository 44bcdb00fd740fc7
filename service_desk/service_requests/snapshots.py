from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from service_desk.catalog.models import Service, ServicePriority, Sla


@dataclass(frozen=True, slots=True)
class ServiceSnapshot:
    """Service facts promised to the requester at submission time."""

    code: str
    name: str
    priority: ServicePriority

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "name": self.name, "priority": self.priority.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServiceSnapshot":
        return cls(code=str(data["code"]), name=str(data["name"]), priority=ServicePriority(data["priority"]))


@dataclass(frozen=True, slots=True)
class SlaSnapshot:
    """SLA commitments frozen onto a request."""

    name: str
    first_response_minutes: int
    resolution_minutes: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "first_response_minutes": self.first_response_minutes,
            "resolution_minutes": self.resolution_minutes,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SlaSnapshot":
        return cls(
            name=str(data["name"]),
            first_response_minutes=int(data["first_response_minutes"]),
            resolution_minutes=int(data["resolution_minutes"]),
        )


def build_snapshots(service: Service, sla: Sla | None) -> tuple[ServiceSnapshot, SlaSnapshot | None]:
    """Copy the service and its active SLA into immutable snapshot values."""

    if service is None:
        raise ValueError("A service is required to build request snapshots")

    service_snapshot = ServiceSnapshot(code=service.code, name=service.name, priority=service.priority)
    if sla is None or not sla.active:
        return service_snapshot, None
    sla_snapshot = SlaSnapshot(
        name=sla.name,
        first_response_minutes=sla.first_response_minutes,
        resolution_minutes=sla.resolution_minutes,
    )
    return service_snapshot, sla_snapshot
