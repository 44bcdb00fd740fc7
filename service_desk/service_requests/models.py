from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Generic, Mapping, Sequence, TypeVar

from .snapshots import ServiceSnapshot, SlaSnapshot
from .state import RequestStatus

SERVICE_REQUESTS_TABLE = "service_requests"

T = TypeVar("T")


@dataclass(slots=True)
class ServiceSummary:
    """Live view of the requested service, resolved when the request is read."""

    id: int
    code: str
    name: str
    status: str


@dataclass(slots=True)
class RequesterSummary:
    id: int
    name: str
    email: str


@dataclass(slots=True)
class NewServiceRequest:
    """Validated submission ready to be persisted."""

    code: str
    service_id: int
    requester_id: int | None
    status: RequestStatus
    form_payload: Mapping[str, Any]
    service_snapshot: ServiceSnapshot
    sla_snapshot: SlaSnapshot | None
    submitted_at: datetime
    template_id: int | None = None
    template_version: int | None = None


@dataclass(slots=True)
class ServiceRequest:
    """A requester's invocation of a catalog service."""

    id: int
    code: str
    service_id: int
    requester_id: int | None
    status: RequestStatus
    form_payload: Mapping[str, Any]
    service_snapshot: ServiceSnapshot
    sla_snapshot: SlaSnapshot | None
    submitted_at: datetime
    created_at: datetime
    updated_at: datetime
    template_id: int | None = None
    template_version: int | None = None
    redirected_at: datetime | None = None
    service: ServiceSummary | None = None
    requester: RequesterSummary | None = None

    def to_audit_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "service_id": self.service_id,
            "requester_id": self.requester_id,
            "template_id": self.template_id,
            "template_version": self.template_version,
            "status": self.status.value,
            "form_payload": dict(self.form_payload),
            "submitted_at": self.submitted_at.isoformat(),
            "redirected_at": None if self.redirected_at is None else self.redirected_at.isoformat(),
            "service_snapshot": self.service_snapshot.as_dict(),
            "sla_snapshot": None if self.sla_snapshot is None else self.sla_snapshot.as_dict(),
        }


@dataclass(slots=True)
class RequestFilters:
    """Listing filters; date bounds are inclusive calendar days in UTC."""

    status: RequestStatus | None = None
    service_id: int | None = None
    requester_id: int | None = None
    submitted_from: date | None = None
    submitted_to: date | None = None
    search: str | None = None
    page: int = 1
    per_page: int | None = None


@dataclass(slots=True)
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        if self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page
