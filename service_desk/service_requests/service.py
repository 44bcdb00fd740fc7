from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from opentelemetry import trace

from service_desk.audit.models import AuditEvent, ClientContext
from service_desk.catalog.repository import CatalogRepository
from service_desk.core.config import Settings
from service_desk.identity import Actor

from .errors import (
    FieldError,
    InvalidTransitionError,
    RequestAuthorizationError,
    ServiceRequestNotFoundError,
    SubmissionValidationError,
)
from .models import NewServiceRequest, Page, RequestFilters, ServiceRequest
from .repository import ServiceRequestRepository
from .snapshots import build_snapshots
from .state import RequestStateMachine, RequestStatus
from .validation import validate_submission

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

AUDIT_MODULE = "Requests"
ACTION_CREATE = "Create"
ACTION_STATUS_CHANGE = "Status Change"
ACTION_DELETE = "Delete"

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_CODE_LENGTH = 8
_CODE_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class LifecyclePolicy:
    """Tunable authorization and paging rules for request operations."""

    requesters_may_delete: bool = False
    requesters_may_change_status: bool = False
    default_per_page: int = 15
    max_per_page: int = 100
    code_prefix: str = "SR"

    @classmethod
    def from_settings(cls, settings: Settings) -> "LifecyclePolicy":
        return cls(
            requesters_may_delete=settings.requesters_may_delete,
            requesters_may_change_status=settings.requesters_may_change_status,
            default_per_page=settings.requests_default_per_page,
            max_per_page=settings.requests_max_per_page,
            code_prefix=settings.request_code_prefix,
        )

    def clamp_per_page(self, requested: int | None) -> int:
        if requested is None:
            requested = self.default_per_page
        return max(1, min(requested, self.max_per_page))


class ServiceRequestLifecycle:
    """Creation, status changes, scoped listing and deletion of service requests.

    Every operation takes the acting user explicitly. Mutations are written
    together with exactly one audit row in the same transaction.
    """

    def __init__(
        self,
        repository: ServiceRequestRepository,
        catalog: CatalogRepository,
        *,
        policy: LifecyclePolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._catalog = catalog
        self._policy = policy or LifecyclePolicy()
        self._clock = clock

    @property
    def policy(self) -> LifecyclePolicy:
        return self._policy

    async def create_request(
        self,
        *,
        service_id: int,
        payload: Mapping[str, Any],
        actor: Actor,
        template_id: int | None = None,
        client: ClientContext | None = None,
    ) -> ServiceRequest:
        with tracer.start_as_current_span("service_requests.create") as span:
            span.set_attribute("service_desk.service_id", service_id)
            service = await self._catalog.get_service(service_id)
            if service is None or not service.is_published:
                raise ServiceRequestNotFoundError(f"Service {service_id} not found")

            template_version = None
            if template_id is not None:
                template = await self._catalog.get_template(template_id)
                if template is None or template.service_id != service.id or not template.active:
                    raise ServiceRequestNotFoundError(
                        f"Template {template_id} not found for service {service_id}"
                    )
                try:
                    form_payload = validate_submission(template, payload)
                except SubmissionValidationError as exc:
                    logger.info(
                        "Rejected submission for service %s: invalid fields %s",
                        service_id,
                        ", ".join(exc.fields()),
                    )
                    raise
                template_version = template.version
            elif isinstance(payload, Mapping):
                form_payload = dict(payload)
            else:
                raise SubmissionValidationError(
                    [FieldError("form_payload", "invalid_type", "Form payload must be an object")]
                )

            sla = await self._catalog.get_sla(service.sla_id) if service.sla_id is not None else None
            service_snapshot, sla_snapshot = build_snapshots(service, sla)

            status = RequestStateMachine.initial_state()
            code = await self._generate_code()
            draft = NewServiceRequest(
                code=code,
                service_id=service.id,
                template_id=template_id,
                template_version=template_version,
                requester_id=actor.id,
                status=status,
                form_payload=form_payload,
                service_snapshot=service_snapshot,
                sla_snapshot=sla_snapshot,
                submitted_at=self._clock(),
            )
            audit = AuditEvent(
                module=AUDIT_MODULE,
                action=ACTION_CREATE,
                actor_id=actor.id,
                changes={"after": {"code": code, "status": status.value}},
                client=client,
            )
            created = await self._repository.create_request(draft, audit)
            span.set_attribute("service_desk.request_id", created.id)
            logger.info("Request %s (%s) created for service %s by user %s", created.id, code, service_id, actor.id)
            return created

    async def get_request(self, request_id: int, *, actor: Actor) -> ServiceRequest:
        request = await self._repository.get_request(request_id)
        if request is None:
            raise ServiceRequestNotFoundError(f"Request {request_id} not found")
        self._ensure_owner_or_admin(request, actor, "view")
        return request

    async def list_requests(self, filters: RequestFilters, *, actor: Actor) -> Page[ServiceRequest]:
        if not actor.is_admin:
            # requesters only ever see their own submissions
            filters = replace(filters, requester_id=actor.id)
        page = max(1, filters.page)
        per_page = self._policy.clamp_per_page(filters.per_page)
        items, total = await self._repository.list_requests(filters, page=page, per_page=per_page)
        return Page(items=items, total=total, page=page, per_page=per_page)

    async def change_status(
        self,
        request_id: int,
        *,
        new_status: RequestStatus,
        actor: Actor,
        client: ClientContext | None = None,
    ) -> ServiceRequest:
        new_status = RequestStatus(new_status)
        with tracer.start_as_current_span("service_requests.change_status") as span:
            span.set_attribute("service_desk.request_id", request_id)
            span.set_attribute("service_desk.target_status", new_status.value)
            if not actor.is_admin and not self._policy.requesters_may_change_status:
                logger.warning("User %s may not change the status of request %s", actor.id, request_id)
                raise RequestAuthorizationError("Only administrators can change the status of requests")

            current = await self._repository.get_request(request_id)
            if current is None:
                raise ServiceRequestNotFoundError(f"Request {request_id} not found")
            self._ensure_owner_or_admin(current, actor, "update")

            if not RequestStateMachine.can_transition(current.status, new_status):
                logger.warning(
                    "Rejected transition of request %s: %s -> %s",
                    request_id,
                    current.status.value,
                    new_status.value,
                )
                raise InvalidTransitionError(request_id, current.status, new_status)

            audit = AuditEvent(
                module=AUDIT_MODULE,
                action=ACTION_STATUS_CHANGE,
                actor_id=actor.id,
                changes={"before": current.status.value, "after": new_status.value},
                client=client,
            )
            updated = await self._repository.change_status(
                request_id=request_id,
                expected=current.status,
                target=new_status,
                changed_at=self._clock(),
                audit=audit,
            )
            if updated is None:
                latest = await self._repository.get_request(request_id)
                if latest is None:
                    raise ServiceRequestNotFoundError(f"Request {request_id} not found")
                logger.warning(
                    "Request %s moved to %s before %s could be applied",
                    request_id,
                    latest.status.value,
                    new_status.value,
                )
                raise InvalidTransitionError(request_id, latest.status, new_status)

            logger.info(
                "Request %s moved %s -> %s by user %s",
                request_id,
                current.status.value,
                new_status.value,
                actor.id,
            )
            return updated

    async def delete_request(
        self,
        request_id: int,
        *,
        actor: Actor,
        client: ClientContext | None = None,
    ) -> None:
        with tracer.start_as_current_span("service_requests.delete") as span:
            span.set_attribute("service_desk.request_id", request_id)
            if not actor.is_admin and not self._policy.requesters_may_delete:
                logger.warning("User %s may not delete request %s", actor.id, request_id)
                raise RequestAuthorizationError("Only administrators can delete requests")

            existing = await self._repository.get_request(request_id)
            if existing is None:
                raise ServiceRequestNotFoundError(f"Request {request_id} not found")
            self._ensure_owner_or_admin(existing, actor, "delete")

            audit = AuditEvent(
                module=AUDIT_MODULE,
                action=ACTION_DELETE,
                actor_id=actor.id,
                changes={"before": existing.to_audit_dict()},
                client=client,
            )
            deleted = await self._repository.delete_request(request_id, audit)
            if not deleted:
                raise ServiceRequestNotFoundError(f"Request {request_id} not found")
            logger.info("Request %s (%s) deleted by user %s", request_id, existing.code, actor.id)

    async def _generate_code(self) -> str:
        for _ in range(_CODE_ATTEMPTS):
            token = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(_CODE_LENGTH))
            code = f"{self._policy.code_prefix}-{token}"
            if not await self._repository.code_exists(code):
                return code
        raise RuntimeError(f"Could not generate a unique request code after {_CODE_ATTEMPTS} attempts")

    @staticmethod
    def _ensure_owner_or_admin(request: ServiceRequest, actor: Actor, verb: str) -> None:
        if actor.is_admin or request.requester_id == actor.id:
            return
        logger.warning("User %s may not %s request %s", actor.id, verb, request.id)
        raise RequestAuthorizationError(f"You are not allowed to {verb} this request")
