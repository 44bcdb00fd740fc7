from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from service_desk.catalog.models import ServicePriority
from service_desk.dependencies.auth import Client, CurrentActor
from service_desk.dependencies.service_requests import get_lifecycle
from service_desk.service_requests.errors import (
    InvalidTransitionError,
    RequestAuthorizationError,
    ServiceRequestNotFoundError,
    SubmissionValidationError,
)
from service_desk.service_requests.models import Page, RequestFilters, ServiceRequest
from service_desk.service_requests.service import ServiceRequestLifecycle
from service_desk.service_requests.state import RequestStatus

router = APIRouter(prefix="/requests", tags=["service requests"])


class ServiceRequestCreate(BaseModel):
    service_id: int = Field(..., ge=1)
    template_id: int | None = Field(default=None, ge=1)
    form_payload: dict[str, Any] = Field(default_factory=dict)


class StatusChangeRequest(BaseModel):
    status: RequestStatus


class ServiceSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    status: str


class RequesterResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


class ServiceSnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    priority: ServicePriority


class SlaSnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    first_response_minutes: int
    resolution_minutes: int


class ServiceRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    service_id: int
    service: ServiceSummaryResponse | None
    requester_id: int | None
    requester: RequesterResponse | None
    template_id: int | None
    template_version: int | None
    form_payload: dict[str, Any]
    status: RequestStatus
    submitted_at: datetime
    redirected_at: datetime | None
    sla_snapshot: SlaSnapshotResponse | None
    service_snapshot: ServiceSnapshotResponse
    created_at: datetime
    updated_at: datetime


class PageMeta(BaseModel):
    current_page: int
    per_page: int
    total: int
    last_page: int


class ServiceRequestPage(BaseModel):
    data: list[ServiceRequestResponse]
    meta: PageMeta


LifecycleDep = Annotated[ServiceRequestLifecycle, Depends(get_lifecycle)]


def _to_response(request: ServiceRequest) -> ServiceRequestResponse:
    return ServiceRequestResponse.model_validate(request)


def _to_page(page: Page[ServiceRequest]) -> ServiceRequestPage:
    return ServiceRequestPage(
        data=[_to_response(item) for item in page.items],
        meta=PageMeta(
            current_page=page.page,
            per_page=page.per_page,
            total=page.total,
            last_page=page.last_page,
        ),
    )


@router.post("", response_model=ServiceRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: ServiceRequestCreate,
    lifecycle: LifecycleDep,
    actor: CurrentActor,
    client: Client,
) -> ServiceRequestResponse:
    try:
        created = await lifecycle.create_request(
            service_id=payload.service_id,
            template_id=payload.template_id,
            payload=payload.form_payload,
            actor=actor,
            client=client,
        )
    except ServiceRequestNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SubmissionValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "message": "The submitted form is invalid",
                "errors": [error.as_dict() for error in exc.errors],
            },
        ) from exc
    return _to_response(created)


@router.get("", response_model=ServiceRequestPage)
async def list_requests(
    lifecycle: LifecycleDep,
    actor: CurrentActor,
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    service_id: int | None = Query(default=None, ge=1),
    requester_id: int | None = Query(default=None, ge=1),
    submitted_from: date | None = Query(default=None),
    submitted_to: date | None = Query(default=None),
    search: str | None = Query(default=None, max_length=255),
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
) -> ServiceRequestPage:
    filters = RequestFilters(
        status=status_filter,
        service_id=service_id,
        requester_id=requester_id,
        submitted_from=submitted_from,
        submitted_to=submitted_to,
        search=search,
        page=page,
        per_page=per_page,
    )
    result = await lifecycle.list_requests(filters, actor=actor)
    return _to_page(result)


@router.get("/{request_id}", response_model=ServiceRequestResponse)
async def get_request(request_id: int, lifecycle: LifecycleDep, actor: CurrentActor) -> ServiceRequestResponse:
    try:
        found = await lifecycle.get_request(request_id, actor=actor)
    except ServiceRequestNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RequestAuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return _to_response(found)


@router.put("/{request_id}/status", response_model=ServiceRequestResponse)
async def change_request_status(
    request_id: int,
    payload: StatusChangeRequest,
    lifecycle: LifecycleDep,
    actor: CurrentActor,
    client: Client,
) -> ServiceRequestResponse:
    try:
        updated = await lifecycle.change_status(
            request_id,
            new_status=payload.status,
            actor=actor,
            client=client,
        )
    except ServiceRequestNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RequestAuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "current_status": exc.current.value},
        ) from exc
    return _to_response(updated)


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_request(
    request_id: int,
    lifecycle: LifecycleDep,
    actor: CurrentActor,
    client: Client,
) -> Response:
    try:
        await lifecycle.delete_request(request_id, actor=actor, client=client)
    except ServiceRequestNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RequestAuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
