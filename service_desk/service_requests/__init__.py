"""Service request lifecycle: validation, snapshots, state machine and persistence."""

from .errors import (
    FieldError,
    InvalidTransitionError,
    RequestAuthorizationError,
    ServiceRequestError,
    ServiceRequestNotFoundError,
    SubmissionValidationError,
)
from .models import Page, RequestFilters, ServiceRequest
from .repository import ServiceRequestRepository
from .service import LifecyclePolicy, ServiceRequestLifecycle
from .snapshots import ServiceSnapshot, SlaSnapshot, build_snapshots
from .state import RequestStateMachine, RequestStatus
from .validation import validate_submission

__all__ = [
    "FieldError",
    "InvalidTransitionError",
    "LifecyclePolicy",
    "Page",
    "RequestAuthorizationError",
    "RequestFilters",
    "RequestStateMachine",
    "RequestStatus",
    "ServiceRequest",
    "ServiceRequestError",
    "ServiceRequestLifecycle",
    "ServiceRequestNotFoundError",
    "ServiceRequestRepository",
    "ServiceSnapshot",
    "SlaSnapshot",
    "SubmissionValidationError",
    "build_snapshots",
    "validate_submission",
]
