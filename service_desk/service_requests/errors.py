from __future__ import annotations

from dataclasses import dataclass

from .state import RequestStatus


class ServiceRequestError(RuntimeError):
    """Base error for request lifecycle issues."""


class ServiceRequestNotFoundError(ServiceRequestError):
    """Raised when a request, or the service/template it references, cannot be located."""


class RequestAuthorizationError(ServiceRequestError):
    """Raised when the acting user may not perform the operation."""


class InvalidTransitionError(ServiceRequestError):
    """Raised when the target status is not reachable from the current one."""

    def __init__(self, request_id: int, current: RequestStatus, target: RequestStatus) -> None:
        super().__init__(
            f"Request {request_id} cannot move from '{current.value}' to '{target.value}'"
        )
        self.request_id = request_id
        self.current = current
        self.target = target


@dataclass(frozen=True, slots=True)
class FieldError:
    field: str
    code: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "code": self.code, "message": self.message}


class SubmissionValidationError(ServiceRequestError):
    """Raised when a submitted form payload does not satisfy its template."""

    def __init__(self, errors: list[FieldError]) -> None:
        super().__init__(f"Submission has {len(errors)} invalid field(s)")
        self.errors = errors

    def fields(self) -> list[str]:
        return [error.field for error in self.errors]
