from __future__ import annotations

from enum import Enum


class RequestStatus(str, Enum):
    """Lifecycle states of a service request."""

    PENDING = "Pendiente"
    IN_PROGRESS = "En Proceso"
    RESOLVED = "Resuelta"
    CANCELLED = "Cancelada"


class RequestStateMachine:
    """Validate service request status transitions."""

    _TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
        RequestStatus.PENDING: frozenset({RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED}),
        RequestStatus.IN_PROGRESS: frozenset({RequestStatus.RESOLVED, RequestStatus.CANCELLED}),
        RequestStatus.RESOLVED: frozenset(),
        RequestStatus.CANCELLED: frozenset(),
    }

    @classmethod
    def initial_state(cls) -> RequestStatus:
        return RequestStatus.PENDING

    @classmethod
    def allowed_targets(cls, current: RequestStatus) -> frozenset[RequestStatus]:
        return cls._TRANSITIONS.get(current, frozenset())

    @classmethod
    def can_transition(cls, current: RequestStatus, new: RequestStatus) -> bool:
        return new in cls.allowed_targets(current)

    @classmethod
    def is_terminal(cls, status: RequestStatus) -> bool:
        return not cls.allowed_targets(status)
