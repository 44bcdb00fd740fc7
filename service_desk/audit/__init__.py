"""Append-only audit trail."""

from service_desk.db.models import AuditLogImmutableError

from .models import AuditEntry, AuditEvent, ClientContext
from .recorder import AuditRecorder

__all__ = [
    "AuditEntry",
    "AuditEvent",
    "AuditLogImmutableError",
    "AuditRecorder",
    "ClientContext",
]
