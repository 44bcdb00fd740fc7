from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

_MAX_IP_ADDRESS = 45
_MAX_USER_AGENT = 255
_MAX_DESCRIPTION = 255


@dataclass(frozen=True, slots=True)
class ClientContext:
    """Network origin of the call that caused an audited action."""

    ip_address: str | None = None
    user_agent: str | None = None

    def __post_init__(self) -> None:
        if self.ip_address is not None and len(self.ip_address) > _MAX_IP_ADDRESS:
            object.__setattr__(self, "ip_address", self.ip_address[:_MAX_IP_ADDRESS])
        if self.user_agent is not None and len(self.user_agent) > _MAX_USER_AGENT:
            object.__setattr__(self, "user_agent", self.user_agent[:_MAX_USER_AGENT])


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """An audit record that has not been written yet."""

    module: str
    action: str
    actor_id: int | None = None
    affected_table: str | None = None
    affected_id: int | None = None
    changes: Mapping[str, Any] | None = None
    description: str | None = None
    client: ClientContext | None = None

    def __post_init__(self) -> None:
        if self.description is not None and len(self.description) > _MAX_DESCRIPTION:
            object.__setattr__(self, "description", self.description[:_MAX_DESCRIPTION])


@dataclass(slots=True)
class AuditEntry:
    """A persisted audit log row."""

    id: int
    module: str
    action: str
    created_at: datetime
    user_id: int | None = None
    description: str | None = None
    affected_table: str | None = None
    affected_id: int | None = None
    changes: Mapping[str, Any] | None = field(default=None)
    ip_address: str | None = None
    user_agent: str | None = None
