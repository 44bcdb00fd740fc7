from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Sequence


class ServicePriority(str, Enum):
    """Default priority of a catalog service."""

    LOW = "Baja"
    MEDIUM = "Media"
    HIGH = "Alta"
    CRITICAL = "Crítica"


class ServiceStatus(str, Enum):
    """Publication state of a catalog service."""

    DRAFT = "Borrador"
    PUBLISHED = "Publicado"
    INACTIVE = "Inactivo"


class FieldType(str, Enum):
    """Input types a template field can declare."""

    TEXT = "texto"
    TEXTAREA = "textarea"
    EMAIL = "email"
    NUMBER = "numero"
    DATE = "fecha"
    SELECT = "select"
    CHECKBOX = "checkbox"
    FILE = "archivo"


@dataclass(slots=True)
class Sla:
    id: int
    name: str
    first_response_minutes: int
    resolution_minutes: int
    description: str | None = None
    pause_conditions: str | None = None
    active: bool = True


@dataclass(slots=True)
class Service:
    """Catalog entry as read at the time of the lookup."""

    id: int
    code: str
    name: str
    slug: str
    category_id: int
    priority: ServicePriority
    status: ServiceStatus
    description: str | None = None
    subcategory_id: int | None = None
    sla_id: int | None = None
    keywords: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    published_at: datetime | None = None

    @property
    def is_published(self) -> bool:
        return self.status is ServiceStatus.PUBLISHED


@dataclass(slots=True)
class TemplateField:
    """One declared input of an intake form."""

    field_name: str
    label: str
    type: FieldType
    required: bool = False
    options: Sequence[str] = ()
    validation_pattern: str | None = None
    error_message: str | None = None
    placeholder: str | None = None
    help_text: str | None = None
    display_order: int = 0
    id: int | None = None


@dataclass(slots=True)
class Template:
    """Versioned intake form bound to a service."""

    id: int
    service_id: int
    name: str
    version: int
    active: bool
    fields: Sequence[TemplateField] = ()
    description: str | None = None

    def ordered_fields(self) -> list[TemplateField]:
        return sorted(
            self.fields,
            key=lambda item: (item.display_order, item.id if item.id is not None else 0),
        )
