"""SQLModel table definitions for the service desk data layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class AuditLogImmutableError(RuntimeError):
    """Raised when something tries to rewrite or remove an audit row."""


class UserTable(SQLModel, table=True):
    """Accounts maintained by the authentication service."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(150), nullable=False))
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    role: str = Field(sa_column=Column(String(50), nullable=False))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class CategoryTable(SQLModel, table=True):
    """Top level grouping of catalog services."""

    __tablename__ = "categories"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(150), nullable=False))
    slug: str = Field(sa_column=Column(String(180), nullable=False, unique=True))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class SubcategoryTable(SQLModel, table=True):
    __tablename__ = "subcategories"

    id: int | None = Field(default=None, primary_key=True)
    category_id: int = Field(
        sa_column=Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    )
    name: str = Field(sa_column=Column(String(150), nullable=False))
    slug: str = Field(sa_column=Column(String(180), nullable=False, unique=True))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class SlaLevelTable(SQLModel, table=True):
    """Service level agreement policies bound to services."""

    __tablename__ = "sla_levels"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(150), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    first_response_minutes: int = Field(sa_column=Column(Integer, nullable=False))
    resolution_minutes: int = Field(sa_column=Column(Integer, nullable=False))
    pause_conditions: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ServiceTable(SQLModel, table=True):
    """Published catalog entries that requesters can invoke."""

    __tablename__ = "services"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(sa_column=Column(String(50), nullable=False, unique=True))
    name: str = Field(sa_column=Column(String(200), nullable=False))
    slug: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    category_id: int = Field(
        sa_column=Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    )
    subcategory_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("subcategories.id", ondelete="SET NULL"), nullable=True),
    )
    sla_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("sla_levels.id", ondelete="SET NULL"), nullable=True),
    )
    priority: str = Field(sa_column=Column(String(50), nullable=False))
    status: str = Field(sa_column=Column(String(50), nullable=False))
    keywords: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    metadata_: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    published_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ServiceTemplateTable(SQLModel, table=True):
    """Versioned intake form attached to a service."""

    __tablename__ = "service_templates"

    id: int | None = Field(default=None, primary_key=True)
    service_id: int = Field(
        sa_column=Column(Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False)
    )
    name: str = Field(sa_column=Column(String(200), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TemplateFieldTable(SQLModel, table=True):
    """Single field definition of a template."""

    __tablename__ = "template_fields"
    __table_args__ = (UniqueConstraint("template_id", "field_name", name="uq_template_fields_template_field"),)

    id: int | None = Field(default=None, primary_key=True)
    template_id: int = Field(
        sa_column=Column(Integer, ForeignKey("service_templates.id", ondelete="CASCADE"), nullable=False)
    )
    field_name: str = Field(sa_column=Column(String(100), nullable=False))
    label: str = Field(sa_column=Column(String(150), nullable=False))
    type: str = Field(sa_column=Column(String(20), nullable=False))
    options: list[str] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    help_text: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    required: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    validation_pattern: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    error_message: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    placeholder: str | None = Field(default=None, sa_column=Column(String(150), nullable=True))
    display_order: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ServiceRequestTable(SQLModel, table=True):
    """Requests submitted against catalog services, with frozen snapshots."""

    __tablename__ = "service_requests"
    __table_args__ = (Index("ix_service_requests_service_status", "service_id", "status"),)

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(sa_column=Column(String(30), nullable=False, unique=True))
    service_id: int = Field(
        sa_column=Column(Integer, ForeignKey("services.id", ondelete="RESTRICT"), nullable=False)
    )
    template_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("service_templates.id", ondelete="SET NULL"), nullable=True),
    )
    template_version: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    requester_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    status: str = Field(sa_column=Column(String(50), nullable=False))
    form_payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    submitted_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    redirected_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    sla_snapshot: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    service_snapshot: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AuditLogTable(SQLModel, table=True):
    """Append-only record of every mutating action in the system."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_module_action", "module", "action"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    module: str = Field(sa_column=Column(String(100), nullable=False))
    action: str = Field(sa_column=Column(String(100), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    affected_table: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    affected_id: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    changes: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    ip_address: str | None = Field(default=None, sa_column=Column(String(45), nullable=True))
    user_agent: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


@event.listens_for(AuditLogTable, "before_update")
def _reject_audit_update(mapper, connection, target) -> None:  # noqa: ARG001
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be modified")


@event.listens_for(AuditLogTable, "before_delete")
def _reject_audit_delete(mapper, connection, target) -> None:  # noqa: ARG001
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be deleted")
