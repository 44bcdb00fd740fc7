"""Database models and engine helpers."""

from .engine import create_engine, to_async_dsn
from .models import (
    AuditLogImmutableError,
    AuditLogTable,
    CategoryTable,
    ServiceRequestTable,
    ServiceTable,
    ServiceTemplateTable,
    SlaLevelTable,
    SubcategoryTable,
    TemplateFieldTable,
    UserTable,
)

__all__ = [
    "AuditLogImmutableError",
    "AuditLogTable",
    "CategoryTable",
    "ServiceRequestTable",
    "ServiceTable",
    "ServiceTemplateTable",
    "SlaLevelTable",
    "SubcategoryTable",
    "TemplateFieldTable",
    "UserTable",
    "create_engine",
    "to_async_dsn",
]
