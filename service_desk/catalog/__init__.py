"""Read side of the service catalog (services, SLAs and intake templates)."""

from .models import FieldType, Service, ServicePriority, ServiceStatus, Sla, Template, TemplateField
from .repository import CatalogRepository

__all__ = [
    "CatalogRepository",
    "FieldType",
    "Service",
    "ServicePriority",
    "ServiceStatus",
    "Sla",
    "Template",
    "TemplateField",
]
