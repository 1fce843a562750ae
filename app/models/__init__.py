"""Models Package - Export all models for easy imports"""

from app.models.base import BaseModel, OrgScopedMixin
from app.models.enums import *
from app.models.organization import Organization, OrgMember
from app.models.billing import Vendor, Project, Bill, BillOccurrence, Approval
from app.models.activity import AuditLog, Notification


__all__ = [
    # Base classes
    "BaseModel",
    "OrgScopedMixin",

    # Tenancy
    "Organization",
    "OrgMember",

    # Billing
    "Vendor",
    "Project",
    "Bill",
    "BillOccurrence",
    "Approval",

    # Activity
    "AuditLog",
    "Notification",
]
