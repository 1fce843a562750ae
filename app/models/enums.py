"""Centralized Enum Definitions"""

import enum


# Organizations
class MemberRole(str, enum.Enum):
    """Member roles for RBAC"""
    ADMIN = "admin"
    APPROVER = "approver"
    ACCOUNTANT = "accountant"
    ANALYST = "analyst"
    VIEWER = "viewer"


class MemberStatus(str, enum.Enum):
    ACTIVE = "active"
    INVITED = "invited"
    DISABLED = "disabled"


# Bills
class BillStatus(str, enum.Enum):
    """Bill-level lifecycle, independent of occurrence states"""
    DRAFT = "draft"
    ACTIVE = "active"
    PAID = "paid"
    CANCELLED = "cancelled"


class Frequency(str, enum.Enum):
    """Recurring rule frequency units"""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class OccurrenceState(str, enum.Enum):
    """Payment occurrence workflow states"""
    SCHEDULED = "scheduled"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    PAID = "paid"
    FAILED = "failed"
    ON_HOLD = "on_hold"
    CANCELED = "canceled"


# Approvals
class ApprovalDecision(str, enum.Enum):
    APPROVED = "approved"
    HOLD = "hold"
    REJECTED = "rejected"


# Audit & notifications
class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    CANCEL = "cancel"
    GENERATE = "generate"
    TRANSITION = "transition"
    APPROVE = "approve"
    HOLD = "hold"
    REJECT = "reject"
    INVITE = "invite"
    REMOVE = "remove"


class AuditTarget(str, enum.Enum):
    ORGANIZATION = "organization"
    ORG_MEMBER = "org_member"
    VENDOR = "vendor"
    PROJECT = "project"
    BILL = "bill"
    BILL_OCCURRENCE = "bill_occurrence"
    APPROVAL = "approval"


class NotificationType(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
