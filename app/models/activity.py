"""Audit trail and in-app notifications"""

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID, ENUM, JSONB

from app.models.base import BaseModel, OrgScopedMixin
from app.models.enums import AuditAction, AuditTarget, NotificationType


class AuditLog(BaseModel, OrgScopedMixin):
    """Append-only record of who changed what. actor_id is NULL for scheduled jobs."""
    __tablename__ = "audit_log"

    actor_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    action = Column(
        ENUM(AuditAction, name="audit_action", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    target_type = Column(
        ENUM(AuditTarget, name="audit_target", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    target_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    diff = Column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.target_type}:{self.target_id}>"


class Notification(BaseModel, OrgScopedMixin):
    __tablename__ = "notifications"

    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    type = Column(
        ENUM(NotificationType, name="notification_type", values_callable=lambda x: [e.value for e in x]),
        default=NotificationType.INFO,
        nullable=False,
    )
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    payload = Column(JSONB, nullable=True)
    read_at = Column(DateTime, nullable=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def __repr__(self) -> str:
        return f"<Notification {self.user_id} {self.title}>"
