from typing import Optional, Any
from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime

from app.models.enums import AuditAction, AuditTarget, NotificationType


class AuditLogResponse(BaseModel):
    id: UUID
    actor_id: Optional[UUID] = None
    action: AuditAction
    target_type: AuditTarget
    target_id: UUID
    diff: Optional[Any] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationResponse(BaseModel):
    id: UUID
    type: NotificationType
    title: str
    body: str
    payload: Optional[Any] = None
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
