"""In-app notification endpoints"""

from typing import Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.organization import OrgMember
from app.schemas.activity import NotificationResponse
from app.schemas.responses import SuccessResponse
from app.services.activity_service import NotificationService

router = APIRouter()


@router.get("", response_model=SuccessResponse[List[NotificationResponse]])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """The caller's notifications, unread first."""
    notifications = await NotificationService.list_for_user(
        db, member.org_id, member.user_id, unread_only=unread_only, limit=limit
    )
    return SuccessResponse(data=[NotificationResponse.model_validate(n) for n in notifications])


@router.post("/{notification_id}/read", response_model=SuccessResponse)
async def mark_notification_read(
    notification_id: UUID,
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    updated = await NotificationService.mark_read(db, notification_id, member.user_id)
    if not updated:
        raise HTTPException(status_code=404, detail="Notification not found or already read")
    return SuccessResponse(data=None, message="Notification marked as read")
