"""Occurrence endpoints - inspect and move single payments through the workflow"""

from typing import Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.enums import AuditTarget
from app.models.organization import OrgMember
from app.schemas.activity import AuditLogResponse
from app.schemas.billing import OccurrenceResponse, OccurrenceStateUpdate
from app.schemas.responses import SuccessResponse
from app.services.activity_service import AuditService
from app.services.occurrence_service import OccurrenceService

router = APIRouter()


@router.get("/{occurrence_id}", response_model=SuccessResponse[OccurrenceResponse])
async def get_occurrence(
    occurrence_id: UUID,
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    occurrence = await OccurrenceService.get_occurrence(db, occurrence_id, member.org_id)
    if not occurrence:
        raise HTTPException(status_code=404, detail="Bill occurrence not found")
    return SuccessResponse(data=OccurrenceResponse.model_validate(occurrence))


@router.patch("/{occurrence_id}", response_model=SuccessResponse[OccurrenceResponse])
async def change_occurrence_state(
    occurrence_id: UUID,
    body: OccurrenceStateUpdate,
    member: OrgMember = Depends(deps.require_editor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Record a payment outcome or other manual step, e.g. approved -> paid."""
    occurrence = await OccurrenceService.change_state(
        db, occurrence_id, member.org_id, body.state, actor_id=member.user_id
    )
    return SuccessResponse(data=OccurrenceResponse.model_validate(occurrence), message="State updated")


@router.get("/{occurrence_id}/history", response_model=SuccessResponse[List[AuditLogResponse]])
async def get_occurrence_history(
    occurrence_id: UUID,
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    entries = await AuditService.list_for_target(db, member.org_id, AuditTarget.BILL_OCCURRENCE, occurrence_id)
    return SuccessResponse(data=[AuditLogResponse.model_validate(e) for e in entries])
