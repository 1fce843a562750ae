"""Approval endpoints"""

from typing import Any, List
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.organization import OrgMember
from app.schemas.billing import ApprovalCreate, ApprovalResponse
from app.schemas.responses import SuccessResponse
from app.services.approval_service import ApprovalService

router = APIRouter()


@router.post("", response_model=SuccessResponse[ApprovalResponse])
async def record_approval(
    approval_in: ApprovalCreate,
    member: OrgMember = Depends(deps.require_approver),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Approve, hold or reject an occurrence. Admins and approvers only.
    A second decision by the same approver replaces the first.
    """
    approval = await ApprovalService.record_decision(db, member, approval_in)
    return SuccessResponse(data=ApprovalResponse.model_validate(approval), message="Decision recorded")


@router.get("", response_model=SuccessResponse[List[ApprovalResponse]])
async def list_approvals(
    bill_occurrence_id: UUID,
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    approvals = await ApprovalService.list_for_occurrence(db, bill_occurrence_id, member.org_id)
    return SuccessResponse(data=[ApprovalResponse.model_validate(a) for a in approvals])
