"""Bill endpoints - CRUD and occurrence generation"""

from typing import Any, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.enums import BillStatus
from app.models.organization import OrgMember
from app.schemas.billing import (
    BillCreate, BillUpdate, BillResponse, BillDetailResponse, GenerationResult, OccurrenceResponse,
)
from app.schemas.responses import SuccessResponse, PaginatedResponse, PaginationMeta
from app.services.bill_service import BillService
from app.services.occurrence_service import OccurrenceService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[BillResponse])
async def list_bills(
    status: Optional[BillStatus] = None,
    vendor_id: Optional[UUID] = None,
    project_id: Optional[UUID] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """List the organization's bills, newest first."""
    bills, total = await BillService.list_bills(
        db, member.org_id, status=status, vendor_id=vendor_id, project_id=project_id,
        search=search, page=page, page_size=page_size,
    )
    return PaginatedResponse(
        data=[BillResponse.model_validate(b) for b in bills],
        meta=PaginationMeta.build(page, page_size, total),
    )


@router.post("", response_model=SuccessResponse[BillResponse])
async def create_bill(
    bill_in: BillCreate,
    member: OrgMember = Depends(deps.require_editor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Create a bill. Recurring bills get their occurrences generated immediately."""
    bill = await BillService.create_bill(db, member, bill_in)
    return SuccessResponse(data=BillResponse.model_validate(bill), message="Bill created successfully")


@router.get("/{bill_id}", response_model=SuccessResponse[BillDetailResponse])
async def get_bill(
    bill_id: UUID,
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    bill = await BillService.get_bill(db, bill_id, member.org_id, with_occurrences=True)
    if not bill:
        raise HTTPException(status_code=404, detail="Bill not found")
    return SuccessResponse(data=BillDetailResponse.model_validate(bill))


@router.patch("/{bill_id}", response_model=SuccessResponse[BillResponse])
async def update_bill(
    bill_id: UUID,
    bill_in: BillUpdate,
    member: OrgMember = Depends(deps.require_editor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Update a bill. Schedule changes on a recurring bill regenerate its occurrences."""
    bill = await BillService.update_bill(db, member, bill_id, bill_in)
    return SuccessResponse(data=BillResponse.model_validate(bill), message="Bill updated")


@router.delete("/{bill_id}", response_model=SuccessResponse[BillResponse])
async def cancel_bill(
    bill_id: UUID,
    member: OrgMember = Depends(deps.require_editor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Cancel a bill. Bills are never physically deleted."""
    bill = await BillService.cancel_bill(db, member, bill_id)
    return SuccessResponse(data=BillResponse.model_validate(bill), message="Bill cancelled")


@router.post("/{bill_id}/generate", response_model=SuccessResponse[GenerationResult])
async def generate_occurrences(
    bill_id: UUID,
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    (Re)generate the bill's occurrences. Any member of the bill's organization
    may trigger it; progressed occurrences keep their state.
    """
    result = await OccurrenceService.generate_for_bill(db, bill_id, member.org_id, actor_id=member.user_id)
    return SuccessResponse(data=result, message=f"Generated {result.count} occurrence(s)")


@router.get("/{bill_id}/occurrences", response_model=SuccessResponse[List[OccurrenceResponse]])
async def list_bill_occurrences(
    bill_id: UUID,
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    occurrences = await OccurrenceService.list_for_bill(db, bill_id, member.org_id)
    return SuccessResponse(data=[OccurrenceResponse.model_validate(o) for o in occurrences])
