from datetime import date
from typing import Any, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.logging import get_logger
from app.models.enums import AuditTarget
from app.models.organization import OrgMember
from app.schemas.activity import AuditLogResponse
from app.schemas.billing import SweepResult
from app.schemas.responses import SuccessResponse, ErrorResponse, ErrorDetail
from app.services.activity_service import AuditService
from app.services.sweep_service import SweepService

router = APIRouter()
logger = get_logger(__name__)


@router.post("/process-bills", response_model=SuccessResponse[SweepResult])
async def process_bills(
    as_of: Optional[date] = None,
    admin: Optional[OrgMember] = Depends(deps.require_job_or_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Daily transition sweep. Promotes every scheduled occurrence due on or
    before `as_of` (default today). Called by the scheduler with X-Job-Token,
    or by an admin to run it on demand.
    """
    logger.info(
        "Bill processing triggered",
        extra={
            "as_of": as_of.isoformat() if as_of else None,
            "triggered_by": str(admin.user_id) if admin else "scheduler",
        },
    )
    result = await SweepService.run(db, today=as_of)
    if not result.ok:
        error = ErrorResponse(
            error=ErrorDetail(
                code="SWEEP_PARTIAL_FAILURE",
                message=result.error,
                details=result.model_dump(mode="json"),
            )
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error.model_dump(mode="json"),
        )
    return SuccessResponse(data=result, message=f"Processed {result.processed} occurrence(s)")


@router.get("/audit", response_model=SuccessResponse[List[AuditLogResponse]])
async def get_audit_trail(
    target_type: AuditTarget,
    target_id: UUID,
    admin: OrgMember = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Audit entries for one record of the organization.
    """
    entries = await AuditService.list_for_target(db, admin.org_id, target_type, target_id)
    return SuccessResponse(data=[AuditLogResponse.model_validate(e) for e in entries])
