"""Report endpoints"""

from datetime import date
from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.enums import OccurrenceState
from app.models.organization import OrgMember
from app.schemas.report import OccurrenceReport, SummaryReport
from app.schemas.responses import SuccessResponse
from app.services.report_service import ReportService, UPCOMING_WINDOWS
from app.utils.time import get_utc_today

router = APIRouter()


@router.get("/upcoming", response_model=SuccessResponse[OccurrenceReport])
async def get_upcoming(
    window: str = Query("week", pattern="^(today|week|two-weeks)$"),
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Unsettled payments due today, within a week, or within two weeks."""
    report = await ReportService.upcoming(db, member.org_id, get_utc_today(), UPCOMING_WINDOWS[window])
    return SuccessResponse(data=report)


@router.get("/overdue", response_model=SuccessResponse[OccurrenceReport])
async def get_overdue(
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    report = await ReportService.overdue(db, member.org_id, get_utc_today())
    return SuccessResponse(data=report)


@router.get("/on-hold", response_model=SuccessResponse[OccurrenceReport])
async def get_on_hold(
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    report = await ReportService.on_hold(db, member.org_id, get_utc_today())
    return SuccessResponse(data=report)


@router.get("/summary", response_model=SuccessResponse[SummaryReport])
async def get_summary(
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Counts and totals per state, plus what is overdue and due this week."""
    report = await ReportService.summary(db, member.org_id, get_utc_today())
    return SuccessResponse(data=report)


@router.get("/occurrences.csv")
async def export_occurrences(
    start: Optional[date] = None,
    end: Optional[date] = None,
    state: Optional[OccurrenceState] = None,
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Response:
    """Download occurrences due in [start, end] as CSV."""
    rows = await ReportService.export_rows(db, member.org_id, start=start, end=end, state=state)
    return Response(
        content=ReportService.to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="occurrences.csv"'},
    )
