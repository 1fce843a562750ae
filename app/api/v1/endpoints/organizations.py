"""Organization and membership endpoints"""

from typing import Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.organization import OrgMember
from app.schemas.organization import (
    OrganizationCreate, OrganizationResponse, MemberCreate, MemberUpdate, MemberResponse,
)
from app.schemas.responses import SuccessResponse
from app.services.organization_service import OrganizationService

router = APIRouter()


@router.post("", response_model=SuccessResponse[OrganizationResponse])
async def create_organization(
    org_in: OrganizationCreate,
    current_user: deps.CurrentUser = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Create an organization. The caller becomes its admin."""
    org = await OrganizationService.create_organization(db, org_in, current_user.id, current_user.email)
    return SuccessResponse(data=OrganizationResponse.model_validate(org), message="Organization created successfully")


@router.get("", response_model=SuccessResponse[List[OrganizationResponse]])
async def list_my_organizations(
    current_user: deps.CurrentUser = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Organizations the caller is an active member of."""
    orgs = await OrganizationService.list_for_user(db, current_user.id)
    return SuccessResponse(data=[OrganizationResponse.model_validate(o) for o in orgs])


@router.get("/current", response_model=SuccessResponse[OrganizationResponse])
async def get_current_organization(
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    org = await OrganizationService.get_organization(db, member.org_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return SuccessResponse(data=OrganizationResponse.model_validate(org))


@router.get("/current/members", response_model=SuccessResponse[List[MemberResponse]])
async def list_members(
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    members = await OrganizationService.list_members(db, member.org_id)
    return SuccessResponse(data=[MemberResponse.model_validate(m) for m in members])


@router.post("/current/members", response_model=SuccessResponse[MemberResponse])
async def add_member(
    member_in: MemberCreate,
    admin: OrgMember = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Add a user to the organization. Admin only."""
    member = await OrganizationService.add_member(db, admin.org_id, member_in, admin.user_id)
    return SuccessResponse(data=MemberResponse.model_validate(member), message="Member added")


@router.patch("/current/members/{member_id}", response_model=SuccessResponse[MemberResponse])
async def update_member(
    member_id: UUID,
    member_in: MemberUpdate,
    admin: OrgMember = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Change a member's role or status. Admin only."""
    member = await OrganizationService.update_member(db, admin.org_id, member_id, member_in, admin.user_id)
    return SuccessResponse(data=MemberResponse.model_validate(member), message="Member updated")


@router.delete("/current/members/{member_id}", response_model=SuccessResponse)
async def remove_member(
    member_id: UUID,
    admin: OrgMember = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Remove a member. The last active admin cannot be removed."""
    await OrganizationService.remove_member(db, admin.org_id, member_id, admin.user_id)
    return SuccessResponse(data=None, message="Member removed")
