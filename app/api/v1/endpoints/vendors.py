"""Vendor and project endpoints"""

from typing import Any, List
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.organization import OrgMember
from app.schemas.billing import (
    VendorCreate, VendorUpdate, VendorResponse, ProjectCreate, ProjectUpdate, ProjectResponse,
)
from app.schemas.responses import SuccessResponse
from app.services.organization_service import OrganizationService

vendors_router = APIRouter()
projects_router = APIRouter()


@vendors_router.get("", response_model=SuccessResponse[List[VendorResponse]])
async def list_vendors(
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    vendors = await OrganizationService.list_vendors(db, member.org_id)
    return SuccessResponse(data=[VendorResponse.model_validate(v) for v in vendors])


@vendors_router.post("", response_model=SuccessResponse[VendorResponse])
async def create_vendor(
    vendor_in: VendorCreate,
    member: OrgMember = Depends(deps.require_editor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    vendor = await OrganizationService.create_vendor(db, member.org_id, vendor_in, member.user_id)
    return SuccessResponse(data=VendorResponse.model_validate(vendor), message="Vendor created successfully")


@vendors_router.patch("/{vendor_id}", response_model=SuccessResponse[VendorResponse])
async def update_vendor(
    vendor_id: UUID,
    vendor_in: VendorUpdate,
    member: OrgMember = Depends(deps.require_editor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    vendor = await OrganizationService.update_vendor(db, member.org_id, vendor_id, vendor_in, member.user_id)
    return SuccessResponse(data=VendorResponse.model_validate(vendor), message="Vendor updated")


@projects_router.get("", response_model=SuccessResponse[List[ProjectResponse]])
async def list_projects(
    member: OrgMember = Depends(deps.get_current_member),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    projects = await OrganizationService.list_projects(db, member.org_id)
    return SuccessResponse(data=[ProjectResponse.model_validate(p) for p in projects])


@projects_router.post("", response_model=SuccessResponse[ProjectResponse])
async def create_project(
    project_in: ProjectCreate,
    member: OrgMember = Depends(deps.require_editor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    project = await OrganizationService.create_project(db, member.org_id, project_in, member.user_id)
    return SuccessResponse(data=ProjectResponse.model_validate(project), message="Project created successfully")


@projects_router.patch("/{project_id}", response_model=SuccessResponse[ProjectResponse])
async def update_project(
    project_id: UUID,
    project_in: ProjectUpdate,
    member: OrgMember = Depends(deps.require_editor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    project = await OrganizationService.update_project(db, member.org_id, project_id, project_in, member.user_id)
    return SuccessResponse(data=ProjectResponse.model_validate(project), message="Project updated")
