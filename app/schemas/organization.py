from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime

from app.models.enums import MemberRole, MemberStatus


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=2, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")


class OrganizationResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberCreate(BaseModel):
    user_id: UUID
    email: Optional[str] = Field(None, max_length=255)
    role: MemberRole = MemberRole.VIEWER
    status: MemberStatus = MemberStatus.ACTIVE


class MemberUpdate(BaseModel):
    role: Optional[MemberRole] = None
    status: Optional[MemberStatus] = None


class MemberResponse(BaseModel):
    id: UUID
    org_id: UUID
    user_id: UUID
    email: Optional[str] = None
    role: MemberRole
    status: MemberStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
