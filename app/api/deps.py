"""API Dependencies"""

from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BillFlowError
from app.core.security import decode_token, verify_job_token
from app.database import get_db
from app.models.enums import MemberRole
from app.models.organization import OrgMember
from app.services.organization_service import OrganizationService

# Security scheme for bearer token
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Identity asserted by the auth service's token"""
    id: UUID
    email: Optional[str] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """
    Get current authenticated user from the bearer JWT.

    Raises:
        HTTPException: If the token is missing, invalid or has no subject
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = decode_token(credentials.credentials)
    if not payload:
        raise _unauthorized("Could not validate credentials")

    user_id_str: Optional[str] = payload.get("sub")
    if not user_id_str:
        raise _unauthorized("Could not validate credentials")

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise _unauthorized("Invalid user ID")

    return CurrentUser(id=user_id, email=payload.get("email"))


async def get_current_member(
    x_org_id: Optional[UUID] = Header(None, alias="X-Org-ID"),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrgMember:
    """
    Resolve the caller's membership in the organization named by X-Org-ID,
    or in their only organization when the header is absent.
    """
    try:
        return await OrganizationService.resolve_membership(db, current_user.id, x_org_id)
    except BillFlowError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)


def require_roles(*roles: MemberRole) -> Callable:
    """Dependency factory restricting an endpoint to members holding one of `roles`."""
    allowed = frozenset(roles)

    async def checker(member: OrgMember = Depends(get_current_member)) -> OrgMember:
        if MemberRole(member.role) not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions"
            )
        return member

    return checker


require_admin = require_roles(MemberRole.ADMIN)
require_approver = require_roles(MemberRole.ADMIN, MemberRole.APPROVER)
require_editor = require_roles(MemberRole.ADMIN, MemberRole.ACCOUNTANT)


async def require_job_or_admin(
    x_job_token: Optional[str] = Header(None, alias="X-Job-Token"),
    x_org_id: Optional[UUID] = Header(None, alias="X-Org-ID"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[OrgMember]:
    """
    Allow the scheduler (shared job token) or an organization admin.
    Returns the admin's membership, or None for the scheduler.
    """
    if verify_job_token(x_job_token):
        return None
    current_user = await get_current_user(credentials)
    member = await get_current_member(x_org_id, current_user, db)
    if MemberRole(member.role) != MemberRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return member
