"""Organization Service - tenants, memberships, vendors and projects"""

from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BillFlowError, ConflictError, NotFoundError, PermissionDeniedError
from app.models.billing import Project, Vendor
from app.models.enums import AuditAction, AuditTarget, MemberRole, MemberStatus
from app.models.organization import Organization, OrgMember
from app.schemas.billing import ProjectCreate, ProjectUpdate, VendorCreate, VendorUpdate
from app.schemas.organization import MemberCreate, MemberUpdate, OrganizationCreate
from app.services.activity_service import AuditService


class OrganizationService:
    @staticmethod
    async def create_organization(
        db: AsyncSession,
        data: OrganizationCreate,
        owner_id: UUID,
        owner_email: Optional[str] = None,
    ) -> Organization:
        """Create an organization; the creator becomes its first admin."""
        existing = await db.execute(select(Organization.id).where(Organization.slug == data.slug))
        if existing.first():
            raise ConflictError(f"Organization slug '{data.slug}' is already taken")

        org = Organization(name=data.name, slug=data.slug)
        db.add(org)
        await db.flush()
        db.add(OrgMember(
            org_id=org.id,
            user_id=owner_id,
            email=owner_email,
            role=MemberRole.ADMIN,
            status=MemberStatus.ACTIVE,
        ))
        AuditService.record(
            db, org.id, owner_id, AuditAction.CREATE, AuditTarget.ORGANIZATION, org.id,
            {"name": data.name, "slug": data.slug},
        )
        await db.commit()
        await db.refresh(org)
        return org

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: UUID) -> List[Organization]:
        result = await db.execute(
            select(Organization)
            .join(OrgMember, OrgMember.org_id == Organization.id)
            .where(OrgMember.user_id == user_id, OrgMember.status == MemberStatus.ACTIVE)
            .order_by(Organization.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_organization(db: AsyncSession, org_id: UUID) -> Optional[Organization]:
        result = await db.execute(select(Organization).where(Organization.id == org_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def resolve_membership(
        db: AsyncSession,
        user_id: UUID,
        org_id: Optional[UUID] = None,
    ) -> OrgMember:
        """
        Find the caller's active membership. With no explicit org, the user
        must belong to exactly one organization.
        """
        query = select(OrgMember).where(
            OrgMember.user_id == user_id,
            OrgMember.status == MemberStatus.ACTIVE,
        )
        if org_id is not None:
            query = query.where(OrgMember.org_id == org_id)
        result = await db.execute(query)
        memberships = result.scalars().all()
        if not memberships:
            raise PermissionDeniedError("You are not an active member of this organization")
        if len(memberships) > 1:
            raise BillFlowError("Multiple organizations found; set the X-Org-ID header")
        return memberships[0]

    # Members

    @staticmethod
    async def list_members(db: AsyncSession, org_id: UUID) -> List[OrgMember]:
        result = await db.execute(
            select(OrgMember).where(OrgMember.org_id == org_id).order_by(OrgMember.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_member(db: AsyncSession, org_id: UUID, member_id: UUID) -> Optional[OrgMember]:
        result = await db.execute(
            select(OrgMember).where(OrgMember.id == member_id, OrgMember.org_id == org_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def add_member(
        db: AsyncSession,
        org_id: UUID,
        data: MemberCreate,
        actor_id: UUID,
    ) -> OrgMember:
        member = OrgMember(
            org_id=org_id,
            user_id=data.user_id,
            email=data.email,
            role=data.role,
            status=data.status,
        )
        db.add(member)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("User is already a member of this organization")
        AuditService.record(
            db, org_id, actor_id, AuditAction.INVITE, AuditTarget.ORG_MEMBER, member.id,
            {"user_id": data.user_id, "role": data.role.value},
        )
        await db.commit()
        await db.refresh(member)
        return member

    @staticmethod
    async def _count_active_admins(db: AsyncSession, org_id: UUID) -> int:
        return await db.scalar(
            select(func.count()).select_from(OrgMember).where(
                OrgMember.org_id == org_id,
                OrgMember.role == MemberRole.ADMIN,
                OrgMember.status == MemberStatus.ACTIVE,
            )
        ) or 0

    @staticmethod
    async def _guard_last_admin(db: AsyncSession, member: OrgMember) -> None:
        if member.role == MemberRole.ADMIN and member.status == MemberStatus.ACTIVE:
            if await OrganizationService._count_active_admins(db, member.org_id) <= 1:
                raise ConflictError("An organization must keep at least one active admin")

    @staticmethod
    async def update_member(
        db: AsyncSession,
        org_id: UUID,
        member_id: UUID,
        data: MemberUpdate,
        actor_id: UUID,
    ) -> OrgMember:
        member = await OrganizationService.get_member(db, org_id, member_id)
        if not member:
            raise NotFoundError(f"Member {member_id} not found")
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        demoting = changes.get("role", MemberRole.ADMIN) != MemberRole.ADMIN
        disabling = changes.get("status", MemberStatus.ACTIVE) != MemberStatus.ACTIVE
        if demoting or disabling:
            await OrganizationService._guard_last_admin(db, member)
        for field, value in changes.items():
            setattr(member, field, value)
        AuditService.record(
            db, org_id, actor_id, AuditAction.UPDATE, AuditTarget.ORG_MEMBER, member.id, changes,
        )
        await db.commit()
        await db.refresh(member)
        return member

    @staticmethod
    async def remove_member(db: AsyncSession, org_id: UUID, member_id: UUID, actor_id: UUID) -> None:
        member = await OrganizationService.get_member(db, org_id, member_id)
        if not member:
            raise NotFoundError(f"Member {member_id} not found")
        await OrganizationService._guard_last_admin(db, member)
        AuditService.record(
            db, org_id, actor_id, AuditAction.REMOVE, AuditTarget.ORG_MEMBER, member.id,
            {"user_id": member.user_id},
        )
        await db.delete(member)
        await db.commit()

    # Vendors & projects

    @staticmethod
    async def list_vendors(db: AsyncSession, org_id: UUID) -> List[Vendor]:
        result = await db.execute(select(Vendor).where(Vendor.org_id == org_id).order_by(Vendor.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_vendor(db: AsyncSession, org_id: UUID, vendor_id: UUID) -> Optional[Vendor]:
        result = await db.execute(select(Vendor).where(Vendor.id == vendor_id, Vendor.org_id == org_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_projects(db: AsyncSession, org_id: UUID) -> List[Project]:
        result = await db.execute(select(Project).where(Project.org_id == org_id).order_by(Project.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_project(db: AsyncSession, org_id: UUID, project_id: UUID) -> Optional[Project]:
        result = await db.execute(select(Project).where(Project.id == project_id, Project.org_id == org_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_vendor(db: AsyncSession, org_id: UUID, data: VendorCreate, actor_id: UUID) -> Vendor:
        vendor = Vendor(org_id=org_id, **data.model_dump())
        return await OrganizationService._save_new(db, vendor, AuditTarget.VENDOR, actor_id, data.model_dump())

    @staticmethod
    async def create_project(db: AsyncSession, org_id: UUID, data: ProjectCreate, actor_id: UUID) -> Project:
        project = Project(org_id=org_id, **data.model_dump())
        return await OrganizationService._save_new(db, project, AuditTarget.PROJECT, actor_id, data.model_dump())

    @staticmethod
    async def update_vendor(
        db: AsyncSession, org_id: UUID, vendor_id: UUID, data: VendorUpdate, actor_id: UUID
    ) -> Vendor:
        vendor = await OrganizationService.get_vendor(db, org_id, vendor_id)
        if not vendor:
            raise NotFoundError(f"Vendor {vendor_id} not found")
        return await OrganizationService._apply_update(db, vendor, data, AuditTarget.VENDOR, actor_id)

    @staticmethod
    async def update_project(
        db: AsyncSession, org_id: UUID, project_id: UUID, data: ProjectUpdate, actor_id: UUID
    ) -> Project:
        project = await OrganizationService.get_project(db, org_id, project_id)
        if not project:
            raise NotFoundError(f"Project {project_id} not found")
        return await OrganizationService._apply_update(db, project, data, AuditTarget.PROJECT, actor_id)

    @staticmethod
    async def _save_new(db: AsyncSession, record, target: AuditTarget, actor_id: UUID, diff: dict):
        db.add(record)
        await db.flush()
        AuditService.record(db, record.org_id, actor_id, AuditAction.CREATE, target, record.id, diff)
        await db.commit()
        await db.refresh(record)
        return record

    @staticmethod
    async def _apply_update(
        db: AsyncSession,
        record: Union[Vendor, Project],
        data: Union[VendorUpdate, ProjectUpdate],
        target: AuditTarget,
        actor_id: UUID,
    ):
        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(record, field, value)
        AuditService.record(db, record.org_id, actor_id, AuditAction.UPDATE, target, record.id, changes)
        await db.commit()
        await db.refresh(record)
        return record
