"""Tenancy: organizations and their members"""

from sqlalchemy import Column, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, ENUM
from sqlalchemy.orm import relationship

from app.models.base import BaseModel, OrgScopedMixin
from app.models.enums import MemberRole, MemberStatus


class Organization(BaseModel):
    """Tenant root. Every other record belongs to exactly one organization."""
    __tablename__ = "organizations"

    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)

    members = relationship("OrgMember", back_populates="organization", cascade="all, delete-orphan")
    bills = relationship("Bill", back_populates="organization")

    def __repr__(self) -> str:
        return f"<Organization {self.slug}>"


class OrgMember(BaseModel, OrgScopedMixin):
    """
    A user's membership in an organization.
    user_id is the subject of the auth service's tokens; there is no local user table.
    """
    __tablename__ = "org_members"
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
    )

    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    role = Column(
        ENUM(MemberRole, name="member_role", values_callable=lambda x: [e.value for e in x]),
        default=MemberRole.VIEWER,
        nullable=False,
    )
    status = Column(
        ENUM(MemberStatus, name="member_status", values_callable=lambda x: [e.value for e in x]),
        default=MemberStatus.ACTIVE,
        nullable=False,
        index=True,
    )

    organization = relationship("Organization", back_populates="members")

    def __repr__(self) -> str:
        return f"<OrgMember {self.user_id} {self.role}>"
