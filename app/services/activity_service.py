"""Audit trail and in-app notification writers"""

from typing import Any, Iterable, List, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import AuditLog, Notification
from app.models.enums import AuditAction, AuditTarget, MemberRole, MemberStatus, NotificationType
from app.models.organization import OrgMember
from app.utils.time import get_utc_now


class AuditService:
    @staticmethod
    def record(
        db: AsyncSession,
        org_id: UUID,
        actor_id: Optional[UUID],
        action: AuditAction,
        target_type: AuditTarget,
        target_id: UUID,
        diff: Optional[Any] = None,
    ) -> AuditLog:
        """Stage an audit row in the caller's transaction."""
        entry = AuditLog(
            org_id=org_id,
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            diff=jsonable_encoder(diff) if diff is not None else None,
        )
        db.add(entry)
        return entry

    @staticmethod
    async def list_for_target(
        db: AsyncSession,
        org_id: UUID,
        target_type: AuditTarget,
        target_id: UUID,
    ) -> List[AuditLog]:
        result = await db.execute(
            select(AuditLog)
            .where(
                AuditLog.org_id == org_id,
                AuditLog.target_type == target_type,
                AuditLog.target_id == target_id,
            )
            .order_by(AuditLog.created_at.desc())
        )
        return list(result.scalars().all())


class NotificationService:
    @staticmethod
    async def notify_roles(
        db: AsyncSession,
        org_id: UUID,
        roles: Iterable[MemberRole],
        title: str,
        body: str,
        payload: Optional[Any] = None,
        type: NotificationType = NotificationType.INFO,
    ) -> int:
        """Stage one notification per active member holding any of `roles`."""
        result = await db.execute(
            select(OrgMember.user_id).where(
                OrgMember.org_id == org_id,
                OrgMember.status == MemberStatus.ACTIVE,
                OrgMember.role.in_(list(roles)),
            )
        )
        user_ids = result.scalars().all()
        encoded = jsonable_encoder(payload) if payload is not None else None
        db.add_all([
            Notification(
                org_id=org_id,
                user_id=user_id,
                type=type,
                title=title,
                body=body,
                payload=encoded,
            )
            for user_id in user_ids
        ])
        return len(user_ids)

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        org_id: UUID,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        query = select(Notification).where(
            Notification.org_id == org_id,
            Notification.user_id == user_id,
        )
        if unread_only:
            query = query.where(Notification.read_at.is_(None))
        query = query.order_by(
            Notification.read_at.is_not(None),
            Notification.created_at.desc(),
        ).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: UUID, user_id: UUID) -> bool:
        result = await db.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
                Notification.read_at.is_(None),
            )
            .values(read_at=get_utc_now())
        )
        await db.commit()
        return result.rowcount > 0
