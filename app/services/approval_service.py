"""Approval Service - approver decisions drive occurrence state"""

import uuid
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.billing import Approval
from app.models.enums import ApprovalDecision, AuditAction, AuditTarget, OccurrenceState
from app.models.organization import OrgMember
from app.schemas.billing import ApprovalCreate
from app.services.activity_service import AuditService
from app.services.occurrence_service import OccurrenceService, ensure_transition
from app.utils.time import get_utc_now

DECISION_STATES = {
    ApprovalDecision.APPROVED: OccurrenceState.APPROVED,
    ApprovalDecision.HOLD: OccurrenceState.ON_HOLD,
    ApprovalDecision.REJECTED: OccurrenceState.CANCELED,
}

DECISION_ACTIONS = {
    ApprovalDecision.APPROVED: AuditAction.APPROVE,
    ApprovalDecision.HOLD: AuditAction.HOLD,
    ApprovalDecision.REJECTED: AuditAction.REJECT,
}


class ApprovalService:
    @staticmethod
    async def record_decision(
        db: AsyncSession,
        member: OrgMember,
        data: ApprovalCreate,
    ) -> Approval:
        """
        Record (or revise) the caller's decision on an occurrence and move the
        occurrence to the matching state. One approval row per
        (occurrence, approver) is kept by the unique index; a repeat
        decision updates it in place.
        """
        occurrence = await OccurrenceService.get_occurrence(db, data.bill_occurrence_id, member.org_id)
        if not occurrence:
            raise NotFoundError(f"Bill occurrence {data.bill_occurrence_id} not found")

        previous = OccurrenceState(occurrence.state)
        target = DECISION_STATES[data.decision]
        if previous != target:
            ensure_transition(previous, target)

        now = get_utc_now()
        stmt = pg_insert(Approval).values(
            id=uuid.uuid4(),
            created_at=now,
            updated_at=now,
            org_id=member.org_id,
            bill_occurrence_id=occurrence.id,
            approver_id=member.user_id,
            decision=data.decision,
            comment=data.comment,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Approval.bill_occurrence_id, Approval.approver_id],
            set_={
                "decision": stmt.excluded.decision,
                "comment": stmt.excluded.comment,
                "updated_at": now,
            },
        ).returning(Approval)
        result = await db.execute(stmt, execution_options={"populate_existing": True})
        approval = result.scalar_one()

        occurrence.state = target
        AuditService.record(
            db, member.org_id, member.user_id, DECISION_ACTIONS[data.decision],
            AuditTarget.BILL_OCCURRENCE, occurrence.id,
            {"from": previous.value, "to": target.value, "comment": data.comment},
        )
        await db.commit()
        return approval

    @staticmethod
    async def list_for_occurrence(db: AsyncSession, occurrence_id: UUID, org_id: UUID) -> List[Approval]:
        occurrence = await OccurrenceService.get_occurrence(db, occurrence_id, org_id)
        if not occurrence:
            raise NotFoundError(f"Bill occurrence {occurrence_id} not found")
        result = await db.execute(
            select(Approval)
            .where(Approval.bill_occurrence_id == occurrence_id, Approval.org_id == org_id)
            .order_by(Approval.created_at)
        )
        return list(result.scalars().all())
