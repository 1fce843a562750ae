"""Daily Transition Sweep - promotes due occurrences out of `scheduled`"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError
from app.models.billing import Bill, BillOccurrence
from app.models.enums import (
    AuditAction, AuditTarget, MemberRole, NotificationType, OccurrenceState,
)
from app.schemas.billing import SweepResult
from app.services.activity_service import AuditService, NotificationService
from app.utils.time import get_utc_now, get_utc_today

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DueOccurrence:
    id: UUID
    org_id: UUID
    bill_id: UUID
    auto_approve: Optional[bool]


def partition_due(rows: Sequence[DueOccurrence]) -> Tuple[List[DueOccurrence], List[DueOccurrence]]:
    """Split into (approve now, needs approval). A missing flag means approval is needed."""
    approve_now = [row for row in rows if row.auto_approve]
    needs_approval = [row for row in rows if not row.auto_approve]
    return approve_now, needs_approval


class SweepService:
    """
    Selects scheduled occurrences due on or before `today` and moves them to
    approved (bill.auto_approve) or pending_approval.

    The two batches are independent: each runs in its own savepoint, so a
    failure rolls back only that batch and the other is still attempted.
    The result carries the first error and the counts of batches that
    went through.
    """

    @staticmethod
    async def select_due(db: AsyncSession, today: date) -> List[DueOccurrence]:
        result = await db.execute(
            select(
                BillOccurrence.id,
                BillOccurrence.org_id,
                BillOccurrence.bill_id,
                Bill.auto_approve,
            )
            .join(Bill, Bill.id == BillOccurrence.bill_id)
            .where(
                BillOccurrence.state == OccurrenceState.SCHEDULED,
                BillOccurrence.due_date <= today,
            )
            .order_by(BillOccurrence.due_date, BillOccurrence.id)
        )
        return [DueOccurrence(*row) for row in result.all()]

    @staticmethod
    async def apply_batch(
        db: AsyncSession,
        rows: Sequence[DueOccurrence],
        target: OccurrenceState,
    ) -> int:
        """Move one batch and stage its audit rows and notifications, atomically."""
        async with db.begin_nested():
            result = await db.execute(
                update(BillOccurrence)
                .where(
                    BillOccurrence.id.in_([row.id for row in rows]),
                    BillOccurrence.state == OccurrenceState.SCHEDULED,
                )
                .values(state=target, updated_at=get_utc_now())
                .execution_options(synchronize_session=False)
            )
            for row in rows:
                AuditService.record(
                    db,
                    org_id=row.org_id,
                    actor_id=None,
                    action=AuditAction.TRANSITION,
                    target_type=AuditTarget.BILL_OCCURRENCE,
                    target_id=row.id,
                    diff={"from": OccurrenceState.SCHEDULED.value, "to": target.value, "source": "daily_sweep"},
                )
            if target == OccurrenceState.PENDING_APPROVAL:
                by_org = defaultdict(list)
                for row in rows:
                    by_org[row.org_id].append(row.id)
                for org_id, occurrence_ids in by_org.items():
                    await NotificationService.notify_roles(
                        db,
                        org_id,
                        roles=(MemberRole.ADMIN, MemberRole.APPROVER),
                        title="Bills awaiting approval",
                        body=f"{len(occurrence_ids)} bill payment(s) are due and need approval.",
                        payload={"bill_occurrence_ids": occurrence_ids},
                        type=NotificationType.WARNING,
                    )
            await db.flush()
        return result.rowcount or 0

    @staticmethod
    async def run(
        db: AsyncSession,
        today: Optional[date] = None,
        auto_commit: bool = True,
    ) -> SweepResult:
        today = today or get_utc_today()
        try:
            due = await SweepService.select_due(db, today)
        except SQLAlchemyError as exc:
            logger.error("Failed to query due occurrences", extra={"as_of": today.isoformat()}, exc_info=True)
            raise StorageError("Failed to query due bill occurrences") from exc

        outcome = SweepResult(as_of=today, processed=len(due))
        if not due:
            logger.info("No bills to process", extra={"as_of": today.isoformat()})
            return outcome

        approve_now, needs_approval = partition_due(due)
        batches = (
            (approve_now, OccurrenceState.APPROVED, "auto_approved"),
            (needs_approval, OccurrenceState.PENDING_APPROVAL, "pending_approval"),
        )
        for rows, target, counter in batches:
            if not rows:
                continue
            try:
                moved = await SweepService.apply_batch(db, rows, target)
            except SQLAlchemyError as exc:
                logger.error(
                    "Sweep batch failed",
                    extra={"as_of": today.isoformat(), "target_state": target.value, "size": len(rows)},
                    exc_info=True,
                )
                if outcome.error is None:
                    outcome.error = f"Failed to move {len(rows)} occurrence(s) to {target.value}: {exc.__class__.__name__}"
                continue
            setattr(outcome, counter, moved)

        if auto_commit:
            try:
                await db.commit()
            except SQLAlchemyError as exc:
                logger.error("Failed to commit sweep", extra={"as_of": today.isoformat()}, exc_info=True)
                raise StorageError("Failed to commit bill state transitions") from exc

        log = logger.warning if outcome.error else logger.info
        log(
            "Processed due bills",
            extra={
                "as_of": today.isoformat(),
                "processed": outcome.processed,
                "auto_approved": outcome.auto_approved,
                "pending_approval": outcome.pending_approval,
                "error": outcome.error,
            },
        )
        return outcome
