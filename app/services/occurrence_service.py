"""Occurrence Materializer - builds, reconciles and persists bill occurrences"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import InvalidTransitionError, NotFoundError, StorageError
from app.database import acquire_xact_lock
from app.models.billing import Bill, BillOccurrence
from app.models.enums import AuditAction, AuditTarget, BillStatus, OccurrenceState
from app.schemas.billing import GenerationResult
from app.services.activity_service import AuditService
from app.services.recurrence import expand_rule, parse_rule
from app.utils.business_days import previous_business_day
from app.utils.time import get_utc_now

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# States that represent work already done; regeneration must not reset them
PRESERVED_STATES = frozenset({
    OccurrenceState.PAID,
    OccurrenceState.FAILED,
    OccurrenceState.APPROVED,
    OccurrenceState.ON_HOLD,
})

OCCURRENCE_TRANSITIONS: Dict[OccurrenceState, frozenset] = {
    OccurrenceState.SCHEDULED: frozenset({
        OccurrenceState.PENDING_APPROVAL, OccurrenceState.APPROVED, OccurrenceState.CANCELED,
    }),
    OccurrenceState.PENDING_APPROVAL: frozenset({
        OccurrenceState.APPROVED, OccurrenceState.ON_HOLD, OccurrenceState.CANCELED,
    }),
    OccurrenceState.APPROVED: frozenset({
        OccurrenceState.PAID, OccurrenceState.FAILED, OccurrenceState.ON_HOLD,
    }),
    OccurrenceState.ON_HOLD: frozenset({
        OccurrenceState.PENDING_APPROVAL, OccurrenceState.CANCELED,
    }),
    OccurrenceState.FAILED: frozenset({OccurrenceState.PENDING_APPROVAL}),
    OccurrenceState.PAID: frozenset(),
    OccurrenceState.CANCELED: frozenset(),
}


@dataclass(frozen=True)
class PlannedOccurrence:
    sequence: int
    amount_due: Decimal
    due_date: date
    suggested_submission_date: date
    state: OccurrenceState = OccurrenceState.SCHEDULED


def can_transition(current: OccurrenceState, target: OccurrenceState) -> bool:
    return target in OCCURRENCE_TRANSITIONS.get(OccurrenceState(current), frozenset())


def ensure_transition(current: OccurrenceState, target: OccurrenceState) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move occurrence from {OccurrenceState(current).value} to {OccurrenceState(target).value}",
            details={"from": OccurrenceState(current).value, "to": OccurrenceState(target).value},
        )


def split_amount(total: Decimal, installments: int) -> List[Decimal]:
    """
    Split `total` into `installments` cent amounts that sum exactly to it.

    Every installment gets the total divided and rounded down to the cent;
    the leftover cents go on the first one: 100.00 / 3 -> 33.34, 33.33, 33.33.
    """
    if installments < 1:
        raise ValueError("installments must be at least 1")
    total = Decimal(total).quantize(CENT, rounding=ROUND_HALF_UP)
    base = (total / installments).quantize(CENT, rounding=ROUND_FLOOR)
    remainder = total - base * installments
    return [base + remainder] + [base] * (installments - 1)


def plan_occurrences(
    due_dates: Sequence[date],
    amount_total: Decimal,
    installments_total: Optional[int] = None,
) -> List[PlannedOccurrence]:
    """Turn due dates into numbered occurrences with amounts and submission dates."""
    if installments_total:
        due_dates = list(due_dates)[:installments_total]
    if not due_dates:
        return []
    amounts = split_amount(amount_total, len(due_dates))
    return [
        PlannedOccurrence(
            sequence=index,
            amount_due=amount,
            due_date=due,
            suggested_submission_date=previous_business_day(due),
        )
        for index, (due, amount) in enumerate(zip(due_dates, amounts), start=1)
    ]


def preserve_state(previous: Optional[OccurrenceState]) -> OccurrenceState:
    if previous is not None and OccurrenceState(previous) in PRESERVED_STATES:
        return OccurrenceState(previous)
    return OccurrenceState.SCHEDULED


def merge_states(
    planned: Sequence[PlannedOccurrence],
    existing: Mapping[int, OccurrenceState],
) -> List[PlannedOccurrence]:
    """Carry progressed states over by sequence; amounts and dates always come from `planned`."""
    return [replace(occ, state=preserve_state(existing.get(occ.sequence))) for occ in planned]


def max_sequence(planned: Sequence[PlannedOccurrence]) -> int:
    return max((occ.sequence for occ in planned), default=0)


class OccurrenceService:
    """Service layer for bill occurrences"""

    @staticmethod
    def materialize(bill: Bill) -> List[PlannedOccurrence]:
        """Expand and price a recurring bill. Pure; raises InvalidRuleError before any write."""
        if not bill.recurring_rule:
            return []
        rule = parse_rule(bill.recurring_rule)
        due_dates = expand_rule(
            rule,
            fallback_start=bill.due_date,
            horizon_months=settings.OCCURRENCE_HORIZON_MONTHS,
            max_count=settings.OCCURRENCE_MAX_COUNT,
        )
        return plan_occurrences(due_dates, Decimal(bill.amount_total), bill.installments_total)

    @staticmethod
    async def get_bill(
        db: AsyncSession,
        bill_id: UUID,
        org_id: Optional[UUID] = None,
        populate_existing: bool = False,
    ) -> Optional[Bill]:
        query = select(Bill).where(Bill.id == bill_id)
        if org_id is not None:
            query = query.where(Bill.org_id == org_id)
        if populate_existing:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_existing_states(db: AsyncSession, bill_id: UUID) -> Dict[int, OccurrenceState]:
        result = await db.execute(
            select(BillOccurrence.sequence, BillOccurrence.state)
            .where(BillOccurrence.bill_id == bill_id)
        )
        return {sequence: OccurrenceState(state) for sequence, state in result.all()}

    @staticmethod
    async def upsert_occurrences(
        db: AsyncSession,
        bill: Bill,
        occurrences: Sequence[PlannedOccurrence],
    ) -> None:
        if not occurrences:
            return
        now = get_utc_now()
        rows = [
            {
                "id": uuid.uuid4(),
                "created_at": now,
                "updated_at": now,
                "org_id": bill.org_id,
                "bill_id": bill.id,
                "project_id": bill.project_id,
                "vendor_id": bill.vendor_id,
                "sequence": occ.sequence,
                "amount_due": occ.amount_due,
                "due_date": occ.due_date,
                "suggested_submission_date": occ.suggested_submission_date,
                "state": occ.state,
            }
            for occ in occurrences
        ]
        stmt = pg_insert(BillOccurrence).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[BillOccurrence.bill_id, BillOccurrence.sequence],
            set_={
                "org_id": stmt.excluded.org_id,
                "project_id": stmt.excluded.project_id,
                "vendor_id": stmt.excluded.vendor_id,
                "amount_due": stmt.excluded.amount_due,
                "due_date": stmt.excluded.due_date,
                "suggested_submission_date": stmt.excluded.suggested_submission_date,
                "state": stmt.excluded.state,
                "updated_at": now,
            },
        )
        await db.execute(stmt)

    @staticmethod
    async def prune_occurrences(db: AsyncSession, bill_id: UUID, keep_through: int) -> int:
        """Delete still-scheduled occurrences numbered above `keep_through`."""
        result = await db.execute(
            delete(BillOccurrence).where(
                BillOccurrence.bill_id == bill_id,
                BillOccurrence.sequence > keep_through,
                BillOccurrence.state == OccurrenceState.SCHEDULED,
            )
        )
        return result.rowcount or 0

    @staticmethod
    async def generate_for_bill(
        db: AsyncSession,
        bill_id: UUID,
        org_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
        auto_commit: bool = True,
    ) -> GenerationResult:
        """
        (Re)generate a recurring bill's occurrences.

        Progressed occurrences keep their state, the rest are reset to
        scheduled, and scheduled rows beyond the new length are deleted.
        Bills without a recurring rule and cancelled bills are left untouched.
        The bill is read under the per-bill lock, so concurrent regenerations
        always plan from the latest committed rule.
        When auto_commit=False the caller owns the transaction.
        """
        try:
            await acquire_xact_lock(db, bill_id)
            bill = await OccurrenceService.get_bill(db, bill_id, org_id, populate_existing=True)
        except SQLAlchemyError as exc:
            logger.error("Failed to lock bill for generation", extra={"bill_id": str(bill_id)}, exc_info=True)
            raise StorageError(f"Failed to persist occurrences for bill {bill_id}") from exc
        if not bill:
            raise NotFoundError(f"Bill {bill_id} not found")
        if not bill.recurring_rule or bill.status == BillStatus.CANCELLED:
            logger.info(
                "Skipped occurrence generation",
                extra={"bill_id": str(bill.id), "recurring": bool(bill.recurring_rule)},
            )
            return GenerationResult(bill_id=bill.id, count=0, pruned=0, max_sequence=0)

        planned = OccurrenceService.materialize(bill)
        top = max_sequence(planned)

        try:
            existing = await OccurrenceService.get_existing_states(db, bill.id)
            merged = merge_states(planned, existing)
            await OccurrenceService.upsert_occurrences(db, bill, merged)
            pruned = await OccurrenceService.prune_occurrences(db, bill.id, top)
            AuditService.record(
                db,
                org_id=bill.org_id,
                actor_id=actor_id,
                action=AuditAction.GENERATE,
                target_type=AuditTarget.BILL,
                target_id=bill.id,
                diff={"count": len(merged), "pruned": pruned, "max_sequence": top},
            )
            if auto_commit:
                await db.commit()
            else:
                await db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to persist occurrences",
                extra={"bill_id": str(bill.id), "org_id": str(bill.org_id)},
                exc_info=True,
            )
            raise StorageError(f"Failed to persist occurrences for bill {bill.id}") from exc

        logger.info(
            "Generated bill occurrences",
            extra={
                "bill_id": str(bill.id),
                "org_id": str(bill.org_id),
                "count": len(merged),
                "pruned": pruned,
                "preserved": sum(1 for occ in merged if occ.state != OccurrenceState.SCHEDULED),
            },
        )
        return GenerationResult(bill_id=bill.id, count=len(merged), pruned=pruned, max_sequence=top)

    @staticmethod
    async def clear_schedule(
        db: AsyncSession,
        bill: Bill,
        actor_id: Optional[UUID] = None,
    ) -> int:
        """Drop every still-scheduled occurrence of a bill whose rule was removed. Flushes only."""
        try:
            await acquire_xact_lock(db, bill.id)
            pruned = await OccurrenceService.prune_occurrences(db, bill.id, 0)
            AuditService.record(
                db,
                org_id=bill.org_id,
                actor_id=actor_id,
                action=AuditAction.GENERATE,
                target_type=AuditTarget.BILL,
                target_id=bill.id,
                diff={"count": 0, "pruned": pruned, "max_sequence": 0},
            )
            await db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to clear occurrences",
                extra={"bill_id": str(bill.id), "org_id": str(bill.org_id)},
                exc_info=True,
            )
            raise StorageError(f"Failed to clear occurrences for bill {bill.id}") from exc

        logger.info(
            "Cleared scheduled occurrences",
            extra={"bill_id": str(bill.id), "org_id": str(bill.org_id), "pruned": pruned},
        )
        return pruned

    @staticmethod
    async def list_for_bill(db: AsyncSession, bill_id: UUID, org_id: UUID) -> List[BillOccurrence]:
        result = await db.execute(
            select(BillOccurrence)
            .where(BillOccurrence.bill_id == bill_id, BillOccurrence.org_id == org_id)
            .order_by(BillOccurrence.sequence)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_occurrence(db: AsyncSession, occurrence_id: UUID, org_id: UUID) -> Optional[BillOccurrence]:
        result = await db.execute(
            select(BillOccurrence).where(
                BillOccurrence.id == occurrence_id,
                BillOccurrence.org_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def change_state(
        db: AsyncSession,
        occurrence_id: UUID,
        org_id: UUID,
        target: OccurrenceState,
        actor_id: Optional[UUID] = None,
    ) -> BillOccurrence:
        """Apply a manual workflow step (e.g. mark paid or failed)."""
        occurrence = await OccurrenceService.get_occurrence(db, occurrence_id, org_id)
        if not occurrence:
            raise NotFoundError(f"Bill occurrence {occurrence_id} not found")
        previous = OccurrenceState(occurrence.state)
        ensure_transition(previous, target)
        occurrence.state = target
        AuditService.record(
            db,
            org_id=org_id,
            actor_id=actor_id,
            action=AuditAction.TRANSITION,
            target_type=AuditTarget.BILL_OCCURRENCE,
            target_id=occurrence.id,
            diff={"from": previous.value, "to": target.value},
        )
        await db.commit()
        await db.refresh(occurrence)
        return occurrence
