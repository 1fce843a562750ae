"""Bill Service - Business Logic Layer"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import NotFoundError
from app.models.billing import Bill, BillOccurrence
from app.models.enums import AuditAction, AuditTarget, BillStatus, OccurrenceState
from app.models.organization import OrgMember
from app.schemas.billing import BillCreate, BillUpdate
from app.services.activity_service import AuditService
from app.services.occurrence_service import OccurrenceService
from app.services.organization_service import OrganizationService

logger = logging.getLogger(__name__)

# Changing any of these on a recurring bill refreshes its occurrences
_SCHEDULE_FIELDS = frozenset({
    "recurring_rule", "amount_total", "installments_total", "due_date", "vendor_id", "project_id",
})


class BillService:
    """Service layer for bill-related operations"""

    @staticmethod
    async def _check_references(
        db: AsyncSession,
        org_id: UUID,
        vendor_id: Optional[UUID],
        project_id: Optional[UUID],
    ) -> None:
        if vendor_id and not await OrganizationService.get_vendor(db, org_id, vendor_id):
            raise NotFoundError(f"Vendor {vendor_id} not found")
        if project_id and not await OrganizationService.get_project(db, org_id, project_id):
            raise NotFoundError(f"Project {project_id} not found")

    @staticmethod
    async def list_bills(
        db: AsyncSession,
        org_id: UUID,
        status: Optional[BillStatus] = None,
        vendor_id: Optional[UUID] = None,
        project_id: Optional[UUID] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Bill], int]:
        """
        List bills of an organization with optional filters.

        Returns:
            Tuple of (bills on the requested page, total matching count)
        """
        conditions = [Bill.org_id == org_id]
        if status:
            conditions.append(Bill.status == status)
        if vendor_id:
            conditions.append(Bill.vendor_id == vendor_id)
        if project_id:
            conditions.append(Bill.project_id == project_id)
        if search:
            conditions.append(Bill.title.ilike(f"%{search}%"))

        total = await db.scalar(select(func.count()).select_from(Bill).where(*conditions))
        result = await db.execute(
            select(Bill)
            .where(*conditions)
            .order_by(Bill.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def get_bill(
        db: AsyncSession,
        bill_id: UUID,
        org_id: UUID,
        with_occurrences: bool = False,
    ) -> Optional[Bill]:
        query = select(Bill).where(Bill.id == bill_id, Bill.org_id == org_id)
        if with_occurrences:
            query = query.options(selectinload(Bill.occurrences))
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_bill(db: AsyncSession, member: OrgMember, data: BillCreate) -> Bill:
        """Create a bill and, when it recurs, its occurrences in the same transaction."""
        await BillService._check_references(db, member.org_id, data.vendor_id, data.project_id)

        bill = Bill(
            org_id=member.org_id,
            title=data.title,
            description=data.description,
            amount_total=data.amount_total,
            currency=data.currency,
            due_date=data.due_date,
            recurring_rule=data.recurring_rule.model_dump(mode="json") if data.recurring_rule else None,
            installments_total=data.installments_total,
            auto_approve=data.auto_approve,
            vendor_id=data.vendor_id,
            project_id=data.project_id,
            status=data.status,
            created_by=member.user_id,
        )
        db.add(bill)
        await db.flush()
        AuditService.record(
            db, member.org_id, member.user_id, AuditAction.CREATE, AuditTarget.BILL, bill.id,
            {"created": data.model_dump(mode="json")},
        )
        if bill.recurring_rule:
            await OccurrenceService.generate_for_bill(
                db, bill.id, member.org_id, actor_id=member.user_id, auto_commit=False
            )
        await db.commit()
        await db.refresh(bill)
        logger.info("Bill created", extra={"bill_id": str(bill.id), "org_id": str(member.org_id)})
        return bill

    @staticmethod
    async def update_bill(
        db: AsyncSession,
        member: OrgMember,
        bill_id: UUID,
        data: BillUpdate,
    ) -> Bill:
        bill = await BillService.get_bill(db, bill_id, member.org_id)
        if not bill:
            raise NotFoundError(f"Bill {bill_id} not found")

        changes = data.model_dump(exclude_unset=True)
        await BillService._check_references(
            db, member.org_id, changes.get("vendor_id"), changes.get("project_id")
        )
        if "recurring_rule" in changes:
            rule = data.recurring_rule
            changes["recurring_rule"] = rule.model_dump(mode="json") if rule else None
        if "currency" in changes and changes["currency"]:
            changes["currency"] = changes["currency"].upper()
        had_rule = bool(bill.recurring_rule)

        for field, value in changes.items():
            setattr(bill, field, value)
        await db.flush()
        AuditService.record(
            db, member.org_id, member.user_id, AuditAction.UPDATE, AuditTarget.BILL, bill.id,
            {"changes": changes},
        )

        if bill.recurring_rule and _SCHEDULE_FIELDS.intersection(changes):
            await OccurrenceService.generate_for_bill(
                db, bill.id, member.org_id, actor_id=member.user_id, auto_commit=False
            )
        elif had_rule and not bill.recurring_rule:
            # Rule removed: nothing is planned any more, so every scheduled row is stale
            await OccurrenceService.clear_schedule(db, bill, actor_id=member.user_id)

        await db.commit()
        await db.refresh(bill)
        return bill

    @staticmethod
    async def cancel_bill(db: AsyncSession, member: OrgMember, bill_id: UUID) -> Bill:
        """Cancel a bill and every occurrence that has not been decided yet."""
        bill = await BillService.get_bill(db, bill_id, member.org_id)
        if not bill:
            raise NotFoundError(f"Bill {bill_id} not found")
        bill.status = BillStatus.CANCELLED
        result = await db.execute(
            update(BillOccurrence)
            .where(
                BillOccurrence.bill_id == bill.id,
                BillOccurrence.state.in_([OccurrenceState.SCHEDULED, OccurrenceState.PENDING_APPROVAL]),
            )
            .values(state=OccurrenceState.CANCELED)
            .execution_options(synchronize_session=False)
        )
        AuditService.record(
            db, member.org_id, member.user_id, AuditAction.CANCEL, AuditTarget.BILL, bill.id,
            {"canceled_occurrences": result.rowcount or 0},
        )
        await db.commit()
        await db.refresh(bill)
        return bill
