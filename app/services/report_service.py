"""Report Service - upcoming, overdue and on-hold payments, CSV export"""

import csv
import io
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import Bill, BillOccurrence
from app.models.enums import OccurrenceState
from app.schemas.billing import OccurrenceResponse
from app.schemas.report import OccurrenceReport, StateTotals, SummaryReport

# Occurrences that no longer need money to move
SETTLED_STATES = (OccurrenceState.PAID, OccurrenceState.CANCELED)

UPCOMING_WINDOWS = {
    "today": 0,
    "week": 7,
    "two-weeks": 14,
}

CSV_COLUMNS = [
    "bill_title", "vendor_id", "project_id", "sequence", "amount_due", "currency",
    "due_date", "suggested_submission_date", "state",
]


def _build_report(start: date, end: date, occurrences: Sequence[BillOccurrence]) -> OccurrenceReport:
    return OccurrenceReport(
        start=start,
        end=end,
        count=len(occurrences),
        total_due=sum((Decimal(o.amount_due) for o in occurrences), Decimal("0.00")),
        occurrences=[OccurrenceResponse.model_validate(o) for o in occurrences],
    )


class ReportService:
    @staticmethod
    async def _query(db: AsyncSession, org_id: UUID, *conditions) -> List[BillOccurrence]:
        result = await db.execute(
            select(BillOccurrence)
            .where(BillOccurrence.org_id == org_id, *conditions)
            .order_by(BillOccurrence.due_date, BillOccurrence.sequence)
        )
        return list(result.scalars().all())

    @staticmethod
    async def upcoming(db: AsyncSession, org_id: UUID, today: date, days: int) -> OccurrenceReport:
        """Unsettled occurrences due between today and today + days, inclusive."""
        end = today + timedelta(days=days)
        rows = await ReportService._query(
            db, org_id,
            BillOccurrence.due_date >= today,
            BillOccurrence.due_date <= end,
            BillOccurrence.state.not_in(SETTLED_STATES),
        )
        return _build_report(today, end, rows)

    @staticmethod
    async def overdue(db: AsyncSession, org_id: UUID, today: date) -> OccurrenceReport:
        rows = await ReportService._query(
            db, org_id,
            BillOccurrence.due_date < today,
            BillOccurrence.state.not_in(SETTLED_STATES),
        )
        start = rows[0].due_date if rows else today
        return _build_report(start, today - timedelta(days=1), rows)

    @staticmethod
    async def on_hold(db: AsyncSession, org_id: UUID, today: date) -> OccurrenceReport:
        rows = await ReportService._query(db, org_id, BillOccurrence.state == OccurrenceState.ON_HOLD)
        start = rows[0].due_date if rows else today
        end = rows[-1].due_date if rows else today
        return _build_report(start, end, rows)

    @staticmethod
    async def summary(db: AsyncSession, org_id: UUID, today: date) -> SummaryReport:
        result = await db.execute(
            select(
                BillOccurrence.state,
                func.count(),
                func.coalesce(func.sum(BillOccurrence.amount_due), 0),
            )
            .where(BillOccurrence.org_id == org_id)
            .group_by(BillOccurrence.state)
        )
        by_state: Dict[str, StateTotals] = {
            state.value: StateTotals(count=0, amount=Decimal("0.00")) for state in OccurrenceState
        }
        for state, count, amount in result.all():
            by_state[OccurrenceState(state).value] = StateTotals(count=count, amount=Decimal(amount))

        overdue = await ReportService.overdue(db, org_id, today)
        week = await ReportService.upcoming(db, org_id, today, UPCOMING_WINDOWS["week"])
        return SummaryReport(
            as_of=today,
            by_state=by_state,
            overdue_count=overdue.count,
            overdue_amount=overdue.total_due,
            due_next_7_days=week.total_due,
        )

    @staticmethod
    async def export_rows(
        db: AsyncSession,
        org_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
        state: Optional[OccurrenceState] = None,
    ) -> List[dict]:
        query = (
            select(BillOccurrence, Bill.title, Bill.currency)
            .join(Bill, Bill.id == BillOccurrence.bill_id)
            .where(BillOccurrence.org_id == org_id)
        )
        if start:
            query = query.where(BillOccurrence.due_date >= start)
        if end:
            query = query.where(BillOccurrence.due_date <= end)
        if state:
            query = query.where(BillOccurrence.state == state)
        result = await db.execute(query.order_by(BillOccurrence.due_date, Bill.title, BillOccurrence.sequence))
        return [
            {
                "bill_title": title,
                "vendor_id": occ.vendor_id or "",
                "project_id": occ.project_id or "",
                "sequence": occ.sequence,
                "amount_due": f"{Decimal(occ.amount_due):.2f}",
                "currency": currency,
                "due_date": occ.due_date.isoformat(),
                "suggested_submission_date": occ.suggested_submission_date.isoformat(),
                "state": OccurrenceState(occ.state).value,
            }
            for occ, title, currency in result.all()
        ]

    @staticmethod
    def to_csv(rows: Sequence[dict]) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue()
