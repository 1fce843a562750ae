"""Unit tests for BillService schedule refreshes."""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import Bill
from app.models.enums import BillStatus, MemberRole, MemberStatus
from app.models.organization import OrgMember
from app.schemas.billing import BillUpdate
from app.services.bill_service import BillService

SERVICE = "app.services.bill_service"


def _member():
    return OrgMember(
        id=uuid4(), org_id=uuid4(), user_id=uuid4(), role=MemberRole.ACCOUNTANT, status=MemberStatus.ACTIVE
    )


def _bill(org_id, **kwargs):
    defaults = dict(
        id=uuid4(),
        org_id=org_id,
        title="Office rent",
        amount_total=Decimal("1500.00"),
        due_date=date(2024, 1, 1),
        recurring_rule={"frequency": "monthly", "start_date": "2024-01-01"},
        installments_total=None,
        status=BillStatus.ACTIVE,
    )
    defaults.update(kwargs)
    return Bill(**defaults)


@pytest.mark.asyncio
async def test_removing_rule_clears_scheduled_occurrences():
    db = AsyncMock(spec=AsyncSession)
    member = _member()
    bill = _bill(member.org_id)
    with patch(f"{SERVICE}.BillService.get_bill", new_callable=AsyncMock, return_value=bill):
        with patch(f"{SERVICE}.OccurrenceService.clear_schedule", new_callable=AsyncMock) as mock_clear:
            with patch(f"{SERVICE}.OccurrenceService.generate_for_bill", new_callable=AsyncMock) as mock_generate:
                await BillService.update_bill(db, member, bill.id, BillUpdate(recurring_rule=None))

    assert bill.recurring_rule is None
    mock_clear.assert_awaited_once_with(db, bill, actor_id=member.user_id)
    assert not mock_generate.called
    assert db.commit.called


@pytest.mark.asyncio
async def test_schedule_change_regenerates_in_the_same_transaction():
    db = AsyncMock(spec=AsyncSession)
    member = _member()
    bill = _bill(member.org_id)
    with patch(f"{SERVICE}.BillService.get_bill", new_callable=AsyncMock, return_value=bill):
        with patch(f"{SERVICE}.OccurrenceService.clear_schedule", new_callable=AsyncMock) as mock_clear:
            with patch(f"{SERVICE}.OccurrenceService.generate_for_bill", new_callable=AsyncMock) as mock_generate:
                await BillService.update_bill(db, member, bill.id, BillUpdate(installments_total=6))

    mock_generate.assert_awaited_once_with(
        db, bill.id, member.org_id, actor_id=member.user_id, auto_commit=False
    )
    assert not mock_clear.called


@pytest.mark.asyncio
async def test_title_change_does_not_touch_occurrences():
    db = AsyncMock(spec=AsyncSession)
    member = _member()
    bill = _bill(member.org_id)
    with patch(f"{SERVICE}.BillService.get_bill", new_callable=AsyncMock, return_value=bill):
        with patch(f"{SERVICE}.OccurrenceService.clear_schedule", new_callable=AsyncMock) as mock_clear:
            with patch(f"{SERVICE}.OccurrenceService.generate_for_bill", new_callable=AsyncMock) as mock_generate:
                await BillService.update_bill(db, member, bill.id, BillUpdate(title="Office rent (2024)"))

    assert bill.title == "Office rent (2024)"
    assert not mock_generate.called
    assert not mock_clear.called
