"""Unit tests for the daily transition sweep."""

import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError
from app.models.activity import AuditLog
from app.models.enums import MemberRole, OccurrenceState
from app.services.sweep_service import DueOccurrence, SweepService, partition_due

SERVICE = "app.services.sweep_service"
TODAY = date(2024, 6, 12)


def _due(auto_approve, org_id=None):
    return DueOccurrence(id=uuid4(), org_id=org_id or uuid4(), bill_id=uuid4(), auto_approve=auto_approve)


def _db_error():
    return OperationalError("UPDATE", {}, Exception("deadlock detected"))


def test_partition_by_auto_approve():
    a = _due(True)
    b = _due(False)
    c = _due(None)
    approve_now, needs_approval = partition_due([a, b, c])
    assert approve_now == [a]
    assert needs_approval == [b, c]


@pytest.mark.asyncio
async def test_run_promotes_both_batches():
    """A (auto-approve) becomes approved, B becomes pending_approval."""
    db = AsyncMock(spec=AsyncSession)
    a = _due(True)
    b = _due(False)
    with patch(f"{SERVICE}.SweepService.select_due", new_callable=AsyncMock, return_value=[a, b]) as mock_select:
        with patch(f"{SERVICE}.SweepService.apply_batch", new_callable=AsyncMock, side_effect=[1, 1]) as mock_apply:
            result = await SweepService.run(db, today=TODAY)

    mock_select.assert_awaited_once_with(db, TODAY)
    assert mock_apply.await_args_list[0].args == (db, [a], OccurrenceState.APPROVED)
    assert mock_apply.await_args_list[1].args == (db, [b], OccurrenceState.PENDING_APPROVAL)
    assert result.as_of == TODAY
    assert result.processed == 2
    assert result.auto_approved == 1
    assert result.pending_approval == 1
    assert result.ok
    assert db.commit.called


@pytest.mark.asyncio
async def test_run_with_nothing_due():
    db = AsyncMock(spec=AsyncSession)
    with patch(f"{SERVICE}.SweepService.select_due", new_callable=AsyncMock, return_value=[]):
        with patch(f"{SERVICE}.SweepService.apply_batch", new_callable=AsyncMock) as mock_apply:
            result = await SweepService.run(db, today=TODAY)

    assert result.processed == 0
    assert result.ok
    assert not mock_apply.called


@pytest.mark.asyncio
async def test_run_defaults_to_utc_today():
    db = AsyncMock(spec=AsyncSession)
    with patch(f"{SERVICE}.get_utc_today", return_value=TODAY):
        with patch(f"{SERVICE}.SweepService.select_due", new_callable=AsyncMock, return_value=[]) as mock_select:
            result = await SweepService.run(db)

    mock_select.assert_awaited_once_with(db, TODAY)
    assert result.as_of == TODAY


@pytest.mark.asyncio
async def test_failed_batch_does_not_block_the_other():
    db = AsyncMock(spec=AsyncSession)
    a = _due(True)
    b = _due(False)
    with patch(f"{SERVICE}.SweepService.select_due", new_callable=AsyncMock, return_value=[a, b]):
        with patch(
            f"{SERVICE}.SweepService.apply_batch",
            new_callable=AsyncMock,
            side_effect=[_db_error(), 1],
        ) as mock_apply:
            result = await SweepService.run(db, today=TODAY)

    assert mock_apply.await_count == 2
    assert result.auto_approved == 0
    assert result.pending_approval == 1
    assert not result.ok
    assert "approved" in result.error
    assert db.commit.called


@pytest.mark.asyncio
async def test_first_error_is_reported():
    db = AsyncMock(spec=AsyncSession)
    with patch(f"{SERVICE}.SweepService.select_due", new_callable=AsyncMock, return_value=[_due(True), _due(False)]):
        with patch(
            f"{SERVICE}.SweepService.apply_batch",
            new_callable=AsyncMock,
            side_effect=[_db_error(), _db_error()],
        ):
            result = await SweepService.run(db, today=TODAY)

    assert result.error.startswith("Failed to move 1 occurrence(s) to approved")
    assert result.auto_approved == 0
    assert result.pending_approval == 0


@pytest.mark.asyncio
async def test_selection_failure_is_a_storage_error():
    db = AsyncMock(spec=AsyncSession)
    with patch(f"{SERVICE}.SweepService.select_due", new_callable=AsyncMock, side_effect=_db_error()):
        with pytest.raises(StorageError):
            await SweepService.run(db, today=TODAY)


@pytest.mark.asyncio
async def test_run_without_auto_commit():
    db = AsyncMock(spec=AsyncSession)
    with patch(f"{SERVICE}.SweepService.select_due", new_callable=AsyncMock, return_value=[_due(True)]):
        with patch(f"{SERVICE}.SweepService.apply_batch", new_callable=AsyncMock, return_value=1):
            await SweepService.run(db, today=TODAY, auto_commit=False)
    assert not db.commit.called


# ---------------------------------------------------------------------------
# apply_batch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_apply_batch_audits_each_row_without_notifying():
    db = AsyncMock(spec=AsyncSession)
    db.execute.return_value = MagicMock(rowcount=2)
    rows = [_due(True), _due(True)]
    with patch(f"{SERVICE}.NotificationService.notify_roles", new_callable=AsyncMock) as mock_notify:
        moved = await SweepService.apply_batch(db, rows, OccurrenceState.APPROVED)

    assert moved == 2
    assert db.begin_nested.called
    audits = [c.args[0] for c in db.add.call_args_list]
    assert all(isinstance(a, AuditLog) for a in audits)
    assert {a.target_id for a in audits} == {r.id for r in rows}
    assert audits[0].actor_id is None
    assert audits[0].diff["to"] == "approved"
    assert not mock_notify.called
    assert db.flush.called


@pytest.mark.asyncio
async def test_apply_batch_notifies_approvers_once_per_org():
    db = AsyncMock(spec=AsyncSession)
    db.execute.return_value = MagicMock(rowcount=3)
    org_a, org_b = uuid4(), uuid4()
    rows = [_due(False, org_a), _due(False, org_a), _due(None, org_b)]
    with patch(f"{SERVICE}.NotificationService.notify_roles", new_callable=AsyncMock) as mock_notify:
        await SweepService.apply_batch(db, rows, OccurrenceState.PENDING_APPROVAL)

    assert mock_notify.await_count == 2
    notified = {c.args[1]: c.kwargs for c in mock_notify.await_args_list}
    assert set(notified) == {org_a, org_b}
    assert notified[org_a]["payload"] == {"bill_occurrence_ids": [rows[0].id, rows[1].id]}
    assert set(notified[org_b]["roles"]) == {MemberRole.ADMIN, MemberRole.APPROVER}


# ---------------------------------------------------------------------------
# select_due
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_select_due_takes_scheduled_rows_due_today_or_earlier():
    db = AsyncMock(spec=AsyncSession)
    occurrence_id, org_id, bill_id = uuid4(), uuid4(), uuid4()
    db.execute.return_value = MagicMock()
    db.execute.return_value.all.return_value = [(occurrence_id, org_id, bill_id, True)]

    due = await SweepService.select_due(db, TODAY)

    assert due == [DueOccurrence(id=occurrence_id, org_id=org_id, bill_id=bill_id, auto_approve=True)]
    compiled = db.execute.await_args.args[0].compile(dialect=postgresql.dialect())
    sql = " ".join(str(compiled).split())
    assert "bills.auto_approve" in sql
    assert "JOIN bills ON bills.id = bill_occurrences.bill_id" in sql
    assert "bill_occurrences.state = %(state_1)s" in sql
    assert "bill_occurrences.due_date <= %(due_date_1)s" in sql
    assert compiled.params["state_1"] == OccurrenceState.SCHEDULED
    assert compiled.params["due_date_1"] == TODAY
