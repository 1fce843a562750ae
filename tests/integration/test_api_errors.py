"""Integration tests: auth, roles and error envelopes (no database needed)."""

import pytest
from datetime import date
from unittest.mock import AsyncMock, patch
from uuid import uuid4
from httpx import AsyncClient

from app.api import deps
from app.core.exceptions import InvalidRuleError, NotFoundError, StorageError
from app.main import app
from app.models.enums import MemberRole, MemberStatus
from app.models.organization import OrgMember
from app.schemas.billing import GenerationResult, SweepResult
from tests.conftest import auth_headers


@pytest.fixture
def member_role():
    return MemberRole.ACCOUNTANT


@pytest.fixture
def current_member(member_role):
    """Skip the membership lookup and act as a member with `member_role`."""
    member = OrgMember(
        id=uuid4(), org_id=uuid4(), user_id=uuid4(), role=member_role, status=MemberStatus.ACTIVE
    )
    app.dependency_overrides[deps.get_current_member] = lambda: member
    yield member
    app.dependency_overrides.pop(deps.get_current_member, None)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_bills_require_token(async_client: AsyncClient, api_base: str):
    resp = await async_client.get(f"{api_base}/bills")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_garbage_token_rejected(async_client: AsyncClient, api_base: str):
    resp = await async_client.get(f"{api_base}/bills", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_process_bills_requires_job_token_or_admin(async_client: AsyncClient, api_base: str):
    resp = await async_client.post(f"{api_base}/admin/process-bills", headers={"X-Job-Token": "wrong"})
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Scheduler endpoint
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_process_bills_with_job_token(async_client: AsyncClient, api_base: str):
    outcome = SweepResult(as_of=date(2024, 6, 12), processed=3, auto_approved=1, pending_approval=2)
    with patch("app.api.v1.endpoints.admin.SweepService.run", new_callable=AsyncMock, return_value=outcome) as mock_run:
        resp = await async_client.post(
            f"{api_base}/admin/process-bills",
            params={"as_of": "2024-06-12"},
            headers={"X-Job-Token": "test-job-token"},
        )

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["data"] == {
        "as_of": "2024-06-12", "processed": 3, "auto_approved": 1, "pending_approval": 2, "error": None,
    }
    assert mock_run.await_args.kwargs["today"] == date(2024, 6, 12)


@pytest.mark.asyncio
async def test_process_bills_partial_failure_is_500(async_client: AsyncClient, api_base: str):
    outcome = SweepResult(
        as_of=date(2024, 6, 12), processed=2, pending_approval=1,
        error="Failed to move 1 occurrence(s) to approved: OperationalError",
    )
    with patch("app.api.v1.endpoints.admin.SweepService.run", new_callable=AsyncMock, return_value=outcome):
        resp = await async_client.post(
            f"{api_base}/admin/process-bills", headers={"X-Job-Token": "test-job-token"}
        )

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "SWEEP_PARTIAL_FAILURE"
    assert body["error"]["details"]["pending_approval"] == 1


@pytest.mark.asyncio
async def test_process_bills_storage_error_is_503(async_client: AsyncClient, api_base: str):
    with patch(
        "app.api.v1.endpoints.admin.SweepService.run",
        new_callable=AsyncMock,
        side_effect=StorageError("Failed to query due bill occurrences"),
    ):
        resp = await async_client.post(
            f"{api_base}/admin/process-bills", headers={"X-Job-Token": "test-job-token"}
        )

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "STORAGE_ERROR"


# ---------------------------------------------------------------------------
# Domain errors and roles
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_returns_counts(async_client: AsyncClient, api_base: str, current_member):
    bill_id = uuid4()
    result = GenerationResult(bill_id=bill_id, count=3, pruned=1, max_sequence=3)
    with patch(
        "app.api.v1.endpoints.bills.OccurrenceService.generate_for_bill",
        new_callable=AsyncMock,
        return_value=result,
    ) as mock_generate:
        resp = await async_client.post(
            f"{api_base}/bills/{bill_id}/generate", headers=auth_headers(current_member.user_id)
        )

    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["count"] == 3
    assert mock_generate.await_args.args[1:3] == (bill_id, current_member.org_id)


@pytest.mark.asyncio
async def test_generate_unknown_bill_is_404(async_client: AsyncClient, api_base: str, current_member):
    bill_id = uuid4()
    with patch(
        "app.api.v1.endpoints.bills.OccurrenceService.generate_for_bill",
        new_callable=AsyncMock,
        side_effect=NotFoundError(f"Bill {bill_id} not found"),
    ):
        resp = await async_client.post(
            f"{api_base}/bills/{bill_id}/generate", headers=auth_headers(current_member.user_id)
        )

    assert resp.status_code == 404
    assert resp.json() == {
        "success": False,
        "error": {"code": "RESOURCE_NOT_FOUND", "message": f"Bill {bill_id} not found", "details": None},
    }


@pytest.mark.asyncio
async def test_generate_invalid_rule_is_422(async_client: AsyncClient, api_base: str, current_member):
    with patch(
        "app.api.v1.endpoints.bills.OccurrenceService.generate_for_bill",
        new_callable=AsyncMock,
        side_effect=InvalidRuleError("Unsupported recurring frequency: 'daily'", details={"frequency": "daily"}),
    ):
        resp = await async_client.post(
            f"{api_base}/bills/{uuid4()}/generate", headers=auth_headers(current_member.user_id)
        )

    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["code"] == "INVALID_RECURRING_RULE"
    assert error["details"] == {"frequency": "daily"}


@pytest.mark.asyncio
@pytest.mark.parametrize("member_role", [MemberRole.VIEWER, MemberRole.ANALYST, MemberRole.APPROVER])
async def test_read_only_roles_cannot_create_bills(async_client: AsyncClient, api_base: str, current_member):
    resp = await async_client.post(
        f"{api_base}/bills",
        headers=auth_headers(current_member.user_id),
        json={"title": "Rent", "amount_total": "1500.00"},
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("member_role", [MemberRole.ACCOUNTANT, MemberRole.VIEWER])
async def test_only_approvers_record_decisions(async_client: AsyncClient, api_base: str, current_member):
    resp = await async_client.post(
        f"{api_base}/approvals",
        headers=auth_headers(current_member.user_id),
        json={"bill_occurrence_id": str(uuid4()), "decision": "approved"},
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_bill_validation_error(async_client: AsyncClient, api_base: str, current_member):
    resp = await async_client.post(
        f"{api_base}/bills",
        headers=auth_headers(current_member.user_id),
        json={"title": "Rent", "amount_total": "0", "recurring_rule": {"frequency": "daily"}},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_upcoming_window_is_validated(async_client: AsyncClient, api_base: str, current_member):
    resp = await async_client.get(
        f"{api_base}/reports/upcoming",
        params={"window": "month"},
        headers=auth_headers(current_member.user_id),
    )
    assert resp.status_code == 422
