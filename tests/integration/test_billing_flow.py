"""Integration tests: bills, occurrences, sweep and approvals against PostgreSQL."""

import pytest
from decimal import Decimal
from uuid import uuid4
from httpx import AsyncClient

from tests.conftest import auth_headers, requires_db

pytestmark = requires_db

JOB_HEADERS = {"X-Job-Token": "test-job-token"}


async def _create_bill(client: AsyncClient, api_base: str, headers: dict, **fields) -> dict:
    payload = {"title": "Bill", "amount_total": "100.00"}
    payload.update(fields)
    resp = await client.post(f"{api_base}/bills", headers=headers, json=payload)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


async def _occurrences(client: AsyncClient, api_base: str, headers: dict, bill_id: str) -> list:
    resp = await client.get(f"{api_base}/bills/{bill_id}/occurrences", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


async def _set_state(client: AsyncClient, api_base: str, headers: dict, occurrence_id: str, state: str):
    resp = await client.patch(f"{api_base}/occurrences/{occurrence_id}", headers=headers, json={"state": state})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_recurring_bill_gets_occurrences(async_client: AsyncClient, api_base: str, registered_org: dict):
    headers = registered_org["headers"]
    bill = await _create_bill(
        async_client, api_base, headers,
        title="Equipment lease",
        installments_total=3,
        recurring_rule={"frequency": "monthly", "start_date": "2024-01-31"},
    )

    resp = await async_client.get(f"{api_base}/bills/{bill['id']}", headers=headers)
    assert resp.status_code == 200
    occurrences = resp.json()["data"]["occurrences"]
    assert [o["sequence"] for o in occurrences] == [1, 2, 3]
    assert [o["due_date"] for o in occurrences] == ["2024-01-31", "2024-02-29", "2024-03-31"]
    assert [Decimal(o["amount_due"]) for o in occurrences] == [
        Decimal("33.34"), Decimal("33.33"), Decimal("33.33"),
    ]
    assert occurrences[2]["suggested_submission_date"] == "2024-03-29"
    assert all(o["state"] == "scheduled" for o in occurrences)


@pytest.mark.asyncio
async def test_one_off_bill_generates_nothing(async_client: AsyncClient, api_base: str, registered_org: dict):
    headers = registered_org["headers"]
    bill = await _create_bill(async_client, api_base, headers, due_date="2024-06-01")

    resp = await async_client.post(f"{api_base}/bills/{bill['id']}/generate", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["count"] == 0
    assert await _occurrences(async_client, api_base, headers, bill["id"]) == []


@pytest.mark.asyncio
async def test_regeneration_keeps_progress_and_prunes(
    async_client: AsyncClient, api_base: str, registered_org: dict
):
    headers = registered_org["headers"]
    bill = await _create_bill(
        async_client, api_base, headers,
        amount_total="400.00",
        installments_total=4,
        recurring_rule={"frequency": "monthly", "start_date": "2024-01-15"},
    )
    first, _, third, fourth = await _occurrences(async_client, api_base, headers, bill["id"])
    await _set_state(async_client, api_base, headers, first["id"], "approved")
    await _set_state(async_client, api_base, headers, first["id"], "paid")
    await _set_state(async_client, api_base, headers, fourth["id"], "approved")

    # Shorten to two installments
    resp = await async_client.patch(
        f"{api_base}/bills/{bill['id']}", headers=headers, json={"installments_total": 2}
    )
    assert resp.status_code == 200, resp.text

    after = await _occurrences(async_client, api_base, headers, bill["id"])
    by_sequence = {o["sequence"]: o for o in after}
    # Sequence 3 was still scheduled and is gone; 4 had progressed and stays
    assert sorted(by_sequence) == [1, 2, 4]
    assert by_sequence[1]["state"] == "paid"
    assert by_sequence[1]["id"] == first["id"]
    assert Decimal(by_sequence[1]["amount_due"]) == Decimal("200.00")
    assert by_sequence[2]["state"] == "scheduled"
    assert by_sequence[4]["state"] == "approved"
    assert third["id"] not in {o["id"] for o in after}

    # Regenerating again changes nothing
    resp = await async_client.post(f"{api_base}/bills/{bill['id']}/generate", headers=headers)
    assert resp.json()["data"] == {"bill_id": bill["id"], "count": 2, "pruned": 0, "max_sequence": 2}


@pytest.mark.asyncio
async def test_illegal_manual_transition(async_client: AsyncClient, api_base: str, registered_org: dict):
    headers = registered_org["headers"]
    bill = await _create_bill(
        async_client, api_base, headers,
        installments_total=1,
        recurring_rule={"frequency": "weekly", "start_date": "2024-01-01"},
    )
    (occurrence,) = await _occurrences(async_client, api_base, headers, bill["id"])
    resp = await async_client.patch(
        f"{api_base}/occurrences/{occurrence['id']}", headers=headers, json={"state": "paid"}
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_STATE_TRANSITION"


@pytest.mark.asyncio
async def test_sweep_and_approval(async_client: AsyncClient, api_base: str, registered_org: dict):
    headers = registered_org["headers"]

    async def single(start: str, auto_approve: bool) -> dict:
        bill = await _create_bill(
            async_client, api_base, headers,
            installments_total=1,
            auto_approve=auto_approve,
            recurring_rule={"frequency": "monthly", "start_date": start},
        )
        (occurrence,) = await _occurrences(async_client, api_base, headers, bill["id"])
        return occurrence

    a = await single("2031-01-14", True)
    b = await single("2031-01-15", False)
    c = await single("2031-01-16", False)
    d = await single("2031-01-14", True)
    await _set_state(async_client, api_base, headers, d["id"], "approved")

    resp = await async_client.post(
        f"{api_base}/admin/process-bills", params={"as_of": "2031-01-15"}, headers=JOB_HEADERS
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["error"] is None

    async def state_of(occurrence: dict) -> str:
        resp = await async_client.get(f"{api_base}/occurrences/{occurrence['id']}", headers=headers)
        return resp.json()["data"]["state"]

    assert await state_of(a) == "approved"
    assert await state_of(b) == "pending_approval"
    assert await state_of(c) == "scheduled"
    assert await state_of(d) == "approved"

    # Running the sweep again for the same day is a no-op for these rows
    resp = await async_client.post(
        f"{api_base}/admin/process-bills", params={"as_of": "2031-01-15"}, headers=JOB_HEADERS
    )
    assert resp.status_code == 200
    assert await state_of(b) == "pending_approval"

    # The admin was told about B
    resp = await async_client.get(f"{api_base}/notifications", headers=headers)
    payloads = [n["payload"] for n in resp.json()["data"]]
    assert any(b["id"] in (p or {}).get("bill_occurrence_ids", []) for p in payloads)

    # Approve, then revise the same approver's decision to hold
    resp = await async_client.post(
        f"{api_base}/approvals",
        headers=headers,
        json={"bill_occurrence_id": b["id"], "decision": "approved", "comment": "looks right"},
    )
    assert resp.status_code == 200, resp.text
    assert await state_of(b) == "approved"

    resp = await async_client.post(
        f"{api_base}/approvals",
        headers=headers,
        json={"bill_occurrence_id": b["id"], "decision": "hold"},
    )
    assert resp.status_code == 200, resp.text
    assert await state_of(b) == "on_hold"

    resp = await async_client.get(
        f"{api_base}/approvals", params={"bill_occurrence_id": b["id"]}, headers=headers
    )
    approvals = resp.json()["data"]
    assert len(approvals) == 1
    assert approvals[0]["decision"] == "hold"


@pytest.mark.asyncio
async def test_cancel_bill_cancels_open_occurrences(
    async_client: AsyncClient, api_base: str, registered_org: dict
):
    headers = registered_org["headers"]
    bill = await _create_bill(
        async_client, api_base, headers,
        installments_total=2,
        recurring_rule={"frequency": "weekly", "start_date": "2024-03-04"},
    )
    first, second = await _occurrences(async_client, api_base, headers, bill["id"])
    await _set_state(async_client, api_base, headers, first["id"], "approved")

    resp = await async_client.delete(f"{api_base}/bills/{bill['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"

    states = {o["sequence"]: o["state"] for o in await _occurrences(async_client, api_base, headers, bill["id"])}
    assert states == {1: "approved", 2: "canceled"}

    # Regenerating a cancelled bill must not revive its occurrences
    resp = await async_client.post(f"{api_base}/bills/{bill['id']}/generate", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["count"] == 0
    states = {o["sequence"]: o["state"] for o in await _occurrences(async_client, api_base, headers, bill["id"])}
    assert states == {1: "approved", 2: "canceled"}


@pytest.mark.asyncio
async def test_reports_and_export(async_client: AsyncClient, api_base: str, registered_org: dict):
    headers = registered_org["headers"]
    await _create_bill(
        async_client, api_base, headers,
        title="Cleaning",
        installments_total=2,
        recurring_rule={"frequency": "monthly", "start_date": "2020-01-10"},
    )

    resp = await async_client.get(f"{api_base}/reports/overdue", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["count"] >= 2

    resp = await async_client.get(f"{api_base}/reports/summary", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["by_state"]["scheduled"]["count"] >= 2

    resp = await async_client.get(
        f"{api_base}/reports/occurrences.csv",
        params={"start": "2020-01-01", "end": "2020-12-31"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    lines = resp.text.splitlines()
    assert lines[0].startswith("bill_title,")
    assert lines[1].startswith("Cleaning,")


@pytest.mark.asyncio
async def test_members_and_org_isolation(async_client: AsyncClient, api_base: str, registered_org: dict):
    headers = registered_org["headers"]
    outsider = uuid4()

    # Not a member yet
    resp = await async_client.get(f"{api_base}/bills", headers=auth_headers(outsider, registered_org["org_id"]))
    assert resp.status_code == 403

    resp = await async_client.post(
        f"{api_base}/organizations/current/members",
        headers=headers,
        json={"user_id": str(outsider), "role": "viewer"},
    )
    assert resp.status_code == 200, resp.text

    resp = await async_client.get(f"{api_base}/bills", headers=auth_headers(outsider, registered_org["org_id"]))
    assert resp.status_code == 200
    assert resp.json()["meta"]["page"] == 1

    # The only admin cannot step down
    resp = await async_client.get(f"{api_base}/organizations/current/members", headers=headers)
    admin = next(m for m in resp.json()["data"] if m["role"] == "admin")
    resp = await async_client.patch(
        f"{api_base}/organizations/current/members/{admin['id']}",
        headers=headers,
        json={"role": "viewer"},
    )
    assert resp.status_code == 409
