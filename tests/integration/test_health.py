"""Integration tests: Health and root endpoints."""

import pytest
from unittest.mock import AsyncMock, patch
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from app.main import app


@pytest.mark.asyncio
async def test_health():
    """Health endpoint at /health."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["app_name"] == "BillFlow Backend"


@pytest.mark.asyncio
async def test_root_points_to_docs():
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["docs"] == "/docs"


@pytest.mark.asyncio
async def test_request_id_is_echoed():
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        resp = await client.get("/health", headers={"X-Request-ID": "job-123"})
    assert resp.headers["X-Request-ID"] == "job-123"
    assert "X-Process-Time" in resp.headers


@pytest.mark.asyncio
async def test_readiness_reports_database_outage():
    with patch("app.main.ping_db", new_callable=AsyncMock, side_effect=OperationalError("SELECT 1", {}, Exception("refused"))):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            resp = await client.get("/health/ready")
    assert resp.status_code == 503
    assert resp.json() == {"status": "unavailable", "database": "unreachable"}


@pytest.mark.asyncio
async def test_readiness_when_database_answers():
    with patch("app.main.ping_db", new_callable=AsyncMock):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            resp = await client.get("/health/ready")
    assert resp.status_code == 200
    assert resp.json()["database"] == "ok"


@pytest.mark.asyncio
async def test_api_responses_are_not_cached():
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        api_resp = await client.get("/api/v1/bills")
        health_resp = await client.get("/health")
    assert api_resp.status_code == 401
    assert api_resp.headers["Cache-Control"] == "no-store"
    assert "Cache-Control" not in health_resp.headers
    assert api_resp.headers["X-Content-Type-Options"] == "nosniff"
