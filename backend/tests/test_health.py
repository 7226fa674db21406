"""Health check endpoint."""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_endpoint(client: AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] in ("ok", "degraded")
    assert data["app"] == "FranchiseAudits"


@pytest.mark.asyncio
async def test_missing_identity_is_rejected_with_envelope(client: AsyncClient):
    r = await client.get("/audit-templates")
    assert r.status_code == 401
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "unauthorized"


@pytest.mark.asyncio
async def test_unknown_role_is_rejected(client: AsyncClient):
    r = await client.get("/audit-templates", headers={
        "X-User-Id": "1", "X-Tenant-Id": "1", "X-User-Role": "chef",
    })
    assert r.status_code == 401
