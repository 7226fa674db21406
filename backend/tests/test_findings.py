"""Functional tests — non-conformities raised from answers, and their management."""
import pytest
from httpx import AsyncClient

from app.config import settings


async def _answer(client: AsyncClient, seed, execution: dict, position: int, **body):
    item = execution["items"][position]
    r = await client.post(f"/audits/{execution['id']}/responses",
                          json={"item_id": item["id"], **body}, headers=seed.inspector)
    assert r.status_code == 200, r.text
    return r.json()["data"]


@pytest.mark.asyncio
async def test_no_on_critical_item_opens_critical_finding(client: AsyncClient, seed, execution):
    data = await _answer(client, seed, execution, 0, value="no", notes="Chambre froide à 9°C")
    nc = data["non_conformity"]
    assert nc is not None
    assert nc["status"] == "open"
    assert nc["severity"] == "critical"
    assert nc["evidence"] == "Chambre froide à 9°C"
    assert nc["restaurant_id"] == seed.lyon_id
    assert nc["restaurant_name"] == "Le Comptoir Lyon"
    assert "Chambres froides sous 4°C ?" in nc["description"]


@pytest.mark.asyncio
async def test_yes_answer_raises_nothing(client: AsyncClient, seed, execution):
    data = await _answer(client, seed, execution, 0, value="yes")
    assert data["non_conformity"] is None


@pytest.mark.asyncio
async def test_low_score_opens_default_severity_finding(client: AsyncClient, seed, execution):
    data = await _answer(client, seed, execution, 2, score=2)
    assert data["non_conformity"]["severity"] == settings.NC_DEFAULT_SEVERITY

    # exactly at the threshold passes
    data = await _answer(client, seed, execution, 2, score=2.5)
    assert data["non_conformity"] is None


@pytest.mark.asyncio
async def test_reanswering_does_not_duplicate_findings(client: AsyncClient, seed, execution):
    first = await _answer(client, seed, execution, 0, value="no")
    second = await _answer(client, seed, execution, 0, value="false", notes="Toujours en panne")
    assert first["non_conformity"]["id"] == second["non_conformity"]["id"]
    assert second["non_conformity"]["evidence"] == "Toujours en panne"

    r = await client.get(f"/non-conformities?execution_id={execution['id']}", headers=seed.manager)
    assert len(r.json()["data"]) == 1


@pytest.mark.asyncio
async def test_passing_answer_withdraws_open_finding(client: AsyncClient, seed, execution):
    await _answer(client, seed, execution, 0, value="no")
    data = await _answer(client, seed, execution, 0, value="yes")
    assert data["non_conformity"] is None

    r = await client.get("/non-conformities", headers=seed.manager)
    assert r.json()["data"] == []


@pytest.mark.asyncio
async def test_finding_with_actions_survives_passing_answer(client: AsyncClient, seed, execution):
    nc = (await _answer(client, seed, execution, 0, value="no"))["non_conformity"]
    r = await client.post("/corrective-actions", json={
        "action_description": "Réparer le compresseur",
        "assigned_to": seed.inspector_id,
        "non_conformity_id": nc["id"],
    }, headers=seed.manager)
    assert r.status_code == 201

    data = await _answer(client, seed, execution, 0, value="yes")
    assert data["non_conformity"]["id"] == nc["id"]
    assert data["non_conformity"]["status"] == "in_progress"
    assert data["non_conformity"]["action_count"] == 1


@pytest.mark.asyncio
async def test_finding_status_moves_forward_only(client: AsyncClient, seed, execution):
    nc = (await _answer(client, seed, execution, 0, value="no"))["non_conformity"]

    r = await client.patch(f"/non-conformities/{nc['id']}", json={"status": "verified"}, headers=seed.manager)
    assert r.status_code == 400

    r = await client.patch(f"/non-conformities/{nc['id']}", json={
        "status": "resolved", "resolution_notes": "Compresseur remplacé",
    }, headers=seed.manager)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "resolved"
    assert data["resolution_date"] is not None
    assert data["resolution_notes"] == "Compresseur remplacé"

    r = await client.patch(f"/non-conformities/{nc['id']}", json={"status": "open"}, headers=seed.manager)
    assert r.status_code == 400

    r = await client.patch(f"/non-conformities/{nc['id']}", json={"status": "verified"}, headers=seed.manager)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "verified"


@pytest.mark.asyncio
async def test_finding_update_requires_manager(client: AsyncClient, seed, execution):
    nc = (await _answer(client, seed, execution, 0, value="no"))["non_conformity"]
    r = await client.patch(f"/non-conformities/{nc['id']}", json={"severity": "low"}, headers=seed.inspector)
    assert r.status_code == 403
    r = await client.patch(f"/non-conformities/{nc['id']}", json={"severity": "extreme"}, headers=seed.manager)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_findings_are_tenant_scoped(client: AsyncClient, seed, execution):
    nc = (await _answer(client, seed, execution, 0, value="no"))["non_conformity"]
    r = await client.get(f"/non-conformities/{nc['id']}", headers=seed.outsider)
    assert r.status_code == 404
    r = await client.get("/non-conformities", headers=seed.outsider)
    assert r.json()["data"] == []


@pytest.mark.asyncio
async def test_finding_filters_and_stats(client: AsyncClient, seed, execution):
    await _answer(client, seed, execution, 0, value="no")
    await _answer(client, seed, execution, 1, value="no")
    await _answer(client, seed, execution, 2, score=1)

    r = await client.get("/non-conformities?severity=critical", headers=seed.manager)
    assert len(r.json()["data"]) == 2
    r = await client.get(f"/non-conformities?restaurant_id={seed.paris_id}", headers=seed.manager)
    assert r.json()["data"] == []

    r = await client.get("/non-conformities/stats", headers=seed.manager)
    stats = r.json()["data"]
    assert stats["total"] == 3
    assert stats["by_status"]["open"] == 3
    assert stats["by_severity"] == {"low": 0, "medium": 1, "high": 0, "critical": 2}
    assert stats["critical"] == 2
