"""Functional tests — template catalog: validation, dense ordering, replacement, scoping."""
import pytest
from httpx import AsyncClient

from app.config import settings
from conftest import HYGIENE_TEMPLATE, schedule


@pytest.mark.asyncio
async def test_create_template_orders_items_densely(client: AsyncClient, seed, template):
    assert template["name"] == "Hygiène Cuisine"
    assert template["is_active"] is True
    assert template["frequency"] == "weekly"
    assert template["item_count"] == 3
    assert [i["order"] for i in template["items"]] == [1, 2, 3]
    assert template["items"][0]["is_critical"] is True
    assert template["items"][2]["max_score"] == 5
    assert template["created_by"] == seed.manager_id


@pytest.mark.asyncio
async def test_non_score_items_drop_max_score(client: AsyncClient, seed):
    r = await client.post("/audit-templates", json={
        "name": "Accueil client",
        "category": "service",
        "items": [{"question": "Client salué ?", "type": "yes_no", "max_score": 10}],
    }, headers=seed.manager)
    assert r.status_code == 201
    assert r.json()["data"]["items"][0]["max_score"] is None
    assert r.json()["data"]["frequency"] == "on_demand"


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides, fragment", [
    ({"name": "X"}, "between 2 and 100"),
    ({"name": "N" * 101}, "between 2 and 100"),
    ({"category": "kitchen"}, "Unknown category"),
    ({"items": []}, "at least one item"),
    ({"items": [{"question": "  ", "type": "yes_no"}]}, "blank"),
    ({"items": [{"question": "Note", "type": "rating"}]}, "unknown type"),
    ({"items": [{"question": "Note", "type": "score"}]}, "positive max_score"),
    ({"items": [{"question": "Note", "type": "score", "max_score": 0}]}, "positive max_score"),
])
async def test_create_template_validation(client: AsyncClient, seed, overrides, fragment):
    body = {**HYGIENE_TEMPLATE, **overrides}
    r = await client.post("/audit-templates", json=body, headers=seed.manager)
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert r.json()["error"]["code"] == "validation_error"
    assert fragment in r.json()["error"]["message"]


@pytest.mark.asyncio
async def test_inspector_cannot_create_template(client: AsyncClient, seed):
    r = await client.post("/audit-templates", json=HYGIENE_TEMPLATE, headers=seed.inspector)
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "forbidden"


@pytest.mark.asyncio
async def test_list_and_filter_templates(client: AsyncClient, seed, template):
    await client.post("/audit-templates", json={
        "name": "Sécurité incendie", "category": "security",
        "items": [{"question": "Extincteurs vérifiés ?", "type": "yes_no"}],
    }, headers=seed.manager)

    r = await client.get("/audit-templates", headers=seed.inspector)
    assert r.status_code == 200
    assert len(r.json()["data"]) == 2

    r = await client.get("/audit-templates?category=security", headers=seed.inspector)
    names = [t["name"] for t in r.json()["data"]]
    assert names == ["Sécurité incendie"]


@pytest.mark.asyncio
async def test_deactivated_template_hidden_by_default(client: AsyncClient, seed, template):
    r = await client.patch(f"/audit-templates/{template['id']}", json={"is_active": False}, headers=seed.manager)
    assert r.status_code == 200
    assert r.json()["data"]["is_active"] is False

    r = await client.get("/audit-templates", headers=seed.manager)
    assert r.json()["data"] == []
    r = await client.get("/audit-templates?include_inactive=true", headers=seed.manager)
    assert len(r.json()["data"]) == 1


@pytest.mark.asyncio
async def test_update_replaces_items_and_renumbers(client: AsyncClient, seed, template):
    r = await client.patch(f"/audit-templates/{template['id']}", json={
        "name": "Hygiène Cuisine v2",
        "items": [
            {"question": "Poubelles fermées ?", "type": "yes_no"},
            {"question": "Photo du plan de travail", "type": "photo", "is_required": False},
        ],
    }, headers=seed.manager)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["name"] == "Hygiène Cuisine v2"
    assert [i["order"] for i in data["items"]] == [1, 2]
    assert [i["question"] for i in data["items"]] == ["Poubelles fermées ?", "Photo du plan de travail"]


@pytest.mark.asyncio
async def test_update_keeps_existing_execution_snapshot(client: AsyncClient, seed, template):
    ex = await schedule(client, seed, template)
    await client.patch(f"/audit-templates/{template['id']}", json={
        "items": [{"question": "Nouvelle question", "type": "text"}],
    }, headers=seed.manager)

    r = await client.get(f"/audits/{ex['id']}", headers=seed.manager)
    questions = [i["question"] for i in r.json()["data"]["items"]]
    assert questions == [i["question"] for i in template["items"]]


@pytest.mark.asyncio
async def test_update_rejects_invalid_category(client: AsyncClient, seed, template):
    r = await client.patch(f"/audit-templates/{template['id']}", json={"category": "kitchen"}, headers=seed.manager)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_delete_unused_template(client: AsyncClient, seed, template):
    r = await client.delete(f"/audit-templates/{template['id']}", headers=seed.manager)
    assert r.status_code == 204
    r = await client.get(f"/audit-templates/{template['id']}", headers=seed.manager)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_delete_referenced_template_conflicts(client: AsyncClient, seed, template):
    await schedule(client, seed, template)
    r = await client.delete(f"/audit-templates/{template['id']}", headers=seed.manager)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "conflict"


@pytest.mark.asyncio
async def test_templates_are_global_by_default(client: AsyncClient, seed, template):
    r = await client.get(f"/audit-templates/{template['id']}", headers=seed.outsider)
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_tenant_scoped_templates_hide_foreign_ones(client: AsyncClient, seed, template, monkeypatch):
    monkeypatch.setattr(settings, "TEMPLATES_TENANT_SCOPED", True)
    r = await client.get(f"/audit-templates/{template['id']}", headers=seed.outsider)
    assert r.status_code == 404
    r = await client.get("/audit-templates", headers=seed.outsider)
    assert r.json()["data"] == []
    r = await client.get(f"/audit-templates/{template['id']}", headers=seed.manager)
    assert r.status_code == 200
