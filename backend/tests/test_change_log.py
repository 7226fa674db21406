"""Functional tests — change trail captured by ORM listeners and explicit entries."""
import pytest
from httpx import AsyncClient

from conftest import completed_execution


async def _entries(client: AsyncClient, seed, **params) -> list[dict]:
    r = await client.get("/change-log", params={"per_page": 200, **params}, headers=seed.manager)
    assert r.status_code == 200, r.text
    return r.json()["items"]


@pytest.mark.asyncio
async def test_template_creation_is_logged(client: AsyncClient, seed, template):
    rows = await _entries(client, seed, module="templates", action="create")
    created = [r for r in rows if r["entity_type"] == "audit_templates"]
    assert len(created) == 1
    assert created[0]["entity_id"] == template["id"]
    assert created[0]["user_id"] == seed.manager_id
    assert created[0]["tenant_id"] == 1
    # one entry per item as well
    assert len([r for r in rows if r["entity_type"] == "audit_items"]) == 3


@pytest.mark.asyncio
async def test_field_updates_keep_old_and_new_values(client: AsyncClient, seed, template):
    r = await client.patch(f"/audit-templates/{template['id']}", json={"name": "Hygiène Salle"},
                           headers=seed.manager)
    assert r.status_code == 200

    rows = await _entries(client, seed, entity_type="audit_templates", entity_id=template["id"], action="update")
    by_field = {row["field_name"]: row for row in rows}
    assert "updated_at" not in by_field
    assert by_field["name"]["old_value"] == "Hygiène Cuisine"
    assert by_field["name"]["new_value"] == "Hygiène Salle"


@pytest.mark.asyncio
async def test_review_and_archive_are_logged(client: AsyncClient, seed, template):
    ex = await completed_execution(client, seed, template)
    await client.post(f"/audits/{ex['id']}/review", json={"notes": "RAS"}, headers=seed.manager)
    r = await client.post(f"/audit-archives/archive/{ex['id']}", headers=seed.manager)
    assert r.status_code == 201

    reviews = await _entries(client, seed, action="review", entity_id=ex["id"])
    assert reviews
    assert all(row["module"] == "audits" for row in reviews)
    assert {row["user_id"] for row in reviews} == {seed.manager_id}

    archives = await _entries(client, seed, action="archive", entity_id=ex["id"])
    by_field = {row["field_name"]: row for row in archives}
    assert by_field["archive_id"]["new_value"] == str(r.json()["data"]["id"])
    assert by_field["responses"]["old_value"] == "3"


@pytest.mark.asyncio
async def test_response_recording_is_logged_under_audits(client: AsyncClient, seed, execution):
    item = execution["items"][0]
    await client.post(f"/audits/{execution['id']}/responses",
                      json={"item_id": item["id"], "value": "no"}, headers=seed.inspector)

    rows = await _entries(client, seed, module="audits", entity_type="audit_responses")
    assert [row["action"] for row in rows] == ["create"]
    assert rows[0]["user_id"] == seed.inspector_id

    findings = await _entries(client, seed, module="findings")
    assert [row["action"] for row in findings] == ["create"]

    status_rows = await _entries(client, seed, entity_type="audit_executions", action="update")
    assert any(row["field_name"] == "status" and row["new_value"] == "in_progress" for row in status_rows)


@pytest.mark.asyncio
async def test_change_log_requires_manager(client: AsyncClient, seed):
    r = await client.get("/change-log", headers=seed.inspector)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_change_log_is_tenant_scoped(client: AsyncClient, seed, template):
    r = await client.get("/change-log", headers=seed.outsider)
    assert r.status_code == 200
    assert r.json()["total"] == 0
    assert r.json()["items"] == []


@pytest.mark.asyncio
async def test_change_log_pagination(client: AsyncClient, seed, template):
    r = await client.get("/change-log?per_page=2&page=2", headers=seed.manager)
    body = r.json()
    assert body["page"] == 2
    assert body["per_page"] == 2
    assert body["total"] >= 4
    assert len(body["items"]) == 2
