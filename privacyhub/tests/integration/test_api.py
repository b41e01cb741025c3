from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from privacyhub.apps.api.main import create_app
from privacyhub.domain.schemas import GeneratedDocumentCreate
from privacyhub.persistence.db import SessionLocal
from privacyhub.persistence.repos import activities, activity_junctions, change_logs, generated_documents
from privacyhub.tests.utils import factories


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _seed_activity() -> dict[str, str]:
    # Two tenants: one owning an activity with a purpose, one with a purpose of its own.
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id, name="Payroll")
        purpose = await factories.create_purpose(session, org.id, "Billing")
        foreign_purpose = await factories.create_purpose(session, other.id, "Theirs")
        await activity_junctions.sync_activity_purposes(session, activity.id, org.id, [purpose.id])
        return {
            "org": org.id,
            "other": other.id,
            "activity": activity.id,
            "purpose": purpose.id,
            "foreign_purpose": foreign_purpose.id,
        }


@pytest.mark.asyncio
async def test_health_reports_store_and_request_id() -> None:
    async with _client() as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"status": "ok", "database": "sqlite"}
    assert body["meta"]["request_id"] == "req-123"
    assert "organization_id" not in body["meta"]
    assert response.headers["X-Request-Id"] == "req-123"


@pytest.mark.asyncio
async def test_get_activity_with_components() -> None:
    ids = await _seed_activity()
    async with _client() as client:
        response = await client.get(f"/v1/organizations/{ids['org']}/activities/{ids['activity']}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == ids["activity"]
    assert data["name"] == "Payroll"
    assert data["purposes"] == [{"id": ids["purpose"], "name": "Billing"}]
    assert data["recipients"] == []


@pytest.mark.asyncio
async def test_cross_tenant_activity_reads_as_not_found() -> None:
    ids = await _seed_activity()
    async with _client() as client:
        response = await client.get(f"/v1/organizations/{ids['other']}/activities/{ids['activity']}")
    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "NOT_FOUND"
    assert error["message"] == (
        f"DataProcessingActivity with id {ids['activity']} not found or does not belong to organization"
    )


@pytest.mark.asyncio
async def test_unknown_organization_reads_as_not_found() -> None:
    async with _client() as client:
        response = await client.get(f"/v1/organizations/{uuid4()}/activities")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_sync_relation_over_http() -> None:
    ids = await _seed_activity()
    async with SessionLocal() as session:
        second = await factories.create_purpose(session, ids["org"], "Support")
        second_id = second.id
    base = f"/v1/organizations/{ids['org']}/activities/{ids['activity']}"
    async with _client() as client:
        response = await client.put(f"{base}/purposes", json={"ids": [second_id]})
        assert response.status_code == 200
        assert response.json()["data"] == {"added": [second_id], "removed": [ids["purpose"]]}

        listed = await client.get(f"{base}/purposes")
        assert listed.json()["data"] == [second_id]

        foreign = await client.put(f"{base}/purposes", json={"ids": [ids["foreign_purpose"]]})
        assert foreign.status_code == 404
        assert foreign.json()["error"]["code"] == "NOT_FOUND"

        unknown_relation = await client.get(f"{base}/invoices")
        assert unknown_relation.status_code == 404

        smuggled = await client.put(
            f"{base}/purposes", json={"ids": [], "organization_id": ids["other"]}
        )
        assert smuggled.status_code == 422
        assert smuggled.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"

        removed = await client.delete(f"{base}/purposes/{second_id}")
        assert removed.json()["data"] == {"removed": True}

    async with SessionLocal() as session:
        assert await activity_junctions.list_activity_related_ids(
            session, activity_junctions.ACTIVITY_PURPOSES, ids["activity"], ids["org"]
        ) == []


@pytest.mark.asyncio
async def test_list_activities_paginates_with_signed_cursor() -> None:
    ids = await _seed_activity()
    async with SessionLocal() as session:
        await factories.create_activity(session, ids["org"], name="Recruiting")
    async with _client() as client:
        first = await client.get(f"/v1/organizations/{ids['org']}/activities", params={"limit": 1})
        assert first.status_code == 200
        cursor = first.json()["meta"]["next_cursor"]
        second = await client.get(
            f"/v1/organizations/{ids['org']}/activities", params={"limit": 1, "cursor": cursor}
        )
        assert second.status_code == 200
        assert "next_cursor" not in second.json()["meta"]
        names = {first.json()["data"][0]["name"], second.json()["data"][0]["name"]}
        assert names == {"Payroll", "Recruiting"}

        replayed = await client.get(
            f"/v1/organizations/{ids['other']}/activities", params={"cursor": cursor}
        )
        assert replayed.status_code == 400
        assert replayed.json()["error"]["code"] == "INVALID_CURSOR"

        garbage = await client.get(
            f"/v1/organizations/{ids['org']}/activities", params={"cursor": "not-a-cursor"}
        )
        assert garbage.status_code == 400
        assert garbage.json()["error"]["code"] == "INVALID_CURSOR"


@pytest.mark.asyncio
async def test_recipient_hierarchy_endpoints() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        root = await factories.create_recipient(session, org.id, name="Root")
        child = await factories.create_recipient(
            session, org.id, name="Child", type="SUB_PROCESSOR", parent_recipient_id=root.id
        )
        org_id, root_id, child_id = org.id, root.id, child.id
    base = f"/v1/organizations/{org_id}/recipients"
    async with _client() as client:
        descendants = await client.get(f"{base}/{root_id}/descendants")
        assert [(item["id"], item["depth"]) for item in descendants.json()["data"]] == [(child_id, 1)]

        ancestors = await client.get(f"{base}/{child_id}/ancestors")
        assert [item["id"] for item in ancestors.json()["data"]] == [root_id]

        health = await client.get(f"{base}/hierarchy-health")
        assert health.status_code == 200
        report = health.json()["data"]
        assert report["orphaned"] == []
        assert report["cycles"] == []
        assert report["total_issues"] == len(report["unlinked"]) == 2


@pytest.mark.asyncio
async def test_duplicate_impact_link_is_a_conflict() -> None:
    ids = await _seed_activity()
    async with SessionLocal() as session:
        [created] = await change_logs.get_component_change_history(
            session, activities.COMPONENT_TYPE, ids["activity"], ids["org"]
        )
        document = await generated_documents.create_generated_document(
            session, ids["org"], GeneratedDocumentCreate(document_type="ROPA")
        )
        change_id, document_id = created.id, document.id
    base = f"/v1/organizations/{ids['org']}"
    payload = {
        "change_log_id": change_id,
        "impact_type": "PURPOSE_SECTION_OUTDATED",
        "impact_description": "Purpose list changed",
    }
    async with _client() as client:
        linked = await client.post(f"{base}/documents/{document_id}/impacts", json=payload)
        assert linked.status_code == 200
        duplicate = await client.post(f"{base}/documents/{document_id}/impacts", json=payload)
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["code"] == "CONFLICT"

        queue = await client.get(f"{base}/documents/needs-review")
        assert [(item["id"], item["pending_impacts"]) for item in queue.json()["data"]] == [(document_id, 1)]

        history = await client.get(f"{base}/changes/PROCESSING_ACTIVITY/{ids['activity']}")
        assert [entry["change_type"] for entry in history.json()["data"]] == ["CREATED"]


@pytest.mark.asyncio
async def test_missing_agreements_endpoint() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        vendor = await factories.create_external_organization(session, org.id, "Cloud Inc")
        processor = await factories.create_recipient(session, org.id, external_organization_id=vendor.id)
        org_id, processor_id = org.id, processor.id
    async with _client() as client:
        response = await client.get(f"/v1/organizations/{org_id}/recipients/missing-agreements")
    assert response.status_code == 200
    assert response.json()["meta"]["organization_id"] == org_id
    assert [(item["id"], item["required_agreement_type"]) for item in response.json()["data"]] == [
        (processor_id, "DPA")
    ]
