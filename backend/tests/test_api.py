"""Wizard session API tests."""

import json

import pytest
import pytest_asyncio
from fastapi import Request
from httpx import AsyncClient

from escrowdesk.middleware.exceptions import GatewayError, escrowdesk_exception_handler
from escrowdesk.wizards.guarantee import GUARANTEE
from escrowdesk.wizards.project import PAYMENT_PLAN, PROJECT

PROJECTS = [{"id": 11, "reaCif": "CIF-11", "reaCompletionDate": "2027-06-30"}]


@pytest.mark.api
@pytest.mark.asyncio
class TestSessions:
    """Opening, editing and navigating a guarantee wizard over HTTP."""

    @pytest_asyncio.fixture
    async def session_id(self, client: AsyncClient) -> str:
        resp = await client.post("/api/wizards/sessions", json={"kind": "guarantee"})
        assert resp.status_code == 201
        return resp.json()["data"]["session_id"]

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_list_wizards(self, client: AsyncClient):
        resp = await client.get("/api/wizards/")
        kinds = {w["kind"] for w in resp.json()}
        assert kinds == {"guarantee", "project", "manual_payment", "tas_payment"}

    async def test_open_new_session(self, client: AsyncClient):
        resp = await client.post("/api/wizards/sessions", json={"kind": "guarantee"})
        body = resp.json()
        assert body["ok"]
        assert body["data"]["mode"] == "create"
        assert body["data"]["entity_id"] is None
        assert body["data"]["url"] == "/guarantee/new?step=1"
        assert [s["key"] for s in body["data"]["steps"]] == ["details", "documents", "review"]

    async def test_unknown_kind_is_404(self, client: AsyncClient):
        resp = await client.post("/api/wizards/sessions", json={"kind": "nope"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "RESOURCE_NOT_FOUND"

    async def test_unknown_session_is_404(self, client: AsyncClient):
        resp = await client.get("/api/wizards/sessions/missing")
        assert resp.status_code == 404

    async def test_view_without_entity_rejected(self, client: AsyncClient):
        resp = await client.post("/api/wizards/sessions", json={"kind": "guarantee", "mode": "view"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VIEW_WITHOUT_ENTITY"

    async def test_bad_mode_is_validation_error(self, client: AsyncClient):
        resp = await client.post("/api/wizards/sessions", json={"kind": "guarantee", "mode": "delete"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_next_with_empty_fields_reports_errors(self, client: AsyncClient, session_id: str):
        resp = await client.post(f"/api/wizards/sessions/{session_id}/next")
        assert resp.status_code == 200
        body = resp.json()
        assert not body["ok"]
        assert "guaranteeAmount" in body["field_errors"]

    async def test_full_guarantee_flow(self, client: AsyncClient, session_id: str):
        base = f"/api/wizards/sessions/{session_id}"
        resp = await client.post(f"{base}/options/projectName", json={"records": PROJECTS})
        assert resp.json()["ok"]

        resp = await client.post(f"{base}/reference")
        assert resp.json()["data"]["changed"]["guaranteeRefNo"].startswith("GUA-")

        for name, value in {
            "guaranteeType": "1",
            "guaranteeDate": "2026-10-01",
            "projectName": "11",
            "developerName": "7",
            "guaranteeAmount": "5000",
            "issuerBank": "2",
        }.items():
            resp = await client.put(f"{base}/fields/{name}", json={"value": value})
            assert resp.json()["ok"]
        assert resp.json()["data"]["changed"] == {"issuerBank": "2"}

        session = (await client.get(base)).json()
        assert session["values"]["projectCif"] == "CIF-11"

        resp = await client.post(f"{base}/next")
        body = resp.json()
        assert body["ok"], body
        assert body["data"]["mode"] == "edit"
        assert body["data"]["step_index"] == 1

        resp = await client.post(f"{base}/back")
        assert resp.json()["data"]["step_index"] == 0
        resp = await client.post(f"{base}/steps", json={"index": 2})
        assert not resp.json()["ok"]

        resp = await client.post(f"{base}/next")
        assert resp.json()["data"]["step_index"] == 1
        resp = await client.post(f"{base}/steps", json={"index": 0})
        assert resp.json()["data"]["step_index"] == 0

        await client.post(f"{base}/next")
        await client.post(f"{base}/next")
        resp = await client.post(f"{base}/next")
        assert resp.json()["data"]["is_complete"]

        session = (await client.get(base)).json()
        assert session["history"][-1].endswith("?step=3&mode=edit")

    async def test_delete_session(self, client: AsyncClient, session_id: str):
        resp = await client.delete(f"/api/wizards/sessions/{session_id}")
        assert resp.status_code == 204
        resp = await client.get(f"/api/wizards/sessions/{session_id}")
        assert resp.status_code == 404

    async def test_labels_translate_step_titles(self, client: AsyncClient, session_id: str):
        await client.put(
            "/api/wizards/labels",
            json=[{"configId": "CDL_SB_DETAILS", "configValue": "Bond Details", "language": "EN"}],
        )
        resp = await client.get(f"/api/wizards/sessions/{session_id}", params={"language": "EN"})
        assert resp.json()["steps"][0]["title"] == "Bond Details"


@pytest.mark.api
@pytest.mark.asyncio
class TestExistingRecords:
    """Sessions opened on a saved record, with its payment plan."""

    @pytest_asyncio.fixture
    async def project_id(self, gateways) -> int:
        entities = gateways.entity(PROJECT.resource)
        saved = await entities.create({"reaId": "PRJ-9", "reaName": "Creek Tower", "reaCif": "CIF-9"})
        gateways.rows(PAYMENT_PLAN).seed(saved["id"], [
            {"reappInstallmentNumber": 1, "reappInstallmentPercentage": 40, "reappProjectCompletionPercentage": 20},
            {"reappInstallmentNumber": 2, "reappInstallmentPercentage": 30, "reappProjectCompletionPercentage": 50},
        ])
        return saved["id"]

    async def test_open_loads_record_and_rows(self, client: AsyncClient, project_id: int):
        resp = await client.post(
            "/api/wizards/sessions",
            json={"kind": "project", "entity_id": project_id, "step": 4},
        )
        body = resp.json()
        assert body["ok"], body
        data = body["data"]
        assert data["mode"] == "edit"
        assert data["step_index"] == 3
        assert data["values"]["reaName"] == "Creek Tower"
        rows = data["collections"]["payment_plan"]["rows"]
        assert [r["sequence_number"] for r in rows] == [1, 2]
        assert data["collections"]["payment_plan"]["totals"]["installmentPercentage"] == 70

    async def test_open_missing_record_reports_failure(self, client: AsyncClient):
        resp = await client.post("/api/wizards/sessions", json={"kind": "guarantee", "entity_id": 999})
        body = resp.json()
        assert resp.status_code == 201
        assert not body["ok"]
        assert body["data"]["values"] == {}

    async def test_row_lifecycle(self, client: AsyncClient, project_id: int):
        resp = await client.post(
            "/api/wizards/sessions",
            json={"kind": "project", "entity_id": project_id, "step": 4},
        )
        session_id = resp.json()["data"]["session_id"]
        rows = f"/api/wizards/sessions/{session_id}/collections/payment_plan"

        assert (await client.post(f"{rows}/rows")).json()["ok"]
        resp = await client.post(f"/api/wizards/sessions/{session_id}/next")
        assert resp.json()["error"].startswith("You have unsaved installment data")

        await client.patch(f"{rows}/rows/2", json={"name": "installmentPercentage", "value": "40"})
        await client.patch(f"{rows}/rows/2", json={"name": "projectCompletionPercentage", "value": "10"})
        resp = await client.post(f"{rows}/rows/2/save")
        body = resp.json()
        assert not body["ok"]
        assert "installmentPercentage" in body["field_errors"]

        await client.patch(f"{rows}/rows/2", json={"name": "installmentPercentage", "value": "30"})
        resp = await client.post(f"{rows}/rows/2/save")
        assert resp.json()["ok"]

        resp = await client.delete(f"{rows}/rows/0")
        assert [r["sequence_number"] for r in resp.json()["data"]["rows"]] == [1, 2]

        resp = await client.get(f"{rows}/")
        assert resp.json()["totals"]["installmentPercentage"] == 60
        assert not resp.json()["has_unsaved_changes"]

    async def test_view_session_rejects_edits(self, client: AsyncClient, project_id: int):
        resp = await client.post(
            "/api/wizards/sessions",
            json={"kind": "project", "entity_id": project_id, "mode": "view"},
        )
        session_id = resp.json()["data"]["session_id"]

        resp = await client.put(f"/api/wizards/sessions/{session_id}/fields/reaName", json={"value": "X"})
        assert not resp.json()["ok"]
        resp = await client.post(f"/api/wizards/sessions/{session_id}/collections/payment_plan/rows")
        assert not resp.json()["ok"]

    async def test_unknown_collection_is_404(self, client: AsyncClient):
        resp = await client.post("/api/wizards/sessions", json={"kind": GUARANTEE.kind})
        session_id = resp.json()["data"]["session_id"]
        resp = await client.get(f"/api/wizards/sessions/{session_id}/collections/payment_plan/")
        assert resp.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestErrorEnvelope:
    """Errors that never reach a wizard share one response shape."""

    async def test_unknown_route(self, client: AsyncClient):
        resp = await client.get("/api/wizards/nowhere/at/all")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "HTTP_404"

    async def test_step_below_one_lists_field(self, client: AsyncClient):
        resp = await client.post("/api/wizards/sessions", json={"kind": "guarantee", "step": 0})
        assert resp.status_code == 422
        fields = [e["field"] for e in resp.json()["error"]["details"]["errors"]]
        assert fields == ["body -> step"]

    async def test_gateway_error_reports_upstream_status(self):
        request = Request({"type": "http", "method": "POST", "path": "/api/wizards/sessions", "headers": []})
        resp = await escrowdesk_exception_handler(request, GatewayError("Upstream down", upstream_status=503))
        assert resp.status_code == 502
        assert json.loads(resp.body) == {
            "error": {
                "code": "UPSTREAM_ERROR",
                "message": "Upstream down",
                "details": {"upstream_status": 503},
            }
        }
