"""
Tests for the JSON API.
"""
import pytest
from fastapi.testclient import TestClient

from parkval import config
from parkval.models import gemini
from parkval.products import report, template
from parkval.utils import project as project_mgr
from parkval.web.server import app


@pytest.fixture
def client(projects_dir, tmp_path, monkeypatch):
    monkeypatch.setattr(template, "TEMPLATE_WORKBOOK", tmp_path / "no_template.xlsx")
    monkeypatch.setattr(report, "TEMPLATE_WORKBOOK", tmp_path / "no_template.xlsx")
    monkeypatch.setattr(config, "RENTCAST_API_KEY", "")
    return TestClient(app)


@pytest.fixture
def project_id(client):
    resp = client.post("/api/projects", data={"name": "Sunny Acres MHP", "address": "12 Oak Rd, Ocala, FL 34470"})
    assert resp.status_code == 200
    return resp.json()["id"]


class TestProjects:

    def test_dashboard(self, client, project_id):
        body = client.get("/").json()
        assert [p["id"] for p in body["projects"]] == [project_id]
        assert body["providers"] == [{"id": "rentcast", "label": "Rentcast API"}]
        assert body["template_ok"] in (True, False)

    def test_create_requires_name(self, client):
        assert client.post("/api/projects", data={"name": "   "}).status_code == 400

    def test_create_without_template(self, client):
        resp = client.post("/api/projects", data={"name": "Pine Grove"})
        assert resp.json()["template_loaded"] is False

    def test_get_project(self, client, project_id):
        body = client.get(f"/api/projects/{project_id}").json()
        assert body["project"]["name"] == "Sunny Acres MHP"
        assert body["inputs"]["address"] == "12 Oak Rd, Ocala, FL 34470"
        assert body["discrepancies"] == {}

    def test_unknown_project(self, client):
        assert client.get("/api/projects/nope").status_code == 404
        assert client.delete("/api/projects/nope").status_code == 404

    def test_delete(self, client, project_id):
        assert client.delete(f"/api/projects/{project_id}").json() == {"deleted": project_id}
        assert client.get(f"/api/projects/{project_id}").status_code == 404


class TestInputs:

    def test_patch_sets_and_clears(self, client, project_id):
        resp = client.patch(f"/api/projects/{project_id}/inputs", json={"total_lots": 120, "address": " "})
        body = resp.json()
        assert body["inputs"]["total_lots"] == 120
        assert "address" not in body["inputs"]
        assert body["updated"] == ["address", "total_lots"]

    def test_patch_rejects_non_object(self, client, project_id):
        assert client.patch(f"/api/projects/{project_id}/inputs", json=[1, 2]).status_code == 400

    def test_discrepancies(self, client, project_id):
        pdir = project_mgr.project_dir(project_id)
        project_mgr.save_state(pdir, "api_values", {"address": "9 Elm St"})
        body = client.get(f"/api/projects/{project_id}/discrepancies").json()
        assert body["discrepancies"]["address"] == {"pdf": None, "api": "9 Elm St"}

    def test_merge_preview(self, client):
        resp = client.post("/api/merge/preview", json={
            "inputs": {"acreage": "10", "owner_name": "Me"},
            "fetched": {"acreage": 12.5, "owner_name": "Oak LLC"},
            "default_values": {"acreage": "10"},
        })
        body = resp.json()
        assert body["applied"] == {"acreage": 12.5}
        assert body["preserved"] == ["owner_name"]

    def test_merge_preview_validates(self, client):
        assert client.post("/api/merge/preview", json={"inputs": "x"}).status_code == 400

    @pytest.mark.parametrize("route", ["/api/merge/preview", "/api/projects/{id}/autofill", "/api/projects/{id}/inputs"])
    @pytest.mark.parametrize("payload", [b"[1, 2]", b"\"rentcast\"", b"not json", b""])
    def test_body_must_be_a_json_object(self, client, project_id, route, payload):
        url = route.format(id=project_id)
        send = client.patch if url.endswith("/inputs") else client.post
        resp = send(url, content=payload, headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert "JSON object" in resp.json()["error"]


class TestAutofill:

    def test_invalid_provider(self, client, project_id):
        resp = client.post(f"/api/projects/{project_id}/autofill", json={"provider": "zillow"})
        assert resp.status_code == 400
        assert "Invalid provider" in resp.json()["error"]

    def test_missing_key_reports_message(self, client, project_id):
        resp = client.post(f"/api/projects/{project_id}/autofill", json={"provider": "rentcast"})
        assert resp.status_code == 200
        assert resp.json()["message"] == "Rentcast API key is missing."

    def test_taxes_without_apn(self, client, project_id):
        resp = client.post(f"/api/projects/{project_id}/autofill", json={"provider": "rentcast", "intent": "taxes"})
        assert resp.json()["message"] == "APN is required for taxes auto-fill."


class TestDocuments:

    def test_upload(self, client, project_id, monkeypatch):
        monkeypatch.setattr(gemini, "extract_valuation_fields", lambda data, mime, keys: {"data": {"total_lots": 120}})
        resp = client.post(
            f"/api/projects/{project_id}/documents",
            files={"file": ("om.pdf", b"%PDF-1.4", "application/pdf")},
        )
        assert resp.status_code == 200
        assert resp.json()["applied"] == {"total_lots": 120}

    def test_unsupported(self, client, project_id):
        resp = client.post(
            f"/api/projects/{project_id}/documents",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert resp.status_code == 400

    def test_parse_error(self, client, project_id, monkeypatch):
        monkeypatch.setattr(
            gemini, "extract_valuation_fields",
            lambda data, mime, keys: {"raw_response": "?", "parse_error": True},
        )
        resp = client.post(
            f"/api/projects/{project_id}/documents",
            files={"file": ("rent_roll.csv", b"a,b", "text/csv")},
        )
        assert resp.status_code == 500


class TestPnl:

    def test_group(self, client, project_id, monkeypatch):
        replies = [{"income": {"rental_income": 42000}, "expenses": {"insurance": 2500}}, {"valid": True}]
        monkeypatch.setattr(gemini, "generate_json", lambda prompt: replies.pop(0))
        client.patch(f"/api/projects/{project_id}/inputs", json={
            "pnl_income_items": [{"id": "1", "name": "Lot Rent", "amount": 42000}],
            "pnl_expense_items": [{"id": "2", "name": "Insurance", "amount": 2500}],
        })

        resp = client.post(f"/api/projects/{project_id}/pnl/group")
        assert resp.status_code == 200
        assert resp.json()["pnl_grouped_expenses"][5] == {"category": "Insurance", "total": 2500}

    def test_group_without_items(self, client, project_id):
        resp = client.post(f"/api/projects/{project_id}/pnl/group")
        assert resp.status_code == 400

    def test_group_unknown_project(self, client):
        assert client.post("/api/projects/nope/pnl/group").status_code == 404


class TestReport:

    def test_export_and_download(self, client, project_id):
        body = client.post(f"/api/projects/{project_id}/report").json()
        assert body["file"].endswith(".xlsx")
        assert body["summary"] == "valuation_summary.md"

        download = client.get(f"/api/projects/{project_id}/outputs/{body['file']}")
        assert download.status_code == 200

        outputs = client.get(f"/api/projects/{project_id}/report/outputs")
        assert outputs.status_code == 200
        assert outputs.json()["file"] == body["file"]

    def test_outputs_before_export(self, client, project_id):
        assert client.get(f"/api/projects/{project_id}/report/outputs").status_code == 404

    def test_download_missing(self, client, project_id):
        assert client.get(f"/api/projects/{project_id}/outputs/nothing.xlsx").status_code == 404
