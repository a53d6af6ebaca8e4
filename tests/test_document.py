"""
Tests for document ingestion. Gemini is monkeypatched; no network.
"""
import pytest

from parkval import config
from parkval.models import gemini
from parkval.products.document import expand_aliases, ingest_document, merge_document_values
from parkval.utils import project as project_mgr


@pytest.fixture
def fake_gemini(monkeypatch):
    calls = []

    def fake_extract(data, mime_type, keys):
        calls.append({"data": data, "mime_type": mime_type, "keys": keys})
        return {"data": {"total_lots": 120, "occupied_lots": 96, "parcelNumber": "555", "name": "Sunny Acres"}}

    monkeypatch.setattr(gemini, "extract_valuation_fields", fake_extract)
    return calls


class TestGeminiHelpers:

    def test_detect_mime_type(self):
        assert gemini.detect_mime_type("rent_roll.XLSX") == gemini.MIME_TYPES[".xlsx"]
        assert gemini.detect_mime_type("upload", "application/pdf") == "application/pdf"
        assert gemini.detect_mime_type("notes.docx", "application/msword") == ""

    def test_parse_json_strips_fences(self):
        assert gemini._parse_json('```json\n{"total_lots": 120}\n```') == {"total_lots": 120}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
    def test_parse_json_errors(self, raw):
        parsed = gemini._parse_json(raw)
        assert parsed["parse_error"] is True
        assert parsed["raw_response"] == raw

    def test_filter_extracted(self):
        parsed = {"total_lots": 120, "city": "", "unknown": 1, "occupied_lots": 0}
        assert gemini.filter_extracted(parsed, ["total_lots", "city", "occupied_lots"]) == {
            "total_lots": 120,
            "occupied_lots": 0,
        }

    def test_prompt_lists_keys(self):
        assert "total_lots, city" in gemini.build_prompt(["total_lots", "city"])


class TestMerge:

    def test_expand_aliases(self):
        expanded = expand_aliases({"parcelNumber": "555", "acreage": 12.5, "name": "Sunny"})
        assert expanded["parcel_1"] == "555"
        assert expanded["parcel_1_acreage"] == 12.5
        assert expanded["mobile_home_park_name"] == "Sunny"

    def test_alias_does_not_overwrite(self):
        assert expand_aliases({"parcel_1": "1", "parcelNumber": "2"})["parcel_1"] == "1"

    def test_fills_blanks_and_defaults_only(self, project):
        project_mgr.save_state(project, "default_values", {"total_lots": 100})
        inputs = project_mgr.load_state(project, "inputs")
        inputs.update({"total_lots": "100", "occupied_lots": "90"})
        project_mgr.save_state(project, "inputs", inputs)

        result = merge_document_values(project, {"total_lots": 120, "occupied_lots": 96, "current_lot_rent": 450})
        assert result["applied"] == {"total_lots": 120, "current_lot_rent": 450}
        assert result["preserved"] == ["occupied_lots"]
        assert project_mgr.load_state(project, "pdf_values")["occupied_lots"] == 96

    def test_location_keys_recorded_but_not_filled(self, project):
        merge_document_values(project, {"parcelNumber": "555", "address": "1 Elsewhere"})
        inputs = project_mgr.load_state(project, "inputs")
        assert "parcelNumber" not in inputs
        assert inputs["address"] == "12 Oak Rd, Ocala, FL 34470"
        pdf_values = project_mgr.load_state(project, "pdf_values")
        assert pdf_values["parcel_1"] == "555"
        assert pdf_values["mobile_home_park_address"] == "1 Elsewhere"

    def test_location_and_parcel_facts_never_fill(self, project):
        result = merge_document_values(project, {
            "city": "Elsewhere", "state": "GA", "county": "Fulton", "zip_code": "99999",
            "acreage": 4.2, "year_built": 1980, "lat": 33.7, "lng": -84.4,
        })
        assert result["applied"] == {}
        inputs = project_mgr.load_state(project, "inputs")
        for key in ("city", "state", "county", "zip_code", "acreage", "year_built", "lat", "lng"):
            assert key not in inputs
        assert project_mgr.load_state(project, "pdf_values")["zip_code"] == "99999"

    def test_blank_address_fills(self, project):
        inputs = project_mgr.load_state(project, "inputs")
        inputs.pop("address", None)
        project_mgr.save_state(project, "inputs", inputs)

        result = merge_document_values(project, {"address": "1 Elsewhere"})
        assert result["applied"] == {"address": "1 Elsewhere"}

    def test_pnl_keys_become_line_items(self, project):
        result = merge_document_values(project, {"city": "Elsewhere", "zip_code": "99999", "revenue_other": 5,
                                                 "expense_rm": "$1,250", "expense_custom_fee": "n/a"})
        assert result["applied"] == {}
        inputs = project_mgr.load_state(project, "inputs")
        assert "revenue_other" not in inputs
        assert "expense_rm" not in inputs
        assert [(i["name"], i["amount"]) for i in inputs["pnl_income_items"]] == [("Other Income", 5)]
        assert [(i["name"], i["amount"]) for i in inputs["pnl_expense_items"]] == [("R&M", 1250)]
        assert inputs["pnl_income_items"][0]["id"]

        pdf_values = project_mgr.load_state(project, "pdf_values")
        assert "revenue_other" not in pdf_values
        assert "expense_rm" not in pdf_values

    def test_line_items_not_duplicated_by_name(self, project):
        inputs = project_mgr.load_state(project, "inputs")
        inputs["pnl_income_items"] = [{"id": "a", "name": " other income ", "amount": 9}]
        project_mgr.save_state(project, "inputs", inputs)

        result = merge_document_values(project, {"revenue_other": 5, "revenue_storage": 300})
        items = project_mgr.load_state(project, "inputs")["pnl_income_items"]
        assert [(i["name"], i["amount"]) for i in items] == [(" other income ", 9), ("Storage", 300)]
        assert [i["name"] for i in result["line_items"]["pnl_income_items"]] == ["Storage"]

    def test_pdf_values_accumulate(self, project):
        merge_document_values(project, {"total_lots": 120})
        merge_document_values(project, {"occupied_lots": 96})
        assert project_mgr.load_state(project, "pdf_values") == {"total_lots": 120, "occupied_lots": 96}


class TestIngest:

    def test_saves_upload_and_merges(self, project, fake_gemini):
        result = ingest_document(project, b"%PDF-1.4", "om.pdf")
        assert (project / "inputs" / "om.pdf").read_bytes() == b"%PDF-1.4"
        assert fake_gemini[0]["mime_type"] == "application/pdf"
        assert "total_lots" in fake_gemini[0]["keys"]
        assert result["applied"]["total_lots"] == 120
        # the user already named the project
        assert "name" in result["preserved"]

    def test_unsupported_type(self, project, fake_gemini):
        with pytest.raises(ValueError, match="Unsupported file type"):
            ingest_document(project, b"x", "notes.docx")
        assert fake_gemini == []

    def test_parse_error(self, project, monkeypatch):
        monkeypatch.setattr(
            gemini, "extract_valuation_fields",
            lambda data, mime_type, keys: {"raw_response": "oops", "parse_error": True},
        )
        result = ingest_document(project, b"a,b", "rent_roll.csv")
        assert result["parse_error"] is True
        assert project_mgr.load_state(project, "pdf_values") == {}
        assert any(p.name.endswith("_document_parse_error.txt") for p in (project / "logs").iterdir())

    def test_missing_gemini_key(self, project, monkeypatch):
        monkeypatch.setattr(config, "GEMINI_API_KEY", "")
        with pytest.raises(SystemExit):
            ingest_document(project, b"a,b", "rent_roll.csv")
