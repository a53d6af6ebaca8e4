"""FastAPI web server — valuation wizard JSON API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import FileResponse, JSONResponse

from parkval.config import GEMINI_API_KEY, TEMPLATE_WORKBOOK, rentcast_configured
from parkval.providers.registry import PROVIDER_LABELS, PROVIDERS
from parkval.utils import project as project_mgr
from parkval.utils.merge import apply_provider_values, form_discrepancies, is_empty_value

# ── App Setup ────────────────────────────────────────────────────────────
app = FastAPI(title="Mobile Home Park Valuation Wizard")


# ── Helpers ──────────────────────────────────────────────────────────────

def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Project not found"}, status_code=404)


def _project_context(project_id: str) -> dict[str, Any]:
    """Everything the wizard needs to render one project."""
    pdir = project_mgr.project_dir(project_id)
    meta = project_mgr.load_project(pdir)
    meta["id"] = project_id

    inputs = project_mgr.load_state(pdir, "inputs")
    api_values = project_mgr.load_state(pdir, "api_values")
    pdf_values = project_mgr.load_state(pdir, "pdf_values")

    outputs_dir = pdir / "outputs"
    outputs = []
    if outputs_dir.exists():
        outputs = sorted(
            f.name for f in outputs_dir.iterdir()
            if f.is_file() and not f.name.startswith(".")
        )

    return {
        "project": meta,
        "inputs": inputs,
        "default_values": project_mgr.load_state(pdir, "default_values"),
        "api_values": api_values,
        "pdf_values": pdf_values,
        "discrepancies": form_discrepancies(inputs, pdf_values, api_values),
        "outputs": outputs,
    }


async def _json_object(request: Request) -> dict[str, Any] | None:
    """Request body as a dict, or None when it is not a JSON object."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _exists(project_id: str) -> bool:
    return (project_mgr.project_dir(project_id) / "project.json").exists()


# ═══════════════════════════════════════════════════════════════════════
# PROJECT ROUTES
# ═══════════════════════════════════════════════════════════════════════

@app.get("/")
async def dashboard():
    projects = []
    for d in project_mgr.list_projects():
        meta = project_mgr.load_project(d)
        meta["id"] = d.name
        projects.append(meta)

    return JSONResponse({
        "projects": projects,
        "providers": [{"id": p, "label": PROVIDER_LABELS[p]} for p in PROVIDERS],
        "rentcast_ok": rentcast_configured(),
        "gemini_ok": bool(GEMINI_API_KEY and not GEMINI_API_KEY.startswith("AIza...")),
        "template_ok": TEMPLATE_WORKBOOK.exists(),
    })


@app.post("/api/projects")
async def create_project(
    name: str = Form(...),
    address: str = Form(""),
    notes: str = Form(""),
):
    if not name.strip():
        return JSONResponse({"error": "Project name is required"}, status_code=400)

    pdir = project_mgr.create_project(name.strip(), address.strip(), notes)
    try:
        from parkval.products.template import load_template_defaults
        template = load_template_defaults(pdir)
    except Exception as e:
        project_mgr.save_log(pdir, "template_defaults_error", str(e))
        template = {"loaded": False, "default_values": {}, "filled": []}

    return JSONResponse({"id": pdir.name, "name": name.strip(), "template_loaded": template["loaded"]})


@app.get("/api/projects/{project_id}")
async def get_project(project_id: str):
    if not _exists(project_id):
        return _not_found()
    return JSONResponse(_project_context(project_id))


@app.delete("/api/projects/{project_id}")
async def delete_project(project_id: str):
    if not project_mgr.delete_project(project_mgr.project_dir(project_id)):
        return _not_found()
    return JSONResponse({"deleted": project_id})


@app.patch("/api/projects/{project_id}/inputs")
async def update_inputs(project_id: str, request: Request):
    """Save user edits. Blank values clear the field."""
    if not _exists(project_id):
        return _not_found()
    body = await _json_object(request)
    if body is None:
        return JSONResponse({"error": "Expected a JSON object of field values"}, status_code=400)

    pdir = project_mgr.project_dir(project_id)
    inputs = project_mgr.load_state(pdir, "inputs")
    for key, value in body.items():
        if is_empty_value(value):
            inputs.pop(key, None)
        else:
            inputs[key] = value
    project_mgr.save_state(pdir, "inputs", inputs)
    return JSONResponse({"inputs": inputs, "updated": sorted(body)})


@app.post("/api/projects/{project_id}/template/load")
async def load_template(project_id: str):
    if not _exists(project_id):
        return _not_found()
    try:
        from parkval.products.template import load_template_defaults
        result = load_template_defaults(project_mgr.project_dir(project_id))
        return JSONResponse(result)
    except Exception as e:
        return JSONResponse({"error": str(e)}, status_code=500)


@app.get("/api/projects/{project_id}/discrepancies")
async def discrepancies(project_id: str):
    if not _exists(project_id):
        return _not_found()
    ctx = _project_context(project_id)
    return JSONResponse({"discrepancies": ctx["discrepancies"]})


# ═══════════════════════════════════════════════════════════════════════
# AUTOFILL / DOCUMENT API
# ═══════════════════════════════════════════════════════════════════════

@app.post("/api/projects/{project_id}/autofill")
async def run_autofill(project_id: str, request: Request):
    """Fetch provider data and merge it without clobbering user edits."""
    if not _exists(project_id):
        return _not_found()
    body = await _json_object(request)
    if body is None:
        return JSONResponse({"error": "Expected a JSON object"}, status_code=400)
    provider = str(body.get("provider") or "").lower()
    intent = "taxes" if body.get("intent") == "taxes" else "step1"
    overrides = body.get("inputs") if isinstance(body.get("inputs"), dict) else {}

    try:
        from parkval.products.autofill import autofill_project
        summary = await autofill_project(
            project_mgr.project_dir(project_id), provider, intent, overrides=overrides
        )
        return JSONResponse(summary)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception as e:
        return JSONResponse({"error": str(e) or "Property autofill failed"}, status_code=500)


@app.post("/api/projects/{project_id}/documents")
async def upload_document(project_id: str, file: UploadFile = File(...)):
    """Upload a valuation document (PDF, CSV, Excel) for extraction."""
    if not _exists(project_id):
        return _not_found()
    content = await file.read()
    filename = file.filename or "upload.pdf"

    try:
        from parkval.products.document import ingest_document
        result = ingest_document(
            project_mgr.project_dir(project_id), content, filename, file.content_type or ""
        )
        if result.get("parse_error"):
            return JSONResponse({"error": "Unable to parse extraction response"}, status_code=500)
        return JSONResponse(result)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except SystemExit as e:
        return JSONResponse({"error": str(e)}, status_code=500)
    except Exception as e:
        return JSONResponse({"error": str(e) or "Analysis failed"}, status_code=500)


@app.post("/api/projects/{project_id}/pnl/group")
async def group_pnl(project_id: str):
    """Group the project's P&L line items into the fixed income/expense categories."""
    if not _exists(project_id):
        return _not_found()
    try:
        from parkval.products.pnl import group_project_pnl
        grouped = group_project_pnl(project_mgr.project_dir(project_id))
        return JSONResponse(grouped)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except SystemExit as e:
        return JSONResponse({"error": str(e)}, status_code=500)
    except Exception as e:
        return JSONResponse({"error": str(e) or "P&L grouping failed"}, status_code=500)


@app.post("/api/merge/preview")
async def merge_preview(request: Request):
    """Dry-run the merge policy on caller-supplied tables. Nothing is saved."""
    body = await _json_object(request)
    if body is None:
        return JSONResponse({"error": "Expected a JSON object"}, status_code=400)
    tables = {}
    for key in ("inputs", "fetched", "default_values", "api_values"):
        value = body.get(key) or {}
        if not isinstance(value, dict):
            return JSONResponse({"error": f"{key} must be an object"}, status_code=400)
        tables[key] = value

    merged = apply_provider_values(
        tables["inputs"], tables["fetched"], tables["default_values"], tables["api_values"]
    )
    return JSONResponse(merged)


# ═══════════════════════════════════════════════════════════════════════
# REPORT API
# ═══════════════════════════════════════════════════════════════════════

@app.post("/api/projects/{project_id}/report")
async def export_report(project_id: str):
    if not _exists(project_id):
        return _not_found()
    try:
        from parkval.products.report import export_report as build_report
        result = build_report(project_mgr.project_dir(project_id))
        return JSONResponse({
            "file": result["xlsx"].name,
            "summary": result["markdown"].name,
            "written": result["written"],
            "discrepancies": result["discrepancies"],
            "exported_at": datetime.now().isoformat(),
        })
    except Exception as e:
        return JSONResponse({"error": str(e) or "Failed to export report"}, status_code=500)


@app.get("/api/projects/{project_id}/report/outputs")
async def report_outputs(project_id: str):
    """Cached calculated outputs of the latest exported report."""
    if not _exists(project_id):
        return _not_found()
    pdir = project_mgr.project_dir(project_id)
    last = project_mgr.load_project(pdir).get("last_report")
    if not last or not (pdir / "outputs" / last).exists():
        return JSONResponse({"error": "No report exported yet"}, status_code=404)

    from parkval.products.report import load_report_outputs
    outputs = load_report_outputs(pdir / "outputs" / last)
    return JSONResponse({"file": last, "outputs": jsonable_encoder(outputs)})


@app.get("/api/projects/{project_id}/outputs/{filename}")
async def download_output(project_id: str, filename: str):
    path = project_mgr.project_dir(project_id) / "outputs" / filename
    if path.exists() and path.parent.name == "outputs" and "/" not in filename:
        return FileResponse(path, filename=filename)
    return JSONResponse({"error": "not found"}, status_code=404)
