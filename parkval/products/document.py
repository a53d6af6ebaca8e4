"""Valuation document upload — extract values, record them, fill only blanks and defaults."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from parkval.mapping import DOCUMENT_ALIASES, DOCUMENT_SKIP_KEYS, INPUT_CELLS
from parkval.models import gemini
from parkval.products.pnl import merge_line_items, split_document_values
from parkval.utils import project as project_mgr
from parkval.utils.merge import apply_document_values, is_empty_value


def expand_aliases(values: dict[str, Any]) -> dict[str, Any]:
    """Mirror values between keys that name the same fact (parcelNumber ↔ parcel_1, ...)."""
    expanded = dict(values)
    for source, target in DOCUMENT_ALIASES:
        if not is_empty_value(expanded.get(source)) and is_empty_value(expanded.get(target)):
            expanded[target] = expanded[source]
    return expanded


def merge_document_values(
    pdir: Path,
    extracted: dict[str, Any],
) -> dict[str, Any]:
    """Record extracted values as ``pdf_values`` and conservatively fill the inputs.

    ``revenue_*`` and ``expense_*`` values become P&L line items instead of
    form fields; an item is added only if no item of the same name exists.
    """
    inputs = project_mgr.load_state(pdir, "inputs")
    defaults = project_mgr.load_state(pdir, "default_values")
    pdf_values = project_mgr.load_state(pdir, "pdf_values")

    values, income_items, expense_items = split_document_values(extracted)
    reference = expand_aliases(values)
    fillable = {k: v for k, v in values.items() if k not in DOCUMENT_SKIP_KEYS}
    merged = apply_document_values(inputs, fillable, defaults)

    updated = merged["inputs"]
    added_items = {}
    for state_key, items in (("pnl_income_items", income_items), ("pnl_expense_items", expense_items)):
        existing = updated.get(state_key)
        existing = existing if isinstance(existing, list) else []
        combined = merge_line_items(existing, items)
        if len(combined) > len(existing):
            added_items[state_key] = combined[len(existing):]
            updated = {**updated, state_key: combined}

    project_mgr.save_state(pdir, "inputs", updated)
    project_mgr.save_state(pdir, "pdf_values", {**pdf_values, **reference})

    summary = {
        "extracted": extracted,
        "applied": merged["applied"],
        "preserved": merged["preserved"],
        "line_items": added_items,
    }
    project_mgr.save_log(pdir, "document_merge", json.dumps(summary, indent=2, default=str))
    return summary


def ingest_document(
    pdir: Path,
    data: bytes,
    filename: str,
    content_type: str = "",
) -> dict[str, Any]:
    """Run Gemini extraction on an uploaded file and merge the result.

    Raises ValueError for unsupported file types.
    """
    mime_type = gemini.detect_mime_type(filename, content_type)
    if not mime_type:
        raise ValueError("Unsupported file type")

    dest = pdir / "inputs" / Path(filename).name
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)

    result = gemini.extract_valuation_fields(data, mime_type, list(INPUT_CELLS))
    if result.get("parse_error"):
        project_mgr.save_log(pdir, "document_parse_error", str(result.get("raw_response", "")))
        return {"extracted": {}, "applied": {}, "preserved": [], "line_items": {}, "parse_error": True}

    return merge_document_values(pdir, result["data"])
