"""Valuation report export — write inputs into the template workbook and save a copy."""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from parkval.config import TEMPLATE_WORKBOOK
from parkval.mapping import INPUT_CELLS
from parkval.utils import project as project_mgr
from parkval.utils.merge import form_discrepancies, is_empty_value
from parkval.utils.spreadsheet import (
    coerce_cell_value,
    format_for_key,
    open_template,
    read_outputs,
    save_workbook,
    write_categorization,
    write_inputs,
    write_kv_pairs,
    write_section_header,
    write_table,
)


def sanitize_base_name(value: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9\-_ ]+", "", value or "").strip()
    return cleaned or "valuation-report"


def extract_city_from_address(address: str) -> str:
    """'12 Oak Rd, Ocala, FL 34470' → 'Ocala'."""
    parts = [p.strip() for p in (address or "").split(",") if p.strip()]
    if len(parts) >= 3:
        return parts[1]
    if len(parts) == 2:
        return parts[0]
    return ""


def report_inputs(meta: dict[str, Any], inputs: dict[str, Any]) -> dict[str, Any]:
    """Inputs as written to the sheet, with name/address/city backfilled from the project."""
    def _text(value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    name = _text(inputs.get("name")) or meta.get("name", "")
    address = _text(inputs.get("address")) or meta.get("address", "")
    city = _text(inputs.get("city")) or extract_city_from_address(address)
    return {**inputs, "name": name, "address": address, "city": city}


def export_report(pdir: Path, template_path: Path | None = None) -> dict[str, Any]:
    """Build the report workbook and markdown summary. Returns the artifact paths."""
    meta = project_mgr.load_project(pdir)
    inputs = report_inputs(meta, project_mgr.load_state(pdir, "inputs"))
    api_values = project_mgr.load_state(pdir, "api_values")
    pdf_values = project_mgr.load_state(pdir, "pdf_values")
    flags = form_discrepancies(inputs, pdf_values, api_values)

    wb = open_template(template_path or TEMPLATE_WORKBOOK)
    written = write_inputs(wb, inputs)
    line_items = write_categorization(wb, inputs)

    if "Summary" in wb.sheetnames:
        del wb["Summary"]
    ws = wb.create_sheet("Summary")
    ws.column_dimensions["A"].width = 32
    ws.column_dimensions["B"].width = 28
    row = write_section_header(ws, 1, f"VALUATION INPUTS — {inputs.get('name') or pdir.name}", 4)

    pairs = [(key, coerce_cell_value(inputs[key])) for key in INPUT_CELLS if not is_empty_value(inputs.get(key))]
    formats = {key: format_for_key(key, value) for key, value in pairs}
    row = write_kv_pairs(ws, pairs, start_row=row, highlight=set(flags), key_formats=formats)
    row += 1

    if flags:
        row = write_section_header(ws, row, "DISCREPANCIES", 4)
        rows = [
            [key, inputs.get(key, ""), f.get("pdf") or "", f.get("api") or ""]
            for key, f in flags.items()
        ]
        row = write_table(ws, ["Field", "Entered", "Document", "Provider"], rows,
                          start_row=row, col_widths=[32, 28, 20, 20])

    base = sanitize_base_name(inputs.get("name") or meta.get("name", ""))
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    xlsx_path = save_workbook(wb, pdir / "outputs" / f"{base}-{stamp}.xlsx")
    md_path = _generate_report_markdown(pdir, inputs, flags)

    meta["report_status"] = "exported"
    meta["last_report"] = xlsx_path.name
    meta["report_exported_at"] = datetime.now().isoformat()
    project_mgr.save_project_meta(pdir, meta)
    project_mgr.save_log(pdir, "report_export", f"{xlsx_path.name}: wrote {len(written)} cells, {line_items} P&L rows, {len(flags)} discrepancies")

    return {
        "xlsx": xlsx_path,
        "markdown": md_path,
        "written": written,
        "line_items": line_items,
        "discrepancies": flags,
    }


def load_report_outputs(xlsx_path: Path) -> dict[str, Any]:
    """Cached formula results of a report that was recalculated in a spreadsheet app."""
    wb = load_workbook(str(xlsx_path), data_only=True)
    try:
        return read_outputs(wb)
    finally:
        wb.close()


def _generate_report_markdown(pdir: Path, inputs: dict[str, Any], flags: dict[str, Any]) -> Path:
    lines = [
        f"# Valuation Inputs — {inputs.get('name') or 'Unknown'}",
        f"_Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}_",
        "",
        f"- **Address**: {inputs.get('address') or '—'}",
        f"- **City**: {inputs.get('city') or '—'}",
        f"- **Parcel**: {inputs.get('parcelNumber') or inputs.get('parcel_1') or '—'}",
        "",
    ]
    if flags:
        lines.append("## Discrepancies")
        for key, f in flags.items():
            sources = ", ".join(
                f"{label} says {f[src]}" for src, label in (("pdf", "document"), ("api", "provider")) if f.get(src)
            )
            lines.append(f"- `{key}` = {inputs.get(key, '')!s}: {sources}")
        lines.append("")

    md_path = pdir / "outputs" / "valuation_summary.md"
    md_path.write_text("\n".join(lines))
    return md_path
