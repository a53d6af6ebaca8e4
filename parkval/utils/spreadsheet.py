"""Spreadsheet helpers using openpyxl — report styling plus template cell I/O."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.cell import coordinate_from_string

from parkval.mapping import (
    CATEGORIZATION_COLUMNS,
    CATEGORIZATION_FIRST_ROW,
    CATEGORIZATION_LAST_ROW,
    CURRENCY_KEYS,
    DEFAULT_COLUMN,
    INPUT_CELLS,
    LABEL_ROWS_END,
    LABEL_ROWS_START,
    NON_SHEET_KEYS,
    OUTPUT_CELLS,
    OUTPUT_LABEL_ROWS_END,
    RATE_KEYS,
    SHEET_NAMES,
)
from parkval.utils.merge import is_empty_value


# ── style constants ──────────────────────────────────────────────────────
HEADER_FONT = Font(bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
SUBHEADER_FILL = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")
WARNING_FILL = PatternFill(start_color="FCE4B6", end_color="FCE4B6", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
CURRENCY_FORMAT = '"$"#,##0'
NUMBER_FORMAT = "#,##0"
DECIMAL_FORMAT = "#,##0.0###"
RATE_FORMAT = "0.000"

_NUMERIC = re.compile(r"^-?\d+(\.\d+)?$")


def create_workbook() -> Workbook:
    """Create a new workbook with the template's input and output sheets."""
    wb = Workbook()
    wb.active.title = SHEET_NAMES["input"]
    wb.create_sheet(SHEET_NAMES["output"])
    return wb


def open_template(path: Path) -> Workbook:
    """Load the template workbook if present, otherwise start from a blank one."""
    if path.exists():
        return load_workbook(str(path))
    return create_workbook()


def write_table(
    ws,
    headers: list[str],
    rows: list[list[Any]],
    start_row: int = 1,
    start_col: int = 1,
    col_widths: list[int] | None = None,
    number_formats: dict[int, str] | None = None,
) -> int:
    """Write a formatted table to a worksheet. Returns the next available row."""
    for ci, header in enumerate(headers, start=start_col):
        cell = ws.cell(row=start_row, column=ci, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", wrap_text=True)
        cell.border = THIN_BORDER

    for ri, row_data in enumerate(rows, start=start_row + 1):
        for ci, val in enumerate(row_data, start=start_col):
            cell = ws.cell(row=ri, column=ci, value=val)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(wrap_text=True)
            if number_formats and (ci - start_col) in number_formats:
                cell.number_format = number_formats[ci - start_col]

    if col_widths:
        for ci, w in enumerate(col_widths, start=start_col):
            ws.column_dimensions[get_column_letter(ci)].width = w

    return start_row + 1 + len(rows)


def write_section_header(ws, row: int, text: str, col_span: int = 4) -> int:
    """Write a section header row spanning multiple columns."""
    cell = ws.cell(row=row, column=1, value=text)
    cell.font = Font(bold=True, size=12, color="2F5496")
    cell.fill = SUBHEADER_FILL
    for ci in range(2, col_span + 1):
        ws.cell(row=row, column=ci).fill = SUBHEADER_FILL
    return row + 1


def write_kv_pairs(
    ws,
    pairs: list[tuple[str, Any]],
    start_row: int = 1,
    key_col: int = 1,
    val_col: int = 2,
    val_format: str | None = None,
    highlight: set[str] | None = None,
    key_formats: dict[str, str] | None = None,
) -> int:
    """Write key-value pairs in two columns. Keys in ``highlight`` get a warning fill.

    ``key_formats`` overrides ``val_format`` per key; formats only apply to numbers.
    """
    for i, (key, val) in enumerate(pairs):
        r = start_row + i
        kc = ws.cell(row=r, column=key_col, value=key)
        kc.font = Font(bold=True)
        kc.border = THIN_BORDER
        vc = ws.cell(row=r, column=val_col, value=val)
        vc.border = THIN_BORDER
        fmt = (key_formats or {}).get(key, val_format)
        if fmt and isinstance(val, (int, float)) and not isinstance(val, bool):
            vc.number_format = fmt
        if highlight and key in highlight:
            kc.fill = WARNING_FILL
            vc.fill = WARNING_FILL
    return start_row + len(pairs)


def save_workbook(wb: Workbook, path: Path) -> Path:
    """Save workbook to path, creating parent dirs if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(path))
    return path


# ── template cell I/O ────────────────────────────────────────────────────

def format_for_key(key: str, value: Any = None) -> str:
    """Number format for an input key. Plain numbers keep their decimals."""
    if key in CURRENCY_KEYS:
        return CURRENCY_FORMAT
    if key in RATE_KEYS:
        return RATE_FORMAT
    if isinstance(value, float) and not value.is_integer():
        return DECIMAL_FORMAT
    return NUMBER_FORMAT


def normalize_label(label: str) -> str:
    """'Population (1 mile)' → 'population_1_mile'."""
    return re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")


def coerce_cell_value(value: Any) -> Any:
    """Numeric strings ('$1,250', '6.5') become numbers so sheet formulas see them."""
    if isinstance(value, str):
        cleaned = value.replace("$", "").replace(",", "").strip()
        if _NUMERIC.match(cleaned):
            return float(cleaned) if "." in cleaned else int(cleaned)
        return value.strip()
    return value


def _row_of(cell: str) -> int:
    return coordinate_from_string(cell)[1]


def _sheet(wb: Workbook, key: str):
    name = SHEET_NAMES[key]
    if name not in wb.sheetnames:
        return wb.create_sheet(name)
    return wb[name]


def read_template(path: Path) -> dict[str, dict[str, Any]]:
    """Read current inputs and default values from the template input sheet.

    Mapped cells win over the label block; within the label block the first
    occurrence of a label wins.
    """
    wb = load_workbook(str(path), data_only=True)
    ws = _sheet(wb, "input")
    inputs: dict[str, Any] = {}
    defaults: dict[str, Any] = {}

    for key, cell in INPUT_CELLS.items():
        value = ws[cell].value
        if not is_empty_value(value):
            inputs[key] = value
        default = ws[f"{DEFAULT_COLUMN}{_row_of(cell)}"].value
        if not is_empty_value(default):
            defaults[key] = default

    for row in ws.iter_rows(
        min_row=LABEL_ROWS_START, max_row=min(LABEL_ROWS_END, ws.max_row), min_col=2, max_col=4, values_only=True
    ):
        raw_label, current, default = row
        if raw_label is None or not str(raw_label).strip():
            continue
        key = normalize_label(str(raw_label))
        if not key:
            continue
        if not is_empty_value(current) and key not in inputs:
            inputs[key] = current
        if not is_empty_value(default) and key not in defaults:
            defaults[key] = default

    wb.close()
    return {"inputs": inputs, "default_values": defaults}


def write_inputs(wb: Workbook, inputs: dict[str, Any]) -> list[str]:
    """Write mapped inputs into their template cells. Returns the keys written."""
    ws = _sheet(wb, "input")
    written = []
    for key, value in inputs.items():
        if key in NON_SHEET_KEYS or key not in INPUT_CELLS:
            continue
        if is_empty_value(value) or isinstance(value, (dict, list)):
            continue
        ws[INPUT_CELLS[key]] = coerce_cell_value(value)
        written.append(key)
    return written


def read_outputs(wb: Workbook) -> dict[str, Any]:
    """Read calculated outputs from a workbook opened with ``data_only=True``.

    Only values cached by the last spreadsheet app that saved the file are
    available; formulas are not evaluated here.
    """
    ws = _sheet(wb, "output")
    outputs: dict[str, Any] = {}

    last_row = min(OUTPUT_LABEL_ROWS_END, ws.max_row)
    for row in ws.iter_rows(min_row=2, max_row=last_row, min_col=2, max_col=3, values_only=True):
        raw_label, value = row
        if raw_label is None or not str(raw_label).strip():
            continue
        key = normalize_label(str(raw_label))
        if not is_empty_value(value) or key not in outputs:
            outputs[key] = value

    for key, cell in OUTPUT_CELLS.items():
        value = ws[cell].value
        if not is_empty_value(value) and is_empty_value(outputs.get(key)):
            outputs[key] = value
    return outputs


# ── income & expenses categorization ─────────────────────────────────────
_CATEGORIZATION_BLOCKS = (
    ("income_items", "pnl_income_items", "name", "amount"),
    ("expense_items", "pnl_expense_items", "name", "amount"),
    ("grouped_income", "pnl_grouped_income", "category", "total"),
    ("grouped_expenses", "pnl_grouped_expenses", "category", "total"),
)


def write_categorization(wb: Workbook, inputs: dict[str, Any]) -> int:
    """Write P&L line items and grouped totals to the categorization sheet.

    Each block is cleared from the first data row down before writing, so a
    shorter list never leaves stale rows behind. Returns the rows written.
    """
    ws = _sheet(wb, "categorization")
    written = 0
    for block, state_key, label_field, amount_field in _CATEGORIZATION_BLOCKS:
        label_col, amount_col = CATEGORIZATION_COLUMNS[block]
        for r in range(CATEGORIZATION_FIRST_ROW, CATEGORIZATION_LAST_ROW + 1):
            ws[f"{label_col}{r}"] = None
            ws[f"{amount_col}{r}"] = None

        items = inputs.get(state_key) or []
        if not isinstance(items, list):
            continue
        r = CATEGORIZATION_FIRST_ROW
        for item in items:
            if r > CATEGORIZATION_LAST_ROW:
                break
            if not isinstance(item, dict) or is_empty_value(item.get(label_field)):
                continue
            ws[f"{label_col}{r}"] = str(item[label_field])
            amount = coerce_cell_value(item.get(amount_field))
            ws[f"{amount_col}{r}"] = amount
            if isinstance(amount, (int, float)) and not isinstance(amount, bool):
                ws[f"{amount_col}{r}"].number_format = CURRENCY_FORMAT
            r += 1
            written += 1
    return written


def read_categorization(wb: Workbook) -> dict[str, list[dict[str, Any]]]:
    """Read the categorization blocks back as lists keyed like the inputs state."""
    ws = _sheet(wb, "categorization")
    result: dict[str, list[dict[str, Any]]] = {}
    for block, state_key, label_field, amount_field in _CATEGORIZATION_BLOCKS:
        label_col, amount_col = CATEGORIZATION_COLUMNS[block]
        rows = []
        for r in range(CATEGORIZATION_FIRST_ROW, min(CATEGORIZATION_LAST_ROW, ws.max_row) + 1):
            label = ws[f"{label_col}{r}"].value
            if is_empty_value(label):
                continue
            rows.append({label_field: str(label).strip(), amount_field: ws[f"{amount_col}{r}"].value})
        result[state_key] = rows
    return result
