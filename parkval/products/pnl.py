"""P&L categorization — collect income/expense line items and group them with Gemini."""

from __future__ import annotations

import json
import math
import uuid
from pathlib import Path
from typing import Any

from parkval.mapping import EXPENSE_CATEGORIES, INCOME_CATEGORIES, PNL_LABELS
from parkval.models import gemini
from parkval.utils import project as project_mgr

MAX_GROUPING_ATTEMPTS = 3
TOTALS_TOLERANCE = 0.01


def parse_amount(value: Any) -> float | int | None:
    """'$12,400' → 12400. Returns None for blanks and anything non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    cleaned = str(value).replace("$", "").replace(",", "").strip()
    if not cleaned:
        return None
    try:
        parsed = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return int(parsed) if parsed.is_integer() else parsed


def pnl_label(key: str) -> str:
    """'expense_rm' → 'R&M'; unknown keys become title-cased words."""
    if key in PNL_LABELS:
        return PNL_LABELS[key]
    stripped = key.removeprefix("revenue_").removeprefix("expense_").replace("_", " ")
    return " ".join(word[:1].upper() + word[1:] for word in stripped.split())


def new_item(name: str, amount: float | int) -> dict[str, Any]:
    return {"id": uuid.uuid4().hex, "name": name, "amount": amount}


def split_document_values(
    extracted: dict[str, Any],
) -> tuple[dict[str, Any], list[dict[str, Any]], list[dict[str, Any]]]:
    """Separate ``revenue_*``/``expense_*`` keys into line items.

    Returns ``(other_values, income_items, expense_items)``. P&L keys whose
    value is not a number are dropped.
    """
    other: dict[str, Any] = {}
    income: list[dict[str, Any]] = []
    expenses: list[dict[str, Any]] = []
    for key, value in extracted.items():
        if key.startswith("revenue_") or key.startswith("expense_"):
            amount = parse_amount(value)
            if amount is None:
                continue
            target = income if key.startswith("revenue_") else expenses
            target.append(new_item(pnl_label(key), amount))
            continue
        other[key] = value
    return other, income, expenses


def _item_name(item: Any) -> str:
    if isinstance(item, dict) and isinstance(item.get("name"), str):
        return item["name"].strip().lower()
    return ""


def merge_line_items(existing: Any, new: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Append new items whose name is not already listed (case-insensitive)."""
    current = list(existing) if isinstance(existing, list) else []
    seen = {_item_name(item) for item in current} - {""}
    added = [item for item in new if _item_name(item) not in seen]
    return current + added


def sum_items(items: Any, field: str = "amount") -> float:
    if not isinstance(items, list):
        return 0
    return sum(parse_amount(item.get(field)) or 0 for item in items if isinstance(item, dict))


# ── Gemini grouping ─────────────────────────────────────────────────────

def _item_lines(items: list[dict[str, Any]]) -> str:
    return "\n".join(f"- {item.get('name')}: {item.get('amount')}" for item in items)


def build_grouping_prompt(
    income: list[dict[str, Any]],
    expenses: list[dict[str, Any]],
    corrections: str = "",
) -> str:
    income_keys = ", ".join(f'"{key}": 0' for key, _ in INCOME_CATEGORIES)
    expense_keys = ", ".join(f'"{key}": 0' for key, _ in EXPENSE_CATEGORIES)
    prompt = (
        "You are an expert RV park valuation analyst.\n"
        "Group the following income and expense line items into the exact categories listed.\n"
        "Return ONLY valid JSON (no markdown, no extra text).\n"
        "Use numbers for totals. Do not omit categories; use 0 if missing.\n\n"
        "Income categories:\n" + "\n".join(f"- {key}" for key, _ in INCOME_CATEGORIES) + "\n\n"
        "Expense categories:\n" + "\n".join(f"- {key}" for key, _ in EXPENSE_CATEGORIES) + "\n\n"
        f"Income items:\n{_item_lines(income)}\n\n"
        f"Expense items:\n{_item_lines(expenses)}\n\n"
        f'Return JSON like:\n{{"income": {{{income_keys}}}, "expenses": {{{expense_keys}}}}}\n'
    )
    if corrections:
        prompt += f"\nAdditional correction instructions:\n{corrections}\n"
    return prompt


def build_validation_prompt(
    income: list[dict[str, Any]],
    expenses: list[dict[str, Any]],
    grouped_income: dict[str, float],
    grouped_expenses: dict[str, float],
) -> str:
    return (
        "You are validating grouped P&L totals.\n"
        "Return ONLY valid JSON.\n\n"
        f"Original totals:\n- income: {sum_items(income)}\n- expenses: {sum_items(expenses)}\n\n"
        f"Grouped totals:\n- income: {sum(grouped_income.values())}\n"
        f"- expenses: {sum(grouped_expenses.values())}\n\n"
        f"Original income items:\n{_item_lines(income)}\n\n"
        f"Original expense items:\n{_item_lines(expenses)}\n\n"
        "Grouped income by category:\n"
        + "\n".join(f"- {k}: {v}" for k, v in grouped_income.items()) + "\n\n"
        "Grouped expenses by category:\n"
        + "\n".join(f"- {k}: {v}" for k, v in grouped_expenses.items()) + "\n\n"
        'If totals match within 0.01, respond:\n{"valid": true}\n\n'
        'If not, respond:\n{"valid": false, "reason": "...", "correction_instructions": "..."}\n'
    )


def _category_totals(section: Any, categories: list[tuple[str, str]]) -> dict[str, float]:
    section = section if isinstance(section, dict) else {}
    return {key: parse_amount(section.get(key)) or 0 for key, _ in categories}


def group_line_items(
    income: list[dict[str, Any]],
    expenses: list[dict[str, Any]],
) -> dict[str, list[dict[str, Any]]]:
    """Ask Gemini to group line items into the fixed categories.

    Each attempt is checked by a second validation prompt; a failed check
    feeds its correction instructions into the next attempt. Raises
    ValueError if the grouped totals still differ from the line-item totals.
    """
    original_income = sum_items(income)
    original_expenses = sum_items(expenses)
    grouped_income: dict[str, float] = {}
    grouped_expenses: dict[str, float] = {}
    corrections = ""

    for _ in range(MAX_GROUPING_ATTEMPTS):
        grouped = gemini.generate_json(build_grouping_prompt(income, expenses, corrections))
        grouped_income = _category_totals(grouped.get("income"), INCOME_CATEGORIES)
        grouped_expenses = _category_totals(grouped.get("expenses"), EXPENSE_CATEGORIES)

        validation = gemini.generate_json(
            build_validation_prompt(income, expenses, grouped_income, grouped_expenses)
        )
        if validation.get("valid") is True:
            break
        corrections = validation.get("correction_instructions") or (
            f"Totals mismatch. Ensure grouped income equals {original_income} "
            f"and grouped expenses equals {original_expenses}."
        )

    totals_match = (
        abs(sum(grouped_income.values()) - original_income) <= TOTALS_TOLERANCE
        and abs(sum(grouped_expenses.values()) - original_expenses) <= TOTALS_TOLERANCE
    )
    if not totals_match:
        raise ValueError("Grouped totals do not match originals")

    return {
        "pnl_grouped_income": [
            {"category": label, "total": grouped_income[key]} for key, label in INCOME_CATEGORIES
        ],
        "pnl_grouped_expenses": [
            {"category": label, "total": grouped_expenses[key]} for key, label in EXPENSE_CATEGORIES
        ],
    }


def group_project_pnl(pdir: Path) -> dict[str, Any]:
    """Group a project's stored line items and save the grouped totals with its inputs."""
    inputs = project_mgr.load_state(pdir, "inputs")
    income = [i for i in inputs.get("pnl_income_items") or [] if isinstance(i, dict)]
    expenses = [i for i in inputs.get("pnl_expense_items") or [] if isinstance(i, dict)]
    if not income and not expenses:
        raise ValueError("No P&L line items to group")

    grouped = group_line_items(income, expenses)
    project_mgr.save_state(pdir, "inputs", {**inputs, **grouped})
    project_mgr.save_log(pdir, "pnl_grouping", json.dumps(grouped, indent=2))
    return grouped
