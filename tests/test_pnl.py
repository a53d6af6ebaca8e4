"""
Tests for P&L line items and Gemini grouping. Gemini is monkeypatched; no network.
"""
import pytest

from parkval.models import gemini
from parkval.products.pnl import (
    group_line_items,
    group_project_pnl,
    merge_line_items,
    parse_amount,
    pnl_label,
    split_document_values,
    sum_items,
)
from parkval.utils import project as project_mgr

INCOME = [
    {"id": "1", "name": "Lot Rent", "amount": 42000},
    {"id": "2", "name": "Late Fees", "amount": "1,500"},
]
EXPENSES = [
    {"id": "3", "name": "Water & Sewer", "amount": 6000},
    {"id": "4", "name": "Insurance", "amount": 2500.5},
]
GROUPED = {
    "income": {"rental_income": 42000, "late_fees": 1500},
    "expenses": {"utilities": 6000, "insurance": "2500.50"},
}


@pytest.fixture
def fake_gemini(monkeypatch):
    """Replies to grouping and validation prompts in order; records the prompts."""
    prompts = []
    replies = []

    def fake_generate(prompt):
        prompts.append(prompt)
        return replies.pop(0)

    monkeypatch.setattr(gemini, "generate_json", fake_generate)
    return prompts, replies


class TestLineItems:

    @pytest.mark.parametrize("raw,expected", [
        ("$12,400", 12400),
        ("99.5", 99.5),
        (0, 0),
        (None, None),
        ("", None),
        ("n/a", None),
        (float("inf"), None),
        (True, None),
    ])
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected

    def test_labels(self):
        assert pnl_label("expense_rm") == "R&M"
        assert pnl_label("revenue_utility_reimb") == "Utility Reimbursements"
        assert pnl_label("expense_pest_control") == "Pest Control"

    def test_split_document_values(self):
        other, income, expenses = split_document_values(
            {"total_lots": 120, "revenue_rv_income": "8,000", "expense_ga": 700, "expense_bad": "?"}
        )
        assert other == {"total_lots": 120}
        assert [(i["name"], i["amount"]) for i in income] == [("RV Income", 8000)]
        assert [(i["name"], i["amount"]) for i in expenses] == [("G&A", 700)]
        assert income[0]["id"] != expenses[0]["id"]

    def test_merge_line_items_skips_known_names(self):
        existing = [{"id": "a", "name": "Storage", "amount": 1}]
        merged = merge_line_items(existing, [{"id": "b", "name": " STORAGE", "amount": 2},
                                             {"id": "c", "name": "RV Income", "amount": 3}])
        assert [i["id"] for i in merged] == ["a", "c"]

    def test_merge_line_items_non_list(self):
        assert merge_line_items(None, [{"id": "c", "name": "RV", "amount": 3}])[0]["id"] == "c"

    def test_sum_items(self):
        assert sum_items(INCOME) == 43500
        assert sum_items([{"category": "x", "total": "10"}, "junk"], "total") == 10
        assert sum_items(None) == 0


class TestGrouping:

    def test_valid_on_first_attempt(self, fake_gemini):
        prompts, replies = fake_gemini
        replies.extend([GROUPED, {"valid": True}])

        grouped = group_line_items(INCOME, EXPENSES)
        income = {g["category"]: g["total"] for g in grouped["pnl_grouped_income"]}
        expenses = {g["category"]: g["total"] for g in grouped["pnl_grouped_expenses"]}
        assert income["Rental Income"] == 42000
        assert income["Storage"] == 0
        assert len(income) == 6
        assert expenses["Insurance"] == 2500.5
        assert len(expenses) == 9
        assert len(prompts) == 2
        assert "- Lot Rent: 42000" in prompts[0]
        assert "Grouped totals" in prompts[1]

    def test_correction_instructions_feed_next_attempt(self, fake_gemini):
        prompts, replies = fake_gemini
        wrong = {"income": {"rental_income": 42000}, "expenses": GROUPED["expenses"]}
        replies.extend([
            wrong, {"valid": False, "correction_instructions": "Late fees are missing."},
            GROUPED, {"valid": True},
        ])

        group_line_items(INCOME, EXPENSES)
        assert len(prompts) == 4
        assert "Late fees are missing." in prompts[2]
        assert "correction instructions" not in prompts[0]

    def test_totals_must_match(self, fake_gemini):
        prompts, replies = fake_gemini
        wrong = {"income": {"rental_income": 40000}, "expenses": GROUPED["expenses"]}
        replies.extend([wrong, {"valid": False}] * 3)

        with pytest.raises(ValueError, match="do not match"):
            group_line_items(INCOME, EXPENSES)
        assert len(prompts) == 6
        assert "grouped income equals 43500" in prompts[2]

    def test_model_verdict_is_rechecked(self, fake_gemini):
        _, replies = fake_gemini
        wrong = {"income": {"rental_income": 1}, "expenses": {}}
        replies.extend([wrong, {"valid": True}])
        with pytest.raises(ValueError):
            group_line_items(INCOME, EXPENSES)


class TestGroupProject:

    def test_saves_grouped_totals(self, project, fake_gemini):
        _, replies = fake_gemini
        replies.extend([GROUPED, {"valid": True}])
        inputs = project_mgr.load_state(project, "inputs")
        inputs.update({"pnl_income_items": INCOME, "pnl_expense_items": EXPENSES})
        project_mgr.save_state(project, "inputs", inputs)

        group_project_pnl(project)
        saved = project_mgr.load_state(project, "inputs")
        assert saved["pnl_grouped_income"][0] == {"category": "Rental Income", "total": 42000}
        assert saved["pnl_income_items"] == INCOME
        assert any(p.name.endswith("_pnl_grouping.txt") for p in (project / "logs").iterdir())

    def test_requires_line_items(self, project, fake_gemini):
        with pytest.raises(ValueError, match="No P&L line items"):
            group_project_pnl(project)
        assert fake_gemini[0] == []
