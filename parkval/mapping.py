"""Cell map for the valuation template workbook."""

from __future__ import annotations

SHEET_NAMES = {
    "input": "Input Fields",
    "output": "Output Fields",
    "categorization": "Income & Expenses Categorization",
}

INPUT_CELLS: dict[str, str] = {
    # Step 1: general & demographics
    "name": "C2",
    "city": "C3",
    "address": "C4",
    "parcelNumber": "B5",
    "population_1mile": "B10",
    "median_income": "B11",
    # Step 2: rent roll
    "total_lots": "C5",
    "occupied_lots": "C6",
    "current_lot_rent": "C7",
    # Step 3: P&L revenue
    "revenue_rental_income": "D5",
    "revenue_rv_income": "D6",
    "revenue_storage": "D7",
    "revenue_late_fees": "D8",
    "revenue_utility_reimb": "D9",
    "revenue_other": "D10",
    # Step 3: P&L expenses
    "expense_payroll": "E5",
    "expense_utilities": "E6",
    "expense_rm": "E7",
    "expense_advertising": "E8",
    "expense_ga": "E9",
    "expense_insurance": "E10",
    "expense_re_taxes": "E11",
    "expense_mgmt_fee": "E12",
    "expense_reserves": "E13",
    # Step 4: taxes
    "tax_assessment_rate": "F5",
    "tax_millage_rate": "F6",
    "tax_prev_year_amount": "F7",
}

OUTPUT_CELLS: dict[str, str] = {
    "valuation_price": "H10",
    "noi_annual": "H11",
    "cap_rate_entry": "H12",
    "equity_needed": "H14",
    "max_loan_amount": "H15",
}

# Label rows on the input sheet: column B label, C current value, D default.
# Mapped cells keep their default in column D of the same row.
LABEL_ROWS_START = 20
LABEL_ROWS_END = 500
DEFAULT_COLUMN = "D"

# Output sheet label block: column B label, C value.
OUTPUT_LABEL_ROWS_END = 2000

# Wizard state that never goes to the workbook.
NON_SHEET_KEYS = frozenset({
    "pdf_values",
    "api_values",
    "default_values",
    "demographics_details",
    "outputs",
    "lat",
    "lng",
    "pnl_income_items",
    "pnl_expense_items",
    "pnl_grouped_income",
    "pnl_grouped_expenses",
})

# Document keys that mirror each other: (source, target) fills target when blank.
DOCUMENT_ALIASES: list[tuple[str, str]] = [
    ("parcelNumber", "parcel_1"),
    ("parcel_1", "parcelNumber"),
    ("acreage", "parcel_1_acreage"),
    ("address", "mobile_home_park_address"),
    ("mobile_home_park_address", "address"),
    ("name", "mobile_home_park_name"),
    ("zip", "zip_code"),
]

# Location and parcel facts come from geocoding and providers, not from documents.
DOCUMENT_SKIP_KEYS = frozenset({
    "city",
    "state",
    "county",
    "zip_code",
    "parcel_1",
    "parcelNumber",
    "parcel_1_acreage",
    "acreage",
    "property_type",
    "year_built",
    "last_sale_price",
    "lat",
    "lng",
})

# ── P&L ──────────────────────────────────────────────────────────────────

PNL_REVENUE_KEYS = [
    "revenue_rental_income",
    "revenue_rv_income",
    "revenue_storage",
    "revenue_late_fees",
    "revenue_utility_reimb",
    "revenue_other",
]

PNL_EXPENSE_KEYS = [
    "expense_payroll",
    "expense_utilities",
    "expense_rm",
    "expense_advertising",
    "expense_ga",
    "expense_insurance",
    "expense_re_taxes",
    "expense_mgmt_fee",
    "expense_reserves",
]

PNL_LABELS = {
    "revenue_rental_income": "Rental Income",
    "revenue_rv_income": "RV Income",
    "revenue_storage": "Storage",
    "revenue_late_fees": "Late Fees",
    "revenue_utility_reimb": "Utility Reimbursements",
    "revenue_other": "Other Income",
    "expense_payroll": "Payroll",
    "expense_utilities": "Utilities",
    "expense_rm": "R&M",
    "expense_advertising": "Advertising",
    "expense_ga": "G&A",
    "expense_insurance": "Insurance",
    "expense_re_taxes": "RE Taxes",
    "expense_mgmt_fee": "Mgmt. Fee",
    "expense_reserves": "Reserves",
}

# Grouping categories: (key the model answers with, label written to the sheet).
INCOME_CATEGORIES: list[tuple[str, str]] = [
    ("rental_income", "Rental Income"),
    ("rv_income", "RV Income"),
    ("storage", "Storage"),
    ("late_fees", "Late Fees"),
    ("utility_reimbursements", "Utility Reimbursements"),
    ("other_income", "Other Income"),
]

EXPENSE_CATEGORIES: list[tuple[str, str]] = [
    ("payroll", "Payroll"),
    ("utilities", "Utilities"),
    ("rm", "R&M"),
    ("advertising", "Advertising"),
    ("ga", "G&A"),
    ("insurance", "Insurance"),
    ("re_taxes", "RE Taxes"),
    ("mgmt_fee", "Mgmt. Fee"),
    ("reserves", "Reserves"),
]

# Categorization sheet blocks, label + amount column pairs starting at row 4.
CATEGORIZATION_FIRST_ROW = 4
CATEGORIZATION_LAST_ROW = 1000
CATEGORIZATION_COLUMNS = {
    "income_items": ("B", "C"),
    "expense_items": ("E", "F"),
    "grouped_income": ("H", "I"),
    "grouped_expenses": ("K", "L"),
}

# ── report number formats ────────────────────────────────────────────────

CURRENCY_KEYS = frozenset({
    *PNL_REVENUE_KEYS,
    *PNL_EXPENSE_KEYS,
    "current_lot_rent",
    "tax_prev_year_amount",
    "median_income",
})

RATE_KEYS = frozenset({
    "tax_assessment_rate",
    "tax_millage_rate",
})
