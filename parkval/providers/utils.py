"""Normalization helpers shared by the property-data providers."""

from __future__ import annotations

import math
import re
from typing import Any

_NUMBER_NOISE = re.compile(r"[$,%\s]")
_APN_SEPARATORS = re.compile(r"[\s-]+")
_NON_DIGITS = re.compile(r"\D")


def to_number(value: Any) -> float | int | None:
    """'$1,250.50' → 1250.5. Returns None for blanks and anything unparsable."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    cleaned = _NUMBER_NOISE.sub("", str(value))
    if not cleaned:
        return None
    try:
        parsed = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return int(parsed) if parsed.is_integer() and "." not in cleaned else parsed


def to_integer(value: Any) -> int | None:
    parsed = to_number(value)
    return None if parsed is None else math.trunc(parsed)


def normalize_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_apn(value: Any) -> str | None:
    raw = normalize_text(value)
    if not raw:
        return None
    return _APN_SEPARATORS.sub("", raw) or None


def normalize_fips(value: Any) -> str | None:
    """Five-digit state+county FIPS. Short codes are zero-padded, long ones keep the last five digits."""
    raw = normalize_text(value)
    if not raw:
        return None
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        return None
    return digits.zfill(5)[-5:]


def combine_state_county_fips(state_fips: Any, county_fips: Any) -> str | None:
    st = _NON_DIGITS.sub("", normalize_text(state_fips) or "")
    county = _NON_DIGITS.sub("", normalize_text(county_fips) or "")
    if not st or not county:
        return None
    return f"{st.zfill(2)}{county.zfill(3)}"


def calculate_millage(tax_amount: float | None, assessed_value: float | None) -> float | None:
    if tax_amount is None or not assessed_value:
        return None
    return round(tax_amount / assessed_value * 1000, 3)


def parse_year_map_latest(year_map: Any) -> dict[str, Any] | None:
    """Pick the newest entry of a year-keyed mapping like ``{"2022": {...}, "2023": {...}}``.

    The year comes from the entry's own ``year`` field, falling back to the key.
    Returns ``{"year": int, "value": dict}`` or None.
    """
    if not isinstance(year_map, dict):
        return None
    entries = []
    for key, value in year_map.items():
        year = to_integer(value.get("year")) if isinstance(value, dict) else None
        if year is None:
            year = to_integer(key)
        if year is not None and year >= 0:
            entries.append({"year": year, "value": value})
    if not entries:
        return None
    return max(entries, key=lambda e: e["year"])


# ── response shapes ──────────────────────────────────────────────────────

def _empty_identity() -> dict[str, Any]:
    return dict.fromkeys([
        "address", "apn", "assessor_id", "fips_code", "owner", "county", "city",
        "state", "zipCode", "property_type", "year_built", "acreage", "lot_size_sqft",
    ])


def _empty_financials() -> dict[str, Any]:
    return dict.fromkeys([
        "source", "market_value", "assessed_value", "tax_amount", "tax_prev_year_amount",
        "tax_year", "millage_rate", "assessment_ratio", "last_sale_date", "last_sale_price",
        "us_10_year_treasury", "us_10_year_treasury_date",
    ])


def _empty_demographics() -> dict[str, Any]:
    return dict.fromkeys([
        "source", "population", "population_change", "median_household_income",
        "median_household_income_change", "poverty_rate", "number_of_employees",
        "number_of_employees_change", "median_property_value", "median_property_value_change",
        "violent_crime", "property_crime", "two_br_rent",
    ])


def _empty_housing() -> dict[str, Any]:
    return dict.fromkeys(["source", "eli_renter_households", "affordable_units_per_100", "total_units", "status"])


def build_empty_response(provider: str, message: str, **overrides: Any) -> dict[str, Any]:
    """The normalized autofill response with nothing found."""
    response = {
        "apn_found": False,
        "apn_lookup_source": None,
        "apn_value": None,
        "assessor_id": None,
        "property_identity": _empty_identity(),
        "financials": _empty_financials(),
        "demographics_economics": _empty_demographics(),
        "housing_crisis_metrics": _empty_housing(),
        "demographics_details": None,
        "api_snapshot": {},
        "source_provider": provider,
        "message": message,
    }
    response.update(overrides)
    return response


def apply_common_api_snapshot(
    owner_name: Any = None,
    apn: Any = None,
    fips: Any = None,
    acreage: Any = None,
    property_type: Any = None,
    year_built: Any = None,
    last_sale_price: Any = None,
    assessed_value: Any = None,
    tax_year: Any = None,
    tax_amount: Any = None,
    market_value: Any = None,
    assessment_ratio: Any = None,
    millage_rate: Any = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Map provider facts onto wizard form keys. Missing facts are left out."""
    snapshot: dict[str, Any] = dict(extra or {})

    owner = normalize_text(owner_name)
    parcel = normalize_apn(apn)
    fips_code = normalize_fips(fips)
    acres = to_number(acreage)
    ptype = normalize_text(property_type)
    built = to_integer(year_built)
    sale_price = to_number(last_sale_price)
    assessed = to_number(assessed_value)
    year = to_integer(tax_year)
    taxes = to_number(tax_amount)
    market = to_number(market_value)
    ratio = to_number(assessment_ratio)
    millage = to_number(millage_rate)

    if owner is not None:
        snapshot["owner_name"] = owner
    if parcel is not None:
        snapshot["parcel_1"] = parcel
        snapshot["parcelNumber"] = parcel
    if fips_code is not None:
        snapshot["fips_code"] = fips_code
    if acres is not None:
        snapshot["acreage"] = acres
        snapshot["parcel_1_acreage"] = acres
    if ptype is not None:
        snapshot["property_type"] = ptype
    if built is not None:
        snapshot["year_built"] = built
    if sale_price is not None:
        snapshot["last_sale_price"] = sale_price
    if assessed is not None:
        snapshot["tax_assessed_value"] = assessed
        snapshot["assessed_value"] = assessed
    if year is not None:
        snapshot["tax_year"] = year
    if taxes is not None:
        snapshot["tax_prev_year_amount"] = taxes
        snapshot["previous_year_re_taxes"] = taxes
    if market is not None:
        snapshot["fair_market_value"] = market
    if ratio is not None:
        snapshot["tax_assessment_rate"] = ratio
    if millage is not None:
        snapshot["tax_millage_rate"] = millage

    return snapshot
