"""County demographics (DataUSA, Census) and the 10-year Treasury rate (FRED)."""

from __future__ import annotations

import asyncio
import re
from typing import Any

import httpx

from parkval import config
from parkval.providers.utils import normalize_fips, to_number

DATAUSA_ENDPOINT = "https://api.datausa.io/tesseract/data.jsonrecords"
CENSUS_ACS_ENDPOINT = "https://api.census.gov/data/2022/acs/acs5"
CENSUS_CBP_ENDPOINT = "https://api.census.gov/data/{year}/cbp"
CENSUS_GEOCODER_ENDPOINT = "https://geocoding.geo.census.gov/geocoder/geographies/coordinates"
FRED_OBSERVATIONS_ENDPOINT = "https://api.stlouisfed.org/fred/series/observations"

DEMOGRAPHICS_SOURCE = "DataUSA Tesseract + Census CBP"
PROPERTY_CRIME_FACTOR = 1.63
CBP_YEARS = (2022, 2021)

_HEADERS = {"Accept": "application/json", "User-Agent": "parkval/0.1"}

STATE_FIPS = {
    "AL": "01", "AK": "02", "AZ": "04", "AR": "05", "CA": "06", "CO": "08", "CT": "09",
    "DE": "10", "DC": "11", "FL": "12", "GA": "13", "HI": "15", "ID": "16", "IL": "17",
    "IN": "18", "IA": "19", "KS": "20", "KY": "21", "LA": "22", "ME": "23", "MD": "24",
    "MA": "25", "MI": "26", "MN": "27", "MS": "28", "MO": "29", "MT": "30", "NE": "31",
    "NV": "32", "NH": "33", "NJ": "34", "NM": "35", "NY": "36", "NC": "37", "ND": "38",
    "OH": "39", "OK": "40", "OR": "41", "PA": "42", "RI": "44", "SC": "45", "SD": "46",
    "TN": "47", "TX": "48", "UT": "49", "VT": "50", "VA": "51", "WA": "53", "WV": "54",
    "WI": "55", "WY": "56",
}

# Form keys filled from the county figures, in addition to the figures' own keys.
FORM_ALIASES = (
    ("population_1mile", "population"),
    ("median_income", "median_household_income"),
)

SNAPSHOT_KEYS = (
    "population", "population_change", "median_household_income",
    "median_household_income_change", "poverty_rate", "number_of_employees",
    "number_of_employees_change", "median_property_value", "median_property_value_change",
    "violent_crime", "property_crime",
)


class MarketDataError(RuntimeError):
    """A market-rate source was unavailable or answered with something unusable."""


def percent_change(latest: float | None, previous: float | None) -> float | None:
    if latest is None or previous is None or previous == 0:
        return None
    return round((latest - previous) / previous * 100, 2)


async def _get_json(client: httpx.AsyncClient, url: str, params: dict[str, str]) -> Any:
    """GET and decode JSON; None on any transport error, bad status or bad body."""
    try:
        resp = await client.get(url, params=params, headers=_HEADERS, timeout=config.PROVIDER_TIMEOUT)
    except httpx.HTTPError:
        return None
    if resp.is_error:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


def _census_params(params: dict[str, str]) -> dict[str, str]:
    if config.CENSUS_API_KEY:
        return {**params, "key": config.CENSUS_API_KEY}
    return params


# ── FIPS lookup ──────────────────────────────────────────────────────────

def normalize_county_name(value: str) -> str:
    """'St. Johns County' → 'st johns'."""
    name = value.lower().strip()
    name = re.sub(r"\s+(county|parish|borough|census\s+area|municipality)$", "", name)
    return re.sub(r"[^a-z0-9]+", " ", name).strip()


async def fetch_county_fips(client: httpx.AsyncClient, state: str | None, county: str | None) -> str | None:
    """Five-digit county FIPS from a state abbreviation and county name."""
    if not state or not county:
        return None
    state_code = STATE_FIPS.get(state.strip().upper())
    if not state_code:
        return None

    payload = await _get_json(
        client,
        CENSUS_ACS_ENDPOINT,
        _census_params({"get": "NAME", "for": "county:*", "in": f"state:{state_code}"}),
    )
    rows = payload[1:] if isinstance(payload, list) else []
    target = normalize_county_name(county)
    for row in rows:
        if not isinstance(row, list) or len(row) < 3:
            continue
        # Census names read "Marion County, Florida"
        name = str(row[0] or "").split(",")[0]
        county_code = str(row[2] or "").zfill(3)
        if name and normalize_county_name(name) == target:
            return f"{state_code}{county_code}"
    return None


async def fetch_fips_by_coordinates(client: httpx.AsyncClient, lat: float, lng: float) -> str | None:
    payload = await _get_json(
        client,
        CENSUS_GEOCODER_ENDPOINT,
        {
            "x": str(lng),
            "y": str(lat),
            "benchmark": "Public_AR_Current",
            "vintage": "Current_Current",
            "format": "json",
        },
    )
    try:
        geoid = payload["result"]["geographies"]["Counties"][0]["GEOID"]
    except (KeyError, IndexError, TypeError):
        return None
    return normalize_fips(geoid)


async def resolve_fips(client: httpx.AsyncClient, context: dict[str, Any], identity: dict[str, Any]) -> str | None:
    """Known FIPS first, then coordinates, then state plus county name."""
    known = normalize_fips(identity.get("fips_code")) or normalize_fips(context.get("fips_code"))
    if known:
        return known
    lat, lng = context.get("lat"), context.get("lng")
    if lat is not None and lng is not None:
        fips = await fetch_fips_by_coordinates(client, lat, lng)
        if fips:
            return fips
    state = identity.get("state") or context.get("state")
    county = identity.get("county") or context.get("county")
    return await fetch_county_fips(client, state, county)


# ── county demographics ──────────────────────────────────────────────────

def _datausa_rows(payload: Any) -> list[dict[str, Any]]:
    data = payload.get("data") if isinstance(payload, dict) else None
    return [row for row in data if isinstance(row, dict)] if isinstance(data, list) else []


def _year(row: dict[str, Any]) -> int:
    year = to_number(row.get("Year"))
    return int(year) if year is not None else 0


async def fetch_series_pair(
    client: httpx.AsyncClient,
    cube: str,
    measure: str,
    county_code: str,
) -> tuple[float | None, float | None]:
    """Latest and previous yearly values of one DataUSA measure for a county."""
    payload = await _get_json(
        client,
        DATAUSA_ENDPOINT,
        {"cube": cube, "drilldowns": "County,Year", "measures": measure, "include": f"County:{county_code}"},
    )
    rows = sorted(_datausa_rows(payload), key=_year, reverse=True)
    latest = to_number(rows[0].get(measure)) if rows else None
    previous = to_number(rows[1].get(measure)) if len(rows) > 1 else None
    return latest, previous


async def fetch_violent_crime(client: httpx.AsyncClient, county_code: str) -> float | None:
    payload = await _get_json(
        client,
        DATAUSA_ENDPOINT,
        {
            "cube": "county_health_ranking",
            "drilldowns": "County,Year",
            "measures": "Violent Crime",
            "include": f"County:{county_code}",
            "time": "Year.latest",
        },
    )
    rows = _datausa_rows(payload)
    return to_number(rows[0].get("Violent Crime")) if rows else None


async def fetch_employees(client: httpx.AsyncClient, fips: str, year: int) -> float | None:
    """County employee count from Census County Business Patterns."""
    payload = await _get_json(
        client,
        CENSUS_CBP_ENDPOINT.format(year=year),
        _census_params({"get": "EMP,ESTAB", "for": f"county:{fips[2:]}", "in": f"state:{fips[:2]}"}),
    )
    if not isinstance(payload, list) or len(payload) < 2:
        return None
    headers, values = payload[0], payload[1]
    if not isinstance(headers, list) or not isinstance(values, list) or "EMP" not in headers:
        return None
    idx = headers.index("EMP")
    return to_number(values[idx]) if idx < len(values) else None


async def fetch_county_demographics(client: httpx.AsyncClient, fips: str) -> dict[str, Any]:
    """County demographic and economic figures. Figures not found are None."""
    county_code = f"05000US{fips}"
    (
        (population, population_prev),
        (income, income_prev),
        (property_value, property_value_prev),
        (poverty, _),
        violent_crime,
        employees,
        employees_prev,
    ) = await asyncio.gather(
        fetch_series_pair(client, "acs_yg_total_population_5", "Population", county_code),
        fetch_series_pair(client, "acs_ygr_median_household_income_race_5", "Household Income by Race", county_code),
        fetch_series_pair(client, "acs_yg_housing_median_value_5", "Property Value", county_code),
        fetch_series_pair(client, "acs_ygpsar_poverty_by_gender_age_race_5", "Poverty Population", county_code),
        fetch_violent_crime(client, county_code),
        fetch_employees(client, fips, CBP_YEARS[0]),
        fetch_employees(client, fips, CBP_YEARS[1]),
    )

    return {
        "population": population,
        "population_change": percent_change(population, population_prev),
        "median_household_income": income,
        "median_household_income_change": percent_change(income, income_prev),
        "poverty_rate": round(poverty / population * 100, 2) if poverty and population else None,
        "number_of_employees": employees,
        "number_of_employees_change": percent_change(employees, employees_prev),
        "median_property_value": property_value,
        "median_property_value_change": percent_change(property_value, property_value_prev),
        "violent_crime": violent_crime,
        "property_crime": round(violent_crime * PROPERTY_CRIME_FACTOR, 2) if violent_crime is not None else None,
    }


# ── market rates ─────────────────────────────────────────────────────────

async def fetch_treasury_10y(client: httpx.AsyncClient) -> tuple[float, str | None]:
    """Latest numeric DGS10 observation as ``(rate, date)``.

    Raises MarketDataError when the key is missing, the request fails, or no
    numeric observation is present.
    """
    api_key = config.FRED_API_KEY
    if not api_key:
        raise MarketDataError("FRED API key is missing.")

    try:
        resp = await client.get(
            FRED_OBSERVATIONS_ENDPOINT,
            params={
                "series_id": "DGS10",
                "api_key": api_key,
                "file_type": "json",
                "sort_order": "desc",
                "limit": "20",
            },
            timeout=config.PROVIDER_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise MarketDataError(f"FRED request failed: {e}") from e
    if resp.is_error:
        raise MarketDataError(f"FRED request failed (status {resp.status_code}).")

    try:
        payload = resp.json()
    except ValueError as e:
        raise MarketDataError("FRED response was not JSON.") from e
    observations = payload.get("observations") if isinstance(payload, dict) else None
    if not isinstance(observations, list):
        raise MarketDataError("FRED response malformed: observations array missing.")

    for entry in observations:
        # FRED marks missing days with "."
        rate = to_number(entry.get("value")) if isinstance(entry, dict) else None
        if rate is not None:
            date = entry.get("date")
            return rate, date if isinstance(date, str) else None
    raise MarketDataError("FRED response malformed: no numeric 10Y observations.")


# ── enrichment ───────────────────────────────────────────────────────────

async def _enrich(client: httpx.AsyncClient, response: dict[str, Any], context: dict[str, Any]) -> list[str]:
    notes = []
    identity = response.get("property_identity") or {}
    snapshot = dict(response.get("api_snapshot") or {})

    fips = await resolve_fips(client, context, identity)
    if fips:
        figures = await fetch_county_demographics(client, fips)
        found = {k: v for k, v in figures.items() if v is not None}
        if found:
            response["demographics_economics"] = {
                **(response.get("demographics_economics") or {}),
                **figures,
                "source": DEMOGRAPHICS_SOURCE,
            }
            for key in SNAPSHOT_KEYS:
                if key in found:
                    snapshot[key] = found[key]
            for form_key, source_key in FORM_ALIASES:
                if source_key in found:
                    snapshot[form_key] = found[source_key]
        else:
            notes.append(f"No county demographics for {fips}.")
        if not identity.get("fips_code"):
            snapshot.setdefault("fips_code", fips)

    try:
        rate, date = await fetch_treasury_10y(client)
    except MarketDataError as e:
        notes.append(str(e))
    else:
        response["financials"] = {
            **(response.get("financials") or {}),
            "us_10_year_treasury": rate,
            "us_10_year_treasury_date": date,
        }
        snapshot["us_10_year_treasury"] = rate

    response["api_snapshot"] = snapshot
    return notes


async def enrich_response(
    response: dict[str, Any],
    context: dict[str, Any],
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Add county demographics and the 10Y Treasury to a provider response.

    Market sources are best-effort: anything unavailable is noted in
    ``market_notes`` and the provider response is otherwise left as is.
    """
    if client is not None:
        notes = await _enrich(client, response, context)
    else:
        async with httpx.AsyncClient() as own_client:
            notes = await _enrich(own_client, response, context)
    response["market_notes"] = notes
    return response
