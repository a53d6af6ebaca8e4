"""Rentcast property client — parcel identity and tax facts by APN, address or coordinates."""

from __future__ import annotations

from typing import Any

import httpx

from parkval import config
from parkval.providers.utils import (
    apply_common_api_snapshot,
    build_empty_response,
    calculate_millage,
    combine_state_county_fips,
    normalize_apn,
    normalize_fips,
    normalize_text,
    parse_year_map_latest,
    to_integer,
    to_number,
)

RENTCAST_ENDPOINT = "https://api.rentcast.io/v1/properties"
SQFT_PER_ACRE = 43560

_SOURCE_LABELS = {"apn": "APN lookup", "address": "address", "lat_lng": "coordinates"}


class ProviderError(RuntimeError):
    """A provider answered with a non-success status."""


async def _fetch(client: httpx.AsyncClient, api_key: str, params: dict[str, str]) -> list[dict[str, Any]]:
    resp = await client.get(
        RENTCAST_ENDPOINT,
        params=params,
        headers={"Accept": "application/json", "X-Api-Key": api_key},
        timeout=config.PROVIDER_TIMEOUT,
    )
    if resp.status_code == 404:
        return []
    if resp.is_error:
        raise ProviderError(f"Rentcast request failed with status {resp.status_code}")
    payload = resp.json()
    return [p for p in payload if p] if isinstance(payload, list) else []


# ── match picking ────────────────────────────────────────────────────────

def _property_fips(prop: dict[str, Any]) -> str | None:
    return normalize_fips(combine_state_county_fips(prop.get("stateFips"), prop.get("countyFips")))


def matches_constraints(prop: dict[str, Any], target_apn: str | None, target_fips: str | None) -> bool:
    apn_ok = normalize_apn(prop.get("assessorID")) == target_apn if target_apn else True
    fips_ok = _property_fips(prop) == target_fips if target_fips else True
    return apn_ok and fips_ok


def pick_match(
    candidates: list[tuple[dict[str, Any], str]],
    target_apn: str | None,
    target_fips: str | None,
    strict: bool = False,
) -> tuple[dict[str, Any], str] | None:
    """Best candidate for the APN/FIPS constraints.

    Full matches win. Outside strict mode an APN-only match beats a FIPS-only
    match, and failing both the first candidate is used.
    """
    if not candidates:
        return None
    for cand in candidates:
        if matches_constraints(cand[0], target_apn, target_fips):
            return cand
    if strict:
        return None

    if target_apn:
        for cand in candidates:
            if normalize_apn(cand[0].get("assessorID")) == target_apn:
                return cand
    if target_fips:
        for cand in candidates:
            if _property_fips(cand[0]) == target_fips:
                return cand
    return candidates[0]


# ── normalization ────────────────────────────────────────────────────────

def normalize_property(
    prop: dict[str, Any],
    context: dict[str, Any],
    lookup_source: str,
    constraint_mismatch: bool = False,
) -> dict[str, Any]:
    """Turn one Rentcast property record into the normalized autofill response."""
    apn = normalize_apn(prop.get("assessorID"))
    fips_code = _property_fips(prop) or normalize_fips(context.get("fips_code"))

    latest_assessment = parse_year_map_latest(prop.get("taxAssessments")) or {}
    latest_taxes = parse_year_map_latest(prop.get("propertyTaxes")) or {}
    assessment = latest_assessment.get("value") or {}
    taxes = latest_taxes.get("value") or {}

    assessed_value = to_number(assessment.get("value"))
    tax_amount = to_number(taxes.get("total"))
    tax_year = to_integer(taxes.get("year") if taxes.get("year") is not None else assessment.get("year"))
    market_value = assessed_value
    has_tax_fields = any(v is not None for v in (assessed_value, tax_amount, tax_year, market_value))

    millage_rate = calculate_millage(tax_amount, assessed_value)
    lot_size = to_number(prop.get("lotSize"))
    acreage = round(lot_size / SQFT_PER_ACRE, 4) if lot_size else None

    owner = prop.get("owner") or {}
    if isinstance(owner.get("names"), list):
        owner_name = " & ".join(str(n) for n in owner["names"] if n) or None
    else:
        owner_name = normalize_text(owner.get("name"))

    snapshot = apply_common_api_snapshot(
        owner_name=owner_name,
        apn=apn,
        fips=fips_code,
        acreage=acreage,
        property_type=prop.get("propertyType"),
        year_built=prop.get("yearBuilt"),
        last_sale_price=prop.get("lastSalePrice"),
        assessed_value=assessed_value,
        tax_year=tax_year,
        tax_amount=tax_amount,
        market_value=market_value,
        millage_rate=millage_rate,
    )

    if context.get("intent") == "taxes":
        message = (
            "Rentcast: tax financial fields loaded for APN/FIPS match."
            if has_tax_fields
            else "Rentcast: property matched by APN/FIPS, but tax financial fields were not returned."
        )
    elif apn:
        via = _SOURCE_LABELS.get(lookup_source, lookup_source)
        message = (
            f"Rentcast: property found via {via}, but APN/FIPS did not fully match provided constraints."
            if constraint_mismatch
            else f"Rentcast: APN found via {via}."
        )
    else:
        message = "Rentcast: no APN found."

    return build_empty_response(
        "rentcast",
        message,
        apn_found=bool(apn),
        apn_lookup_source=lookup_source,
        apn_value=apn,
        assessor_id=apn,
        property_identity={
            "address": normalize_text(prop.get("formattedAddress") or context.get("address")),
            "apn": apn,
            "assessor_id": apn,
            "fips_code": fips_code,
            "owner": owner_name,
            "county": normalize_text(prop.get("county") or context.get("county")),
            "city": normalize_text(prop.get("city") or context.get("city")),
            "state": normalize_text(prop.get("state") or context.get("state")),
            "zipCode": normalize_text(prop.get("zipCode") or context.get("zip_code")),
            "property_type": normalize_text(prop.get("propertyType")),
            "year_built": to_integer(prop.get("yearBuilt")),
            "acreage": acreage,
            "lot_size_sqft": lot_size,
        },
        financials={
            "source": "Rentcast",
            "market_value": market_value,
            "assessed_value": assessed_value,
            "tax_amount": tax_amount,
            "tax_prev_year_amount": tax_amount,
            "tax_year": tax_year,
            "millage_rate": millage_rate,
            "assessment_ratio": None,
            "last_sale_date": normalize_text(prop.get("lastSaleDate")),
            "last_sale_price": to_number(prop.get("lastSalePrice")),
            "us_10_year_treasury": None,
            "us_10_year_treasury_date": None,
        },
        api_snapshot=snapshot,
    )


# ── lookup workflow ──────────────────────────────────────────────────────

async def _taxes_lookup(
    client: httpx.AsyncClient, api_key: str, context: dict[str, Any],
    target_apn: str | None, target_fips: str | None,
) -> dict[str, Any]:
    if not context.get("address"):
        return build_empty_response("rentcast", "Rentcast taxes lookup requires a property address.")
    try:
        found = await _fetch(client, api_key, {"address": context["address"]})
    except (ProviderError, httpx.HTTPError):
        return build_empty_response("rentcast", "Rentcast: unable to query taxes data by address.")

    match = pick_match([(p, "address") for p in found], target_apn, target_fips, strict=True)
    if match:
        normalized = normalize_property(match[0], context, match[1])
        if normalized["apn_found"]:
            return normalized
    return build_empty_response("rentcast", "Rentcast: tax financial fields unavailable for APN/FIPS match.")


async def _safe_fetch(client: httpx.AsyncClient, api_key: str, params: dict[str, str]) -> list[dict[str, Any]]:
    # one failed strategy should not stop the others
    try:
        return await _fetch(client, api_key, params)
    except (ProviderError, httpx.HTTPError):
        return []


async def _lookup(client: httpx.AsyncClient, api_key: str, context: dict[str, Any]) -> dict[str, Any]:
    target_apn = normalize_apn(context.get("apn"))
    target_fips = normalize_fips(context.get("fips_code"))

    if context.get("intent") == "taxes":
        return await _taxes_lookup(client, api_key, context, target_apn, target_fips)

    strategies: list[tuple[str, dict[str, str] | None]] = [
        ("apn", {"assessorID": target_apn} if target_apn else None),
        ("address", {"address": context["address"]} if context.get("address") else None),
        (
            "lat_lng",
            {"latitude": str(context["lat"]), "longitude": str(context["lng"]), "radius": "0.1"}
            if context.get("lat") is not None and context.get("lng") is not None
            else None,
        ),
    ]

    results: dict[str, list[dict[str, Any]]] = {}
    for source, params in strategies:
        results[source] = await _safe_fetch(client, api_key, params) if params else []

    for source in ("apn", "address", "lat_lng"):
        match = pick_match([(p, source) for p in results[source]], target_apn, target_fips)
        if not match:
            continue
        prop, found_via = match
        normalized = normalize_property(
            prop, context, found_via, not matches_constraints(prop, target_apn, target_fips)
        )
        if normalized["apn_found"]:
            return normalized
        if source == "lat_lng":
            normalized["message"] = "Rentcast: property found with coordinates, but APN was not returned."
            return normalized

    return build_empty_response("rentcast", "No APN/Assessor ID found via address or coordinates for rentcast.")


async def autofill_with_rentcast(
    context: dict[str, Any],
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Look the property up on Rentcast and return the normalized autofill response."""
    api_key = config.RENTCAST_API_KEY
    if not api_key:
        return build_empty_response("rentcast", "Rentcast API key is missing.")

    if client is not None:
        return await _lookup(client, api_key, context)
    async with httpx.AsyncClient() as own_client:
        return await _lookup(own_client, api_key, context)
