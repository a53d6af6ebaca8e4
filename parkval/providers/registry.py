"""Property-data providers behind one autofill entry point."""

from __future__ import annotations

import math
from typing import Any

import httpx

from parkval.providers.market import enrich_response
from parkval.providers.rentcast import autofill_with_rentcast
from parkval.providers.utils import build_empty_response

PROVIDERS = ("rentcast",)

PROVIDER_LABELS = {
    "rentcast": "Rentcast API",
}

_CONTEXT_TEXT_KEYS = ("address", "apn", "county", "city", "state", "zip_code")


def _finite(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def _text(value: Any) -> str | None:
    return value.strip() if isinstance(value, str) else None


def parse_context(body: dict[str, Any]) -> dict[str, Any]:
    """Build a lookup context from a request body or project inputs."""
    context: dict[str, Any] = {"intent": "taxes" if body.get("intent") == "taxes" else "step1"}
    for key in _CONTEXT_TEXT_KEYS:
        context[key] = _text(body.get(key))
    context["fips_code"] = _text(body.get("fips_code")) or _text(body.get("fips"))
    context["lat"] = _finite(body.get("lat"))
    context["lng"] = _finite(body.get("lng"))
    return context


async def autofill(
    provider: str,
    context: dict[str, Any],
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Dispatch a lookup to ``provider``.

    Location lookups (intent ``step1``) are enriched with county demographics
    and the 10Y Treasury rate. Raises ValueError for an unknown provider or a
    context with nothing to look up by.
    """
    provider = (provider or "").lower()
    if provider not in PROVIDERS:
        raise ValueError(f"Invalid provider: {provider or '(none)'}")

    if context.get("intent") == "taxes" and not context.get("apn"):
        return build_empty_response(provider, "APN is required for taxes auto-fill.")

    has_coords = context.get("lat") is not None and context.get("lng") is not None
    if not context.get("apn") and not context.get("address") and not has_coords:
        raise ValueError("apn, address or lat/lng are required")

    response = await autofill_with_rentcast(context, client=client)
    if context.get("intent") == "taxes":
        return response
    return await enrich_response(response, context, client=client)

