"""Auto-fill merge policy — decides when fetched values may overwrite form fields.

A field is only auto-overwritten when it is empty, still at its template
default, or still equal to the last value a provider wrote into it. Anything
else counts as a user edit and is left alone.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

_SEPARATORS = re.compile(r"[\s-]+")


# ── value helpers ────────────────────────────────────────────────────────

def is_empty_value(value: Any) -> bool:
    """None or a whitespace-only string. Numbers (even 0) are never empty."""
    return value is None or (isinstance(value, str) and value.strip() == "")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_comparable(value: Any) -> str:
    """Lossy canonical form used only for equality checks, never for storage."""
    return _SEPARATORS.sub("", _as_text(value).lower()).strip()


def is_default_value(
    field_key: str,
    current_value: Any,
    default_values: Mapping[str, Any] | None,
) -> bool:
    default = (default_values or {}).get(field_key)
    if is_empty_value(default):
        return False
    return normalize_comparable(current_value) == normalize_comparable(default)


# ── per-field decisions ──────────────────────────────────────────────────

def should_apply_value(
    field_key: str,
    next_value: Any,
    current_value: Any,
    default_values: Mapping[str, Any] | None = None,
    previous_provider_values: Mapping[str, Any] | None = None,
) -> bool:
    """Return True if a freshly fetched value may replace the current one.

    Rules, first match wins:
      1. nothing fetched          → keep
      2. field is blank           → fill
      3. field still at default   → fill
      4. field still holds the last provider value → refresh
      5. anything else is a user edit → keep
    """
    if is_empty_value(next_value):
        return False
    if is_empty_value(current_value):
        return True
    if is_default_value(field_key, current_value, default_values):
        return True

    previous = (previous_provider_values or {}).get(field_key)
    if not is_empty_value(previous) and normalize_comparable(current_value) == normalize_comparable(previous):
        return True

    return False


def sanitize_snapshot(raw_snapshot: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop empty entries. Returns a new dict; the input is left untouched."""
    return {k: v for k, v in (raw_snapshot or {}).items() if not is_empty_value(v)}


def has_discrepancy(current_value: Any, reference_value: Any) -> bool:
    """True when a non-empty reference value disagrees with what is entered."""
    if is_empty_value(reference_value):
        return False
    return normalize_comparable(reference_value) != normalize_comparable(current_value)


# ── batch helpers ────────────────────────────────────────────────────────

def apply_provider_values(
    current_state: Mapping[str, Any],
    fetched: Mapping[str, Any],
    default_values: Mapping[str, Any] | None = None,
    previous_provider_values: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Reconcile one fetch cycle against the form state.

    Fields are decided independently. The returned ``api_values`` is the
    snapshot to persist for the next cycle.
    """
    previous = dict(previous_provider_values or {})
    inputs = dict(current_state)
    applied: dict[str, Any] = {}
    preserved: list[str] = []
    skipped: list[str] = []

    for key, value in fetched.items():
        if is_empty_value(value):
            skipped.append(key)
            continue
        if should_apply_value(key, value, inputs.get(key), default_values, previous):
            inputs[key] = value
            applied[key] = value
        else:
            preserved.append(key)

    return {
        "inputs": inputs,
        "applied": applied,
        "preserved": preserved,
        "skipped": skipped,
        "api_values": {**sanitize_snapshot(previous), **sanitize_snapshot(fetched)},
    }


def apply_document_values(
    current_state: Mapping[str, Any],
    extracted: Mapping[str, Any],
    default_values: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Fill from an uploaded document, but only over blanks and untouched defaults."""
    inputs = dict(current_state)
    applied: dict[str, Any] = {}
    preserved: list[str] = []

    for key, value in extracted.items():
        if is_empty_value(value):
            continue
        current = inputs.get(key)
        if is_empty_value(current) or is_default_value(key, current, default_values):
            inputs[key] = value
            applied[key] = value
        else:
            preserved.append(key)

    return {"inputs": inputs, "applied": applied, "preserved": preserved}


def seed_defaults(current_state: Mapping[str, Any], default_values: Mapping[str, Any] | None) -> dict[str, Any]:
    """Populate blank fields from the defaults table."""
    inputs = dict(current_state)
    for key, value in (default_values or {}).items():
        if is_empty_value(inputs.get(key)) and not is_empty_value(value):
            inputs[key] = value
    return inputs


def _reference_text(value: Any) -> str:
    return _as_text(value).strip()


def field_discrepancies(
    field_key: str,
    current_value: Any,
    pdf_values: Mapping[str, Any] | None = None,
    api_values: Mapping[str, Any] | None = None,
) -> dict[str, str | None]:
    pdf = (pdf_values or {}).get(field_key)
    api = (api_values or {}).get(field_key)
    return {
        "pdf": _reference_text(pdf) if has_discrepancy(current_value, pdf) else None,
        "api": _reference_text(api) if has_discrepancy(current_value, api) else None,
    }


def form_discrepancies(
    inputs: Mapping[str, Any],
    pdf_values: Mapping[str, Any] | None = None,
    api_values: Mapping[str, Any] | None = None,
) -> dict[str, dict[str, str | None]]:
    """Discrepancy flags for every field that has a reference value."""
    keys = list(dict.fromkeys([*(pdf_values or {}), *(api_values or {})]))
    flagged = {}
    for key in keys:
        flags = field_discrepancies(key, inputs.get(key), pdf_values, api_values)
        if flags["pdf"] is not None or flags["api"] is not None:
            flagged[key] = flags
    return flagged
