"""Gemini document client — extracts valuation inputs from uploaded files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from google import genai
from google.genai import types

from parkval.config import GEMINI_MODEL, require_gemini
from parkval.utils.merge import is_empty_value

MIME_TYPES = {
    ".csv": "text/csv",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".pdf": "application/pdf",
}
SUPPORTED_MIME_TYPES = frozenset(MIME_TYPES.values())


def detect_mime_type(filename: str, declared: str = "") -> str:
    """Use the declared content type when supported, else guess from the extension."""
    if declared in SUPPORTED_MIME_TYPES:
        return declared
    return MIME_TYPES.get(Path(filename).suffix.lower(), "")


def build_prompt(keys: list[str]) -> str:
    return (
        "You are an extraction service for RV and mobile home park valuation documents.\n"
        "Extract data only for the following keys and return a valid JSON object.\n"
        "If a value is missing or unknown, omit the key entirely.\n"
        "Return numbers when possible.\n\n"
        f"Keys:\n{', '.join(keys)}\n"
    )


def _parse_json(raw: str) -> dict[str, Any]:
    # Strip markdown code fences if present
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        return {"raw_response": raw, "parse_error": True}
    if not isinstance(parsed, dict):
        return {"raw_response": raw, "parse_error": True}
    return parsed


def filter_extracted(parsed: dict[str, Any], keys: list[str]) -> dict[str, Any]:
    """Keep only requested keys with non-empty values."""
    return {k: parsed[k] for k in keys if k in parsed and not is_empty_value(parsed[k])}


def extract_valuation_fields(data: bytes, mime_type: str, keys: list[str]) -> dict[str, Any]:
    """
    Send a valuation document to Gemini and pull out values for ``keys``.

    Returns ``{"data": {...}}`` on success, or the parse-error dict when the
    model did not answer with a JSON object.
    """
    client = genai.Client(api_key=require_gemini())

    parts = [
        types.Part.from_text(text=build_prompt(keys)),
        types.Part.from_bytes(data=data, mime_type=mime_type),
    ]
    response = client.models.generate_content(
        model=GEMINI_MODEL,
        contents=[types.Content(role="user", parts=parts)],
        config=types.GenerateContentConfig(
            temperature=0.1,
            response_mime_type="application/json",
        ),
    )
    parsed = _parse_json(response.text or "")
    if parsed.get("parse_error"):
        return parsed
    return {"data": filter_extracted(parsed, keys)}


def generate_json(prompt: str) -> dict[str, Any]:
    """Send a text-only prompt and parse the JSON object in the reply.

    Raises ValueError when the model answers with anything but a JSON object.
    """
    client = genai.Client(api_key=require_gemini())
    response = client.models.generate_content(
        model=GEMINI_MODEL,
        contents=prompt,
        config=types.GenerateContentConfig(
            temperature=0.1,
            response_mime_type="application/json",
        ),
    )
    parsed = _parse_json(response.text or "")
    if parsed.get("parse_error"):
        raise ValueError("Gemini returned no JSON object")
    return parsed
