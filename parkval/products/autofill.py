"""Provider auto-fill — fetch property facts and merge them into the wizard inputs."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from parkval.providers.registry import PROVIDER_LABELS, PROVIDERS, autofill, parse_context
from parkval.utils import project as project_mgr
from parkval.utils.merge import apply_provider_values, is_empty_value

console = Console()

# form key → lookup context key, first non-empty wins
_CONTEXT_SOURCES = {
    "address": ("address", "mobile_home_park_address"),
    "apn": ("parcelNumber", "parcel_1", "apn"),
    "fips_code": ("fips_code",),
    "county": ("county",),
    "city": ("city",),
    "state": ("state",),
    "zip_code": ("zip_code", "zip"),
    "lat": ("lat",),
    "lng": ("lng",),
}


def build_context(inputs: dict[str, Any], intent: str = "step1") -> dict[str, Any]:
    """Lookup context from the project's current inputs."""
    body: dict[str, Any] = {"intent": intent}
    for ctx_key, form_keys in _CONTEXT_SOURCES.items():
        for form_key in form_keys:
            value = inputs.get(form_key)
            if value is None or value == "":
                continue
            body[ctx_key] = value if ctx_key in ("lat", "lng") else str(value)
            break
    return parse_context(body)


async def autofill_project(
    pdir: Path,
    provider: str,
    intent: str = "step1",
    client: httpx.AsyncClient | None = None,
    overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Run one fetch cycle for a project and persist the merged state.

    ``overrides`` are form values the user just typed (address, parcelNumber,
    ...); they are saved as user input before the provider values are merged.
    """
    inputs = project_mgr.load_state(pdir, "inputs")
    inputs.update({k: v for k, v in (overrides or {}).items() if not is_empty_value(v)})
    defaults = project_mgr.load_state(pdir, "default_values")
    previous = project_mgr.load_state(pdir, "api_values")

    context = build_context(inputs, intent)
    response = await autofill(provider, context, client=client)

    merged = apply_provider_values(inputs, response.get("api_snapshot") or {}, defaults, previous)
    project_mgr.save_state(pdir, "inputs", merged["inputs"])
    project_mgr.save_state(pdir, "api_values", merged["api_values"])
    project_mgr.save_output(pdir, f"autofill_{provider}_{intent}.json", response)

    summary = {
        "provider": provider,
        "intent": intent,
        "message": response.get("message", ""),
        "apn_found": response.get("apn_found", False),
        "applied": merged["applied"],
        "preserved": merged["preserved"],
        "skipped": merged["skipped"],
        "market_notes": response.get("market_notes", []),
        "fetched_at": datetime.now().isoformat(),
    }
    project_mgr.save_log(pdir, f"autofill_{provider}", json.dumps(summary, indent=2, default=str))
    return summary


def display_autofill(summary: dict[str, Any], api_values: dict[str, Any] | None = None) -> None:
    """Pretty-print what the fetch cycle changed."""
    color = "green" if summary.get("apn_found") else "yellow"
    console.print(Panel(
        f"[bold]{PROVIDER_LABELS.get(summary['provider'], summary['provider'])}[/bold]\n"
        f"{summary.get('message', '')}",
        title="🏠 Auto-fill",
        border_style=color,
    ))

    table = Table(title="Field Decisions")
    table.add_column("Field", style="cyan")
    table.add_column("Result")
    table.add_column("Provider Value", justify="right")

    snapshot = api_values or {}
    for key, value in summary.get("applied", {}).items():
        table.add_row(key, "[green]applied[/green]", str(value))
    for key in summary.get("preserved", []):
        table.add_row(key, "[yellow]kept user edit[/yellow]", str(snapshot.get(key, "")))

    if table.row_count:
        console.print(table)
    else:
        console.print("[dim]Nothing to merge.[/dim]")


# ── CLI workflow ─────────────────────────────────────────────────────────


def run_autofill(pdir: Path) -> dict[str, Any]:
    """Interactive auto-fill for one project."""
    meta = project_mgr.load_project(pdir)
    console.print(f"[green]✓ Using project:[/green] {meta.get('name', pdir.name)}")

    provider = Prompt.ask("Provider", choices=list(PROVIDERS), default=PROVIDERS[0])
    intent = Prompt.ask("Lookup", choices=["step1", "taxes"], default="step1")

    overrides: dict[str, Any] = {}
    inputs = project_mgr.load_state(pdir, "inputs")
    if not inputs.get("address"):
        address = Prompt.ask("Park address (blank to skip)", default="")
        if address:
            overrides["address"] = address
    if intent == "taxes" and not (inputs.get("parcelNumber") or inputs.get("parcel_1")):
        apn = Prompt.ask("APN / parcel number", default="")
        if apn:
            overrides["parcelNumber"] = apn

    console.print("[dim]Fetching property data...[/dim]")
    summary = asyncio.run(autofill_project(pdir, provider, intent, overrides=overrides))
    display_autofill(summary, project_mgr.load_state(pdir, "api_values"))
    return summary
