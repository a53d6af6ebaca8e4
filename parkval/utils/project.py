"""Project folder management — every valuation gets its own directory tree."""

from __future__ import annotations

import json
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any

from parkval.config import PROJECTS_DIR

# state files kept alongside project.json
STATE_FILES = {
    "inputs": "inputs.json",
    "default_values": "default_values.json",
    "api_values": "api_values.json",
    "pdf_values": "pdf_values.json",
}


def _slugify(text: str) -> str:
    """Turn a park name into a safe folder name."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")[:80]


def project_dir(project_id: str) -> Path:
    return PROJECTS_DIR / project_id


def create_project(name: str, address: str = "", notes: str = "") -> Path:
    """Create a new project folder and return its path."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    slug = _slugify(name) or "project"
    pdir = PROJECTS_DIR / f"{timestamp}_{slug}"
    for sub in ("inputs", "outputs", "logs"):
        (pdir / sub).mkdir(parents=True, exist_ok=True)

    meta = {
        "name": name,
        "address": address,
        "notes": notes,
        "created_at": datetime.now().isoformat(),
        "status": "created",
    }
    (pdir / "project.json").write_text(json.dumps(meta, indent=2))

    initial = {"name": name}
    if address:
        initial["address"] = address
    save_state(pdir, "inputs", initial)
    return pdir


def load_project(pdir: Path) -> dict[str, Any]:
    """Load project metadata."""
    return json.loads((pdir / "project.json").read_text())


def save_project_meta(pdir: Path, meta: dict[str, Any]) -> None:
    (pdir / "project.json").write_text(json.dumps(meta, indent=2))


def load_state(pdir: Path, kind: str) -> dict[str, Any]:
    """Load one of the wizard state tables (inputs, default_values, api_values, pdf_values)."""
    path = pdir / STATE_FILES[kind]
    if not path.exists():
        return {}
    return json.loads(path.read_text())


def save_state(pdir: Path, kind: str, data: dict[str, Any]) -> Path:
    path = pdir / STATE_FILES[kind]
    path.write_text(json.dumps(data, indent=2, default=str))
    return path


def save_output(pdir: Path, filename: str, data: Any) -> Path:
    """Save an output artifact (JSON or text)."""
    out = pdir / "outputs" / filename
    out.parent.mkdir(parents=True, exist_ok=True)
    if filename.endswith(".json"):
        out.write_text(json.dumps(data, indent=2, default=str))
    else:
        out.write_text(str(data))
    return out


def save_log(pdir: Path, label: str, content: str) -> Path:
    """Write a log entry to the project's logs folder."""
    ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    log_file = pdir / "logs" / f"{ts}_{label}.txt"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.write_text(content)
    return log_file


def list_projects() -> list[Path]:
    """Return all project directories, newest first."""
    if not PROJECTS_DIR.exists():
        return []
    return sorted(
        [d for d in PROJECTS_DIR.iterdir() if d.is_dir() and (d / "project.json").exists()],
        reverse=True,
    )


def delete_project(pdir: Path) -> bool:
    if not (pdir / "project.json").exists():
        return False
    shutil.rmtree(pdir)
    return True
