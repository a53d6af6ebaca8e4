"""Template defaults — load the workbook's placeholder values into a project."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from parkval.config import TEMPLATE_WORKBOOK
from parkval.utils import project as project_mgr
from parkval.utils.merge import seed_defaults
from parkval.utils.spreadsheet import read_template


def load_template_defaults(pdir: Path, template_path: Path | None = None) -> dict[str, Any]:
    """Store the template's default table and fill blank inputs from it.

    Values the template already carries win over bare defaults; neither
    overwrites anything the user has entered.
    """
    path = template_path or TEMPLATE_WORKBOOK
    if not path.exists():
        return {"loaded": False, "default_values": {}, "filled": []}

    table = read_template(path)
    defaults = table["default_values"]
    inputs = project_mgr.load_state(pdir, "inputs")

    seeded = seed_defaults(inputs, {**defaults, **table["inputs"]})
    filled = [k for k in seeded if k not in inputs or inputs[k] != seeded[k]]

    project_mgr.save_state(pdir, "default_values", defaults)
    project_mgr.save_state(pdir, "inputs", seeded)
    project_mgr.save_log(pdir, "template_defaults", f"{path.name}: {len(defaults)} defaults, filled {len(filled)} fields")
    return {"loaded": True, "default_values": defaults, "filled": filled}
