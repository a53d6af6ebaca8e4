"""Global configuration — loads .env and exposes settings."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# ── paths ────────────────────────────────────────────────────────────────
ROOT_DIR = Path(__file__).resolve().parent.parent
TEMPLATES_DIR = ROOT_DIR / "templates"

# ── env ──────────────────────────────────────────────────────────────────
load_dotenv(ROOT_DIR / ".env")

PROJECTS_DIR = Path(os.getenv("PARKVAL_PROJECTS_DIR", str(ROOT_DIR / "projects")))
TEMPLATE_WORKBOOK = Path(
    os.getenv("PARKVAL_TEMPLATE_WORKBOOK", str(TEMPLATES_DIR / "valuation_template.xlsx"))
)

RENTCAST_API_KEY: str = os.getenv("RENTCAST_API_KEY", "")
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
FRED_API_KEY: str = os.getenv("FRED_APIKEY") or os.getenv("FRED_API_KEY", "")
CENSUS_API_KEY: str = os.getenv("CENSUS_API_KEY", "")

GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
PROVIDER_TIMEOUT: float = float(os.getenv("PROVIDER_TIMEOUT", "30"))

# ── validation helpers ───────────────────────────────────────────────────

def rentcast_configured() -> bool:
    return bool(RENTCAST_API_KEY)


def require_gemini() -> str:
    if not GEMINI_API_KEY or GEMINI_API_KEY.startswith("AIza..."):
        raise SystemExit(
            "❌  GEMINI_API_KEY is not set. "
            "Copy .env.example → .env and add your key."
        )
    return GEMINI_API_KEY
