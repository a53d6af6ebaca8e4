"""
Pytest fixtures for the valuation wizard tests.
"""
from pathlib import Path

import pytest
from openpyxl import Workbook

from parkval import config
from parkval.mapping import SHEET_NAMES
from parkval.utils import project as project_mgr


@pytest.fixture(autouse=True)
def no_market_keys(monkeypatch):
    """Keep market-rate lookups off unless a test opts in."""
    monkeypatch.setattr(config, "FRED_API_KEY", "")
    monkeypatch.setattr(config, "CENSUS_API_KEY", "")


@pytest.fixture
def projects_dir(tmp_path, monkeypatch):
    """Point the project store at a throwaway directory."""
    root = tmp_path / "projects"
    root.mkdir()
    monkeypatch.setattr(project_mgr, "PROJECTS_DIR", root)
    return root


@pytest.fixture
def project(projects_dir):
    """A fresh project for 'Sunny Acres MHP'."""
    return project_mgr.create_project("Sunny Acres MHP", "12 Oak Rd, Ocala, FL 34470")


@pytest.fixture
def rentcast_key(monkeypatch):
    monkeypatch.setattr(config, "RENTCAST_API_KEY", "test-key")
    return "test-key"


@pytest.fixture
def template_path(tmp_path) -> Path:
    """A small template workbook with mapped cells, defaults and a label block."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_NAMES["input"]

    ws["C2"] = "Template Park"
    ws["D2"] = "Template Park"
    ws["D3"] = "Ocala"
    ws["F6"] = 18.5

    ws["B20"] = "Owner Name"
    ws["D20"] = "Unknown Owner"
    ws["B21"] = "Zip Code"
    ws["C21"] = "34470"
    ws["B22"] = "Owner Name"
    ws["D22"] = "Second Owner"

    out = wb.create_sheet(SHEET_NAMES["output"])
    out["B2"] = "Valuation Price"
    out["C2"] = 2500000
    out["B3"] = "NOI (Annual)"
    out["C3"] = 187500
    out["H12"] = 0.075

    path = tmp_path / "valuation_template.xlsx"
    wb.save(str(path))
    return path
