"""
Shared fixtures for the asset store tests.

Every test gets its own data root under tmp_path; NHS_DATA_DIR points at it
so nothing ever touches the real data folder.
"""

import base64
import io

import pytest

from assetmap.excel_worker import ExcelBackend
from assetmap.station_store import StationStore


@pytest.fixture
def data_root(tmp_path, monkeypatch):
    root = tmp_path / "data"
    monkeypatch.setenv("NHS_DATA_DIR", str(root))
    return root


@pytest.fixture
def backend(data_root):
    """In-process Excel backend (no worker thread)."""
    return ExcelBackend(str(data_root), seed_path=None)


@pytest.fixture
def locations_dir(tmp_path):
    return tmp_path / "locations"


@pytest.fixture
def stations(locations_dir):
    return StationStore(str(locations_dir))


def make_two_row_sheet(ws, sections, fields, rows):
    """Fill `ws` with a two-row header and data from row 3."""
    ws.append(list(sections))
    ws.append(list(fields))
    for row in rows:
        ws.append(list(row))
    return ws


def workbook_b64(wb) -> str:
    buf = io.BytesIO()
    wb.save(buf)
    return base64.b64encode(buf.getvalue()).decode("ascii")
