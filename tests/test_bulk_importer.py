"""Tests for decoding uploaded workbooks."""

import pytest
from openpyxl import Workbook

from assetmap import bulk_importer
from assetmap.bulk_importer import list_sheets, parse_rows, parse_rows_from_sheet
from assetmap.header_model import GENERAL_INFO

from conftest import make_two_row_sheet, workbook_b64


@pytest.fixture
def upload():
    wb = Workbook()
    ws = wb.active
    ws.title = "Stations"
    ws.append(["Station ID", "Name"])
    ws.append(["S1", "Alpha"])
    ws.append(["S2", None])
    make_two_row_sheet(
        wb.create_sheet("Two Row"),
        [GENERAL_INFO, "Details"], ["Station ID", "Depth"],
        [["T1", 4]],
    )
    return workbook_b64(wb)


class TestBulkImporter:
    def test_list_sheets(self, upload):
        assert list_sheets(upload) == {"success": True, "sheets": ["Stations", "Two Row"]}

    def test_parse_rows_uses_first_sheet(self, upload):
        res = parse_rows(upload)
        assert res["sheet"] == "Stations"
        assert res["headers"] == ["Station ID", "Name"]
        assert res["rows"] == [
            {"Station ID": "S1", "Name": "Alpha"},
            {"Station ID": "S2", "Name": ""},
        ]

    def test_parse_rows_from_two_row_sheet(self, upload):
        res = parse_rows_from_sheet(upload, "two row")
        assert res["success"] is True
        assert res["two_row"] is True
        assert res["sections"] == [GENERAL_INFO, "Details"]
        assert res["fields"] == ["Station ID", "Depth"]
        assert res["rows"][0]["Details – Depth"] == "4"

    def test_missing_sheet(self, upload):
        res = parse_rows_from_sheet(upload, "Nope")
        assert res["success"] is False
        assert res["rows"] == []

    def test_data_url_prefix_is_accepted(self, upload):
        res = list_sheets("data:application/vnd.ms-excel;base64," + upload)
        assert res["sheets"][0] == "Stations"

    def test_invalid_base64(self):
        with pytest.raises(ValueError):
            list_sheets("abc")

    def test_workbook_without_sheets(self, monkeypatch):
        empty = Workbook()
        empty.remove(empty.active)
        monkeypatch.setattr(bulk_importer, "_load", lambda data: empty)
        assert parse_rows("ignored") == {"success": False, "message": "No sheets found.", "rows": []}
