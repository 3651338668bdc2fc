"""Tests for the per-location repair logs."""

import os
from datetime import date

import pytest
from openpyxl import Workbook, load_workbook

from assetmap.repairs_manager import SHEET_NAME, RepairStore, station_id_of


@pytest.fixture
def repairs(tmp_path):
    return RepairStore(str(tmp_path / "repairs"))


def _sheet_rows(store, company, location):
    ws = load_workbook(store.path_for(company, location))[SHEET_NAME]
    return [list(r) for r in ws.iter_rows(values_only=True)]


class TestAppendRepair:
    def test_first_repair_creates_the_log(self, repairs):
        res = repairs.append_repair("NHS", "BC", {"Station ID": "BC001", "Repair Name": "Cable replace"})
        assert res["success"] is True
        assert res["row"] == 2
        rows = _sheet_rows(repairs, "NHS", "BC")
        assert rows[0] == ["Date", "Station ID", "Repair Name", "Type"]
        assert rows[1] == [date.today().isoformat(), "BC001", "Cable replace", "Repair"]

    def test_repairs_are_grouped_by_station(self, repairs):
        for sid, name in (("A", "a1"), ("A", "a2"), ("B", "b1")):
            repairs.append_repair("Acme", "Halifax", {"Station ID": sid, "Repair Name": name})

        res = repairs.append_repair("Acme", "Halifax", {"station_id": "a", "Repair Name": "a3"})
        assert res["row"] == 4
        repairs.append_repair("Acme", "Halifax", {"Station ID": "C", "Repair Name": "c1"})

        rows = _sheet_rows(repairs, "Acme", "Halifax")[1:]
        assert [r[1] for r in rows] == ["A", "A", "a", "B", "C"]
        assert [r[2] for r in rows] == ["a1", "a2", "a3", "b1", "c1"]

    def test_missing_station_id(self, repairs):
        res = repairs.append_repair("Acme", "Halifax", {"Repair Name": "x"})
        assert res["success"] is False
        assert "Station ID" in res["message"]
        assert not os.path.exists(repairs.path_for("Acme", "Halifax"))

    def test_asset_type_and_explicit_type(self, repairs):
        repairs.append_repair("Acme", "Halifax",
                              {"Station ID": "A", "type": "Inspection", "date": "2024-01-01"},
                              asset_type="Pump")
        rows = _sheet_rows(repairs, "Acme", "Halifax")
        assert rows[0] == ["Date", "Station ID", "Asset Type", "Type"]
        assert rows[1] == ["2024-01-01", "A", "Pump", "Inspection"]

    def test_header_is_recanonicalized(self, repairs):
        path = repairs.path_for("Acme", "Halifax")
        os.makedirs(os.path.dirname(path))
        wb = Workbook()
        ws = wb.active
        ws.title = "Log"
        ws.append(["station id", "date", "Cost", "type"])
        ws.append(["X", "2024-01-01", 5, "Inspection"])
        wb.save(path)

        repairs.append_repair("Acme", "Halifax", {"Station ID": "Y", "Cost": 7})
        rows = _sheet_rows(repairs, "Acme", "Halifax")
        assert rows[0] == ["Date", "Station ID", "Cost", "Type"]
        assert rows[1] == ["2024-01-01", "X", 5, "Inspection"]
        assert rows[2][1:] == ["Y", 7, "Repair"]


class TestStationRepairs:
    @pytest.fixture
    def seeded(self, repairs):
        for sid, name in (("A", "a1"), ("A", "a2"), ("B", "b1"), ("C", "c1")):
            repairs.append_repair("Acme", "Halifax", {"Station ID": sid, "Repair Name": name})
        return repairs

    def test_list_for_station(self, seeded):
        found = seeded.list_repairs_for_station("Acme", "Halifax", "a")
        assert [r["Repair Name"] for r in found] == ["a1", "a2"]
        assert seeded.list_repairs_for_station("Acme", "Nowhere", "A") == []

    def test_save_replaces_block_in_place(self, seeded):
        res = seeded.save_station_repairs("Acme", "Halifax", "A", [{"Repair Name": "only"}])
        assert res["count"] == 1
        rows = _sheet_rows(seeded, "Acme", "Halifax")[1:]
        assert [(r[1], r[2]) for r in rows] == [("A", "only"), ("B", "b1"), ("C", "c1")]

    def test_delete_by_index(self, seeded):
        assert seeded.delete_repair("Acme", "Halifax", "A", 1) == {"success": True}
        assert [r["Repair Name"] for r in seeded.list_repairs_for_station("Acme", "Halifax", "A")] == ["a1"]
        assert seeded.delete_repair("Acme", "Halifax", "A", 5)["success"] is False
        assert seeded.delete_repair("Acme", "Nowhere", "A", 0)["success"] is False

    def test_get_all_repairs_is_tagged(self, seeded):
        seeded.append_repair("Beta", "Truro", {"Station ID": "T", "Repair Name": "t1"})
        found = seeded.get_all_repairs()
        assert len(found) == 5
        truro = [r for r in found if r["Station ID"] == "T"]
        assert truro[0]["company"] == "Beta"
        assert truro[0]["location"] == "Truro"


def test_station_id_of_accepts_aliases():
    assert station_id_of({"stationId": " 7 "}) == "7"
    assert station_id_of({"Station ID": "", "ID": "9"}) == "9"
    assert station_id_of({}) == ""
