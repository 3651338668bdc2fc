"""Tests for station workbooks: create, read, field-level update and bulk rows."""

import os

import pytest
from openpyxl import Workbook, load_workbook

from assetmap.exceptions import MissingSheetError
from assetmap.header_model import GENERAL_INFO, STANDARD_HEADER
from assetmap.station_store import iter_schema, safe_name, sheet_name_for


@pytest.fixture
def pump(stations):
    stations.create_station("Acme", "Halifax", "Pump", {
        "station_id": "S1",
        "name": "Alpha",
        "lat": 44.6,
        "lon": -63.5,
        "Details – Depth": 3,
    })
    return stations


class TestNames:
    def test_safe_name(self):
        assert safe_name("A/B:C") == "A_B_C"
        assert safe_name("  ") == "_"

    def test_sheet_name_is_capped(self):
        name = sheet_name_for("Very Long Asset Type Name", "Somewhere Far Away")
        assert len(name) == 31
        assert name.startswith("Very Long Asset Type Name Somew")

    def test_iter_schema_accepts_many_shapes(self):
        schema = [
            {"section": "Details", "field": "Depth"},
            "Inspection – Date",
            ("", "Asset Type"),
            {"section": "", "field": ""},
        ]
        assert [tuple(p) for p in iter_schema(schema)] == [
            ("Details", "Depth"),
            ("Inspection", "Date"),
            (GENERAL_INFO, "Category"),
        ]


class TestPaths:
    def test_company_scoped_by_default(self, stations, locations_dir):
        assert stations.location_path("Acme", "Halifax") == str(locations_dir / "Acme" / "Halifax.xlsx")

    def test_legacy_flat_file_is_used_when_present(self, stations, locations_dir):
        os.makedirs(locations_dir)
        Workbook().save(locations_dir / "Halifax.xlsx")
        assert stations.location_path("Acme", "Halifax") == str(locations_dir / "Halifax.xlsx")

    def test_ensure_workbook(self, stations):
        first = stations.ensure_workbook("Acme", "Halifax")
        again = stations.ensure_workbook("Acme", "Halifax")
        assert first["created"] is True
        assert again["created"] is False
        assert os.path.exists(first["path"])


class TestCreateAndRead:
    def test_create_station_writes_standard_header(self, pump):
        res = pump.read_location_workbook("Acme", "Halifax")
        assert res["sheets"] == ["Pump Halifax"]

        data = pump.read_sheet_data("Acme", "Halifax", "pump halifax")
        assert data["fields"] == STANDARD_HEADER + ["Depth"]
        assert data["sections"] == [GENERAL_INFO] * len(STANDARD_HEADER) + ["Details"]

    def test_read_station(self, pump):
        res = pump.read_station("Acme", "Halifax", "s1")
        assert res["success"] is True
        assert res["row_number"] == 3
        row = res["row"]
        assert row["Site Name"] == "Alpha"
        assert row["Category"] == "Pump"
        assert row["Latitude"] == "44.6"
        assert row["Details – Depth"] == "3"

    def test_second_station_joins_the_sheet(self, pump):
        res = pump.create_station("Acme", "Halifax", "Pump", {"Station ID": "S2"})
        assert res["success"] is True
        assert pump.read_station("Acme", "Halifax", "S2")["row_number"] == 4

    def test_duplicate_and_missing_ids_are_rejected(self, pump):
        assert pump.create_station("Acme", "Halifax", "Pump", {"station_id": "S1"})["success"] is False
        assert pump.create_station("Acme", "Halifax", "Pump", {"name": "x"})["success"] is False

    def test_missing_station(self, pump):
        assert pump.read_station("Acme", "Halifax", "nope")["success"] is False
        assert pump.read_station("Acme", "Nowhere", "S1")["success"] is False

    def test_missing_sheet_raises(self, pump):
        with pytest.raises(MissingSheetError) as exc:
            pump.read_sheet_data("Acme", "Halifax", "Valve Halifax")
        assert exc.value.sheet_name == "Valve Halifax"


class TestUpdateStation:
    def test_updates_in_place_and_appends_new_columns(self, pump):
        res = pump.update_station("Acme", "Halifax", "S1", {
            "name": "Beta",
            "Details – Depth": 7,
            "Notes": "checked",
            "location_file": "Halifax",
        })
        assert res["success"] is True
        assert res["updated"] == 3
        assert res["added_columns"] == ["Notes"]

        row = pump.read_station("Acme", "Halifax", "S1")["row"]
        assert row["Site Name"] == "Beta"
        assert row["Details – Depth"] == "7"
        assert row["Notes"] == "checked"

    def test_sectioned_key_creates_sectioned_column(self, pump):
        res = pump.update_station("Acme", "Halifax", "S1", {"Inspection – Date": "2024-05-01"})
        assert res["added_columns"] == ["Inspection – Date"]
        data = pump.read_sheet_data("Acme", "Halifax", "Pump Halifax")
        assert data["sections"][-1] == "Inspection"
        assert data["fields"][-1] == "Date"

    def test_schema_pre_creates_columns(self, pump):
        schema = [{"section": "Details", "field": "Depth"}, {"section": "Survey", "field": "Crew"}]
        res = pump.update_station("Acme", "Halifax", "S1", {}, schema)
        assert res["added_columns"] == ["Survey – Crew"]

    def test_other_rows_are_untouched(self, pump):
        pump.create_station("Acme", "Halifax", "Pump", {"station_id": "S2", "name": "Other"})
        pump.update_station("Acme", "Halifax", "S1", {"name": "Beta"})
        assert pump.read_station("Acme", "Halifax", "S2")["row"]["Site Name"] == "Other"

    def test_unknown_station(self, pump):
        assert pump.update_station("Acme", "Halifax", "nope", {"name": "x"})["success"] is False


class TestWriteLocationRows:
    def test_bulk_rows_merge_into_sheet(self, stations):
        res = stations.write_location_rows(
            "Acme", "Truro", "Imported",
            [GENERAL_INFO, GENERAL_INFO, "Details"],
            ["Station ID", "Site Name", "Depth"],
            [{"Station ID": "T1", "Site Name": "X", "Depth": 1},
             {"Station ID": "T2", "Site Name": "Y"}],
        )
        assert res["added"] == 2
        assert res["sheet"] == "Imported"
        wb = load_workbook(res["file"])
        assert wb.sheetnames == ["Imported"]
        assert stations.read_station("Acme", "Truro", "T1")["row"]["Details – Depth"] == "1"

    def test_validation(self, stations):
        with pytest.raises(ValueError):
            stations.write_location_rows("Acme", "", "S", ["A"], ["x"], [])
        with pytest.raises(ValueError):
            stations.write_location_rows("Acme", "Truro", "S", [], [], [])
        with pytest.raises(ValueError):
            stations.write_location_rows("Acme", "Truro", "S", ["A"], ["x", "y"], [])
