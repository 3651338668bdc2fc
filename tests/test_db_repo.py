"""Tests for the SQLAlchemy document mirror and its repositories."""

import pytest

from assetmap.db_repo import (
    DbAuthRepo,
    DbLookupRepo,
    DbRepairRepo,
    DbStationRepo,
    DocumentStore,
)


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(f"sqlite:///{tmp_path / 'mirror.db'}").connect()
    yield s
    s.dispose()


class TestDocumentStore:
    def test_put_get_remove(self, store):
        assert store.put("things", "a", {"x": 1}) is True
        assert store.put("things", "a", {"y": 2}, merge=True) is False
        assert store.get("things", "a") == {"x": 1, "y": 2}
        assert store.put("things", "a", {"z": 3}) is False
        assert store.get("things", "a") == {"z": 3}
        assert store.remove("things", "a") is True
        assert store.get("things", "a") is None
        assert store.remove("things", "a") is False

    def test_collections_are_separate(self, store):
        store.put("one", "k", {"v": 1})
        store.put("two", "k", {"v": 2})
        assert store.all("one") == [{"v": 1}]
        assert store.all("two") == [{"v": 2}]

    def test_from_config(self, tmp_path):
        s = DocumentStore.from_config({
            "url": f"sqlite:///{tmp_path / 'cfg.db'}",
            "minPoolSize": 1,
            "maxPoolSize": 3,
            "serverSelectionTimeoutMS": 1000,
        })
        s.connect()
        assert s.all("anything") == []
        s.dispose()

    def test_unreachable_database_raises_on_connect(self, tmp_path):
        target = tmp_path / "missing-dir" / "sub"
        target.mkdir(parents=True)
        # a directory is not a database file
        s = DocumentStore(f"sqlite:///{target}")
        with pytest.raises(Exception):
            s.connect()


class TestDbStationRepo:
    def test_create_update_lookup(self, store):
        repo = DbStationRepo(store)
        assert repo.create({"station_id": "S1", "asset_type": "Pump", "name": "A"})["added"] is True
        assert repo.create({"name": "no id"})["success"] is False

        repo.update("s1", {"name": "B", "schema": [{"section": "x", "field": "y"}]})
        found = repo.get_by_id("S1")
        assert found["name"] == "B"
        assert found["asset_type"] == "Pump"
        assert "schema" not in found
        assert repo.find_one({"asset_type": "pump"})["station_id"] == "s1"

    def test_update_schema(self, store):
        repo = DbStationRepo(store)
        repo.create({"station_id": "S1", "asset_type": "Pump", "Old – X": "1"})
        repo.create({"station_id": "S2", "asset_type": "Pump", "Old – X": "2",
                     "General Information – Status": "Active"})
        repo.create({"station_id": "V1", "asset_type": "Valve", "Old – X": "3"})

        res = repo.update_schema("Pump", [{"section": "Details", "field": "Depth"}], "S1")
        assert res["updated"] == 1
        s2 = repo.get_by_id("S2")
        assert "Old – X" not in s2
        assert s2["Details – Depth"] == ""
        assert s2["General Information – Status"] == "Active"
        assert repo.get_by_id("S1")["Old – X"] == "1"
        assert repo.get_by_id("V1")["Old – X"] == "3"

    def test_bulk_create(self, store):
        res = DbStationRepo(store).bulk_create([{"station_id": "A"}, {"station_id": ""}, {"Station ID": "B"}])
        assert res["count"] == 2


class TestDbLookupRepo:
    def test_snapshot_shape(self, store):
        repo = DbLookupRepo(store)
        repo.upsert_company("Acme")
        repo.upsert_company("Gone", active=False)
        repo.upsert_location("Halifax", "Acme", "http://photos/halifax")
        repo.upsert_asset_type("Pump", "Acme", "Halifax", "#123456")
        repo.set_status_color("Active", "#00ff00")
        repo.set_setting_boolean("applyStatusColorsOnMap", True)
        repo.set_inspection_keywords(["b", "A", "b"])

        snap = repo.get_all()
        assert snap["companies"] == ["Acme"]
        assert snap["locationsByCompany"] == {"Acme": ["Halifax"]}
        assert snap["assetsByCompanyLocation"] == {"Acme": {"Halifax": ["Pump"]}}
        assert snap["locationLinks"] == {"Acme": {"Halifax": "http://photos/halifax"}}
        assert snap["statusColors"] == {"active": "#00ff00"}
        assert snap["applyStatusColorsOnMap"] is True
        assert snap["applyRepairColorsOnMap"] is False
        assert snap["inspectionKeywords"] == ["A", "b"]

        assert repo.get_asset_type_color("Acme", "Halifax", "Pump") == "#123456"
        assert repo.get_photos_base("Acme", "Halifax", "Pump") == "http://photos/halifax"
        assert repo.get_active_companies() == ["Acme"]

    def test_colour_update_keeps_link(self, store):
        repo = DbLookupRepo(store)
        repo.upsert_asset_type("Pump", "Acme", "Halifax", link="http://photos/pumps")
        repo.set_asset_type_color("Pump", "Acme", "Halifax", "#abcdef")
        snap = repo.get_all()
        assert snap["colorsByCompanyLocation"]["Acme"]["Halifax"]["Pump"] == "#abcdef"
        assert snap["assetTypeLinks"]["Acme"]["Halifax"]["Pump"] == "http://photos/pumps"
        assert repo.set_asset_type_color("Pump", "", "", "#000000")["success"] is False

    def test_delete_status_row(self, store):
        repo = DbLookupRepo(store)
        repo.set_status_color("Retired", "#111111")
        assert repo.delete_status_row("retired") == {"success": True, "deleted": 1}
        assert repo.get_all()["statusColors"] == {}


class TestDbAuthRepo:
    def test_login_cycle(self, store):
        repo = DbAuthRepo(store)
        assert repo.create_user({"name": "Ann", "password": "h"})["success"] is True
        assert repo.create_user({"name": "ann", "password": "h"})["success"] is False
        assert repo.login_user("Ann", "bad")["success"] is False
        assert repo.login_user("Ann", "h")["user"]["status"] == "Active"
        repo.logout_user("Ann")
        assert repo.get_by_id("ann")["status"] == "Inactive"
        assert "password" not in repo.get_all_users()[0]
        assert repo.has_users() is True


class TestDbRepairRepo:
    def test_group_per_station(self, store):
        repo = DbRepairRepo(store)
        assert repo.append_repair("Acme", "Halifax", {"Repair Name": "x"})["success"] is False
        repo.append_repair("Acme", "Halifax", {"Station ID": "A", "Repair Name": "a1"}, "Pump")
        repo.append_repair("Acme", "Halifax", {"Station ID": "A", "Repair Name": "a2"})
        repo.append_repair("Acme", "Truro", {"Station ID": "B", "Repair Name": "b1"})

        listed = repo.list_repairs_for_station("Acme", "Halifax", "a")
        assert [r["Repair Name"] for r in listed] == ["a1", "a2"]
        assert listed[0]["Asset Type"] == "Pump"
        assert listed[1]["Type"] == "Repair"

        assert repo.delete_repair("Acme", "Halifax", "A", 0) == {"success": True}
        assert repo.delete_repair("Acme", "Halifax", "A", 4)["success"] is False

        everything = repo.get_all_repairs()
        assert len(everything) == 2
        assert {r["location"] for r in everything} == {"Halifax", "Truro"}
