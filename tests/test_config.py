"""Tests for the data-folder layout and db_config.json loading."""

import json

from assetmap import config


class TestDataDir:
    def test_env_override(self, data_root):
        assert config.data_dir() == str(data_root)
        assert config.lookups_path() == str(data_root / "lookups.xlsx")
        assert config.locations_dir() == str(data_root / "locations")
        assert config.repairs_dir() == str(data_root / "repairs")
        assert config.auth_path() == str(data_root / "Login_Information.xlsx")

    def test_explicit_root_wins(self, data_root, tmp_path):
        assert config.db_config_path(str(tmp_path)) == str(tmp_path / "db_config.json")


class TestLoadDbConfig:
    def test_unknown_values_fall_back_to_excel(self, tmp_path):
        path = tmp_path / "db_config.json"
        path.write_text(json.dumps({"readFrom": "Oracle", "writeTo": "nowhere"}), encoding="utf-8")
        cfg = config.load_db_config(str(path))
        assert cfg["readFrom"] == "excel"
        assert cfg["writeTo"] == "excel"
        assert cfg["database"]["enabled"] is False

    def test_values_are_case_insensitive(self, tmp_path):
        path = tmp_path / "db_config.json"
        path.write_text(json.dumps({"readFrom": "Database", "writeTo": "BOTH"}), encoding="utf-8")
        cfg = config.load_db_config(str(path))
        assert (cfg["readFrom"], cfg["writeTo"]) == ("database", "both")

    def test_partial_database_block_keeps_defaults(self, tmp_path):
        path = tmp_path / "db_config.json"
        path.write_text(json.dumps({"database": {"enabled": True, "url": "sqlite://"}}), encoding="utf-8")
        db = config.load_db_config(str(path))["database"]
        assert db["enabled"] is True
        assert db["url"] == "sqlite://"
        assert db["maxPoolSize"] == 10

    def test_corrupt_file_uses_defaults(self, tmp_path):
        path = tmp_path / "db_config.json"
        path.write_text("{not json", encoding="utf-8")
        assert config.load_db_config(str(path)) == config.DEFAULT_DB_CONFIG

    def test_missing_file_is_written(self, tmp_path):
        path = tmp_path / "nested" / "db_config.json"
        cfg = config.load_db_config(str(path))
        assert json.loads(path.read_text(encoding="utf-8")) == cfg


class TestSeedPath:
    def test_no_template_by_default(self, monkeypatch):
        monkeypatch.delenv(config.SEED_ENV, raising=False)
        assert config.seed_path() is None

    def test_template_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv(config.SEED_ENV, str(tmp_path / "seed.xlsx"))
        assert config.seed_path() == str(tmp_path / "seed.xlsx")
