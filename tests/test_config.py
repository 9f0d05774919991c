from __future__ import annotations

import json

from notescope.app import config
from notescope.app.config import Settings, SettingsStore, parse_folder_list


def test_load_merges_saved_values_over_defaults(tmp_path):
    path = tmp_path / ".notescope" / "settings.json"
    path.parent.mkdir()
    path.write_text(json.dumps({"tag_weight": 4, "excluded_folders": "Archive", "unknown": 1}), encoding="utf-8")

    settings = SettingsStore(path).load()

    assert settings.tag_weight == 4
    assert settings.excluded_folders == "Archive"
    assert settings.file_name_weight == 10
    assert settings.cache_update_interval == 60


def test_load_ignores_corrupt_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    assert SettingsStore(path).load() == Settings()


def test_load_falls_back_for_out_of_range_values(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"quote_weight": 42, "min_english_length": 0}), encoding="utf-8")
    settings = SettingsStore(path).load()
    assert settings.quote_weight == 2
    assert settings.min_english_length == 3


def test_update_saves_every_accepted_change(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    store = SettingsStore(path)
    store.load()

    accepted = store.update(content_weight="7", excluded_folders="Archive, Trash")

    assert accepted == {"content_weight": 7, "excluded_folders": "Archive, Trash"}
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["content_weight"] == 7
    assert saved["excluded_folders"] == "Archive, Trash"


def test_update_rejects_invalid_numbers_silently(tmp_path):
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    store.load()

    accepted = store.update(
        file_name_weight=11,
        directory_weight="abc",
        heading1_weight=2.5,
        cache_update_interval="soon",
        tag_weight=True,
    )

    assert accepted == {}
    assert store.settings == Settings()
    assert not path.exists()


def test_update_accepts_fractional_interval(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    assert store.update(cache_update_interval="0.5") == {"cache_update_interval": 0.5}
    assert store.update(cache_update_interval=0) == {}
    assert store.settings.cache_update_interval == 0.5


def test_parse_folder_list_trims_and_drops_blanks():
    assert parse_folder_list(" Archive , ,Templates/Old,") == ["Archive", "Templates/Old"]
    assert parse_folder_list("") == []
    assert parse_folder_list(None) == []


def test_debug_flag(monkeypatch):
    monkeypatch.setenv("NOTESCOPE_DEBUG", "1")
    assert config.debug_enabled() is True
    monkeypatch.setenv("NOTESCOPE_DEBUG", "false")
    assert config.debug_enabled() is False
