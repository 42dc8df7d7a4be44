"""
Tests for pitflash.config.settings module.

This test suite covers:
- Settings loading and saving
- Default settings initialization
- Settings persistence to JSON file
- Type conversion helpers (get_bool, get_float, get_int)
- Error handling for corrupted settings files
"""

import json

from pitflash.config import settings


class TestLoadSettings:
    """Tests for load_settings() function."""

    def test_load_defaults_when_no_file(self, isolated_settings):
        """Test that default settings are loaded when file doesn't exist."""
        settings.settings_store.values = {}
        settings.load_settings()

        assert settings.settings_store.values == settings.DEFAULT_SETTINGS

    def test_load_merges_with_defaults(self, isolated_settings):
        """Test that loaded settings merge with defaults."""
        isolated_settings.parent.mkdir(parents=True)
        isolated_settings.write_text(json.dumps({"resume": True, "adb_executable": "/sdk/adb"}))

        settings.load_settings()

        assert settings.get_bool("resume") is True
        assert settings.get_setting("adb_executable") == "/sdk/adb"
        assert settings.get_setting("heimdall_executable") == "heimdall"

    def test_corrupted_file_falls_back_to_defaults(self, isolated_settings):
        """Test that invalid JSON leaves defaults in place."""
        isolated_settings.parent.mkdir(parents=True)
        isolated_settings.write_text("{not json")

        settings.load_settings()

        assert settings.settings_store.values == settings.DEFAULT_SETTINGS

    def test_non_dict_json_is_ignored(self, isolated_settings):
        isolated_settings.parent.mkdir(parents=True)
        isolated_settings.write_text("[1, 2, 3]")

        settings.load_settings()

        assert settings.settings_store.values == settings.DEFAULT_SETTINGS


class TestSaveSettings:
    """Tests for set_setting() persistence."""

    def test_set_setting_persists(self, isolated_settings):
        settings.set_setting("logcat_lines", 200)

        data = json.loads(isolated_settings.read_text())
        assert data["logcat_lines"] == 200

    def test_set_bool_round_trip(self, isolated_settings):
        settings.set_bool("verbose_output", 1)
        settings.load_settings()
        assert settings.get_bool("verbose_output") is True


class TestTypedGetters:
    """Tests for get_float() and get_int()."""

    def test_get_float(self, monkeypatch):
        monkeypatch.setitem(settings.settings_store.values, "start_fallback_timeout_seconds", "7.5")
        assert settings.get_float("start_fallback_timeout_seconds", 15.0) == 7.5

    def test_get_float_bad_value(self, monkeypatch):
        monkeypatch.setitem(settings.settings_store.values, "start_fallback_timeout_seconds", "soon")
        assert settings.get_float("start_fallback_timeout_seconds", 15.0) == 15.0

    def test_get_int_bad_value(self, monkeypatch):
        monkeypatch.setitem(settings.settings_store.values, "logcat_lines", None)
        assert settings.get_int("logcat_lines", 50) == 50

    def test_missing_key_uses_default(self):
        assert settings.get_int("not_a_key", 3) == 3
