"""Tests for configuration validation and the settings helpers."""

import pytest

from multi_time_tracker import config as config_module
from multi_time_tracker.config import (
    DEFAULTS,
    get_backup_dir,
    get_setting,
    get_snapshot_path,
    load_custom_config,
)
from multi_time_tracker.config_validation import (
    ConfigValidator,
    log_validation_results,
    validate_config,
)


class TestConfigValidator:
    """Tests for ConfigValidator class."""

    def test_defaults_are_valid(self) -> None:
        """Test that the built-in default config has no errors or warnings."""
        errors, warnings = validate_config(DEFAULTS)
        assert errors == []
        assert warnings == []

    def test_empty_config_is_valid(self) -> None:
        errors, warnings = ConfigValidator().validate({})
        assert errors == []
        assert warnings == []

    def test_unknown_top_level_key_warns(self) -> None:
        errors, warnings = validate_config({"exclusive": {}})
        assert errors == []
        assert warnings == ["Unknown top-level config key: 'exclusive'"]

    def test_path_keys_must_be_strings(self) -> None:
        errors, _ = validate_config({"snapshot_file": 3, "backup_dir": ["x"]})
        assert "'snapshot_file' must be a string" in errors
        assert "'backup_dir' must be a string" in errors

    def test_sections_must_be_tables(self) -> None:
        errors, _ = validate_config({"tuning": 5, "display": "yes"})
        assert "'tuning' section must be a dictionary" in errors
        assert "'display' section must be a dictionary" in errors

    @pytest.mark.parametrize(
        "tuning, message",
        [
            ({"persist_debounce_ms": "fast"}, "tuning.persist_debounce_ms must be int, got str"),
            ({"persist_debounce_ms": True}, "tuning.persist_debounce_ms must be int, got bool"),
            ({"persist_debounce_ms": -1}, "tuning.persist_debounce_ms must be >= 0, got -1"),
            ({"tick_interval_ms": 0}, "tuning.tick_interval_ms must be >= 1, got 0"),
        ],
    )
    def test_tuning_errors(self, tuning, message) -> None:
        errors, _ = validate_config({"tuning": tuning})
        assert errors == [message]

    def test_zero_debounce_is_allowed(self) -> None:
        errors, _ = validate_config({"tuning": {"persist_debounce_ms": 0}})
        assert errors == []

    def test_unknown_tuning_parameter_warns(self) -> None:
        _, warnings = validate_config({"tuning": {"poll_time": 5}})
        assert warnings == ["Unknown tuning parameter: 'poll_time'"]

    def test_quick_task_fields(self) -> None:
        errors, warnings = validate_config(
            {"quick_task": {"tag_name": "  ", "name_prefix": 4, "color": "red"}}
        )
        assert "quick_task.tag_name must not be blank" in errors
        assert "quick_task.name_prefix must be a string" in errors
        assert warnings == ["Unknown field in quick_task: 'color'"]

    def test_display_flags_must_be_booleans(self) -> None:
        errors, _ = validate_config({"display": {"show_seconds": "yes"}})
        assert errors == ["display.show_seconds must be a boolean"]

    def test_log_validation_results(self, caplog) -> None:
        errors, warnings = validate_config({"display": {"show_seconds": 1}, "extra": 1})
        log_validation_results(errors, warnings)
        assert "Config error: display.show_seconds must be a boolean" in caplog.text
        assert "Config warning: Unknown top-level config key: 'extra'" in caplog.text


class TestSettings:
    """Tests for reading settings from the active config."""

    def test_get_setting_defaults(self) -> None:
        assert get_setting("tuning", "persist_debounce_ms") == 1500
        assert get_setting("quick_task", "tag_name") == "#temp"
        assert get_setting("display", "show_seconds") is True

    def test_custom_config_overrides_and_falls_back(self, tmp_path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text('[quick_task]\ntag_name = "#scratch"\n')

        load_custom_config(config_file)

        assert config_module.config["quick_task"]["tag_name"] == "#scratch"
        assert get_setting("quick_task", "tag_name") == "#scratch"
        assert get_setting("quick_task", "name_prefix") == "Quick"
        assert get_setting("tuning", "tick_interval_ms") == 1000

    def test_missing_custom_config(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_custom_config(tmp_path / "absent.toml")

    def test_default_paths(self, isolated_data_dir) -> None:
        assert get_snapshot_path() == isolated_data_dir / "snapshot.json"
        assert get_backup_dir() == isolated_data_dir / "MultiTimer data"

    def test_configured_paths(self, tmp_path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text(
            f'snapshot_file = "{tmp_path / "state.yaml"}"\nbackup_dir = "{tmp_path / "bk"}"\n'
        )
        load_custom_config(config_file)

        assert get_snapshot_path() == tmp_path / "state.yaml"
        assert get_backup_dir() == tmp_path / "bk"
