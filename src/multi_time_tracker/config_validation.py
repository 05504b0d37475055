"""Configuration validation for multi-time-tracker.

Type and range checks for the TOML settings. Problems that make a setting
unusable are errors, unknown keys are warnings.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """The active configuration has at least one error."""

    pass


class ConfigValidator:
    """Collects errors and warnings for one config dictionary at a time."""

    # Known top-level keys
    KNOWN_TOP_LEVEL = {
        "snapshot_file",
        "backup_dir",
        "tuning",
        "quick_task",
        "display",
    }

    # Top-level keys holding a path; empty means the default location
    PATH_KEYS = ("snapshot_file", "backup_dir")

    # Integer settings in milliseconds, with their lower bounds
    TUNING_PARAMS = {
        "persist_debounce_ms": {"type": int, "min": 0},
        "tick_interval_ms": {"type": int, "min": 1},
    }

    QUICK_TASK_FIELDS = {"tag_name", "name_prefix"}

    DISPLAY_FLAGS = {"show_seconds", "hide_hours_if_zero"}

    def __init__(self):
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def validate(self, config: dict[str, Any]) -> tuple[list[str], list[str]]:
        """Check every known section of ``config``.

        Returns:
            Tuple of (errors, warnings), fresh for each call
        """
        self.errors = []
        self.warnings = []

        self._validate_top_level(config)
        self._validate_tuning(config.get("tuning", {}))
        self._validate_quick_task(config.get("quick_task", {}))
        self._validate_display(config.get("display", {}))

        return self.errors, self.warnings

    def _validate_top_level(self, config: dict) -> None:
        """Check path keys, section types and unknown keys."""
        for key in config:
            if key not in self.KNOWN_TOP_LEVEL:
                self.warnings.append(f"Unknown top-level config key: '{key}'")

        for key in self.PATH_KEYS:
            if key in config and not isinstance(config[key], str):
                self.errors.append(f"'{key}' must be a string")

        for section in ("tuning", "quick_task", "display"):
            if section in config and not isinstance(config[section], dict):
                self.errors.append(f"'{section}' section must be a dictionary")

    def _validate_tuning(self, tuning: dict) -> None:
        if not isinstance(tuning, dict):
            return
        for key, value in tuning.items():
            spec = self.TUNING_PARAMS.get(key)
            if spec is None:
                self.warnings.append(f"Unknown tuning parameter: '{key}'")
                continue

            # bool is an int subclass, but `persist_debounce_ms = true` is a mistake
            if isinstance(value, bool) or not isinstance(value, spec["type"]):
                self.errors.append(
                    f"tuning.{key} must be {spec['type'].__name__}, got {type(value).__name__}"
                )
                continue

            if value < spec["min"]:
                self.errors.append(f"tuning.{key} must be >= {spec['min']}, got {value}")

    def _validate_quick_task(self, quick_task: dict) -> None:
        """Validate the quick task settings."""
        if not isinstance(quick_task, dict):
            return
        for key, value in quick_task.items():
            if key not in self.QUICK_TASK_FIELDS:
                self.warnings.append(f"Unknown field in quick_task: '{key}'")
                continue
            if not isinstance(value, str):
                self.errors.append(f"quick_task.{key} must be a string")
            elif not value.strip():
                self.errors.append(f"quick_task.{key} must not be blank")

    def _validate_display(self, display: dict) -> None:
        """Validate display flags."""
        if not isinstance(display, dict):
            return
        for key, value in display.items():
            if key not in self.DISPLAY_FLAGS:
                self.warnings.append(f"Unknown field in display: '{key}'")
            elif not isinstance(value, bool):
                self.errors.append(f"display.{key} must be a boolean")


def validate_config(config: dict[str, Any]) -> tuple[list[str], list[str]]:
    """Return (errors, warnings) for ``config``."""
    return ConfigValidator().validate(config)


def log_validation_results(errors: list[str], warnings: list[str]) -> None:
    for warning in warnings:
        logger.warning(f"Config warning: {warning}")
    for error in errors:
        logger.error(f"Config error: {error}")
