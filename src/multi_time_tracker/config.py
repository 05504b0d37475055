import os
from pathlib import Path

import toml
from aw_core.config import load_config_toml

APP_NAME = "multi-time-tracker"

default_config = """
# Where the tracker state is kept between runs. Empty means
# $XDG_DATA_HOME/multi-time-tracker/snapshot.json
# A .yaml or .yml suffix stores the snapshot as YAML instead of JSON.
snapshot_file = ""

# The well-known backup folder used by `export` and `import --folder`.
# Empty means $XDG_DATA_HOME/multi-time-tracker/MultiTimer data
backup_dir = ""

[tuning]
# Bursts of changes within this window are written to disk once
persist_debounce_ms = 1500
# Refresh interval of live displays
tick_interval_ms = 1000

[quick_task]
tag_name = "#temp"
name_prefix = "Quick"

[display]
show_seconds = true
hide_hours_if_zero = false
""".strip()

DEFAULTS = toml.loads(default_config)

BACKUP_FOLDER_NAME = "MultiTimer data"

config = load_config_toml(APP_NAME, default_config)


def load_custom_config(config_path):
    """Load config from a custom file path."""
    global config
    if config_path:
        config_path = Path(config_path)
        if config_path.exists():
            config = toml.load(config_path)
        else:
            raise FileNotFoundError(f"Config file not found: {config_path}")


def get_setting(section: str | None, key: str):
    """Return a setting from the active config, falling back to the built-in default."""
    if section is None:
        value = config.get(key)
        return DEFAULTS.get(key) if value is None else value
    value = (config.get(section) or {}).get(key)
    return DEFAULTS[section].get(key) if value is None else value


def get_data_dir() -> Path:
    """Return the data directory, honouring XDG_DATA_HOME."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        data_dir = Path(data_home)
    else:
        data_dir = Path.home() / ".local" / "share"
    return data_dir / APP_NAME


def get_snapshot_path() -> Path:
    configured = get_setting(None, "snapshot_file")
    if configured:
        return Path(configured).expanduser()
    return get_data_dir() / "snapshot.json"


def get_backup_dir() -> Path:
    configured = get_setting(None, "backup_dir")
    if configured:
        return Path(configured).expanduser()
    return get_data_dir() / BACKUP_FOLDER_NAME
