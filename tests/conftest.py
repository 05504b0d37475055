"""
Shared fixtures for the multi-time-tracker tests.
"""

import logging
from pathlib import Path

import pytest

from multi_time_tracker.clock import FixedClock
from multi_time_tracker.state import StateManager
from tests.helpers import START_MS


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Keep snapshots, backups and log files out of the real home directory."""
    data_home = tmp_path / "xdg-data"
    monkeypatch.setenv("XDG_DATA_HOME", str(data_home))
    return data_home / "multi-time-tracker"


@pytest.fixture(autouse=True)
def reset_config():
    """Reset the global config to default after each test.

    This prevents test pollution where one test's config changes
    affect subsequent tests.
    """
    from aw_core.config import load_config_toml

    from multi_time_tracker import config as config_module

    yield

    config_module.config = load_config_toml(config_module.APP_NAME, config_module.default_config)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo the root logger changes made by the CLI's setup_logging.

    Otherwise a CLI test running with ``--log-level NONE`` silences the
    loggers that later tests inspect through caplog.
    """
    from multi_time_tracker.output import ColoredConsoleHandler

    root = logging.getLogger()
    level = root.level
    handlers = list(root.handlers)

    yield

    for handler in list(root.handlers):
        if handler not in handlers and isinstance(handler, (ColoredConsoleHandler, logging.FileHandler)):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START_MS)


@pytest.fixture
def state(clock: FixedClock) -> StateManager:
    """A StateManager without persistence, driven by the fixed clock."""
    return StateManager(clock=clock)


@pytest.fixture
def snapshot_path(tmp_path) -> Path:
    return tmp_path / "snapshot.json"
