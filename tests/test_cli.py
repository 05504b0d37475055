"""Tests for CLI argument parsing and the subcommand flows."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from multi_time_tracker.cli import (
    create_parser,
    get_default_log_file,
    main,
    validate_edit_task_args,
    validate_import_args,
)
from multi_time_tracker.snapshot import load_snapshot
from tests.helpers import SESSIONS_CSV, START_MS, TAG_SESSIONS_CSV, write_backup


def run(snapshot_path: Path, *args: str, at: int = START_MS) -> int:
    """Run the CLI against a snapshot file with a pinned clock and no log file."""
    return main(["--snapshot", str(snapshot_path), "--at", str(at), "--log-level", "NONE", *args])


class TestCreateParser:
    """Tests for argument parser creation."""

    def test_parser_has_all_subcommands(self) -> None:
        """Test that parser includes the subcommands that need no arguments."""
        parser = create_parser()

        for subcommand in ["status", "sessions", "quick", "export", "import", "validate"]:
            args = parser.parse_args([subcommand])
            assert args.subcommand == subcommand

    def test_global_options_available(self) -> None:
        """Test that global options are available (must come before subcommand)."""
        parser = create_parser()

        args = parser.parse_args(
            ["--config", "test.toml", "--snapshot", "s.yaml", "--at", "5 minutes ago", "status"]
        )

        assert args.config == Path("test.toml")
        assert args.snapshot == Path("s.yaml")
        assert args.at == "5 minutes ago"
        assert args.log_level == "DEBUG"
        assert args.console_log_level == "ERROR"

    def test_add_task_tags_are_repeatable(self) -> None:
        args = create_parser().parse_args(["add-task", "Write", "--tag", "1", "--tag", "3"])
        assert args.name == "Write"
        assert args.tags == [1, 3]
        assert args.link == ""

    def test_edit_task_tags_default_to_none(self) -> None:
        """Test that edit-task can tell 'no --tag' from 'remove all tags'."""
        args = create_parser().parse_args(["edit-task", "1", "--name", "New"])
        assert args.tags is None

    def test_set_tags_accepts_empty_list(self) -> None:
        args = create_parser().parse_args(["set-tags", "4"])
        assert args.task_id == 4
        assert args.tag_ids == []

    def test_ids_must_be_numbers(self) -> None:
        with pytest.raises(SystemExit):
            create_parser().parse_args(["toggle", "abc"])

    def test_invalid_format_rejected(self) -> None:
        with pytest.raises(SystemExit):
            create_parser().parse_args(["status", "--format", "xml"])


class TestArgValidators:
    def test_import_files_and_folder_exclusive(self) -> None:
        parser = create_parser()
        args = parser.parse_args(["import", "a.csv", "--folder", "dir"])
        assert validate_import_args(args) is not None
        assert validate_import_args(parser.parse_args(["import", "a.csv"])) is None

    def test_edit_task_needs_an_option(self) -> None:
        parser = create_parser()
        assert validate_edit_task_args(parser.parse_args(["edit-task", "1"])) is not None
        assert validate_edit_task_args(parser.parse_args(["edit-task", "1", "--link", ""])) is None


class TestDefaultLogFile:
    def test_uses_data_dir(self, isolated_data_dir) -> None:
        assert get_default_log_file(True) == isolated_data_dir / "multi-time-tracker.json.log"
        assert get_default_log_file(False) == isolated_data_dir / "multi-time-tracker.log"
        assert isolated_data_dir.is_dir()


class TestTaskFlow:
    """End-to-end flows through main(), one process invocation per command."""

    def test_create_toggle_and_status(self, snapshot_path, capsys) -> None:
        assert run(snapshot_path, "add-tag", "work") == 0
        assert run(snapshot_path, "add-task", "Write report", "--tag", "1") == 0
        assert run(snapshot_path, "toggle", "1") == 0
        assert run(snapshot_path, "toggle", "1", at=START_MS + 90_000) == 0

        out = capsys.readouterr().out
        assert "Created tag 1 'work'" in out
        assert "Created task 1 'Write report'" in out
        assert "Task 1 'Write report': paused, 00:01:30" in out

        assert run(snapshot_path, "status", "--format", "json", at=START_MS + 200_000) == 0
        rows = json.loads(capsys.readouterr().out)
        assert [(r["kind"], r["id"], r["total_ms"]) for r in rows] == [("task", 1, 90_000), ("tag", 1, 90_000)]
        assert rows[0]["tags"] == ["work"]

    def test_running_task_survives_between_invocations(self, snapshot_path, capsys) -> None:
        run(snapshot_path, "add-task", "T")
        run(snapshot_path, "toggle", "1")

        snapshot = load_snapshot(snapshot_path)
        assert snapshot.runtime.active_task_start == {1: START_MS}

        run(snapshot_path, "status", "--format", "csv", at=START_MS + 3_600_000)
        out = capsys.readouterr().out
        assert "task,1,T,,True,3600000,01:00:00" in out

    def test_status_watch_repeats_until_interrupted(self, snapshot_path, capsys) -> None:
        run(snapshot_path, "add-task", "T")
        capsys.readouterr()

        with patch("multi_time_tracker.cli.sleep", side_effect=[None, KeyboardInterrupt]) as sleep:
            assert run(snapshot_path, "status", "--watch", "--format", "csv") == 0

        sleep.assert_called_with(1.0)
        assert sleep.call_count == 2
        out = capsys.readouterr().out
        assert out.count("kind,id,name,tags,running,total_ms,total") == 2
        assert "Exiting..." in out

    def test_first_read_only_run_stores_install_time(self, snapshot_path) -> None:
        assert run(snapshot_path, "status") == 0
        assert load_snapshot(snapshot_path).install_at_ms == START_MS

        assert run(snapshot_path, "sessions", at=START_MS + 60_000) == 0
        assert load_snapshot(snapshot_path).install_at_ms == START_MS

    def test_default_subcommand_is_status(self, snapshot_path, capsys) -> None:
        assert main(["--snapshot", str(snapshot_path), "--log-level", "NONE"]) == 0
        assert "No tasks or tags" in capsys.readouterr().out

    def test_edit_and_set_tags(self, snapshot_path) -> None:
        run(snapshot_path, "add-tag", "a")
        run(snapshot_path, "add-tag", "b")
        run(snapshot_path, "add-task", "T", "--tag", "1")

        assert run(snapshot_path, "edit-task", "1", "--name", "Renamed", "--link", "http://x") == 0
        task = load_snapshot(snapshot_path).tasks[0]
        assert (task.name, task.link, task.tag_ids) == ("Renamed", "http://x", frozenset({1}))

        assert run(snapshot_path, "set-tags", "1", "2") == 0
        assert load_snapshot(snapshot_path).tasks[0].tag_ids == frozenset({2})

        assert run(snapshot_path, "set-tags", "1") == 0
        assert load_snapshot(snapshot_path).tasks[0].tag_ids == frozenset()

    def test_delete_restore_purge(self, snapshot_path, capsys) -> None:
        run(snapshot_path, "add-tag", "a")
        run(snapshot_path, "add-task", "T", "--tag", "1")

        assert run(snapshot_path, "delete-tag", "1") == 0
        assert "detached from 1 task(s)" in capsys.readouterr().out
        assert run(snapshot_path, "restore-tag", "1") == 0
        assert load_snapshot(snapshot_path).tasks[0].tag_ids == frozenset({1})

        assert run(snapshot_path, "delete-task", "1") == 0
        assert run(snapshot_path, "toggle", "1") == 1
        assert run(snapshot_path, "restore-task", "1") == 0
        assert run(snapshot_path, "purge-task", "1") == 0
        assert run(snapshot_path, "purge-tag", "1") == 0

        snapshot = load_snapshot(snapshot_path)
        assert snapshot.tasks == []
        assert snapshot.tags == []

    def test_rename(self, snapshot_path) -> None:
        run(snapshot_path, "add-tag", "a")
        run(snapshot_path, "add-task", "T")
        assert run(snapshot_path, "rename-task", "1", "New task") == 0
        assert run(snapshot_path, "rename-tag", "1", "New tag") == 0

        snapshot = load_snapshot(snapshot_path)
        assert snapshot.tasks[0].name == "New task"
        assert snapshot.tags[0].name == "New tag"

    def test_quick_task(self, snapshot_path, capsys) -> None:
        assert run(snapshot_path, "quick") == 0
        assert "Started quick task 1 'Quick-" in capsys.readouterr().out

        snapshot = load_snapshot(snapshot_path)
        assert snapshot.tags[0].name == "#temp"
        assert snapshot.tasks[0].is_running

    def test_sessions_report(self, snapshot_path, capsys) -> None:
        run(snapshot_path, "add-task", "T")
        run(snapshot_path, "toggle", "1")
        run(snapshot_path, "toggle", "1", at=START_MS + 5000)
        capsys.readouterr()

        assert run(snapshot_path, "sessions", "--format", "json") == 0
        captured = capsys.readouterr()
        [row] = json.loads(captured.out)
        assert row["duration_ms"] == 5000
        assert "Total sessions: 1" in captured.err


class TestErrors:
    """Errors end with a message and exit code 1, never a traceback."""

    def test_unknown_task(self, snapshot_path, capsys) -> None:
        assert run(snapshot_path, "toggle", "9") == 1
        assert "Unknown task id 9" in capsys.readouterr().err

    def test_blank_name(self, snapshot_path) -> None:
        assert run(snapshot_path, "add-task", "   ") == 1

    def test_unknown_tag_on_create(self, snapshot_path) -> None:
        assert run(snapshot_path, "add-task", "T", "--tag", "5") == 1
        assert not snapshot_path.exists() or load_snapshot(snapshot_path).tasks == []

    def test_edit_task_without_options(self, snapshot_path, capsys) -> None:
        assert run(snapshot_path, "edit-task", "1") == 1
        assert "at least one of" in capsys.readouterr().err

    def test_missing_config_file(self, tmp_path, capsys) -> None:
        assert main(["--config", str(tmp_path / "nope.toml"), "status"]) == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path, snapshot_path, capsys) -> None:
        config_file = tmp_path / "bad.toml"
        config_file.write_text('[tuning]\npersist_debounce_ms = "soon"\n')

        assert run(snapshot_path, "--config", str(config_file), "status") == 1
        assert "tuning.persist_debounce_ms must be int, got str" in capsys.readouterr().err

    def test_corrupt_snapshot(self, snapshot_path, capsys) -> None:
        snapshot_path.write_text("{", encoding="utf-8")
        assert run(snapshot_path, "status") == 1
        assert "Unable to decode snapshot" in capsys.readouterr().err


class TestValidate:
    def test_valid(self, snapshot_path, capsys) -> None:
        assert main(["--snapshot", str(snapshot_path), "--log-level", "NONE", "validate"]) == 0
        assert "Configuration is valid" in capsys.readouterr().out

    def test_config_errors(self, tmp_path, snapshot_path, capsys) -> None:
        config_file = tmp_path / "bad.toml"
        config_file.write_text("[display]\nshow_seconds = 1\nbogus = true\n")

        result = main(
            ["--config", str(config_file), "--snapshot", str(snapshot_path), "--log-level", "NONE", "validate"]
        )

        out = capsys.readouterr().out
        assert result == 1
        assert "display.show_seconds must be a boolean" in out
        assert "Unknown field in display: 'bogus'" in out

    def test_unusable_snapshot(self, snapshot_path, capsys) -> None:
        snapshot_path.write_text(json.dumps({"schemaVersion": 99}), encoding="utf-8")
        assert main(["--snapshot", str(snapshot_path), "--log-level", "NONE", "validate"]) == 1
        assert "is not usable" in capsys.readouterr().out


class TestBackupFlow:
    """Tests for the export and import subcommands."""

    def test_export_then_import_into_new_state(self, tmp_path, snapshot_path, capsys) -> None:
        run(snapshot_path, "add-tag", "work")
        run(snapshot_path, "add-task", "T", "--tag", "1")
        run(snapshot_path, "toggle", "1")
        run(snapshot_path, "toggle", "1", at=START_MS + 1000)

        backup_dir = tmp_path / "backup"
        assert run(snapshot_path, "export", str(backup_dir)) == 0
        assert (backup_dir / "manifest.json").exists()

        other = tmp_path / "other.json"
        assert run(other, "import", "--folder", str(backup_dir)) == 0

        snapshot = load_snapshot(other)
        assert snapshot.tasks[0].total_ms == 1000
        assert snapshot.tags[0].total_ms == 1000
        assert "Imported 1 tasks, 1 tags, 1 sessions" in capsys.readouterr().out

    def test_export_defaults_to_backup_dir(self, snapshot_path, isolated_data_dir) -> None:
        assert run(snapshot_path, "export") == 0
        assert (isolated_data_dir / "MultiTimer data" / "dict.json").exists()

    def test_import_files(self, tmp_path, snapshot_path) -> None:
        paths = write_backup(
            tmp_path / "set", {"sessions.csv": SESSIONS_CSV, "tag_sessions.csv": TAG_SESSIONS_CSV}
        )
        assert run(snapshot_path, "import", *[str(p) for p in paths]) == 0
        assert [t.name for t in load_snapshot(snapshot_path).tasks] == ["Write report", "Review"]

    def test_failed_import_keeps_snapshot(self, tmp_path, snapshot_path, capsys) -> None:
        run(snapshot_path, "add-task", "Keep me")
        write_backup(tmp_path / "set", {"sessions.csv": SESSIONS_CSV})

        assert run(snapshot_path, "import", "--folder", str(tmp_path / "set")) == 1
        assert "Missing tag_sessions.csv" in capsys.readouterr().err
        assert [t.name for t in load_snapshot(snapshot_path).tasks] == ["Keep me"]

    def test_import_files_and_folder_rejected(self, tmp_path, snapshot_path) -> None:
        assert run(snapshot_path, "import", "a.csv", "--folder", str(tmp_path)) == 1
