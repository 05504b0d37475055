"""Tests for the status and sessions reports."""

import json

import pytest

from multi_time_tracker.report import (
    collect_session_rows,
    collect_status_rows,
    generate_sessions_report,
    generate_status_report,
    truncate_string,
)
from tests.helpers import START_MS


@pytest.fixture
def populated(state, clock):
    """Two tags, a stopped task and a running one."""
    work = state.create_tag("work")
    state.create_tag("home")
    done = state.create_task("Done", [work.id])
    running = state.create_task("Running")
    state.toggle_task(done.id)
    clock.advance(60_000)
    state.toggle_task(done.id)
    state.toggle_task(running.id)
    clock.advance(30_000)
    return state


class TestTruncateString:
    def test_short_strings_unchanged(self) -> None:
        assert truncate_string("abc", 5) == "abc"

    def test_long_strings_get_ellipsis(self) -> None:
        assert truncate_string("abcdefghij", 6) == "abc..."


class TestCollectStatusRows:
    """Tests for the live totals rows."""

    def test_tasks_then_tags_with_live_time(self, populated, clock) -> None:
        rows = collect_status_rows(populated, clock.now_ms())

        assert [(r["kind"], r["name"], r["total_ms"], r["running"]) for r in rows] == [
            ("task", "Done", 60_000, False),
            ("task", "Running", 30_000, True),
            ("tag", "work", 60_000, False),
            ("tag", "home", 0, False),
        ]
        assert rows[0]["tags"] == ["work"]
        assert rows[0]["total"] == "00:01:00"

    def test_deleted_are_hidden_by_default(self, populated, clock) -> None:
        populated.delete_task(1)
        populated.delete_tag(2)

        names = [r["name"] for r in collect_status_rows(populated, clock.now_ms())]
        assert names == ["Running", "work"]

        rows = collect_status_rows(populated, clock.now_ms(), show_deleted=True)
        assert [r["deleted"] for r in rows] == [True, False, False, True]

    def test_display_options(self, populated, clock) -> None:
        rows = collect_status_rows(
            populated, clock.now_ms(), show_seconds=False, hide_hours_if_zero=True
        )
        assert rows[0]["total"] == "1"


class TestCollectSessionRows:
    def test_all_sessions(self, populated) -> None:
        rows = collect_session_rows(populated)
        assert len(rows) == 1
        assert rows[0]["task_name"] == "Done"
        assert rows[0]["start_ts"] == START_MS
        assert rows[0]["duration_ms"] == 60_000

    def test_filter_by_task(self, populated) -> None:
        assert collect_session_rows(populated, task_id=2) == []


class TestGenerateStatusReport:
    """Tests for the output formats."""

    def test_table(self, populated, clock, capsys) -> None:
        generate_status_report(populated, clock.now_ms())
        captured = capsys.readouterr()

        assert "Running" in captured.out
        assert "work" in captured.out
        assert "Running tasks: 1" in captured.err

    def test_empty_table(self, state, capsys) -> None:
        generate_status_report(state, START_MS)
        assert "No tasks or tags" in capsys.readouterr().out

    def test_csv(self, populated, clock, capsys) -> None:
        generate_status_report(populated, clock.now_ms(), format="csv")
        lines = capsys.readouterr().out.splitlines()

        assert lines[0] == "kind,id,name,tags,running,total_ms,total"
        assert lines[1] == "task,1,Done,work,False,60000,00:01:00"

    def test_tsv(self, populated, clock, capsys) -> None:
        generate_status_report(populated, clock.now_ms(), format="tsv")
        lines = capsys.readouterr().out.splitlines()
        assert lines[2].split("\t")[:3] == ["task", "2", "Running"]

    def test_json(self, populated, clock, capsys) -> None:
        generate_status_report(populated, clock.now_ms(), format="json")
        rows = json.loads(capsys.readouterr().out)
        assert rows[1]["running"] is True

    def test_unknown_format(self, populated, clock) -> None:
        with pytest.raises(ValueError, match="Unknown format"):
            generate_status_report(populated, clock.now_ms(), format="xml")


class TestGenerateSessionsReport:
    def test_table_and_summary(self, populated, capsys) -> None:
        generate_sessions_report(populated)
        captured = capsys.readouterr()

        assert "Done" in captured.out
        assert "Total sessions: 1" in captured.err
        assert "Total duration: 00:01:00" in captured.err

    def test_empty(self, state, capsys) -> None:
        generate_sessions_report(state)
        assert "No sessions" in capsys.readouterr().out

    def test_csv_columns(self, populated, capsys) -> None:
        generate_sessions_report(populated, format="csv")
        header = capsys.readouterr().out.splitlines()[0]
        assert header == "task_id,task_name,start,end,duration_ms,duration"

    def test_unknown_format(self, populated) -> None:
        with pytest.raises(ValueError):
            generate_sessions_report(populated, format="xml")
