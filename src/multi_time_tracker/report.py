"""Report generation module.

Two reports are available:

- status: one row per task and per tag with live totals, running time included
- sessions: the closed task sessions, oldest first

Both can be printed as a table, CSV, TSV or JSON.
"""

import csv
import json
import sys
from typing import Any

from .state import StateManager
from .utils import format_duration, ms2str

STATUS_COLUMNS = ["kind", "id", "name", "tags", "running", "total_ms", "total"]
SESSION_COLUMNS = ["task_id", "task_name", "start", "end", "duration_ms", "duration"]


def truncate_string(s: str, max_length: int = 40) -> str:
    """Truncate a string to max_length, adding ellipsis if needed."""
    if len(s) <= max_length:
        return s
    return s[: max_length - 3] + "..."


def collect_status_rows(
    state: StateManager,
    now: int,
    show_deleted: bool = False,
    show_seconds: bool = True,
    hide_hours_if_zero: bool = False,
) -> list[dict[str, Any]]:
    """Collect live totals for tasks and tags.

    Returns a list of dictionaries with keys:
    - kind: 'task' or 'tag'
    - id, name
    - tags: tag names of a task, empty for tags
    - running: whether the task runs, or the tag has running tasks
    - deleted: soft delete flag
    - total_ms: accumulated time including the open interval(s) at ``now``
    - total: total_ms formatted for display
    """
    tag_names = {tag.id: tag.name for tag in state.tags}
    rows = []

    for task in sorted(state.tasks, key=lambda t: t.id):
        if task.is_deleted and not show_deleted:
            continue
        total_ms = state.task_display_ms(task, now)
        rows.append(
            {
                "kind": "task",
                "id": task.id,
                "name": task.name,
                "tags": sorted(tag_names.get(tag_id, f"#{tag_id}") for tag_id in task.tag_ids),
                "running": task.is_running,
                "deleted": task.is_deleted,
                "total_ms": total_ms,
                "total": format_duration(total_ms, show_seconds, hide_hours_if_zero),
            }
        )

    for tag in sorted(state.tags, key=lambda t: t.id):
        if tag.is_deleted and not show_deleted:
            continue
        total_ms = state.tag_display_ms(tag, now)
        rows.append(
            {
                "kind": "tag",
                "id": tag.id,
                "name": tag.name,
                "tags": [],
                "running": tag.is_running,
                "deleted": tag.is_deleted,
                "total_ms": total_ms,
                "total": format_duration(total_ms, show_seconds, hide_hours_if_zero),
            }
        )

    return rows


def collect_session_rows(state: StateManager, task_id: int | None = None) -> list[dict[str, Any]]:
    """Collect closed task sessions, optionally for one task only."""
    rows = []
    for session in sorted(state.task_sessions, key=lambda s: (s.start_ts, s.task_id)):
        if task_id is not None and session.task_id != task_id:
            continue
        rows.append(
            {
                "task_id": session.task_id,
                "task_name": session.task_name,
                "start_ts": session.start_ts,
                "end_ts": session.end_ts,
                "start": ms2str(session.start_ts),
                "end": ms2str(session.end_ts),
                "duration_ms": session.duration_ms,
                "duration": format_duration(session.duration_ms),
            }
        )
    return rows


def format_status_table(rows: list[dict[str, Any]], truncate: bool = True) -> None:
    """Print status rows as a table, tasks first, then tags."""
    if not rows:
        print("No tasks or tags")
        return

    print(f"{'Kind':<5} {'ID':>5} {'Name':<40} {'Total':>10} {'':<3} {'Tags'}")
    print("=" * 90)
    for row in rows:
        name = row["name"]
        if row["deleted"]:
            name = f"{name} (deleted)"
        tags_str = ", ".join(row["tags"])
        if truncate:
            name = truncate_string(name, 40)
            tags_str = truncate_string(tags_str, 30)
        marker = ">" if row["running"] else ""
        print(f"{row['kind']:<5} {row['id']:>5} {name:<40} {row['total']:>10} {marker:<3} {tags_str}")


def format_sessions_table(rows: list[dict[str, Any]]) -> None:
    if not rows:
        print("No sessions")
        return

    print(f"{'Start':<19} {'End':<19} {'Duration':>9} {'ID':>5} {'Task'}")
    print("=" * 80)
    for row in rows:
        print(
            f"{row['start']:<19} {row['end']:<19} {row['duration']:>9} "
            f"{row['task_id']:>5} {row['task_name']}"
        )


def format_as_csv(rows: list[dict[str, Any]], columns: list[str], delimiter: str = ",") -> None:
    """Print rows as CSV/TSV.

    Args:
        rows: Report rows
        columns: Keys to write, in order
        delimiter: Field delimiter (',' for CSV, '\t' for TSV)
    """
    writer = csv.writer(sys.stdout, delimiter=delimiter, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(
            [",".join(row[c]) if isinstance(row[c], list) else row[c] for c in columns]
        )


def format_as_json(rows: list[dict[str, Any]]) -> None:
    json.dump(rows, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def generate_status_report(
    state: StateManager,
    now: int,
    format: str = "table",
    show_deleted: bool = False,
    show_seconds: bool = True,
    hide_hours_if_zero: bool = False,
) -> None:
    """Generate and display the live totals report.

    Args:
        state: Loaded tracker state
        now: Time in milliseconds used for running intervals
        format: Output format ('table', 'csv', 'tsv', 'json')
        show_deleted: Include soft-deleted tasks and tags
        show_seconds: Show seconds in formatted durations
        hide_hours_if_zero: Drop the hours field for durations under an hour

    Raises:
        ValueError: If the format is unknown
    """
    rows = collect_status_rows(state, now, show_deleted, show_seconds, hide_hours_if_zero)

    if format == "table":
        format_status_table(rows)
    elif format == "csv":
        format_as_csv(rows, STATUS_COLUMNS, delimiter=",")
    elif format == "tsv":
        format_as_csv(rows, STATUS_COLUMNS, delimiter="\t")
    elif format == "json":
        format_as_json(rows)
    else:
        raise ValueError(f"Unknown format: {format}")

    # Summary to stderr
    running = [row for row in rows if row["kind"] == "task" and row["running"]]
    print(f"\nRunning tasks: {len(running)}", file=sys.stderr)


def generate_sessions_report(
    state: StateManager, format: str = "table", task_id: int | None = None
) -> None:
    """Generate and display the session listing.

    Raises:
        ValueError: If the format is unknown
    """
    rows = collect_session_rows(state, task_id)

    if format == "table":
        format_sessions_table(rows)
    elif format == "csv":
        format_as_csv(rows, SESSION_COLUMNS, delimiter=",")
    elif format == "tsv":
        format_as_csv(rows, SESSION_COLUMNS, delimiter="\t")
    elif format == "json":
        format_as_json(rows)
    else:
        raise ValueError(f"Unknown format: {format}")

    print(f"\nTotal sessions: {len(rows)}", file=sys.stderr)
    total_ms = sum(row["duration_ms"] for row in rows)
    print(f"Total duration: {format_duration(total_ms)}", file=sys.stderr)
