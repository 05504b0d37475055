"""
Durable snapshot of the complete tracker state.

The snapshot holds the entities, both session logs and the open-interval
bookkeeping, so running timers survive a restart. The document is JSON, or
YAML when the file name ends in .yaml/.yml.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import StructuralError, ValidationError
from .models import ActiveTagStart, RuntimeSnapshot, Tag, TagSession, Task, TaskSession

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1

YAML_SUFFIXES = (".yaml", ".yml")


@dataclass
class Snapshot:
    """Everything needed to resume accounting where it stopped."""

    tasks: list[Task] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    task_sessions: list[TaskSession] = field(default_factory=list)
    tag_sessions: list[TagSession] = field(default_factory=list)
    app_usage_ms: int = 0
    install_at_ms: int | None = None
    runtime: RuntimeSnapshot = field(default_factory=RuntimeSnapshot)


def _opt_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)


def task_to_dict(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "name": task.name,
        "link": task.link,
        "tagIds": sorted(task.tag_ids),
        "isDeleted": task.is_deleted,
        "deletedAtMs": task.deleted_at_ms,
        "isRunning": task.is_running,
        "totalMs": task.total_ms,
        "lastStartedAtMs": task.last_started_at_ms,
    }


def tag_to_dict(tag: Tag) -> dict[str, Any]:
    return {
        "id": tag.id,
        "name": tag.name,
        "link": tag.link,
        "isDeleted": tag.is_deleted,
        "deletedAtMs": tag.deleted_at_ms,
        "restoreTaskIds": sorted(tag.restore_task_ids),
        "activeChildrenCount": tag.active_children_count,
        "totalMs": tag.total_ms,
        "lastStartedAtMs": tag.last_started_at_ms,
    }


def task_from_dict(item: dict[str, Any]) -> Task:
    last_started = _opt_int(item.get("lastStartedAtMs"))
    return Task(
        id=int(item["id"]),
        name=str(item["name"]),
        link=item.get("link") or "",
        tag_ids=frozenset(int(v) for v in item.get("tagIds") or []),
        is_deleted=bool(item.get("isDeleted", False)),
        deleted_at_ms=_opt_int(item.get("deletedAtMs")),
        is_running=bool(item.get("isRunning", last_started is not None)),
        total_ms=int(item.get("totalMs", 0)),
        last_started_at_ms=last_started,
    )


def tag_from_dict(item: dict[str, Any]) -> Tag:
    return Tag(
        id=int(item["id"]),
        name=str(item["name"]),
        link=item.get("link") or "",
        is_deleted=bool(item.get("isDeleted", False)),
        deleted_at_ms=_opt_int(item.get("deletedAtMs")),
        restore_task_ids=frozenset(int(v) for v in item.get("restoreTaskIds") or []),
        active_children_count=int(item.get("activeChildrenCount", 0)),
        total_ms=int(item.get("totalMs", 0)),
        last_started_at_ms=_opt_int(item.get("lastStartedAtMs")),
    )


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    """Convert a snapshot into a JSON/YAML serializable document."""
    runtime = snapshot.runtime
    return {
        "schemaVersion": SNAPSHOT_SCHEMA_VERSION,
        "appUsageMs": snapshot.app_usage_ms,
        "installAtMs": snapshot.install_at_ms,
        "nextTaskId": runtime.next_task_id,
        "nextTagId": runtime.next_tag_id,
        "tasks": [task_to_dict(t) for t in snapshot.tasks],
        "tags": [tag_to_dict(t) for t in snapshot.tags],
        "taskSessions": [
            {"taskId": s.task_id, "taskName": s.task_name, "startTs": s.start_ts, "endTs": s.end_ts}
            for s in snapshot.task_sessions
        ],
        "tagSessions": [
            {
                "tagId": s.tag_id,
                "tagName": s.tag_name,
                "taskId": s.task_id,
                "taskName": s.task_name,
                "startTs": s.start_ts,
                "endTs": s.end_ts,
            }
            for s in snapshot.tag_sessions
        ],
        "activeTaskStart": [
            {"taskId": task_id, "startTs": start}
            for task_id, start in sorted(runtime.active_task_start.items())
        ],
        "activeTagStart": [
            {"taskId": a.task_id, "tagId": a.tag_id, "startTs": a.start_ts}
            for a in runtime.active_tag_start
        ],
    }


def snapshot_from_dict(root: dict[str, Any]) -> Snapshot:
    """
    Build a snapshot from a decoded document.

    Missing optional fields get their defaults: no link, not deleted, no
    restore list, no open intervals.

    Raises:
        StructuralError: If the document was written by a newer schema
        ValidationError: If a required field is missing or has the wrong type
    """
    if not isinstance(root, dict):
        raise ValidationError("Snapshot document must be an object")

    version = root.get("schemaVersion", SNAPSHOT_SCHEMA_VERSION)
    if isinstance(version, int) and version > SNAPSHOT_SCHEMA_VERSION:
        raise StructuralError(
            f"Snapshot schema version {version} is newer than supported "
            f"version {SNAPSHOT_SCHEMA_VERSION}"
        )

    try:
        tasks = [task_from_dict(o) for o in root.get("tasks") or []]
        tags = [tag_from_dict(o) for o in root.get("tags") or []]
        task_sessions = [
            TaskSession(
                task_id=int(o["taskId"]),
                task_name=str(o["taskName"]),
                start_ts=int(o["startTs"]),
                end_ts=int(o["endTs"]),
            )
            for o in root.get("taskSessions") or []
        ]
        tag_sessions = [
            TagSession(
                tag_id=int(o["tagId"]),
                tag_name=str(o["tagName"]),
                task_id=int(o["taskId"]),
                task_name=str(o["taskName"]),
                start_ts=int(o["startTs"]),
                end_ts=int(o["endTs"]),
            )
            for o in root.get("tagSessions") or []
        ]
        runtime = RuntimeSnapshot(
            active_task_start={
                int(o["taskId"]): int(o["startTs"]) for o in root.get("activeTaskStart") or []
            },
            active_tag_start=[
                ActiveTagStart(task_id=int(o["taskId"]), tag_id=int(o["tagId"]), start_ts=int(o["startTs"]))
                for o in root.get("activeTagStart") or []
            ],
            next_task_id=_opt_int(root.get("nextTaskId")),
            next_tag_id=_opt_int(root.get("nextTagId")),
        )
        app_usage_ms = int(root.get("appUsageMs") or 0)
        install_at_ms = _opt_int(root.get("installAtMs"))
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed snapshot: {e!r}") from e

    return Snapshot(
        tasks=tasks,
        tags=tags,
        task_sessions=task_sessions,
        tag_sessions=tag_sessions,
        app_usage_ms=app_usage_ms,
        install_at_ms=install_at_ms,
        runtime=runtime,
    )


def _is_yaml(path: Path) -> bool:
    return path.suffix in YAML_SUFFIXES


def save_snapshot(snapshot: Snapshot, file_path: str | Path) -> None:
    """
    Write a snapshot to disk.

    The document is written to a temporary file in the same directory and
    then renamed over the target, so readers only ever see a complete file.

    Args:
        snapshot: State to write
        file_path: Target path; .yaml/.yml selects YAML, anything else JSON
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = snapshot_to_dict(snapshot)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            if _is_yaml(path):
                import yaml

                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            else:
                json.dump(data, f, indent=2, sort_keys=False, ensure_ascii=False)
                f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug(
        f"Saved snapshot to {path}: {len(snapshot.tasks)} tasks, {len(snapshot.tags)} tags, "
        f"{len(snapshot.task_sessions)} task sessions"
    )


def load_snapshot(file_path: str | Path) -> Snapshot | None:
    """
    Read a snapshot from disk.

    Returns:
        The snapshot, or None if the file does not exist

    Raises:
        ValidationError: If the file cannot be decoded
        StructuralError: If the file was written by a newer schema
    """
    path = Path(file_path)
    if not path.exists():
        logger.debug(f"No snapshot at {path}, starting empty")
        return None

    with open(path, encoding="utf-8") as f:
        if _is_yaml(path):
            import yaml

            try:
                root = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValidationError(f"Unable to decode snapshot {path}: {e}") from e
        else:
            try:
                root = json.load(f)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Unable to decode snapshot {path}: {e}") from e

    snapshot = snapshot_from_dict(root)
    logger.info(
        f"Loaded snapshot from {path}: {len(snapshot.tasks)} tasks, {len(snapshot.tags)} tags, "
        f"{len(snapshot.runtime.active_task_start)} running"
    )
    return snapshot
