"""Export and import of the flat backup file set.

The backup set is a human readable ledger:

- sessions.csv and tag_sessions.csv: every closed session
- totals.csv and tag_totals.csv: derived totals, ignored on import
- dict.json: tasks and tags with their associations
- app_usage.csv: app usage counter and install time
- manifest.json: schema version and the list of files

Import rebuilds the whole state through reconcile.build_snapshot before
anything is handed back, so a failed import never changes the current state.
"""

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .backup_schema import (
    APP_USAGE_FILE,
    DICT_FILE,
    ENTRIES,
    KNOWN_HANDLERS,
    MANIFEST_FILE,
    SCHEMA_VERSION,
    SESSIONS_FILE,
    TAG_SESSIONS_FILE,
    TAG_TOTALS_FILE,
    TOTALS_FILE,
    ParsedManifest,
    build_manifest_json,
    parse_manifest_json,
)
from .errors import ImportIOError, StructuralError, ValidationError
from .models import ActiveTagStart, Tag, TagSession, Task, TaskSession
from .reconcile import Dictionary, ImportedSnapshot, build_snapshot
from .utils import format_hhmmss

logger = logging.getLogger(__name__)

SESSIONS_HEADER = ["task_id", "task_name", "start_ts", "end_ts"]
TAG_SESSIONS_HEADER = ["tag_id", "tag_name", "task_id", "task_name", "start_ts", "end_ts"]
TOTALS_HEADER = ["task_id", "task_name", "total_ms"]
TAG_TOTALS_HEADER = ["tag_id", "tag_name", "total_ms", "total_hhmmss"]
APP_USAGE_HEADER = ["app_usage_ms", "install_at_ms"]

DICT_SCHEMA_VERSION = 1


@dataclass
class BackupImport:
    """Everything read from a backup set."""

    snapshot: ImportedSnapshot
    app_usage_ms: int | None = None
    install_at_ms: int | None = None
    files: list[str] = field(default_factory=list)


# Export


def union_duration_ms(intervals: list[tuple[int, int]]) -> int:
    """Return the length of the union of the intervals; overlaps count once."""
    ordered = sorted((start, end) for start, end in intervals if end > start)
    if not ordered:
        return 0

    total = 0
    cur_start, cur_end = ordered[0]
    for start, end in ordered[1:]:
        if start <= cur_end:
            cur_end = max(cur_end, end)
        else:
            total += cur_end - cur_start
            cur_start, cur_end = start, end
    total += cur_end - cur_start
    return total


def _write_csv(path: Path, header: list[str], rows: list[list[Any]]) -> None:
    # Truncating write, so the file is always one coherent export
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(header)
        writer.writerows(rows)


def build_dict_payload(tasks: list[Task], tags: list[Tag], exported_at_ms: int) -> dict[str, Any]:
    """Return the dict.json document: structure only, no timing state."""
    tag_items = []
    for tag in sorted(tags, key=lambda t: t.id):
        item: dict[str, Any] = {"id": tag.id, "name": tag.name, "link": tag.link}
        if tag.is_deleted:
            item["deletedAtMs"] = tag.deleted_at_ms
        tag_items.append(item)

    task_items = []
    for task in sorted(tasks, key=lambda t: t.id):
        item = {
            "id": task.id,
            "name": task.name,
            "link": task.link,
            "tagIds": sorted(task.tag_ids),
        }
        if task.is_deleted:
            item["deletedAtMs"] = task.deleted_at_ms
        task_items.append(item)

    return {
        "schema_version": DICT_SCHEMA_VERSION,
        "exported_at": exported_at_ms,
        "tags": tag_items,
        "tasks": task_items,
    }


def task_totals_rows(tasks: list[Task], task_sessions: list[TaskSession]) -> list[list[Any]]:
    """Rows of totals.csv: one per task id, named after the current task name."""
    names = {task.id: task.name for task in tasks}
    totals: dict[int, int] = {}
    for session in task_sessions:
        totals[session.task_id] = totals.get(session.task_id, 0) + session.duration_ms
        names.setdefault(session.task_id, session.task_name)
    return [[task_id, names[task_id], totals[task_id]] for task_id in sorted(totals)]


def tag_totals_rows(
    tags: list[Tag],
    tag_sessions: list[TagSession],
    open_intervals: list[ActiveTagStart],
    now: int,
) -> list[list[Any]]:
    """Rows of tag_totals.csv.

    A tag total here is the chronological union of the intervals of the tasks
    feeding it, so time when two tasks ran with the tag counts once. Open
    intervals are included up to ``now``.
    """
    names = {tag.id: tag.name for tag in tags}
    intervals: dict[int, list[tuple[int, int]]] = {}
    for session in tag_sessions:
        intervals.setdefault(session.tag_id, []).append((session.start_ts, session.end_ts))
        names.setdefault(session.tag_id, session.tag_name)
    for interval in open_intervals:
        intervals.setdefault(interval.tag_id, []).append((interval.start_ts, now))

    rows = []
    for tag_id in sorted(intervals):
        total = union_duration_ms(intervals[tag_id])
        rows.append([tag_id, names.get(tag_id, ""), total, format_hhmmss(total)])
    return rows


def export_to_directory(
    directory: str | Path,
    tasks: list[Task],
    tags: list[Tag],
    task_sessions: list[TaskSession],
    tag_sessions: list[TagSession],
    open_intervals: list[ActiveTagStart],
    now: int,
    app_usage_ms: int = 0,
    install_at_ms: int | None = None,
) -> list[Path]:
    """
    Write the complete backup set into a directory.

    Args:
        directory: Target directory, created if needed
        tasks: All tasks, soft-deleted ones included
        tags: All tags, soft-deleted ones included
        task_sessions: Closed task sessions
        tag_sessions: Closed tag sessions
        open_intervals: Open (task, tag) intervals, for tag_totals.csv
        now: Export time in milliseconds
        app_usage_ms: App usage counter
        install_at_ms: Install timestamp

    Returns:
        Paths of the written files
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    written = []

    dict_path = directory / DICT_FILE
    with open(dict_path, "w", encoding="utf-8") as f:
        json.dump(build_dict_payload(tasks, tags, now), f, indent=2, ensure_ascii=False)
        f.write("\n")
    written.append(dict_path)

    sessions_path = directory / SESSIONS_FILE
    _write_csv(
        sessions_path,
        SESSIONS_HEADER,
        [[s.task_id, s.task_name, s.start_ts, s.end_ts] for s in task_sessions],
    )
    written.append(sessions_path)

    totals_path = directory / TOTALS_FILE
    _write_csv(totals_path, TOTALS_HEADER, task_totals_rows(tasks, task_sessions))
    written.append(totals_path)

    tag_sessions_path = directory / TAG_SESSIONS_FILE
    _write_csv(
        tag_sessions_path,
        TAG_SESSIONS_HEADER,
        [[s.tag_id, s.tag_name, s.task_id, s.task_name, s.start_ts, s.end_ts] for s in tag_sessions],
    )
    written.append(tag_sessions_path)

    tag_totals_path = directory / TAG_TOTALS_FILE
    _write_csv(
        tag_totals_path,
        TAG_TOTALS_HEADER,
        tag_totals_rows(tags, tag_sessions, open_intervals, now),
    )
    written.append(tag_totals_path)

    app_usage_path = directory / APP_USAGE_FILE
    _write_csv(
        app_usage_path,
        APP_USAGE_HEADER,
        [[app_usage_ms, "" if install_at_ms is None else install_at_ms]],
    )
    written.append(app_usage_path)

    manifest_path = directory / MANIFEST_FILE
    manifest_path.write_text(build_manifest_json(now), encoding="utf-8")
    written.append(manifest_path)

    logger.info(
        f"Exported {len(task_sessions)} task sessions and {len(tag_sessions)} tag sessions "
        f"to {directory}"
    )
    return written


# Parsing


def _read_rows(text: str, file_name: str, header: list[str]) -> list[tuple[int, list[str]]]:
    """Return (line number, row) pairs after checking the header.

    Blank lines are skipped. An empty file yields no rows.

    Raises:
        ValidationError: If the first row does not match ``header``
    """
    reader = csv.reader(io.StringIO(text, newline=""))
    rows = [(reader.line_num, row) for row in reader if any(cell.strip() for cell in row)]
    if not rows:
        return []

    first = [cell.strip() for cell in rows[0][1]]
    if first and first[0].startswith("\ufeff"):
        first[0] = first[0][1:]
    if first != header:
        raise ValidationError(f"Invalid header in {file_name}: {','.join(first)}")
    return rows[1:]


def _to_int(value: str, file_name: str, line: int, column: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ValidationError(f"{file_name} line {line}: {column} is not a number: {value!r}")


def parse_task_sessions(text: str) -> list[TaskSession]:
    """Parse sessions.csv. Rows with missing columns or no duration are skipped."""
    sessions = []
    for line, row in _read_rows(text, SESSIONS_FILE, SESSIONS_HEADER):
        if len(row) < len(SESSIONS_HEADER):
            logger.warning(f"{SESSIONS_FILE} line {line}: too few columns, skipped")
            continue
        session = TaskSession(
            task_id=_to_int(row[0], SESSIONS_FILE, line, "task_id"),
            task_name=row[1],
            start_ts=_to_int(row[2], SESSIONS_FILE, line, "start_ts"),
            end_ts=_to_int(row[3], SESSIONS_FILE, line, "end_ts"),
        )
        if session.end_ts <= session.start_ts:
            logger.warning(f"{SESSIONS_FILE} line {line}: session without duration, skipped")
            continue
        sessions.append(session)
    return sessions


def parse_tag_sessions(text: str) -> list[TagSession]:
    """Parse tag_sessions.csv. Rows with missing columns or no duration are skipped."""
    sessions = []
    for line, row in _read_rows(text, TAG_SESSIONS_FILE, TAG_SESSIONS_HEADER):
        if len(row) < len(TAG_SESSIONS_HEADER):
            logger.warning(f"{TAG_SESSIONS_FILE} line {line}: too few columns, skipped")
            continue
        session = TagSession(
            tag_id=_to_int(row[0], TAG_SESSIONS_FILE, line, "tag_id"),
            tag_name=row[1],
            task_id=_to_int(row[2], TAG_SESSIONS_FILE, line, "task_id"),
            task_name=row[3],
            start_ts=_to_int(row[4], TAG_SESSIONS_FILE, line, "start_ts"),
            end_ts=_to_int(row[5], TAG_SESSIONS_FILE, line, "end_ts"),
        )
        if session.end_ts <= session.start_ts:
            logger.warning(f"{TAG_SESSIONS_FILE} line {line}: session without duration, skipped")
            continue
        sessions.append(session)
    return sessions


def parse_app_usage(text: str) -> tuple[int | None, int | None]:
    """Parse app_usage.csv into (app_usage_ms, install_at_ms)."""
    rows = _read_rows(text, APP_USAGE_FILE, APP_USAGE_HEADER)
    if not rows:
        return None, None
    line, row = rows[0]
    cells = [cell.strip() for cell in row] + ["", ""]
    app_usage = _to_int(cells[0], APP_USAGE_FILE, line, "app_usage_ms") if cells[0] else None
    install_at = _to_int(cells[1], APP_USAGE_FILE, line, "install_at_ms") if cells[1] else None
    return app_usage, install_at


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_dict_json(text: str) -> Dictionary:
    """
    Parse dict.json into a Dictionary.

    Entries without an id or with a blank name are skipped. Timing fields, if
    an older export carries them, are ignored.

    Raises:
        ValueError: If the text is not a JSON object
    """
    root = json.loads(text)
    if not isinstance(root, dict):
        raise ValueError("dict.json must contain a JSON object")

    tags = []
    for item in root.get("tags") or []:
        if not isinstance(item, dict):
            continue
        tag_id = _optional_int(item.get("id"))
        name = str(item.get("name") or "").strip()
        if tag_id is None or not name:
            continue
        deleted_at = _optional_int(item.get("deletedAtMs"))
        tags.append(
            Tag(
                id=tag_id,
                name=name,
                link=str(item.get("link") or "").strip(),
                is_deleted=deleted_at is not None,
                deleted_at_ms=deleted_at,
            )
        )

    tasks = []
    for item in root.get("tasks") or []:
        if not isinstance(item, dict):
            continue
        task_id = _optional_int(item.get("id"))
        name = str(item.get("name") or "").strip()
        if task_id is None or not name:
            continue
        tag_ids = {
            tag_id
            for tag_id in (_optional_int(v) for v in item.get("tagIds") or [])
            if tag_id is not None
        }
        deleted_at = _optional_int(item.get("deletedAtMs"))
        tasks.append(
            Task(
                id=task_id,
                name=name,
                link=str(item.get("link") or "").strip(),
                tag_ids=frozenset(tag_ids),
                is_deleted=deleted_at is not None,
                deleted_at_ms=deleted_at,
            )
        )

    return Dictionary(tasks=tasks, tags=tags)


# Import


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ImportIOError(f"Unable to read {path}: {e}") from e


def _load_manifest(files: dict[str, Path]) -> ParsedManifest | None:
    path = files.get(MANIFEST_FILE)
    if path is None:
        return None
    try:
        manifest = parse_manifest_json(_read_text(path))
    except ValueError as e:
        logger.error(f"{MANIFEST_FILE} could not be parsed, ignoring it: {e}")
        return None

    if manifest.schema_version > SCHEMA_VERSION:
        raise StructuralError(
            f"Backup schema version {manifest.schema_version} is newer than supported "
            f"version {SCHEMA_VERSION}"
        )
    for entry in manifest.files:
        if entry.handler not in KNOWN_HANDLERS:
            logger.warning(f"{MANIFEST_FILE}: unknown handler '{entry.handler}' for {entry.name}")
    return manifest


def _load_dictionary(files: dict[str, Path]) -> Dictionary | None:
    path = files.get(DICT_FILE)
    if path is None:
        return None
    text = _read_text(path)
    try:
        return parse_dict_json(text)
    except ValueError as e:
        logger.error(f"{DICT_FILE} parse failed, importing without it: {e}")
        return None


def import_from_files(paths: list[str | Path]) -> BackupImport:
    """
    Import a backup set given as individual files, matched by file name.

    Raises:
        ValidationError: If no files are given or a file is malformed
        StructuralError: If required files are missing and there is no dict.json
        ImportIOError: If a file cannot be read
    """
    if not paths:
        raise ValidationError("No files selected")
    files = {Path(p).name: Path(p) for p in paths}
    logger.info(f"import_from_files: files={','.join(sorted(files))}")
    return _import(files, "selected files")


def import_from_folder(folder: str | Path) -> BackupImport:
    """
    Import the backup set stored in a folder.

    Raises:
        ImportIOError: If the folder does not exist or cannot be listed
        StructuralError: If required files are missing and there is no dict.json
        ValidationError: If a file is malformed
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise ImportIOError(f"Backup folder not accessible: {folder}")
    try:
        files = {p.name: p for p in folder.iterdir() if p.is_file()}
    except OSError as e:
        raise ImportIOError(f"Unable to list backup folder {folder}: {e}") from e
    logger.info(f"import_from_folder: {folder} files={','.join(sorted(files))}")
    return _import(files, f"'{folder.name or folder}'")


def _import(files: dict[str, Path], source: str) -> BackupImport:
    manifest = _load_manifest(files)
    dictionary = _load_dictionary(files)

    if dictionary is None:
        if manifest is not None:
            required = manifest.required_files()
        else:
            required = [entry.name for entry in ENTRIES if entry.required]
        for name in required:
            if name not in files:
                raise StructuralError(f"Missing {name} in {source}")

    task_sessions = None
    if SESSIONS_FILE in files:
        task_sessions = parse_task_sessions(_read_text(files[SESSIONS_FILE]))
    tag_sessions = None
    if TAG_SESSIONS_FILE in files:
        tag_sessions = parse_tag_sessions(_read_text(files[TAG_SESSIONS_FILE]))

    app_usage_ms = install_at_ms = None
    if APP_USAGE_FILE in files:
        app_usage_ms, install_at_ms = parse_app_usage(_read_text(files[APP_USAGE_FILE]))

    snapshot = build_snapshot(dictionary, task_sessions, tag_sessions)
    logger.info(
        f"Imported from {source}: tasks={len(snapshot.tasks)} tags={len(snapshot.tags)} "
        f"taskSessions={len(snapshot.task_sessions)} tagSessions={len(snapshot.tag_sessions)}"
    )
    return BackupImport(
        snapshot=snapshot,
        app_usage_ms=app_usage_ms,
        install_at_ms=install_at_ms,
        files=sorted(files),
    )
