"""Reconciliation of imported data into one consistent snapshot.

An import set may carry a dictionary (dict.json) describing tasks, tags and
their associations, and two flat session logs (sessions.csv and
tag_sessions.csv). Any of them may be missing or stale. build_snapshot merges
them with fixed precedence rules:

- the dictionary supplies structure: ids, names, links and associations
- the session logs may add entities and associations, never remove them
- the session logs are the only ledger for accumulated time
- nothing is running after an import
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field, replace

from .errors import StructuralError
from .models import Tag, TagSession, Task, TaskSession

logger = logging.getLogger(__name__)

# Names given to entities synthesized from sessions with a blank name
PLACEHOLDER_TASK_NAME = re.compile(r"^task_\d+$")

# How many synthesized ids to mention in a log line
LOG_SAMPLE_SIZE = 12


def placeholder_task_name(task_id: int) -> str:
    return f"task_{task_id}"


def placeholder_tag_name(tag_id: int) -> str:
    return f"tag_{tag_id}"


@dataclass
class Dictionary:
    """Structure read from dict.json: entities with their associations."""

    tasks: list[Task] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)


@dataclass
class ImportedSnapshot:
    """Result of a reconciliation, ready to replace the current state."""

    tasks: list[Task]
    tags: list[Tag]
    task_sessions: list[TaskSession]
    tag_sessions: list[TagSession]


def _zeroed_task(task: Task) -> Task:
    return replace(task, is_running=False, total_ms=0, last_started_at_ms=None)


def _zeroed_tag(tag: Tag) -> Tag:
    return replace(tag, active_children_count=0, total_ms=0, last_started_at_ms=None)


def sum_task_sessions(sessions: list[TaskSession]) -> Counter:
    """Return task id -> summed session duration."""
    totals: Counter = Counter()
    for session in sessions:
        totals[session.task_id] += session.duration_ms
    return totals


def sum_tag_sessions(sessions: list[TagSession]) -> Counter:
    """Return tag id -> summed session duration."""
    totals: Counter = Counter()
    for session in sessions:
        totals[session.tag_id] += session.duration_ms
    return totals


def _settle_associations(tasks_by_id: dict[int, Task], tags_by_id: dict[int, Tag]) -> None:
    """Keep only associations to live tags.

    An association to a deleted tag becomes a restore holder of that tag. One
    to a tag id known nowhere in the import is dropped.
    """
    dropped: list[tuple[int, int]] = []
    for task in list(tasks_by_id.values()):
        kept = set()
        for tag_id in sorted(task.tag_ids):
            tag = tags_by_id.get(tag_id)
            if tag is None:
                dropped.append((task.id, tag_id))
            elif tag.is_deleted:
                tags_by_id[tag_id] = replace(
                    tag, restore_task_ids=tag.restore_task_ids | {task.id}
                )
            else:
                kept.add(tag_id)
        if kept != task.tag_ids:
            tasks_by_id[task.id] = replace(task, tag_ids=frozenset(kept))

    if dropped:
        logger.warning(
            f"build_snapshot: dropped {len(dropped)} association(s) to unknown tags "
            f"(first (task, tag) pairs={dropped[:LOG_SAMPLE_SIZE]})"
        )


def build_snapshot(
    dictionary: Dictionary | None,
    task_sessions: list[TaskSession] | None,
    tag_sessions: list[TagSession] | None,
) -> ImportedSnapshot:
    """Build a consistent snapshot from a dictionary and session logs.

    Args:
        dictionary: Parsed dict.json, or None if it was not available
        task_sessions: Rows of sessions.csv, or None if the file was absent
        tag_sessions: Rows of tag_sessions.csv, or None if the file was absent

    Returns:
        ImportedSnapshot with tasks and tags sorted by id, totals computed from
        the sessions and all running state cleared

    Raises:
        StructuralError: If there is no dictionary and a session log is absent
    """
    if dictionary is None:
        # Without dict.json, both logs are needed to rebuild tasks and tags
        if task_sessions is None:
            raise StructuralError("sessions.csv is required when dict.json is not available")
        if tag_sessions is None:
            raise StructuralError("tag_sessions.csv is required when dict.json is not available")

    task_sessions = list(task_sessions or [])
    tag_sessions = list(tag_sessions or [])
    logger.info(
        f"build_snapshot: dict={'YES' if dictionary else 'NO'} "
        f"taskSessions={len(task_sessions)} tagSessions={len(tag_sessions)}"
    )

    tags_by_id: dict[int, Tag] = {}
    tasks_by_id: dict[int, Task] = {}
    if dictionary is not None:
        for tag in dictionary.tags:
            tags_by_id[tag.id] = _zeroed_tag(tag)
        for task in dictionary.tasks:
            tasks_by_id[task.id] = _zeroed_task(task)

    created_tags: list[int] = []
    created_tasks: list[int] = []
    for session in tag_sessions:
        tag = tags_by_id.get(session.tag_id)
        if tag is None:
            tag = Tag(
                id=session.tag_id,
                name=session.tag_name.strip() or placeholder_tag_name(session.tag_id),
            )
            tags_by_id[tag.id] = tag
            created_tags.append(tag.id)

        task = tasks_by_id.get(session.task_id)
        if tag.is_deleted:
            # A deleted tag is not attached to tasks; remember the holder instead
            if session.task_id not in tag.restore_task_ids:
                tags_by_id[tag.id] = replace(
                    tag, restore_task_ids=tag.restore_task_ids | {session.task_id}
                )
            if task is None:
                tasks_by_id[session.task_id] = Task(
                    id=session.task_id,
                    name=session.task_name.strip() or placeholder_task_name(session.task_id),
                )
                created_tasks.append(session.task_id)
        elif task is None:
            tasks_by_id[session.task_id] = Task(
                id=session.task_id,
                name=session.task_name.strip() or placeholder_task_name(session.task_id),
                tag_ids=frozenset({session.tag_id}),
            )
            created_tasks.append(session.task_id)
        elif session.tag_id not in task.tag_ids:
            tasks_by_id[task.id] = replace(task, tag_ids=task.tag_ids | {session.tag_id})

    if created_tags or created_tasks:
        logger.warning(
            f"build_snapshot: created from tag_sessions.csv -> tags={len(created_tags)} "
            f"tasks={len(created_tasks)} (firstTags={created_tags[:LOG_SAMPLE_SIZE]}, "
            f"firstTasks={created_tasks[:LOG_SAMPLE_SIZE]})"
        )

    _settle_associations(tasks_by_id, tags_by_id)

    created_from_task_sessions: list[int] = []
    for session in task_sessions:
        task = tasks_by_id.get(session.task_id)
        session_name = session.task_name.strip()
        if task is None:
            tasks_by_id[session.task_id] = Task(
                id=session.task_id,
                name=session_name or placeholder_task_name(session.task_id),
            )
            created_from_task_sessions.append(session.task_id)
        elif session_name and PLACEHOLDER_TASK_NAME.match(task.name):
            tasks_by_id[task.id] = replace(task, name=session_name)

    if created_from_task_sessions:
        logger.warning(
            f"build_snapshot: created from sessions.csv -> tasks={len(created_from_task_sessions)} "
            f"(firstTasks={created_from_task_sessions[:LOG_SAMPLE_SIZE]})"
        )

    task_totals = sum_task_sessions(task_sessions)
    tag_totals = sum_tag_sessions(tag_sessions)

    tasks = [
        replace(task, total_ms=task_totals.get(task.id, 0))
        for task in sorted(tasks_by_id.values(), key=lambda t: t.id)
    ]
    tags = [
        replace(tag, total_ms=tag_totals.get(tag.id, 0))
        for tag in sorted(tags_by_id.values(), key=lambda t: t.id)
    ]

    logger.info(f"build_snapshot: END tasks={len(tasks)} tags={len(tags)}")
    return ImportedSnapshot(
        tasks=tasks,
        tags=tags,
        task_sessions=task_sessions,
        tag_sessions=tag_sessions,
    )
