"""Interval accounting engine.

The engine opens and closes timed intervals for tasks and, through them, for
their tags. It owns only the mutable bookkeeping:

- the id counters for tasks and tags
- the open interval of every running task (task id -> start)
- the open interval of every (task, tag) pair of a running task
- the closed TaskSession and TagSession records

Entity lists are passed in and new versions are returned in an EngineResult.
The lists given to an operation are never modified.

Rules:
- a tag runs while at least one running task holds it (active_children_count > 0)
- each running task feeds its own interval into each of its tags, so a tag
  shared by two running tasks has two open intervals
- a closed interval of zero or negative length adds no time and is never logged
"""

import logging
import random
from collections import Counter
from dataclasses import dataclass, replace

from .errors import ValidationError
from .models import (
    ActiveTagStart,
    EngineResult,
    RuntimeSnapshot,
    Tag,
    TagSession,
    Task,
    TaskSession,
    find_by_id,
)

logger = logging.getLogger(__name__)

DEFAULT_QUICK_TAG_NAME = "#temp"
DEFAULT_QUICK_NAME_PREFIX = "Quick"
# No 0/O/1/I, they are too easy to mix up
QUICK_NAME_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
QUICK_NAME_LENGTH = 6


def display_ms(total_ms: int, last_started_at_ms: int | None, now: int) -> int:
    """Return the live elapsed time of an entity.

    This never changes any state, so callers refresh by calling it again with a
    newer ``now`` instead of incrementing counters.

    Args:
        total_ms: Accumulated closed time
        last_started_at_ms: Start of the open interval, or None when paused
        now: Current wall-clock time in milliseconds

    Returns:
        ``total_ms`` plus the elapsed part of the open interval, if any
    """
    if last_started_at_ms is None:
        return total_ms
    return total_ms + max(0, now - last_started_at_ms)


def quick_task_name(prefix: str = DEFAULT_QUICK_NAME_PREFIX, rng: random.Random | None = None) -> str:
    """Return a random task name such as ``Quick-7KX2PD``."""
    rng = rng or random
    suffix = "".join(rng.choice(QUICK_NAME_ALPHABET) for _ in range(QUICK_NAME_LENGTH))
    return f"{prefix}-{suffix}"


def _clean_name(name: str | None, kind: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{kind} name must not be blank")
    return cleaned


def _replace_item(items: list, new_item) -> list:
    return [new_item if item.id == new_item.id else item for item in items]


class IdAllocator:
    """Monotonic id counter. Ids are never handed out twice."""

    def __init__(self, next_id: int = 1) -> None:
        self.next_id = max(1, next_id)

    def allocate(self) -> int:
        allocated = self.next_id
        self.next_id += 1
        return allocated

    def ensure_above(self, used_id: int) -> None:
        """Move the counter past an id that is already in use."""
        if used_id >= self.next_id:
            self.next_id = used_id + 1


@dataclass(frozen=True)
class EngineCheckpoint:
    """Copy of the engine bookkeeping, taken before a change that may be rejected."""

    active_task_start: dict[int, int]
    active_tag_start: dict[tuple[int, int], int]
    task_sessions: list[TaskSession]
    tag_sessions: list[TagSession]
    next_task_id: int
    next_tag_id: int


class TimeEngine:
    """State machine over tasks, tags and their open intervals.

    A task is either Paused or Running; ``toggle_task`` is the only transition.
    All other operations keep the per-tag accounting consistent when the tag
    set of a running task changes or when entities are deleted.

    The engine is not thread safe. One owner (see StateManager) must serialize
    every call on a given instance.
    """

    def __init__(self) -> None:
        self.task_ids = IdAllocator()
        self.tag_ids = IdAllocator()
        self._active_task_start: dict[int, int] = {}
        self._active_tag_start: dict[tuple[int, int], int] = {}
        self._task_sessions: list[TaskSession] = []
        self._tag_sessions: list[TagSession] = []

    # Creation

    def create_task(self, name: str, tag_ids=(), link: str = "") -> Task:
        """Return a new paused task with zero accumulated time.

        Raises:
            ValidationError: If the name is blank
        """
        name = _clean_name(name, "Task")
        task = Task(
            id=self.task_ids.allocate(),
            name=name,
            tag_ids=frozenset(tag_ids),
            link=(link or "").strip(),
        )
        logger.info(f"Created task {task.id} '{task.name}'", extra={"task_id": task.id})
        return task

    def create_tag(self, name: str, link: str = "") -> Tag:
        """Return a new idle tag with zero accumulated time.

        Raises:
            ValidationError: If the name is blank
        """
        name = _clean_name(name, "Tag")
        tag = Tag(id=self.tag_ids.allocate(), name=name, link=(link or "").strip())
        logger.info(f"Created tag {tag.id} '{tag.name}'", extra={"tag_id": tag.id})
        return tag

    # Live time

    def task_display_ms(self, task: Task, now: int) -> int:
        return display_ms(task.total_ms, task.last_started_at_ms, now)

    def tag_display_ms(self, tag: Tag, now: int) -> int:
        """Return the live time of a tag, summing every open interval feeding it."""
        running = sum(
            max(0, now - start)
            for (_, tag_id), start in self._active_tag_start.items()
            if tag_id == tag.id
        )
        return tag.total_ms + running

    def running_task_ids(self) -> list[int]:
        return sorted(self._active_task_start)

    def open_tag_intervals(self) -> list[ActiveTagStart]:
        return [
            ActiveTagStart(task_id=task_id, tag_id=tag_id, start_ts=start)
            for (task_id, tag_id), start in sorted(self._active_tag_start.items())
        ]

    # Sessions

    @property
    def task_sessions(self) -> list[TaskSession]:
        return list(self._task_sessions)

    @property
    def tag_sessions(self) -> list[TagSession]:
        return list(self._tag_sessions)

    # Transitions

    def toggle_task(self, tasks: list[Task], tags: list[Tag], task_id: int, now: int) -> EngineResult:
        """Start a paused task or stop a running one.

        Unknown and soft-deleted tasks are ignored and the inputs are returned
        unchanged.
        """
        task = find_by_id(tasks, task_id)
        if task is None or task.is_deleted:
            logger.debug(f"Toggle ignored, no visible task {task_id}", extra={"task_id": task_id})
            return EngineResult(tasks, tags)
        if task.is_running:
            return self._stop_task(tasks, tags, task, now)
        return self._start_task(tasks, tags, task, now)

    def _start_task(self, tasks: list[Task], tags: list[Tag], task: Task, now: int) -> EngineResult:
        self._active_task_start[task.id] = now
        started = replace(task, is_running=True, last_started_at_ms=now)
        new_tags = self._open_tag_intervals(tags, started, started.tag_ids, now)
        logger.debug(
            f"Started task {task.id}",
            extra={"task_id": task.id, "now_ms": now, "tags": set(task.tag_ids)},
        )
        return EngineResult(_replace_item(tasks, started), new_tags)

    def _stop_task(self, tasks: list[Task], tags: list[Tag], task: Task, now: int) -> EngineResult:
        open_start = self._active_task_start.pop(task.id, None)
        if open_start is None:
            open_start = task.last_started_at_ms
            logger.warning(
                f"No open interval recorded for running task {task.id}, "
                f"falling back to last start {open_start}",
                extra={"task_id": task.id, "now_ms": now},
            )

        delta = max(0, now - open_start) if open_start is not None else 0
        if open_start is not None and open_start < now:
            self._task_sessions.append(
                TaskSession(task_id=task.id, task_name=task.name, start_ts=open_start, end_ts=now)
            )

        stopped = replace(
            task, is_running=False, total_ms=task.total_ms + delta, last_started_at_ms=None
        )
        new_tags = self._close_tag_intervals(tags, task, task.tag_ids, now, fallback_start=open_start)
        logger.debug(
            f"Stopped task {task.id} after {delta} ms",
            extra={"task_id": task.id, "now_ms": now, "tags": set(task.tag_ids)},
        )
        return EngineResult(_replace_item(tasks, stopped), new_tags)

    def _open_tag_intervals(self, tags: list[Tag], task: Task, tag_ids, now: int) -> list[Tag]:
        """Open a (task, tag) interval for every given tag that is not open yet."""
        known = {tag.id: tag for tag in tags}
        opened = set()
        for tag_id in sorted(tag_ids):
            key = (task.id, tag_id)
            if key in self._active_tag_start:
                continue
            tag = known.get(tag_id)
            if tag is None or tag.is_deleted:
                logger.warning(
                    f"Task {task.id} references missing tag {tag_id}, not opening an interval",
                    extra={"task_id": task.id, "tag_id": tag_id},
                )
                continue
            self._active_tag_start[key] = now
            opened.add(tag_id)

        new_tags = []
        for tag in tags:
            if tag.id in opened:
                tag = replace(
                    tag,
                    active_children_count=tag.active_children_count + 1,
                    last_started_at_ms=now if tag.active_children_count == 0 else tag.last_started_at_ms,
                )
            new_tags.append(tag)
        return new_tags

    def _close_tag_intervals(
        self,
        tags: list[Tag],
        task: Task,
        tag_ids,
        now: int,
        fallback_start: int | None,
    ) -> list[Tag]:
        """Close the (task, tag) interval of every given tag.

        Each closed interval adds its length to the tag total, decrements the
        tag's active count and, when positive, is logged as a TagSession.
        """
        known = {tag.id: tag for tag in tags}
        updated: dict[int, Tag] = {}
        for tag_id in sorted(tag_ids):
            start = self._active_tag_start.pop((task.id, tag_id), None)
            if start is None:
                if fallback_start is None or tag_id not in known:
                    continue
                start = fallback_start
                logger.warning(
                    f"No open interval recorded for task {task.id} / tag {tag_id}, "
                    f"falling back to {start}",
                    extra={"task_id": task.id, "tag_id": tag_id, "now_ms": now},
                )
            tag = known.get(tag_id)
            if tag is None:
                continue

            delta = max(0, now - start)
            count = max(0, tag.active_children_count - 1)
            if start < now:
                self._tag_sessions.append(
                    TagSession(
                        tag_id=tag.id,
                        tag_name=tag.name,
                        task_id=task.id,
                        task_name=task.name,
                        start_ts=start,
                        end_ts=now,
                    )
                )
            updated[tag_id] = replace(
                tag,
                active_children_count=count,
                total_ms=tag.total_ms + delta,
                last_started_at_ms=None if count == 0 else tag.last_started_at_ms,
            )

        return [updated.get(tag.id, tag) for tag in tags]

    def reassign_task_tags(
        self, tasks: list[Task], tags: list[Tag], task_id: int, new_tag_ids, now: int
    ) -> EngineResult:
        """Replace the tag set of a task.

        On a paused task this is a pure relabel. On a running task, removing a
        tag closes that tag's interval and adding one opens a new interval at
        ``now``. The task's own interval is never touched: a task session spans
        play to stop whatever tags it held meanwhile.
        """
        task = find_by_id(tasks, task_id)
        if task is None:
            return EngineResult(tasks, tags)
        new_ids = frozenset(new_tag_ids)
        if new_ids == task.tag_ids:
            return EngineResult(tasks, tags)

        removed = task.tag_ids - new_ids
        added = new_ids - task.tag_ids
        relabeled = replace(task, tag_ids=new_ids)

        new_tags = tags
        if task.is_running:
            new_tags = self._close_tag_intervals(
                new_tags, task, removed, now, fallback_start=task.last_started_at_ms
            )
            new_tags = self._open_tag_intervals(new_tags, relabeled, added, now)

        logger.debug(
            f"Reassigned tags of task {task.id}: -{sorted(removed)} +{sorted(added)}",
            extra={"task_id": task.id, "now_ms": now, "tags": set(new_ids)},
        )
        return EngineResult(_replace_item(tasks, relabeled), new_tags)

    def update_task(
        self,
        tasks: list[Task],
        tags: list[Tag],
        task_id: int,
        name: str,
        link: str,
        new_tag_ids,
        now: int,
    ) -> EngineResult:
        """Rename a task, change its link and replace its tags in one step."""
        name = _clean_name(name, "Task")
        task = find_by_id(tasks, task_id)
        if task is None:
            return EngineResult(tasks, tags)
        edited = replace(task, name=name, link=(link or "").strip())
        return self.reassign_task_tags(_replace_item(tasks, edited), tags, task_id, new_tag_ids, now)

    def rename_task(self, tasks: list[Task], tags: list[Tag], task_id: int, name: str) -> EngineResult:
        """Rename a task. Sessions already closed keep the name they were closed with."""
        name = _clean_name(name, "Task")
        task = find_by_id(tasks, task_id)
        if task is None:
            return EngineResult(tasks, tags)
        return EngineResult(_replace_item(tasks, replace(task, name=name)), tags)

    def rename_tag(self, tasks: list[Task], tags: list[Tag], tag_id: int, name: str) -> EngineResult:
        name = _clean_name(name, "Tag")
        tag = find_by_id(tags, tag_id)
        if tag is None:
            return EngineResult(tasks, tags)
        return EngineResult(tasks, _replace_item(tags, replace(tag, name=name)))

    # Deletion

    def delete_task(self, tasks: list[Task], tags: list[Tag], task_id: int, now: int) -> EngineResult:
        """Stop the task if needed, then soft-delete it."""
        task = find_by_id(tasks, task_id)
        if task is None or task.is_deleted:
            return EngineResult(tasks, tags)

        result = EngineResult(tasks, tags)
        if task.is_running:
            result = self._stop_task(tasks, tags, task, now)
        self._forget_task(task_id)

        task = find_by_id(result.tasks, task_id)
        deleted = replace(task, is_deleted=True, deleted_at_ms=now)
        logger.info(f"Deleted task {task_id}", extra={"task_id": task_id, "now_ms": now})
        return EngineResult(_replace_item(result.tasks, deleted), result.tags)

    def delete_tag(self, tasks: list[Task], tags: list[Tag], tag_id: int, now: int) -> EngineResult:
        """Detach the tag from every task holding it, then soft-delete it.

        Detaching goes through the reassignment logic, so the open interval of
        a running holder closes at ``now``. The holders are remembered in
        ``restore_task_ids`` so that restoring the tag re-attaches it.
        """
        tag = find_by_id(tags, tag_id)
        if tag is None or tag.is_deleted:
            return EngineResult(tasks, tags)

        holders = sorted(task.id for task in tasks if tag_id in task.tag_ids)
        result = EngineResult(tasks, tags)
        for holder_id in holders:
            holder = find_by_id(result.tasks, holder_id)
            result = self.reassign_task_tags(
                result.tasks, result.tags, holder_id, holder.tag_ids - {tag_id}, now
            )

        tag = find_by_id(result.tags, tag_id)
        deleted = replace(
            tag,
            is_deleted=True,
            deleted_at_ms=now,
            restore_task_ids=frozenset(holders),
            active_children_count=0,
            last_started_at_ms=None,
        )
        logger.info(
            f"Deleted tag {tag_id}, detached from {len(holders)} task(s)",
            extra={"tag_id": tag_id, "now_ms": now},
        )
        return EngineResult(result.tasks, _replace_item(result.tags, deleted))

    def restore_task(self, tasks: list[Task], tags: list[Tag], task_id: int) -> EngineResult:
        """Undo a soft delete. The task comes back paused."""
        task = find_by_id(tasks, task_id)
        if task is None or not task.is_deleted:
            return EngineResult(tasks, tags)
        live_tag_ids = {tag.id for tag in tags if not tag.is_deleted}
        restored = replace(
            task, is_deleted=False, deleted_at_ms=None, tag_ids=task.tag_ids & live_tag_ids
        )
        return EngineResult(_replace_item(tasks, restored), tags)

    def restore_tag(self, tasks: list[Task], tags: list[Tag], tag_id: int, now: int) -> EngineResult:
        """Undo a tag delete and re-attach it to the tasks that held it.

        Tasks that are running again get a fresh tag interval opened at ``now``.
        """
        tag = find_by_id(tags, tag_id)
        if tag is None or not tag.is_deleted:
            return EngineResult(tasks, tags)

        restored = replace(tag, is_deleted=False, deleted_at_ms=None, restore_task_ids=frozenset())
        result = EngineResult(tasks, _replace_item(tags, restored))
        for task_id in sorted(tag.restore_task_ids):
            task = find_by_id(result.tasks, task_id)
            if task is None:
                continue
            result = self.reassign_task_tags(
                result.tasks, result.tags, task_id, task.tag_ids | {tag_id}, now
            )
        return result

    def purge_task(self, tasks: list[Task], tags: list[Tag], task_id: int, now: int) -> EngineResult:
        """Remove a task and all of its sessions for good.

        Tag totals lose the time of the purged tag sessions, so they stay equal
        to what the remaining session log adds up to.
        """
        task = find_by_id(tasks, task_id)
        if task is None:
            return EngineResult(tasks, tags)
        result = EngineResult(tasks, tags)
        if not task.is_deleted:
            result = self.delete_task(tasks, tags, task_id, now)

        self._task_sessions = [s for s in self._task_sessions if s.task_id != task_id]
        removed_by_tag: Counter[int] = Counter()
        kept = []
        for session in self._tag_sessions:
            if session.task_id == task_id:
                removed_by_tag[session.tag_id] += session.duration_ms
            else:
                kept.append(session)
        self._tag_sessions = kept

        new_tags = []
        for tag in result.tags:
            removed = removed_by_tag.get(tag.id, 0)
            if removed or task_id in tag.restore_task_ids:
                tag = replace(
                    tag,
                    total_ms=max(0, tag.total_ms - removed),
                    restore_task_ids=tag.restore_task_ids - {task_id},
                )
            new_tags.append(tag)

        logger.info(f"Purged task {task_id}", extra={"task_id": task_id})
        return EngineResult([t for t in result.tasks if t.id != task_id], new_tags)

    def purge_tag(self, tasks: list[Task], tags: list[Tag], tag_id: int, now: int) -> EngineResult:
        """Remove a tag and all of its sessions for good."""
        tag = find_by_id(tags, tag_id)
        if tag is None:
            return EngineResult(tasks, tags)
        result = EngineResult(tasks, tags)
        if not tag.is_deleted:
            result = self.delete_tag(tasks, tags, tag_id, now)

        self._tag_sessions = [s for s in self._tag_sessions if s.tag_id != tag_id]
        new_tasks = [
            replace(task, tag_ids=task.tag_ids - {tag_id}) if tag_id in task.tag_ids else task
            for task in result.tasks
        ]
        logger.info(f"Purged tag {tag_id}", extra={"tag_id": tag_id})
        return EngineResult(new_tasks, [t for t in result.tags if t.id != tag_id])

    def _forget_task(self, task_id: int) -> None:
        self._active_task_start.pop(task_id, None)
        for key in [key for key in self._active_tag_start if key[0] == task_id]:
            del self._active_tag_start[key]

    # Quick task

    def start_quick_task(
        self,
        tasks: list[Task],
        tags: list[Tag],
        now: int,
        tag_name: str = DEFAULT_QUICK_TAG_NAME,
        name_prefix: str = DEFAULT_QUICK_NAME_PREFIX,
        rng: random.Random | None = None,
    ) -> tuple[EngineResult, Task]:
        """Create a randomly named task tagged ``tag_name`` and start it.

        The tag is created when no visible tag has that name yet.

        Returns:
            Tuple of (engine result, the started task)
        """
        temp_tag = next((t for t in tags if t.name == tag_name and not t.is_deleted), None)
        new_tags = list(tags)
        if temp_tag is None:
            temp_tag = self.create_tag(tag_name)
            new_tags.append(temp_tag)

        task = self.create_task(quick_task_name(name_prefix, rng), {temp_tag.id})
        result = self.toggle_task(list(tasks) + [task], new_tags, task.id, now)
        return result, find_by_id(result.tasks, task.id)

    # Rollback

    def checkpoint(self) -> EngineCheckpoint:
        return EngineCheckpoint(
            active_task_start=dict(self._active_task_start),
            active_tag_start=dict(self._active_tag_start),
            task_sessions=list(self._task_sessions),
            tag_sessions=list(self._tag_sessions),
            next_task_id=self.task_ids.next_id,
            next_tag_id=self.tag_ids.next_id,
        )

    def rollback(self, checkpoint: EngineCheckpoint) -> None:
        """Return the bookkeeping to a checkpoint, undoing every change made since."""
        self._active_task_start = dict(checkpoint.active_task_start)
        self._active_tag_start = dict(checkpoint.active_tag_start)
        self._task_sessions = list(checkpoint.task_sessions)
        self._tag_sessions = list(checkpoint.tag_sessions)
        self.task_ids = IdAllocator(checkpoint.next_task_id)
        self.tag_ids = IdAllocator(checkpoint.next_tag_id)
        logger.warning("Engine rolled back to the last committed state")

    # Runtime snapshot

    def export_runtime_snapshot(self) -> RuntimeSnapshot:
        return RuntimeSnapshot(
            active_task_start=dict(self._active_task_start),
            active_tag_start=self.open_tag_intervals(),
            next_task_id=self.task_ids.next_id,
            next_tag_id=self.tag_ids.next_id,
        )

    def import_runtime_snapshot(
        self,
        tasks: list[Task],
        tags: list[Tag],
        task_sessions: list[TaskSession],
        tag_sessions: list[TagSession],
        runtime: RuntimeSnapshot | None = None,
    ) -> EngineResult:
        """Resume from persisted state as if the process had never stopped.

        Bookkeeping that is missing or contradicts the entities is rebuilt from
        the entities themselves and a warning is logged:

        - a running task without a map entry resumes from ``last_started_at_ms``
        - a (task, tag) pair without a map entry resumes from the task start
        - ``active_children_count`` is recomputed from the open pairs

        Returns:
            The (possibly repaired) entity lists
        """
        runtime = runtime or RuntimeSnapshot()
        self._task_sessions = list(task_sessions)
        self._tag_sessions = list(tag_sessions)
        self._active_task_start = {}
        self._active_tag_start = {}

        new_tasks = []
        for task in tasks:
            if task.is_running and not task.is_deleted:
                start = runtime.active_task_start.get(task.id, task.last_started_at_ms)
                if task.id not in runtime.active_task_start:
                    logger.warning(
                        f"Running task {task.id} has no open interval, resuming from {start}",
                        extra={"task_id": task.id},
                    )
                if start is None:
                    logger.warning(
                        f"Running task {task.id} has no start time, marking it paused",
                        extra={"task_id": task.id},
                    )
                    task = replace(task, is_running=False, last_started_at_ms=None)
                else:
                    self._active_task_start[task.id] = start
                    task = replace(task, last_started_at_ms=start)
            elif task.is_running or task.last_started_at_ms is not None:
                task = replace(task, is_running=False, last_started_at_ms=None)
            new_tasks.append(task)

        live_tag_ids = {tag.id for tag in tags if not tag.is_deleted}
        stored_pairs = {(a.task_id, a.tag_id): a.start_ts for a in runtime.active_tag_start}
        for task in new_tasks:
            if not task.is_running:
                continue
            for tag_id in sorted(task.tag_ids & live_tag_ids):
                start = stored_pairs.get((task.id, tag_id))
                if start is None:
                    start = self._active_task_start[task.id]
                    logger.warning(
                        f"Task {task.id} / tag {tag_id} has no open interval, resuming from {start}",
                        extra={"task_id": task.id, "tag_id": tag_id},
                    )
                self._active_tag_start[(task.id, tag_id)] = start

        counts = Counter(tag_id for _, tag_id in self._active_tag_start)
        first_start: dict[int, int] = {}
        for (_, tag_id), start in self._active_tag_start.items():
            first_start[tag_id] = min(start, first_start.get(tag_id, start))

        new_tags = []
        for tag in tags:
            expected = counts.get(tag.id, 0)
            if tag.active_children_count != expected:
                logger.warning(
                    f"Tag {tag.id} active count {tag.active_children_count} repaired to {expected}",
                    extra={"tag_id": tag.id},
                )
            hint = tag.last_started_at_ms if tag.last_started_at_ms is not None else first_start.get(tag.id)
            tag = replace(
                tag,
                active_children_count=expected,
                last_started_at_ms=hint if expected else None,
            )
            new_tags.append(tag)

        self.task_ids = IdAllocator(runtime.next_task_id or 1)
        self.tag_ids = IdAllocator(runtime.next_tag_id or 1)
        for used in [t.id for t in new_tasks] + [s.task_id for s in self._task_sessions]:
            self.task_ids.ensure_above(used)
        for session in self._tag_sessions:
            self.task_ids.ensure_above(session.task_id)
            self.tag_ids.ensure_above(session.tag_id)
        for tag in new_tags:
            self.tag_ids.ensure_above(tag.id)
            for holder_id in tag.restore_task_ids:
                self.task_ids.ensure_above(holder_id)
        for task in new_tasks:
            for tag_id in task.tag_ids:
                self.tag_ids.ensure_above(tag_id)

        logger.info(
            f"Runtime restored: {len(self._active_task_start)} running task(s), "
            f"{len(self._active_tag_start)} open tag interval(s)"
        )
        return EngineResult(new_tasks, new_tags)
