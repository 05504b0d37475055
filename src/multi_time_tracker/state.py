"""State management for multi-time-tracker.

StateManager is the single logical owner of the tracker state. It holds the
current task and tag lists, runs every mutation through the TimeEngine under
one lock, and afterwards:

- validates the counting invariants (when enabled)
- publishes the new lists to subscribed observers
- schedules a debounced snapshot write
"""

import logging
import random
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import backup
from .clock import Clock, SystemClock
from .engine import DEFAULT_QUICK_NAME_PREFIX, DEFAULT_QUICK_TAG_NAME, TimeEngine
from .errors import ValidationError
from .models import EngineResult, RuntimeSnapshot, Tag, TagSession, Task, TaskSession, find_by_id
from .persistence import DebouncedWriter
from .snapshot import Snapshot
from .utils import format_hhmmss

logger = logging.getLogger(__name__)

Observer = Callable[[list[Task], list[Tag]], None]


@dataclass
class StateManager:
    """Owns tasks, tags and the engine, and serializes every change.

    Entity lists are replaced, never mutated, so observers and callers can
    keep a reference to an older version safely.
    """

    engine: TimeEngine = field(default_factory=TimeEngine)
    clock: Clock = field(default_factory=SystemClock)
    writer: DebouncedWriter | None = None

    tasks: list[Task] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    app_usage_ms: int = 0
    install_at_ms: int | None = None

    # Configuration
    enable_validation: bool = True

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    _observers: list[Observer] = field(default_factory=list, repr=False, compare=False)

    # Observers

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register a callback receiving (tasks, tags) after each change.

        Returns:
            A callable that removes the observer again
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def _notify(self) -> None:
        tasks, tags = self.tasks, self.tags
        for observer in list(self._observers):
            observer(tasks, tags)

    # Lookup

    def now(self) -> int:
        return self.clock.now_ms()

    def get_task(self, task_id: int) -> Task | None:
        return find_by_id(self.tasks, task_id)

    def get_tag(self, tag_id: int) -> Tag | None:
        return find_by_id(self.tags, tag_id)

    def require_task(self, task_id: int) -> Task:
        """Return the task with the given id.

        Raises:
            ValidationError: If there is no such task
        """
        task = self.get_task(task_id)
        if task is None:
            raise ValidationError(f"Unknown task id {task_id}")
        return task

    def require_tag(self, tag_id: int) -> Tag:
        tag = self.get_tag(tag_id)
        if tag is None:
            raise ValidationError(f"Unknown tag id {tag_id}")
        return tag

    def visible_tasks(self) -> list[Task]:
        return [t for t in self.tasks if t.is_visible]

    def visible_tags(self) -> list[Tag]:
        return [t for t in self.tags if t.is_visible]

    @property
    def task_sessions(self) -> list[TaskSession]:
        return self.engine.task_sessions

    @property
    def tag_sessions(self) -> list[TagSession]:
        return self.engine.tag_sessions

    def task_display_ms(self, task: Task, now: int | None = None) -> int:
        return self.engine.task_display_ms(task, self.now() if now is None else now)

    def tag_display_ms(self, tag: Tag, now: int | None = None) -> int:
        return self.engine.tag_display_ms(tag, self.now() if now is None else now)

    # Validation

    def _check_tag_ids(self, tag_ids) -> frozenset[int]:
        """Reject tag ids that do not name a visible tag."""
        tag_ids = frozenset(tag_ids)
        live = {tag.id for tag in self.tags if not tag.is_deleted}
        unknown = sorted(tag_ids - live)
        if unknown:
            raise ValidationError(f"Unknown tag id(s): {', '.join(str(i) for i in unknown)}")
        return tag_ids

    def _validate_state(self, tasks: list[Task], tags: list[Tag]) -> None:
        """Validate the invariants linking tasks and tags.

        Invariants:
        - a task is running exactly when it has a start timestamp
        - a visible tag's active count equals the number of running tasks
          holding it, and a deleted tag has no active children

        Raises:
            ValueError: If an invariant is violated
        """
        for task in tasks:
            if task.is_running != (task.last_started_at_ms is not None):
                raise ValueError(
                    f"Invalid task state: task {task.id} is_running={task.is_running} "
                    f"but last_started_at_ms={task.last_started_at_ms}"
                )

        for tag in tags:
            if tag.is_deleted:
                expected = 0
            else:
                expected = sum(
                    1 for t in tasks if t.is_running and not t.is_deleted and tag.id in t.tag_ids
                )
            if tag.active_children_count != expected:
                raise ValueError(
                    f"Invalid tag state: tag {tag.id} has active_children_count="
                    f"{tag.active_children_count}, expected {expected}"
                )

    # Commit

    def _commit(self, result: EngineResult, action: str) -> None:
        """Install a new version of the entity lists and fan out the change."""
        if self.enable_validation:
            self._validate_state(result.tasks, result.tags)
        self.tasks = list(result.tasks)
        self.tags = list(result.tags)
        logger.debug(f"State updated by {action}", extra={"event_data": self._counts()})
        self._notify()
        self._persist()

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Serialize one mutation and undo its engine changes if it is not committed.

        Engine operations record sessions, open intervals and ids as they run.
        When the operation or the validation of its result raises before
        ``_commit`` installs the new lists, the engine is rolled back so it
        keeps matching the entity lists.
        """
        with self._lock:
            checkpoint = self.engine.checkpoint()
            tasks, tags = self.tasks, self.tags
            try:
                yield
            except Exception:
                uncommitted = self.tasks is tasks and self.tags is tags
                if uncommitted and self.engine.checkpoint() != checkpoint:
                    self.engine.rollback(checkpoint)
                raise

    def _persist(self) -> None:
        if self.writer is not None:
            self.writer.schedule(self.to_snapshot())

    def flush(self) -> bool:
        """Write any pending snapshot now."""
        if self.writer is None:
            return False
        return self.writer.flush()

    def _counts(self) -> dict[str, int]:
        return {
            "tasks": len(self.tasks),
            "tags": len(self.tags),
            "running": len(self.engine.running_task_ids()),
        }

    # Creation

    def create_task(self, name: str, tag_ids=(), link: str = "") -> Task:
        with self._transaction():
            tag_ids = self._check_tag_ids(tag_ids)
            task = self.engine.create_task(name, tag_ids, link)
            self._commit(EngineResult(self.tasks + [task], self.tags), "create_task")
            return task

    def create_tag(self, name: str, link: str = "") -> Tag:
        with self._transaction():
            tag = self.engine.create_tag(name, link)
            self._commit(EngineResult(self.tasks, self.tags + [tag]), "create_tag")
            return tag

    # Transitions

    def toggle_task(self, task_id: int, now: int | None = None) -> Task | None:
        """Start or stop a task. Returns the new version of the task."""
        with self._transaction():
            now = self.now() if now is None else now
            result = self.engine.toggle_task(self.tasks, self.tags, task_id, now)
            self._commit(result, "toggle_task")
            return self.get_task(task_id)

    def set_task_tags(self, task_id: int, tag_ids, now: int | None = None) -> Task:
        with self._transaction():
            self.require_task(task_id)
            tag_ids = self._check_tag_ids(tag_ids)
            now = self.now() if now is None else now
            result = self.engine.reassign_task_tags(self.tasks, self.tags, task_id, tag_ids, now)
            self._commit(result, "set_task_tags")
            return self.get_task(task_id)

    def update_task(
        self, task_id: int, name: str, link: str, tag_ids, now: int | None = None
    ) -> Task:
        with self._transaction():
            self.require_task(task_id)
            tag_ids = self._check_tag_ids(tag_ids)
            now = self.now() if now is None else now
            result = self.engine.update_task(self.tasks, self.tags, task_id, name, link, tag_ids, now)
            self._commit(result, "update_task")
            return self.get_task(task_id)

    def rename_task(self, task_id: int, name: str) -> Task:
        with self._transaction():
            self.require_task(task_id)
            self._commit(self.engine.rename_task(self.tasks, self.tags, task_id, name), "rename_task")
            return self.get_task(task_id)

    def rename_tag(self, tag_id: int, name: str) -> Tag:
        with self._transaction():
            self.require_tag(tag_id)
            self._commit(self.engine.rename_tag(self.tasks, self.tags, tag_id, name), "rename_tag")
            return self.get_tag(tag_id)

    # Deletion

    def delete_task(self, task_id: int, now: int | None = None) -> None:
        with self._transaction():
            self.require_task(task_id)
            now = self.now() if now is None else now
            self._commit(self.engine.delete_task(self.tasks, self.tags, task_id, now), "delete_task")

    def delete_tag(self, tag_id: int, now: int | None = None) -> None:
        with self._transaction():
            self.require_tag(tag_id)
            now = self.now() if now is None else now
            self._commit(self.engine.delete_tag(self.tasks, self.tags, tag_id, now), "delete_tag")

    def restore_task(self, task_id: int) -> Task:
        with self._transaction():
            self.require_task(task_id)
            self._commit(self.engine.restore_task(self.tasks, self.tags, task_id), "restore_task")
            return self.get_task(task_id)

    def restore_tag(self, tag_id: int, now: int | None = None) -> Tag:
        with self._transaction():
            self.require_tag(tag_id)
            now = self.now() if now is None else now
            self._commit(self.engine.restore_tag(self.tasks, self.tags, tag_id, now), "restore_tag")
            return self.get_tag(tag_id)

    def purge_task(self, task_id: int, now: int | None = None) -> None:
        with self._transaction():
            self.require_task(task_id)
            now = self.now() if now is None else now
            self._commit(self.engine.purge_task(self.tasks, self.tags, task_id, now), "purge_task")

    def purge_tag(self, tag_id: int, now: int | None = None) -> None:
        with self._transaction():
            self.require_tag(tag_id)
            now = self.now() if now is None else now
            self._commit(self.engine.purge_tag(self.tasks, self.tags, tag_id, now), "purge_tag")

    def start_quick_task(
        self,
        tag_name: str = DEFAULT_QUICK_TAG_NAME,
        name_prefix: str = DEFAULT_QUICK_NAME_PREFIX,
        now: int | None = None,
        rng: random.Random | None = None,
    ) -> Task:
        with self._transaction():
            now = self.now() if now is None else now
            result, task = self.engine.start_quick_task(
                self.tasks, self.tags, now, tag_name=tag_name, name_prefix=name_prefix, rng=rng
            )
            self._commit(result, "start_quick_task")
            return task

    def ensure_install_time(self, now: int | None = None) -> int:
        """Record the install time on first use and schedule it for writing."""
        with self._lock:
            if self.install_at_ms is None:
                self.install_at_ms = self.now() if now is None else now
                self._persist()
            return self.install_at_ms

    # Snapshot

    def to_snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(
                tasks=list(self.tasks),
                tags=list(self.tags),
                task_sessions=self.engine.task_sessions,
                tag_sessions=self.engine.tag_sessions,
                app_usage_ms=self.app_usage_ms,
                install_at_ms=self.install_at_ms,
                runtime=self.engine.export_runtime_snapshot(),
            )

    def restore_snapshot(self, snapshot: Snapshot) -> None:
        """Replace the state with a persisted snapshot, resuming running tasks.

        Nothing is scheduled for writing: the snapshot is what is stored already.
        """
        with self._lock:
            engine = TimeEngine()
            result = engine.import_runtime_snapshot(
                snapshot.tasks,
                snapshot.tags,
                snapshot.task_sessions,
                snapshot.tag_sessions,
                snapshot.runtime,
            )
            if self.enable_validation:
                self._validate_state(result.tasks, result.tags)
            self.engine = engine
            self.tasks = list(result.tasks)
            self.tags = list(result.tags)
            self.app_usage_ms = snapshot.app_usage_ms
            self.install_at_ms = snapshot.install_at_ms
            if self.writer is not None:
                self.writer.mark_written(self.to_snapshot())
            self._notify()

    # Backup

    def import_backup(self, imported: "backup.BackupImport") -> None:
        """Replace the whole state with an imported backup set.

        The replacement engine is built completely before the current state
        is touched. Nothing is running afterwards.
        """
        snapshot = imported.snapshot
        with self._lock:
            engine = TimeEngine()
            result = engine.import_runtime_snapshot(
                snapshot.tasks,
                snapshot.tags,
                snapshot.task_sessions,
                snapshot.tag_sessions,
                RuntimeSnapshot(),
            )
            if self.enable_validation:
                self._validate_state(result.tasks, result.tags)

            self.engine = engine
            if imported.app_usage_ms is not None:
                self.app_usage_ms = imported.app_usage_ms
            if imported.install_at_ms is not None:
                self.install_at_ms = imported.install_at_ms
            logger.info(
                f"Imported backup: {len(result.tasks)} tasks, {len(result.tags)} tags",
                extra={"event_data": {"files": imported.files}},
            )
            self._commit(result, "import_backup")

    def export_backup(self, directory: str | Path, now: int | None = None) -> list[Path]:
        with self._lock:
            now = self.now() if now is None else now
            return backup.export_to_directory(
                directory,
                self.tasks,
                self.tags,
                self.engine.task_sessions,
                self.engine.tag_sessions,
                self.engine.open_tag_intervals(),
                now,
                app_usage_ms=self.app_usage_ms,
                install_at_ms=self.install_at_ms,
            )

    # Debugging

    def get_state_summary(self, now: int | None = None) -> dict[str, Any]:
        """Get a summary of current state for debugging.

        Returns:
            Dictionary with current state information
        """
        with self._lock:
            now = self.now() if now is None else now
            running = self.engine.running_task_ids()
            return {
                "now_ms": now,
                "tasks": len(self.visible_tasks()),
                "tags": len(self.visible_tags()),
                "deleted_tasks": len(self.tasks) - len(self.visible_tasks()),
                "deleted_tags": len(self.tags) - len(self.visible_tags()),
                "running_task_ids": running,
                "open_tag_intervals": len(self.engine.open_tag_intervals()),
                "task_sessions": len(self.engine.task_sessions),
                "tag_sessions": len(self.engine.tag_sessions),
                "next_task_id": self.engine.task_ids.next_id,
                "next_tag_id": self.engine.tag_ids.next_id,
                "running_time": {
                    task.name: format_hhmmss(self.engine.task_display_ms(task, now))
                    for task in self.tasks
                    if task.id in running
                },
            }
