"""Entities and session records for multi-time-tracker.

Tasks and tags are frozen dataclasses: every engine operation returns new
versions instead of mutating the ones it was given. Session records are the
closed intervals that make up the accounting ledger.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Task:
    """A user-defined task with its accumulated time.

    Invariant: ``is_running`` is True exactly when ``last_started_at_ms`` is set.
    ``total_ms`` only holds closed time; the open interval is added on demand
    by :func:`multi_time_tracker.engine.display_ms`.
    """

    id: int
    name: str
    tag_ids: frozenset[int] = field(default_factory=frozenset)
    link: str = ""
    is_running: bool = False
    total_ms: int = 0
    last_started_at_ms: int | None = None  # None while paused
    is_deleted: bool = False
    deleted_at_ms: int | None = None

    @property
    def is_visible(self) -> bool:
        return not self.is_deleted


@dataclass(frozen=True)
class Tag:
    """A label that accumulates the time of every running task holding it.

    ``active_children_count`` is the number of running tasks feeding an open
    interval into this tag. ``last_started_at_ms`` is only a display hint: with
    several tasks sharing the tag, the per (task, tag) intervals kept by the
    engine are the real source of truth.
    """

    id: int
    name: str
    link: str = ""
    active_children_count: int = 0
    total_ms: int = 0
    last_started_at_ms: int | None = None
    is_deleted: bool = False
    deleted_at_ms: int | None = None
    # Tasks holding the tag right before it was deleted
    restore_task_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def is_visible(self) -> bool:
        return not self.is_deleted

    @property
    def is_running(self) -> bool:
        return self.active_children_count > 0


@dataclass(frozen=True)
class TaskSession:
    """Closed interval of a task, from play to stop."""

    task_id: int
    task_name: str  # name at close time
    start_ts: int
    end_ts: int

    @property
    def duration_ms(self) -> int:
        return max(0, self.end_ts - self.start_ts)


@dataclass(frozen=True)
class TagSession:
    """Closed interval during which a running task held a tag."""

    tag_id: int
    tag_name: str
    task_id: int
    task_name: str
    start_ts: int
    end_ts: int

    @property
    def duration_ms(self) -> int:
        return max(0, self.end_ts - self.start_ts)


@dataclass(frozen=True)
class ActiveTagStart:
    """Open (task, tag) interval as stored in a snapshot."""

    task_id: int
    tag_id: int
    start_ts: int


@dataclass
class RuntimeSnapshot:
    """Open-interval bookkeeping of an engine, detached from the engine.

    Attributes:
        active_task_start: task id -> start of its open interval
        active_tag_start: open (task, tag) intervals
        next_task_id: next id the task counter will hand out
        next_tag_id: next id the tag counter will hand out
    """

    active_task_start: dict[int, int] = field(default_factory=dict)
    active_tag_start: list[ActiveTagStart] = field(default_factory=list)
    next_task_id: int | None = None
    next_tag_id: int | None = None

    def is_empty(self) -> bool:
        return not self.active_task_start and not self.active_tag_start


@dataclass
class EngineResult:
    """New versions of the entity lists returned by an engine operation."""

    tasks: list[Task]
    tags: list[Tag]


def find_by_id(items, item_id: int):
    """Return the first task or tag with the given id, or None."""
    for item in items:
        if item.id == item_id:
            return item
    return None
