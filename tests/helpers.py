"""
Helper utilities for building tracker scenarios in tests.

This module provides a builder that drives a TimeEngine by task and tag
names, so tests can read like the scenario they describe.
"""

from pathlib import Path

from multi_time_tracker.engine import TimeEngine
from multi_time_tracker.models import Tag, Task, find_by_id

# 2025-01-01 09:00:00 UTC
START_MS = 1_735_722_000_000


class ScenarioBuilder:
    """
    Builder driving a TimeEngine by names instead of ids.

    Example:
        >>> s = (ScenarioBuilder()
        ...     .add_tag("A")
        ...     .add_task("T", tags=["A"])
        ...     .toggle("T", at=0)
        ...     .toggle("T", at=100))
        >>> s.task("T").total_ms
        100
    """

    def __init__(self, engine: TimeEngine | None = None):
        self.engine = engine or TimeEngine()
        self.tasks: list[Task] = []
        self.tags: list[Tag] = []
        self.task_ids: dict[str, int] = {}
        self.tag_ids: dict[str, int] = {}

    def add_tag(self, name: str) -> "ScenarioBuilder":
        tag = self.engine.create_tag(name)
        self.tags = self.tags + [tag]
        self.tag_ids[name] = tag.id
        return self

    def add_task(self, name: str, tags: list[str] = ()) -> "ScenarioBuilder":
        task = self.engine.create_task(name, {self.tag_ids[t] for t in tags})
        self.tasks = self.tasks + [task]
        self.task_ids[name] = task.id
        return self

    def _apply(self, result) -> "ScenarioBuilder":
        self.tasks, self.tags = result.tasks, result.tags
        return self

    def toggle(self, name: str, at: int) -> "ScenarioBuilder":
        return self._apply(self.engine.toggle_task(self.tasks, self.tags, self.task_ids[name], at))

    def reassign(self, name: str, tags: list[str], at: int) -> "ScenarioBuilder":
        new_ids = {self.tag_ids[t] for t in tags}
        return self._apply(
            self.engine.reassign_task_tags(self.tasks, self.tags, self.task_ids[name], new_ids, at)
        )

    def delete_task(self, name: str, at: int) -> "ScenarioBuilder":
        return self._apply(self.engine.delete_task(self.tasks, self.tags, self.task_ids[name], at))

    def delete_tag(self, name: str, at: int) -> "ScenarioBuilder":
        return self._apply(self.engine.delete_tag(self.tasks, self.tags, self.tag_ids[name], at))

    def restore_tag(self, name: str, at: int) -> "ScenarioBuilder":
        return self._apply(self.engine.restore_tag(self.tasks, self.tags, self.tag_ids[name], at))

    def task(self, name: str) -> Task:
        return find_by_id(self.tasks, self.task_ids[name])

    def tag(self, name: str) -> Tag:
        return find_by_id(self.tags, self.tag_ids[name])

    def tag_session_spans(self, name: str) -> list[tuple[int, int]]:
        tag_id = self.tag_ids[name]
        return [(s.start_ts, s.end_ts) for s in self.engine.tag_sessions if s.tag_id == tag_id]

    def task_session_spans(self, name: str) -> list[tuple[int, int]]:
        task_id = self.task_ids[name]
        return [(s.start_ts, s.end_ts) for s in self.engine.task_sessions if s.task_id == task_id]


def assert_counts_consistent(tasks: list[Task], tags: list[Tag]) -> None:
    """Check the invariants linking running tasks and tag counters."""
    for task in tasks:
        assert task.is_running == (task.last_started_at_ms is not None), task
    for tag in tags:
        if tag.is_deleted:
            assert tag.active_children_count == 0, tag
            continue
        holders = [t for t in tasks if t.is_running and not t.is_deleted and tag.id in t.tag_ids]
        assert tag.active_children_count == len(holders), tag


def write_backup(directory: Path, files: dict[str, str]) -> list[Path]:
    """Write backup files given as name -> text and return their paths."""
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for name, text in files.items():
        path = directory / name
        path.write_text(text, encoding="utf-8")
        paths.append(path)
    return paths


SESSIONS_CSV = "task_id,task_name,start_ts,end_ts\n1,Write report,0,100\n2,Review,100,250\n"

TAG_SESSIONS_CSV = (
    "tag_id,tag_name,task_id,task_name,start_ts,end_ts\n"
    "1,work,1,Write report,0,100\n"
    "1,work,2,Review,100,250\n"
    "2,writing,1,Write report,0,100\n"
)
