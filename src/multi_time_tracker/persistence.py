"""
Debounced persistence of snapshots.

Mutations can come in bursts (toggling several tasks, editing tags). Each one
schedules a write; the writer waits for a quiet period before writing, and a
newer schedule replaces the pending one. A content signature skips writes
that would store what is already on disk.
"""

import hashlib
import json
import logging
import threading
from collections.abc import Callable
from typing import Any

from .snapshot import Snapshot, snapshot_to_dict

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 1500

_SESSION_KEYS = ("taskSessions", "tagSessions")


def snapshot_signature(snapshot: Snapshot) -> tuple[Any, ...]:
    """
    Return a value that changes whenever the snapshot content changes.

    Session logs are only appended to or purged, so their length and last end
    timestamp identify them. Entities and bookkeeping are small enough to hash.
    """
    task_last = snapshot.task_sessions[-1].end_ts if snapshot.task_sessions else None
    tag_last = snapshot.tag_sessions[-1].end_ts if snapshot.tag_sessions else None

    document = snapshot_to_dict(snapshot)
    for key in _SESSION_KEYS:
        document.pop(key)
    digest = hashlib.sha256(json.dumps(document, sort_keys=True).encode("utf-8")).hexdigest()

    return (
        len(snapshot.task_sessions),
        task_last,
        len(snapshot.tag_sessions),
        tag_last,
        digest,
    )


class DebouncedWriter:
    """
    Coalesce snapshot writes.

    Args:
        write: Callable that stores a snapshot, e.g. a partial of save_snapshot
        delay_ms: Quiet period before a scheduled write runs. 0 writes at once.
        timer_factory: threading.Timer compatible factory, replaceable in tests
    """

    def __init__(
        self,
        write: Callable[[Snapshot], None],
        delay_ms: int = DEFAULT_DEBOUNCE_MS,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self._write = write
        self.delay_ms = delay_ms
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._pending: Snapshot | None = None
        self._generation = 0
        self._last_signature: tuple[Any, ...] | None = None
        self.writes = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def mark_written(self, snapshot: Snapshot) -> None:
        """Record that ``snapshot`` is what is stored right now (e.g. just loaded)."""
        with self._lock:
            self._last_signature = snapshot_signature(snapshot)

    def schedule(self, snapshot: Snapshot) -> bool:
        """
        Schedule a write of ``snapshot``, replacing any pending one.

        Returns:
            False if the content equals the last written state and nothing was scheduled
        """
        signature = snapshot_signature(snapshot)
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if signature == self._last_signature:
                if self._pending is not None:
                    logger.debug("Pending write superseded by unchanged state, dropped")
                self._pending = None
                return False

            self._generation += 1
            self._pending = snapshot
            generation = self._generation
            if self.delay_ms > 0:
                self._timer = self._timer_factory(self.delay_ms / 1000, self._fire, args=(generation,))
                self._timer.daemon = True
                self._timer.start()

        if self.delay_ms <= 0:
            self._fire(generation)
        return True

    def flush(self) -> bool:
        """
        Perform the pending write now, if there is one.

        Returns:
            True if a write was performed
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            generation = self._generation
        return self._fire(generation, reraise=True)

    def cancel(self) -> None:
        """Drop the pending write without performing it."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None

    def _fire(self, generation: int, reraise: bool = False) -> bool:
        with self._lock:
            # A newer schedule replaced this one
            if generation != self._generation or self._pending is None:
                return False
            snapshot = self._pending
            self._pending = None
            self._timer = None

            try:
                self._write(snapshot)
            except Exception:
                # Kept pending, so a later flush retries it
                self._pending = snapshot
                # Timer threads have nobody to report to
                logger.exception("Snapshot write failed")
                if reraise:
                    raise
                return False
            self._last_signature = snapshot_signature(snapshot)
            self.writes += 1

        logger.debug(f"Snapshot written (generation {generation})")
        return True
