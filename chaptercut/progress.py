"""Per-run progress state shared between episode workers and readers."""

import logging
import threading
from dataclasses import replace
from typing import Callable

from chaptercut.models import Progress

logger = logging.getLogger(__name__)

IDLE = "idle"
PROCESSING = "processing"
MERGING = "merging"
DONE = "done"


class ProgressTracker:
    """Progress of one run: ``idle -> processing -> merging -> done``.

    Every read and write goes through one lock. Subscribers get a snapshot
    after each change, called outside the state lock. Deliveries are
    numbered; a snapshot older than one already delivered is dropped, so
    subscribers never see progress go backwards. A subscriber must not update
    the tracker it listens to.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = Progress(status=IDLE)
        self._subscribers: list[Callable[[Progress], None]] = []
        self._notify_lock = threading.Lock()
        self._seq = 0
        self._delivered = 0

    def subscribe(self, callback: Callable[[Progress], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[Progress], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def _update(self, fn: Callable[[Progress], None]) -> Progress:
        with self._lock:
            fn(self._state)
            snap = replace(self._state)
            self._seq += 1
            seq = self._seq
            subscribers = list(self._subscribers)
        with self._notify_lock:
            if seq < self._delivered:
                return snap
            self._delivered = seq
            for cb in subscribers:
                try:
                    cb(snap)
                except Exception:
                    logger.exception("Progress subscriber failed")
        return snap

    def snapshot(self) -> Progress:
        with self._lock:
            return replace(self._state)

    @property
    def active(self) -> bool:
        with self._lock:
            return self._state.status in (PROCESSING, MERGING)

    def start_processing(self, total: int) -> Progress:
        def fn(p: Progress) -> None:
            p.status = PROCESSING
            p.total = total
            p.completed = 0
            p.percent = 0.0
            p.done = False
            p.error = None
        return self._update(fn)

    def start_merging(self, total: int | None = None) -> Progress:
        """Enter the merge phase; ``total`` is kept unless a new one is given."""
        def fn(p: Progress) -> None:
            p.status = MERGING
            p.completed = 0
            p.percent = 0.0
            if total is not None:
                p.total = total
        return self._update(fn)

    def advance(self, n: int = 1) -> Progress:
        def fn(p: Progress) -> None:
            p.completed += n
            if p.total > 0:
                p.percent = 100.0 * p.completed / p.total
        return self._update(fn)

    def finish(self) -> Progress:
        def fn(p: Progress) -> None:
            p.status = DONE
            p.percent = 100.0
            p.completed = p.total
            p.done = True
        return self._update(fn)

    def fail(self, message: str) -> Progress:
        def fn(p: Progress) -> None:
            p.status = DONE
            p.done = True
            p.error = message
        return self._update(fn)
