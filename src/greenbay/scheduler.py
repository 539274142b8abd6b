"""
greenbay - check scheduler.

File: src/greenbay/scheduler.py

Purpose
- Run submitted checks on a fixed pool of worker threads and expose a
  consistent view of progress to the runner, the service and the reporters.

Functional requirements
- A check is executed at most once; a check id can only be submitted once.
- ``submit`` never blocks on busy workers while the queue is under capacity.
- Once the cancellation token fires, workers stop taking new checks and
  ``wait`` returns; running checks finish as far as their bodies honour the
  token.
- When ``max_completed`` is set, the oldest completed checks are evicted so
  long-lived queues hold bounded state.
"""

from __future__ import annotations

import os
import queue
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

import structlog

from greenbay.utils.concurrency import CancellationToken, OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from greenbay.check.base import Check

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 10_000

_STOP = object()


class SchedulerError(RuntimeError):
    """Raised for lifecycle misuse: double start, submit before start or after close."""


@dataclass(frozen=True, slots=True)
class QueueStats:
    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0

    @property
    def is_complete(self) -> bool:
        return self.pending + self.running == 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "running": self.running,
            "completed": self.completed,
        }


class CheckQueue:
    """Bounded FIFO of checks served by ``workers`` threads."""

    def __init__(
        self,
        workers: int | None = None,
        *,
        capacity: int = DEFAULT_CAPACITY,
        max_completed: int | None = None,
    ) -> None:
        resolved_workers = workers if workers is not None else (os.cpu_count() or 1)
        if resolved_workers < 1:
            raise ValueError("workers must be >= 1")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if max_completed is not None and max_completed < 1:
            raise ValueError("max_completed must be >= 1")

        self._workers = resolved_workers
        self._max_completed = max_completed
        self._queue: queue.Queue[object] = queue.Queue(maxsize=capacity)
        self._cond = threading.Condition(threading.Lock())
        self._checks: dict[str, Check] = {}
        self._completed: OrderedDict[str, Check] = OrderedDict()
        self._total = 0
        self._pending = 0
        self._running = 0
        self._completed_count = 0
        self._threads: list[threading.Thread] = []
        self._token: CancellationToken | None = None
        self._closed = False

    @property
    def workers(self) -> int:
        return self._workers

    @property
    def started(self) -> bool:
        with self._cond:
            return self._token is not None

    def start(self, cancel_token: CancellationToken | None = None) -> None:
        token = cancel_token if cancel_token is not None else CancellationToken()
        if token.is_cancelled:
            raise OperationCancelledError("cannot start queue: operation cancelled")

        with self._cond:
            if self._closed:
                raise SchedulerError("queue is closed")
            if self._token is not None:
                raise SchedulerError("queue is already started")
            self._token = token
            for index in range(self._workers):
                thread = threading.Thread(
                    target=self._worker,
                    args=(token,),
                    name=f"greenbay-worker-{index}",
                    daemon=True,
                )
                self._threads.append(thread)
        for thread in self._threads:
            thread.start()
        logger.debug("queue_started", workers=self._workers)

    def submit(self, check: Check) -> None:
        with self._cond:
            token = self._token
            if self._closed:
                raise SchedulerError("queue is closed")
            if token is None:
                raise SchedulerError("queue is not started")
            if token.is_cancelled:
                raise OperationCancelledError("cannot submit check: operation cancelled")
            if check.id in self._checks:
                raise SchedulerError(f"check '{check.id}' was already submitted")
            try:
                self._queue.put_nowait(check)
            except queue.Full as exc:
                raise SchedulerError("queue is at capacity") from exc
            self._checks[check.id] = check
            self._total += 1
            self._pending += 1

    def get(self, check_id: str) -> Check | None:
        with self._cond:
            return self._checks.get(check_id)

    def stats(self) -> QueueStats:
        with self._cond:
            return QueueStats(
                total=self._total,
                pending=self._pending,
                running=self._running,
                completed=self._completed_count,
            )

    def wait(self, poll_interval: float = 0.05, *, timeout: float | None = None) -> bool:
        """Block until every submitted check completed; ``False`` on cancel or timeout."""

        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._pending + self._running == 0:
                    return True
                if self._token is not None and self._token.is_cancelled:
                    return False
                wait_for = poll_interval
                if deadline is not None:
                    left = deadline - time.monotonic()
                    if left <= 0:
                        return False
                    wait_for = min(wait_for, left)
                self._cond.wait(wait_for)

    def results(self) -> Iterator[Check]:
        """Completed checks in completion order, as of the call."""

        with self._cond:
            completed = list(self._completed.values())
        yield from completed

    def close(self, timeout: float | None = None) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            threads = list(self._threads)
        for _ in threads:
            self._put_stop()
        for thread in threads:
            thread.join(timeout)
        logger.debug("queue_closed", stats=self.stats().to_dict())

    def _put_stop(self) -> None:
        while True:
            try:
                self._queue.put(_STOP, timeout=0.1)
                return
            except queue.Full:
                self._discard_one()

    def _discard_one(self) -> None:
        try:
            item = self._queue.get_nowait()
        except queue.Empty:
            return
        if item is not _STOP:
            with self._cond:
                self._pending -= 1
                self._cond.notify_all()

    def _worker(self, token: CancellationToken) -> None:
        while not token.is_cancelled:
            try:
                item = self._queue.get(timeout=0.05)
            except queue.Empty:
                continue
            if item is _STOP:
                return
            if token.is_cancelled:
                return

            check = cast("Check", item)
            with self._cond:
                self._pending -= 1
                self._running += 1
            try:
                check.run(token)
            finally:
                self._finish(check)

    def _finish(self, check: Check) -> None:
        with self._cond:
            self._running -= 1
            self._completed_count += 1
            self._completed[check.id] = check
            if self._max_completed is not None:
                while len(self._completed) > self._max_completed:
                    evicted_id, _ = self._completed.popitem(last=False)
                    self._checks.pop(evicted_id, None)
            self._cond.notify_all()


__all__ = ["DEFAULT_CAPACITY", "CheckQueue", "QueueStats", "SchedulerError"]
