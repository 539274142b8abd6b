"""Thread-based concurrency primitives shared by the scheduler, checks and service."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class OperationCancelledError(Exception):
    """Raised by cancellation-aware operations once their token has fired."""


class CancellationToken:
    """Cooperative cancellation token backed by ``threading.Event``.

    A token may be derived from a parent (cancelling the parent cancels every
    child) and may carry a deadline, after which it reports itself cancelled.
    """

    __slots__ = ("_deadline", "_event", "_parent")

    def __init__(
        self,
        *,
        parent: CancellationToken | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._event = threading.Event()
        self._parent = parent
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def child(self, *, timeout_seconds: float | None = None) -> CancellationToken:
        return CancellationToken(parent=self, timeout_seconds=timeout_seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        if self._parent is not None and self._parent.is_cancelled:
            self._event.set()
            return True
        return False

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds until the nearest deadline in the chain, if any."""

        remaining: float | None = None
        token: CancellationToken | None = self
        while token is not None:
            if token._deadline is not None:
                left = max(token._deadline - time.monotonic(), 0.0)
                remaining = left if remaining is None else min(remaining, left)
            token = token._parent
        return remaining

    def wait(self, timeout: float | None = None, *, poll_interval: float = 0.05) -> bool:
        """Block until cancelled or ``timeout`` elapses; return ``is_cancelled``."""

        end = None if timeout is None else time.monotonic() + timeout
        while not self.is_cancelled:
            if end is not None:
                left = end - time.monotonic()
                if left <= 0:
                    break
                self._event.wait(min(poll_interval, left))
            else:
                self._event.wait(poll_interval)
        return self.is_cancelled

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise OperationCancelledError("operation cancelled")


class ReadWriteLock:
    """Writer-preferring readers/writer lock.

    Any number of readers may hold the lock at once; a writer waits for active
    readers to leave and blocks new readers while it waits.
    """

    __slots__ = ("_cond", "_readers", "_writer", "_writers_waiting")

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read called without a matching acquire_read")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write called without a matching acquire_write")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    def snapshot(self) -> dict[str, int]:
        with self._cond:
            return {
                "readers": self._readers,
                "writer": int(self._writer),
                "writers_waiting": self._writers_waiting,
            }


__all__ = [
    "CancellationToken",
    "OperationCancelledError",
    "ReadWriteLock",
]
