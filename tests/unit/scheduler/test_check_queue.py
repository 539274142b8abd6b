"""
greenbay - unit tests for the check queue

File: tests/unit/scheduler/test_check_queue.py

Purpose
- Validate exactly-once execution, lifecycle errors, cancellation and
  bounded retention of completed checks.

Non-functional requirements
- Every queue is closed by the test that opened it; waits are bounded.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from greenbay.check.base import Check
from greenbay.check.mock import MockCheck
from greenbay.scheduler import CheckQueue, QueueStats, SchedulerError
from greenbay.utils.concurrency import CancellationToken, OperationCancelledError


class BlockingCheck(Check):
    """Holds its worker until ``release`` is set."""

    def __init__(self, check_id: str) -> None:
        super().__init__("blocking-check")
        self.set_id(check_id)
        self.entered = threading.Event()
        self.release = threading.Event()

    def execute(self, cancel_token: CancellationToken) -> None:
        self.entered.set()
        self.release.wait(5)
        self.set_state(True)


def _mock(check_id: str, *, should_fail: bool = False) -> MockCheck:
    check = MockCheck(should_fail=should_fail)
    check.set_id(check_id)
    return check


@pytest.fixture
def started_queue() -> Iterator[CheckQueue]:
    check_queue = CheckQueue(workers=3)
    check_queue.start()
    yield check_queue
    check_queue.close(timeout=5)


@settings(
    max_examples=25,
    derandomize=True,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(
    count=st.integers(min_value=0, max_value=30),
    workers=st.integers(min_value=1, max_value=6),
)
def test_every_submitted_check_runs_exactly_once(count: int, workers: int) -> None:
    check_queue = CheckQueue(workers=workers)
    check_queue.start()
    checks = [_mock(f"check-{index}", should_fail=index % 4 == 0) for index in range(count)]
    try:
        for check in checks:
            check_queue.submit(check)

        assert check_queue.wait(timeout=10)
    finally:
        check_queue.close(timeout=5)

    assert all(check.run_count == 1 for check in checks)
    assert all(check.completed for check in checks)
    assert sorted(check.id for check in check_queue.results()) == sorted(c.id for c in checks)
    assert check_queue.stats() == QueueStats(total=count, completed=count)


def test_submit_before_start_is_rejected() -> None:
    check_queue = CheckQueue(workers=1)

    with pytest.raises(SchedulerError, match="not started"):
        check_queue.submit(_mock("early"))


def test_double_start_and_submit_after_close_are_rejected() -> None:
    check_queue = CheckQueue(workers=1)
    check_queue.start()

    with pytest.raises(SchedulerError, match="already started"):
        check_queue.start()

    check_queue.close(timeout=5)
    with pytest.raises(SchedulerError, match="closed"):
        check_queue.submit(_mock("late"))


def test_start_with_cancelled_token_is_rejected() -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        CheckQueue(workers=1).start(token)


def test_duplicate_check_id_is_rejected(started_queue: CheckQueue) -> None:
    started_queue.submit(_mock("same"))

    with pytest.raises(SchedulerError, match="'same' was already submitted"):
        started_queue.submit(_mock("same"))


def test_get_returns_submitted_check(started_queue: CheckQueue) -> None:
    check = _mock("lookup")
    started_queue.submit(check)

    assert started_queue.get("lookup") is check
    assert started_queue.get("absent") is None


def test_stats_track_running_checks() -> None:
    check_queue = CheckQueue(workers=1)
    check_queue.start()
    blocker = BlockingCheck("slow")
    try:
        check_queue.submit(blocker)
        check_queue.submit(_mock("behind"))
        assert blocker.entered.wait(5)

        stats = check_queue.stats()
        assert stats == QueueStats(total=2, pending=1, running=1, completed=0)
        assert not stats.is_complete
        assert not check_queue.wait(timeout=0.1)

        blocker.release.set()
        assert check_queue.wait(timeout=5)
        assert check_queue.stats().to_dict() == {
            "total": 2,
            "pending": 0,
            "running": 0,
            "completed": 2,
        }
    finally:
        blocker.release.set()
        check_queue.close(timeout=5)


def test_cancel_makes_wait_return_false_and_drops_queued_checks() -> None:
    token = CancellationToken()
    check_queue = CheckQueue(workers=1)
    check_queue.start(token)
    blocker = BlockingCheck("slow")
    queued = _mock("queued")
    try:
        check_queue.submit(blocker)
        check_queue.submit(queued)
        assert blocker.entered.wait(5)

        token.cancel()

        assert check_queue.wait(timeout=5) is False
        with pytest.raises(OperationCancelledError):
            check_queue.submit(_mock("after-cancel"))
    finally:
        blocker.release.set()
        check_queue.close(timeout=5)

    assert queued.run_count == 0
    assert blocker.completed


def test_max_completed_evicts_oldest_results() -> None:
    check_queue = CheckQueue(workers=1, max_completed=2)
    check_queue.start()
    try:
        for index in range(5):
            check_queue.submit(_mock(f"c{index}"))
        assert check_queue.wait(timeout=10)
    finally:
        check_queue.close(timeout=5)

    assert [check.id for check in check_queue.results()] == ["c3", "c4"]
    assert check_queue.get("c0") is None
    assert check_queue.stats().completed == 5


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"workers": 0}, "workers must be >= 1"),
        ({"capacity": 0}, "capacity must be >= 1"),
        ({"max_completed": 0}, "max_completed must be >= 1"),
    ],
)
def test_invalid_queue_parameters(kwargs: dict[str, int], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        CheckQueue(**kwargs)


def test_full_queue_rejects_submit() -> None:
    check_queue = CheckQueue(workers=1, capacity=1)
    check_queue.start()
    blocker = BlockingCheck("slow")
    try:
        check_queue.submit(blocker)
        assert blocker.entered.wait(5)
        check_queue.submit(_mock("fills"))

        with pytest.raises(SchedulerError, match="at capacity"):
            check_queue.submit(_mock("overflow"))
    finally:
        blocker.release.set()
        check_queue.close(timeout=5)
