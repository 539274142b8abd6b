"""
greenbay - unit tests for the check model

File: tests/unit/check/test_check_base.py

Purpose
- Validate the shared check lifecycle: run-once execution, completion on every
  exit path, error accumulation and the output snapshot.

Functional requirements
- No subprocesses; bodies are in-process stubs.

Non-functional requirements
- Deterministic.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest

from greenbay.check.base import Check, CheckError, CheckOutput, TimingInfo, render_message
from greenbay.utils.concurrency import CancellationToken


class CountingCheck(Check):
    def __init__(self, *, passed: bool = True, raises: Exception | None = None) -> None:
        super().__init__("counting-check")
        self.calls = 0
        self.result = passed
        self.raises = raises
        self.gate = threading.Event()
        self.gate.set()

    def execute(self, cancel_token: CancellationToken) -> None:
        self.calls += 1
        self.gate.wait(5)
        if self.raises is not None:
            raise self.raises
        self.set_state(self.result)


def test_run_executes_body_once_and_marks_completion() -> None:
    check = CountingCheck()
    check.set_id("one")

    check.run()
    check.run()

    assert check.calls == 1
    assert check.completed
    assert check.passed
    output = check.output()
    assert output.completed and output.passed
    assert output.timing.start is not None
    assert output.timing.end is not None
    assert output.timing.end >= output.timing.start


def test_concurrent_run_calls_execute_body_once() -> None:
    check = CountingCheck()
    check.gate.clear()
    threads = [threading.Thread(target=check.run) for _ in range(8)]
    for thread in threads:
        thread.start()
    check.gate.set()
    for thread in threads:
        thread.join(5)

    assert check.calls == 1
    assert check.completed


def test_exception_in_body_fails_check_and_records_error() -> None:
    check = CountingCheck(raises=RuntimeError("boom"))

    check.run()

    assert check.completed
    assert not check.passed
    error = check.error()
    assert error is not None
    assert "boom" in str(error)
    assert check.output().error == "boom"


def test_cancelled_token_fails_without_running_body() -> None:
    token = CancellationToken()
    token.cancel()
    check = CountingCheck()

    check.run(token)

    assert check.calls == 0
    assert check.completed
    assert not check.passed
    assert "cancelled" in check.output().error


def test_output_before_run_is_incomplete_and_not_passed() -> None:
    check = CountingCheck()
    check.set_id("pending")
    check.set_suites(["a", "b", "a"])

    output = check.output()

    assert output == CheckOutput(name="pending", check_type="counting-check", suites=("a", "b"))
    assert not check.started


def test_passed_requires_completion() -> None:
    check = CountingCheck()
    check.set_state(True)

    assert not check.passed

    check.mark_complete()
    assert check.passed


def test_errors_are_joined_distinctly() -> None:
    check = CountingCheck()
    check.add_error(CheckError("first"))
    check.add_error("second")
    check.add_error("first")
    check.add_error("")
    check.add_error(None)

    error = check.error()

    assert error is not None
    assert str(error) == "first\nsecond"
    assert len(error.errors) == 3


def test_render_message_handles_lists_and_scalars() -> None:
    assert render_message(["a", "b"]) == "a\nb"
    assert render_message(None) == ""
    assert render_message(7) == "7"
    assert render_message(ValueError("bad")) == "bad"
    assert render_message("text") == "text"


def test_output_document_round_trips() -> None:
    start = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
    output = CheckOutput(
        name="disk",
        check_type="file-exists",
        suites=("all",),
        completed=True,
        passed=False,
        message="missing",
        error="file existence check did not detect expected state",
        timing=TimingInfo(start=start, end=start + timedelta(seconds=2)),
    )

    payload = output.to_dict()

    assert payload["timing"] == {
        "start_time": "2024-01-02T03:04:05.000000Z",
        "end_time": "2024-01-02T03:04:07.000000Z",
    }
    assert CheckOutput.from_dict(payload) == output


def test_output_document_omits_empty_message_and_error() -> None:
    payload = CheckOutput(name="x", check_type="mock-check", completed=True).to_dict()

    assert "message" not in payload
    assert "error" not in payload
    assert payload["timing"] == {"start_time": None, "end_time": None}


def test_check_without_a_body_cannot_be_constructed() -> None:
    class Bodiless(Check):
        pass

    with pytest.raises(TypeError, match="execute"):
        Bodiless("bare")  # type: ignore[abstract]


def test_timing_duration_without_timestamps_is_zero() -> None:
    timing = TimingInfo.from_dict({"start_time": "", "end_time": None})

    assert timing.duration == timedelta(0)
