"""
greenbay - unit tests for results reporters

File: tests/unit/reporting/test_reporters.py

Purpose
- Validate the gotest, result, report, log and json formats, passing-entry
  suppression, refused items and the failed-check signal.

Functional requirements
- Output is always written before ``ChecksFailedError`` is raised.
"""

from __future__ import annotations

import io
import json
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from greenbay.check.base import CheckOutput, TimingInfo
from greenbay.check.mock import MockCheck
from greenbay.reporting import (
    BaseReporter,
    ChecksFailedError,
    GoTestReporter,
    JsonReporter,
    LogReporter,
    ReporterError,
    ReportReporter,
    ResultsReporter,
    collect_outputs,
)

START = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def _output(name: str, *, passed: bool, message: str = "", error: str = "") -> CheckOutput:
    return CheckOutput(
        name=name,
        check_type="mock-check",
        suites=("all",),
        completed=True,
        passed=passed,
        message=message,
        error=error,
        timing=TimingInfo(start=START, end=START + timedelta(milliseconds=1500)),
    )


PASSING = _output("good", passed=True, message="fine")
FAILING = _output("bad", passed=False, error="broken")


class NotACheck:
    id = "stranger"


def test_gotest_lines_for_passing_and_failing_checks() -> None:
    reporter = GoTestReporter()
    reporter.populate([PASSING, FAILING])
    stream = io.StringIO()

    with pytest.raises(ChecksFailedError) as caught:
        reporter.print(stream)

    assert caught.value.failed == 1
    assert stream.getvalue().splitlines() == [
        "=== RUN good",
        "    message: fine",
        "--- PASS: good (1.50s)",
        "=== RUN bad",
        "    error: broken",
        "--- FAIL: bad (1.50s)",
    ]


def test_all_passing_prints_without_raising() -> None:
    reporter = GoTestReporter()
    reporter.populate([PASSING])
    stream = io.StringIO()

    reporter.print(stream)

    assert "--- PASS: good" in stream.getvalue()
    assert reporter.failed == 0


def test_skip_passing_drops_passing_entries() -> None:
    reporter = GoTestReporter()
    reporter.skip_passing()
    reporter.populate([PASSING, FAILING])

    rendered = reporter.render()

    assert "good" not in rendered
    assert "--- FAIL: bad" in rendered


def test_live_checks_are_snapshotted() -> None:
    check = MockCheck()
    check.set_id("live")
    check.run()
    reporter = GoTestReporter()

    reporter.populate([check])

    assert "--- PASS: live" in reporter.render()


def test_refused_items_are_reported_after_the_rest() -> None:
    reporter = GoTestReporter()

    with pytest.raises(ReporterError, match="does not implement the check interface") as caught:
        reporter.populate([PASSING, NotACheck()])

    assert "job stranger (NotACheck)" in str(caught.value)
    assert len(caught.value.errors) == 1
    assert "=== RUN good" in reporter.render()


def test_collect_outputs_separates_problems() -> None:
    outputs, problems = collect_outputs([PASSING, 42, FAILING], skip_passing=True)

    assert outputs == [FAILING]
    assert len(problems) == 1
    assert "job <unknown> (int)" in str(problems[0])


def test_results_document_shape() -> None:
    reporter = ResultsReporter()
    reporter.populate([PASSING, FAILING])

    document = json.loads(reporter.render())

    assert document["results"][0] == {
        "status": "pass",
        "test_file": "good",
        "exit_code": 0,
        "elapsed": 1.5,
        "start": "2024-05-01T12:00:00.000000Z",
        "end": "2024-05-01T12:00:01.500000Z",
    }
    assert document["results"][1]["status"] == "fail"
    assert document["results"][1]["exit_code"] == 1


def test_report_maps_names_to_outputs(tmp_path: Path) -> None:
    reporter = ReportReporter()
    reporter.populate([PASSING, FAILING])
    target = tmp_path / "report.json"

    with pytest.raises(ChecksFailedError):
        reporter.to_file(target)

    payload = json.loads(target.read_text(encoding="utf-8"))
    assert set(payload) == {"good", "bad"}
    assert CheckOutput.from_dict(payload["bad"]) == FAILING
    assert reporter.results["good"] is PASSING


def test_to_file_reports_unwritable_target(tmp_path: Path) -> None:
    reporter = ResultsReporter()
    reporter.populate([PASSING])

    with pytest.raises(ReporterError, match="problem writing output"):
        reporter.to_file(tmp_path / "missing-dir" / "results.json")


def test_log_format_lists_passes_first() -> None:
    reporter = LogReporter()
    reporter.populate([FAILING, PASSING])
    stream = io.StringIO()

    with pytest.raises(ChecksFailedError):
        reporter.print(stream)

    first, second = stream.getvalue().splitlines()
    assert first.startswith("[greenbay] ")
    assert "[p=NOTICE]: PASSED: 'good' [time='1.50s', msg='fine', error='']" in first
    assert "[p=ALERT]: FAILED: 'bad' [time='1.50s', msg='', error='broken']" in second


def test_json_format_writes_one_object_per_line(tmp_path: Path) -> None:
    reporter = JsonReporter()
    reporter.populate([PASSING, FAILING])
    target = tmp_path / "results.log"

    with pytest.raises(ChecksFailedError):
        reporter.to_file(target)

    records = [json.loads(line) for line in target.read_text(encoding="utf-8").splitlines()]
    assert [record["name"] for record in records] == ["good", "bad"]
    assert records[1]["error"] == "broken"
    assert "message" not in records[1]


def test_log_reporter_does_not_touch_root_logging(caplog: pytest.LogCaptureFixture) -> None:
    reporter = LogReporter()
    reporter.populate([PASSING])

    reporter.print(io.StringIO())

    assert caplog.records == []


def test_format_without_render_cannot_be_constructed() -> None:
    class Silent(BaseReporter):
        format_name = "silent"

        def _consume(self, outputs: Sequence[CheckOutput]) -> None:
            pass

    with pytest.raises(TypeError, match="render"):
        Silent()  # type: ignore[abstract]
