"""
greenbay - CLI contracts

File: tests/integration/test_cli_commands.py

Purpose
- Drive ``greenbay`` through its entrypoint and pin the exit-code contract:
  0 for passing runs, 1 when checks fail, 2 for configuration problems.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from conftest import mock_test

from greenbay.main import ExitCode, cli_entrypoint
from greenbay.observability.logging import get_active_logging_handle, shutdown_logging

pytestmark = pytest.mark.integration

WriteConfig = Callable[..., Path]


def test_list_prints_registered_check_types(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli_entrypoint(["list"])

    out = capsys.readouterr().out.splitlines()
    assert code == ExitCode.SUCCESS
    assert out[0] == "Registered Greenbay Checks:"
    assert "\tmock-check" in out
    assert "\tshell-operation" in out
    assert out[1:] == sorted(out[1:])


def test_run_passing_suite(write_config: WriteConfig, capsys: pytest.CaptureFixture[str]) -> None:
    path = write_config({"tests": [mock_test("a", "all"), mock_test("b", "other")]})

    code = cli_entrypoint(["run", "--conf", str(path), "--suite", "all"])

    out = capsys.readouterr().out
    assert code == ExitCode.SUCCESS
    assert "--- PASS: a" in out
    assert "=== RUN b" not in out


def test_run_failing_check_exits_one(
    write_config: WriteConfig, capsys: pytest.CaptureFixture[str]
) -> None:
    path = write_config({"tests": [mock_test("bad", "all", should_fail=True)]})

    code = cli_entrypoint(["run", "--conf", str(path)])

    captured = capsys.readouterr()
    assert code == ExitCode.CHECKS_FAILED
    assert "--- FAIL: bad" in captured.out
    assert "1 test(s) failed" in captured.err


def test_run_named_test_with_format_and_output_file(
    write_config: WriteConfig, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = write_config({"tests": [mock_test("a", "all"), mock_test("b", "all")]})
    target = tmp_path / "results.json"

    code = cli_entrypoint(
        [
            "run",
            "--conf",
            str(path),
            "--test",
            "a",
            "--format",
            "result",
            "--output",
            str(target),
            "--jobs",
            "2",
        ]
    )

    assert code == ExitCode.SUCCESS
    stdout = json.loads(capsys.readouterr().out)
    assert [item["test_file"] for item in stdout["results"]] == ["a"]
    assert json.loads(target.read_text(encoding="utf-8")) == stdout


def test_missing_config_is_a_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = cli_entrypoint(["run", "--conf", str(tmp_path / "absent.yaml")])

    assert code == ExitCode.CONFIG_ERROR
    assert "problem reading greenbay config file" in capsys.readouterr().err


def test_unknown_suite_is_a_config_error(
    write_config: WriteConfig, capsys: pytest.CaptureFixture[str]
) -> None:
    path = write_config({"tests": [mock_test("a", "all")]})

    code = cli_entrypoint(["run", "--conf", str(path), "--suite", "ghost"])

    assert code == ExitCode.CONFIG_ERROR
    assert "suite named 'ghost' does not exist" in capsys.readouterr().err


def test_bad_check_arguments_are_config_errors(
    write_config: WriteConfig, capsys: pytest.CaptureFixture[str]
) -> None:
    path = write_config({"tests": [{"name": "x", "type": "file-exists", "args": {"name": 1}}]})

    code = cli_entrypoint(["run", "--conf", str(path)])

    assert code == ExitCode.CONFIG_ERROR
    assert "problem resolving x" in capsys.readouterr().err


def test_invalid_flag_values_exit_two(write_config: WriteConfig) -> None:
    path = write_config({"tests": [mock_test("a", "all")]})

    assert cli_entrypoint(["run", "--conf", str(path), "--jobs", "0"]) == 2
    assert cli_entrypoint(["run", "--conf", str(path), "--format", "xml"]) == 2


def test_file_log_sink_requires_a_file(
    write_config: WriteConfig, capsys: pytest.CaptureFixture[str]
) -> None:
    path = write_config({"tests": [mock_test("a", "all")]})

    code = cli_entrypoint(["run", "--conf", str(path), "--log-output", "file"])

    assert code == 2
    assert "invalid logging options" in capsys.readouterr().err


def test_json_file_logging_records_the_run(write_config: WriteConfig, tmp_path: Path) -> None:
    path = write_config({"tests": [mock_test("a", "all")]})
    log_file = tmp_path / "greenbay.jsonl"

    code = cli_entrypoint(
        [
            "run",
            "--conf",
            str(path),
            "--log-output",
            "json-file",
            "--log-file",
            str(log_file),
            "--log-level",
            "debug",
        ]
    )

    shutdown_logging()
    events = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert code == ExitCode.SUCCESS
    assert "checks_complete" in {event["message"] for event in events}
    assert all(event.get("run_id") for event in events if event["message"] == "checks_complete")


def test_each_invocation_releases_its_logging_sink(
    write_config: WriteConfig, capsys: pytest.CaptureFixture[str]
) -> None:
    path = write_config({"tests": [mock_test("a", "all")]})

    first = cli_entrypoint(["run", "--conf", str(path), "--log-output", "stderr"])
    assert get_active_logging_handle() is None
    second = cli_entrypoint(["run", "--conf", str(path), "--log-output", "stderr"])

    assert (first, second) == (ExitCode.SUCCESS, ExitCode.SUCCESS)
    assert "invalid logging options" not in capsys.readouterr().err
    assert get_active_logging_handle() is None


def test_run_over_an_empty_suite_file_succeeds(write_config: WriteConfig) -> None:
    path = write_config({"tests": []})

    assert cli_entrypoint(["run", "--conf", str(path)]) == ExitCode.SUCCESS
