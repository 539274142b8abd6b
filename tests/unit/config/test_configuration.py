"""
greenbay - unit tests for resolved configurations

File: tests/unit/config/test_configuration.py

Purpose
- Validate test resolution through the registry, suite and name selection,
  atomic reloads and serialisation back to a document.

Non-functional requirements
- Deterministic; selection order is declaration order.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml
from conftest import mock_test

from greenbay.check.registry import CheckRegistry
from greenbay.config.builder import ConfigurationBuilder
from greenbay.config.configuration import Configuration, SelectionError
from greenbay.config.loader import ConfigLoadError, Options

WriteConfig = Callable[..., Path]


def _document(*tests: dict[str, Any]) -> dict[str, Any]:
    return {"options": {"jobs": 2}, "tests": list(tests)}


def _ids(selections: Any) -> list[str]:
    return [item.check.id for item in selections if item.check is not None]


def test_tests_are_hydrated_with_identity(registry: CheckRegistry) -> None:
    configuration = Configuration.from_document(
        _document(mock_test("a", "one", "all"), mock_test("b", "all", should_fail=True)),
        registry=registry,
        environ={},
    )

    tests = configuration.tests
    assert list(tests) == ["a", "b"]
    assert tests["a"].suites == ["one", "all"]
    assert tests["b"].to_args() == {"should_fail": True}
    assert configuration.suites == {"one": ["a"], "all": ["a", "b"]}
    assert configuration.options.jobs == 2
    assert len(configuration) == 2


def test_resolution_problems_are_aggregated(registry: CheckRegistry) -> None:
    document = _document(
        {"name": "x", "type": "no-such-check"},
        {"name": "y", "type": "file-exists", "args": {"name": 7}},
        mock_test("z"),
        mock_test("z"),
    )

    with pytest.raises(ConfigLoadError) as caught:
        Configuration.from_document(document, registry=registry, environ={})

    problems = caught.value.problems
    assert len(problems) == 3
    assert "problem resolving x: no check type named 'no-such-check'" in problems[0]
    assert "problem resolving y: args.name: expected string" in problems[1]
    assert problems[2] == "two tests named 'z'"


def test_suite_selection_yields_each_test_once_in_order(registry: CheckRegistry) -> None:
    configuration = Configuration.from_document(
        _document(mock_test("a", "one", "two"), mock_test("b", "two"), mock_test("c", "one")),
        registry=registry,
        environ={},
    )

    assert _ids(configuration.tests_for_suites("one", "two")) == ["a", "c", "b"]
    assert _ids(configuration.tests_for_suites("two")) == ["a", "b"]


def test_unknown_suite_and_test_yield_errors(registry: CheckRegistry) -> None:
    configuration = Configuration.from_document(
        _document(mock_test("a", "one")), registry=registry, environ={}
    )

    suite_items = list(configuration.tests_for_suites("missing"))
    name_items = list(configuration.tests_by_name("a", "ghost"))

    assert len(suite_items) == 1
    assert isinstance(suite_items[0].error, SelectionError)
    assert str(suite_items[0].error) == "suite named 'missing' does not exist"
    assert name_items[0].ok
    assert str(name_items[1].error) == "no test named ghost"


def test_all_tests_streams_names_before_suites(registry: CheckRegistry) -> None:
    configuration = Configuration.from_document(
        _document(mock_test("a", "one"), mock_test("b", "one")), registry=registry, environ={}
    )

    assert _ids(configuration.all_tests(tests=["b"], suites=["one"])) == ["b", "a", "b"]


def test_abandoned_selection_does_not_block_reload(
    registry: CheckRegistry, write_config: WriteConfig
) -> None:
    path = write_config(_document(mock_test("a", "one"), mock_test("b", "one")))
    configuration = Configuration.from_file(path, registry=registry, environ={})
    stream = configuration.tests_for_suites("one")
    next(stream)

    finished = threading.Event()

    def reload() -> None:
        configuration.reload(environ={})
        finished.set()

    worker = threading.Thread(target=reload)
    worker.start()
    worker.join(5)

    assert finished.is_set()


def test_reload_replaces_state(registry: CheckRegistry, write_config: WriteConfig) -> None:
    path = write_config(_document(mock_test("a", "one")))
    configuration = Configuration.from_file(path, registry=registry, environ={})
    first = configuration.tests["a"]

    path.write_text(
        yaml.safe_dump(_document(mock_test("a", "one"), mock_test("b", "two"))), encoding="utf-8"
    )
    configuration.reload(environ={})

    assert sorted(configuration.tests) == ["a", "b"]
    assert configuration.tests["a"] is not first
    assert configuration.suites["two"] == ["b"]


def test_failed_reload_keeps_previous_state(
    registry: CheckRegistry, write_config: WriteConfig
) -> None:
    path = write_config(_document(mock_test("a", "one")))
    configuration = Configuration.from_file(path, registry=registry, environ={})

    path.write_text(
        yaml.safe_dump(_document({"name": "x", "type": "no-such-check"})), encoding="utf-8"
    )
    with pytest.raises(ConfigLoadError):
        configuration.reload(environ={})

    assert list(configuration.tests) == ["a"]


def test_reload_without_backing_file_is_an_error(registry: CheckRegistry) -> None:
    configuration = Configuration(registry=registry)

    with pytest.raises(ConfigLoadError, match="nothing to reload"):
        configuration.reload()


def test_document_round_trip(registry: CheckRegistry) -> None:
    document = {
        "options": {"continue_on_error": False, "report_format": "log", "jobs": 4},
        "tests": [
            {
                "name": "shell",
                "type": "shell-operation",
                "suites": ["all"],
                "args": {"command": "true"},
            },
            {
                "name": "files",
                "type": "file-group-any",
                "suites": ["all", "fs"],
                "args": {"file_names": ["/etc/hosts", "/etc/passwd"]},
            },
        ],
    }

    configuration = Configuration.from_document(document, registry=registry, environ={})

    assert configuration.to_document() == document


def test_builder_produces_independent_configurations(registry: CheckRegistry) -> None:
    check = registry.create("mock-check")
    check.set_id("built")
    check.set_suites(["all"])
    builder = ConfigurationBuilder(options=Options(jobs=1), registry=registry)
    builder.add_check(check)

    first = builder.build()
    second = builder.build()

    assert len(builder) == 1
    assert list(first.tests) == ["built"]
    assert first.tests["built"] is not second.tests["built"]
    assert first.tests["built"] is not check
    assert first.suites == {"all": ["built"]}
    assert first.options.jobs == 1


def test_builder_rejects_none() -> None:
    with pytest.raises(ValueError, match="must not be None"):
        ConfigurationBuilder().add_check(None)  # type: ignore[arg-type]
