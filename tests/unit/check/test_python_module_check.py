"""``python-module-version`` relationships, parsing failures and interpreter use."""

from __future__ import annotations

import sys

import pytest
from conftest import FakeExecutor, FakeOutcome

from greenbay.check.args import ArgumentError
from greenbay.check.python_module import PythonModuleVersionCheck
from greenbay.check.version import Relationship, compare_versions, parse_version


def _argv(module: str = "yaml", statement: str = "yaml.__version__") -> tuple[str, ...]:
    return ("python3", "-c", f"import {module}; print({statement})")


def _check(reported: str, **args: object) -> PythonModuleVersionCheck:
    executor = FakeExecutor({_argv(): FakeOutcome(output=f"{reported}\n")})
    check = PythonModuleVersionCheck(executor=executor)
    check.hydrate(
        {"module": "yaml", "statement": "yaml.__version__", "python": "python3", **args}
    )
    check.set_id("yaml-version")
    check.run()
    return check


@pytest.mark.parametrize(
    ("relationship", "expected", "outcome"),
    [
        ("gte", "6.0.0", True),
        ("gte", "6.0.2", False),
        ("lte", "6.0.1", True),
        ("lt", "6.0.1", False),
        ("gt", "5.9.9", True),
        ("eq", "6.0.1", True),
        ("", "6.0.0", True),
    ],
)
def test_version_relationships(relationship: str, expected: str, outcome: bool) -> None:
    check = _check("6.0.1", version=expected, relationship=relationship)

    assert check.passed is outcome
    if not outcome:
        assert check.output().message == f"6.0.1 {relationship} {expected}"


def test_min_version_defaults_relationship_to_lte() -> None:
    inside = _check("6.0.1", version="7.0.0", minVersion="6.0.0")
    below = _check("5.4.0", version="7.0.0", minVersion="6.0.0")

    assert inside.relationship is Relationship.LTE
    assert inside.passed
    assert not below.passed


def test_unparseable_reported_version_fails() -> None:
    check = _check("not-a-version", version="1.0.0")

    assert not check.passed
    assert "could not parse version 'not-a-version'" in check.output().message


def test_unparseable_expected_version_fails_before_running() -> None:
    executor = FakeExecutor()
    check = PythonModuleVersionCheck(executor=executor)
    check.hydrate({"module": "yaml", "statement": "yaml.__version__", "version": "one"})

    check.run()

    assert not check.passed
    assert executor.calls == []
    assert "could not parse expected version 'one'" in check.output().message


def test_interpreter_failure_fails_the_check() -> None:
    executor = FakeExecutor(default=FakeOutcome(exit_code=1, stderr="ModuleNotFoundError"))
    check = PythonModuleVersionCheck(executor=executor)
    check.hydrate({"module": "nope", "statement": "nope.v", "version": "1.0.0", "python": "py"})

    check.run()

    assert not check.passed
    assert "running 'py' for module 'nope' failed" in check.output().error
    assert check.output().message == "ModuleNotFoundError"


def test_invalid_relationship_is_an_argument_error() -> None:
    check = PythonModuleVersionCheck()

    with pytest.raises(ArgumentError, match="relationship 'around' is not valid"):
        check.hydrate({"module": "yaml", "version": "1.0.0", "relationship": "around"})


def test_expression_is_accepted_as_statement_alias() -> None:
    check = PythonModuleVersionCheck()
    check.hydrate({"module": "yaml", "expression": "yaml.__version__", "version": "1.0.0"})

    assert check.statement == "yaml.__version__"
    assert check.to_args()["relationship"] == "gte"


def test_runs_real_interpreter() -> None:
    check = PythonModuleVersionCheck()
    check.hydrate(
        {
            "module": "sys",
            "statement": "'3.1.4'",
            "version": "3.0.0",
            "python": sys.executable,
        }
    )

    check.run()

    assert check.passed, check.output().error


def test_compare_versions_honours_prerelease_ordering() -> None:
    assert compare_versions("lt", parse_version("1.0.0-rc.1"), parse_version("1.0.0"))
    assert compare_versions("", parse_version("2.0.0"), parse_version("1.9.9"))
