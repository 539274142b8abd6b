"""``python-module-version``: assert the version a Python module reports."""

from __future__ import annotations

import shutil
from collections.abc import Mapping
from typing import TYPE_CHECKING

import structlog

from greenbay.check.args import ArgumentError, as_str
from greenbay.check.base import Check, CheckError
from greenbay.check.command import DEFAULT_EXECUTOR, CommandExecutor, CommandSpec
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry
from greenbay.check.version import Relationship, compare_versions, parse_relationship, parse_version

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

PYTHON_MODULE_VERSION = "python-module-version"


def default_interpreter() -> str:
    return "python" if shutil.which("python") else "python3"


class PythonModuleVersionCheck(Check):
    """Runs ``<python> -c "import <module>; print(<statement>)"`` and compares versions.

    ``relationship`` defaults to ``lte`` when ``minVersion`` is set and ``gte``
    otherwise; ``minRelationship`` defaults to ``gte``.
    """

    def __init__(self, *, executor: CommandExecutor | None = None) -> None:
        super().__init__(PYTHON_MODULE_VERSION)
        self.module = ""
        self.statement = ""
        self.version = ""
        self.min_version = ""
        self.relationship = Relationship.GTE
        self.min_relationship = Relationship.GTE
        self.python = ""
        self._executor = executor if executor is not None else DEFAULT_EXECUTOR

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.module = as_str(args.get("module"), "args.module")
        statement = args.get("statement")
        if statement is None:
            statement = args.get("expression")
        self.statement = as_str(statement, "args.statement")
        self.version = as_str(args.get("version"), "args.version")
        self.min_version = as_str(args.get("minVersion"), "args.minVersion")
        self.python = as_str(args.get("python"), "args.python")

        relationship = as_str(args.get("relationship"), "args.relationship")
        min_relationship = as_str(args.get("minRelationship"), "args.minRelationship")
        default = Relationship.LTE if self.min_version else Relationship.GTE
        try:
            self.relationship = parse_relationship(relationship, default=default)
            self.min_relationship = parse_relationship(min_relationship)
        except ValueError as exc:
            raise ArgumentError(str(exc)) from exc

    def to_args(self) -> dict[str, object]:
        args: dict[str, object] = {
            "module": self.module,
            "statement": self.statement,
            "version": self.version,
            "relationship": self.relationship.value,
        }
        if self.min_version:
            args["minVersion"] = self.min_version
            args["minRelationship"] = self.min_relationship.value
        if self.python:
            args["python"] = self.python
        return args

    def execute(self, cancel_token: CancellationToken) -> None:
        try:
            expected = parse_version(self.version)
        except ValueError as exc:
            self.set_state(False)
            self.add_error(exc)
            self.set_message(f"could not parse expected version '{self.version}'")
            return

        minimum = None
        if self.min_version:
            try:
                minimum = parse_version(self.min_version)
            except ValueError as exc:
                self.set_state(False)
                self.add_error(exc)
                self.set_message(f"could not parse expected version '{self.min_version}'")
                return

        interpreter = self.python or default_interpreter()
        if not self.python:
            logger.debug("python_interpreter_defaulted", check_id=self.id, python=interpreter)

        result = self._executor.run(
            CommandSpec(
                argv=(interpreter, "-c", f"import {self.module}; print({self.statement})"),
                combine_output=False,
            ),
            cancel_token,
        )
        reported = result.trimmed_output
        if not result.is_success():
            self.set_state(False)
            self.add_error(
                CheckError(
                    f"running '{interpreter}' for module '{self.module}' failed: "
                    f"{result.describe_failure()}"
                )
            )
            self.set_message(reported or result.stderr.strip())
            return

        try:
            actual = parse_version(reported)
        except ValueError as exc:
            self.set_state(False)
            self.add_error(exc)
            self.set_message(f"could not parse version '{reported}' from module '{self.module}'")
            return

        ok = compare_versions(self.relationship, actual, expected)
        if minimum is not None:
            ok = ok and compare_versions(self.min_relationship, actual, minimum)

        if not ok:
            summary = f"{actual} {self.relationship.value} {expected}"
            self.set_state(False)
            self.add_error(CheckError(f"check failed: {summary}"))
            self.set_message(summary)
            return

        self.set_state(True)


def register(registry: CheckRegistry = DEFAULT_CHECK_REGISTRY) -> None:
    registry.register(PYTHON_MODULE_VERSION, PythonModuleVersionCheck)


__all__ = [
    "PYTHON_MODULE_VERSION",
    "PythonModuleVersionCheck",
    "default_interpreter",
    "register",
]
