"""Shared fixtures: a scripted command executor and check-suite file writers."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
import structlog
import yaml

from greenbay.check.catalog import builtin_registry
from greenbay.check.command import CommandExecutor, CommandResult, CommandSpec
from greenbay.observability.logging import shutdown_logging

if TYPE_CHECKING:
    from greenbay.check.registry import CheckRegistry
    from greenbay.utils.concurrency import CancellationToken


@dataclass(frozen=True, slots=True)
class FakeOutcome:
    exit_code: int | None = 0
    output: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: str | None = None


class FakeExecutor(CommandExecutor):
    """Answers commands from a table keyed by argv; unmatched argv exit 127."""

    def __init__(
        self,
        responses: Mapping[tuple[str, ...], FakeOutcome] | None = None,
        *,
        default: FakeOutcome | None = None,
    ) -> None:
        self.responses = dict(responses or {})
        self.default = default if default is not None else FakeOutcome(exit_code=127)
        self.calls: list[CommandSpec] = []

    def run(
        self,
        spec: CommandSpec,
        cancel_token: CancellationToken | None = None,
    ) -> CommandResult:
        self.calls.append(spec)
        outcome = self.responses.get(spec.argv, self.default)
        return CommandResult(
            argv=spec.argv,
            exit_code=outcome.exit_code,
            output=outcome.output,
            stderr=outcome.stderr,
            timed_out=outcome.timed_out,
            error=outcome.error,
        )

    @property
    def argvs(self) -> list[tuple[str, ...]]:
        return [call.argv for call in self.calls]


@pytest.fixture(autouse=True)
def _reset_logging(capsys: pytest.CaptureFixture[str]) -> Iterator[None]:
    # Requesting capsys orders this teardown before the captured streams close.
    yield
    shutdown_logging()
    structlog.reset_defaults()


@pytest.fixture
def registry() -> CheckRegistry:
    return builtin_registry()


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a check-suite document and return its path; the suffix picks the format."""

    def write(document: Mapping[str, Any], name: str = "greenbay.yaml") -> Path:
        path = tmp_path / name
        if path.suffix == ".json":
            path.write_text(json.dumps(document), encoding="utf-8")
        else:
            path.write_text(yaml.safe_dump(dict(document), sort_keys=False), encoding="utf-8")
        return path

    return write


def mock_test(name: str, *suites: str, should_fail: bool = False) -> dict[str, Any]:
    return {
        "name": name,
        "type": "mock-check",
        "suites": list(suites),
        "args": {"should_fail": should_fail},
    }
