"""
greenbay - reporter contract.

File: src/greenbay/reporting/base.py

Purpose
- Shared contract and plumbing for every results format: conversion of the
  input stream to ``CheckOutput`` snapshots, passing-entry suppression, and
  the failed-check signal raised after output is written.

Functional requirements
- Items that are neither ``Check`` nor ``CheckOutput`` are refused with
  "does not implement the check interface"; the remaining items are still
  reported.
- ``print`` and ``to_file`` always write their output first and only then
  raise :class:`ChecksFailedError` when at least one check failed.
"""

from __future__ import annotations

import abc
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import structlog

from greenbay.check.base import Check, CheckOutput

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = structlog.get_logger(__name__)


class ReporterError(Exception):
    """Raised for invalid reporter input, unknown formats and write failures."""

    def __init__(self, message: str, *, errors: Sequence[BaseException] = ()) -> None:
        super().__init__(message)
        self.errors = tuple(errors)


class ChecksFailedError(ReporterError):
    """Output was produced, but at least one reported check failed."""

    def __init__(self, failed: int) -> None:
        super().__init__(f"{failed} test(s) failed")
        self.failed = failed


@runtime_checkable
class Reporter(Protocol):
    format_name: str

    def skip_passing(self) -> None: ...

    def populate(self, items: Iterable[object]) -> None: ...

    def print(self, stream: TextIO | None = None) -> None: ...

    def to_file(self, path: str | Path) -> None: ...


def to_output(item: object) -> CheckOutput:
    if isinstance(item, CheckOutput):
        return item
    if isinstance(item, Check):
        return item.output()
    ident = getattr(item, "id", None) or "<unknown>"
    raise ReporterError(
        f"job {ident} ({type(item).__name__}) does not implement the check interface"
    )


def collect_outputs(
    items: Iterable[object],
    *,
    skip_passing: bool = False,
) -> tuple[list[CheckOutput], list[ReporterError]]:
    """Convert ``items`` in order, separating snapshots from refused items."""

    outputs: list[CheckOutput] = []
    problems: list[ReporterError] = []
    for item in items:
        try:
            output = to_output(item)
        except ReporterError as exc:
            problems.append(exc)
            continue
        if skip_passing and output.passed:
            continue
        outputs.append(output)
    return outputs, problems


def format_seconds(output: CheckOutput) -> str:
    return f"{output.timing.duration.total_seconds():.2f}s"


class BaseReporter(abc.ABC):
    """Text-rendering reporter; subclasses implement :meth:`_consume` and :meth:`render`."""

    format_name: str = ""

    def __init__(self) -> None:
        self._skip_passing = False
        self._failed = 0

    @property
    def failed(self) -> int:
        return self._failed

    def skip_passing(self) -> None:
        self._skip_passing = True

    def populate(self, items: Iterable[object]) -> None:
        outputs, problems = collect_outputs(items, skip_passing=self._skip_passing)
        self._failed = sum(1 for output in outputs if not output.passed)
        self._consume(outputs)
        if problems:
            raise ReporterError(
                f"problem generating {self.format_name} results: "
                + "; ".join(str(problem) for problem in problems),
                errors=problems,
            )

    def print(self, stream: TextIO | None = None) -> None:
        out = stream if stream is not None else sys.stdout
        out.write(self.render())
        out.flush()
        self._raise_if_failed()

    def to_file(self, path: str | Path) -> None:
        target = Path(path)
        try:
            target.write_text(self.render(), encoding="utf-8")
        except OSError as exc:
            raise ReporterError(f"problem writing output to {target}: {exc}") from exc
        logger.info("results_written", path=str(target), report_format=self.format_name)
        self._raise_if_failed()

    @abc.abstractmethod
    def render(self) -> str: ...

    @abc.abstractmethod
    def _consume(self, outputs: Sequence[CheckOutput]) -> None:
        """Keep whatever :meth:`render` needs from the populated outputs."""

    def _raise_if_failed(self) -> None:
        if self._failed > 0:
            raise ChecksFailedError(self._failed)


__all__ = [
    "BaseReporter",
    "ChecksFailedError",
    "Reporter",
    "ReporterError",
    "collect_outputs",
    "format_seconds",
    "to_output",
]
