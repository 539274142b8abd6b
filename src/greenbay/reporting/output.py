"""Output options: pick a format, print results, optionally write them to a file."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from greenbay.reporting.base import ChecksFailedError, ReporterError
from greenbay.reporting.registry import DEFAULT_REPORTER_REGISTRY, ReporterRegistry
from greenbay.reporting.report import ReportReporter

if TYPE_CHECKING:
    from collections.abc import Iterable

    from greenbay.check.base import CheckOutput
    from greenbay.reporting.base import Reporter


@dataclass(frozen=True, slots=True)
class OutputOptions:
    """Where and how to report a run.

    The format is validated on construction. ``quiet`` suppresses passing
    checks from the output; failures are always reported.
    """

    path: Path | None = None
    format: str = "gotest"
    quiet: bool = False
    registry: ReporterRegistry = field(
        default=DEFAULT_REPORTER_REGISTRY, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.format not in self.registry:
            raise ReporterError(f"no results format named '{self.format}' exists")
        if self.path is not None and not isinstance(self.path, Path):
            object.__setattr__(self, "path", Path(self.path))
        if self.path is not None and not str(self.path).strip():
            object.__setattr__(self, "path", None)

    def reporter(self) -> Reporter:
        reporter = self.registry.create(self.format)
        if self.quiet:
            reporter.skip_passing()
        return reporter

    def collect_results(self, items: Iterable[object], *, stream: TextIO | None = None) -> None:
        """Populate a fresh reporter from ``items``, print it, and write the file.

        Raises :class:`ChecksFailedError` when the only problem is failed
        checks, otherwise a :class:`ReporterError` aggregating every problem.
        """

        reporter = self.reporter()
        try:
            reporter.populate(items)
        except ReporterError as exc:
            raise ReporterError(f"generating results content: {exc}", errors=(exc,)) from exc

        problems: list[ReporterError] = []
        try:
            reporter.print(stream)
        except ReporterError as exc:
            problems.append(exc)

        if self.path is not None:
            try:
                reporter.to_file(self.path)
            except ReporterError as exc:
                problems.append(exc)

        if not problems:
            return
        if all(isinstance(problem, ChecksFailedError) for problem in problems):
            raise problems[0]
        raise ReporterError(
            "; ".join(str(problem) for problem in problems),
            errors=problems,
        ) from problems[0]

    def report(self, items: Iterable[object]) -> dict[str, CheckOutput]:
        """Name to output map of ``items``, independent of the configured format."""

        reporter = ReportReporter()
        reporter.populate(items)
        return reporter.results


__all__ = ["OutputOptions"]
