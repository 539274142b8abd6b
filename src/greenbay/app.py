"""
greenbay - one-shot application runner.

File: src/greenbay/app.py

Purpose
- Wire configuration, selection, the scheduler and the reporter together for
  a single run from the command line.

Functional requirements
- With neither tests nor suites requested, the ``all`` suite is run.
- Selection errors abort the run before any check executes, unless the
  configuration sets ``continue_on_error``, in which case they are logged and
  skipped.
- A check selected both by name and through a suite runs once.
- Results are reported only after every submitted check has completed.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final

import structlog

from greenbay.config.configuration import Configuration, SelectionError
from greenbay.observability.logging import correlation_scope
from greenbay.reporting.output import OutputOptions
from greenbay.scheduler import DEFAULT_CAPACITY, CheckQueue, QueueStats
from greenbay.utils.concurrency import CancellationToken, OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from typing import TextIO

    from greenbay.check.base import Check
    from greenbay.check.registry import CheckRegistry

logger = structlog.get_logger(__name__)

DEFAULT_SUITE: Final[str] = "all"
WAIT_INTERVAL_SECONDS: Final[float] = 0.01


@dataclass(slots=True)
class Application:
    """A configured run: which checks, how many workers, where results go."""

    configuration: Configuration
    output: OutputOptions
    jobs: int | None = None
    tests: tuple[str, ...] = ()
    suites: tuple[str, ...] = ()
    _stats: QueueStats | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_paths(
        cls,
        conf_path: str | Path,
        *,
        output_path: str | Path | None = None,
        report_format: str | None = None,
        quiet: bool = False,
        jobs: int | None = None,
        suites: Sequence[str] = (),
        tests: Sequence[str] = (),
        registry: CheckRegistry | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Application:
        configuration = Configuration.from_file(conf_path, registry=registry, environ=environ)
        options = configuration.options
        output = OutputOptions(
            path=Path(output_path) if output_path else None,
            format=report_format or options.report_format,
            quiet=quiet,
        )
        return cls(
            configuration=configuration,
            output=output,
            jobs=jobs if jobs else options.jobs,
            tests=tuple(tests),
            suites=tuple(suites),
        )

    @property
    def stats(self) -> QueueStats | None:
        return self._stats

    def select(self) -> list[Check]:
        return select_checks(
            self.configuration,
            self.tests,
            self.suites,
            continue_on_error=self.configuration.options.continue_on_error,
        )

    def run(
        self,
        cancel_token: CancellationToken | None = None,
        *,
        stream: TextIO | None = None,
    ) -> QueueStats:
        """Run the selected checks and report them.

        Raises :class:`~greenbay.reporting.base.ChecksFailedError` when any
        check failed, after the report has been written.
        """

        token = CancellationToken(parent=cancel_token)
        checks = self.select()

        with correlation_scope(run_id=uuid.uuid4().hex):
            check_queue = CheckQueue(
                workers=self.jobs,
                capacity=max(DEFAULT_CAPACITY, len(checks)),
            )
            started = time.monotonic()
            check_queue.start(token)
            try:
                for check in checks:
                    check_queue.submit(check)
                logger.info("checks_registered", total=len(checks), workers=check_queue.workers)

                completed = check_queue.wait(WAIT_INTERVAL_SECONDS)
                stats = check_queue.stats()
                self._stats = stats
            finally:
                token.cancel()
                check_queue.close()

            if not completed:
                raise OperationCancelledError("run cancelled before all checks completed")

            logger.info(
                "checks_complete",
                total=stats.total,
                runtime_seconds=round(time.monotonic() - started, 3),
            )
            self.output.collect_results(check_queue.results(), stream=stream)
        return stats


def select_checks(
    configuration: Configuration,
    tests: Sequence[str] = (),
    suites: Sequence[str] = (),
    *,
    continue_on_error: bool = False,
) -> list[Check]:
    """Resolve requested tests and suites into distinct checks, in selection order."""

    if not tests and not suites:
        if DEFAULT_SUITE not in configuration.suites:
            logger.info("default_suite_empty", suite=DEFAULT_SUITE)
            return []
        suites = (DEFAULT_SUITE,)

    checks: dict[str, Check] = {}
    problems: list[SelectionError] = []
    for selection in configuration.all_tests(tests, suites):
        if selection.error is not None:
            if continue_on_error:
                logger.warning("selection_skipped", error=str(selection.error))
                continue
            problems.append(selection.error)
            continue
        if selection.check is None:
            continue
        if selection.check.id in checks:
            logger.debug("selection_deduplicated", check_id=selection.check.id)
            continue
        checks[selection.check.id] = selection.check

    if problems:
        raise SelectionError(
            "collecting and submitting jobs: " + "\n".join(str(item) for item in problems)
        )
    return list(checks.values())


__all__ = ["DEFAULT_SUITE", "Application", "select_checks"]
