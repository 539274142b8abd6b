"""
greenbay - log-stream reporters.

File: src/greenbay/reporting/logstream.py

Purpose
- Emit one log record per check through the standard ``logging`` machinery:
  passes at NOTICE, failures at ALERT, passes first.

Functional requirements
- ``log`` writes ``PASSED: '<name>' [time='<s>s', msg='...', error='...']``
  style lines; ``json`` writes the ``CheckOutput`` mapping as one JSON object
  per line.
- Records go to a detached logger bound to exactly one handler, so results
  never leak into (or depend on) the process-wide logging configuration.
"""

from __future__ import annotations

import abc
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Final, TextIO

from greenbay.observability.logging import ALERT, NOTICE
from greenbay.reporting.base import BaseReporter, ReporterError, format_seconds

if TYPE_CHECKING:
    from collections.abc import Sequence

    from greenbay.check.base import CheckOutput

RESULTS_LOGGER_NAME: Final[str] = "greenbay"
_LINE_FORMAT: Final[str] = "[%(name)s] %(asctime)s [p=%(levelname)s]: %(message)s"
_JSON_FORMAT: Final[str] = "%(message)s"


class _LoggingReporter(BaseReporter):
    line_format: str = _LINE_FORMAT

    def __init__(self) -> None:
        super().__init__()
        self._passed_messages: list[str] = []
        self._failed_messages: list[str] = []

    def _consume(self, outputs: Sequence[CheckOutput]) -> None:
        self._passed_messages = [self.compose(output) for output in outputs if output.passed]
        self._failed_messages = [self.compose(output) for output in outputs if not output.passed]

    @abc.abstractmethod
    def compose(self, output: CheckOutput) -> str: ...

    def render(self) -> str:
        lines = [*self._passed_messages, *self._failed_messages]
        if not lines:
            return ""
        return "\n".join(lines) + "\n"

    def print(self, stream: TextIO | None = None) -> None:
        handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        self._emit(handler)
        self._raise_if_failed()

    def to_file(self, path: str | Path) -> None:
        target = Path(path)
        try:
            handler = logging.FileHandler(target, encoding="utf-8")
        except OSError as exc:
            raise ReporterError(
                f"problem setting up output logger to file '{target}': {exc}"
            ) from exc
        self._emit(handler)
        self._raise_if_failed()

    def _emit(self, handler: logging.Handler) -> None:
        handler.setFormatter(logging.Formatter(self.line_format))
        results_logger = logging.Logger(RESULTS_LOGGER_NAME, level=logging.INFO)
        results_logger.propagate = False
        results_logger.addHandler(handler)
        try:
            for message in self._passed_messages:
                results_logger.log(NOTICE, message)
            for message in self._failed_messages:
                results_logger.log(ALERT, message)
        finally:
            results_logger.removeHandler(handler)
            handler.flush()
            handler.close()


class LogReporter(_LoggingReporter):
    format_name = "log"

    def compose(self, output: CheckOutput) -> str:
        prefix = "PASSED" if output.passed else "FAILED"
        return (
            f"{prefix}: '{output.name}' [time='{format_seconds(output)}', "
            f"msg='{output.message}', error='{output.error}']"
        )


class JsonReporter(_LoggingReporter):
    format_name = "json"
    line_format = _JSON_FORMAT

    def compose(self, output: CheckOutput) -> str:
        return json.dumps(output.to_dict(), sort_keys=True)


__all__ = ["RESULTS_LOGGER_NAME", "JsonReporter", "LogReporter"]
