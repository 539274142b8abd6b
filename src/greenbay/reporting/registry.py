"""Format-name registry for results reporters."""

from __future__ import annotations

import threading
from collections.abc import Callable

import structlog

from greenbay.reporting.base import Reporter, ReporterError
from greenbay.reporting.gotest import GoTestReporter
from greenbay.reporting.logstream import JsonReporter, LogReporter
from greenbay.reporting.report import ReportReporter
from greenbay.reporting.results import ResultsReporter

logger = structlog.get_logger(__name__)

ReporterFactory = Callable[[], Reporter]


class ReporterRegistry:
    """Thread-safe mapping of format name to zero-argument reporter factory."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._factories: dict[str, ReporterFactory] = {}

    def add(self, name: str, factory: ReporterFactory) -> None:
        if not name.strip():
            raise ValueError("format name must not be empty")
        with self._lock:
            if name in self._factories:
                logger.warning("overwriting_reporter_factory", report_format=name)
            self._factories[name] = factory

    def get(self, name: str) -> ReporterFactory | None:
        with self._lock:
            factory = self._factories.get(name)
        if factory is None:
            logger.warning("reporter_factory_missing", report_format=name)
        return factory

    def create(self, name: str) -> Reporter:
        factory = self.get(name)
        if factory is None:
            raise ReporterError(f"no results format named '{name}' exists")
        return factory()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._factories

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._factories)


def register_builtin_reporters(registry: ReporterRegistry) -> ReporterRegistry:
    registry.add(GoTestReporter.format_name, GoTestReporter)
    registry.add(ResultsReporter.format_name, ResultsReporter)
    registry.add(LogReporter.format_name, LogReporter)
    registry.add(JsonReporter.format_name, JsonReporter)
    registry.add(ReportReporter.format_name, ReportReporter)
    return registry


DEFAULT_REPORTER_REGISTRY = register_builtin_reporters(ReporterRegistry())


__all__ = [
    "DEFAULT_REPORTER_REGISTRY",
    "ReporterFactory",
    "ReporterRegistry",
    "register_builtin_reporters",
]
