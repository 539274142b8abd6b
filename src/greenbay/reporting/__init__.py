"""Results reporters and output options."""

from greenbay.reporting.base import (
    BaseReporter,
    ChecksFailedError,
    Reporter,
    ReporterError,
    collect_outputs,
    to_output,
)
from greenbay.reporting.gotest import GoTestReporter
from greenbay.reporting.logstream import JsonReporter, LogReporter
from greenbay.reporting.output import OutputOptions
from greenbay.reporting.registry import (
    DEFAULT_REPORTER_REGISTRY,
    ReporterFactory,
    ReporterRegistry,
)
from greenbay.reporting.report import ReportReporter
from greenbay.reporting.results import ResultsReporter

__all__ = [
    "DEFAULT_REPORTER_REGISTRY",
    "BaseReporter",
    "ChecksFailedError",
    "GoTestReporter",
    "JsonReporter",
    "LogReporter",
    "OutputOptions",
    "ReportReporter",
    "Reporter",
    "ReporterError",
    "ReporterFactory",
    "ReporterRegistry",
    "ResultsReporter",
    "collect_outputs",
    "to_output",
]
