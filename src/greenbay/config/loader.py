"""
greenbay - check-suite file loader.

File: src/greenbay/config/loader.py

Purpose
- Read a check-suite file (YAML or JSON), normalise it to a JSON-compatible
  document, and validate its shape into typed options and raw test entries.

What should be included in this file
- Format detection from the file extension.
- YAML loading via ``yaml.safe_load``; JSON via ``json``.
- Strict validation of top-level keys, option keys and test entry keys.
- ``GREENBAY_`` environment overrides for the run options.

Functional requirements
- Any problem reading or parsing the file raises :class:`ConfigLoadError`.
- Unknown top-level, option or test-entry keys are rejected; ``args`` contents
  are left to each check.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Final, NoReturn

import yaml

DEFAULT_CONFIG_FILE: Final[str] = "greenbay.yaml"
ENV_PREFIX: Final[str] = "GREENBAY_"
DEFAULT_REPORT_FORMAT: Final[str] = "gotest"

_TOP_LEVEL_KEYS: Final[frozenset[str]] = frozenset({"options", "tests"})
_OPTION_KEYS: Final[frozenset[str]] = frozenset({"continue_on_error", "report_format", "jobs"})
_TEST_KEYS: Final[frozenset[str]] = frozenset({"name", "type", "suites", "args"})

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when a check-suite file cannot be loaded, parsed or resolved.

    ``problems`` lists every individual problem when several were aggregated.
    """

    def __init__(self, message: str, *, problems: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.problems = problems or (message,)


class ConfigFormat(StrEnum):
    YAML = "yaml"
    JSON = "json"


def default_jobs() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True, slots=True)
class Options:
    continue_on_error: bool = False
    report_format: str = DEFAULT_REPORT_FORMAT
    jobs: int = field(default_factory=default_jobs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "continue_on_error": self.continue_on_error,
            "report_format": self.report_format,
            "jobs": self.jobs,
        }


@dataclass(frozen=True, slots=True)
class RawTest:
    """One ``tests`` entry before it is resolved against the check registry."""

    name: str
    type: str
    suites: tuple[str, ...] = ()
    args: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "suites": list(self.suites),
            "args": dict(self.args),
        }


@dataclass(frozen=True, slots=True)
class RawConfiguration:
    options: Options
    tests: tuple[RawTest, ...]
    path: Path | None = None


def detect_format(path: str | Path) -> ConfigFormat:
    suffix = Path(path).suffix
    if suffix in {".yaml", ".yml"}:
        return ConfigFormat.YAML
    if suffix == ".json":
        return ConfigFormat.JSON
    raise ConfigLoadError(f"greenbay does not support files with '{suffix}' extension")


def read_document(path: str | Path) -> dict[str, Any]:
    """Read ``path`` and return its JSON-compatible top-level mapping."""

    resolved = Path(path).expanduser()
    config_format = detect_format(resolved)
    try:
        text = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"problem reading greenbay config file: {resolved}: {exc}") from exc
    return parse_text(text, config_format, source=str(resolved))


def parse_text(
    text: str,
    config_format: ConfigFormat,
    *,
    source: str = "<memory>",
) -> dict[str, Any]:
    if config_format is ConfigFormat.YAML:
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigLoadError(f"problem parsing config '{source}': {exc}") from exc
    else:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigLoadError(f"problem parsing config '{source}': {exc}") from exc

    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise ConfigLoadError(f"config root must be a mapping: {source}")
    return _to_json_compatible(parsed, "$")


def parse_document(
    document: Mapping[str, Any],
    *,
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> RawConfiguration:
    unknown = sorted(set(document) - _TOP_LEVEL_KEYS)
    if unknown:
        _fail("$", f"unknown top-level keys: {', '.join(unknown)}")

    options = _parse_options(document.get("options"))
    options = apply_env_overrides(options, os.environ if environ is None else environ)

    raw_tests = document.get("tests")
    if raw_tests is None:
        raw_tests = []
    if not isinstance(raw_tests, list):
        _fail("tests", f"expected list, got {type(raw_tests).__name__}")
    tests = tuple(_parse_test(item, f"tests[{index}]") for index, item in enumerate(raw_tests))

    return RawConfiguration(options=options, tests=tests, path=path)


def load_raw_config(
    path: str | Path,
    *,
    environ: Mapping[str, str] | None = None,
) -> RawConfiguration:
    resolved = Path(path).expanduser().resolve()
    return parse_document(read_document(resolved), path=resolved, environ=environ)


def resolve_config_path(path: str | Path | None) -> Path:
    if path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(path).expanduser().resolve()


def apply_env_overrides(options: Options, environ: Mapping[str, str]) -> Options:
    updates: dict[str, Any] = {}

    raw_jobs = environ.get(f"{ENV_PREFIX}JOBS")
    if raw_jobs is not None:
        updates["jobs"] = _coerce_positive_int(raw_jobs, f"{ENV_PREFIX}JOBS")

    raw_format = environ.get(f"{ENV_PREFIX}REPORT_FORMAT")
    if raw_format is not None and raw_format.strip():
        updates["report_format"] = raw_format.strip()

    raw_continue = environ.get(f"{ENV_PREFIX}CONTINUE_ON_ERROR")
    if raw_continue is not None:
        updates["continue_on_error"] = _coerce_bool(
            raw_continue, f"{ENV_PREFIX}CONTINUE_ON_ERROR"
        )

    if not updates:
        return options
    return replace(options, **updates)


def _parse_options(raw: object) -> Options:
    if raw is None:
        return Options()
    if not isinstance(raw, Mapping):
        _fail("options", f"expected mapping, got {type(raw).__name__}")

    unknown = sorted(set(raw) - _OPTION_KEYS)
    if unknown:
        _fail("options", f"unknown keys: {', '.join(unknown)}")

    defaults = Options()
    continue_on_error = raw.get("continue_on_error", defaults.continue_on_error)
    if not isinstance(continue_on_error, bool):
        _fail("options.continue_on_error", "expected boolean")

    report_format = raw.get("report_format", defaults.report_format)
    if report_format is None or report_format == "":
        report_format = defaults.report_format
    if not isinstance(report_format, str):
        _fail("options.report_format", "expected string")

    jobs = raw.get("jobs", defaults.jobs)
    if jobs is None or jobs == 0:
        jobs = defaults.jobs
    if isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 0:
        _fail("options.jobs", "expected positive integer")

    return Options(continue_on_error=continue_on_error, report_format=report_format, jobs=jobs)


def _parse_test(raw: object, path: str) -> RawTest:
    if not isinstance(raw, Mapping):
        _fail(path, f"expected mapping, got {type(raw).__name__}")

    unknown = sorted(set(raw) - _TEST_KEYS)
    if unknown:
        _fail(path, f"unknown keys: {', '.join(unknown)}")

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        _fail(f"{path}.name", "expected non-empty string")

    type_name = raw.get("type")
    if not isinstance(type_name, str) or not type_name.strip():
        _fail(f"{path}.type", "expected non-empty string")

    suites = raw.get("suites")
    if suites is None:
        suites = []
    if not isinstance(suites, list) or not all(isinstance(item, str) for item in suites):
        _fail(f"{path}.suites", "expected list of strings")

    args = raw.get("args")
    if args is None:
        args = {}
    if not isinstance(args, Mapping):
        _fail(f"{path}.args", f"expected mapping, got {type(args).__name__}")

    return RawTest(name=name, type=type_name, suites=tuple(suites), args=dict(args))


def _to_json_compatible(value: object, path: str) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _to_json_compatible(item, f"{path}.{key}") for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_compatible(item, f"{path}[{index}]") for index, item in enumerate(value)]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    _fail(path, f"unsupported value of type {type(value).__name__}")


def _coerce_positive_int(raw: str, env_name: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ConfigLoadError(f"{env_name} -> options.jobs must be an integer") from exc
    if value < 1:
        raise ConfigLoadError(f"{env_name} -> options.jobs must be >= 1")
    return value


def _coerce_bool(raw: str, env_name: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> options.continue_on_error must be a boolean "
        "(true/false/1/0/yes/no/on/off)"
    )


def _fail(path: str, message: str) -> NoReturn:
    raise ConfigLoadError(f"{path}: {message}")


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_REPORT_FORMAT",
    "ENV_PREFIX",
    "ConfigFormat",
    "ConfigLoadError",
    "Options",
    "RawConfiguration",
    "RawTest",
    "apply_env_overrides",
    "default_jobs",
    "detect_format",
    "load_raw_config",
    "parse_document",
    "parse_text",
    "read_document",
    "resolve_config_path",
]
