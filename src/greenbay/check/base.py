"""
greenbay - check model

File: src/greenbay/check/base.py

Purpose
- Defines the contract every check satisfies (identity, type, suites, timing,
  pass/fail state, accumulated errors, structured output) and the shared base
  class that concrete checks build on.

Functional requirements
- ``run`` executes the body at most once, even with concurrent callers, and marks
  completion on every exit path.
- ``output`` is always safe to call and returns a consistent snapshot, including
  while the body is running.
- Exceptions raised by a body are recorded on the check and fail it; they never
  escape to the worker that called ``run``.
"""

from __future__ import annotations

import abc
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from greenbay.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = structlog.get_logger(__name__)


class CheckError(Exception):
    """Error recorded by a check body, or the joined summary of several."""

    def __init__(self, message: str, *, errors: Sequence[BaseException] = ()) -> None:
        super().__init__(message)
        self.errors = tuple(errors)


@dataclass(frozen=True, slots=True)
class CheckType:
    """Registry key and version of a check implementation."""

    name: str
    version: int = 0

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "version": self.version}


@dataclass(frozen=True, slots=True)
class TimingInfo:
    """Start and end timestamps of a check run."""

    start: datetime | None = None
    end: datetime | None = None

    @property
    def duration(self) -> timedelta:
        if self.start is None or self.end is None:
            return timedelta(0)
        return self.end - self.start

    def to_dict(self) -> dict[str, str | None]:
        return {
            "start_time": _format_timestamp(self.start),
            "end_time": _format_timestamp(self.end),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object] | None) -> TimingInfo:
        if not payload:
            return cls()
        return cls(
            start=_parse_timestamp(payload.get("start_time")),
            end=_parse_timestamp(payload.get("end_time")),
        )


@dataclass(frozen=True, slots=True)
class CheckOutput:
    """Immutable snapshot of a check, as consumed by reporters."""

    name: str
    check_type: str
    suites: tuple[str, ...] = ()
    completed: bool = False
    passed: bool = False
    message: str = ""
    error: str = ""
    timing: TimingInfo = field(default_factory=TimingInfo)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "completed": self.completed,
            "passed": self.passed,
            "check_type": self.check_type,
            "name": self.name,
        }
        if self.message:
            payload["message"] = self.message
        if self.error:
            payload["error"] = self.error
        payload["suites"] = list(self.suites)
        payload["timing"] = self.timing.to_dict()
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> CheckOutput:
        suites = payload.get("suites") or ()
        timing = payload.get("timing")
        return cls(
            name=str(payload.get("name", "")),
            check_type=str(payload.get("check_type", "")),
            suites=tuple(str(item) for item in suites),
            completed=bool(payload.get("completed", False)),
            passed=bool(payload.get("passed", False)),
            message=str(payload.get("message") or ""),
            error=str(payload.get("error") or ""),
            timing=TimingInfo.from_dict(timing if isinstance(timing, Mapping) else None),
        )


class Check(abc.ABC):
    """Shared state and lifecycle for every check.

    Subclasses implement :meth:`execute` (the body), :meth:`hydrate` (read
    arguments from a raw ``args`` mapping) and :meth:`to_args` (the inverse).
    All mutable state is guarded by a per-check lock.
    """

    def __init__(self, check_type: str, *, version: int = 0) -> None:
        self._lock = threading.RLock()
        self._type = CheckType(name=check_type, version=version)
        self._id = ""
        self._suites: list[str] = []
        self._passed = False
        self._completed = False
        self._started = False
        self._message = ""
        self._errors: list[BaseException] = []
        self._start: datetime | None = None
        self._end: datetime | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, type={self._type.name!r})"

    # identity ------------------------------------------------------------

    @property
    def id(self) -> str:
        with self._lock:
            return self._id

    @id.setter
    def id(self, value: str) -> None:
        self.set_id(value)

    def set_id(self, value: str) -> None:
        with self._lock:
            self._id = value

    @property
    def check_type(self) -> CheckType:
        return self._type

    @property
    def name(self) -> str:
        return self._type.name

    @property
    def suites(self) -> list[str]:
        with self._lock:
            return list(self._suites)

    @suites.setter
    def suites(self, value: Iterable[str]) -> None:
        self.set_suites(value)

    def set_suites(self, value: Iterable[str]) -> None:
        ordered: list[str] = []
        for suite in value:
            if suite not in ordered:
                ordered.append(suite)
        with self._lock:
            self._suites = ordered

    # arguments -----------------------------------------------------------

    def hydrate(self, args: Mapping[str, object]) -> None:
        """Populate check-specific fields from ``args``; unknown keys are ignored."""

    def to_args(self) -> dict[str, object]:
        return {}

    # lifecycle -----------------------------------------------------------

    def run(self, cancel_token: CancellationToken | None = None) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True

        token = cancel_token if cancel_token is not None else CancellationToken()
        self.start_task()
        try:
            if token.is_cancelled:
                self.set_state(False)
                self.add_error(CheckError("operation cancelled before check started"))
                return
            self.execute(token)
        except Exception as exc:
            self.set_state(False)
            self.add_error(exc)
            logger.warning(
                "check_body_raised",
                check_id=self.id,
                check_type=self.name,
                error=str(exc),
            )
        finally:
            self.mark_complete()

    @abc.abstractmethod
    def execute(self, cancel_token: CancellationToken) -> None:
        """The check body; records its verdict with :meth:`set_state`."""

    @property
    def started(self) -> bool:
        with self._lock:
            return self._started

    @property
    def completed(self) -> bool:
        with self._lock:
            return self._completed

    def start_task(self) -> None:
        with self._lock:
            self._start = _now()

    def mark_complete(self) -> None:
        with self._lock:
            now = _now()
            if self._start is None:
                self._start = now
            if self._end is None or self._end < self._start:
                self._end = max(now, self._start)
            self._completed = True

    def set_state(self, passed: bool) -> None:
        with self._lock:
            self._end = _now()
            self._passed = passed

    def set_message(self, value: object) -> None:
        rendered = render_message(value)
        with self._lock:
            self._message = rendered

    def add_error(self, error: BaseException | str | None) -> None:
        if error is None:
            return
        if isinstance(error, str):
            if not error:
                return
            error = CheckError(error)
        with self._lock:
            self._errors.append(error)

    # results -------------------------------------------------------------

    @property
    def passed(self) -> bool:
        with self._lock:
            return self._passed and self._completed

    @property
    def message(self) -> str:
        with self._lock:
            return self._message

    def has_errors(self) -> bool:
        with self._lock:
            return bool(self._errors)

    def error(self) -> CheckError | None:
        with self._lock:
            errors = list(self._errors)
        if not errors:
            return None
        return CheckError(_join_distinct(str(item) for item in errors), errors=errors)

    def output(self) -> CheckOutput:
        with self._lock:
            error = _join_distinct(str(item) for item in self._errors)
            return CheckOutput(
                name=self._id,
                check_type=self._type.name,
                suites=tuple(self._suites),
                completed=self._completed,
                passed=self._passed and self._completed,
                message=self._message,
                error=error,
                timing=TimingInfo(start=self._start, end=self._end),
            )


def render_message(value: object) -> str:
    """Render a message value: strings as-is, string lists joined by newlines."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, BaseException):
        return str(value)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return "\n".join(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return repr(value)


def _join_distinct(messages: Iterable[str]) -> str:
    seen: list[str] = []
    for message in messages:
        if message and message not in seen:
            seen.append(message)
    return "\n".join(seen)


def _now() -> datetime:
    return datetime.now(UTC)


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


__all__ = [
    "Check",
    "CheckError",
    "CheckOutput",
    "CheckType",
    "TimingInfo",
    "render_message",
]
