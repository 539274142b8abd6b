"""Process execution contract used by every check that spawns commands."""

from __future__ import annotations

import math
import os
import subprocess
import sys
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NoReturn, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from greenbay.utils.concurrency import CancellationToken

_POLL_INTERVAL_SECONDS = 0.1
_MAX_OUTPUT_CHARS = 200_000


@dataclass(slots=True)
class CommandSpec:
    """Portable command invocation contract."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None
    inherit_env: bool = True
    combine_output: bool = True

    def __post_init__(self) -> None:
        argv = tuple(self.argv)
        if not argv:
            _fail("CommandSpec.argv", "must not be empty")
        for index, item in enumerate(argv):
            if not isinstance(item, str):
                _fail(f"CommandSpec.argv[{index}]", f"expected string, got {type(item).__name__}")
        self.argv = argv
        if self.cwd is not None and not isinstance(self.cwd, str):
            _fail("CommandSpec.cwd", f"expected string, got {type(self.cwd).__name__}")
        for key, value in self.env.items():
            if not isinstance(key, str) or not isinstance(value, str):
                _fail("CommandSpec.env", "keys and values must be strings")
        self.env = dict(self.env)
        if self.timeout_seconds is not None:
            if isinstance(self.timeout_seconds, bool) or not math.isfinite(self.timeout_seconds):
                _fail("CommandSpec.timeout_seconds", "must be a finite number")
            if self.timeout_seconds <= 0:
                _fail("CommandSpec.timeout_seconds", "must be > 0")

    def build_env(self) -> dict[str, str] | None:
        if not self.inherit_env:
            return dict(self.env)
        if not self.env:
            return None
        env = dict(os.environ)
        env.update(self.env)
        return env

    def display(self) -> str:
        return " ".join(self.argv)


@dataclass(slots=True)
class CommandResult:
    """Outcome of one process execution."""

    argv: tuple[str, ...]
    exit_code: int | None
    output: str
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False
    cancelled: bool = False
    error: str | None = None

    def is_success(self) -> bool:
        if self.timed_out or self.cancelled or self.error is not None:
            return False
        return self.exit_code == 0

    @property
    def trimmed_output(self) -> str:
        return self.output.strip("\r\t\n ")

    def describe_failure(self) -> str:
        if self.error is not None:
            return self.error
        if self.timed_out:
            return "command timed out"
        if self.cancelled:
            return "operation cancelled"
        return f"exit status {self.exit_code}"


@runtime_checkable
class CommandExecutor(Protocol):
    """Pluggable synchronous command execution interface."""

    def run(
        self,
        spec: CommandSpec,
        cancel_token: CancellationToken | None = None,
    ) -> CommandResult: ...


class LocalSubprocessExecutor(CommandExecutor):
    """Runs commands on the local host and honours cancellation while waiting."""

    def __init__(
        self,
        *,
        default_timeout_seconds: float | None = None,
        max_output_chars: int | None = _MAX_OUTPUT_CHARS,
        poll_interval_seconds: float = _POLL_INTERVAL_SECONDS,
    ) -> None:
        if default_timeout_seconds is not None and default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be > 0")
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        self._default_timeout_seconds = default_timeout_seconds
        self._max_output_chars = max_output_chars
        self._poll_interval_seconds = poll_interval_seconds

    def run(
        self,
        spec: CommandSpec,
        cancel_token: CancellationToken | None = None,
    ) -> CommandResult:
        started_ns = time.monotonic_ns()
        if cancel_token is not None and cancel_token.is_cancelled:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                output="",
                cancelled=True,
                error="operation cancelled before command started",
            )

        timeout = (
            spec.timeout_seconds
            if spec.timeout_seconds is not None
            else self._default_timeout_seconds
        )

        try:
            process = subprocess.Popen(
                spec.argv,
                cwd=spec.cwd,
                env=spec.build_env(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if spec.combine_output else subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                output="",
                duration_ms=_elapsed_ms(started_ns),
                error=str(exc),
            )

        deadline = None if timeout is None else time.monotonic() + timeout
        timed_out = False
        cancelled = False
        while True:
            try:
                stdout_bytes, stderr_bytes = process.communicate(
                    timeout=self._poll_interval_seconds
                )
                break
            except subprocess.TimeoutExpired:
                if cancel_token is not None and cancel_token.is_cancelled:
                    cancelled = True
                elif deadline is not None and time.monotonic() >= deadline:
                    timed_out = True
                else:
                    continue
                process.kill()
                stdout_bytes, stderr_bytes = process.communicate()
                break

        error: str | None = None
        exit_code: int | None = process.returncode
        if timed_out:
            error = f"command timed out after {timeout:.3f}s"
            exit_code = None
        elif cancelled:
            error = "operation cancelled"
            exit_code = None

        return CommandResult(
            argv=spec.argv,
            exit_code=exit_code,
            output=self._normalize(stdout_bytes),
            stderr=self._normalize(stderr_bytes),
            duration_ms=_elapsed_ms(started_ns),
            timed_out=timed_out,
            cancelled=cancelled,
            error=error,
        )

    def _normalize(self, raw: bytes | None) -> str:
        if not raw:
            return ""
        text = raw.decode("utf-8", errors="replace").replace("\r\n", "\n")
        if self._max_output_chars is None or len(text) <= self._max_output_chars:
            return text
        omitted = len(text) - self._max_output_chars
        return f"{text[: self._max_output_chars]}\n...[truncated {omitted} chars]"


def shell_argv(command: str) -> tuple[str, ...]:
    """Wrap ``command`` for the platform shell."""

    if sys.platform == "win32":
        return ("cmd", "/C", command)
    shell = "/bin/sh" if os.path.exists("/bin/sh") else "sh"
    return (shell, "-c", command)


DEFAULT_EXECUTOR = LocalSubprocessExecutor()


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "DEFAULT_EXECUTOR",
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "shell_argv",
]
