"""
greenbay - compiler and interpreter families

File: src/greenbay/check/compilers.py

Purpose
- Provide the toolchains behind the compile, program-output and program-return
  checks: native C compilers, Go toolchains, script interpreters, and the
  Windows Visual Studio toolchain.

Functional requirements
- Every compiler offers ``validate``, ``compile`` and ``compile_and_run``.
- Sources are written to a private temporary directory that is removed, along
  with every artifact, on all exit paths.
- ``validate`` must fail, without spawning anything, when the binary cannot be
  resolved.
- Toolchains that do not exist on the current platform are still exposed under
  their names as validation-only stubs.
"""

from __future__ import annotations

import os
import secrets
import shutil
import sys
import tempfile
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

from greenbay.check.base import CheckError
from greenbay.check.command import DEFAULT_EXECUTOR, CommandExecutor, CommandSpec

if sys.platform == "win32":
    import winreg

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

_TOOLCHAIN_ROOT = "/opt/mongodbtoolchain"


class CompilerError(CheckError):
    """A toolchain failed to validate, build or run; ``output`` holds captured text."""

    def __init__(self, message: str, *, output: str = "") -> None:
        super().__init__(message)
        self.output = output


@runtime_checkable
class Compiler(Protocol):
    def validate(self) -> None: ...

    def compile(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> None: ...

    def compile_and_run(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str: ...


CompilerFactory = Callable[[], Compiler]


@dataclass(frozen=True, slots=True)
class SourceFile:
    """A test body written to disk; ``base`` is the path without its extension."""

    base: Path
    path: Path


@contextmanager
def temporary_source(source: str, extension: str) -> Iterator[SourceFile]:
    """Write ``source`` to ``testBody_*.<extension>`` and remove everything on exit."""

    directory = Path(tempfile.mkdtemp(prefix="greenbay-compile-"))
    try:
        base = directory / f"testBody_{secrets.token_hex(6)}"
        path = base.with_name(f"{base.name}.{extension}")
        if sys.platform == "win32":
            source = source.replace("\n", "\r\n")
        path.write_bytes(source.encode("utf-8"))
        yield SourceFile(base=base, path=path)
    finally:
        shutil.rmtree(directory, ignore_errors=True)


def resolve_binary(binary: str) -> str | None:
    """Return the absolute path of ``binary``, or ``None`` when it does not resolve."""

    if not binary:
        return None
    if os.path.isabs(binary) or os.sep in binary:
        return binary if os.path.isfile(binary) else None
    return shutil.which(binary)


def first_existing(candidates: Sequence[str], fallback: str) -> str:
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    return fallback


class _ExecutingCompiler:
    def __init__(self, binary: str, *, executor: CommandExecutor | None = None) -> None:
        self.binary = binary
        self._executor = executor if executor is not None else DEFAULT_EXECUTOR

    def __repr__(self) -> str:
        return f"{type(self).__name__}(binary={self.binary!r})"

    def validate(self) -> None:
        if not self.binary:
            raise CompilerError("no compiler specified")
        if resolve_binary(self.binary) is None:
            raise CompilerError(f"compiler binary '{self.binary}' does not exist")

    def _run(
        self,
        argv: Sequence[str],
        *,
        cancel_token: CancellationToken | None,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        action: str,
    ) -> str:
        logger.info("compiler_command", action=action, argv=" ".join(argv))
        result = self._executor.run(
            CommandSpec(
                argv=tuple(argv),
                cwd=str(cwd) if cwd is not None else None,
                env=env or {},
            ),
            cancel_token,
        )
        if not result.is_success():
            raise CompilerError(
                f"problem {action}: {result.describe_failure()}: {result.trimmed_output}",
                output=result.output,
            )
        return result.output


class GccCompiler(_ExecutingCompiler):
    def compile(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        with temporary_source(source, "c") as body:
            argv = [self.binary, "-Werror", "-o", f"{body.base}.o", "-c", str(body.path), *flags]
            self._run(argv, cancel_token=cancel_token, action="compiling test body")

    def compile_and_run(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        with temporary_source(source, "c") as body:
            argv = [self.binary, "-Werror", "-o", str(body.base), str(body.path), *flags]
            self._run(argv, cancel_token=cancel_token, action="compiling test")
            output = self._run(
                [str(body.base)], cancel_token=cancel_token, action="running test program"
            )
        return output.strip("\r\t\n ")


def gcc_auto(*, executor: CommandExecutor | None = None) -> GccCompiler:
    binary = first_existing(
        (
            f"{_TOOLCHAIN_ROOT}/v2/bin/gcc",
            f"{_TOOLCHAIN_ROOT}/v1/bin/gcc",
            f"{_TOOLCHAIN_ROOT}/bin/gcc",
            "/usr/bin/gcc",
            "/usr/local/bin/gcc",
        ),
        "gcc",
    )
    return GccCompiler(binary, executor=executor)


class GoCompiler(_ExecutingCompiler):
    """A Go toolchain; ``path_prefix`` is prepended to ``PATH`` for toolchain helpers."""

    def __init__(
        self,
        binary: str,
        *,
        path_prefix: str = "",
        executor: CommandExecutor | None = None,
    ) -> None:
        super().__init__(binary, executor=executor)
        self.path_prefix = path_prefix

    def validate(self) -> None:
        if not self.binary:
            raise CompilerError("no go binary specified")
        if resolve_binary(self.binary) is None:
            raise CompilerError(f"go binary '{self.binary}' does not exist")

    def _env(self) -> dict[str, str]:
        if not self.path_prefix:
            return {}
        return {"PATH": os.pathsep.join((self.path_prefix, os.environ.get("PATH", "")))}

    def compile(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        with temporary_source(source, "go") as body:
            self._run(
                [self.binary, "build", str(body.path)],
                cancel_token=cancel_token,
                cwd=body.path.parent,
                env=self._env(),
                action="compiling go test",
            )

    def compile_and_run(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        with temporary_source(source, "go") as body:
            output = self._run(
                [self.binary, "run", str(body.path)],
                cancel_token=cancel_token,
                cwd=body.path.parent,
                env=self._env(),
                action="running go program",
            )
        return output.strip("\r\t\n ")


def go_auto(*, executor: CommandExecutor | None = None) -> GoCompiler:
    candidates = (
        ("/opt/go/bin/go", ""),
        (f"{_TOOLCHAIN_ROOT}/v2/bin/go", f"{_TOOLCHAIN_ROOT}/v2/bin"),
        ("/usr/bin/go", ""),
        ("/usr/local/go/bin/go", ""),
        ("/usr/local/bin/go", ""),
    )
    for binary, prefix in candidates:
        if os.path.exists(binary):
            return GoCompiler(binary, path_prefix=prefix, executor=executor)
    return GoCompiler("go", executor=executor)


class ScriptCompiler(_ExecutingCompiler):
    """An interpreter; "compiling" a script means running it once."""

    def __init__(
        self,
        binary: str,
        *,
        extension: str = "py",
        executor: CommandExecutor | None = None,
    ) -> None:
        super().__init__(binary, executor=executor)
        self.extension = extension

    def validate(self) -> None:
        if not self.binary:
            raise CompilerError("no script interpreter")
        if resolve_binary(self.binary) is None:
            raise CompilerError(f"script interpreter '{self.binary}' does not exist")

    def compile(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        with temporary_source(source, self.extension) as body:
            self._run(
                [self.binary, str(body.path)],
                cancel_token=cancel_token,
                action="building/running test script",
            )

    def compile_and_run(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        with temporary_source(source, self.extension) as body:
            output = self._run(
                [self.binary, str(body.path)],
                cancel_token=cancel_token,
                action="running test script",
            )
        return output.strip("\r\t\n ")


def python_auto(*, executor: CommandExecutor | None = None) -> ScriptCompiler:
    binary = first_existing(
        (f"{_TOOLCHAIN_ROOT}/v2/bin/python", "/usr/local/bin/python", "/usr/bin/python"),
        "python",
    )
    return ScriptCompiler(binary, extension="py", executor=executor)


class UndefinedCompiler:
    """Stands in for a toolchain that has no meaning on this platform."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"UndefinedCompiler(name={self.name!r})"

    def validate(self) -> None:
        raise CompilerError(
            f"compiler check '{self.name}' is not defined on this platform ({sys.platform})"
        )

    def compile(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.validate()

    def compile_and_run(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        self.validate()
        return ""


class VisualStudioCompiler(_ExecutingCompiler):
    """``cl.exe`` from the newest Visual Studio found in the registry.

    Discovery (registry enumeration plus ``vcvarsall.bat``) happens on the first
    ``validate`` and is cached for the lifetime of the instance.
    """

    def __init__(self, *, executor: CommandExecutor | None = None) -> None:
        super().__init__("cl.exe", executor=executor)
        self._environments: dict[str, dict[str, str]] | None = None
        self._discovery_errors: list[str] = []

    def validate(self) -> None:
        environments = self._discover()
        if self._discovery_errors:
            raise CompilerError("\n".join(self._discovery_errors))
        if not environments:
            raise CompilerError("Visual Studio is not installed on this system")

    def _discover(self) -> dict[str, dict[str, str]]:
        if self._environments is not None:
            return self._environments
        self._environments = {}
        if sys.platform != "win32":
            self._discovery_errors.append("Visual Studio is only available on Windows")
            return self._environments

        if sys.maxsize > 2**32:
            root = r"Software\Wow6432Node\Microsoft\VisualStudio"
            arch = "amd64"
        else:
            root = r"Software\Microsoft\VisualStudio"
            arch = "x86"
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, root) as key:
                versions = _enumerate_subkeys(key)
        except OSError as exc:
            self._discovery_errors.append(f"problem reading from registry: {exc}")
            return self._environments

        for version in versions:
            try:
                setup_key = rf"{root}\{version}\Setup\VC"
                with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, setup_key) as sub:
                    product_dir, _ = winreg.QueryValueEx(sub, "ProductDir")
            except OSError:
                continue
            result = self._executor.run(
                CommandSpec(
                    argv=("cmd.exe", "/C", f"{product_dir}vcvarsall.bat", arch, "&", "set")
                )
            )
            if not result.is_success():
                continue
            self._environments[version] = _parse_environment(result.output)
        return self._environments

    def _latest(self) -> tuple[dict[str, str], str]:
        environments = self._discover()
        if not environments:
            raise CompilerError("Visual Studio is not installed on this system")
        env = environments[sorted(environments)[-1]]
        path = env.get("PATH") or env.get("Path") or ""
        if "Visual Studio" not in path:
            raise CompilerError("Could not find the PATH in the VS environment variables")
        for entry in path.split(";"):
            candidate = Path(entry) / "cl.exe"
            if candidate.exists():
                return env, str(candidate)
        raise CompilerError("Could not find cl in PATH")

    def compile(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        env, cl = self._latest()
        with temporary_source(source, "c") as body:
            argv = [cl, str(body.path), f"/Fo{body.base}", *flags, "/c"]
            self._run(argv, cancel_token=cancel_token, env=env, action="compiling software")

    def compile_and_run(
        self,
        source: str,
        flags: Sequence[str] = (),
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        env, cl = self._latest()
        with temporary_source(source, "c") as body:
            argv = [cl, str(body.path), f"/Fo{body.base}", f"/Fe{body.base}", *flags]
            self._run(argv, cancel_token=cancel_token, env=env, action="compiling test")
            output = self._run(
                [f"{body.base}.exe"], cancel_token=cancel_token, action="running test program"
            )
        return output.strip("\r\t\n ")


def _enumerate_subkeys(key: object) -> list[str]:
    names: list[str] = []
    index = 0
    while True:
        try:
            names.append(winreg.EnumKey(key, index))
        except OSError:
            return names
        index += 1


def _parse_environment(text: str) -> dict[str, str]:
    env: dict[str, str] = {}
    for line in text.splitlines():
        name, sep, value = line.partition("=")
        if sep and name:
            env[name] = value
    return env


def native_compilers(executor: CommandExecutor | None = None) -> dict[str, CompilerFactory]:
    """C toolchains keyed by their ``compile-*`` check name."""

    if sys.platform == "win32":
        table: dict[str, CompilerFactory] = {
            "compile-visual-studio": lambda: VisualStudioCompiler(executor=executor),
        }
        for name in (
            "compile-gcc-auto",
            "compile-gcc-system",
            "compile-toolchain-v2",
            "compile-toolchain-v1",
            "compile-toolchain-v0",
        ):
            table[name] = _undefined(name)
        return table

    def gcc(binary: str) -> CompilerFactory:
        return lambda: GccCompiler(binary, executor=executor)

    return {
        "compile-gcc-auto": lambda: gcc_auto(executor=executor),
        "compile-gcc-system": gcc("gcc"),
        "compile-toolchain-v2": gcc(f"{_TOOLCHAIN_ROOT}/v2/bin/gcc"),
        "compile-toolchain-v1": gcc(f"{_TOOLCHAIN_ROOT}/v1/bin/gcc"),
        "compile-toolchain-v0": gcc(f"{_TOOLCHAIN_ROOT}/bin/gcc"),
        "compile-visual-studio": _undefined("compile-visual-studio"),
    }


def _undefined(name: str) -> CompilerFactory:
    return lambda: UndefinedCompiler(name)


def go_compilers(executor: CommandExecutor | None = None) -> dict[str, CompilerFactory]:
    def go(binary: str, prefix: str = "") -> CompilerFactory:
        return lambda: GoCompiler(binary, path_prefix=prefix, executor=executor)

    return {
        "compile-go-auto": lambda: go_auto(executor=executor),
        "compile-opt-go-default": go("/opt/go/bin/go"),
        "compile-toolchain-gccgo-v2": go(
            f"{_TOOLCHAIN_ROOT}/v2/bin/go", f"{_TOOLCHAIN_ROOT}/v2/bin"
        ),
        "compile-usr-local-go": go("/usr/local/go/bin/go"),
        "compile-user-local-go": go("/usr/bin/go"),
    }


def script_compilers(executor: CommandExecutor | None = None) -> dict[str, CompilerFactory]:
    """Interpreters keyed by their ``run-*`` check name."""

    def script(binary: str, extension: str) -> CompilerFactory:
        return lambda: ScriptCompiler(binary, extension=extension, executor=executor)

    return {
        "run-program-python-auto": lambda: python_auto(executor=executor),
        "run-program-system-python": script("python", "py"),
        "run-program-system-python2": script("python2", "py"),
        "run-program-system-python3": script("python3", "py"),
        "run-program-usr-bin-pypy": script("/usr/bin/pypy", "py"),
        "run-program-usr-local-python": script("/usr/local/bin/python", "py"),
        "run-bash-script": script("/bin/bash", "sh"),
        "run-sh-script": script("/bin/sh", "sh"),
        "run-dash-script": script("/bin/dash", "sh"),
        "run-zsh-script": script("/bin/zsh", "sh"),
    }


__all__ = [
    "Compiler",
    "CompilerError",
    "CompilerFactory",
    "GccCompiler",
    "GoCompiler",
    "ScriptCompiler",
    "SourceFile",
    "UndefinedCompiler",
    "VisualStudioCompiler",
    "first_existing",
    "gcc_auto",
    "go_auto",
    "go_compilers",
    "native_compilers",
    "python_auto",
    "resolve_binary",
    "script_compilers",
    "temporary_source",
]
